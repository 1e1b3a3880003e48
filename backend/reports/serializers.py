from django.conf import settings
from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from common.exceptions import InvalidCoordinate
from realtime.geo import validate_coordinate
from services.case_management import is_expired
from .models import Report, ReportPhoto, Response


class ReportPhotoSerializer(serializers.ModelSerializer):
    url = serializers.SerializerMethodField()

    class Meta:
        model = ReportPhoto
        fields = ['id', 'url', 'uploaded_at']

    def get_url(self, obj):
        request = self.context.get('request')
        if request:
            return request.build_absolute_uri(obj.file.url)
        return obj.file.url


class ReportSerializer(serializers.ModelSerializer):
    """Serializer for reports (also used as the new_report event payload)"""
    reporter = UserBasicSerializer(read_only=True)
    photos = ReportPhotoSerializer(many=True, read_only=True)
    is_expired = serializers.SerializerMethodField()

    class Meta:
        model = Report
        fields = ['id', 'reporter', 'title', 'description', 'latitude', 'longitude',
                  'location_text', 'severity', 'category', 'status', 'photos',
                  'is_expired', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_is_expired(self, obj):
        return is_expired(obj)


class ReportCreateSerializer(serializers.Serializer):
    """Validates report creation input (multipart or JSON)"""
    title = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    description = serializers.CharField(required=False, allow_blank=True, default='')
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    severity = serializers.ChoiceField(
        choices=[c[0] for c in Report.SEVERITY_CHOICES], required=False, allow_null=True, default=None
    )
    category = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True, default=None)
    location_text = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)

    def validate(self, data):
        try:
            validate_coordinate(data['latitude'], data['longitude'])
        except InvalidCoordinate as e:
            raise serializers.ValidationError({'coordinates': str(e)})
        return data


def validate_uploads(files):
    """Reject uploads over MAX_UPLOAD_SIZE."""
    limit = settings.MAX_UPLOAD_SIZE
    for f in files:
        if f.size > limit:
            raise serializers.ValidationError(
                {'photos': f"{f.name} is larger than {limit // (1024 * 1024)} MB"}
            )
    return files


class ResponseSerializer(serializers.ModelSerializer):
    """Serializer for volunteer responses"""
    volunteer = UserBasicSerializer(read_only=True)
    report_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Response
        fields = ['id', 'report_id', 'volunteer', 'message', 'status', 'created_at', 'updated_at']
        read_only_fields = fields


class RespondSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, default='')


class ClaimSerializer(serializers.Serializer):
    response_id = serializers.IntegerField()


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['arrived', 'resolved', 'closed'])
    response_id = serializers.IntegerField(required=False, allow_null=True, default=None)
