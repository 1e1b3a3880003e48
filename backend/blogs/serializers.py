from rest_framework import serializers

from .models import Blog


class BlogSerializer(serializers.ModelSerializer):
    author = serializers.CharField(source='author.username', read_only=True)
    author_id = serializers.IntegerField(read_only=True)
    photos = serializers.SerializerMethodField()
    videos = serializers.SerializerMethodField()

    class Meta:
        model = Blog
        fields = ['id', 'author_id', 'author', 'title', 'content', 'tags', 'photos', 'videos', 'created_at']

    def _urls(self, obj, kind):
        request = self.context.get('request')
        urls = []
        for media in obj.media.all():
            if media.kind != kind:
                continue
            urls.append(request.build_absolute_uri(media.file.url) if request else media.file.url)
        return urls

    def get_photos(self, obj):
        return self._urls(obj, 'photo')

    def get_videos(self, obj):
        return self._urls(obj, 'video')


class BlogCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    content = serializers.CharField()
    tags = serializers.JSONField(required=False)

    def validate_tags(self, value):
        # "tag1, tag2" -> ["tag1", "tag2"]
        if value in (None, ''):
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(',') if t.strip()]
        if isinstance(value, list):
            return [str(t).strip() for t in value if str(t).strip()]
        raise serializers.ValidationError("tags must be a list or comma separated string")
