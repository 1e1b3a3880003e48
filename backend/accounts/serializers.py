from rest_framework import serializers
from django.contrib.auth import authenticate
from .models import User


class UserSerializer(serializers.ModelSerializer):
    avatar_url = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "phone_number",
            "favourite_animal",
            "reputation",
            "email_verified",
            "avatar",
            "avatar_url",
            "date_joined",
        ]
        read_only_fields = ["id", "email", "reputation", "email_verified", "avatar_url", "date_joined"]
        extra_kwargs = {
            "avatar": {"write_only": True, "required": False}
        }

    def get_avatar_url(self, obj):
        if obj.avatar:
            request = self.context.get("request")
            if request:
                return request.build_absolute_uri(obj.avatar.url)
            return obj.avatar.url
        return None


class UserBasicSerializer(serializers.ModelSerializer):
    """Public fields shown next to reports, responses and blogs"""

    class Meta:
        model = User
        fields = ["id", "username", "reputation"]


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        identifier = data["username"]
        # Allow logging in with email as well as username
        if "@" in identifier:
            match = User.objects.filter(email__iexact=identifier).first()
            if match:
                identifier = match.username

        user = authenticate(username=identifier, password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'phone_number', 'favourite_animal']
    
    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value.lower()
    
    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data['username'],
            email=validated_data['email'],
            password=validated_data['password'],
            phone_number=validated_data.get('phone_number', ''),
            favourite_animal=validated_data.get('favourite_animal', ''),
        )


class RequestOtpSerializer(serializers.Serializer):
    email = serializers.EmailField()


class VerifyOtpSerializer(serializers.Serializer):
    email = serializers.EmailField()
    code = serializers.CharField(max_length=6)
