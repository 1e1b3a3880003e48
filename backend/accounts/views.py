import logging

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.tokens import RefreshToken

from .models import User
from .otp import issue_otp, validate_otp
from .serializers import (
    LoginSerializer,
    RegisterSerializer,
    RequestOtpSerializer,
    UserSerializer,
    VerifyOtpSerializer,
)
from .tasks import send_otp_email_task

logger = logging.getLogger(__name__)


def _tokens_for(user):
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


class RegisterView(APIView):
    """
    Register a new user
    
    POST Body:
    {
        "username": "jane",
        "email": "jane@example.com",
        "password": "password123",
        "phone_number": "+911234567890",   // optional
        "favourite_animal": "dog"          // optional
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []
    
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            
            return Response({
                'message': 'User registered successfully',
                'user': UserSerializer(user, context={'request': request}).data,
                'tokens': _tokens_for(user),
            }, status=status.HTTP_201_CREATED)
        
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class LoginView(APIView):
    """
    Login with username (or email) and password to get JWT tokens
    
    POST Body:
    {
        "username": "jane",
        "password": "password123"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []
    
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.validated_data
        
        return Response({
            "message": "Login successful",
            "user": UserSerializer(user, context={'request': request}).data,
            "tokens": _tokens_for(user),
        }, status=status.HTTP_200_OK)


class RefreshTokenView(APIView):
    """
    Refresh JWT access token
    
    POST Body:
    {
        "refresh": "your_refresh_token"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []
    
    def post(self, request):
        refresh_token = request.data.get('refresh')
        
        if not refresh_token:
            return Response(
                {'error': 'Refresh token is required'},
                status=status.HTTP_400_BAD_REQUEST
            )
        
        try:
            refresh = RefreshToken(refresh_token)
            return Response({
                'access': str(refresh.access_token)
            })
        except Exception:
            return Response(
                {'error': 'Invalid refresh token'},
                status=status.HTTP_401_UNAUTHORIZED
            )


class MeView(APIView):
    """GET/PATCH the authenticated user's profile"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user, context={'request': request}).data)

    def patch(self, request):
        serializer = UserSerializer(
            request.user, data=request.data, partial=True, context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class RequestOtpView(APIView):
    """
    Email a verification code
    
    POST Body: { "email": "jane@example.com" }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = RequestOtpSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': 'Valid email is required'}, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data['email']
        code = issue_otp(email)

        try:
            send_otp_email_task.delay(email, code)
        except Exception:
            logger.exception("Failed to queue OTP email for %s", email)
            return Response({'error': 'Failed to send OTP'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({
            'ok': True,
            'message': 'OTP sent to your email. Please check your inbox (and spam).',
        })


class VerifyOtpView(APIView):
    """
    Verify an emailed code, mark the email verified and log the user in
    
    POST Body: { "email": "jane@example.com", "code": "123456" }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = VerifyOtpSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': 'email and code required'}, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data['email']
        if not validate_otp(email, serializer.validated_data['code']):
            return Response({'error': 'INVALID_OR_EXPIRED_OTP'}, status=status.HTTP_400_BAD_REQUEST)

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            return Response({'error': 'user_not_found'}, status=status.HTTP_404_NOT_FOUND)

        if not user.email_verified:
            user.email_verified = True
            user.save(update_fields=['email_verified'])

        return Response({
            'message': 'Email verified',
            'user': UserSerializer(user, context={'request': request}).data,
            'tokens': _tokens_for(user),
        })
