"""
Authentication gate: resolve a bearer credential to a user.

REST requests go through simplejwt's JWTAuthentication (see REST_FRAMEWORK
settings); WebSocket connections call resolve_user_from_token directly.
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from common.exceptions import Unauthenticated

User = get_user_model()
logger = logging.getLogger(__name__)


def resolve_user_from_token(token):
    """
    Validate a JWT access token and return its active user.

    Raises:
        Unauthenticated: token missing, malformed, expired, or the user is
        unknown/inactive.
    """
    if token and token.lower().startswith("bearer "):
        token = token[7:].strip()

    if not token:
        raise Unauthenticated("Missing token")

    try:
        access = AccessToken(token)
        user_id = access["user_id"]
    except (TokenError, KeyError) as e:
        raise Unauthenticated(f"Invalid token: {e}")

    try:
        user = User.objects.get(id=user_id)
    except User.DoesNotExist:
        raise Unauthenticated("User not found")

    if not user.is_active:
        raise Unauthenticated("User is inactive")

    return user
