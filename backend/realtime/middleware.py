"""WebSocket authentication middleware for JWT bearer tokens."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser

from accounts.authentication import resolve_user_from_token
from common.exceptions import Unauthenticated

logger = logging.getLogger(__name__)


def _token_from_scope(scope):
    """
    Find the token in either:
    1. the querystring (?token=...)
    2. an Authorization header (Bearer ...)
    """
    query_string = scope.get("query_string", b"").decode()
    params = parse_qs(query_string)
    token_list = params.get("token")
    if token_list:
        return token_list[0]

    headers = dict(scope.get("headers", []))
    auth_header = headers.get(b"authorization")
    if auth_header:
        return auth_header.decode()

    return None


class JWTAuthMiddleware(BaseMiddleware):
    """
    Put the authenticated user (or AnonymousUser) into scope["user"].

    The consumer refuses anonymous connections before any room logic runs.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = _token_from_scope(scope)

        try:
            scope["user"] = await database_sync_to_async(resolve_user_from_token)(token)
        except Unauthenticated as e:
            logger.info("WebSocket auth failed: %s", e)
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)
