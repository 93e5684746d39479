"""
WebSocket authentication for API clients.

Browsers send ``?token=<key>`` on the socket URL because they cannot set
headers on the handshake. Both credentials issued by the login endpoint
are accepted: simplejwt access tokens and DRF tokens. Sockets without a
token keep whatever user the session stack resolved.
"""
from urllib.parse import parse_qs

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework.authtoken.models import Token
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from clinic.models import User


@database_sync_to_async
def user_for_token(raw: str):
    try:
        access = AccessToken(raw)
    except TokenError:
        token = Token.objects.select_related('user').filter(key=raw).first()
        user = token.user if token else None
    else:
        lookup = {api_settings.USER_ID_FIELD: access.get(api_settings.USER_ID_CLAIM)}
        user = User.objects.filter(**lookup).first()
    if user is None or not user.is_active:
        return AnonymousUser()
    return user


class QueryTokenAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        params = parse_qs((scope.get('query_string') or b'').decode())
        raw = (params.get('token') or [''])[0]
        if raw:
            scope = dict(scope, user=await user_for_token(raw))
        return await super().__call__(scope, receive, send)


def TokenAuthMiddlewareStack(inner):
    return AuthMiddlewareStack(QueryTokenAuthMiddleware(inner))
