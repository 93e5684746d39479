"""
Authentication classes referenced from ``REST_FRAMEWORK`` settings.

Two header schemes are accepted: the legacy DRF token
(``Authorization: Token <key>``) and simplejwt access tokens
(``Authorization: Bearer <jwt>``).  Keeping them in their own module
avoids circular imports when DRF loads authentication classes during
initialisation.
"""
from __future__ import annotations

from rest_framework import authentication
from rest_framework_simplejwt.authentication import JWTAuthentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Token authentication using the ``Token`` keyword."""

    keyword = 'Token'


class BearerJWTAuthentication(JWTAuthentication):
    """JWT access tokens issued by the login endpoint."""

    www_authenticate_realm = 'hms'
