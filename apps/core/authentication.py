"""
JWT bearer authentication for DRF.
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Dict, Optional

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework import exceptions

from apps.core.logging import SecurityLogger


class TokenService:
    """
    Issue and validate signed access tokens.
    """

    @classmethod
    def generate_jwt(cls, user) -> str:
        """
        Generate JWT token for a user.

        Args:
            user: User instance

        Returns:
            JWT token string
        """
        now = datetime.now(dt_timezone.utc)
        payload = {
            'user_id': str(user.id),
            'email': user.email,
            'exp': now + timedelta(hours=getattr(settings, 'JWT_EXPIRATION_HOURS', 24)),
            'iat': now,
        }

        return jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=getattr(settings, 'JWT_ALGORITHM', 'HS256')
        )

    @classmethod
    def validate_jwt(cls, token: str) -> Optional[Dict[str, Any]]:
        """
        Validate JWT token and return payload.

        Returns:
            Decoded payload dict or None if invalid or expired
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[getattr(settings, 'JWT_ALGORITHM', 'HS256')]
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None


class JWTAuthentication(BaseAuthentication):
    """
    Authenticate requests carrying ``Authorization: Bearer <token>``.

    Requests without the header are left anonymous so that the permission
    layer can answer 401. A malformed or expired token fails immediately.
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        auth = get_authorization_header(request).split()

        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            SecurityLogger.log_authentication_failure(
                'malformed_header', endpoint=request.path
            )
            raise exceptions.AuthenticationFailed('Invalid authorization header.')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token encoding.')

        payload = TokenService.validate_jwt(token)
        if not payload or not payload.get('user_id'):
            SecurityLogger.log_authentication_failure(
                'invalid_token', endpoint=request.path
            )
            raise exceptions.AuthenticationFailed('Invalid or expired token.')

        User = get_user_model()
        try:
            user = User.objects.get(id=payload['user_id'], is_active=True)
        except (User.DoesNotExist, ValueError, ValidationError):
            SecurityLogger.log_authentication_failure(
                'unknown_user', endpoint=request.path
            )
            raise exceptions.AuthenticationFailed('User not found or inactive.')

        return (user, token)

    def authenticate_header(self, request):
        return self.keyword
