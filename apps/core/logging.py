"""
Structured logging helpers: PII masking, JSON formatting and security events.
"""
import json
import logging
import re
import traceback
from datetime import datetime, timezone as dt_timezone
from django.utils import timezone
import sentry_sdk


class PIIMasker:
    """
    Mask personal data before it reaches log sinks.

    Farmer and agent records carry phone numbers, emails and NINs, so the
    masking runs on every message and on every extra field.
    """

    PHONE_PATTERN = re.compile(r'\+?\d{10,15}')
    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    SECRET_PATTERN = re.compile(
        r'(api[_-]?key|token|secret|password|authorization)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE
    )

    SENSITIVE_FIELDS = {
        'password', 'password_hash', 'token', 'access_token', 'refresh_token',
        'authorization', 'secret', 'secret_key', 'jwt', 'nin', 'bvn',
    }

    @classmethod
    def mask_email(cls, text):
        def _mask(match):
            local, _, domain = match.group(0).partition('@')
            if len(local) > 1:
                local = local[0] + '*' * (len(local) - 1)
            return f"{local}@{domain}"
        return cls.EMAIL_PATTERN.sub(_mask, text)

    @classmethod
    def mask_text(cls, text):
        """Apply every masking pattern to a string."""
        if not isinstance(text, str):
            return text
        text = cls.SECRET_PATTERN.sub(r'\1: ********', text)
        text = cls.PHONE_PATTERN.sub(lambda m: m.group(0)[:3] + '*' * (len(m.group(0)) - 3), text)
        return cls.mask_email(text)

    @classmethod
    def mask_value(cls, value):
        if isinstance(value, dict):
            return cls.mask_dict(value)
        if isinstance(value, (list, tuple)):
            return [cls.mask_value(item) for item in value]
        if isinstance(value, str):
            return cls.mask_text(value)
        return value

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask a dictionary; sensitive keys are blanked outright."""
        masked = {}
        for key, value in data.items():
            if str(key).lower() in cls.SENSITIVE_FIELDS and value:
                masked[key] = '********'
            else:
                masked[key] = cls.mask_value(value)
        return masked


_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord('', 0, '', 0, '', None, None)).keys()
) | {'message', 'asctime'}


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    ``request_id`` and any ``extra`` fields are copied onto the payload
    after masking.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(dt_timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': [
                    PIIMasker.mask_text(line)
                    for line in traceback.format_exception(*record.exc_info)
                ],
            }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            if key.lower() in PIIMasker.SENSITIVE_FIELDS and value:
                log_data[key] = '********'
                continue
            masked = PIIMasker.mask_value(value)
            try:
                json.dumps(masked)
            except (TypeError, ValueError):
                masked = PIIMasker.mask_text(str(value))
            log_data[key] = masked

        return json.dumps(log_data)


class SecurityLogger:
    """
    Security event logging on the ``security`` logger.

    Critical events are also sent to Sentry. When Sentry is not initialised
    ``capture_message`` is a no-op.
    """

    CRITICAL_EVENTS = {
        'system_role_mutation_attempt',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured, masked context.

        Example:
            >>> SecurityLogger.log_event('authentication_failed', reason='expired_token')
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'timestamp': timezone.now().isoformat(),
        }
        log_data.update(context)
        log_data = PIIMasker.mask_dict(log_data)

        log_method = getattr(logger, level, logger.warning)
        log_method(f"Security event: {event_type}", extra=log_data)

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
            )

    @staticmethod
    def log_permission_denied(user_id, required, missing, endpoint=None, method=None, request_id=None):
        """Log a gate denial (HTTP 403)."""
        SecurityLogger.log_event(
            'permission_denied',
            level='warning',
            user_id=str(user_id) if user_id else None,
            required_permissions=sorted(required),
            missing_permissions=sorted(missing),
            endpoint=endpoint,
            method=method,
            request_id=request_id,
        )

    @staticmethod
    def log_authentication_failure(reason: str, ip_address=None, endpoint=None):
        """Log a request that could not produce an identity (HTTP 401)."""
        SecurityLogger.log_event(
            'authentication_failed',
            level='info',
            reason=reason,
            ip_address=ip_address,
            endpoint=endpoint,
        )

    @staticmethod
    def log_system_role_mutation_attempt(user_id, role_id, operation: str):
        """Log an attempt to edit or delete a seeded system role."""
        SecurityLogger.log_event(
            'system_role_mutation_attempt',
            level='error',
            user_id=str(user_id) if user_id else None,
            role_id=str(role_id),
            operation=operation,
        )
