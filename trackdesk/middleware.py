"""
Request logging for the tracker API.
"""
import json
import logging
import time

from django.conf import settings

logger = logging.getLogger('django.request')

REDACTED_KEYS = {'password', 'token', 'secret', 'refresh', 'access'}
WRITE_METHODS = {'POST', 'PUT', 'PATCH', 'DELETE'}


def _redact(payload):
    if not isinstance(payload, dict):
        return payload
    return {key: '***' if key in REDACTED_KEYS else value for key, value in payload.items()}


def _client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def _actor(request):
    """``tenant/user`` once DRF has authenticated the request, else ``anonymous``."""
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return 'anonymous'
    kind = 'internal' if user.is_internal else f'client:{user.client_id}'
    return f'tenant:{user.tenant_id}/user:{user.pk} ({kind})'


class RequestLoggingMiddleware:
    """
    Logs each API call with its duration, acting tenant and user when
    DEBUG is on. JSON bodies of write requests are logged with credentials
    masked; uploads are only noted.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not settings.DEBUG:
            return self.get_response(request)

        started = time.monotonic()
        method = request.method
        path = request.get_full_path()

        if method in WRITE_METHODS:
            content_type = request.META.get('CONTENT_TYPE', '')
            if content_type.startswith('application/json') and request.body:
                try:
                    logger.info(f'{method} {path} body: {_redact(json.loads(request.body))}')
                except (ValueError, UnicodeDecodeError):
                    logger.info(f'{method} {path} body: <unparseable JSON>')
            elif content_type.startswith('multipart/form-data'):
                logger.info(f'{method} {path} body: <multipart upload>')

        response = self.get_response(request)

        elapsed = (time.monotonic() - started) * 1000
        message = (
            f'{method} {path} -> {response.status_code} in {elapsed:.1f}ms '
            f'[{_actor(request)} from {_client_ip(request)}]'
        )
        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)
        return response
