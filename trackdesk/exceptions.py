"""
Error taxonomy shared by the ticket and task lifecycles, and the DRF
exception handler that turns it into HTTP responses.
"""
import logging

from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    """Base class for errors the caller can act on."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'

    def __init__(self, message, code=None, **extra):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra

    def as_dict(self):
        payload = {'error': self.message, 'code': self.code}
        payload.update(self.extra)
        return payload


class ValidationError(TrackerError):
    """A required field is missing or a value breaks a field constraint."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'validation_error'


class NotFoundError(TrackerError):
    """Unknown record, or a record that belongs to another tenant."""
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'


class AuthorizationError(TrackerError):
    """The acting user is outside the record's assignment or client scope."""
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'forbidden'


class ConflictError(TrackerError):
    """Duplicate link, duplicate watcher and similar uniqueness clashes."""
    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflict'


class ConfigurationError(TrackerError):
    """Tenant data is incomplete, e.g. a product without an issue-key code."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'configuration_error'


def tracker_exception_handler(exc, context):
    """
    REST_FRAMEWORK['EXCEPTION_HANDLER'].

    Lifecycle errors are rendered as {"error", "code"}; DRF and Django's own
    exceptions go through the stock handler; anything else is logged and
    reported as a generic internal error.
    """
    if isinstance(exc, TrackerError):
        return Response(exc.as_dict(), status=exc.status_code)

    if isinstance(exc, (APIException, Http404, PermissionDenied)):
        return exception_handler(exc, context)

    view = context.get('view')
    logger.exception(
        f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}"
    )
    return Response(
        {'error': 'Internal server error'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )