"""
Base error shared by the order and payment components.

Every domain failure carries a stable ``code`` so callers (views, admin
actions, other services) can react to the specific case instead of a
generic failure.
"""
import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    code = 'error'
    status_code = 400

    def __init__(self, message=None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class NotFound(StorefrontError):
    """Requested resource does not exist"""
    code = 'not_found'
    status_code = 404


class InvalidState(StorefrontError):
    """Operation is not allowed in the order's current state"""
    code = 'invalid_state'


def api_exception_handler(exc, context):
    """DRF exception handler that renders domain errors as ``{message, code}``."""
    if isinstance(exc, StorefrontError):
        view = context.get('view')
        logger.warning(
            f"[API] {view.__class__.__name__ if view else 'view'} failed with {exc.code}: {exc.message}"
        )
        return Response({'message': exc.message, 'code': exc.code}, status=exc.status_code)
    return exception_handler(exc, context)
