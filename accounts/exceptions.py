"""
Error taxonomy for the back-office API and the unified exception handler.

Domain errors are DRF ``APIException`` subclasses so that services can
raise them directly and views need no translation layer.  The handler
wraps every error in ``{'ok': False, 'error': {'code', 'message'}}``.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

__all__ = [
    'ValidationError',
    'NotFound',
    'InsufficientBalance',
    'DuplicatePeriod',
    'InvalidQuantity',
    'InvalidAmount',
    'Conflict',
    'api_exception_handler',
]


class InsufficientBalance(APIException):
    """Requested amount exceeds the available balance, due or stock."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Insufficient balance.'
    default_code = 'insufficient_balance'


class DuplicatePeriod(APIException):
    """The period has already been settled."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'A deduction already exists for this period.'
    default_code = 'duplicate_period'


class InvalidQuantity(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Quantity must be a positive whole number.'
    default_code = 'invalid_quantity'


class InvalidAmount(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Amount is out of range.'
    default_code = 'invalid_amount'


class Conflict(APIException):
    """The entity is referenced by other records and cannot be changed."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The record is in use.'
    default_code = 'conflict'


def _error_code(exc, resp) -> str:
    if isinstance(exc, ValidationError):
        return 'invalid'
    if isinstance(exc, APIException):
        return exc.default_code
    if resp.status_code == status.HTTP_404_NOT_FOUND:
        return 'not_found'
    return 'api_error'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        request = context.get('request')
        logger.error('unhandled error on %s', getattr(request, 'path', '?'), exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    if resp.status_code >= 500:
        logger.error('api error %s: %s', resp.status_code, detail)
    elif resp.status_code in (status.HTTP_409_CONFLICT, status.HTTP_400_BAD_REQUEST):
        logger.warning('rejected request: %s', detail)
    return Response({'ok': False, 'error': {'code': _error_code(exc, resp), 'message': detail}}, status=resp.status_code)
