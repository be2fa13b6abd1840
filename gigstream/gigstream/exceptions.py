import logging

from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class AlreadyProcessed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'This record has already been processed.'
    default_code = 'already_processed'


class Unauthorized(APIException):
    """The caller is authenticated but may not perform this ledger operation."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to perform this operation.'
    default_code = 'unauthorized'


class InsufficientBalance(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Insufficient balance.'
    default_code = 'insufficient_balance'


class BelowMinimumWithdrawal(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Amount is below the minimum withdrawal.'
    default_code = 'below_minimum_withdrawal'


class EscrowLocked(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Escrow is locked due to dispute.'
    default_code = 'escrow_locked'


class IdempotencyKeyReused(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Idempotency key was already used for a different request.'
    default_code = 'idempotency_key_reused'


class InvalidTransition(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid status transition.'
    default_code = 'invalid_transition'


class InvalidWebhookSignature(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Webhook signature verification failed.'
    default_code = 'invalid_webhook_signature'


class PaymentProviderError(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment provider request failed.'
    default_code = 'payment_provider_error'


def _error_body(message, errors=None):
    body = {
        'success': False,
        'error': message,
        'timestamp': timezone.now().isoformat(),
    }
    if errors:
        body['errors'] = errors
    return body


def _flatten_detail(detail):
    if isinstance(detail, list):
        return ' '.join(str(item) for item in detail)
    if isinstance(detail, dict):
        return ' '.join(_flatten_detail(value) for value in detail.values())
    return str(detail)


def api_exception_handler(exc, context):
    """
    Render every error as ``{success: false, error, errors?, timestamp}``.

    Serializer validation errors become 422 with a field -> messages map.
    Anything DRF does not recognise is logged and hidden behind a generic 500.
    """
    if isinstance(exc, ValidationError):
        detail = exc.detail
        if isinstance(detail, dict):
            errors = {field: [str(m) for m in (msgs if isinstance(msgs, list) else [msgs])]
                      for field, msgs in detail.items()}
        else:
            errors = {'non_field_errors': [str(m) for m in detail]}
        return Response(_error_body('Validation failed', errors), status=status.HTTP_422_UNPROCESSABLE_ENTITY)

    response = exception_handler(exc, context)
    if response is not None:
        data = response.data
        if isinstance(data, dict):
            data = data.get('detail', data)
        response.data = _error_body(_flatten_detail(data))
        return response

    view = context.get('view')
    logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}")
    return Response(_error_body('Internal server error'), status=status.HTTP_500_INTERNAL_SERVER_ERROR)
