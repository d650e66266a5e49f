from rest_framework import status
from rest_framework.exceptions import APIException


class Unauthorized(APIException):
    """Missing or mismatched credential for a scheduler or admin action."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Unauthorized'
    default_code = 'unauthorized'


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found'
    default_code = 'not_found'


class InvalidState(APIException):
    """The requested transition is not allowed from the record's current state."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Invalid state for this operation'
    default_code = 'invalid_state'


class ValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input'
    default_code = 'validation_error'


class ExternalServiceError(APIException):
    """The payment processor failed or rejected the call."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment processor error'
    default_code = 'external_service_error'
