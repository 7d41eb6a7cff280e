"""Domain errors raised by the service layer and mapped to API responses by views."""
from rest_framework import status
from rest_framework.response import Response


class TradePortalError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class WorkflowError(TradePortalError):
    """An operation is not allowed in the record's current state."""


class ConflictError(TradePortalError):
    status_code = status.HTTP_409_CONFLICT


class MagicLinkError(TradePortalError):
    """Invalid, expired or already used magic link token."""

    def __init__(self, message, reason='invalid'):
        super().__init__(message)
        self.reason = reason


class FunctionInvocationError(TradePortalError):
    """A hosted backend function failed or could not be reached."""
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, function_name, message, response_status=None):
        super().__init__(f"{function_name}: {message}")
        self.function_name = function_name
        self.response_status = response_status


def error_response(exc):
    data = {'error': exc.message}
    if isinstance(exc, MagicLinkError):
        data['reason'] = exc.reason
    return Response(data, status=exc.status_code)
