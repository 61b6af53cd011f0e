"""
Error taxonomy for the production engine.

Every engine operation raises one of these; the DRF exception handler at the
bottom maps them onto HTTP responses.
"""
from rest_framework import status


class ERPError(Exception):
    """Base class for engine errors"""
    code = 'erp_error'
    http_status = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message=''):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    def as_dict(self):
        return {
            'error': self.code,
            'message': self.message,
            'retryable': self.retryable,
        }


class ValidationError(ERPError):
    """Malformed input"""
    code = 'validation_error'
    http_status = status.HTTP_400_BAD_REQUEST


class NegativeQuantity(ValidationError):
    code = 'negative_quantity'


class NotFound(ERPError):
    code = 'not_found'
    http_status = status.HTTP_404_NOT_FOUND


class Unauthorized(ERPError):
    code = 'unauthorized'
    http_status = status.HTTP_403_FORBIDDEN


class Conflict(ERPError):
    """Duplicate idempotency key with a different payload"""
    code = 'conflict'
    http_status = status.HTTP_409_CONFLICT


class Contention(ERPError):
    """Row lock or transaction conflict; the caller may retry"""
    code = 'contention'
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class PreconditionFailed(ERPError):
    """
    A gate or quantity invariant is not satisfied.

    ``blockers`` lists every unmet condition so the caller can show a complete
    checklist rather than the first failure only.
    """
    code = 'precondition_failed'
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_kind = 'precondition'

    def __init__(self, kind=None, blockers=None):
        if isinstance(blockers, str):
            blockers = [blockers]
        self.kind = kind or self.default_kind
        self.blockers = list(blockers or [])
        message = f"{self.kind}: " + '; '.join(self.blockers) if self.blockers else self.kind
        super().__init__(message)

    def as_dict(self):
        data = super().as_dict()
        data['kind'] = self.kind
        data['blockers'] = self.blockers
        return data


class InsufficientStock(PreconditionFailed):
    code = 'insufficient_stock'
    default_kind = 'insufficient_stock'


class BatchClosed(PreconditionFailed):
    code = 'batch_closed'
    default_kind = 'batch_closed'


class GateNotSatisfied(PreconditionFailed):
    code = 'gate_not_satisfied'
    default_kind = 'gate_not_satisfied'


class ExceedsAvailable(PreconditionFailed):
    code = 'exceeds_available'
    default_kind = 'exceeds_available'


class OverReturn(PreconditionFailed):
    code = 'over_return'
    default_kind = 'over_return'


class ExceedsApproved(PreconditionFailed):
    code = 'exceeds_approved'
    default_kind = 'exceeds_approved'


class DispatchNotAllowed(PreconditionFailed):
    code = 'dispatch_not_allowed'
    default_kind = 'dispatch_not_allowed'


def erp_exception_handler(exc, context):
    """DRF exception handler that renders ERPError subclasses"""
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if isinstance(exc, ERPError):
        return Response(exc.as_dict(), status=exc.http_status)
    return exception_handler(exc, context)
