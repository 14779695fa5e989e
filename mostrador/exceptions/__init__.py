"""Custom exceptions for the Mostrador POS back office."""
from decimal import Decimal


def _fmt_qty(value) -> str:
    """Render a quantity without trailing zeros (5 instead of 5.00)."""
    value = Decimal(str(value))
    if value % 1 == 0:
        return f"{int(value)}"
    return f"{value:.2f}".rstrip('0').rstrip('.')


class SaasError(Exception):
    """Base exception for all application errors."""
    code = 'INTERNAL_ERROR'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['status'] = 'error'
        return rv


class ValidationError(SaasError):
    """Malformed or missing input, rejected before any lookup."""
    code = 'VALIDATION_ERROR'

    def __init__(self, message="Datos inválidos", details=None):
        super().__init__(message, 400, {'details': details or []})
        self.details = details or []


class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    code = 'BUSINESS_RULE'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(SaasError):
    """Exception raised when a resource is not found (or belongs to another tenant)."""
    code = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    code = 'INSUFFICIENT_STOCK'

    def __init__(self, product_name, required, available, product_id=None, variant_id=None):
        message = (
            f"Stock insuficiente para {product_name}: "
            f"se requieren {_fmt_qty(required)}, disponible {_fmt_qty(available)}"
        )
        super().__init__(message, status_code=409, payload={
            'product_id': product_id,
            'variant_id': variant_id,
            'product_name': product_name,
            'required': str(required),
            'available': str(available),
        })
        self.product_name = product_name
        self.required = Decimal(str(required))
        self.available = Decimal(str(available))


class InactiveProductError(BusinessLogicError):
    """Raised when a cart references an inactive product or variant."""
    code = 'INACTIVE_PRODUCT'

    def __init__(self, product_name, product_id=None, variant_id=None):
        label = 'La variante' if variant_id else 'El producto'
        super().__init__(f'{label} "{product_name}" está inactivo', payload={
            'product_id': product_id,
            'variant_id': variant_id,
        })


class CashRegisterAlreadyOpenError(BusinessLogicError):
    """Raised when an operator tries to open a second shift."""
    code = 'CASH_REGISTER_ALREADY_OPEN'

    def __init__(self, cash_register_id=None):
        super().__init__(
            'Ya tienes una caja abierta. Debes cerrarla antes de abrir una nueva.',
            status_code=409,
            payload={'cash_register_id': cash_register_id}
        )


class CashRegisterClosedError(BusinessLogicError):
    """Raised when closing a shift that is already closed."""
    code = 'CASH_REGISTER_CLOSED'

    def __init__(self, cash_register_id=None):
        super().__init__(
            'La caja ya está cerrada',
            status_code=409,
            payload={'cash_register_id': cash_register_id}
        )


class CashDifferenceNotesRequiredError(BusinessLogicError):
    """Raised when a shift closes with a cash difference and no justification."""
    code = 'NOTES_REQUIRED'

    def __init__(self, difference, expected_amount):
        super().__init__(
            'Se requieren observaciones cuando hay diferencia de efectivo',
            status_code=422,
            payload={
                'difference': str(difference),
                'expected_amount': str(expected_amount),
                'requires_notes': True,
            }
        )
        self.difference = difference
        self.expected_amount = expected_amount


class RefundLimitError(BusinessLogicError):
    """Raised when a refund exceeds what is still refundable."""
    code = 'REFUND_LIMIT'


class ArithmeticIntegrityError(SaasError):
    """Raised when a computed subtotal or total is not a finite number."""
    code = 'NON_FINITE_TOTAL'

    def __init__(self, message="El total calculado de la venta no es un número válido", payload=None):
        super().__init__(message, 422, payload)


class ConcurrencyConflictError(SaasError):
    """Raised when a concurrent operation won the race; the caller may retry."""
    code = 'CONCURRENCY_CONFLICT'

    def __init__(self, message="Operación concurrente detectada. Intenta nuevamente.", payload=None):
        payload = dict(payload or ())
        payload['retryable'] = True
        super().__init__(message, 409, payload)


class AuthenticationError(SaasError):
    """Raised when no authenticated operator is attached to the request."""
    code = 'UNAUTHENTICATED'

    def __init__(self, message="No autenticado"):
        super().__init__(message, 401)


class UnauthorizedError(SaasError):
    """Raised when a user lacks permission for an action."""
    code = 'FORBIDDEN'

    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class PlanLimitError(SaasError):
    """Raised when the tenant's plan vetoes an action."""
    code = 'PLAN_LIMIT'

    def __init__(self, message, current=None, limit=None):
        super().__init__(message, 402, {'current': current, 'limit': limit})
