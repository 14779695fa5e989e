from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from mostrador.models.sale import DiscountType, PaymentMethod
from mostrador.utils.numeric import to_decimal, parse_lenient

# Methods a single payment split can carry
SPLIT_METHODS = {
    PaymentMethod.EFECTIVO, PaymentMethod.TARJETA_DEBITO, PaymentMethod.TARJETA_CREDITO,
    PaymentMethod.TRANSFERENCIA, PaymentMethod.QR, PaymentMethod.OTRO,
}


class SaleItemIn(BaseModel):
    """Cart line. ``subtotal`` is accepted but always recomputed."""
    product_id: int = Field(gt=0)
    variant_id: Optional[int] = None
    quantity: Decimal
    # NaN / Infinity survive parsing so the processor can exclude the line
    unit_price: Decimal = Field(allow_inf_nan=True)
    subtotal: Decimal = Decimal('0')

    @field_validator('quantity', 'subtotal', mode='before')
    @classmethod
    def coerce_number(cls, v):
        return to_decimal(v)

    @field_validator('unit_price', mode='before')
    @classmethod
    def coerce_price(cls, v):
        return parse_lenient(v)

    @field_validator('quantity')
    @classmethod
    def quantity_positive(cls, v):
        if v <= 0:
            raise ValueError('La cantidad debe ser positiva')
        return v

    @field_validator('unit_price')
    @classmethod
    def price_not_negative(cls, v):
        if v.is_finite() and v < 0:
            raise ValueError('El precio debe ser mayor o igual a 0')
        return v


class SalePaymentIn(BaseModel):
    method: PaymentMethod
    amount: Decimal
    reference: Optional[str] = Field(default=None, max_length=120)

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        return to_decimal(v)

    @field_validator('amount')
    @classmethod
    def amount_not_negative(cls, v):
        if v < 0:
            raise ValueError('El monto debe ser mayor o igual a 0')
        return v

    @field_validator('method')
    @classmethod
    def single_method(cls, v):
        if v not in SPLIT_METHODS:
            raise ValueError('Un pago parcial no puede ser MIXTO ni CUENTA_CORRIENTE')
        return v


class SaleCreate(BaseModel):
    """Input of ``sales_service.create_sale``."""
    customer_id: Optional[int] = None
    payment_method: PaymentMethod
    discount: Decimal = Decimal('0')
    discount_type: DiscountType = DiscountType.FIXED
    has_mixed_payment: bool = False
    notes: Optional[str] = Field(default=None, max_length=500)
    items: List[SaleItemIn] = Field(min_length=1)
    payments: Optional[List[SalePaymentIn]] = None

    @field_validator('discount', mode='before')
    @classmethod
    def coerce_discount(cls, v):
        return to_decimal(v)

    @field_validator('discount')
    @classmethod
    def discount_not_negative(cls, v):
        if v < 0:
            raise ValueError('El descuento no puede ser negativo')
        return v

    @field_validator('discount_type', mode='before')
    @classmethod
    def upper_discount_type(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('payment_method', mode='before')
    @classmethod
    def upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode='after')
    def check_mixed(self):
        if self.payment_method == PaymentMethod.MIXTO:
            self.has_mixed_payment = True
        if self.has_mixed_payment:
            self.payment_method = PaymentMethod.MIXTO
            if not self.payments:
                raise ValueError('Un pago mixto requiere al menos un pago')
        else:
            self.payments = None
        return self


class RefundItemIn(BaseModel):
    sale_line_id: int = Field(gt=0)
    quantity: Decimal

    @field_validator('quantity', mode='before')
    @classmethod
    def coerce_quantity(cls, v):
        return to_decimal(v)

    @field_validator('quantity')
    @classmethod
    def quantity_positive(cls, v):
        if v <= 0:
            raise ValueError('La cantidad debe ser positiva')
        return v


class RefundCreate(BaseModel):
    """Input of ``refund_service.create_refund``."""
    type: str = Field(pattern='^(TOTAL|PARCIAL)$')
    reason: str = Field(min_length=10, max_length=255)
    refund_amount: Decimal
    restock_items: bool = True
    notes: Optional[str] = None
    items: List[RefundItemIn] = Field(min_length=1)

    @field_validator('refund_amount', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        return to_decimal(v)

    @field_validator('refund_amount')
    @classmethod
    def amount_positive(cls, v):
        if v <= 0:
            raise ValueError('El monto a devolver debe ser positivo')
        return v


class SaleCancel(BaseModel):
    reason: str = Field(min_length=3, max_length=500)
