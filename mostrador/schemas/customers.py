from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from mostrador.models.sale import PaymentMethod
from mostrador.utils.numeric import to_decimal


class CustomerPaymentCreate(BaseModel):
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.EFECTIVO
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator('amount', mode='before')
    @classmethod
    def coerce(cls, v):
        return to_decimal(v)

    @field_validator('amount')
    @classmethod
    def positive(cls, v):
        if v <= 0:
            raise ValueError('El monto debe ser positivo')
        return v

    @field_validator('payment_method')
    @classmethod
    def not_on_account(cls, v):
        if v in (PaymentMethod.CUENTA_CORRIENTE, PaymentMethod.MIXTO):
            raise ValueError('Método de pago inválido para un pago de cuenta corriente')
        return v


class CreditLimitUpdate(BaseModel):
    credit_limit: Decimal

    @field_validator('credit_limit', mode='before')
    @classmethod
    def coerce(cls, v):
        return to_decimal(v)

    @field_validator('credit_limit')
    @classmethod
    def not_negative(cls, v):
        if v < 0:
            raise ValueError('El límite no puede ser negativo')
        return v
