from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from mostrador.models.cash_movement import CashMovementType
from mostrador.utils.numeric import to_decimal


def _non_negative(v):
    if v < 0:
        raise ValueError('El monto no puede ser negativo')
    return v


class CashOpen(BaseModel):
    opening_amount: Decimal
    notes: Optional[str] = None

    @field_validator('opening_amount', mode='before')
    @classmethod
    def coerce(cls, v):
        return to_decimal(v)

    @field_validator('opening_amount')
    @classmethod
    def check(cls, v):
        return _non_negative(v)


class CashClose(BaseModel):
    closing_amount: Decimal
    notes: Optional[str] = None

    @field_validator('closing_amount', mode='before')
    @classmethod
    def coerce(cls, v):
        return to_decimal(v)

    @field_validator('closing_amount')
    @classmethod
    def check(cls, v):
        return _non_negative(v)


class CashMovementCreate(BaseModel):
    """Manual movement; only INGRESO / EGRESO can be entered by hand."""
    type: CashMovementType
    amount: Decimal
    description: str = Field(min_length=3, max_length=500)

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

    @field_validator('type')
    @classmethod
    def manual_only(cls, v):
        if v not in (CashMovementType.INGRESO, CashMovementType.EGRESO):
            raise ValueError('Solo se pueden registrar ingresos o egresos manuales')
        return v
