"""Customer Payment model - every decrease of a customer's debt."""
import enum
from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class CustomerPaymentKind(enum.Enum):
    """Origin of a debt decrease."""
    PAYMENT = 'PAYMENT'          # Pago registrado por el cliente
    CREDIT_NOTE = 'CREDIT_NOTE'  # Devolución o anulación de una venta a cuenta


class CustomerPayment(Base):
    """
    Registered payment (or credit note) against a customer's current debt.

    Stores the debt before and after, so the account history can be rebuilt
    without replaying sales.
    """

    __tablename__ = 'customer_payment'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False)
    kind = Column(Enum(CustomerPaymentKind, name='customer_payment_kind'), nullable=False,
                  default=CustomerPaymentKind.PAYMENT)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(20), nullable=False, default='EFECTIVO')
    previous_debt = Column(Numeric(12, 2), nullable=False)
    new_debt = Column(Numeric(12, 2), nullable=False)
    sale_id = Column(IdType, ForeignKey('sale.id'), nullable=True)
    refund_id = Column(IdType, ForeignKey('refund.id'), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    customer = relationship('Customer', back_populates='payments')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<CustomerPayment(id={self.id}, customer_id={self.customer_id}, amount={self.amount})>"
