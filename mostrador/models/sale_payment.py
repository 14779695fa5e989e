"""Sale Payment model for mixed payment methods."""
from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType


class SalePayment(Base):
    """
    Sale Payment - one split of a mixed-payment sale.

    The amounts of a sale's splits add up to the sale total.
    """

    __tablename__ = 'sale_payment'

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_id = Column(IdType, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)

    payment_method = Column(String(20), nullable=False)  # EFECTIVO, TARJETA_DEBITO, ...
    amount = Column(Numeric(12, 2), nullable=False)
    reference = Column(String(120), nullable=True)  # Card voucher / transfer id

    # Relationships
    sale = relationship('Sale', back_populates='payments')

    def __repr__(self):
        return f"<SalePayment(id={self.id}, sale_id={self.sale_id}, method={self.payment_method}, amount={self.amount})>"
