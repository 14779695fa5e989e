"""Stock Ledger writes shared by sales, refunds and cancellations."""
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy import update

from mostrador.models import (
    ProductStock, ProductVariant, StockMove, StockMoveLine, StockMoveType, StockReferenceType
)


def increase_stock(session, product_id: int, variant_id: Optional[int], qty: Decimal):
    """Put ``qty`` back on the variant (if any) or on the product stock row."""
    if variant_id:
        stmt = (
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock_qty=ProductVariant.stock_qty + qty)
        )
    else:
        stmt = (
            update(ProductStock)
            .where(ProductStock.product_id == product_id)
            .values(on_hand_qty=ProductStock.on_hand_qty + qty)
        )
    result = session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0 and not variant_id:
        # Product never had a stock row
        session.add(ProductStock(product_id=product_id, on_hand_qty=qty))
        session.flush()


def record_stock_move(session, tenant_id: int, user_id: int, move_type: StockMoveType,
                      reference_type: StockReferenceType, reference_id: int, notes: str,
                      lines: Iterable[Tuple[int, Optional[int], Decimal, Optional[Decimal]]]) -> StockMove:
    """
    Write a stock move with one line per ``(product_id, variant_id, qty, unit_cost)``.
    """
    move = StockMove(
        tenant_id=tenant_id,
        user_id=user_id,
        type=move_type,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    session.add(move)
    session.flush()

    for product_id, variant_id, qty, unit_cost in lines:
        session.add(StockMoveLine(
            stock_move_id=move.id,
            product_id=product_id,
            variant_id=variant_id,
            qty=qty,
            unit_cost=unit_cost,
        ))
    return move
