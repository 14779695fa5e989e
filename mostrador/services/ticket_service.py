"""
Ticket Sequencer - per-operator sequential ticket numbers.

Ticket numbers are unique per operator only, not per tenant or globally.
"""
from sqlalchemy import func

from mostrador.exceptions import NotFoundError
from mostrador.models import AppUser, Sale


def lock_operator(session, user_id: int):
    """
    Take ``SELECT ... FOR UPDATE`` on the operator's app_user row.

    Serialises the per-operator critical sections (ticket numbering, shift
    open) until the surrounding transaction ends.
    """
    locked = (
        session.query(AppUser.id)
        .filter(AppUser.id == user_id)
        .with_for_update()
        .one_or_none()
    )
    if locked is None:
        raise NotFoundError('Operador no encontrado', payload={'user_id': user_id})


def next_ticket_number(session, user_id: int) -> int:
    """
    Return ``1 + max(ticket_number)`` for the operator (1 for the first sale).

    Must run inside the transaction that inserts the sale, so a concurrent
    sale by the same operator waits on the row lock until this one commits
    or rolls back. The unique constraint on ``(user_id, ticket_number)``
    backs this up.
    """
    lock_operator(session, user_id)

    current = (
        session.query(func.max(Sale.ticket_number))
        .filter(Sale.user_id == user_id)
        .scalar()
    )
    return (current or 0) + 1
