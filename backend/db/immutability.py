"""
ORM-level append-only enforcement for the stock ledger.

StockMovement rows may be inserted, never updated or deleted. Listeners catch
both unit-of-work flushes (before_update / before_delete) and ORM-enabled bulk
update()/delete() statements (do_orm_execute).
"""

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from core.errors import LedgerImmutableError
from core.logging import get_logger
from db.inventory.movement import StockMovement

logger = get_logger(__name__)


def _refuse_update(mapper, connection, target):
    logger.error("ledger_update_blocked", movement_id=target.id)
    raise LedgerImmutableError(target.id, "UPDATE")


def _refuse_delete(mapper, connection, target):
    logger.error("ledger_delete_blocked", movement_id=target.id)
    raise LedgerImmutableError(target.id, "DELETE")


def _refuse_bulk(orm_execute_state: ORMExecuteState):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if any(m.class_ is StockMovement for m in orm_execute_state.all_mappers):
        operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
        logger.error("ledger_bulk_write_blocked", operation=operation)
        raise LedgerImmutableError(None, operation)


_LISTENERS = (
    (StockMovement, "before_update", _refuse_update),
    (StockMovement, "before_delete", _refuse_delete),
    (Session, "do_orm_execute", _refuse_bulk),
)


def register_immutability_listeners():
    """Install the ledger listeners. Safe to call more than once."""
    for target, name, fn in _LISTENERS:
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners():
    for target, name, fn in _LISTENERS:
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
