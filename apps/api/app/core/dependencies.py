"""FastAPI dependencies exposing the process-wide ledger context."""

from fastapi import Query, Request

from app.core.errors import LedgerError
from app.schemas.common import PaginationParams
from app.services.keyed_lock import KeyedLock
from app.services.ledger import LedgerService


async def get_ledger(request: Request) -> LedgerService:
    """The LedgerService built in the application lifespan.

    Tests replace this through ``app.dependency_overrides``.
    """
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise LedgerError("Ledger service is not available")
    return ledger


async def get_distribution_locks(request: Request) -> KeyedLock:
    locks = getattr(request.app.state, "distribution_locks", None)
    if locks is None:
        locks = request.app.state.distribution_locks = KeyedLock()
    return locks


async def get_pagination(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> PaginationParams:
    return PaginationParams(limit=limit, offset=offset)
