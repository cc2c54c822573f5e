"""Inventory Ledger — atomic debit/credit on stock entries.

Invariants:
    - units >= 0 at all times: debit is a single conditional UPDATE (units >= :n)
    - credit is unconditional and only used to roll back a prior debit
    - Both stamp last_updated
    - The ledger never commits: callers own the transaction

Design Decisions:
    - Conditional UPDATE + rowcount over SELECT-then-UPDATE: the read-modify-write
      is one statement, so a concurrent caller can not interleave between them
"""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.core.clock import Clock, utc_now
from bloodmatch.core.errors import (
    FieldValidationError, InsufficientInventoryError, ResourceNotFoundError,
)
from bloodmatch.models.stock_entry import StockEntry

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Stock debit/credit bound to one DB session."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def balance(self, stock_entry_id: UUID) -> int:
        units = await self.db.scalar(
            select(StockEntry.units).where(StockEntry.id == stock_entry_id),
        )
        if units is None:
            raise ResourceNotFoundError("StockEntry", str(stock_entry_id))
        return units

    async def debit(self, stock_entry_id: UUID, units: int) -> int:
        """Decrement by `units`; InsufficientInventoryError if balance is short."""
        _check_positive(units)
        result = await self.db.execute(
            update(StockEntry)
            .where(StockEntry.id == stock_entry_id)
            .where(StockEntry.units >= units)
            .values(
                units=StockEntry.units - units, last_updated=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await self.balance(stock_entry_id)
            raise InsufficientInventoryError(units, available)
        new_balance = await self.balance(stock_entry_id)
        logger.info(
            f"Debited {units} unit(s), balance now {new_balance}",
            extra={"stock_entry_id": stock_entry_id},
        )
        return new_balance

    async def credit(self, stock_entry_id: UUID, units: int) -> int:
        """Increment by `units`. Always valid for an existing entry."""
        _check_positive(units)
        result = await self.db.execute(
            update(StockEntry)
            .where(StockEntry.id == stock_entry_id)
            .values(
                units=StockEntry.units + units, last_updated=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ResourceNotFoundError("StockEntry", str(stock_entry_id))
        new_balance = await self.balance(stock_entry_id)
        logger.info(
            f"Credited {units} unit(s), balance now {new_balance}",
            extra={"stock_entry_id": stock_entry_id},
        )
        return new_balance


def _check_positive(units: int) -> None:
    if units < 1:
        raise FieldValidationError("units must be at least 1", "units")
