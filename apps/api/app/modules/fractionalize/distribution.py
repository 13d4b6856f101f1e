"""Distribution Engine: move share tokens from the owner wallet to many recipients.

Entries are processed strictly in input order, one ledger transfer at a
time. A failed transfer is recorded as a ``DistributionFailure`` and the
batch continues; earlier successes are never rolled back.

Batches against the same ``(share_token_mint, sender)`` pair are serialized
in-process, so the admission check and the transfer loop see a consistent
balance. Separate processes are not coordinated; the ledger rejects
overdrafts there.
"""

from datetime import datetime, timezone

import sentry_sdk
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InsufficientBalanceError,
    LedgerError,
    PersistenceError,
    ValidationError,
)
from app.models.fractional import FractionalToken, ShareTransfer
from app.modules.fractionalize.schemas import (
    DistributeRequest,
    DistributionEntry,
    DistributionFailure,
    DistributionOutcome,
    DistributionResult,
    DistributionSuccess,
    SenderBalance,
)
from app.services.keyed_lock import KeyedLock
from app.services.ledger import LedgerService, is_valid_address

logger = structlog.get_logger()

UNKNOWN_TOKEN_NAME = "Unknown"
UNKNOWN_TOKEN_SYMBOL = "UNKNOWN"


def validate_distribution(request: DistributeRequest) -> None:
    """Reject the whole batch before any side effect if one entry is malformed."""
    errors: list[dict[str, str]] = []
    if not is_valid_address(request.share_token_mint):
        errors.append({"field": "shareTokenMint", "message": "Not a valid Solana address"})
    if not request.distributions:
        errors.append({"field": "distributions", "message": "distributions array cannot be empty"})

    for index, entry in enumerate(request.distributions):
        if not entry.recipient:
            errors.append({"field": f"distributions.{index}.recipient", "message": "Recipient is required"})
        elif not is_valid_address(entry.recipient):
            errors.append(
                {
                    "field": f"distributions.{index}.recipient",
                    "message": f"Invalid recipient address: {entry.recipient}",
                }
            )
        if entry.amount <= 0:
            errors.append(
                {"field": f"distributions.{index}.amount", "message": "Amount must be greater than 0"}
            )

    if errors:
        raise ValidationError(errors[0]["message"], errors=errors)


class DistributionEngine:
    def __init__(
        self,
        ledger: LedgerService,
        locks: KeyedLock,
        sender_name: str = "System",
    ) -> None:
        self._ledger = ledger
        self._locks = locks
        self._sender_name = sender_name

    async def distribute(self, db: AsyncSession, request: DistributeRequest) -> DistributionResult:
        validate_distribution(request)

        mint = request.share_token_mint
        sender = self._ledger.owner_address
        total_requested = sum(entry.amount for entry in request.distributions)

        async with self._locks.hold((mint, sender)):
            before = await self._ledger.get_token_balance(mint)
            if before is None:
                raise InsufficientBalanceError(
                    0, total_requested, "Sender does not have any shares of this token"
                )
            if total_requested > before:
                raise InsufficientBalanceError(before, total_requested)

            token = (
                await db.execute(select(FractionalToken).where(FractionalToken.share_token_mint == mint))
            ).scalar_one_or_none()
            # Plain values: a rollback in _record() expires ORM instances
            token_name = token.token_name if token else UNKNOWN_TOKEN_NAME
            token_symbol = token.token_symbol if token else UNKNOWN_TOKEN_SYMBOL

            logger.info(
                "distribution.started",
                share_token_mint=mint,
                recipients=len(request.distributions),
                total_requested=total_requested,
                sender_balance=before,
            )
            started_at = datetime.now(timezone.utc)

            outcomes: list[DistributionOutcome] = []
            for entry in request.distributions:
                outcomes.append(
                    await self._transfer_one(db, mint, sender, token_name, token_symbol, entry)
                )

            successes = [o for o in outcomes if isinstance(o, DistributionSuccess)]
            total_distributed = sum(o.amount for o in successes)
            after = await self._requery_balance(mint, before - total_distributed)

        logger.info(
            "distribution.completed",
            share_token_mint=mint,
            success_count=len(successes),
            failed_count=len(outcomes) - len(successes),
            total_distributed=total_distributed,
        )
        return DistributionResult(
            share_token_mint=mint,
            token_name=token_name,
            token_symbol=token_symbol,
            total_requested=total_requested,
            total_distributed=total_distributed,
            recipient_count=len(outcomes),
            success_count=len(successes),
            failed_count=len(outcomes) - len(successes),
            distributions=outcomes,
            explorer_links=[o.explorer_link for o in successes],
            sender_balance=SenderBalance(before=str(before), after=str(after)),
            transferred_by=sender,
            transferred_at=started_at,
        )

    async def _transfer_one(
        self,
        db: AsyncSession,
        mint: str,
        sender: str,
        token_name: str,
        token_symbol: str,
        entry: DistributionEntry,
    ) -> DistributionOutcome:
        try:
            signature = await self._ledger.transfer(mint, entry.recipient, entry.amount)
        except LedgerError as exc:
            logger.warning(
                "distribution.transfer_failed",
                share_token_mint=mint,
                recipient=entry.recipient,
                amount=entry.amount,
                error=exc.message,
            )
            return DistributionFailure(
                recipient=entry.recipient,
                recipient_name=entry.recipient_name,
                recipient_id=entry.recipient_id,
                amount=entry.amount,
                error=exc.message,
            )

        explorer_link = self._ledger.explorer_tx_url(signature)
        logger.info(
            "distribution.transferred",
            share_token_mint=mint,
            recipient=entry.recipient,
            amount=entry.amount,
            signature=signature,
        )
        await self._record(
            db,
            ShareTransfer(
                signature=signature,
                share_token_mint=mint,
                token_name=token_name,
                token_symbol=token_symbol,
                from_address=sender,
                from_name=self._sender_name,
                to_address=entry.recipient,
                to_name=entry.recipient_name,
                to_id=entry.recipient_id,
                amount=str(entry.amount),
                explorer_link=explorer_link,
                note=entry.note,
                transferred_at=datetime.now(timezone.utc),
            ),
        )
        return DistributionSuccess(
            recipient=entry.recipient,
            recipient_name=entry.recipient_name,
            recipient_id=entry.recipient_id,
            amount=entry.amount,
            signature=signature,
            explorer_link=explorer_link,
        )

    async def _record(self, db: AsyncSession, transfer: ShareTransfer) -> None:
        """Persist one successful transfer. The ledger already committed it."""
        signature = transfer.signature
        db.add(transfer)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            error = PersistenceError(
                "Transfer succeeded on-chain but was not recorded",
                data={"signature": signature},
            )
            logger.error(
                "distribution.reconciliation_required",
                signature=signature,
                error=str(exc),
            )
            sentry_sdk.capture_exception(error)

    async def _requery_balance(self, mint: str, expected: int) -> int:
        try:
            after = await self._ledger.get_token_balance(mint)
        except LedgerError:
            logger.warning("distribution.balance_requery_failed", share_token_mint=mint, expected=expected)
            return expected
        return after if after is not None else 0
