"""Atomic, auditable points accounting.

Every change to ``users.points_balance`` goes through :class:`PointsLedger`.
Each mutation is a conditional ``UPDATE`` whose row count decides success,
executed in the same transaction that appends the matching
``points_transactions`` row, so concurrent requests can never overdraw an
account or leave a balance without its audit record.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import Database
from backend.app.core.errors import InvalidRequest, NotFound
from backend.app.db.models import DbPointsTransaction, DbUser, TransactionType

logger = logging.getLogger(__name__)

MONTHLY_ALLOCATION_DESCRIPTION = "Monthly points allocation"


@dataclass(frozen=True)
class Balance:
    balance: int
    monthly_allocation: int


@dataclass(frozen=True)
class LedgerResult:
    new_balance: int
    amount: int


@dataclass(frozen=True)
class TransferResult:
    sender_new_balance: int
    recipient_new_balance: int
    amount: int


@dataclass(frozen=True)
class PointsTransaction:
    id: str
    user_id: str
    type: str
    amount: int
    description: str
    related_id: str | None
    created_at: datetime


@dataclass(frozen=True)
class AllocationSetting:
    user_id: str
    first_name: str
    last_name: str
    monthly_allocation: int


@dataclass(frozen=True)
class TypeStatistics:
    type: str
    total_amount: int
    count: int


@dataclass(frozen=True)
class PointsStatistics:
    total_points_in_system: int
    total_transactions: int
    monthly_stats: list[TypeStatistics]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_of_month(now: datetime | None = None) -> datetime:
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class PointsLedger:
    """Service layer that owns all balance mutations."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # Reads
    def get_balance(self, user_id: str) -> Balance:
        with self.db.session() as session:
            row = session.execute(
                select(DbUser.points_balance, DbUser.monthly_points_allocation)
                .where(DbUser.id == user_id, DbUser.is_active.is_(True))
                .limit(1)
            ).first()
            if row is None:
                raise NotFound("User not found")
            return Balance(balance=int(row[0]), monthly_allocation=int(row[1]))

    def get_history(self, user_id: str, limit: int | None = None) -> list[PointsTransaction]:
        resolved_limit = limit if limit is not None else settings.history_default_limit
        resolved_limit = max(1, min(int(resolved_limit), settings.history_max_limit))
        with self.db.session() as session:
            rows = session.scalars(
                select(DbPointsTransaction)
                .where(DbPointsTransaction.user_id == user_id)
                .order_by(DbPointsTransaction.created_at.desc())
                .limit(resolved_limit)
            ).all()
            return [_transaction_from_db(row) for row in rows]

    # Mutations, each in its own transaction
    def credit(
        self,
        user_id: str,
        amount: int,
        description: str,
        *,
        type: TransactionType = TransactionType.EARNED,
        related_id: str | None = None,
    ) -> LedgerResult:
        with self.db.session() as session:
            return self.credit_in_session(
                session, user_id, amount, description, type=type, related_id=related_id
            )

    def debit(
        self,
        user_id: str,
        amount: int,
        description: str,
        *,
        related_id: str | None = None,
    ) -> LedgerResult:
        with self.db.session() as session:
            return self.debit_in_session(session, user_id, amount, description, related_id=related_id)

    def transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        description: str,
        *,
        related_id: str | None = None,
    ) -> TransferResult:
        with self.db.session() as session:
            return self.transfer_in_session(
                session, from_user_id, to_user_id, amount, description, related_id=related_id
            )

    # Mutations composable into a caller's transaction
    def credit_in_session(
        self,
        session: Session,
        user_id: str,
        amount: int,
        description: str,
        *,
        type: TransactionType = TransactionType.EARNED,
        related_id: str | None = None,
    ) -> LedgerResult:
        _validate_amount(amount)
        if type == TransactionType.SPENT:
            raise InvalidRequest("Invalid transaction type for a credit")
        now = utcnow()
        if not _apply_delta(session, user_id, amount, now):
            raise InvalidRequest("User not found")
        _record(session, user_id, type, amount, description, related_id, now)
        new_balance = _read_balance(session, user_id)
        logger.debug(
            "Points credited",
            extra={"data": {"user_id": user_id, "amount": amount, "type": str(type), "related_id": related_id}},
        )
        return LedgerResult(new_balance=new_balance, amount=amount)

    def debit_in_session(
        self,
        session: Session,
        user_id: str,
        amount: int,
        description: str,
        *,
        related_id: str | None = None,
    ) -> LedgerResult:
        _validate_amount(amount)
        now = utcnow()
        if not _apply_delta(session, user_id, -amount, now):
            if _load_active_user(session, user_id) is None:
                raise InvalidRequest("User not found")
            raise InvalidRequest("Insufficient points balance")
        _record(session, user_id, TransactionType.SPENT, -amount, description, related_id, now)
        new_balance = _read_balance(session, user_id)
        logger.debug(
            "Points debited",
            extra={"data": {"user_id": user_id, "amount": amount, "related_id": related_id}},
        )
        return LedgerResult(new_balance=new_balance, amount=amount)

    def transfer_in_session(
        self,
        session: Session,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        description: str,
        *,
        related_id: str | None = None,
    ) -> TransferResult:
        _validate_amount(amount)
        if from_user_id == to_user_id:
            raise InvalidRequest("Cannot transfer points to yourself")

        # Lock both rows in a stable order so opposing transfers cannot deadlock.
        locked = {
            user.id: user
            for user in session.scalars(
                select(DbUser)
                .where(DbUser.id.in_([from_user_id, to_user_id]), DbUser.is_active.is_(True))
                .order_by(DbUser.id)
                .with_for_update()
            ).all()
        }
        sender = locked.get(from_user_id)
        if sender is None:
            raise InvalidRequest("Sender not found")
        recipient = locked.get(to_user_id)
        if recipient is None:
            raise InvalidRequest("Recipient not found")

        now = utcnow()
        if not _apply_delta(session, from_user_id, -amount, now):
            raise InvalidRequest("Insufficient points balance")
        if not _apply_delta(session, to_user_id, amount, now):
            raise InvalidRequest("Recipient not found")

        _record(
            session,
            from_user_id,
            TransactionType.SPENT,
            -amount,
            f"Sent to {recipient.display_name}: {description}",
            related_id,
            now,
        )
        _record(
            session,
            to_user_id,
            TransactionType.EARNED,
            amount,
            f"Received from {sender.display_name}: {description}",
            related_id,
            now,
        )
        logger.debug(
            "Points transferred",
            extra={"data": {"from": from_user_id, "to": to_user_id, "amount": amount, "related_id": related_id}},
        )
        return TransferResult(
            sender_new_balance=_read_balance(session, from_user_id),
            recipient_new_balance=_read_balance(session, to_user_id),
            amount=amount,
        )

    # Allocation settings
    def update_monthly_allocation(self, user_id: str, allocation: int) -> AllocationSetting:
        if allocation < 0:
            raise InvalidRequest("Monthly allocation must be non-negative")
        with self.db.session() as session:
            user = session.get(DbUser, user_id)
            if user is None:
                raise NotFound("User not found")
            user.monthly_points_allocation = allocation
            user.updated_at = utcnow()
            return AllocationSetting(
                user_id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                monthly_allocation=allocation,
            )

    def list_allocation_targets(self) -> list[tuple[str, int]]:
        with self.db.session() as session:
            rows = session.execute(
                select(DbUser.id, DbUser.monthly_points_allocation)
                .where(DbUser.is_active.is_(True))
                .order_by(DbUser.id)
            ).all()
            return [(row[0], int(row[1])) for row in rows]

    def get_statistics(self) -> PointsStatistics:
        with self.db.session() as session:
            total_points = session.scalar(
                select(func.coalesce(func.sum(DbUser.points_balance), 0)).where(DbUser.is_active.is_(True))
            )
            total_transactions = session.scalar(select(func.count()).select_from(DbPointsTransaction))
            grouped = session.execute(
                select(
                    DbPointsTransaction.type,
                    func.coalesce(func.sum(DbPointsTransaction.amount), 0),
                    func.count(DbPointsTransaction.id),
                )
                .where(DbPointsTransaction.created_at >= start_of_month())
                .group_by(DbPointsTransaction.type)
                .order_by(DbPointsTransaction.type)
            ).all()
            return PointsStatistics(
                total_points_in_system=int(total_points or 0),
                total_transactions=int(total_transactions or 0),
                monthly_stats=[
                    TypeStatistics(type=row[0], total_amount=int(row[1]), count=int(row[2]))
                    for row in grouped
                ],
            )


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidRequest("Points amount must be an integer")
    if amount <= 0:
        raise InvalidRequest("Points amount must be positive")


def _apply_delta(session: Session, user_id: str, delta: int, now: datetime) -> bool:
    """Add ``delta`` to an active user's balance unless it would go negative."""
    conditions = [DbUser.id == user_id, DbUser.is_active.is_(True)]
    if delta < 0:
        conditions.append(DbUser.points_balance >= -delta)
    result = session.execute(
        update(DbUser)
        .where(*conditions)
        .values(points_balance=DbUser.points_balance + delta, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1


def _record(
    session: Session,
    user_id: str,
    type: TransactionType,
    amount: int,
    description: str,
    related_id: str | None,
    now: datetime,
) -> None:
    session.add(
        DbPointsTransaction(
            id=uuid.uuid4().hex,
            user_id=user_id,
            type=type.value,
            amount=amount,
            description=description,
            related_id=related_id,
            created_at=now,
        )
    )


def _read_balance(session: Session, user_id: str) -> int:
    balance = session.scalar(select(DbUser.points_balance).where(DbUser.id == user_id).limit(1))
    return int(balance or 0)


def _load_active_user(session: Session, user_id: str) -> DbUser | None:
    return session.scalar(
        select(DbUser).where(DbUser.id == user_id, DbUser.is_active.is_(True)).limit(1)
    )


def _transaction_from_db(row: DbPointsTransaction) -> PointsTransaction:
    return PointsTransaction(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        amount=row.amount,
        description=row.description,
        related_id=row.related_id,
        created_at=row.created_at,
    )
