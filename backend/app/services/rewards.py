"""Reward catalog and redemption lifecycle.

Stock and balance move together: a redemption debits the ledger and takes one
unit of stock in a single transaction, and cancelling a PENDING redemption
refunds the points and returns the unit, also in a single transaction.
``stock_quantity`` of ``None`` means unlimited and is never written.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.database import Database
from backend.app.core.errors import InvalidRequest, NotFound
from backend.app.db.models import (
    DbReward,
    DbRewardRedemption,
    DbUser,
    RedemptionStatus,
    TransactionType,
)
from backend.app.services.points import PointsLedger, utcnow

logger = logging.getLogger(__name__)

REDEMPTION_CODE_LENGTH = 8
REDEMPTION_CODE_ATTEMPTS = 5

TITLE_MAX_CHARS = 100
DESCRIPTION_MAX_CHARS = 500
CATEGORY_MAX_CHARS = 50

_UPDATABLE_FIELDS = {"title", "description", "points_cost", "category", "image_url", "is_active", "stock_quantity"}


@dataclass
class Reward:
    id: str
    title: str
    description: str
    points_cost: int
    category: str
    image_url: str | None
    is_active: bool
    stock_quantity: int | None
    created_at: datetime
    updated_at: datetime


@dataclass
class RedemptionUser:
    id: str
    first_name: str
    last_name: str
    email: str
    department: str | None


@dataclass
class Redemption:
    id: str
    user_id: str
    reward_id: str
    points_spent: int
    status: str
    redemption_code: str
    created_at: datetime
    updated_at: datetime
    user: RedemptionUser | None = None
    reward: Reward | None = None


@dataclass(frozen=True)
class RewardStatistics:
    total_rewards: int
    active_rewards: int
    total_redemptions: int
    pending_redemptions: int
    category_stats: list[dict[str, Any]]
    redemption_stats: list[dict[str, Any]]


def new_redemption_code() -> str:
    return uuid.uuid4().hex[:REDEMPTION_CODE_LENGTH].upper()


class RewardStore:
    def __init__(self, db: Database, ledger: PointsLedger | None = None) -> None:
        self.db = db
        self.ledger = ledger or PointsLedger(db)

    # Catalog
    def create_reward(
        self,
        *,
        title: str,
        description: str,
        points_cost: int,
        category: str,
        image_url: str | None = None,
        is_active: bool = True,
        stock_quantity: int | None = None,
    ) -> Reward:
        fields = _validate_reward_fields(
            {
                "title": title,
                "description": description,
                "points_cost": points_cost,
                "category": category,
                "image_url": image_url,
                "is_active": is_active,
                "stock_quantity": stock_quantity,
            }
        )
        now = utcnow()
        row = DbReward(id=uuid.uuid4().hex, created_at=now, updated_at=now, **fields)
        with self.db.session() as session:
            session.add(row)
            session.flush()
            return _reward_from_db(row)

    def list_rewards(self, active_only: bool = True) -> list[Reward]:
        stmt = select(DbReward).order_by(DbReward.category.asc(), DbReward.points_cost.asc())
        if active_only:
            stmt = stmt.where(DbReward.is_active.is_(True))
        with self.db.session() as session:
            return [_reward_from_db(row) for row in session.scalars(stmt).all()]

    def get_reward(self, reward_id: str) -> Reward:
        with self.db.session() as session:
            return _reward_from_db(_get_reward(session, reward_id))

    def update_reward(self, reward_id: str, **changes: Any) -> Reward:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidRequest(f"Unknown reward fields: {', '.join(sorted(unknown))}")
        fields = _validate_reward_fields(changes)
        with self.db.session() as session:
            row = _get_reward(session, reward_id, for_update=True)
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.flush()
            return _reward_from_db(row)

    def delete_reward(self, reward_id: str) -> None:
        with self.db.session() as session:
            row = _get_reward(session, reward_id, for_update=True)
            pending = session.scalar(
                select(func.count())
                .select_from(DbRewardRedemption)
                .where(
                    DbRewardRedemption.reward_id == reward_id,
                    DbRewardRedemption.status == RedemptionStatus.PENDING.value,
                )
            )
            if int(pending or 0) > 0:
                raise InvalidRequest("Cannot delete reward with pending redemptions")
            session.delete(row)
        logger.info("Reward deleted", extra={"data": {"reward_id": reward_id}})

    # Redemptions
    def redeem(self, user_id: str, reward_id: str) -> Redemption:
        with self.db.session() as session:
            reward = _get_reward(session, reward_id, for_update=True)
            if not reward.is_active:
                raise InvalidRequest("Reward is not active")
            if reward.stock_quantity is not None and reward.stock_quantity <= 0:
                raise InvalidRequest("Reward is out of stock")

            self.ledger.debit_in_session(
                session,
                user_id,
                reward.points_cost,
                f"Redeemed reward: {reward.title}",
                related_id=reward_id,
            )

            if reward.stock_quantity is not None:
                result = session.execute(
                    update(DbReward)
                    .where(DbReward.id == reward_id, DbReward.stock_quantity > 0)
                    .values(stock_quantity=DbReward.stock_quantity - 1, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if int(result.rowcount or 0) != 1:
                    raise InvalidRequest("Reward is out of stock")
                session.refresh(reward)

            redemption = _insert_redemption(session, user_id=user_id, reward=reward)
            logger.info(
                "Reward redeemed",
                extra={
                    "data": {
                        "redemption_id": redemption.id,
                        "user_id": user_id,
                        "reward_id": reward_id,
                        "points_spent": redemption.points_spent,
                    }
                },
            )
            return _redemption_detail(session, redemption)

    def set_redemption_status(self, redemption_id: str, status: str) -> Redemption:
        try:
            new_status = RedemptionStatus(status)
        except ValueError as exc:
            raise InvalidRequest(f"Invalid redemption status: {status}") from exc

        with self.db.session() as session:
            redemption = session.scalar(
                select(DbRewardRedemption)
                .where(DbRewardRedemption.id == redemption_id)
                .with_for_update()
            )
            if redemption is None:
                raise NotFound("Redemption not found")
            previous = RedemptionStatus(redemption.status)

            # CANCELLED is terminal: leaving it would let a second cancel refund again.
            if previous == RedemptionStatus.CANCELLED and new_status != RedemptionStatus.CANCELLED:
                raise InvalidRequest("Cancelled redemptions cannot change status")

            now = utcnow()
            refunded = False
            if new_status == RedemptionStatus.CANCELLED:
                result = session.execute(
                    update(DbRewardRedemption)
                    .where(
                        DbRewardRedemption.id == redemption_id,
                        DbRewardRedemption.status == RedemptionStatus.PENDING.value,
                    )
                    .values(status=new_status.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                refunded = int(result.rowcount or 0) == 1

            if refunded:
                reward = session.get(DbReward, redemption.reward_id)
                title = reward.title if reward is not None else redemption.reward_id
                self.ledger.credit_in_session(
                    session,
                    redemption.user_id,
                    redemption.points_spent,
                    f"Refund for cancelled redemption: {title}",
                    type=TransactionType.EARNED,
                    related_id=redemption_id,
                )
                if reward is not None and reward.stock_quantity is not None:
                    session.execute(
                        update(DbReward)
                        .where(DbReward.id == reward.id, DbReward.stock_quantity.is_not(None))
                        .values(stock_quantity=DbReward.stock_quantity + 1, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
            elif new_status != RedemptionStatus.CANCELLED:
                result = session.execute(
                    update(DbRewardRedemption)
                    .where(
                        DbRewardRedemption.id == redemption_id,
                        DbRewardRedemption.status != RedemptionStatus.CANCELLED.value,
                    )
                    .values(status=new_status.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if int(result.rowcount or 0) != 1:
                    raise InvalidRequest("Cancelled redemptions cannot change status")
            elif previous != RedemptionStatus.CANCELLED:
                session.execute(
                    update(DbRewardRedemption)
                    .where(DbRewardRedemption.id == redemption_id)
                    .values(status=new_status.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )

            session.expire_all()
            row = session.get(DbRewardRedemption, redemption_id)
            logger.info(
                "Redemption status changed",
                extra={
                    "data": {
                        "redemption_id": redemption_id,
                        "from": previous.value,
                        "to": new_status.value,
                        "refunded": refunded,
                    }
                },
            )
            return _redemption_detail(session, row)

    def get_redemption(self, redemption_id: str) -> Redemption:
        with self.db.session() as session:
            row = session.get(DbRewardRedemption, redemption_id)
            if row is None:
                raise NotFound("Redemption not found")
            return _redemption_detail(session, row)

    def list_user_redemptions(self, user_id: str) -> list[Redemption]:
        with self.db.session() as session:
            rows = session.scalars(
                select(DbRewardRedemption)
                .where(DbRewardRedemption.user_id == user_id)
                .order_by(DbRewardRedemption.created_at.desc())
            ).all()
            return [_redemption_detail(session, row, include_user=False) for row in rows]

    def list_redemptions(self) -> list[Redemption]:
        with self.db.session() as session:
            rows = session.scalars(
                select(DbRewardRedemption).order_by(DbRewardRedemption.created_at.desc())
            ).all()
            return [_redemption_detail(session, row) for row in rows]

    def get_statistics(self) -> RewardStatistics:
        with self.db.session() as session:
            total_rewards = session.scalar(select(func.count()).select_from(DbReward))
            active_rewards = session.scalar(
                select(func.count()).select_from(DbReward).where(DbReward.is_active.is_(True))
            )
            total_redemptions = session.scalar(select(func.count()).select_from(DbRewardRedemption))
            pending_redemptions = session.scalar(
                select(func.count())
                .select_from(DbRewardRedemption)
                .where(DbRewardRedemption.status == RedemptionStatus.PENDING.value)
            )
            categories = session.execute(
                select(DbReward.category, func.count(DbReward.id))
                .where(DbReward.is_active.is_(True))
                .group_by(DbReward.category)
                .order_by(DbReward.category)
            ).all()
            statuses = session.execute(
                select(
                    DbRewardRedemption.status,
                    func.count(DbRewardRedemption.id),
                    func.coalesce(func.sum(DbRewardRedemption.points_spent), 0),
                )
                .group_by(DbRewardRedemption.status)
                .order_by(DbRewardRedemption.status)
            ).all()
            return RewardStatistics(
                total_rewards=int(total_rewards or 0),
                active_rewards=int(active_rewards or 0),
                total_redemptions=int(total_redemptions or 0),
                pending_redemptions=int(pending_redemptions or 0),
                category_stats=[{"category": row[0], "count": int(row[1])} for row in categories],
                redemption_stats=[
                    {"status": row[0], "count": int(row[1]), "points_spent": int(row[2])}
                    for row in statuses
                ],
            )


def _validate_reward_fields(fields: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, limit in (("title", TITLE_MAX_CHARS), ("description", DESCRIPTION_MAX_CHARS), ("category", CATEGORY_MAX_CHARS)):
        if key not in fields:
            continue
        value = (fields[key] or "").strip()
        if not value:
            raise InvalidRequest(f"Reward {key} is required")
        if len(value) > limit:
            raise InvalidRequest(f"Reward {key} must be at most {limit} characters")
        cleaned[key] = value
    if "points_cost" in fields:
        cost = fields["points_cost"]
        if isinstance(cost, bool) or not isinstance(cost, int) or cost < 1:
            raise InvalidRequest("Reward points cost must be a positive integer")
        cleaned["points_cost"] = cost
    if "stock_quantity" in fields:
        stock = fields["stock_quantity"]
        if stock is not None and (isinstance(stock, bool) or not isinstance(stock, int) or stock < 0):
            raise InvalidRequest("Reward stock quantity must be a non-negative integer")
        cleaned["stock_quantity"] = stock
    if "is_active" in fields:
        cleaned["is_active"] = bool(fields["is_active"])
    if "image_url" in fields:
        cleaned["image_url"] = fields["image_url"] or None
    return cleaned


def _get_reward(session: Session, reward_id: str, *, for_update: bool = False) -> DbReward:
    stmt = select(DbReward).where(DbReward.id == reward_id).limit(1)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.scalar(stmt)
    if row is None:
        raise NotFound("Reward not found")
    return row


def _insert_redemption(session: Session, *, user_id: str, reward: DbReward) -> DbRewardRedemption:
    now = utcnow()
    for _ in range(REDEMPTION_CODE_ATTEMPTS):
        row = DbRewardRedemption(
            id=uuid.uuid4().hex,
            user_id=user_id,
            reward_id=reward.id,
            points_spent=reward.points_cost,
            status=RedemptionStatus.PENDING.value,
            redemption_code=new_redemption_code(),
            created_at=now,
            updated_at=now,
        )
        try:
            with session.begin_nested():
                session.add(row)
        except IntegrityError:
            logger.warning("Redemption code collision, retrying", extra={"data": {"reward_id": reward.id}})
            continue
        return row
    raise RuntimeError("Could not allocate a unique redemption code")


def _reward_from_db(row: DbReward) -> Reward:
    return Reward(
        id=row.id,
        title=row.title,
        description=row.description,
        points_cost=row.points_cost,
        category=row.category,
        image_url=row.image_url,
        is_active=row.is_active,
        stock_quantity=row.stock_quantity,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _redemption_detail(
    session: Session, row: DbRewardRedemption, *, include_user: bool = True
) -> Redemption:
    user = session.get(DbUser, row.user_id) if include_user else None
    reward = session.get(DbReward, row.reward_id)
    return Redemption(
        id=row.id,
        user_id=row.user_id,
        reward_id=row.reward_id,
        points_spent=row.points_spent,
        status=row.status,
        redemption_code=row.redemption_code,
        created_at=row.created_at,
        updated_at=row.updated_at,
        user=(
            RedemptionUser(
                id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
                department=user.department,
            )
            if user is not None
            else None
        ),
        reward=_reward_from_db(reward) if reward is not None else None,
    )
