"""Peer recognitions: a message plus a point transfer, created all-or-nothing."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import Database
from backend.app.core.errors import InvalidRequest, NotFound, Unauthorized
from backend.app.db.models import DbRecognition, DbUser
from backend.app.services.points import PointsLedger, start_of_month, utcnow

logger = logging.getLogger(__name__)

RecognitionScope = Literal["sent", "received", "all"]

TOP_USERS_LIMIT = 5


@dataclass
class Participant:
    id: str
    first_name: str
    last_name: str
    department: str | None


@dataclass
class Recognition:
    id: str
    sender_id: str
    recipient_id: str
    message: str
    points_amount: int
    is_private: bool
    created_at: datetime
    updated_at: datetime
    sender: Participant | None = None
    recipient: Participant | None = None


@dataclass
class RecognitionPage:
    recognitions: list[Recognition]
    total_count: int
    has_more: bool


@dataclass(frozen=True)
class RecognitionStatistics:
    total_recognitions: int
    this_month_recognitions: int
    top_recognizers: list[dict[str, Any]]
    top_recipients: list[dict[str, Any]]


class RecognitionStore:
    def __init__(self, db: Database, ledger: PointsLedger | None = None) -> None:
        self.db = db
        self.ledger = ledger or PointsLedger(db)

    def create(
        self,
        sender_id: str,
        recipient_id: str,
        message: str,
        points_amount: int,
        is_private: bool = False,
    ) -> Recognition:
        if sender_id == recipient_id:
            raise InvalidRequest("Cannot send recognition to yourself")
        if isinstance(points_amount, bool) or not isinstance(points_amount, int) or points_amount <= 0:
            raise InvalidRequest("Points amount must be positive")
        if points_amount > settings.recognition_max_points:
            raise InvalidRequest(
                f"Points amount cannot exceed {settings.recognition_max_points}"
            )
        message = (message or "").strip()
        if not message:
            raise InvalidRequest("Message is required")
        if len(message) > settings.recognition_message_max_chars:
            raise InvalidRequest(
                f"Message must be at most {settings.recognition_message_max_chars} characters"
            )

        with self.db.session() as session:
            recipient = session.scalar(
                select(DbUser).where(DbUser.id == recipient_id, DbUser.is_active.is_(True)).limit(1)
            )
            if recipient is None:
                raise InvalidRequest("Recipient not found")

            now = utcnow()
            row = DbRecognition(
                id=uuid.uuid4().hex,
                sender_id=sender_id,
                recipient_id=recipient_id,
                message=message,
                points_amount=points_amount,
                is_private=bool(is_private),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            # Any failure in the transfer rolls the recognition row back with it.
            self.ledger.transfer_in_session(
                session,
                sender_id,
                recipient_id,
                points_amount,
                f"Recognition: {message}",
                related_id=row.id,
            )
            session.flush()
            logger.info(
                "Recognition created",
                extra={
                    "data": {
                        "recognition_id": row.id,
                        "sender_id": sender_id,
                        "recipient_id": recipient_id,
                        "points": points_amount,
                    }
                },
            )
            return _recognition_detail(session, row)

    def feed(self, limit: int = 20, offset: int = 0) -> RecognitionPage:
        stmt = select(DbRecognition).where(DbRecognition.is_private.is_(False))
        return self._page(stmt, limit, offset)

    def for_user(
        self,
        user_id: str,
        kind: RecognitionScope = "all",
        limit: int = 20,
        offset: int = 0,
        include_private: bool = True,
    ) -> RecognitionPage:
        stmt = select(DbRecognition).where(_scope_clause(user_id, kind))
        if not include_private:
            stmt = stmt.where(DbRecognition.is_private.is_(False))
        return self._page(stmt, limit, offset)

    def get(self, recognition_id: str, viewer_id: str) -> Recognition:
        with self.db.session() as session:
            row = session.get(DbRecognition, recognition_id)
            if row is None:
                raise NotFound("Recognition not found")
            if row.is_private and viewer_id not in (row.sender_id, row.recipient_id):
                raise NotFound("Recognition not found")
            return _recognition_detail(session, row)

    def update_privacy(self, recognition_id: str, sender_id: str, is_private: bool) -> Recognition:
        with self.db.session() as session:
            row = _owned_recognition(session, recognition_id, sender_id, action="update")
            row.is_private = bool(is_private)
            row.updated_at = utcnow()
            session.flush()
            return _recognition_detail(session, row)

    def delete(self, recognition_id: str, sender_id: str) -> None:
        """Delete a recognition and return its points to the sender."""
        with self.db.session() as session:
            row = _owned_recognition(session, recognition_id, sender_id, action="delete")
            try:
                self.ledger.transfer_in_session(
                    session,
                    row.recipient_id,
                    row.sender_id,
                    row.points_amount,
                    f"Recognition withdrawn: {row.message}",
                    related_id=row.id,
                )
            except InvalidRequest as exc:
                # The reversal runs recipient -> sender, so the ledger's party names are swapped.
                reversed_messages = {
                    "Insufficient points balance": (
                        "Recipient no longer holds the recognized points; recognition cannot be deleted"
                    ),
                    "Sender not found": "Recipient not found",
                    "Recipient not found": "Sender not found",
                }
                if exc.message in reversed_messages:
                    raise InvalidRequest(reversed_messages[exc.message]) from exc
                raise
            session.delete(row)
        logger.info(
            "Recognition deleted",
            extra={"data": {"recognition_id": recognition_id, "sender_id": sender_id}},
        )

    def get_statistics(self, user_id: str | None = None) -> RecognitionStatistics:
        scope = _scope_clause(user_id, "all") if user_id else None
        with self.db.session() as session:
            total_stmt = select(func.count()).select_from(DbRecognition)
            month_stmt = (
                select(func.count())
                .select_from(DbRecognition)
                .where(DbRecognition.created_at >= start_of_month())
            )
            if scope is not None:
                total_stmt = total_stmt.where(scope)
                month_stmt = month_stmt.where(scope)
            return RecognitionStatistics(
                total_recognitions=int(session.scalar(total_stmt) or 0),
                this_month_recognitions=int(session.scalar(month_stmt) or 0),
                top_recognizers=_top_users(session, DbRecognition.sender_id, "sender_id"),
                top_recipients=_top_users(session, DbRecognition.recipient_id, "recipient_id"),
            )

    def _page(self, stmt: Select, limit: int, offset: int) -> RecognitionPage:
        limit = max(1, min(int(limit), settings.history_max_limit))
        offset = max(0, int(offset))
        with self.db.session() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery()))
            rows = session.scalars(
                stmt.order_by(DbRecognition.created_at.desc()).offset(offset).limit(limit)
            ).all()
            total_count = int(total or 0)
            return RecognitionPage(
                recognitions=[_recognition_detail(session, row) for row in rows],
                total_count=total_count,
                has_more=offset + limit < total_count,
            )


def _scope_clause(user_id: str, kind: RecognitionScope):
    if kind == "sent":
        return DbRecognition.sender_id == user_id
    if kind == "received":
        return DbRecognition.recipient_id == user_id
    if kind == "all":
        return or_(DbRecognition.sender_id == user_id, DbRecognition.recipient_id == user_id)
    raise InvalidRequest(f"Invalid recognition scope: {kind}")


def _owned_recognition(session: Session, recognition_id: str, sender_id: str, *, action: str) -> DbRecognition:
    row = session.get(DbRecognition, recognition_id)
    if row is None:
        raise NotFound("Recognition not found")
    if row.sender_id != sender_id:
        raise Unauthorized(f"You can only {action} your own recognitions")
    return row


def _top_users(session: Session, column, key: str) -> list[dict[str, Any]]:
    count = func.count(DbRecognition.id)
    rows = session.execute(
        select(column, count, func.coalesce(func.sum(DbRecognition.points_amount), 0))
        .group_by(column)
        .order_by(count.desc(), column)
        .limit(TOP_USERS_LIMIT)
    ).all()
    return [{key: row[0], "count": int(row[1]), "points": int(row[2])} for row in rows]


def _participant(session: Session, user_id: str) -> Participant | None:
    user = session.get(DbUser, user_id)
    if user is None:
        return None
    return Participant(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        department=user.department,
    )


def _recognition_detail(session: Session, row: DbRecognition) -> Recognition:
    return Recognition(
        id=row.id,
        sender_id=row.sender_id,
        recipient_id=row.recipient_id,
        message=row.message,
        points_amount=row.points_amount,
        is_private=row.is_private,
        created_at=row.created_at,
        updated_at=row.updated_at,
        sender=_participant(session, row.sender_id),
        recipient=_participant(session, row.recipient_id),
    )
