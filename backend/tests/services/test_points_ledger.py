from __future__ import annotations

import threading

import pytest
from sqlalchemy import func, select

from backend.app.core.database import Database
from backend.app.core.errors import InvalidRequest, NotFound
from backend.app.db.models import DbPointsTransaction, DbUser, TransactionType
from backend.app.services.points import PointsLedger


def _transactions(db: Database, user_id: str) -> list[DbPointsTransaction]:
    with db.session() as session:
        return list(
            session.scalars(
                select(DbPointsTransaction)
                .where(DbPointsTransaction.user_id == user_id)
                .order_by(DbPointsTransaction.created_at)
            ).all()
        )


def _total_balance(db: Database) -> int:
    with db.session() as session:
        return int(session.scalar(select(func.sum(DbUser.points_balance))) or 0)


def test_credit_increases_balance_and_logs_transaction(db: Database, ledger: PointsLedger, make_user) -> None:
    user = make_user()

    result = ledger.credit(user.id, 250, "Spot bonus", related_id="bonus-1")

    assert result.new_balance == 250
    assert result.amount == 250
    assert ledger.get_balance(user.id).balance == 250

    txs = _transactions(db, user.id)
    assert len(txs) == 1
    assert txs[0].type == TransactionType.EARNED.value
    assert txs[0].amount == 250
    assert txs[0].description == "Spot bonus"
    assert txs[0].related_id == "bonus-1"


def test_credit_rejects_spent_type(ledger: PointsLedger, make_user) -> None:
    user = make_user()
    with pytest.raises(InvalidRequest):
        ledger.credit(user.id, 10, "Wrong", type=TransactionType.SPENT)


def test_credit_unknown_user_fails_without_side_effects(db: Database, ledger: PointsLedger) -> None:
    with pytest.raises(InvalidRequest, match="User not found"):
        ledger.credit("missing-user", 10, "Ghost")
    with db.session() as session:
        assert session.scalar(select(func.count()).select_from(DbPointsTransaction)) == 0


@pytest.mark.parametrize("amount", [0, -5, True, 1.5, "10"])
def test_mutations_reject_invalid_amounts(ledger: PointsLedger, make_user, amount) -> None:
    sender = make_user(balance=100)
    recipient = make_user()

    with pytest.raises(InvalidRequest):
        ledger.credit(sender.id, amount, "x")
    with pytest.raises(InvalidRequest):
        ledger.debit(sender.id, amount, "x")
    with pytest.raises(InvalidRequest):
        ledger.transfer(sender.id, recipient.id, amount, "x")

    assert ledger.get_balance(sender.id).balance == 100


def test_debit_deducts_and_records_negative_amount(db: Database, ledger: PointsLedger, make_user) -> None:
    user = make_user(balance=100)

    result = ledger.debit(user.id, 40, "Coffee voucher", related_id="reward-1")

    assert result.new_balance == 60
    spent = [tx for tx in _transactions(db, user.id) if tx.type == TransactionType.SPENT.value]
    assert len(spent) == 1
    assert spent[0].amount == -40
    assert spent[0].related_id == "reward-1"


def test_debit_insufficient_balance_changes_nothing(db: Database, ledger: PointsLedger, make_user) -> None:
    user = make_user(balance=30)

    with pytest.raises(InvalidRequest, match="Insufficient points balance"):
        ledger.debit(user.id, 31, "Too much")

    assert ledger.get_balance(user.id).balance == 30
    assert len(_transactions(db, user.id)) == 1


def test_debit_inactive_user_reports_not_found(ledger: PointsLedger, make_user) -> None:
    user = make_user(balance=50, active=False)
    with pytest.raises(InvalidRequest, match="User not found"):
        ledger.debit(user.id, 10, "x")


def test_transfer_moves_points_and_links_both_rows(db: Database, ledger: PointsLedger, make_user) -> None:
    sender = make_user(balance=500, first_name="Ada", last_name="Lovelace")
    recipient = make_user(balance=300, first_name="Alan", last_name="Turing")

    result = ledger.transfer(sender.id, recipient.id, 100, "Thanks", related_id="rec-1")

    assert result.sender_new_balance == 400
    assert result.recipient_new_balance == 400
    assert ledger.get_balance(sender.id).balance == 400
    assert ledger.get_balance(recipient.id).balance == 400

    sent = [tx for tx in _transactions(db, sender.id) if tx.related_id == "rec-1"]
    received = [tx for tx in _transactions(db, recipient.id) if tx.related_id == "rec-1"]
    assert len(sent) == 1 and len(received) == 1
    assert sent[0].amount == -100
    assert received[0].amount == 100
    assert sent[0].type == TransactionType.SPENT.value
    assert received[0].type == TransactionType.EARNED.value
    assert sent[0].description == "Sent to Alan Turing: Thanks"
    assert received[0].description == "Received from Ada Lovelace: Thanks"


@pytest.mark.parametrize("balance", [0, 50, 10_000])
def test_transfer_to_self_always_fails(ledger: PointsLedger, make_user, balance: int) -> None:
    user = make_user(balance=balance)
    with pytest.raises(InvalidRequest, match="yourself"):
        ledger.transfer(user.id, user.id, 50, "Me")
    assert ledger.get_balance(user.id).balance == balance


def test_transfer_insufficient_balance_is_all_or_nothing(db: Database, ledger: PointsLedger, make_user) -> None:
    sender = make_user(balance=20)
    recipient = make_user(balance=5)

    with pytest.raises(InvalidRequest, match="Insufficient points balance"):
        ledger.transfer(sender.id, recipient.id, 21, "Too generous")

    assert ledger.get_balance(sender.id).balance == 20
    assert ledger.get_balance(recipient.id).balance == 5
    assert len(_transactions(db, recipient.id)) == 1


def test_transfer_to_inactive_recipient_fails(ledger: PointsLedger, make_user) -> None:
    sender = make_user(balance=100)
    recipient = make_user(active=False)
    with pytest.raises(InvalidRequest, match="Recipient not found"):
        ledger.transfer(sender.id, recipient.id, 10, "Hello")
    assert ledger.get_balance(sender.id).balance == 100


def test_transfers_conserve_total_and_match_history(db: Database, ledger: PointsLedger, make_user) -> None:
    users = [make_user(balance=100) for _ in range(3)]
    before = _total_balance(db)

    moves = [(0, 1, 30), (1, 2, 80), (2, 0, 45), (0, 2, 200), (1, 0, 50)]
    for src, dst, amount in moves:
        try:
            ledger.transfer(users[src].id, users[dst].id, amount, "shuffle")
        except InvalidRequest:
            pass

    assert _total_balance(db) == before
    ledger.credit(users[0].id, 7, "bonus")
    ledger.debit(users[0].id, 3, "fee")
    assert _total_balance(db) == before + 4

    for user in users:
        balance = ledger.get_balance(user.id).balance
        assert balance >= 0
        assert sum(tx.amount for tx in _transactions(db, user.id)) == balance


def test_concurrent_debits_cannot_overdraw(db: Database, ledger: PointsLedger, make_user) -> None:
    user = make_user(balance=100)
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def _spend() -> None:
        barrier.wait()
        try:
            ledger.debit(user.id, 60, "race")
            result = "ok"
        except InvalidRequest as exc:
            result = exc.message
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_spend) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["Insufficient points balance", "ok"]
    assert ledger.get_balance(user.id).balance == 40


def test_history_is_newest_first_and_clamped(ledger: PointsLedger, make_user, monkeypatch) -> None:
    from backend.app.core.config import settings

    monkeypatch.setattr(settings, "history_max_limit", 3)
    user = make_user()
    for amount in range(1, 6):
        ledger.credit(user.id, amount, f"credit {amount}")

    history = ledger.get_history(user.id, limit=50)
    assert [tx.amount for tx in history] == [5, 4, 3]
    assert len(ledger.get_history(user.id, limit=0)) == 1


def test_get_balance_unknown_user(ledger: PointsLedger) -> None:
    with pytest.raises(NotFound):
        ledger.get_balance("nobody")


def test_update_monthly_allocation(ledger: PointsLedger, make_user) -> None:
    user = make_user(allocation=100)

    setting = ledger.update_monthly_allocation(user.id, 250)
    assert setting.monthly_allocation == 250
    assert ledger.get_balance(user.id).monthly_allocation == 250

    with pytest.raises(InvalidRequest):
        ledger.update_monthly_allocation(user.id, -1)
    with pytest.raises(NotFound):
        ledger.update_monthly_allocation("nobody", 10)


def test_statistics_summarize_current_month(ledger: PointsLedger, make_user) -> None:
    alice = make_user(balance=200)
    bob = make_user()
    ledger.transfer(alice.id, bob.id, 50, "thanks")

    stats = ledger.get_statistics()

    assert stats.total_points_in_system == 200
    assert stats.total_transactions == 3
    by_type = {row.type: row for row in stats.monthly_stats}
    assert by_type["EARNED"].total_amount == 250
    assert by_type["EARNED"].count == 2
    assert by_type["SPENT"].total_amount == -50
