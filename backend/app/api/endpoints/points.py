from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query

from ...core.auth import User
from ...db.models import Role, TransactionType
from ...schemas.points import (
    AddPointsRequest,
    AllocationRunResponse,
    AllocationSettingResponse,
    AllocationUpdateRequest,
    BalanceResponse,
    LedgerResultResponse,
    PointsStatisticsResponse,
    PointsTransactionResponse,
    TransferRequest,
    TransferResponse,
)
from ...services.allocation import run_monthly_allocation
from ...services.points import PointsLedger
from ..deps import get_current_user, get_points_ledger, require_roles

router = APIRouter()

@router.get("/balance", response_model=BalanceResponse)
def read_balance(
    current_user: User = Depends(get_current_user),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    """Current balance and monthly allocation of the caller."""
    return ledger.get_balance(current_user.id)

@router.get("/history", response_model=List[PointsTransactionResponse])
def read_history(
    limit: Optional[int] = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    """Most recent ledger entries for the caller, newest first."""
    return ledger.get_history(current_user.id, limit=limit)

@router.get("/statistics", response_model=PointsStatisticsResponse)
def read_statistics(
    _: User = Depends(require_roles(Role.ADMIN, Role.MANAGER)),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    return ledger.get_statistics()

@router.post("/allocate", response_model=AllocationRunResponse)
def allocate_monthly_points(
    _: User = Depends(require_roles(Role.ADMIN)),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    """Run the monthly allocation immediately."""
    report = run_monthly_allocation(ledger)
    return {"message": "Monthly points allocated successfully", **report.as_dict()}

@router.put("/users/{user_id}/allocation", response_model=AllocationSettingResponse)
def update_allocation(
    user_id: str,
    payload: AllocationUpdateRequest,
    _: User = Depends(require_roles(Role.ADMIN)),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    return ledger.update_monthly_allocation(user_id, payload.monthly_allocation)

@router.post("/users/{user_id}/add", response_model=LedgerResultResponse)
def add_points(
    user_id: str,
    payload: AddPointsRequest,
    _: User = Depends(require_roles(Role.ADMIN)),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    """Grant points to a user outside the monthly cycle."""
    return ledger.credit(user_id, payload.amount, payload.description, type=TransactionType.EARNED)

@router.post("/transfer", response_model=TransferResponse)
def transfer_points(
    payload: TransferRequest,
    current_user: User = Depends(get_current_user),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    return ledger.transfer(current_user.id, payload.recipient_id, payload.amount, payload.description)
