from typing import Any, List

from fastapi import APIRouter, Depends

from ...core.auth import User
from ...core.errors import NotFound
from ...db.models import Role
from ...schemas.rewards import (
    RedemptionResponse,
    RedemptionStatusUpdate,
    RewardCreate,
    RewardResponse,
    RewardStatisticsResponse,
    RewardUpdate,
)
from ...services.rewards import RewardStore
from ..deps import get_current_user, get_reward_store, is_staff, require_roles

router = APIRouter()

# Explicit null clears these; for the rest it means "leave unchanged"
NULLABLE_REWARD_FIELDS = {"image_url", "stock_quantity"}

@router.get("/", response_model=List[RewardResponse])
def list_rewards(
    active_only: bool = True,
    current_user: User = Depends(get_current_user),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    """Reward catalog; inactive rewards are listed for staff only."""
    return store.list_rewards(active_only=active_only or not is_staff(current_user))

@router.get("/statistics", response_model=RewardStatisticsResponse)
def read_statistics(
    _: User = Depends(require_roles(Role.ADMIN, Role.MANAGER)),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    return store.get_statistics()

@router.get("/redemptions", response_model=List[RedemptionResponse])
def list_my_redemptions(
    current_user: User = Depends(get_current_user),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    return store.list_user_redemptions(current_user.id)

@router.get("/redemptions/all", response_model=List[RedemptionResponse])
def list_all_redemptions(
    _: User = Depends(require_roles(Role.ADMIN, Role.MANAGER)),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    return store.list_redemptions()

@router.get("/redemptions/{redemption_id}", response_model=RedemptionResponse)
def read_redemption(
    redemption_id: str,
    current_user: User = Depends(get_current_user),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    redemption = store.get_redemption(redemption_id)
    # Other users' redemptions are reported as missing
    if redemption.user_id != current_user.id and not is_staff(current_user):
        raise NotFound("Redemption not found")
    return redemption

@router.put("/redemptions/{redemption_id}/status", response_model=RedemptionResponse)
def update_redemption_status(
    redemption_id: str,
    payload: RedemptionStatusUpdate,
    _: User = Depends(require_roles(Role.ADMIN, Role.MANAGER)),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    """Move a redemption through its lifecycle; cancelling a pending one refunds it."""
    return store.set_redemption_status(redemption_id, payload.status)

@router.get("/{reward_id}", response_model=RewardResponse)
def read_reward(
    reward_id: str,
    _: User = Depends(get_current_user),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    return store.get_reward(reward_id)

@router.post("/", response_model=RewardResponse, status_code=201)
def create_reward(
    payload: RewardCreate,
    _: User = Depends(require_roles(Role.ADMIN)),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    return store.create_reward(**payload.model_dump())

@router.put("/{reward_id}", response_model=RewardResponse)
def update_reward(
    reward_id: str,
    payload: RewardUpdate,
    _: User = Depends(require_roles(Role.ADMIN)),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_REWARD_FIELDS
    }
    return store.update_reward(reward_id, **changes)

@router.delete("/{reward_id}")
def delete_reward(
    reward_id: str,
    _: User = Depends(require_roles(Role.ADMIN)),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    store.delete_reward(reward_id)
    return {"message": "Reward deleted successfully"}

@router.post("/{reward_id}/redeem", response_model=RedemptionResponse, status_code=201)
def redeem_reward(
    reward_id: str,
    current_user: User = Depends(get_current_user),
    store: RewardStore = Depends(get_reward_store),
) -> Any:
    """Spend points on a reward; the redemption starts out PENDING."""
    return store.redeem(current_user.id, reward_id)
