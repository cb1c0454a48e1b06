from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..db.models import RedemptionStatus


class RewardCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    points_cost: int = Field(..., ge=1)
    category: str = Field(..., min_length=1, max_length=50)
    image_url: Optional[str] = None
    is_active: bool = True
    stock_quantity: Optional[int] = Field(default=None, ge=0)


class RewardUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    points_cost: Optional[int] = Field(default=None, ge=1)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)


class RewardResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    title: str
    description: str
    points_cost: int
    category: str
    image_url: Optional[str]
    is_active: bool
    stock_quantity: Optional[int]
    created_at: datetime
    updated_at: datetime


class RedemptionUserResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    first_name: str
    last_name: str
    email: str
    department: Optional[str]


class RedemptionResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    user_id: str
    reward_id: str
    points_spent: int
    status: RedemptionStatus
    redemption_code: str
    created_at: datetime
    updated_at: datetime
    user: Optional[RedemptionUserResponse] = None
    reward: Optional[RewardResponse] = None


class RedemptionStatusUpdate(BaseModel):
    status: RedemptionStatus


class RewardStatisticsResponse(BaseModel):
    model_config = {'from_attributes': True}

    total_rewards: int
    active_rewards: int
    total_redemptions: int
    pending_redemptions: int
    category_stats: List[Dict[str, Any]]
    redemption_stats: List[Dict[str, Any]]
