from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..db.models import TransactionType


class BalanceResponse(BaseModel):
    model_config = {'from_attributes': True}

    balance: int
    monthly_allocation: int


class LedgerResultResponse(BaseModel):
    model_config = {'from_attributes': True}

    new_balance: int
    amount: int


class TransferRequest(BaseModel):
    recipient_id: str = Field(..., max_length=64)
    amount: int = Field(..., ge=1)
    description: str = Field(..., min_length=1, max_length=500)


class TransferResponse(BaseModel):
    model_config = {'from_attributes': True}

    sender_new_balance: int
    recipient_new_balance: int
    amount: int


class PointsTransactionResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    user_id: str
    type: TransactionType
    amount: int
    description: str
    related_id: Optional[str]
    created_at: datetime


class AddPointsRequest(BaseModel):
    amount: int = Field(..., ge=1)
    description: str = Field(..., min_length=1, max_length=500)


class AllocationUpdateRequest(BaseModel):
    monthly_allocation: int = Field(..., ge=0)


class AllocationSettingResponse(BaseModel):
    model_config = {'from_attributes': True}

    user_id: str
    first_name: str
    last_name: str
    monthly_allocation: int


class AllocationRunResponse(BaseModel):
    message: str
    credited: int
    skipped: int
    failed: int
    total_points: int


class TypeStatisticsResponse(BaseModel):
    model_config = {'from_attributes': True}

    type: TransactionType
    total_amount: int
    count: int


class PointsStatisticsResponse(BaseModel):
    model_config = {'from_attributes': True}

    total_points_in_system: int
    total_transactions: int
    monthly_stats: List[TypeStatisticsResponse]
