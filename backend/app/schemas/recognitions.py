from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RecognitionCreate(BaseModel):
    recipient_id: str = Field(..., min_length=1, max_length=64)
    message: str = Field(..., min_length=1, max_length=500)
    points_amount: int = Field(..., ge=1, le=100)
    is_private: bool = False


class RecognitionPrivacyUpdate(BaseModel):
    is_private: bool


class ParticipantResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    first_name: str
    last_name: str
    department: Optional[str]


class RecognitionResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    sender_id: str
    recipient_id: str
    message: str
    points_amount: int
    is_private: bool
    created_at: datetime
    updated_at: datetime
    sender: Optional[ParticipantResponse] = None
    recipient: Optional[ParticipantResponse] = None


class RecognitionPageResponse(BaseModel):
    model_config = {'from_attributes': True}

    recognitions: List[RecognitionResponse]
    total_count: int
    has_more: bool


class RecognitionStatisticsResponse(BaseModel):
    model_config = {'from_attributes': True}

    total_recognitions: int
    this_month_recognitions: int
    top_recognizers: List[Dict[str, Any]]
    top_recipients: List[Dict[str, Any]]
