from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ...core.auth import User
from ...db.models import Role
from ...schemas.recognitions import (
    RecognitionCreate,
    RecognitionPageResponse,
    RecognitionPrivacyUpdate,
    RecognitionResponse,
    RecognitionStatisticsResponse,
)
from ...services.recognitions import RecognitionStore
from ..deps import get_current_user, get_recognition_store, is_staff, require_roles

router = APIRouter()

ScopeQuery = Literal["sent", "received", "all"]

@router.post("/", response_model=RecognitionResponse, status_code=201)
def create_recognition(
    payload: RecognitionCreate,
    current_user: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    """Recognize a colleague and transfer points to them."""
    return store.create(
        sender_id=current_user.id,
        recipient_id=payload.recipient_id,
        message=payload.message,
        points_amount=payload.points_amount,
        is_private=payload.is_private,
    )

@router.get("/feed", response_model=RecognitionPageResponse)
def read_feed(
    limit: int = Query(default=20, ge=1),
    offset: int = Query(default=0, ge=0),
    _: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    """Public recognitions, newest first."""
    return store.feed(limit=limit, offset=offset)

@router.get("/my", response_model=RecognitionPageResponse)
def read_my_recognitions(
    type: ScopeQuery = "all",
    limit: int = Query(default=20, ge=1),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    return store.for_user(current_user.id, kind=type, limit=limit, offset=offset)

@router.get("/user/{user_id}", response_model=RecognitionPageResponse)
def read_user_recognitions(
    user_id: str,
    type: ScopeQuery = "all",
    limit: int = Query(default=20, ge=1),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    """Recognitions sent or received by ``user_id``; private ones only for that user or staff."""
    include_private = current_user.id == user_id or is_staff(current_user)
    return store.for_user(
        user_id, kind=type, limit=limit, offset=offset, include_private=include_private
    )

@router.get("/statistics", response_model=RecognitionStatisticsResponse)
def read_statistics(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    _: User = Depends(require_roles(Role.ADMIN, Role.MANAGER)),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    return store.get_statistics(user_id)

@router.get("/{recognition_id}", response_model=RecognitionResponse)
def read_recognition(
    recognition_id: str,
    current_user: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    return store.get(recognition_id, viewer_id=current_user.id)

@router.put("/{recognition_id}/privacy", response_model=RecognitionResponse)
def update_privacy(
    recognition_id: str,
    payload: RecognitionPrivacyUpdate,
    current_user: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    return store.update_privacy(recognition_id, current_user.id, payload.is_private)

@router.delete("/{recognition_id}")
def delete_recognition(
    recognition_id: str,
    current_user: User = Depends(get_current_user),
    store: RecognitionStore = Depends(get_recognition_store),
) -> Any:
    """Withdraw a recognition; its points go back to the sender."""
    store.delete(recognition_id, current_user.id)
    return {"message": "Recognition deleted successfully"}
