from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from ...core.auth import SessionStore, User, UserStore
from ...db.models import Role
from ...services.points import PointsLedger
from ..deps import get_current_user, get_points_ledger, get_session_store, get_user_store, oauth2_scheme

router = APIRouter()

class UserCreate(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    department: Optional[str] = Field(default=None, max_length=100)

class Token(BaseModel):
    access_token: str
    token_type: str
    user_id: str
    role: Role

class UserResponse(BaseModel):
    model_config = {'from_attributes': True}

    id: str
    email: str
    first_name: str
    last_name: str
    department: Optional[str]
    role: Role

class UserProfileResponse(UserResponse):
    points_balance: int
    monthly_points_allocation: int

@router.post("/register", response_model=UserResponse, status_code=201)
def register(
    user_in: UserCreate,
    user_store: UserStore = Depends(get_user_store)
) -> Any:
    """Register a new employee account."""
    return user_store.register_local_user(
        email=user_in.email,
        password=user_in.password,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        department=user_in.department,
    )

@router.post("/token", response_model=Token)
def login_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    user_store: UserStore = Depends(get_user_store),
    session_store: SessionStore = Depends(get_session_store),
) -> Any:
    """OAuth2 compatible token login, get an access token for future requests."""
    user = user_store.authenticate_local(form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=400, detail="Incorrect email or password")

    token = session_store.issue_session(user, user_agent=request.headers.get("user-agent"))
    return {
        "access_token": token,
        "token_type": "bearer",
        "user_id": user.id,
        "role": user.role,
    }

@router.post("/logout", status_code=204)
def logout(
    token: Annotated[str, Depends(oauth2_scheme)],
    current_user: User = Depends(get_current_user),
    session_store: SessionStore = Depends(get_session_store),
) -> None:
    """Revoke the bearer token used for this request."""
    session_store.revoke(token)

@router.get("/me", response_model=UserProfileResponse)
def read_users_me(
    current_user: User = Depends(get_current_user),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> Any:
    """Get current user profile with live points balance."""
    balance = ledger.get_balance(current_user.id)
    return {
        "id": current_user.id,
        "email": current_user.email,
        "first_name": current_user.first_name,
        "last_name": current_user.last_name,
        "department": current_user.department,
        "role": current_user.role,
        "points_balance": balance.balance,
        "monthly_points_allocation": balance.monthly_allocation,
    }
