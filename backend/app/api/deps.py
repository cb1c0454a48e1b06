from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from ..core.auth import SessionStore, User, UserStore
from ..core.database import Database
from ..core.errors import Unauthorized
from ..db.models import Role
from ..services.points import PointsLedger
from ..services.recognitions import RecognitionStore
from ..services.rewards import RewardStore

# Simple OAuth2 scheme (Password flow) for Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


def get_db(request: Request) -> Database:
    """Shared database created by the application lifespan."""
    return request.app.state.db

def get_user_store(db: Database = Depends(get_db)) -> UserStore:
    return UserStore(db=db)

def get_session_store(db: Database = Depends(get_db)) -> SessionStore:
    return SessionStore(db=db)

def get_points_ledger(db: Database = Depends(get_db)) -> PointsLedger:
    return PointsLedger(db=db)

def get_reward_store(
    db: Database = Depends(get_db),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> RewardStore:
    return RewardStore(db=db, ledger=ledger)

def get_recognition_store(
    db: Database = Depends(get_db),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> RecognitionStore:
    return RecognitionStore(db=db, ledger=ledger)

async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    session_store: SessionStore = Depends(get_session_store)
) -> User:
    """Validate session token and return current user."""
    user = session_store.authenticate(token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_roles(*roles: Role) -> Callable[..., User]:
    """Dependency factory that admits only users holding one of ``roles``."""
    allowed = {Role(role).value for role in roles}

    async def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise Unauthorized("Insufficient permissions")
        return current_user

    return _checker


def is_staff(user: User) -> bool:
    return user.role in (Role.ADMIN.value, Role.MANAGER.value)
