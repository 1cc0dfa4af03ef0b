"""Authentication endpoints: register, login, refresh, logout, me, change password."""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict

from ..models.base import get_db, generate_uuid
from ..models.user import User, UserRole
from ..core.errors import AuthError
from ..core.security import (
    verify_password,
    get_password_hash,
    get_current_user,
    require_role,
)
from ..services.auth_service import AuthService, AccountDisabledError

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Request / Response schemas ──────────────────────────────────────────────

class RegisterRequest(BaseModel):
    username: str
    password: str
    full_name: Optional[str] = None
    role: str = UserRole.RECEPTION


class LoginRequest(BaseModel):
    username: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    username: str
    role: str
    full_name: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: Optional[str]
    role: str
    is_active: bool


class RefreshRequest(BaseModel):
    refresh_token: str


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    req: RegisterRequest,
    db: Session = Depends(get_db),
    _admin=Depends(require_role(UserRole.ADMIN)),
):
    """Admin-only: create a new staff account."""
    if req.role not in UserRole.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid role. Choose from: {UserRole.ALL}")
    if db.query(User).filter(User.username == req.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")

    user = User(
        id=generate_uuid(),
        username=req.username,
        hashed_password=get_password_hash(req.password),
        full_name=req.full_name,
        role=req.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=SessionResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and receive a session with JWT access + refresh tokens."""
    try:
        return AuthService(db).login(req.username, req.password)
    except AccountDisabledError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


@router.post("/refresh", response_model=SessionResponse)
def refresh_token(req: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a valid refresh token for a new token pair."""
    try:
        return AuthService(db).refresh(req.refresh_token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Revoke the current user's refresh token."""
    AuthService(db).logout(current_user.id)


@router.get("/me", response_model=UserResponse)
def get_me(current_user=Depends(get_current_user)):
    """Return the currently authenticated user's profile."""
    return current_user


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    req: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Change the current user's password."""
    if not verify_password(req.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    current_user.hashed_password = get_password_hash(req.new_password)
    db.commit()
