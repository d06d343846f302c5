"""
PCOS Portal - Authentication Service
User registration, login, logout, and session management
"""
import logging
import secrets
from datetime import datetime, timedelta

import bcrypt
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pcos_portal.config import settings
from pcos_portal.database import get_db
from pcos_portal.exceptions import AuthenticationError, FormValidationError, PersistenceError
from pcos_portal.models import User, UserSession
from pcos_portal.session import AuthEvent, SessionContext, auth_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


class RegisterRequest(BaseModel):
    username: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class AuthResponse(BaseModel):
    success: bool
    message: str
    token: str | None = None
    user_id: int | None = None
    username: str | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    created_at: datetime


def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    """Verify password against hash"""
    return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))


def create_session_token() -> str:
    """Generate secure session token"""
    return secrets.token_urlsafe(32)


def get_current_user(token: str | None, db: Session) -> User | None:
    """Get user from session token"""
    if not token:
        return None
    session = db.query(UserSession).filter(
        UserSession.token == token,
        UserSession.expires_at > datetime.utcnow()
    ).first()

    if session:
        return session.user
    return None


def require_user(token: str | None, db: Session) -> User:
    """Like get_current_user, but a missing or stale session is an error"""
    user = get_current_user(token, db)
    if not user:
        raise AuthenticationError("Not authenticated" if not token else "Invalid or expired session")
    return user


def _open_session(db: Session, user: User) -> SessionContext:
    token = create_session_token()
    db.add(UserSession(
        user_id=user.id,
        token=token,
        expires_at=datetime.utcnow() + timedelta(hours=settings.session_hours)
    ))
    db.commit()
    context = SessionContext(token=token, user_id=user.id, username=user.username)
    auth_notifier.publish(AuthEvent.SIGNED_IN, context)
    return context


def register_user(db: Session, username: str, password: str) -> SessionContext:
    """Create an account and sign it in"""
    username = (username or "").strip()
    if len(username) < 3:
        raise FormValidationError("Username must be at least 3 characters", field="username")
    if len(password or "") < 6:
        raise FormValidationError("Password must be at least 6 characters", field="password")

    existing = db.query(User).filter(User.username == username).first()
    if existing:
        raise FormValidationError("Username already exists", field="username")

    try:
        user = User(username=username, password_hash=hash_password(password))
        db.add(user)
        db.commit()
        db.refresh(user)
        context = _open_session(db, user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Registration failed for %s: %s", username, e)
        raise PersistenceError("Failed to create account", table="users") from e

    logger.info("Registered user %s (id=%s)", user.username, user.id)
    return context


def login_user(db: Session, username: str, password: str) -> SessionContext:
    """Check credentials and open a new session"""
    user = db.query(User).filter(User.username == (username or "").strip()).first()
    if not user or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid username or password")

    try:
        context = _open_session(db, user)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to create session", table="user_sessions") from e

    logger.info("User %s signed in", user.username)
    return context


def logout_user(db: Session, token: str | None) -> None:
    """Delete the session row (if any) and notify subscribers"""
    if not token:
        return
    session = db.query(UserSession).filter(UserSession.token == token).first()
    if not session:
        return
    context = SessionContext(token=token, user_id=session.user_id, username=session.user.username)
    db.delete(session)
    db.commit()
    auth_notifier.publish(AuthEvent.SIGNED_OUT, context)
    logger.info("User %s signed out", context.username)


@router.post("/register", response_model=AuthResponse)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new user"""
    context = register_user(db, request.username, request.password)
    return AuthResponse(
        success=True,
        message="Registration successful",
        token=context.token,
        user_id=context.user_id,
        username=context.username
    )


@router.post("/login", response_model=AuthResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login user and create session"""
    context = login_user(db, request.username, request.password)
    return AuthResponse(
        success=True,
        message="Login successful",
        token=context.token,
        user_id=context.user_id,
        username=context.username
    )


@router.post("/logout", response_model=AuthResponse)
def logout(token: str | None = None, db: Session = Depends(get_db)):
    """Logout user and invalidate session"""
    logout_user(db, token)
    return AuthResponse(
        success=True,
        message="Logout successful"
    )


@router.get("/me", response_model=UserResponse)
def get_me(token: str | None = None, db: Session = Depends(get_db)):
    """Get current user info"""
    user = require_user(token, db)
    return UserResponse(
        id=user.id,
        username=user.username,
        created_at=user.created_at
    )


@router.get("/validate")
def validate_session(token: str | None = None, db: Session = Depends(get_db)):
    """Validate if session token is valid"""
    user = get_current_user(token, db)
    return {
        "valid": user is not None,
        "user_id": user.id if user else None,
        "username": user.username if user else None
    }
