"""Password hashing and session helpers."""

import bcrypt
from fastapi import HTTPException, Request

from ..config import settings

# bcrypt ignores input past this many bytes
MAX_PASSWORD_BYTES = 72


def get_password_hash(password: str) -> str:
    """Hash a password with bcrypt at the configured cost."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def login_session(request: Request, user_id: str) -> None:
    request.session.clear()
    request.session["user_id"] = user_id


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency returning the logged-in user's id, or 401."""
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
