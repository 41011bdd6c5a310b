import os
import secrets

import bcrypt
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from schoollib import models
from schoollib.access import SessionContext
from schoollib.database import get_db


BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
session_header = APIKeyHeader(name="X-Session-Token", auto_error=False)


def _secret_bytes(secret: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return secret.encode("utf-8")[:72]


def hash_secret(secret: str) -> str:
    """Return a salted bcrypt hash of secret, as text for storage."""
    return bcrypt.hashpw(_secret_bytes(secret), bcrypt.gensalt(BCRYPT_ROUNDS)).decode(
        "utf-8"
    )


def secret_matches(secret: str, hashed: str) -> bool:
    """Return True if secret hashes to the stored value."""
    if not secret or not hashed:
        return False
    try:
        return bcrypt.checkpw(_secret_bytes(secret), hashed.encode("utf-8"))
    except ValueError:
        return False


def normalize_answer(answer: str) -> str:
    """Security answers compare case-insensitively and ignore outer spaces."""
    return (answer or "").strip().lower()


def hash_answer(answer: str) -> str:
    return hash_secret(normalize_answer(answer))


def answer_matches(answer: str, hashed: str) -> bool:
    return secret_matches(normalize_answer(answer), hashed)


def start_session(db: Session, user: models.User) -> str:
    """Issue a new session token for an authenticated user."""
    token = secrets.token_hex(32)
    while db.get(models.LoginSession, token) is not None:
        token = secrets.token_hex(32)
    db.add(models.LoginSession(token=token, user_id=user.id))
    db.commit()
    return token


def end_session(db: Session, token: str) -> bool:
    """Invalidate a token.  Returns True if the token existed."""
    login_session = db.get(models.LoginSession, token)
    if login_session is None:
        return False
    db.delete(login_session)
    db.commit()
    return True


async def get_session_token(token: str = Security(session_header)) -> str:
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session token is missing. Log in and send it in the 'X-Session-Token' header.",
        )
    return token


def get_current_session(
    token: str = Depends(get_session_token), db: Session = Depends(get_db)
) -> SessionContext:
    """
    Dependency resolving the request's session token to a SessionContext.

    Internal Working:
    1. get_session_token extracts the X-Session-Token header (401 if absent)
    2. The token is looked up in login_sessions
    3. If unknown, raise HTTPException (stops request processing)
    4. Otherwise the owning user's id, username and role are returned

    Raises:
        HTTPException: 401 if the token is missing or unknown
    """
    login_session = db.get(models.LoginSession, token)
    if login_session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session token. Log in again.",
        )
    user = login_session.user
    return SessionContext(user_id=user.id, username=user.username, role=user.role)


def require_permission(check, action: str):
    """
    Build a dependency that only lets sessions passing check through.

    Usage in endpoints:
    @app.post("/books", dependencies=[Depends(require_permission(access.can_manage_books, "manage books"))])

    Raises:
        HTTPException: 403 if the session's role does not allow the action
    """

    def dependency(
        current: SessionContext = Depends(get_current_session),
    ) -> SessionContext:
        return ensure_permission(current, check, action)

    return dependency


def ensure_permission(current: SessionContext, check, action: str) -> SessionContext:
    if not check(current):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Your role ({current.role.value}) is not allowed to {action}.",
        )
    return current
