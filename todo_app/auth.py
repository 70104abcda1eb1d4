import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from todo_app import crud, models
from todo_app.config import get_settings
from todo_app.database import get_db
from todo_app.logger import logger

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def authenticate_user(db: Session, username: str, password: str) -> Optional[models.User]:
    """Return the user if the credentials match, otherwise None.

    A dummy hash check runs when the username is unknown so the response
    time does not reveal whether the account exists.
    """
    user = crud.get_user_by_username(db, username)
    if user is None:
        pwd_context.dummy_verify()
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def session_lifetime() -> timedelta:
    return timedelta(minutes=get_settings().session_expire_minutes)


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_expire_minutes * 60,
        httponly=True,
        secure=settings.session_cookie_secure or settings.is_production,
        samesite=settings.session_cookie_samesite,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure or settings.is_production,
        samesite=settings.session_cookie_samesite,
    )


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(get_settings().session_cookie_name)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> models.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication credentials were not provided or are invalid",
    )
    token = get_session_token(request)
    if not token:
        raise credentials_exception

    db_session = crud.get_active_session(db, token)
    if db_session is None:
        logger.debug("Rejected unknown, revoked or expired session")
        raise credentials_exception

    user = db_session.user
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def require_task_access(request: Request, db: Session = Depends(get_db)) -> Optional[models.User]:
    """Gate the task endpoints behind a session unless auth is disabled"""
    if not get_settings().tasks_require_auth:
        return None
    return get_current_user(request, db)
