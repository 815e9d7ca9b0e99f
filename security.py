import logging
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from config import get_settings
from errors import InvalidInputError, InvalidTokenError, MissingTokenError

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^\w+([\.-]?\w+)*@\w+([\.-]?\w+)*(\.\w{2,3})+$")
PASSWORD_REGEX = re.compile(r"^(?=.*\d)(?=.*[a-z])(?=.*[A-Z]).{6,20}$")
PASSWORD_RULES = "Password should be 6 to 20 characters long with a numeric, 1 lowercase and 1 uppercase letters"

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def _pwd_context() -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=get_settings().bcrypt_rounds)


# Password utilities
def hash_password(password: str) -> str:
    """Hash a password"""
    return _pwd_context().hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash"""
    if not hashed_password:
        return False
    return _pwd_context().verify(plain_password, hashed_password)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_REGEX.match(email or ""))


def validate_password(password: str) -> None:
    if not PASSWORD_REGEX.match(password or ""):
        raise InvalidInputError(PASSWORD_RULES)


# JWT utilities
def create_access_token(user_id) -> str:
    """Create JWT access token carrying the user id as subject"""
    settings = get_settings()
    to_encode = {"sub": str(user_id), "iat": datetime.now(timezone.utc)}
    if settings.access_token_expire_minutes:
        to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Verify a token and return the user id it was issued for"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected access token: {e}")
        raise InvalidTokenError("access token is invalid")
    user_id = payload.get("sub")
    if not user_id:
        raise InvalidTokenError("access token is invalid")
    return user_id


# Authentication dependencies
async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """User id of the caller; 401 without a token, 403 with a bad one"""
    if credentials is None or not credentials.credentials:
        raise MissingTokenError("No access token")
    return decode_access_token(credentials.credentials)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """User id if a token was sent, None otherwise"""
    if credentials is None or not credentials.credentials:
        return None
    return decode_access_token(credentials.credentials)
