from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional
from uuid import UUID
import jwt

from app.core.config import settings
from app.core.exceptions import AuthenticationError

SECRET_KEY = settings.APP_SECRET_STRING
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_DAYS = settings.ACCESS_TOKEN_EXPIRE_DAYS

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    """Verify a hashed password against a plain password."""
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return pwd_context.hash("not-a-real-password")


def burn_password_check(plain: str) -> None:
    """
    Spend the same bcrypt work as a real check.
    Used when the account does not exist so response time does not reveal it.
    """
    pwd_context.verify(plain, _dummy_hash())


def create_access_token(user_id: UUID, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for a user.
    If expires_delta is not provided, it defaults to ACCESS_TOKEN_EXPIRE_DAYS.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))
    to_encode = {"sub": str(user_id), "type": "access", "iat": now, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify a JWT token and return the payload.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthenticationError("Invalid token")
    return payload
