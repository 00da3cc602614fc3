# backend/carehub/security.py

"""
Session helpers for CareHub.

Responsibilities:
- JWT access token creation and decoding
- FastAPI dependencies for the current person
- Effective level ordering used by the training router

Sign-in itself is handled by the identity provider; this module only
verifies the bearer token it issued and loads the matching person.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Optional, Union

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from carehub.apps.accounts import models as account_models
from carehub.apps.accounts import services as account_services
from carehub.apps.accounts.models import EffectiveLevel

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

# Highest first; used for "at least" comparisons.
_LEVEL_RANK = {
    EffectiveLevel.PLATFORM_ADMIN: 0,
    EffectiveLevel.COMPANY_ADMIN: 1,
    EffectiveLevel.HOME_MANAGER: 2,
    EffectiveLevel.STAFF: 3,
}


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    The `data` dict should already include the subject, e.g.:
        {"sub": person.id}
    """
    to_encode = data.copy()

    expire = datetime.utcnow() + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_subject(token: str) -> Optional[str]:
    """Return the `sub` claim of a valid token, or None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject: Optional[Union[str, int]] = payload.get("sub")
    if subject is None:
        return None
    return str(subject)


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_person(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> account_models.Person:
    person_id = decode_subject(token)
    if person_id is None:
        raise _credentials_exception()

    person = account_services.get_person(db, person_id)
    if person is None:
        raise _credentials_exception()
    return person


def get_current_active_person(
    current_person: account_models.Person = Depends(get_current_person),
) -> account_models.Person:
    """
    Ensure the current person is active.

    Deactivated people are blocked here rather than deeper in the app.
    """
    if not getattr(current_person, "is_active", False):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive account",
        )
    return current_person


def level_at_least(level: EffectiveLevel, minimum: EffectiveLevel) -> bool:
    return _LEVEL_RANK[level] <= _LEVEL_RANK[minimum]
