from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .models import EffectiveLevel


class CompanyRead(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class HomeRead(BaseModel):
    id: str
    company_id: str
    name: str

    class Config:
        from_attributes = True


class PersonRead(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SessionContextRead(BaseModel):
    """Who the caller is and which company their training views default to."""

    person: PersonRead
    effective_level: EffectiveLevel
    company_id: Optional[str] = None
