from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.company_record import utc_now


# Scan precedence when looking for associated people on a company page.
BOARD_ROLES: tuple[str, ...] = (
    "VD",
    "Ordförande",
    "Styrelseledamot",
    "Ordinarie ledamot",
    "Innehavare",
    "Komplementär",
    "Likvidator",
)


class PersonAddress(BaseModel):
    street: Optional[str] = None
    apartment: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class PersonRecord(BaseModel):
    """App/DB record shape: a person associated with a company."""

    org_number: str
    name: str
    role: str
    id: Optional[int] = None
    personal_number: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    address: PersonAddress = Field(default_factory=PersonAddress)
    profile_url: Optional[str] = None
    scraped_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(extra="ignore")
