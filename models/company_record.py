from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class ContactInfo(BaseModel):
    phone: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    municipality: Optional[str] = None
    county: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class TaxInfo(BaseModel):
    f_skatt: bool = False
    vat_registered: bool = False
    employer_registered: bool = False

    model_config = ConfigDict(extra="ignore")


class FinancialSnapshot(BaseModel):
    """Key figures for one reporting period, in base currency units."""

    period: Optional[str] = None
    revenue: Optional[int] = None
    profit_after_financial: Optional[int] = None
    net_profit: Optional[int] = None
    total_assets: Optional[int] = None
    currency: str = "SEK"

    model_config = ConfigDict(extra="ignore")


class IndustryInfo(BaseModel):
    sni_code: Optional[str] = None
    sni_description: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    activity_description: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class CompanyRecord(BaseModel):
    """App/DB record shape for one registry entry; replaced wholesale on refetch."""

    org_number: str
    name: str = ""
    legal_form: Optional[str] = None
    status: Optional[str] = None
    registration_date: Optional[str] = None
    contact: ContactInfo = Field(default_factory=ContactInfo)
    tax_info: TaxInfo = Field(default_factory=TaxInfo)
    financials: Optional[FinancialSnapshot] = None
    industry: IndustryInfo = Field(default_factory=IndustryInfo)
    bankgiro_number: Optional[str] = None
    has_remarks: bool = False
    remarks: Optional[str] = None
    source_url: Optional[str] = None
    scraped_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")
