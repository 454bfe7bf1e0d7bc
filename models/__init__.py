from .company_record import CompanyRecord, ContactInfo, TaxInfo, FinancialSnapshot, IndustryInfo
from .person_record import PersonRecord, PersonAddress, BOARD_ROLES
from .fetch_outcome import FetchOutcome, FetchStatus

__all__ = [
    "CompanyRecord",
    "ContactInfo",
    "TaxInfo",
    "FinancialSnapshot",
    "IndustryInfo",
    "PersonRecord",
    "PersonAddress",
    "BOARD_ROLES",
    "FetchOutcome",
    "FetchStatus",
]
