from __future__ import annotations


class ScraperError(Exception):
    """Base class for classified fetch failures."""

    retryable: bool = False

    def __init__(self, message: str, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class NoSuchCompanyError(ScraperError):
    def __init__(self, org_number: str):
        super().__init__(f"Company {org_number} not found", retryable=False)
        self.org_number = org_number


class FlaggedCompanyError(ScraperError):
    def __init__(self, org_number: str, reason: str):
        super().__init__(reason, retryable=False)
        self.org_number = org_number
        self.reason = reason


class SearchLimitError(ScraperError):
    """The source refuses further searches for now (quota page shown)."""

    def __init__(self, message: str = "Search limit reached on merinfo.se"):
        super().__init__(message, retryable=False)


class TransientScrapeError(ScraperError):
    retryable = True
