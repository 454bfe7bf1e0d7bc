from __future__ import annotations

import re
from typing import Optional


_ORG_IN_TEXT_RE = re.compile(r"(\d{6})-?(\d{4})")


class InvalidOrgNumberError(ValueError):
    def __init__(self, value: object):
        super().__init__(f"Invalid organization number: {value!r} (expected XXXXXX-XXXX)")
        self.value = value


def normalize_org_number(value: Optional[str]) -> str:
    """Return the canonical 'NNNNNN-NNNN' form of a Swedish organization number.

    Separators and stray characters are dropped; anything that does not
    reduce to exactly ten digits raises InvalidOrgNumberError.
    """
    if value is None:
        raise InvalidOrgNumberError(value)
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    if len(digits) != 10 or not digits.isascii():
        raise InvalidOrgNumberError(value)
    return f"{digits[:6]}-{digits[6:]}"


def is_valid_org_number(value: Optional[str]) -> bool:
    try:
        normalize_org_number(value)
    except InvalidOrgNumberError:
        return False
    return True


def extract_org_number(text: Optional[str]) -> Optional[str]:
    """Find the first organization number in free text ('org.nr: 556631-3788')."""
    if not text:
        return None
    m = _ORG_IN_TEXT_RE.search(text)
    if not m:
        return None
    return f"{m.group(1)}-{m.group(2)}"
