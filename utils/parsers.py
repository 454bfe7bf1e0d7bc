from __future__ import annotations

import re
from datetime import date, datetime
from typing import Dict, Optional


_POSTAL_RE = re.compile(r"(\d{3}\s?\d{2})\s+(.+?)$")
_APARTMENT_RE = re.compile(r"lghnr?\s?(\d{4})", re.IGNORECASE)
_AGE_RE = re.compile(r"(\d+)\s*år", re.IGNORECASE)
_READ_MORE_RE = re.compile(r"Läs mer", re.IGNORECASE)


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace and drop "Läs mer" link text; None for empty input."""
    if not text:
        return None
    cleaned = _READ_MORE_RE.sub("", " ".join(text.split())).strip()
    return cleaned or None


def parse_value(value: Optional[str]) -> Optional[float]:
    """Parse Swedish numeric strings such as '1 000 000', '1,5' or '25%'.

    Returns None for '-', empty or unparsable inputs. Percentages are
    returned as fractions.
    """
    if value is None:
        return None
    s = str(value).replace(",", ".").replace("\u2212", "-")
    s = "".join(s.split())
    if not s or s == "-":
        return None
    is_percent = s.endswith("%")
    if is_percent:
        s = s[:-1]
    try:
        num = float(s)
    except ValueError:
        return None
    return num / 100.0 if is_percent else num


def parse_thousands(value: Optional[str]) -> Optional[int]:
    """Parse an amount given in thousands ('1 234 tkr') into base units."""
    if not value:
        return None
    s = re.sub(r"tkr", "", str(value), flags=re.IGNORECASE)
    num = parse_value(s)
    if num is None:
        return None
    return int(round(num * 1000))


def parse_address(address: Optional[str]) -> Dict[str, Optional[str]]:
    """Split 'Storgatan 1, 123 45 Stockholm' into street, postal_code and city."""
    if not address:
        return {}
    text = " ".join(address.split())
    m = _POSTAL_RE.search(text)
    if not m:
        return {"street": clean_text(text)}
    postal_code = m.group(1).replace(" ", "")
    city = m.group(2).strip()
    street = text[: m.start()].strip()
    if street.endswith(","):
        street = street[:-1].strip()
    return {
        "street": street or None,
        "postal_code": postal_code,
        "city": city,
    }


def parse_apartment(address: Optional[str]) -> Optional[str]:
    """Return a normalized 'lgh NNNN' token found in an address."""
    if not address:
        return None
    m = _APARTMENT_RE.search(address)
    return f"lgh {m.group(1)}" if m else None


def parse_boolean(text: Optional[str]) -> bool:
    if not text:
        return False
    return text.strip().lower() in ("ja", "yes", "true")


def parse_age(text: Optional[str]) -> Optional[int]:
    """'35 år' -> 35"""
    if not text:
        return None
    m = _AGE_RE.search(text)
    return int(m.group(1)) if m else None


def parse_date(value: Optional[str]) -> Optional[str]:
    """Normalize 'YYYY-MM-DD', 'YYYY-MM' or 'DD/MM/YYYY' to an ISO date string."""
    if not value:
        return None
    s = value.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%Y%m%d"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return date.fromisoformat(f"{s}-01").isoformat()
    except ValueError:
        return None
