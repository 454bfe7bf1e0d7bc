"""Field extraction from rendered merinfo.se pages.

Everything here works on HTML snapshots (``page.content()``) and never touches
the browser, so markup changes on the source stay contained in this module
and the navigation state machine can be tested without real pages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from models.company_record import (
    CompanyRecord,
    ContactInfo,
    FinancialSnapshot,
    IndustryInfo,
    TaxInfo,
)
from models.person_record import PersonAddress, PersonRecord
from services.org_number import extract_org_number
from utils.parsers import (
    clean_text,
    parse_address,
    parse_age,
    parse_apartment,
    parse_boolean,
    parse_date,
    parse_thousands,
)


SEARCH_CARD_SELECTOR = 'div[class*="mi-shadow-dark-blue"]'
COMPANY_LINK_SELECTOR = 'a[href*="/foretag/"]'
PERSON_LINK_SELECTOR = 'a[href*="/person/"]'
NAME_SELECTOR = "h1 span.namn"
REMARKS_SELECTOR = ".mi-text-green, .mi-text-red, .mi-text-orange"
SEARCH_LIMIT_TEXT = "Oops, din sökgräns är nådd!"
FLAG_TEXT = "anmärka på"

FINANCIAL_LABELS = {
    "revenue": "Omsättning",
    "profit_after_financial": "Res. e. fin",
    "net_profit": "Årets resultat",
    "total_assets": "Summa tillgångar",
}


@dataclass(frozen=True)
class SearchMatch:
    url: str
    name: Optional[str]
    flagged: bool = False
    flag_reason: Optional[str] = None


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _text(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    return clean_text(node.get_text(" "))


def _select_text(root: Tag, selector: str) -> Optional[str]:
    return _text(root.select_one(selector))


def _heading(root: Tag, contains: str, name: str = "h3") -> Optional[Tag]:
    for h in root.find_all(name):
        if contains in h.get_text(" "):
            return h
    return None


def _table_value(root: Tag, header: str) -> Optional[str]:
    for th in root.find_all("th"):
        if header in th.get_text(" "):
            return _text(th.find_next_sibling("td"))
    return None


def _labelled_span(root: Tag, label: str) -> Optional[str]:
    for span in root.find_all("span"):
        # Only leaf-level labels; wrapping spans also "contain" the label text
        if span.find("span") is None and label in span.get_text(" "):
            return _text(span.find_next_sibling("span"))
    return None


def is_search_limit_page(html: str) -> bool:
    return SEARCH_LIMIT_TEXT in _soup(html).get_text(" ")


def find_search_match(html: str, org_number: str, base_url: str) -> Optional[SearchMatch]:
    """Locate the result card for ``org_number`` on a search page."""
    soup = _soup(html)
    for card in soup.select(SEARCH_CARD_SELECTOR):
        if not any(extract_org_number(_text(p)) == org_number for p in card.find_all("p")):
            continue
        link = card.select_one(COMPANY_LINK_SELECTOR)
        name = _text(link)
        href = link.get("href") if link is not None else None
        flag = None
        for span in card.find_all("span"):
            classes = " ".join(span.get("class") or [])
            if "mi-text-red" in classes and FLAG_TEXT in span.get_text(" "):
                flag = _text(span)
                break
        if flag is not None:
            return SearchMatch(
                url=urljoin(base_url, href) if href else "",
                name=name,
                flagged=True,
                flag_reason=f"Company {name or org_number} has warning remarks: {flag}",
            )
        if not href:
            return None
        return SearchMatch(url=urljoin(base_url, href), name=name)
    return None


def _extract_financials(soup: BeautifulSoup) -> Optional[FinancialSnapshot]:
    period_heading = _heading(soup, "Nyckeltal 20")
    if period_heading is None:
        return None
    period = (_text(period_heading) or "").replace("Nyckeltal", "").strip() or None
    values = {field: parse_thousands(_labelled_span(soup, label)) for field, label in FINANCIAL_LABELS.items()}
    return FinancialSnapshot(period=period, currency="SEK", **values)


def _extract_industry(soup: BeautifulSoup) -> IndustryInfo:
    industry = IndustryInfo()
    sni_heading = _heading(soup, "Svensk näringsgrensindelning")
    sni_text = _text(sni_heading.find_next_sibling("div")) if sni_heading else None
    if sni_text:
        parts = sni_text.split(" - ", 1)
        if len(parts) == 2:
            industry.sni_code = parts[0].strip()
            industry.sni_description = parts[1].strip()
        else:
            industry.sni_description = sni_text

    branch_heading = _heading(soup, "Bransch")
    if branch_heading is not None:
        block = branch_heading.find_next_sibling("div")
        if block is not None:
            industry.categories = [c for c in (_text(a) for a in block.find_all("a")) if c]

    activity_heading = _heading(soup, "Verksamhetsbeskrivning")
    if activity_heading is not None:
        block = activity_heading.find_next_sibling("div")
        if block is not None:
            industry.activity_description = _select_text(block, "div[class*='expanded']")
    return industry


def extract_company(html: str, url: str, org_number: str) -> CompanyRecord:
    """Build a CompanyRecord from a company detail page; absent fields stay None."""
    soup = _soup(html)
    name = _select_text(soup, NAME_SELECTOR) or ""

    contact = ContactInfo(
        phone=_select_text(soup, 'a[href^="tel:"]'),
        municipality=_table_value(soup, "Kommunsäte:"),
        county=_table_value(soup, "Länssäte:"),
    )
    address_text = _select_text(soup, "address")
    if address_text:
        address = address_text.replace(name, "").strip() if name else address_text
        parsed = parse_address(address)
        contact.address = address or None
        contact.postal_code = parsed.get("postal_code")
        contact.city = parsed.get("city")

    remarks = _select_text(soup, REMARKS_SELECTOR)
    registered = _table_value(soup, "Registrerat:")

    return CompanyRecord(
        org_number=org_number,
        name=name,
        legal_form=_table_value(soup, "Bolagsform:"),
        status=_table_value(soup, "Status:"),
        registration_date=parse_date(registered) or registered,
        contact=contact,
        tax_info=TaxInfo(
            f_skatt=parse_boolean(_table_value(soup, "F-Skatt:")),
            vat_registered=parse_boolean(_table_value(soup, "Momsregistrerad:")),
            employer_registered=parse_boolean(_table_value(soup, "Arbetsgivare:")),
        ),
        financials=_extract_financials(soup),
        industry=_extract_industry(soup),
        bankgiro_number=_table_value(soup, "Bankgiro:"),
        has_remarks=bool(remarks),
        remarks=remarks,
        source_url=url,
    )


def find_person_links(html: str, role: str, base_url: str) -> List[str]:
    """Absolute person page URLs listed next to a role cell, in page order."""
    soup = _soup(html)
    links: List[str] = []
    for td in soup.find_all("td"):
        if role not in td.get_text(" "):
            continue
        for sibling in td.find_next_siblings("td"):
            for a in sibling.select(PERSON_LINK_SELECTOR):
                href = a.get("href")
                if href:
                    full = urljoin(base_url, href)
                    if full not in links:
                        links.append(full)
    return links


def extract_person(html: str, url: str, org_number: str, role: str) -> PersonRecord:
    soup = _soup(html)

    age = None
    for icon in soup.find_all("i"):
        if "fa-address-book" in " ".join(icon.get("class") or []):
            age = parse_age(_text(icon.find_next_sibling("span")))
            break

    address = PersonAddress()
    address_text = _select_text(soup, "#oversikt address")
    if address_text:
        apartment = parse_apartment(address_text)
        stripped = address_text
        if apartment:
            # Page text may say "lghnr 1201"; drop whichever spelling is present
            for token in (apartment, apartment.replace("lgh ", "lghnr "), apartment.replace("lgh ", "lgh")):
                stripped = stripped.replace(token, "")
        parsed = parse_address(", ".join(p.strip() for p in stripped.split(",") if p.strip()))
        address = PersonAddress(
            street=parsed.get("street"),
            apartment=apartment,
            postal_code=parsed.get("postal_code"),
            city=parsed.get("city"),
        )

    return PersonRecord(
        org_number=org_number,
        name=_select_text(soup, NAME_SELECTOR) or "",
        role=role,
        age=age,
        phone=_select_text(soup, 'a[href^="tel:"]'),
        address=address,
        profile_url=url,
    )
