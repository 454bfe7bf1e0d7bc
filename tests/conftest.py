from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


BASE_URL = "https://www.merinfo.se"
ORG = "556631-3788"
COMPANY_PATH = "/foretag/aktiebolag/5566313788-acme-ab/abc123"
ANNA_PATH = "/person/anna-andersson/p1"
BO_PATH = "/person/bo-berg/p2"
CIA_PATH = "/person/cia-carlsson/p3"


def pytest_configure():
    # Ensure project root is on sys.path for absolute imports like 'scraper.extraction'
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    # Set test environment knobs
    os.environ.setdefault("RUN_ENV", "test")


def search_page(*cards: str) -> str:
    return "<html><body><main>" + "".join(cards) + "</main></body></html>"


def search_card(org: str = ORG, name: str = "Acme AB", href: str = COMPANY_PATH, remark: str = "") -> str:
    flag = f'<span class="mi-text-red font-bold">{remark}</span>' if remark else ""
    return (
        '<div class="mi-shadow-dark-blue-20 rounded p-4">'
        f'<h2><a href="{href}">{name}</a></h2>'
        f"<p>{org}</p>"
        f"{flag}"
        "</div>"
    )


QUOTA_PAGE = (
    "<html><body><div class='modal'><h2>Oops, din sökgräns är nådd!</h2>"
    "<p>Logga in för att fortsätta söka.</p></div></body></html>"
)

COMPANY_PAGE = f"""
<html><body>
<h1><span class="namn">Acme AB</span></h1>
<address>Acme AB Storgatan 1, 123 45 Stockholm</address>
<a href="tel:081234567">08-123 45 67</a>
<table>
  <tr><th>Bolagsform:</th><td>Aktiebolag</td></tr>
  <tr><th>Status:</th><td>Aktiv</td></tr>
  <tr><th>Registrerat:</th><td>2004-08-13</td></tr>
  <tr><th>Kommunsäte:</th><td>Stockholm</td></tr>
  <tr><th>Länssäte:</th><td>Stockholms län</td></tr>
  <tr><th>F-Skatt:</th><td>Ja</td></tr>
  <tr><th>Momsregistrerad:</th><td>Ja</td></tr>
  <tr><th>Arbetsgivare:</th><td>Nej</td></tr>
  <tr><th>Bankgiro:</th><td>123-4567</td></tr>
</table>
<h3>Nyckeltal 2023-12</h3>
<div><span>Omsättning</span><span>12 345 tkr</span></div>
<div><span>Res. e. fin</span><span>1 000</span></div>
<div><span>Årets resultat</span><span>−250</span></div>
<div><span>Summa tillgångar</span><span>5 500</span></div>
<h3>Svensk näringsgrensindelning</h3>
<div>62010 - Dataprogrammering</div>
<h3>Bransch</h3>
<div><a href="/bransch/it">IT-konsulter</a> <a href="/bransch/mjukvara">Programvara</a></div>
<h3>Verksamhetsbeskrivning</h3>
<div><div class="text-sm expanded">Utveckling och försäljning av mjukvara.</div></div>
<table class="board">
  <tr><td>VD</td><td><a href="{ANNA_PATH}">Anna Andersson</a></td></tr>
  <tr><td>Ordförande</td><td><a href="{BO_PATH}">Bo Berg</a></td></tr>
  <tr><td>Styrelseledamot</td><td><a href="{ANNA_PATH}">Anna Andersson</a><a href="{CIA_PATH}">Cia Carlsson</a></td></tr>
</table>
</body></html>
"""


def person_page(name: str, age: int = 52, address: str = "Storgatan 1 lgh 1201, 123 45 Stockholm") -> str:
    return f"""
<html><body>
<h1><span class="namn">{name}</span></h1>
<div><i class="fa fa-address-book"></i><span>{age} år</span></div>
<a href="tel:0701234567">070-123 45 67</a>
<div id="oversikt"><address>{address}</address></div>
</body></html>
"""


@pytest.fixture
def merinfo_site() -> dict:
    """URL -> HTML for one company that is found, unflagged and has a board."""
    return {
        f"{BASE_URL}/search?q={ORG}": search_page(search_card()),
        f"{BASE_URL}{COMPANY_PATH}": COMPANY_PAGE,
        f"{BASE_URL}{ANNA_PATH}": person_page("Anna Andersson"),
        f"{BASE_URL}{BO_PATH}": person_page("Bo Berg", age=61, address="Kungsgatan 5, 411 19 Göteborg"),
        f"{BASE_URL}{CIA_PATH}": person_page("Cia Carlsson", age=44, address="Lilla torg 2, 211 34 Malmö"),
    }
