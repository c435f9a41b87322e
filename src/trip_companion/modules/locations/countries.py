from __future__ import annotations

import re
import unicodedata

# Lower-case, diacritics stripped; values are ccTLD-style region codes.
_COUNTRY_CODES: dict[str, str] = {
    "austria": "at",
    "osterreich": "at",
    "republic of austria": "at",
    "germany": "de",
    "deutschland": "de",
    "alemania": "de",
    "spain": "es",
    "espana": "es",
    "italy": "it",
    "italia": "it",
    "france": "fr",
    "francia": "fr",
    "switzerland": "ch",
    "schweiz": "ch",
    "suisse": "ch",
    "svizzera": "ch",
    "suiza": "ch",
    "belgium": "be",
    "belgique": "be",
    "belgie": "be",
    "belgica": "be",
    "netherlands": "nl",
    "nederland": "nl",
    "paises bajos": "nl",
    "holanda": "nl",
    "portugal": "pt",
    "uk": "gb",
    "united kingdom": "gb",
    "reino unido": "gb",
    "great britain": "gb",
    "gran bretana": "gb",
    "poland": "pl",
    "polska": "pl",
    "polonia": "pl",
    "czech republic": "cz",
    "czechia": "cz",
    "cesko": "cz",
    "republica checa": "cz",
    "hungary": "hu",
    "magyarorszag": "hu",
    "hungria": "hu",
    "slovakia": "sk",
    "slovensko": "sk",
    "eslovaquia": "sk",
    "slovenia": "si",
    "slovenija": "si",
    "eslovenia": "si",
    "croatia": "hr",
    "hrvatska": "hr",
    "croacia": "hr",
}

_ALPHA2_RE = re.compile(r"^[A-Za-z]{2}$")


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value.lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(ascii_only.split())


def country_code(name: str | None) -> str | None:
    """``"Österreich"`` -> ``"at"``, ``"DE"`` -> ``"de"``; unknown names -> None."""
    if not name or not name.strip():
        return None
    trimmed = name.strip()
    if _ALPHA2_RE.match(trimmed):
        return trimmed.lower()
    return _COUNTRY_CODES.get(_fold(trimmed))
