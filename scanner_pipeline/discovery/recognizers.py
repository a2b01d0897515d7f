"""
Recognizers decide whether a page element is a document link.

Each variant is evaluated against an ElementSnapshot taken once per element, so
matching is plain Python and can be tested without a browser.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from scanner_pipeline.models import ElementSnapshot, is_roman_numeral

MAX_LABEL_CHARS = 50


@dataclass(frozen=True)
class ExactLabel:
    label: str

    def matches(self, el: ElementSnapshot) -> bool:
        return el.text.strip() == self.label


@dataclass(frozen=True)
class RomanNumeral:
    def matches(self, el: ElementSnapshot) -> bool:
        return is_roman_numeral(el.text)


@dataclass(frozen=True)
class ContainsToken:
    token: str

    def matches(self, el: ElementSnapshot) -> bool:
        return self.token in el.text


@dataclass(frozen=True)
class AttributeContains:
    attribute: str
    token: str

    def matches(self, el: ElementSnapshot) -> bool:
        return self.token in (el.attributes.get(self.attribute) or "")


Recognizer = Union[ExactLabel, RomanNumeral, ContainsToken, AttributeContains]

# Section numerals plus the Hebrew labels used for supplements, discount codes,
# framework orders and "download file" buttons.
DEFAULT_RECOGNIZERS: Tuple[Recognizer, ...] = (
    RomanNumeral(),
    ContainsToken("תוספת"),
    ContainsToken("קודי הנחה"),
    ContainsToken("צו מסגרת"),
    ContainsToken("הורדת קובץ"),
    AttributeContains("onclick", "Download"),
    AttributeContains("href", "Download"),
)


def matches_any(el: ElementSnapshot, recognizers: Iterable[Recognizer]) -> bool:
    text = (el.text or "").strip()
    if not text or len(text) >= MAX_LABEL_CHARS:
        return False
    return any(r.matches(el) for r in recognizers)
