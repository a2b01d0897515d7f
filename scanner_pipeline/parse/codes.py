"""
HS code and flat-text extraction for tariff pages and PDFs.

Best-effort projections only: malformed markup or an unreadable PDF degrades to
partial or empty output, never to an exception.
"""
from __future__ import annotations
import io
import re
import warnings
from typing import List

import pdfplumber
from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

_SEP = r"[.\- ]"
# Grouped shapes first so a grouped code is not split into shorter runs.
HS_CODE_RE = re.compile(
    r"(?<!\d)(?:"
    rf"\d{{4}}{_SEP}\d{{2}}{_SEP}\d{{2}}{_SEP}\d{{2}}"
    rf"|\d{{2}}{_SEP}\d{{2}}{_SEP}\d{{6}}"
    rf"|\d{{4}}{_SEP}\d{{2}}{_SEP}\d{{4}}"
    r"|\d{10}"
    r")(?!\d)"
)
_STRIP_SEP_RE = re.compile(_SEP)
_WS_RE = re.compile(r"\s+")


def extract_codes(raw_markup: str) -> List[str]:
    """Return 10-digit codes in first-seen order, without duplicates."""
    seen = set()
    out: List[str] = []
    for m in HS_CODE_RE.finditer(raw_markup or ""):
        code = _STRIP_SEP_RE.sub("", m.group(0))
        if len(code) != 10 or code in seen:
            continue
        seen.add(code)
        out.append(code)
    return out


def _flatten_once(markup: str) -> str:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = soup.get_text(" ")
    return _WS_RE.sub(" ", text.replace("\xa0", " ")).strip()


def extract_text(raw_markup: str) -> str:
    """Plain-text projection of markup.

    Decoded entities can form new tags ("&lt;b&gt;"), so the flattening is repeated
    until it stops changing; each changing pass is strictly shorter.
    """
    text = _flatten_once(raw_markup or "")
    while True:
        again = _flatten_once(text)
        if again == text:
            return text
        text = again


def extract_pdf_text(data: bytes) -> str:
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception:
        return ""
    return _WS_RE.sub(" ", " ".join(pages)).strip()
