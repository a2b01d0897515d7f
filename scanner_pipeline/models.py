"""Shared scanner data types."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

PDF_MIME = "application/pdf"

_ROMAN_RE = re.compile(r"^(?=[IVX])X{0,3}(IX|IV|V?I{0,3})$")
_SLUG_DROP_RE = re.compile(r"[^a-zA-Z0-9א-ת\s]")
_WS_RE = re.compile(r"\s+")


class Category(str, Enum):
    TARIFF = "tariff"
    SUPPLEMENT = "supplement"
    PROCEDURE = "procedure"
    AGREEMENT = "agreement"


class ChapterSource(str, Enum):
    IMPORT = "import"
    EXPORT = "export"
    AUTONOMY = "autonomy"


def is_roman_numeral(text: str) -> bool:
    return bool(_ROMAN_RE.match((text or "").strip()))


def normalize_file_name(display_name: str, ext: str = ".pdf") -> str:
    """Deterministic dedup key for a display label.

    "I" -> "Section_I.pdf", "תוספת שלישית (WTO)" -> "תוספת_שלישית_WTO.pdf".
    """
    label = (display_name or "").strip()
    if is_roman_numeral(label):
        return f"Section_{label}{ext}"
    slug = _SLUG_DROP_RE.sub("", label).strip()
    slug = _WS_RE.sub("_", slug)
    return f"{slug or 'document'}{ext}"


@dataclass(frozen=True)
class ElementSnapshot:
    """One DOM element as seen once by the browser: tag, visible text, a few attributes."""

    tag: str
    text: str
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ClickTarget:
    """Click the element showing exactly `text`, then observe what the click produced."""

    text: str
    selector: str = "a, button, li, span"
    capture: str = "download"  # "download" | "response"


@dataclass(frozen=True)
class DownloadedFile:
    path: str
    url: Optional[str] = None


Locator = Union[str, ClickTarget, DownloadedFile]


@dataclass(frozen=True)
class ChapterRef:
    source: ChapterSource
    chapter_id: str
    chapter_name: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.source.value}_{self.chapter_id}"


@dataclass(frozen=True)
class Candidate:
    """A prospective document, alive for one ingestion attempt."""

    display_name: str
    locator: Locator
    chapter: Optional[ChapterRef] = None
    prefetched: Optional[str] = None

    @property
    def normalized_file_name(self) -> str:
        return normalize_file_name(self.display_name)

    @property
    def dedup_key(self) -> str:
        if self.chapter is not None:
            return self.chapter.key
        return self.normalized_file_name

    @property
    def uses_browser(self) -> bool:
        return isinstance(self.locator, ClickTarget)


@dataclass
class IngestedDocument:
    name: str
    size: int
    category: Category
    url: str
    path: str
    uploadedAt: str
    source: str
    type: str = PDF_MIME
    hsCodes: List[str] = field(default_factory=list)
    hsCodeCount: int = 0

    def to_record(self) -> Dict[str, Any]:
        rec = asdict(self)
        rec["category"] = self.category.value
        return rec


@dataclass
class ChapterRecord:
    chapterId: str
    chapterName: Optional[str]
    source: ChapterSource
    content: str
    hsCodes: List[str]
    hsCodeCount: int
    url: Optional[str]
    scannedAt: str

    def to_record(self) -> Dict[str, Any]:
        rec = asdict(self)
        rec["source"] = self.source.value
        return rec


@dataclass
class RunSummary:
    strategy: str
    uploaded: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0
    timestamp: Optional[str] = None
    durationSeconds: float = 0.0

    def counters(self) -> Dict[str, int]:
        return {"uploaded": self.uploaded, "saved": self.saved, "skipped": self.skipped, "failed": self.failed}

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)
