"""Map a document name to its category. First matching row wins."""
from __future__ import annotations

from typing import Tuple

from scanner_pipeline.models import Category

CATEGORY_KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (Category.SUPPLEMENT, ("תוספת", "supplement", "wto")),
    (Category.PROCEDURE, ("נוהל", "פקודה", "procedure")),
    (Category.AGREEMENT, ("הסכם", "agreement")),
)


def classify(file_name: str) -> Category:
    name = (file_name or "").lower()
    for category, tokens in CATEGORY_KEYWORDS:
        if any(tok in name for tok in tokens):
            return category
    return Category.TARIFF
