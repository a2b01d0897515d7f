from __future__ import annotations

from typing import Iterator

from scanner_pipeline.models import Candidate


class BaseDiscovery:
    """Produces candidates lazily, in the order they should be ingested. Never persists."""

    name: str = "base"
    uses_browser: bool = False

    def discover(self) -> Iterator[Candidate]:
        raise NotImplementedError
