"""
Manifest strategy: a hand-maintained, ordered list of known document URLs.

File format (MANIFEST_PATH), JSON:

    [
      {"name": "I", "url": "https://.../Section_I.pdf"},
      {"name": "תוספת שלישית", "url": "https://.../third_supplement.pdf"}
    ]

Two-element arrays ["I", "https://..."] are accepted too.
"""
from __future__ import annotations
import json
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple

from scanner_pipeline.discovery.base import BaseDiscovery
from scanner_pipeline.logs import jlog
from scanner_pipeline.models import Candidate


def load_manifest(path: str) -> List[Tuple[str, str]]:
    with open(Path(path), "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"manifest {path} must be a JSON list")
    entries: List[Tuple[str, str]] = []
    for i, item in enumerate(raw):
        if isinstance(item, dict):
            name, url = item.get("name"), item.get("url")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            name, url = item
        else:
            raise ValueError(f"manifest {path} entry {i} is neither an object nor a pair")
        if not name or not url:
            raise ValueError(f"manifest {path} entry {i} needs both name and url")
        entries.append((str(name).strip(), str(url).strip()))
    return entries


class ManifestDiscovery(BaseDiscovery):
    name = "manifest"

    def __init__(self, entries: Sequence[Tuple[str, str]]):
        self.entries = list(entries)

    def discover(self) -> Iterator[Candidate]:
        jlog("manifest_discovery", entries=len(self.entries))
        for display_name, url in self.entries:
            yield Candidate(display_name=display_name, locator=url)
