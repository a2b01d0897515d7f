"""
Enumeration strategy: sweep chapter detail pages by numeric customsItemId.

The portal has no "not found" signal; an unknown id renders an empty shell page. A
probe is therefore accepted only when its flat text reaches min_text_chars
(inclusive). Ids come from the source's index page (when it lists them) followed by
an opaque list of id ranges known to work. Every request after the first waits
delay_ms.
"""
from __future__ import annotations
import re
import time
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from scanner_pipeline.discovery.base import BaseDiscovery
from scanner_pipeline.errors import RetrievalError
from scanner_pipeline.logs import jlog
from scanner_pipeline.models import Candidate, ChapterRef, ChapterSource
from scanner_pipeline.parse.codes import extract_text

RE_ITEM_ID = re.compile(r"customsItemId=(\d+)")
# Index rows: id, 10-digit chapter code, then the description cell.
RE_INDEX_ROW = re.compile(
    r"customsItemId=(\d+)[^>]*>(\d{10})</span>(?:(?!customsItemId=).)*?hidden-sm-inline[^>]*>([^<]+)",
    re.DOTALL,
)


def parse_index(markup: str) -> List[Tuple[str, Optional[str]]]:
    """(id, name) pairs in page order; name is None when the row has no description."""
    names: Dict[str, str] = {}
    for cid, _code, desc in RE_INDEX_ROW.findall(markup or ""):
        names.setdefault(cid, desc.strip())
    out: List[Tuple[str, Optional[str]]] = []
    seen = set()
    for cid in RE_ITEM_ID.findall(markup or ""):
        if cid in seen:
            continue
        seen.add(cid)
        out.append((cid, names.get(cid) or None))
    return out


class EnumerationDiscovery(BaseDiscovery):
    name = "enumerate"

    def __init__(self, fetcher, routes: Dict[str, Dict[str, str]], sources: Sequence[str],
                 id_ranges: Sequence[Tuple[int, int]], min_text_chars: int = 1500,
                 delay_ms: int = 500, sleep: Callable[[float], None] = time.sleep):
        self.fetcher = fetcher
        self.routes = routes
        self.sources = [ChapterSource(s) for s in sources]
        self.id_ranges = list(id_ranges)
        self.min_text_chars = min_text_chars
        self.delay_ms = delay_ms
        self._sleep = sleep
        self._requests = 0

    def accepts(self, text: str) -> bool:
        return len(text) >= self.min_text_chars

    def _get_text(self, url: str) -> str:
        if self._requests and self.delay_ms > 0:
            self._sleep(self.delay_ms / 1000.0)
        self._requests += 1
        return self.fetcher.fetch_text(url)

    def seed_ids(self, source: ChapterSource) -> List[Tuple[str, Optional[str]]]:
        route = self.routes.get(source.value) or {}
        ids: List[Tuple[str, Optional[str]]] = []
        index_url = route.get("index")
        if index_url:
            try:
                ids = parse_index(self._get_text(index_url))
                jlog("index_ids", source=source.value, url=index_url, found=len(ids))
            except RetrievalError as e:
                jlog("index_fetch_failed", level="warn", source=source.value, url=index_url, error=str(e))
        seen = {cid for cid, _ in ids}
        for lo, hi in self.id_ranges:
            for n in range(lo, hi + 1):
                cid = str(n)
                if cid not in seen:
                    seen.add(cid)
                    ids.append((cid, None))
        return ids

    def _warmup(self, source: ChapterSource) -> None:
        url = (self.routes.get(source.value) or {}).get("warmup")
        if not url:
            return
        try:
            self._get_text(url)
        except RetrievalError as e:
            jlog("warmup_failed", level="warn", source=source.value, url=url, error=str(e))

    def discover(self) -> Iterator[Candidate]:
        for source in self.sources:
            route = self.routes.get(source.value) or {}
            template = route.get("detail")
            if not template:
                jlog("source_route_missing", level="warn", source=source.value)
                continue
            self._warmup(source)
            ids = self.seed_ids(source)
            jlog("enumeration_start", source=source.value, ids=len(ids), min_text_chars=self.min_text_chars)
            accepted = 0
            for cid, name in ids:
                url = template.format(id=cid)
                try:
                    markup = self._get_text(url)
                except RetrievalError as e:
                    jlog("chapter_probe_failed", level="warn", source=source.value, chapter_id=cid, error=str(e))
                    continue
                text = extract_text(markup)
                if not self.accepts(text):
                    jlog("chapter_probe_empty", level="debug", source=source.value, chapter_id=cid, text_chars=len(text))
                    continue
                accepted += 1
                ref = ChapterRef(source=source, chapter_id=cid, chapter_name=name)
                yield Candidate(display_name=name or ref.key, locator=url, chapter=ref, prefetched=markup)
            jlog("enumeration_done", source=source.value, probed=len(ids), accepted=accepted)
