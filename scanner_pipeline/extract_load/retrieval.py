"""Turn a candidate's locator into raw bytes."""
from __future__ import annotations
import os
from pathlib import Path
from typing import Optional

from scanner_pipeline.errors import RetrievalError
from scanner_pipeline.extract_load.http_fetch import HttpFetcher
from scanner_pipeline.logs import jlog
from scanner_pipeline.models import Candidate, ClickTarget, DownloadedFile, Locator


class Retriever:
    def __init__(self, fetcher: HttpFetcher, min_bytes: int = 1000, browser=None):
        self.fetcher = fetcher
        self.min_bytes = min_bytes
        self.browser = browser

    def retrieve(self, candidate: Candidate) -> bytes:
        if candidate.chapter is not None:
            if candidate.prefetched is not None:
                return candidate.prefetched.encode("utf-8")
            return self.fetcher.fetch_text(str(candidate.locator)).encode("utf-8")
        return self.retrieve_locator(candidate.locator)

    def retrieve_locator(self, locator: Locator) -> bytes:
        if isinstance(locator, ClickTarget):
            if self.browser is None:
                raise RetrievalError(f"click target {locator.text!r} needs a browser session")
            resolved = self.browser.click_and_capture(locator)
            if isinstance(resolved, str):
                self.fetcher.adopt_cookies(self.browser.cookies())
            return self.retrieve_locator(resolved)
        if isinstance(locator, DownloadedFile):
            return self._read_download(locator)
        return self.fetcher.fetch_bytes(str(locator), min_bytes=self.min_bytes)

    def _read_download(self, handle: DownloadedFile) -> bytes:
        p = Path(handle.path)
        try:
            data = p.read_bytes()
        except OSError as e:
            raise RetrievalError(f"staged download unreadable: {p}: {e}") from e
        finally:
            discard_download(handle)
        if len(data) < self.min_bytes:
            raise RetrievalError(f"payload too small ({len(data)} < {self.min_bytes} bytes) for {p.name}")
        return data


def discard_download(handle: Optional[DownloadedFile]) -> None:
    if handle is None:
        return
    try:
        os.unlink(handle.path)
    except FileNotFoundError:
        pass
    except OSError as e:
        jlog("download_cleanup_failed", level="warn", path=handle.path, error=str(e))
