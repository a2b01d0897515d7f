"""
HTTP transport for document and chapter retrieval.

Redirects are followed by hand (the portal answers downloads with 301/302 chains and
the final hop is what gets stored), capped at max_redirects. Transport errors are
retried with jittered exponential backoff; status and size problems are not.
"""
from __future__ import annotations
import time
import random
from typing import Any, Callable, Dict, Iterable, Optional
from urllib.parse import urljoin

import httpx

from scanner_pipeline.errors import RetrievalError
from scanner_pipeline.logs import jlog

REDIRECT_CODES = (301, 302, 303, 307, 308)


def backoff_sleep(base: float, attempt: int, cap: float = 60.0, sleep: Callable[[float], None] = time.sleep) -> None:
    jitter = random.uniform(0.8, 1.2)
    s = min(cap, base * (2 ** attempt)) * jitter
    sleep(s)


class HttpFetcher:
    def __init__(self, timeout: float = 30.0, user_agent: str = "customs-scanner/1.0",
                 max_redirects: int = 10, retries: int = 1, backoff: float = 0.6,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.max_redirects = max_redirects
        self.retries = max(0, retries)
        self.backoff = backoff
        self._sleep = sleep
        self.http = httpx.Client(
            timeout=timeout,
            headers={"User-Agent": user_agent, "Accept": "*/*"},
            follow_redirects=False,
            transport=transport,
        )

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.http.close()

    def adopt_cookies(self, cookies: Iterable[Dict[str, Any]]) -> None:
        """Copy browser cookies (playwright dicts) so downloads share the browser session."""
        for c in cookies or []:
            name, value = c.get("name"), c.get("value")
            if not name or value is None:
                continue
            self.http.cookies.set(name, value, domain=c.get("domain") or "", path=c.get("path") or "/")

    def _send(self, url: str, headers: Optional[Dict[str, str]]) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return self.http.get(url, headers=headers or {})
            except httpx.TransportError as e:
                if attempt >= self.retries:
                    kind = "timeout" if isinstance(e, httpx.TimeoutException) else "transport_error"
                    raise RetrievalError(f"{kind} fetching {url}: {e}") from e
                jlog("fetch_retry", level="warn", url=url, attempt=attempt + 1, error=str(e))
                backoff_sleep(self.backoff, attempt, sleep=self._sleep)
                attempt += 1

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        current = url
        for hop in range(self.max_redirects + 1):
            resp = self._send(current, headers)
            if resp.status_code not in REDIRECT_CODES:
                return resp
            location = resp.headers.get("location")
            if not location:
                raise RetrievalError(f"redirect without location from {current} (status {resp.status_code})")
            nxt = urljoin(str(resp.url), location)
            jlog("fetch_redirect", level="debug", src=current, dst=nxt, status=resp.status_code, hop=hop + 1)
            current = nxt
        raise RetrievalError(f"more than {self.max_redirects} redirects starting at {url}")

    def _checked(self, url: str) -> httpx.Response:
        resp = self.get(url)
        if not (200 <= resp.status_code < 300):
            raise RetrievalError(f"status {resp.status_code} for {resp.url}")
        return resp

    def fetch_bytes(self, url: str, min_bytes: int = 1000) -> bytes:
        resp = self._checked(url)
        data = resp.content
        if len(data) < min_bytes:
            raise RetrievalError(f"payload too small ({len(data)} < {min_bytes} bytes) for {resp.url}")
        return data

    def fetch_text(self, url: str) -> str:
        return self._checked(url).text
