"""
Headless browser session (playwright, sync API) for the link-reports page.

The page exposes documents only behind client-side handlers, so a "document link" is
resolved by clicking it and watching what the click produces. CaptureWindow is that
observation: it subscribes on entry, buffers matching responses, downloads and new
tabs in arrival order, and unsubscribes on exit. Nothing outside a window mutates
the buffers.
"""
from __future__ import annotations
import re
import time
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

from playwright.sync_api import sync_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from scanner_pipeline.errors import DiscoveryMiss
from scanner_pipeline.logs import jlog
from scanner_pipeline.models import ClickTarget, DownloadedFile, ElementSnapshot, Locator

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]
VIEWPORT = {"width": 1920, "height": 1080}
POLL_MS = 100
# after the first capture, keep listening until nothing new arrives for this long
QUIET_MS = 500

SNAPSHOT_JS = """(selector) => Array.from(document.querySelectorAll(selector)).map(el => ({
  tag: el.tagName.toLowerCase(),
  text: (el.innerText || '').trim(),
  attributes: {
    onclick: el.getAttribute('onclick') || '',
    href: el.getAttribute('href') || '',
    class: typeof el.className === 'string' ? el.className : ''
  }
}))"""


def _same_page(a: str, b: str) -> bool:
    return (a or "").rstrip("/") == (b or "").rstrip("/")


def _same_route(a: str, b: str) -> bool:
    """Same host and path, query and fragment ignored."""
    pa, pb = urlsplit(a or ""), urlsplit(b or "")
    return pa.netloc.lower() == pb.netloc.lower() and pa.path.rstrip("/").lower() == pb.path.rstrip("/").lower()


def is_document_response(url: str, content_type: str, tokens: Sequence[str], origin: Optional[str] = None) -> bool:
    """PDF by content type or URL, or a download-route token on a non-HTML response.

    Responses for the origin route (reloads, postbacks, XHR) never count.
    """
    if origin and _same_route(url, origin):
        return False
    ct = (content_type or "").lower()
    u = (url or "").lower()
    if "pdf" in ct or "pdf" in u:
        return True
    if "text/html" in ct:
        return False
    return any(t and t in u for t in tokens)


class CaptureWindow:
    def __init__(self, page, context, download_tokens: Sequence[str], origin: Optional[str] = None):
        self._page = page
        self._context = context
        self._tokens = tuple(download_tokens)
        self._origin = origin
        self.responses: List[str] = []
        self.downloads: List[Any] = []
        self.new_tabs: List[Any] = []

    def _on_response(self, response) -> None:
        try:
            ct = response.headers.get("content-type", "")
        except PlaywrightError:
            ct = ""
        if is_document_response(response.url, ct, self._tokens, origin=self._origin):
            self.responses.append(response.url)

    def _on_download(self, download) -> None:
        self.downloads.append(download)

    def _on_page(self, page) -> None:
        self.new_tabs.append(page)
        page.on("download", self._on_download)

    def __enter__(self) -> "CaptureWindow":
        self._context.on("response", self._on_response)
        self._context.on("page", self._on_page)
        self._page.on("download", self._on_download)
        return self

    def __exit__(self, *exc) -> None:
        self._context.remove_listener("response", self._on_response)
        self._context.remove_listener("page", self._on_page)
        self._page.remove_listener("download", self._on_download)
        for tab in self.new_tabs:
            try:
                tab.remove_listener("download", self._on_download)
            except PlaywrightError:
                pass

    def has_capture(self) -> bool:
        return bool(self.responses or self.downloads or self.new_tabs)

    def _seen(self) -> int:
        return len(self.responses) + len(self.downloads) + len(self.new_tabs)

    def wait(self, timeout_ms: int, quiet_ms: int = QUIET_MS) -> bool:
        """Wait for the first capture, then until nothing new arrives for quiet_ms.

        A buffered download ends the wait at once. False when nothing arrived within
        timeout_ms.
        """
        deadline = time.monotonic() + timeout_ms / 1000.0
        while not self.has_capture():
            if time.monotonic() >= deadline:
                return False
            self._page.wait_for_timeout(POLL_MS)
        seen, quiet = self._seen(), 0
        while quiet < quiet_ms and not self.downloads and time.monotonic() < deadline:
            self._page.wait_for_timeout(POLL_MS)
            now = self._seen()
            quiet = 0 if now != seen else quiet + POLL_MS
            seen = now
        return True


class BrowserSession:
    def __init__(self, headless: bool = True, user_agent: Optional[str] = None,
                 download_dir: str = "downloads", nav_timeout_ms: int = 60_000,
                 capture_timeout_ms: int = 30_000, tab_fallback: str = "window",
                 download_tokens: Sequence[str] = ("download",), clear_downloads: bool = False):
        self.headless = headless
        self.user_agent = user_agent
        self.download_dir = Path(download_dir)
        self.nav_timeout_ms = nav_timeout_ms
        self.capture_timeout_ms = capture_timeout_ms
        self.tab_fallback = tab_fallback
        self.download_tokens = tuple(download_tokens)
        self.clear_downloads = clear_downloads
        self._pw = None
        self._browser = None
        self._context = None
        self.page = None

    def __enter__(self) -> "BrowserSession":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _prepare_download_dir(self) -> None:
        self.download_dir.mkdir(parents=True, exist_ok=True)
        if not self.clear_downloads:
            return
        for p in self.download_dir.iterdir():
            if p.is_dir():
                shutil.rmtree(p, ignore_errors=True)
            else:
                p.unlink(missing_ok=True)

    def start(self) -> None:
        self._prepare_download_dir()
        jlog("browser_launch", headless=self.headless)
        self._pw = sync_playwright().start()
        try:
            self._browser = self._pw.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            self._context = self._browser.new_context(
                accept_downloads=True,
                viewport=VIEWPORT,
                user_agent=self.user_agent,
            )
            self.page = self._context.new_page()
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        for name, closer in (("context", self._context), ("browser", self._browser)):
            if closer is None:
                continue
            try:
                closer.close()
            except PlaywrightError as e:
                jlog("browser_close_failed", level="warn", part=name, error=str(e))
        self._context = None
        self._browser = None
        self.page = None
        if self._pw is not None:
            self._pw.stop()
            self._pw = None

    # ---- navigation ----
    def navigate(self, url: str, wait_until: str = "networkidle", timeout_ms: Optional[int] = None) -> None:
        self.page.goto(url, wait_until=wait_until, timeout=timeout_ms or self.nav_timeout_ms)

    def settle(self, ms: int) -> None:
        if ms > 0:
            self.page.wait_for_timeout(ms)

    def current_url(self) -> str:
        return self.page.url

    def is_alive(self) -> bool:
        if self._browser is None or self.page is None:
            return False
        try:
            return self._browser.is_connected() and not self.page.is_closed()
        except PlaywrightError:
            return False

    def ensure_at(self, origin: str, settle_ms: int = 0) -> bool:
        """Navigate back to origin if the page drifted. True when a navigation happened."""
        if _same_page(self.page.url, origin):
            return False
        jlog("page_drift_reset", current=self.page.url, origin=origin)
        self.navigate(origin)
        self.settle(settle_ms)
        return True

    def open_tabs(self) -> List[str]:
        return [p.url for p in self._context.pages]

    def cookies(self) -> List[Dict[str, Any]]:
        return self._context.cookies()

    def content(self) -> str:
        return self.page.content()

    def screenshot(self, path: str) -> None:
        self.page.screenshot(path=path, full_page=True)

    # ---- DOM ----
    def snapshot(self, selector: str = "a, button, li, span, div") -> List[ElementSnapshot]:
        raw = self.page.evaluate(SNAPSHOT_JS, selector) or []
        return [
            ElementSnapshot(tag=r.get("tag", ""), text=r.get("text", ""), attributes=dict(r.get("attributes") or {}))
            for r in raw
        ]

    def click_text(self, text: str, selector: str = "a, button, li, span") -> None:
        exact = re.compile(rf"^\s*{re.escape(text)}\s*$")
        loc = self.page.locator(selector).filter(has_text=exact)
        if loc.count() == 0:
            raise DiscoveryMiss(f"no element with text {text!r}")
        loc.first.click(timeout=self.nav_timeout_ms)

    def capture(self) -> CaptureWindow:
        return CaptureWindow(self.page, self._context, self.download_tokens, origin=self.page.url)

    # ---- click resolution ----
    def _save_download(self, download) -> DownloadedFile:
        name = Path(download.suggested_filename or "download.pdf").name
        dest = self.download_dir / name
        download.save_as(str(dest))
        return DownloadedFile(path=str(dest), url=download.url)

    def _tab_url(self, tab, origin: str) -> Optional[str]:
        try:
            tab.wait_for_load_state("domcontentloaded", timeout=self.capture_timeout_ms)
        except (PlaywrightTimeoutError, PlaywrightError):
            pass
        url = tab.url
        if url and url != "about:blank" and not _same_page(url, origin):
            return url
        return None

    def _resolve(self, window: CaptureWindow, target: ClickTarget, origin: str) -> Optional[Locator]:
        if target.capture == "download" and window.downloads:
            return self._save_download(window.downloads[-1])
        if window.responses:
            return window.responses[-1]
        if window.downloads:
            return self._save_download(window.downloads[-1])
        if self.tab_fallback == "off":
            return None
        for tab in reversed(window.new_tabs):
            url = self._tab_url(tab, origin)
            if url:
                return url
        if self.tab_fallback == "any":
            for url in reversed(self.open_tabs()):
                if url and url != "about:blank" and not _same_page(url, origin):
                    return url
        return None

    def click_and_capture(self, target: ClickTarget) -> Locator:
        origin = self.page.url
        with self.capture() as window:
            self.click_text(target.text, target.selector)
            jlog("clicked", text=target.text)
            window.wait(self.capture_timeout_ms)
            try:
                resolved = self._resolve(window, target, origin)
            finally:
                for tab in window.new_tabs:
                    try:
                        tab.close()
                    except PlaywrightError:
                        pass
        if resolved is None:
            raise DiscoveryMiss(f"click on {target.text!r} produced no document")
        jlog("click_resolved", text=target.text, locator=str(resolved))
        return resolved
