"""
DOM-scan and response-interception strategies for the link-reports page.

Both load the origin page once, snapshot candidate elements, and yield one click
target per distinct document name in DOM order. They differ only in how the click is
resolved later: browser-native download (dom_scan) or the last matching network
response (intercept).
"""
from __future__ import annotations
from pathlib import Path
from typing import Iterator, Optional, Sequence

from scanner_pipeline.discovery.base import BaseDiscovery
from scanner_pipeline.discovery.recognizers import DEFAULT_RECOGNIZERS, Recognizer, matches_any
from scanner_pipeline.logs import jlog
from scanner_pipeline.models import Candidate, ClickTarget

SCAN_SELECTOR = "a, button, li, span, div"
CLICK_SELECTOR = "a, button, li, span"


class DomScanDiscovery(BaseDiscovery):
    name = "dom_scan"
    uses_browser = True
    capture = "download"

    def __init__(self, browser, origin_url: str, recognizers: Sequence[Recognizer] = DEFAULT_RECOGNIZERS,
                 render_wait_ms: int = 5_000, screenshot_dir: Optional[str] = None):
        self.browser = browser
        self.origin_url = origin_url
        self.recognizers = tuple(recognizers)
        self.render_wait_ms = render_wait_ms
        self.screenshot_dir = screenshot_dir

    def discover(self) -> Iterator[Candidate]:
        jlog("origin_load", url=self.origin_url)
        self.browser.navigate(self.origin_url)
        self.browser.settle(self.render_wait_ms)
        if self.screenshot_dir:
            shot = str(Path(self.screenshot_dir) / "page.png")
            self.browser.screenshot(shot)
            jlog("screenshot_saved", path=shot)

        elements = self.browser.snapshot(SCAN_SELECTOR)
        matches = [el for el in elements if matches_any(el, self.recognizers)]
        jlog("dom_scan_matches", scanned=len(elements), matched=len(matches),
             labels=[f"{el.text} ({el.tag})" for el in matches])
        if not matches:
            sample = [el.text for el in elements if el.text and len(el.text) < 100][:30]
            jlog("dom_scan_no_matches", level="warn", sample=sample)
            return

        seen = set()
        for el in matches:
            text = el.text.strip()
            cand = Candidate(
                display_name=text,
                locator=ClickTarget(text=text, selector=CLICK_SELECTOR, capture=self.capture),
            )
            if cand.normalized_file_name in seen:
                continue
            seen.add(cand.normalized_file_name)
            yield cand


class InterceptDiscovery(DomScanDiscovery):
    name = "intercept"
    capture = "response"
