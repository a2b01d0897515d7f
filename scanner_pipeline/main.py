"""
customs-scanner entry point.

Exit codes: 0 run completed (per-candidate failures are counted, not fatal),
2 configuration or store preflight failure, 1 unhandled exception.
"""
from __future__ import annotations
import sys
import argparse
from contextlib import ExitStack
from pathlib import Path
from typing import List, Optional

from scanner_pipeline.config import CHAPTER_SOURCES, STRATEGIES, ScannerConfig, load_config
from scanner_pipeline.discovery.base import BaseDiscovery
from scanner_pipeline.discovery.dom_scan import DomScanDiscovery, InterceptDiscovery
from scanner_pipeline.discovery.enumeration import EnumerationDiscovery
from scanner_pipeline.discovery.manifest import ManifestDiscovery, load_manifest
from scanner_pipeline.extract_load.browser import BrowserSession
from scanner_pipeline.extract_load.http_fetch import HttpFetcher
from scanner_pipeline.extract_load.retrieval import Retriever
from scanner_pipeline.logs import jlog
from scanner_pipeline.pipeline import IngestionPipeline
from scanner_pipeline.storage import StorageClient


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="customs-scanner", description="Ingest customs tariff documents and chapters.")
    p.add_argument("--strategy", choices=STRATEGIES, help="discovery strategy (overrides STRATEGY)")
    p.add_argument("--sources", help=f"comma list of chapter sources for enumerate, from {','.join(CHAPTER_SOURCES)}")
    p.add_argument("--dry-config", action="store_true", help="validate configuration and exit")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> ScannerConfig:
    sources = None
    if args.sources:
        sources = tuple(s.strip().lower() for s in args.sources.split(",") if s.strip())
    return load_config().with_overrides(strategy=args.strategy, enum_sources=sources)


def build_store(cfg: ScannerConfig) -> StorageClient:
    return StorageClient(
        s3_bucket=cfg.s3_bucket,
        aws_region=cfg.aws_region,
        local_root=cfg.store_root,
        blob_prefix=cfg.blob_prefix,
        records_prefix=cfg.records_prefix,
        public_base_url=cfg.public_base_url,
    )


def build_discovery(cfg: ScannerConfig, fetcher: HttpFetcher, browser: Optional[BrowserSession]) -> BaseDiscovery:
    if cfg.strategy == "manifest":
        return ManifestDiscovery(load_manifest(cfg.manifest_path))
    if cfg.strategy == "enumerate":
        return EnumerationDiscovery(
            fetcher,
            routes=cfg.source_routes,
            sources=cfg.enum_sources,
            id_ranges=cfg.enum_id_ranges,
            min_text_chars=cfg.enum_min_text_chars,
            delay_ms=cfg.enum_delay_ms,
        )
    cls = InterceptDiscovery if cfg.strategy == "intercept" else DomScanDiscovery
    return cls(
        browser,
        cfg.link_reports_url,
        render_wait_ms=cfg.render_wait_ms,
        screenshot_dir=cfg.download_dir if cfg.screenshot else None,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    cfg = build_config(args)
    problems = cfg.validate()
    if problems:
        for msg in problems:
            jlog("config_invalid", level="error", problem=msg)
        return 2
    if cfg.strategy == "manifest" and not Path(cfg.manifest_path).is_file():
        jlog("config_invalid", level="error", problem=f"MANIFEST_PATH not found: {cfg.manifest_path}")
        return 2
    if args.dry_config:
        jlog("config_ok", strategy=cfg.strategy, uses_browser=cfg.uses_browser(), s3_bucket=cfg.s3_bucket)
        return 0

    store = build_store(cfg)
    if cfg.s3_bucket and not store.preflight():
        return 2

    with ExitStack() as stack:
        fetcher = stack.enter_context(HttpFetcher(
            timeout=cfg.http_timeout,
            user_agent=cfg.http_user_agent,
            max_redirects=cfg.max_redirects,
            retries=cfg.http_retries,
            backoff=cfg.http_backoff,
        ))
        browser = None
        if cfg.uses_browser():
            browser = stack.enter_context(BrowserSession(
                headless=cfg.headless,
                user_agent=cfg.http_user_agent,
                download_dir=cfg.download_dir,
                nav_timeout_ms=cfg.nav_timeout_ms,
                capture_timeout_ms=cfg.capture_timeout_ms,
                tab_fallback=cfg.tab_fallback,
                download_tokens=cfg.download_tokens,
                clear_downloads=cfg.clear_downloads,
            ))
        discovery = build_discovery(cfg, fetcher, browser)
        retriever = Retriever(fetcher, min_bytes=cfg.min_pdf_bytes, browser=browser)
        jlog("starting_scanner", strategy=cfg.strategy, use_browser=bool(browser), s3_bucket=cfg.s3_bucket)
        summary = IngestionPipeline(discovery, store, retriever, cfg, browser=browser).run()
    jlog("exiting_scanner", summary=summary.to_record())
    return 0


def run() -> None:
    try:
        rc = main()
    except Exception as e:
        jlog("unhandled_exception", level="error", error_type=type(e).__name__, error=str(e))
        rc = 1
    sys.exit(rc)


if __name__ == "__main__":
    run()
