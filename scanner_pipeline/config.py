"""
Scanner configuration.

All knobs come from environment variables (cron / container friendly) and are
frozen into a ScannerConfig built once at process entry by load_config(). The
config object is passed explicitly to every component; nothing reads the
environment after startup.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

CUSTOMS_BASE_DEFAULT = "https://shaarolami-query.customs.mof.gov.il/CustomspilotWeb"
STRATEGIES = ("manifest", "dom_scan", "intercept", "enumerate")
TAB_FALLBACK_MODES = ("window", "any", "off")
CHAPTER_SOURCES = ("import", "export", "autonomy")

# Observed store limit for a single text field.
MAX_CONTENT_CHARS = 900_000
MAX_STORED_CODES = 1000


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    if v is None or not v.strip():
        return default
    return v.strip()


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    try:
        return int(raw) if raw is not None and raw.strip() else default
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    try:
        return float(raw) if raw is not None and raw.strip() else default
    except ValueError:
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "t", "yes", "y", "on")


def _env_list(key: str, default: str) -> List[str]:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        raw = default
    return [s.strip() for s in raw.split(",") if s.strip()]


def parse_id_ranges(raw: str) -> List[Tuple[int, int]]:
    """Parse "1-120,300,410-415" into inclusive (start, end) pairs. Bad items are dropped."""
    out: List[Tuple[int, int]] = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                a, b = part.split("-", 1)
                lo, hi = int(a), int(b)
            else:
                lo = hi = int(part)
        except ValueError:
            continue
        if lo > hi:
            lo, hi = hi, lo
        out.append((lo, hi))
    return out


def default_source_routes(base: str) -> Dict[str, Dict[str, str]]:
    """Detail-page templates and index pages per chapter source."""
    book = f"{base}/he/CustomsBook"
    return {
        "import": {
            "detail": f"{book}/Import/ImportCustomsItemDetails?customsItemId={{id}}",
            "index": f"{book}/Import/FirstAddition",
            "warmup": f"{book}/Import/CustomsTaarifEntry",
        },
        "export": {
            "detail": f"{book}/Export/ExportCustomsItemDetails?customsItemId={{id}}",
            "index": f"{book}/Export/CustomsTaarifEntry",
            "warmup": f"{book}/Export/CustomsTaarifEntry",
        },
        "autonomy": {
            "detail": f"{book}/Autonomy/AutonomyCustomsItemDetails?customsItemId={{id}}",
            "index": f"{book}/Autonomy/CustomsTaarifEntry",
            "warmup": f"{book}/Autonomy/CustomsTaarifEntry",
        },
    }


@dataclass(frozen=True)
class ScannerConfig:
    # source
    customs_base: str = CUSTOMS_BASE_DEFAULT
    link_reports_url: str = f"{CUSTOMS_BASE_DEFAULT}/he/CustomsBook/Home/LinkReports"
    strategy: str = "dom_scan"

    # store
    s3_bucket: Optional[str] = None
    aws_region: Optional[str] = None
    store_root: str = "data/store"
    blob_prefix: str = "documents"
    records_prefix: str = "records"
    public_base_url: Optional[str] = None
    files_collection: str = "files"
    chapters_collection: str = "tariff_chapters"
    logs_collection: str = "scanner_logs"
    ingest_source_tag: str = "auto-scanner"

    # http
    http_timeout: float = 30.0
    http_retries: int = 1
    http_backoff: float = 0.6
    http_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    max_redirects: int = 10
    min_pdf_bytes: int = 1000

    # browser
    headless: bool = True
    nav_timeout_ms: int = 60_000
    render_wait_ms: int = 5_000
    capture_timeout_ms: int = 30_000
    candidate_delay_ms: int = 2_000
    download_dir: str = "downloads"
    clear_downloads: bool = True
    screenshot: bool = False
    tab_fallback: str = "window"
    download_tokens: Tuple[str, ...] = ("download", "getfile")

    # discovery
    manifest_path: Optional[str] = None
    enum_sources: Tuple[str, ...] = ("import",)
    enum_id_ranges: Tuple[Tuple[int, int], ...] = ((1, 120),)
    enum_min_text_chars: int = 1500
    enum_delay_ms: int = 500
    skip_existing_chapters: bool = False
    source_routes: Dict[str, Dict[str, str]] = field(default_factory=lambda: default_source_routes(CUSTOMS_BASE_DEFAULT))

    # parsing
    extract_pdf_codes: bool = True

    def uses_browser(self) -> bool:
        return self.strategy in ("dom_scan", "intercept")

    def validate(self) -> List[str]:
        problems: List[str] = []
        if self.strategy not in STRATEGIES:
            problems.append(f"unsupported STRATEGY={self.strategy!r}; expected one of {STRATEGIES}")
        if self.tab_fallback not in TAB_FALLBACK_MODES:
            problems.append(f"unsupported TAB_FALLBACK={self.tab_fallback!r}; expected one of {TAB_FALLBACK_MODES}")
        bad = [s for s in self.enum_sources if s not in CHAPTER_SOURCES]
        if bad:
            problems.append(f"unsupported ENUM_SOURCES entries: {bad}")
        if self.strategy == "manifest" and not self.manifest_path:
            problems.append("STRATEGY=manifest requires MANIFEST_PATH")
        if self.max_redirects < 1:
            problems.append("MAX_REDIRECTS must be >= 1")
        return problems

    def with_overrides(self, **changes) -> "ScannerConfig":
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes) if changes else self


def load_config() -> ScannerConfig:
    base = (_env("CUSTOMS_BASE", CUSTOMS_BASE_DEFAULT) or CUSTOMS_BASE_DEFAULT).rstrip("/")
    ranges = parse_id_ranges(_env("ENUM_ID_RANGES", "1-120") or "")
    return ScannerConfig(
        customs_base=base,
        link_reports_url=_env("LINK_REPORTS_URL", f"{base}/he/CustomsBook/Home/LinkReports"),
        strategy=(_env("STRATEGY", "dom_scan") or "dom_scan").lower(),
        s3_bucket=_env("S3_BUCKET"),
        aws_region=_env("AWS_REGION"),
        store_root=_env("STORE_ROOT", "data/store"),
        blob_prefix=(_env("BLOB_PREFIX", "documents") or "documents").strip("/"),
        records_prefix=(_env("RECORDS_PREFIX", "records") or "records").strip("/"),
        public_base_url=_env("PUBLIC_BASE_URL"),
        http_timeout=_env_float("HTTP_TIMEOUT", 30.0),
        http_retries=_env_int("HTTP_RETRIES", 1),
        http_backoff=_env_float("HTTP_BACKOFF", 0.6),
        http_user_agent=_env("HTTP_USER_AGENT", ScannerConfig.http_user_agent),
        max_redirects=_env_int("MAX_REDIRECTS", 10),
        min_pdf_bytes=_env_int("MIN_PDF_BYTES", 1000),
        headless=_env_bool("HEADLESS", True),
        nav_timeout_ms=_env_int("NAV_TIMEOUT_MS", 60_000),
        render_wait_ms=_env_int("RENDER_WAIT_MS", 5_000),
        capture_timeout_ms=_env_int("CAPTURE_TIMEOUT_MS", 30_000),
        candidate_delay_ms=_env_int("CANDIDATE_DELAY_MS", 2_000),
        download_dir=_env("DOWNLOAD_DIR", "downloads"),
        clear_downloads=_env_bool("CLEAR_DOWNLOADS", True),
        screenshot=_env_bool("SCREENSHOT", False),
        tab_fallback=(_env("TAB_FALLBACK", "window") or "window").lower(),
        download_tokens=tuple(t.lower() for t in _env_list("DOWNLOAD_TOKENS", "download,getfile")),
        manifest_path=_env("MANIFEST_PATH"),
        enum_sources=tuple(s.lower() for s in _env_list("ENUM_SOURCES", "import")),
        enum_id_ranges=tuple(ranges),
        enum_min_text_chars=_env_int("ENUM_MIN_TEXT_CHARS", 1500),
        enum_delay_ms=_env_int("ENUM_DELAY_MS", 500),
        skip_existing_chapters=_env_bool("SKIP_EXISTING_CHAPTERS", False),
        source_routes=default_source_routes(base),
        extract_pdf_codes=_env_bool("EXTRACT_PDF_CODES", True),
    )
