from scanner_pipeline.config import ScannerConfig, load_config, parse_id_ranges


def test_parse_id_ranges():
    assert parse_id_ranges("1-3, 10 ,x, 9-7,") == [(1, 3), (10, 10), (7, 9)]
    assert parse_id_ranges("") == []


def test_load_config_defaults(monkeypatch):
    for key in ("STRATEGY", "CUSTOMS_BASE", "LINK_REPORTS_URL", "ENUM_ID_RANGES", "ENUM_SOURCES",
                "TAB_FALLBACK", "S3_BUCKET", "MIN_PDF_BYTES", "MAX_REDIRECTS"):
        monkeypatch.delenv(key, raising=False)
    cfg = load_config()
    assert cfg.strategy == "dom_scan"
    assert cfg.link_reports_url.endswith("/CustomspilotWeb/he/CustomsBook/Home/LinkReports")
    assert cfg.enum_id_ranges == ((1, 120),)
    assert cfg.min_pdf_bytes == 1000
    assert cfg.validate() == []


def test_load_config_from_env(monkeypatch):
    monkeypatch.setenv("CUSTOMS_BASE", "http://portal.test/Web/")
    monkeypatch.setenv("STRATEGY", "Enumerate")
    monkeypatch.setenv("ENUM_SOURCES", "import, export")
    monkeypatch.setenv("ENUM_ID_RANGES", "5-6")
    monkeypatch.setenv("ENUM_MIN_TEXT_CHARS", "not-a-number")
    monkeypatch.setenv("SKIP_EXISTING_CHAPTERS", "yes")
    cfg = load_config()
    assert cfg.strategy == "enumerate"
    assert cfg.enum_sources == ("import", "export")
    assert cfg.enum_id_ranges == ((5, 6),)
    assert cfg.enum_min_text_chars == 1500
    assert cfg.skip_existing_chapters is True
    assert cfg.source_routes["export"]["detail"] == (
        "http://portal.test/Web/he/CustomsBook/Export/ExportCustomsItemDetails?customsItemId={id}"
    )
    assert not cfg.uses_browser()


def test_validate_reports_problems():
    cfg = ScannerConfig(strategy="crawl", tab_fallback="never", enum_sources=("import", "moon"), max_redirects=0)
    problems = cfg.validate()
    assert len(problems) == 4
    assert ScannerConfig(strategy="manifest").validate() == ["STRATEGY=manifest requires MANIFEST_PATH"]


def test_with_overrides_ignores_none():
    cfg = ScannerConfig()
    assert cfg.with_overrides(strategy=None) is cfg
    assert cfg.with_overrides(strategy="intercept").strategy == "intercept"
