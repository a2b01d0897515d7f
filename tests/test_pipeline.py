from pathlib import Path

import pytest

from fakes import PORTAL, FakeBrowser, make_fetcher, route_handler
from scanner_pipeline.discovery.dom_scan import DomScanDiscovery, InterceptDiscovery
from scanner_pipeline.discovery.enumeration import EnumerationDiscovery
from scanner_pipeline.discovery.manifest import ManifestDiscovery
from scanner_pipeline.errors import RetrievalError
from scanner_pipeline.extract_load.retrieval import Retriever
from scanner_pipeline.models import DownloadedFile, ElementSnapshot
from scanner_pipeline.pipeline import IngestionPipeline

PDF_2000 = b"%PDF-1.4\n" + b"0" * 1991


class CountingRetriever:
    def __init__(self, payload=PDF_2000):
        self.calls = []
        self.payload = payload

    def retrieve(self, candidate):
        self.calls.append(candidate.display_name)
        return self.payload


def manifest(*names):
    return ManifestDiscovery([(n, f"{PORTAL}/files/{n}.pdf") for n in names])


def test_existing_document_is_skipped_without_retrieval(fake_store, config):
    fake_store.insert_record("files", {"name": "Section_I.pdf"})
    retriever = CountingRetriever()

    summary = IngestionPipeline(manifest("I"), fake_store, retriever, config).run()

    assert summary.counters() == {"uploaded": 0, "saved": 0, "skipped": 1, "failed": 0}
    assert retriever.calls == []


def test_end_to_end_upload_and_undersized_failure(local_store, config):
    routes = {"/files/I.pdf": PDF_2000, "/files/II.pdf": b"x" * 500}
    with make_fetcher(route_handler(routes)) as fetcher:
        retriever = Retriever(fetcher, min_bytes=config.min_pdf_bytes)
        summary = IngestionPipeline(manifest("I", "II"), local_store, retriever, config, clock=lambda: 1700000000.0).run()

    assert (summary.uploaded, summary.skipped, summary.failed) == (1, 0, 1)
    docs = local_store.find_by_field("files", "source", "auto-scanner")
    assert len(docs) == 1
    doc = docs[0]
    assert doc["name"] == "Section_I.pdf"
    assert doc["size"] == 2000
    assert doc["category"] == "tariff"
    assert doc["type"] == "application/pdf"
    assert doc["path"] == "documents/tariff/1700000000000_Section_I.pdf"
    assert doc["url"] == "https://cdn.test/documents/tariff/1700000000000_Section_I.pdf"
    assert (Path(local_store.local_root) / doc["path"]).read_bytes() == PDF_2000

    logs = local_store.find_by_field("scanner_logs", "strategy", "manifest")
    assert len(logs) == 1
    assert (logs[0]["uploaded"], logs[0]["failed"]) == (1, 1)


def test_supplement_lands_in_its_category(fake_store, config):
    disc = ManifestDiscovery([("תוספת שלישית", f"{PORTAL}/s.pdf")])
    IngestionPipeline(disc, fake_store, CountingRetriever(), config, clock=lambda: 1.0).run()
    assert list(fake_store.blobs) == ["documents/supplement/1000_תוספת_שלישית.pdf"]
    assert fake_store.all("files")[0]["category"] == "supplement"


def test_store_failure_counts_as_failed(fake_store, config):
    fake_store.fail_collections = ["files"]
    summary = IngestionPipeline(manifest("I", "II"), fake_store, CountingRetriever(), config).run()
    assert summary.failed == 2
    assert summary.uploaded == 0


def test_existence_check_failure_proceeds_with_ingestion(fake_store, config):
    fake_store.fail_reads = True
    summary = IngestionPipeline(manifest("I"), fake_store, CountingRetriever(), config).run()
    assert summary.uploaded == 1


def test_summary_write_failure_is_swallowed(fake_store, config):
    fake_store.fail_collections = ["scanner_logs"]
    summary = IngestionPipeline(manifest("I"), fake_store, CountingRetriever(), config).run()
    assert summary.uploaded == 1
    assert fake_store.all("scanner_logs") == []


def test_unexpected_retrieval_error_is_contained(fake_store, config):
    class Exploding:
        def retrieve(self, candidate):
            if candidate.display_name == "I":
                raise ValueError("boom")
            return PDF_2000

    summary = IngestionPipeline(manifest("I", "II"), fake_store, Exploding(), config).run()
    assert (summary.uploaded, summary.failed) == (1, 1)


def test_dom_scan_run_with_browser(tmp_path, fake_store, config):
    staged = tmp_path / "Section_I.pdf"
    staged.write_bytes(PDF_2000)
    browser = FakeBrowser(
        elements=[ElementSnapshot("li", "I"), ElementSnapshot("li", "II"), ElementSnapshot("li", "III")],
        clicks={
            "I": DownloadedFile(path=str(staged)),
            "III": RetrievalError("capture timed out"),
        },
    )
    sleeps = []
    cfg = config.with_overrides(candidate_delay_ms=2000)
    with make_fetcher(route_handler({})) as fetcher:
        retriever = Retriever(fetcher, browser=browser)
        disc = DomScanDiscovery(browser, cfg.link_reports_url, render_wait_ms=0)
        summary = IngestionPipeline(disc, fake_store, retriever, cfg, browser=browser, sleep=sleeps.append).run()

    assert (summary.uploaded, summary.failed) == (1, 2)
    assert browser.clicked == ["I", "II", "III"]
    assert browser.ensure_calls == [cfg.link_reports_url] * 3
    assert sleeps == [2.0, 2.0, 2.0]
    assert not staged.exists()
    assert fake_store.all("files")[0]["name"] == "Section_I.pdf"


def test_intercept_run_fetches_captured_url_with_browser_cookies(fake_store, config):
    browser = FakeBrowser(elements=[ElementSnapshot("a", "V")], clicks={"V": f"{PORTAL}/LinkReport/Get?id=5"})
    with make_fetcher(route_handler({"/LinkReport/Get?id=5": PDF_2000})) as fetcher:
        retriever = Retriever(fetcher, browser=browser)
        disc = InterceptDiscovery(browser, config.link_reports_url, render_wait_ms=0)
        summary = IngestionPipeline(disc, fake_store, retriever, config, browser=browser).run()

    assert summary.uploaded == 1
    assert fetcher.http.cookies.get("sid") == "abc"
    assert fake_store.all("files")[0]["name"] == "Section_V.pdf"


def _chapter_page(code="0101.21.00.00"):
    return f"<html><body><h1>פרק 1</h1><p>{'בעלי חיים חיים ' * 20}</p><td>{code}</td></body></html>"


def _enumeration(fetcher):
    routes = {"import": {"detail": f"{PORTAL}/d?customsItemId={{id}}"}}
    return EnumerationDiscovery(fetcher, routes, ["import"], [(1, 1)], min_text_chars=100, delay_ms=0)


def test_chapter_is_upserted_by_key(fake_store, config):
    with make_fetcher(route_handler({"/d?customsItemId=1": _chapter_page()})) as fetcher:
        retriever = Retriever(fetcher)
        first = IngestionPipeline(_enumeration(fetcher), fake_store, retriever, config).run()
        second = IngestionPipeline(_enumeration(fetcher), fake_store, retriever, config).run()

    assert first.saved == 1 and second.saved == 1
    chapters = fake_store.all("tariff_chapters")
    assert len(chapters) == 1
    rec = chapters[0]
    assert rec["key"] == "import_1"
    assert rec["source"] == "import"
    assert rec["chapterId"] == "1"
    assert rec["hsCodes"] == ["0101210000"]
    assert rec["hsCodeCount"] == 1
    assert "<" not in rec["content"]
    assert rec["content"].startswith("פרק 1")


def test_existing_chapters_skipped_only_when_enabled(fake_store, config):
    fake_store.upsert_record("tariff_chapters", "import_1", {"key": "import_1"})
    cfg = config.with_overrides(skip_existing_chapters=True)
    with make_fetcher(route_handler({"/d?customsItemId=1": _chapter_page()})) as fetcher:
        summary = IngestionPipeline(_enumeration(fetcher), fake_store, Retriever(fetcher), cfg).run()
    assert summary.counters() == {"uploaded": 0, "saved": 0, "skipped": 1, "failed": 0}


def test_skipped_browser_candidate_is_not_clicked_or_paced(fake_store, config):
    fake_store.insert_record("files", {"name": "Section_I.pdf"})
    browser = FakeBrowser(elements=[ElementSnapshot("li", "I")], clicks={"I": f"{PORTAL}/never.pdf"})
    sleeps = []
    cfg = config.with_overrides(candidate_delay_ms=2000)
    with make_fetcher(route_handler({})) as fetcher:
        retriever = Retriever(fetcher, browser=browser)
        disc = DomScanDiscovery(browser, cfg.link_reports_url, render_wait_ms=0)
        summary = IngestionPipeline(disc, fake_store, retriever, cfg, browser=browser, sleep=sleeps.append).run()

    assert summary.skipped == 1
    assert browser.clicked == []
    assert browser.ensure_calls == []
    assert sleeps == []


def test_page_reset_failure_retries_and_continues(fake_store, config):
    browser = FakeBrowser(elements=[ElementSnapshot("li", "I"), ElementSnapshot("li", "II")])
    browser.reset_errors = [RuntimeError("navigation timeout"), RuntimeError("navigation timeout")]
    with make_fetcher(route_handler({})) as fetcher:
        retriever = Retriever(fetcher, browser=browser)
        disc = DomScanDiscovery(browser, config.link_reports_url, render_wait_ms=0)
        summary = IngestionPipeline(disc, fake_store, retriever, config, browser=browser).run()

    assert browser.clicked == ["I", "II"]
    # two failed attempts after I, one clean reset after II
    assert browser.ensure_calls == [config.link_reports_url] * 3
    assert summary.failed == 2
    assert len(fake_store.all("scanner_logs")) == 1


def test_page_reset_with_dead_browser_aborts_but_writes_summary(fake_store, config):
    browser = FakeBrowser(elements=[ElementSnapshot("li", "I"), ElementSnapshot("li", "II")])
    browser.reset_errors = [RuntimeError("browser has been closed")]
    browser.alive = False
    with make_fetcher(route_handler({})) as fetcher:
        retriever = Retriever(fetcher, browser=browser)
        disc = DomScanDiscovery(browser, config.link_reports_url, render_wait_ms=0)
        with pytest.raises(RuntimeError, match="closed"):
            IngestionPipeline(disc, fake_store, retriever, config, browser=browser).run()

    assert browser.clicked == ["I"]
    logs = fake_store.all("scanner_logs")
    assert len(logs) == 1
    assert logs[0]["failed"] == 1
