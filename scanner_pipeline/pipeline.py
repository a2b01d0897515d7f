"""
Ingestion run: discovery -> skip check -> retrieval -> classify/extract -> store -> count.

Candidates are processed one at a time, to completion, in discovery order. Any error
raised while handling a single candidate is logged and counted as `failed`; only
errors raised by discovery itself (origin page unreachable, browser gone) or by
the post-candidate page reset end the run.
"""
from __future__ import annotations
import time
from typing import Callable

from scanner_pipeline.config import MAX_CONTENT_CHARS, MAX_STORED_CODES, ScannerConfig
from scanner_pipeline.errors import ScannerError
from scanner_pipeline.logs import iso_ts, jlog
from scanner_pipeline.models import PDF_MIME, Candidate, ChapterRecord, IngestedDocument, RunSummary
from scanner_pipeline.parse.classifier import classify
from scanner_pipeline.parse.codes import extract_codes, extract_pdf_text, extract_text
from scanner_pipeline.storage import document_exists


class IngestionPipeline:
    def __init__(self, discovery, store, retriever, config: ScannerConfig, browser=None,
                 sleep: Callable[[float], None] = time.sleep, clock: Callable[[], float] = time.time):
        self.discovery = discovery
        self.store = store
        self.retriever = retriever
        self.config = config
        self.browser = browser
        self._sleep = sleep
        self._clock = clock

    # ---- per candidate ----
    def _already_stored(self, candidate: Candidate) -> bool:
        if candidate.chapter is not None:
            if not self.config.skip_existing_chapters:
                return False
            return document_exists(self.store, candidate.dedup_key,
                                   collection=self.config.chapters_collection, field="key")
        return document_exists(self.store, candidate.normalized_file_name,
                               collection=self.config.files_collection, field="name")

    def _store_document(self, candidate: Candidate, data: bytes) -> IngestedDocument:
        name = candidate.normalized_file_name
        category = classify(name)
        codes = extract_codes(extract_pdf_text(data)) if self.config.extract_pdf_codes else []
        path = f"{category.value}/{int(self._clock() * 1000)}_{name}"
        blob = self.store.put_blob(path, data, PDF_MIME)
        doc = IngestedDocument(
            name=name,
            size=len(data),
            category=category,
            url=self.store.public_url(blob),
            path=blob,
            uploadedAt=iso_ts(),
            source=self.config.ingest_source_tag,
            hsCodes=codes[:MAX_STORED_CODES],
            hsCodeCount=len(codes),
        )
        self.store.insert_record(self.config.files_collection, doc.to_record())
        return doc

    def _store_chapter(self, candidate: Candidate, data: bytes) -> ChapterRecord:
        ref = candidate.chapter
        markup = data.decode("utf-8", errors="replace")
        text = extract_text(markup)
        codes = extract_codes(markup)
        record = ChapterRecord(
            chapterId=ref.chapter_id,
            chapterName=ref.chapter_name,
            source=ref.source,
            content=text[:MAX_CONTENT_CHARS],
            hsCodes=codes[:MAX_STORED_CODES],
            hsCodeCount=len(codes),
            url=str(candidate.locator),
            scannedAt=iso_ts(),
        )
        fields = record.to_record()
        fields["key"] = ref.key
        self.store.upsert_record(self.config.chapters_collection, ref.key, fields)
        return record

    def process(self, candidate: Candidate, summary: RunSummary) -> str:
        """Handle one candidate and bump exactly one counter. Returns the outcome name."""
        key = candidate.dedup_key
        jlog("candidate_start", name=candidate.display_name, key=key)
        try:
            if self._already_stored(candidate):
                summary.skipped += 1
                jlog("candidate_skipped_exists", key=key)
                return "skipped"
            data = self.retriever.retrieve(candidate)
            if candidate.chapter is not None:
                rec = self._store_chapter(candidate, data)
                summary.saved += 1
                jlog("candidate_saved", key=key, text_chars=len(rec.content), hs_codes=rec.hsCodeCount)
                return "saved"
            doc = self._store_document(candidate, data)
            summary.uploaded += 1
            jlog("candidate_uploaded", key=key, category=doc.category.value,
                 size_mb=round(doc.size / 1024 / 1024, 2), hs_codes=doc.hsCodeCount, path=doc.path)
            return "uploaded"
        except ScannerError as e:
            summary.failed += 1
            jlog("candidate_failed", level="error", key=key, error_type=type(e).__name__, error=str(e))
            return "failed"
        except Exception as e:
            summary.failed += 1
            jlog("candidate_failed", level="error", key=key, error_type=type(e).__name__, error=str(e), unexpected=True)
            return "failed"

    # ---- run ----
    def _reset_page(self) -> None:
        """Return the browser to the origin page; one retry, then carry on unless the browser is gone."""
        for attempt in (1, 2):
            try:
                self.browser.ensure_at(self.config.link_reports_url, settle_ms=self.config.render_wait_ms)
                return
            except Exception as e:
                jlog("page_reset_failed", level="warn", attempt=attempt, error_type=type(e).__name__, error=str(e))
                if not self.browser.is_alive():
                    raise

    def _after_browser_candidate(self, outcome: str) -> None:
        # skipped candidates were never clicked
        if outcome == "skipped":
            return
        if self.browser is not None:
            self._reset_page()
        if self.config.candidate_delay_ms > 0:
            self._sleep(self.config.candidate_delay_ms / 1000.0)

    def _write_summary(self, summary: RunSummary) -> None:
        try:
            self.store.insert_record(self.config.logs_collection, summary.to_record())
        except Exception as e:
            jlog("summary_write_failed", level="warn", error=str(e))

    def run(self) -> RunSummary:
        summary = RunSummary(strategy=self.discovery.name)
        started = self._clock()
        completed = False
        jlog("scan_start", strategy=self.discovery.name)
        try:
            for candidate in self.discovery.discover():
                outcome = self.process(candidate, summary)
                if candidate.uses_browser:
                    self._after_browser_candidate(outcome)
            completed = True
        finally:
            summary.timestamp = iso_ts()
            summary.durationSeconds = round(self._clock() - started, 3)
            jlog("scan_complete" if completed else "scan_aborted", level="info" if completed else "error",
                 strategy=summary.strategy, duration_seconds=summary.durationSeconds, **summary.counters())
            self._write_summary(summary)
        return summary
