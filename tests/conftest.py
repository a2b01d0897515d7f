import pytest

from fakes import PORTAL, FakeStore
from scanner_pipeline.config import ScannerConfig
from scanner_pipeline.storage import StorageClient


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def local_store(tmp_path):
    return StorageClient(local_root=str(tmp_path / "store"), public_base_url="https://cdn.test")


@pytest.fixture
def config(tmp_path):
    return ScannerConfig(
        link_reports_url=f"{PORTAL}/links",
        candidate_delay_ms=0,
        render_wait_ms=0,
        download_dir=str(tmp_path / "downloads"),
        extract_pdf_codes=False,
    )
