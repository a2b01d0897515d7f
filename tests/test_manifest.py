import json

import pytest

from scanner_pipeline.discovery.manifest import ManifestDiscovery, load_manifest


def test_load_manifest_objects_and_pairs(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps([
        {"name": "I", "url": "http://portal.test/I.pdf"},
        ["תוספת שנייה", " http://portal.test/s2.pdf "],
    ], ensure_ascii=False), encoding="utf-8")
    entries = load_manifest(str(path))
    assert entries == [("I", "http://portal.test/I.pdf"), ("תוספת שנייה", "http://portal.test/s2.pdf")]

    found = list(ManifestDiscovery(entries).discover())
    assert [c.normalized_file_name for c in found] == ["Section_I.pdf", "תוספת_שנייה.pdf"]
    assert found[0].locator == "http://portal.test/I.pdf"


@pytest.mark.parametrize("raw", [
    {"name": "I"},
    [{"name": "I"}],
    ["just-a-string"],
])
def test_load_manifest_rejects_bad_entries(tmp_path, raw):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(raw), encoding="utf-8")
    with pytest.raises(ValueError):
        load_manifest(str(path))
