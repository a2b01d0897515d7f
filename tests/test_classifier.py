import pytest

from scanner_pipeline.models import Category
from scanner_pipeline.parse.classifier import classify


@pytest.mark.parametrize("name,expected", [
    ("תוספת שלישית WTO.pdf", Category.SUPPLEMENT),
    ("נוהל יבוא.pdf", Category.PROCEDURE),
    ("הסכם סחר.pdf", Category.AGREEMENT),
    ("Section_I.pdf", Category.TARIFF),
])
def test_classify_known_names(name, expected):
    assert classify(name) == expected


def test_classify_is_case_insensitive():
    assert classify("Customs_PROCEDURE_2024.pdf") == Category.PROCEDURE
    assert classify("Free_Trade_Agreement.pdf") == Category.AGREEMENT
    assert classify("wto_schedule.pdf") == Category.SUPPLEMENT


def test_classify_first_row_wins():
    # carries both a supplement and an agreement token
    assert classify("תוספת להסכם.pdf") == Category.SUPPLEMENT


def test_classify_empty_and_none_default_to_tariff():
    assert classify("") == Category.TARIFF
    assert classify(None) == Category.TARIFF


def test_classify_is_deterministic():
    for name in ("x", "תוספת", "agreement.pdf", "???"):
        assert classify(name) == classify(name)
        assert classify(name) in set(Category)
