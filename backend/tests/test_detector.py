"""Pattern Detector — shapes, ordering, overlap resolution, malformed input."""
from pathlib import Path
import sys
import time

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from core.exceptions import DetectionError, PIIVaultError
from detection.detector import PatternDetector
from detection.patterns import PIIType
from sanitization.text_redactor import TextRedactor


@pytest.fixture
def detector():
    return PatternDetector()


@pytest.mark.parametrize("text,expected_type,expected", [
    ("mail me at john.doe@example.com please", PIIType.EMAIL, "john.doe@example.com"),
    ("call 555-123-4567 now", PIIType.PHONE, "555-123-4567"),
    ("call (555) 123-4567 now", PIIType.PHONE, "(555) 123-4567"),
    ("ssn 123-45-6789 on file", PIIType.SSN, "123-45-6789"),
    ("card 4111 1111 1111 1111 exp", PIIType.CREDIT_CARD, "4111 1111 1111 1111"),
    ("amex 3782-822463-10005 ok", PIIType.CREDIT_CARD, "3782-822463-10005"),
    ("ship to 221 Baker Street today", PIIType.ADDRESS, "221 Baker Street"),
    ("stripe pm_1AbCdEfGhIjKlMn attached", PIIType.PAYMENT_TOKEN, "pm_1AbCdEfGhIjKlMn"),
])
def test_detects_each_shape(detector, text, expected_type, expected):
    matches = detector.detect(text)

    assert len(matches) == 1
    m = matches[0]
    assert m.type == expected_type
    assert m.matched_text == expected
    assert text[m.start:m.end] == expected


def test_matches_ordered_by_start(detector):
    text = "phone 555-123-4567, email a@b.co, ssn 123-45-6789"
    matches = detector.detect(text)

    assert [m.type for m in matches] == [PIIType.PHONE, PIIType.EMAIL, PIIType.SSN]
    assert [m.start for m in matches] == sorted(m.start for m in matches)


def test_overlap_resolves_to_single_match(detector):
    # A processor token with a long digit run must not also yield a card match
    matches = detector.detect("token tok_4111111111111111 used")

    assert len(matches) == 1
    assert matches[0].type == PIIType.PAYMENT_TOKEN


@pytest.mark.parametrize("value", [None, 42, b"a@b.co", "", {"email": "a@b.co"}])
def test_non_string_or_empty_input_yields_nothing(detector, value):
    assert detector.detect(value) == []


def test_near_misses_are_not_matches(detector):
    text = "Email: user@domain@com Phone: 555-123-45678 Card: 4532-1234-5678"
    types = {m.type for m in detector.detect(text)}

    assert PIIType.CREDIT_CARD not in types
    assert PIIType.PHONE not in types


def test_clean_text_has_no_pii(detector):
    assert detector.contains_pii("What are your store hours?") is False
    assert detector.count("We open at 9 AM.") == 0


@pytest.mark.parametrize("text", [
    "Ship 2 shirts the fastest way",
    "I need 3 tickets for the Court",
    "Give me 2 options in place",
    "Ship 2 shirts down the road",
    "Book 4 seats on the drive home",
])
def test_quantities_in_prose_are_not_addresses(detector, text):
    assert detector.detect(text) == []
    assert TextRedactor(detector).sanitize_response(text) == text


def test_abbreviated_street_address_is_detected(detector):
    matches = detector.detect("deliver to 1600 Pennsylvania Ave by noon")

    assert [(m.type, m.matched_text) for m in matches] == [
        (PIIType.ADDRESS, "1600 Pennsylvania Ave"),
    ]


def test_restricted_detector_only_reports_selected_types():
    detector = PatternDetector([PIIType.EMAIL])

    matches = detector.detect("a@b.co and 555-123-4567")

    assert detector.types == [PIIType.EMAIL]
    assert [m.type for m in matches] == [PIIType.EMAIL]


def test_large_input_scans_quickly(detector):
    text = ("lorem ipsum 1234 dolor sit amet, " * 1500) + "x@y.org"

    started = time.monotonic()
    matches = detector.detect(text)

    assert time.monotonic() - started < 1.0
    assert matches[-1].matched_text == "x@y.org"


def test_detection_error_is_part_of_vault_hierarchy(detector):
    err = DetectionError()

    assert isinstance(err, PIIVaultError)
    assert err.code == "DETECTION_ERROR"
    # Garbage in is "no match", never a DetectionError
    assert detector.detect("\x00\ud800@@@---") == []
