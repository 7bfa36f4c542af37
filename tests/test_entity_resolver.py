from __future__ import annotations

import pytest

from buildflow_inbox.modules.resolution.resolver import (
    Candidate,
    extract_job_reference,
    normalize_label,
    resolve,
    similarity,
)


def _jobs() -> list[Candidate]:
    return [
        Candidate(id="J1", labels=["21 Greenhill Drive", "Smith Renovation"]),
        Candidate(id="J9", labels=["12 Spud Street"]),
        Candidate(id="J12", labels=["4 Wattle Court", "Nguyen Extension"]),
    ]


def test_exact_match_is_case_insensitive_and_scores_100():
    match = resolve("  smith RENOVATION ", _jobs(), threshold=99)
    assert match is not None
    assert match.candidate_id == "J1"
    assert match.candidate_label == "Smith Renovation"
    assert match.score == 100


def test_exact_pass_returns_first_candidate_in_order():
    candidates = [
        Candidate(id="A", labels=["12 Spud Street"]),
        Candidate(id="B", labels=["12 spud street"]),
    ]
    match = resolve("12 SPUD STREET", candidates, threshold=90)
    assert match is not None
    assert match.candidate_id == "A"


def test_street_abbreviations_normalize_to_full_words():
    assert normalize_label("12 Spud St.") == "12 spud street"
    assert similarity("21 Greenhill Dr", "21 Greenhill Drive") == 100

    match = resolve("12 Spud St", _jobs(), threshold=90)
    assert match is not None
    assert match.candidate_id == "J9"
    assert match.score == 100


def test_fuzzy_threshold_boundary_is_inclusive():
    score = similarity("12 Spud Stret", "12 Spud Street")
    assert 90 < score < 100

    at_threshold = resolve("12 Spud Stret", _jobs(), threshold=score)
    assert at_threshold is not None
    assert at_threshold.candidate_id == "J9"
    assert at_threshold.score == pytest.approx(score)

    assert resolve("12 Spud Stret", _jobs(), threshold=score + 0.01) is None


def test_fuzzy_ties_keep_the_earliest_candidate():
    candidates = [
        Candidate(id="first", labels=["12 Spud Street"]),
        Candidate(id="second", labels=["12 Spud Street"]),
    ]
    match = resolve("12 Spud Stret", candidates, threshold=80)
    assert match is not None
    assert match.candidate_id == "first"


def test_no_match_below_threshold_or_without_candidates():
    assert resolve("99 Unknown Road", _jobs(), threshold=90) is None
    assert resolve("12 Spud Street", [], threshold=0) is None
    assert resolve("   ", _jobs(), threshold=0) is None


def test_resolve_does_not_mutate_candidates():
    labels = ["12 Spud Street"]
    candidates = [Candidate(id="J9", labels=labels)]
    resolve("12 Spud St", candidates, threshold=90)
    assert labels == ["12 Spud Street"]
    assert candidates == [Candidate(id="J9", labels=["12 Spud Street"])]


@pytest.mark.parametrize(
    ("subject", "expected"),
    [
        ("Invoice for 21 Greenhill Dr", "21 Greenhill Dr"),
        ("Invoice for 12 Spud St", "12 Spud St"),
        ("RE: Smith Renovation - materials", "Smith Renovation"),
        ("Fwd: Receipt 12 Spud St", "12 Spud St"),
        ("Project Nguyen Extension, tip fees", "Nguyen Extension"),
        ("Greenhill", "Greenhill"),
    ],
)
def test_extract_job_reference(subject, expected):
    assert extract_job_reference(subject) == expected


def test_extract_job_reference_empty_subject():
    assert extract_job_reference("") is None
    assert extract_job_reference("RE: ") is None
