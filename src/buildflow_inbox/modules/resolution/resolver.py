"""
Approximate matching of loosely formatted references (job addresses, names)
against known entities.

Matching is two-pass: a case-insensitive exact pass, then a fuzzy pass using
an edit-distance ratio in ``[0, 100]``. The result is only ever a suggestion;
a human confirms or overrides it at review time.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from rapidfuzz import fuzz

EXACT_SCORE = 100.0

_STREET_TYPES: dict[str, str] = {
    "st": "street",
    "str": "street",
    "rd": "road",
    "dr": "drive",
    "drv": "drive",
    "ave": "avenue",
    "av": "avenue",
    "ct": "court",
    "crt": "court",
    "pl": "place",
    "cres": "crescent",
    "cr": "crescent",
    "hwy": "highway",
    "pde": "parade",
    "tce": "terrace",
    "ln": "lane",
    "cl": "close",
    "bvd": "boulevard",
    "blvd": "boulevard",
}

_STREET_WORDS = (
    "street|st|road|rd|drive|dr|avenue|ave|court|ct|place|pl|crescent|cres|lane|ln|"
    "close|cl|parade|pde|terrace|tce|highway|hwy|boulevard|blvd"
)

_SUBJECT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\b(?:for|project|job|site)(?:\s+(?:the|job|project|site))*\s+([^-,:\n]+)", re.I
    ),
    re.compile(r"(\d+[a-z]?\s+[a-z][a-z\s]*?\b(?:" + _STREET_WORDS + r")\b\.?)", re.I),
    re.compile(r"^([^-:]+?)\s*[-:]"),
)

_NOISE_PREFIX = re.compile(r"^(?:(?:re|fw|fwd)\s*:\s*)+", re.I)


@dataclass(frozen=True)
class Candidate:
    id: str
    labels: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class ResolutionCandidate:
    candidate_id: str
    candidate_label: str
    score: float


def normalize_label(text: str) -> str:
    s = re.sub(r"[.,#]", " ", (text or "").lower())
    words = s.split()
    return " ".join(_STREET_TYPES.get(w, w) for w in words)


def similarity(a: str, b: str) -> float:
    na = normalize_label(a)
    nb = normalize_label(b)
    if not na or not nb:
        return 0.0
    return float(fuzz.ratio(na, nb))


def resolve(
    query_text: str, candidates: Sequence[Candidate], threshold: float
) -> ResolutionCandidate | None:
    query = (query_text or "").strip()
    if not query:
        return None

    folded = query.casefold()
    for candidate in candidates:
        for label in candidate.labels:
            if label and label.strip().casefold() == folded:
                return ResolutionCandidate(
                    candidate_id=candidate.id, candidate_label=label, score=EXACT_SCORE
                )

    best: ResolutionCandidate | None = None
    best_score = 0.0
    for candidate in candidates:
        for label in candidate.labels:
            if not label:
                continue
            score = similarity(query, label)
            # Strictly greater: ties keep the earliest candidate.
            if score > best_score and score >= threshold:
                best_score = score
                best = ResolutionCandidate(
                    candidate_id=candidate.id, candidate_label=label, score=score
                )
    return best


def extract_job_reference(subject: str) -> str | None:
    """
    Pull the job fragment out of an email subject.

    "Invoice for 21 Greenhill Dr" -> "21 Greenhill Dr"
    "Smith Renovation - materials" -> "Smith Renovation"
    """
    text = _NOISE_PREFIX.sub("", (subject or "").strip())
    if not text:
        return None
    for pattern in _SUBJECT_PATTERNS:
        m = pattern.search(text)
        if m:
            ref = m.group(1).strip(" .")
            if ref:
                return ref
    return text
