from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from civiclens.schemas.report import Report

DEFAULT_DUPLICATE_THRESHOLD = 0.7

TEXT_WEIGHT = 0.7
LOCATION_WEIGHT = 0.3
MIN_SIMILARITY = 0.3
MAX_CANDIDATES = 5


@dataclass
class SimilarReport:
    report: Report
    similarity: float


@dataclass
class DuplicateCheck:
    is_duplicate: bool
    report_id: Optional[int] = None
    similarity: Optional[float] = None
    candidates: List[SimilarReport] = field(default_factory=list)


def tokenize(*texts: str) -> Set[str]:
    tokens: Set[str] = set()
    for text in texts:
        tokens.update((text or "").lower().split())
    return tokens


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def location_match(a: str, b: str) -> bool:
    """Either location contains the other, ignoring case.

    A blank location is contained in every location, so it always matches.
    """
    a, b = (a or "").strip().lower(), (b or "").strip().lower()
    return a in b or b in a


def find_similar(
    title: str,
    description: str,
    location: str,
    corpus: Iterable[Report],
    exclude_id: Optional[int] = None,
) -> List[SimilarReport]:
    """Top matches above MIN_SIMILARITY, best first.

    Similarity blends word overlap of title + description (70%) with a
    substring location match (30%).
    """
    candidate_tokens = tokenize(title, description)
    results: List[SimilarReport] = []

    for report in corpus:
        if exclude_id is not None and report.id == exclude_id:
            continue
        text_similarity = jaccard(candidate_tokens, tokenize(report.title, report.description))
        similarity = TEXT_WEIGHT * text_similarity
        if location_match(location, report.location):
            similarity += LOCATION_WEIGHT
        similarity = min(similarity, 1.0)
        if similarity > MIN_SIMILARITY:
            results.append(SimilarReport(report=report, similarity=similarity))

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[:MAX_CANDIDATES]


def check_duplicate(
    title: str,
    description: str,
    location: str,
    corpus: Iterable[Report],
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    exclude_id: Optional[int] = None,
) -> DuplicateCheck:
    candidates = find_similar(title, description, location, corpus, exclude_id=exclude_id)
    if candidates and candidates[0].similarity >= threshold:
        best = candidates[0]
        return DuplicateCheck(True, best.report.id, best.similarity, candidates)
    return DuplicateCheck(False, candidates=candidates)
