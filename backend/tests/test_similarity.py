import pytest

from civiclens.analysis.similarity import (
    MAX_CANDIDATES,
    check_duplicate,
    find_similar,
    jaccard,
    location_match,
    tokenize,
)
from conftest import make_report


def test_jaccard_properties():
    a = {"pothole", "near", "market"}
    assert jaccard(a, a) == 1.0
    assert jaccard(a, set()) == 0.0
    assert jaccard(set(), set()) == 0.0
    assert 0.0 <= jaccard(a, {"market", "road"}) <= 1.0


def test_tokenize_is_case_insensitive():
    assert tokenize("Pothole NEAR", "the Market") == {"pothole", "near", "the", "market"}


def test_location_match():
    assert location_match("MG Road", "mg road, pune")
    assert location_match("mg road, pune", "MG Road")
    assert not location_match("MG Road", "FC Road")
    assert location_match("", "MG Road")
    assert location_match("", "")


def test_blank_location_counts_as_a_location_match():
    corpus = [make_report(1, "Streetlight broken near the bus stop", "MG Road")]
    [candidate] = find_similar("", "Streetlight broken near the bus stop", "", corpus)
    assert candidate.similarity == pytest.approx(1.0)
    assert check_duplicate("", "Streetlight broken near the bus stop", "", corpus).is_duplicate


def test_identical_report_is_a_duplicate():
    corpus = [make_report(1, "Streetlight broken near the bus stop", "MG Road")]
    check = check_duplicate("", "Streetlight broken near the bus stop", "MG Road", corpus)
    assert check.is_duplicate
    assert check.report_id == 1
    assert check.similarity >= 0.7


def test_pothole_pair_scores_half():
    corpus = [make_report(1, "Pothole near market", "Market Road")]
    candidates = find_similar("", "Large pothole close to the market", "Market Road", corpus)
    assert len(candidates) == 1
    # 0.7 * 2/7 + 0.3
    assert candidates[0].similarity == pytest.approx(0.5)

    assert not check_duplicate("", "Large pothole close to the market", "Market Road", corpus).is_duplicate
    assert check_duplicate("", "Large pothole close to the market", "Market Road", corpus, threshold=0.5).is_duplicate


def test_low_similarity_is_dropped():
    corpus = [make_report(1, "Garbage not collected for days", "Kothrud")]
    assert find_similar("", "Streetlight is broken", "MG Road", corpus) == []


def test_report_is_excluded_from_its_own_corpus():
    corpus = [make_report(7, "Water pipe burst", "FC Road")]
    assert find_similar("", "Water pipe burst", "FC Road", corpus, exclude_id=7) == []
    assert not check_duplicate("", "Water pipe burst", "FC Road", corpus, exclude_id=7).is_duplicate


def test_results_sorted_and_capped():
    corpus = [make_report(i, "drain blocked " + "x" * i, "Baramati") for i in range(1, 9)]
    corpus.append(make_report(20, "drain blocked", "Baramati"))
    candidates = find_similar("", "drain blocked", "Baramati", corpus)
    assert len(candidates) == MAX_CANDIDATES
    assert candidates[0].report.id == 20
    similarities = [c.similarity for c in candidates]
    assert similarities == sorted(similarities, reverse=True)
