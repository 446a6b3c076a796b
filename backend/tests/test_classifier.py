import random

import pytest

from civiclens.analysis.classifier import (
    CONCRETE_CATEGORIES,
    MAX_CONFIDENCE,
    CategoryFallback,
    confidence_for,
    count_matches,
    predict_category,
)
from civiclens.schemas.common import IssueCategory


def test_pothole_is_a_road_issue(rng):
    category, confidence = predict_category("large pothole on the road", rng)
    assert category == IssueCategory.roads
    assert 0.7 <= confidence < 0.8


def test_category_does_not_depend_on_the_generator():
    categories = {predict_category("garbage dump near the bin", random.Random(seed))[0] for seed in range(20)}
    assert categories == {IssueCategory.sanitation}


def test_ties_go_to_the_first_category(rng):
    matches = count_matches("water on the road")
    assert matches[IssueCategory.roads] == matches[IssueCategory.water] == 1
    assert predict_category("water on the road", rng)[0] == IssueCategory.roads


def test_no_match_falls_back_to_other(rng):
    category, confidence = predict_category("xyz qqq", rng)
    assert category == IssueCategory.other
    assert 0.3 <= confidence <= 0.5


def test_random_fallback_needs_an_image(rng):
    category, _ = predict_category("xyz qqq", rng, fallback=CategoryFallback.RANDOM, has_image=False)
    assert category == IssueCategory.other

    category, _ = predict_category("xyz qqq", rng, fallback=CategoryFallback.RANDOM, has_image=True)
    assert category in CONCRETE_CATEGORIES


def test_random_fallback_ignored_when_keywords_match(rng):
    category, _ = predict_category("streetlight pole wire", rng, fallback=CategoryFallback.RANDOM, has_image=True)
    assert category == IssueCategory.electricity


@pytest.mark.parametrize("matches,low,high", [
    (0, 0.3, 0.5),
    (1, 0.5, 0.65),
    (2, 0.7, 0.8),
    (3, 0.85, 0.95),
    (12, 0.85, 0.95),
])
def test_confidence_bands(matches, low, high):
    generator = random.Random(0)
    for _ in range(50):
        confidence = confidence_for(matches, generator)
        assert low <= confidence <= high
        assert confidence <= MAX_CONFIDENCE
