import random
from enum import Enum
from typing import Dict, List, Tuple

from civiclens.schemas.common import IssueCategory

# Keyword sets per category. Matching is substring containment on the
# lower-cased description, so "road" also hits "roadside".
CATEGORY_KEYWORDS: Dict[IssueCategory, List[str]] = {
    IssueCategory.roads: [
        "pothole", "road", "street", "highway", "pavement", "crack", "broken road",
        "damaged road", "tar", "asphalt", "footpath", "crossing", "divider", "speed bump",
    ],
    IssueCategory.water: [
        "water", "pipe", "leak", "leakage", "drainage", "drain", "flood", "flooding",
        "sewage", "sewer", "tap", "supply", "dirty water", "contaminated", "waterlogging",
        "pipeline", "overflow", "gutter",
    ],
    IssueCategory.electricity: [
        "light", "pole", "wire", "electric", "power", "streetlight", "outage", "blackout",
        "transformer", "cable", "spark", "short circuit", "meter", "voltage", "current",
    ],
    IssueCategory.sanitation: [
        "garbage", "trash", "waste", "dump", "dirty", "litter", "bin", "overflow",
        "smell", "unhygienic", "cleanliness", "sweeping", "dustbin", "solid waste",
        "plastic", "debris", "filth",
    ],
    IssueCategory.public_spaces: [
        "park", "garden", "playground", "bench", "public", "footpath", "sidewalk",
        "tree", "green", "railing", "fence", "gate", "community", "recreational",
    ],
    IssueCategory.transportation: [
        "bus", "stop", "station", "traffic", "signal", "sign", "metro", "railway",
        "transport", "auto", "rickshaw", "parking", "zebra crossing", "pedestrian",
    ],
    IssueCategory.other: [],
}

CONCRETE_CATEGORIES = [c for c in IssueCategory if c is not IssueCategory.other]

MAX_CONFIDENCE = 0.95

class CategoryFallback(str, Enum):
    """What to predict when no keyword matches.

    OTHER always answers "other". RANDOM picks a concrete category at random
    when the report has an image, mimicking an image classifier.
    """
    OTHER = "other"
    RANDOM = "random"

def count_matches(description: str) -> Dict[IssueCategory, int]:
    text = description.lower()
    return {
        category: sum(1 for keyword in keywords if keyword in text)
        for category, keywords in CATEGORY_KEYWORDS.items()
    }

def confidence_for(matches: int, rng: random.Random) -> float:
    if matches == 0:
        confidence = 0.3 + rng.random() * 0.2
    elif matches == 1:
        confidence = 0.5 + rng.random() * 0.15
    elif matches == 2:
        confidence = 0.7 + rng.random() * 0.1
    else:
        confidence = 0.85 + rng.random() * 0.1
    return min(confidence, MAX_CONFIDENCE)

def predict_category(
    description: str,
    rng: random.Random,
    fallback: CategoryFallback = CategoryFallback.OTHER,
    has_image: bool = False,
) -> Tuple[IssueCategory, float]:
    """Keyword-score the description and return (category, confidence).

    The category with the most matching keywords wins; ties go to the first
    category in enumeration order. Only the confidence jitter uses ``rng``
    unless the RANDOM fallback kicks in.
    """
    best_category = IssueCategory.other
    best_score = 0

    for category, score in count_matches(description).items():
        if score > best_score:
            best_score = score
            best_category = category

    if best_score == 0 and fallback == CategoryFallback.RANDOM and has_image:
        best_category = rng.choice(CONCRETE_CATEGORIES)

    return best_category, confidence_for(best_score, rng)
