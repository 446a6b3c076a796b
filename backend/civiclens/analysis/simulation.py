"""Stand-ins for the parts of the analysis a real vision model would do.

Everything random here draws from an injected ``random.Random`` so a seeded
generator reproduces a run exactly. Title templates are picked at random on
purpose: the same report can get a different suggested title on every
analysis unless the generator is seeded.
"""
import asyncio
import random
from typing import Dict, List, Optional, Tuple

from civiclens.schemas.analysis import ExtractedLocation
from civiclens.schemas.common import ImageQuality, IssueCategory

DEFAULT_LOCATION_PLACEHOLDER = "the reported area"

TITLE_TEMPLATES: Dict[IssueCategory, List[str]] = {
    IssueCategory.roads: [
        "Road damage at {location}",
        "Pothole reported near {location}",
        "Broken road surface at {location}",
        "Road repair needed at {location}",
    ],
    IssueCategory.water: [
        "Water leakage at {location}",
        "Drainage issue near {location}",
        "Water supply problem in {location}",
        "Sewage overflow at {location}",
    ],
    IssueCategory.electricity: [
        "Streetlight not working at {location}",
        "Power issue near {location}",
        "Electrical fault at {location}",
        "Damaged electric pole at {location}",
    ],
    IssueCategory.sanitation: [
        "Garbage accumulation at {location}",
        "Waste disposal issue near {location}",
        "Unhygienic conditions at {location}",
        "Overflowing dustbin at {location}",
    ],
    IssueCategory.public_spaces: [
        "Public space maintenance needed at {location}",
        "Park facility damaged at {location}",
        "Public property issue at {location}",
    ],
    IssueCategory.transportation: [
        "Traffic signal issue at {location}",
        "Bus stop maintenance needed at {location}",
        "Transport infrastructure issue at {location}",
    ],
    IssueCategory.other: [
        "Civic issue reported at {location}",
        "Community concern at {location}",
    ],
}

# Used when the citizen left the description empty
CATEGORY_DESCRIPTIONS: Dict[IssueCategory, str] = {
    IssueCategory.roads: "Road infrastructure issue detected that may affect traffic safety.",
    IssueCategory.water: "Water-related issue identified that may impact local supply or sanitation.",
    IssueCategory.electricity: "Electrical infrastructure issue that could affect power supply and safety.",
    IssueCategory.sanitation: "Sanitation concern requiring attention for public health.",
    IssueCategory.public_spaces: "Public space maintenance issue affecting community facilities.",
    IssueCategory.transportation: "Transportation infrastructure issue impacting public commute.",
    IssueCategory.other: "Civic issue requiring attention from local authorities.",
}

CATEGORY_ENHANCEMENTS: Dict[IssueCategory, str] = {
    IssueCategory.roads: " This requires prompt attention to ensure safe passage.",
    IssueCategory.water: " Immediate inspection recommended to prevent damage.",
    IssueCategory.electricity: " Urgent attention needed for public safety.",
    IssueCategory.sanitation: " Action required to maintain hygiene standards.",
    IssueCategory.public_spaces: " Community facility maintenance recommended.",
    IssueCategory.transportation: " May affect daily commuters in the area.",
    IssueCategory.other: " Flagged for review by appropriate authorities.",
}

# Candidate results of the simulated EXIF lookup: (address, lat, lng)
EXIF_LOCATIONS: List[Tuple[str, float, float]] = [
    ("Near Shivaji Nagar, Pune", 18.5308, 73.8474),
    ("MG Road, Pune", 18.5204, 73.8567),
    ("Market Road, Baramati", 18.1525, 74.5771),
    ("FC Road, Pune", 18.5273, 73.8409),
    ("Kothrud, Pune", 18.5074, 73.8077),
]

TRUSTED_IMAGE_HOSTS = ("unsplash", "pexels")
TRUSTED_HOST_BONUS = 0.2


class SimulatedDelay:
    """Sleeps for a random time to mimic a remote model call.

    Disabled instances return immediately, which is what tests and most
    deployments want.
    """

    def __init__(self, rng: random.Random, enabled: bool = False):
        self.rng = rng
        self.enabled = enabled

    async def __call__(self, low_ms: int, high_ms: int) -> None:
        if not self.enabled:
            return
        await asyncio.sleep(self.rng.uniform(low_ms, high_ms) / 1000)


def suggest_title(category: IssueCategory, rng: random.Random, location: Optional[str] = None) -> str:
    template = rng.choice(TITLE_TEMPLATES[category])
    return template.replace("{location}", location or DEFAULT_LOCATION_PLACEHOLDER)


def enhance_description(original: str, category: IssueCategory) -> str:
    if not original.strip():
        return CATEGORY_DESCRIPTIONS[category]

    enhanced = original[0].upper() + original[1:]
    if not enhanced.endswith("."):
        enhanced += "."
    return enhanced + CATEGORY_ENHANCEMENTS[category]


def extract_image_location(image_url: str, rng: random.Random, success_probability: float = 0.3) -> Optional[ExtractedLocation]:
    """Pretend to read GPS tags from the image. None means nothing was found."""
    if not image_url or rng.random() >= success_probability:
        return None
    address, lat, lng = rng.choice(EXIF_LOCATIONS)
    return ExtractedLocation(address=address, lat=lat, lng=lng, confidence=0.7 + rng.random() * 0.25)


def quality_label(score: float) -> ImageQuality:
    if score > 0.85:
        return ImageQuality.excellent
    if score > 0.7:
        return ImageQuality.good
    if score > 0.5:
        return ImageQuality.fair
    return ImageQuality.poor


def assess_image_quality(image_url: str, rng: random.Random) -> Tuple[ImageQuality, float]:
    score = 0.5 + rng.random() * 0.5
    if any(host in image_url for host in TRUSTED_IMAGE_HOSTS):
        score = min(score + TRUSTED_HOST_BONUS, 1.0)
    return quality_label(score), score
