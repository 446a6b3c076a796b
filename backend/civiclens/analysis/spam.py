import re
from dataclasses import dataclass, field
from typing import List

DEFAULT_SPAM_THRESHOLD = 0.4

URL_PATTERNS = ["http://", "https://", "www.", ".com", ".in", ".org"]
PROMOTIONAL_PATTERNS = ["buy now", "click here", "free money", "lottery", "winner", "prize", "offer"]
SUSPICIOUS_PATTERNS = ["advertisement", "promote", "sale", "discount", "limited time"]

URL_WEIGHT = 0.15
PROMOTIONAL_WEIGHT = 0.2
SUSPICIOUS_WEIGHT = 0.15
CONDITION_WEIGHT = 0.1

REPEATED_CHARACTER = re.compile(r"(.)\1{4,}")
SPECIAL_CHARACTER = re.compile(r"[!@#$%^&*()_+=\[\]{};':\"\\|,.<>/?]")


@dataclass
class SpamResult:
    is_spam: bool
    score: float
    reasons: List[str] = field(default_factory=list)


def score_spam(text: str, threshold: float = DEFAULT_SPAM_THRESHOLD) -> SpamResult:
    """Additive heuristic spam score, clamped to [0, 1]."""
    lower_text = text.lower()
    reasons: List[str] = []
    score = 0.0

    for pattern in URL_PATTERNS:
        if pattern in lower_text:
            score += URL_WEIGHT
            reasons.append(f'Contains URL pattern: "{pattern}"')

    for pattern in PROMOTIONAL_PATTERNS:
        if pattern in lower_text:
            score += PROMOTIONAL_WEIGHT
            reasons.append(f'Contains promotional content: "{pattern}"')

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern in lower_text:
            score += SUSPICIOUS_WEIGHT
            reasons.append(f'Contains suspicious pattern: "{pattern}"')

    length = max(len(text), 1)

    caps_ratio = sum(1 for ch in text if "A" <= ch <= "Z") / length
    if caps_ratio > 0.5 and len(text) > 10:
        score += CONDITION_WEIGHT
        reasons.append("Excessive capital letters")

    if len(text.strip()) < 10:
        score += CONDITION_WEIGHT
        reasons.append("Description too short")

    if REPEATED_CHARACTER.search(text):
        score += CONDITION_WEIGHT
        reasons.append("Contains repeated characters")

    if len(SPECIAL_CHARACTER.findall(text)) / length > 0.2:
        score += CONDITION_WEIGHT
        reasons.append("Excessive special characters")

    score = min(max(score, 0.0), 1.0)
    return SpamResult(is_spam=score >= threshold, score=score, reasons=reasons)
