# photolarm/services/pattern_matcher.py
"""
Matching helpers for learned medication phrases.

A phrase is normalized (lowercase, no accents, single spaces), tokenized, and
reduced to a structural signature such as ``MED_CONN_NUM_TIME_FREQ_NUM_TIME``
so that "ibuprofeno x 6 dias cada 8 horas" and "paracetamol x 3 dias cada 12
horas" share a shape even though every literal differs.
"""
import re
import unicodedata
import uuid
from typing import List, Optional, Sequence

from photolarm.schemas.models import ExtractedMedicationValues, LearnedMedicationPattern, PatternMatch

BASE_THRESHOLD = 0.70
THRESHOLD_SPAN = 0.20
SIGNATURE_BONUS = 1.10
MAX_VOLUME_BONUS = 0.2

_WS_RE = re.compile(r"\s+")
_NUM_RE = re.compile(r"^\d+$")

_TIME_WORDS = {"hora", "horas", "dia", "dias", "semana", "semanas", "mes", "meses"}
_FREQ_WORDS = {"cada", "por", "durante", "vez", "veces", "al"}
_CONN_WORDS = {"x", "de", "en", "con", "sin", "y", "o"}
_DOSE_WORDS = {"mg", "ml", "g", "gramo", "tableta", "capsula", "comprimido", "gota"}


def normalize_phrase(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WS_RE.sub(" ", stripped).strip()


def tokenize(text: str) -> List[str]:
    return [t for t in _WS_RE.split(text or "") if t]


def _token_class(token: str) -> str:
    low = token.lower()
    if _NUM_RE.match(token):
        return "NUM"
    if low in _TIME_WORDS:
        return "TIME"
    if low in _FREQ_WORDS:
        return "FREQ"
    if low in _CONN_WORDS:
        return "CONN"
    if low in _DOSE_WORDS:
        return "DOSE"
    if len(token) > 4:
        return "MED"  # long unclassified word, most likely the drug name
    return "WORD"


def generate_pattern_signature(tokens: Sequence[str]) -> str:
    return "_".join(_token_class(t) for t in tokens)


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance with unit-cost insert, delete and substitute."""
    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        curr = [i] + [0] * len(s2)
        for j, c2 in enumerate(s2, start=1):
            cost = 0 if c1 == c2 else 1
            curr[j] = min(
                prev[j] + 1,         # deletion
                curr[j - 1] + 1,     # insertion
                prev[j - 1] + cost,  # substitution
            )
        prev = curr
    return prev[len(s2)]


def calculate_similarity(phrase1: str, phrase2: str) -> float:
    n1 = normalize_phrase(phrase1)
    n2 = normalize_phrase(phrase2)

    if n1 == n2:
        return 1.0
    if not n1 or not n2:
        return 0.0

    distance = levenshtein_distance(n1, n2)
    return 1 - distance / max(len(n1), len(n2))


def calculate_confidence(confirmations: int, corrections: int) -> float:
    total = confirmations + corrections
    if total == 0:
        return 0.5  # neutral prior

    ratio = confirmations / total
    volume_bonus = min(total / 100, MAX_VOLUME_BONUS)
    return min(ratio + volume_bonus, 1.0)


def calculate_threshold(confidence: float) -> float:
    # more trust -> stricter matching, always inside [0.70, 0.90]
    return BASE_THRESHOLD + confidence * THRESHOLD_SPAN


def find_best_match(phrase: str, learned_patterns: Sequence[LearnedMedicationPattern]) -> Optional[PatternMatch]:
    if not phrase or not learned_patterns:
        return None

    normalized = normalize_phrase(phrase)
    signature = generate_pattern_signature(tokenize(normalized))

    best: Optional[PatternMatch] = None
    for pattern in learned_patterns:
        similarity = calculate_similarity(normalized, pattern.normalized_phrase)
        if pattern.pattern_signature == signature:
            similarity = min(similarity * SIGNATURE_BONUS, 1.0)

        if similarity < pattern.similarity_threshold:
            continue
        if best is None or similarity > best.similarity:
            best = PatternMatch(pattern=pattern, similarity=similarity, is_reliable=True)

    return best


def generate_pattern_id() -> str:
    return "pattern_" + uuid.uuid4().hex[:12]


def has_changes(original: ExtractedMedicationValues, validated: ExtractedMedicationValues) -> bool:
    return (
        original.medication_name != validated.medication_name
        or original.frequency_hours != validated.frequency_hours
        or original.duration_days != validated.duration_days
        or original.dosage != validated.dosage
    )
