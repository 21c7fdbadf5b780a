# photolarm/services/learning_store.py
"""
Incremental learning for medication phrase extraction.

Every time the user confirms or corrects the values extracted from a phrase,
the phrase is stored (or its existing record updated) with confirmation and
correction counters. Confidence and the per-pattern similarity threshold are
recomputed from those counters, so well-established patterns need a closer
match before they are suggested again.

The store is an explicit object owned by the caller. Give it a KeyValueStore
to load its state at construction and save after every mutation.
"""
import json
import threading
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable, List, Optional

from loguru import logger
from pydantic import ValidationError

from photolarm.core.config import PATTERNS_STORAGE_KEY
from photolarm.schemas.models import (
    ExtractedMedicationValues,
    LearnedMedicationPattern,
    LearningMetadata,
    LearningMetrics,
    LearningStats,
    PatternMatch,
)
from photolarm.services.pattern_matcher import (
    calculate_confidence,
    calculate_threshold,
    find_best_match,
    generate_pattern_id,
    generate_pattern_signature,
    normalize_phrase,
    tokenize,
)
from photolarm.services.storage import KeyValueStore, SqliteKeyValueStore
from photolarm.utils.clock import parse_iso, to_iso, utc_now

INITIAL_THRESHOLD = 0.75
RELIABLE_CONFIDENCE = 0.70
EXPORT_VERSION = "1.0.0"


class LearningStore:
    def __init__(
        self,
        persistence: Optional[KeyValueStore] = None,
        clock: Callable[[], datetime] = utc_now,
        storage_key: str = PATTERNS_STORAGE_KEY,
    ):
        self.patterns: List[LearnedMedicationPattern] = []
        self.metadata = LearningMetrics()
        self._persistence = persistence
        self._clock = clock
        self._storage_key = storage_key
        self._lock = threading.RLock()

        if persistence is not None:
            self._load()

    # -- persistence -------------------------------------------------------

    def _load(self) -> None:
        data = self._persistence.get(self._storage_key)
        if data is None:
            return
        try:
            self._replace_state(data)
        except (ValidationError, TypeError, ValueError) as e:
            logger.error(f"[learning] persisted patterns unreadable, starting empty: {e}")
            return
        logger.info(f"[learning] loaded {len(self.patterns)} patterns")

    def _save(self) -> None:
        if self._persistence is not None:
            self._persistence.set(self._storage_key, self.snapshot())

    def snapshot(self) -> dict:
        """JSON-ready state: {"patterns": [...], "metadata": {...}}."""
        return {
            "patterns": [p.model_dump(mode="json") for p in self.patterns],
            "metadata": self.metadata.model_dump(mode="json", exclude_none=True),
        }

    def _replace_state(self, data: dict) -> None:
        raw_patterns = data.get("patterns")
        if not isinstance(raw_patterns, list):
            raise ValueError("payload has no 'patterns' array")
        patterns = [LearnedMedicationPattern.model_validate(p) for p in raw_patterns]
        metadata = LearningMetrics.model_validate(data.get("metadata") or {"total_validations": 0})
        self.patterns = patterns
        self.metadata = metadata

    # -- core actions --------------------------------------------------------

    def save_validation(self, phrase: str, extracted: ExtractedMedicationValues, was_confirmed: bool) -> LearnedMedicationPattern:
        """Record one user validation of `phrase`; the latest values win."""
        normalized = normalize_phrase(phrase)
        now = to_iso(self._clock())

        with self._lock:
            existing = next((p for p in self.patterns if p.normalized_phrase == normalized), None)

            if existing is not None:
                learning = existing.learning
                if was_confirmed:
                    learning.confirmations += 1
                else:
                    learning.corrections += 1
                learning.confidence = calculate_confidence(learning.confirmations, learning.corrections)
                learning.last_validated = now
                existing.extracted = extracted.model_copy(deep=True)
                existing.similarity_threshold = calculate_threshold(learning.confidence)
                pattern = existing

                logger.info(
                    f"[learning] pattern updated: {extracted.medication_name} "
                    f"confidence={learning.confidence:.2f} validations={learning.total}"
                )
            else:
                tokens = tokenize(normalized)
                confirmations, corrections = (1, 0) if was_confirmed else (0, 1)
                pattern = LearnedMedicationPattern(
                    id=generate_pattern_id(),
                    raw_phrase=phrase,
                    normalized_phrase=normalized,
                    tokens=tokens,
                    extracted=extracted.model_copy(deep=True),
                    learning=LearningMetadata(
                        confirmations=confirmations,
                        corrections=corrections,
                        confidence=calculate_confidence(confirmations, corrections),
                        first_seen=now,
                        last_validated=now,
                    ),
                    pattern_signature=generate_pattern_signature(tokens),
                    similarity_threshold=INITIAL_THRESHOLD,
                )
                self.patterns.append(pattern)

                logger.info(
                    f"[learning] new pattern learned: {extracted.medication_name} "
                    f"signature={pattern.pattern_signature}"
                )

            self.metadata.total_validations += 1
            self._save()

        return pattern

    def find_match(self, phrase: str) -> Optional[PatternMatch]:
        return find_best_match(phrase, self.patterns)

    # -- management ----------------------------------------------------------

    def get_pattern(self, pattern_id: str) -> Optional[LearnedMedicationPattern]:
        return next((p for p in self.patterns if p.id == pattern_id), None)

    def delete_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            before = len(self.patterns)
            self.patterns = [p for p in self.patterns if p.id != pattern_id]
            removed = len(self.patterns) != before
            if removed:
                self._save()
        return removed

    def clear_all_patterns(self) -> None:
        with self._lock:
            self.patterns = []
            self.metadata = LearningMetrics()
            self._save()
        logger.info("[learning] all patterns cleared")

    # -- analytics -----------------------------------------------------------

    def average_confidence(self) -> float:
        if not self.patterns:
            return 0.0
        return sum(p.learning.confidence for p in self.patterns) / len(self.patterns)

    def most_reliable_patterns(self, limit: int = 10) -> List[LearnedMedicationPattern]:
        reliable = [p for p in self.patterns if p.learning.confidence > RELIABLE_CONFIDENCE]
        reliable.sort(key=lambda p: (-p.learning.confidence, -p.learning.total))
        return reliable[:limit]

    def recent_validations(self, days: int = 7) -> List[LearnedMedicationPattern]:
        cutoff = self._clock() - timedelta(days=days)
        recent = [p for p in self.patterns if parse_iso(p.learning.last_validated) >= cutoff]
        recent.sort(key=lambda p: parse_iso(p.learning.last_validated), reverse=True)
        return recent

    def get_stats(self) -> LearningStats:
        return LearningStats(
            total_patterns=len(self.patterns),
            total_validations=self.metadata.total_validations,
            avg_confidence=self.average_confidence(),
            most_reliable_patterns=self.most_reliable_patterns(5),
            recent_validations=len(self.recent_validations(7)),
        )

    # -- import / export -----------------------------------------------------

    def export_patterns(self) -> str:
        payload = self.snapshot()
        payload["exported_at"] = to_iso(self._clock())
        payload["version"] = EXPORT_VERSION
        return json.dumps(payload, ensure_ascii=False, indent=2)

    def import_patterns(self, payload: str) -> bool:
        """Replace the whole state with an export. Bad input leaves state untouched."""
        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("payload is not a JSON object")
            with self._lock:
                self._replace_state(data)
                self._save()
        except (ValidationError, TypeError, ValueError) as e:
            logger.error(f"[learning] failed to import patterns: {e}")
            return False

        logger.info(f"[learning] patterns imported: {len(self.patterns)}")
        return True


@lru_cache(maxsize=1)
def get_learning_store() -> LearningStore:
    return LearningStore(persistence=SqliteKeyValueStore())
