"""Service for tracking word mastery and deciding which words to hide."""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from rehearse.config import MasterySettings, settings
from rehearse.models.practice_models import (
    VERDICT_SEVERITY,
    MasteryRecord,
    SessionResult,
    Verdict,
    VisibilityPlan,
    WordToken,
    WordVerdict,
)

logger = logging.getLogger(__name__)

ALWAYS_VISIBLE = (Verdict.MISSED, Verdict.SKIPPED, Verdict.HESITATED)


def session_verdicts_by_word(verdicts: Iterable[WordVerdict]) -> Dict[str, Verdict]:
    """Worst verdict per normalized word within one session."""
    worst: Dict[str, Verdict] = {}
    for verdict in verdicts:
        word = verdict.token.normalized
        current = worst.get(word)
        if current is None or VERDICT_SEVERITY[verdict.verdict] > VERDICT_SEVERITY[current]:
            worst[word] = verdict.verdict
    return worst


def render_cued_text(tokens: Sequence[WordToken], hidden_indices: Iterable[int]) -> str:
    """Speech text with hidden words wrapped in brackets."""
    hidden = set(hidden_indices)
    return " ".join(f"[{token.text}]" if token.index in hidden else token.text for token in tokens)


class MasteryService:
    """Service for per-word mastery history and visibility decisions."""

    def __init__(self, config: Optional[MasterySettings] = None):
        """Initialize the service with mastery thresholds."""
        self.config = config or settings.mastery

    def update_records(
        self,
        records: Mapping[str, MasteryRecord],
        result: SessionResult,
        seen_at: Optional[datetime] = None,
    ) -> Dict[str, MasteryRecord]:
        """Return mastery records updated with the outcome of one session.

        Records are created lazily for words seen for the first time. Words
        without a verdict in the session keep their counts.
        """
        seen_at = seen_at or result.timestamp
        updated = {word: replace(record) for word, record in records.items()}
        simple_words = {v.token.normalized: v.token.is_simple for v in result.verdicts}

        for word, verdict in session_verdicts_by_word(result.verdicts).items():
            record = updated.get(word)
            if record is None:
                record = MasteryRecord(word=word, is_simple=simple_words.get(word, False))
                updated[word] = record
            if verdict == Verdict.CORRECT:
                record.correct_count += 1
            elif verdict == Verdict.HESITATED:
                record.hesitated_count += 1
            else:
                record.missed_count += 1
            record.last_seen_at = seen_at

        logger.debug(f"Updated mastery for {len(simple_words)} distinct words")
        return updated

    def should_hide(
        self,
        record: Optional[MasteryRecord],
        session_verdict: Optional[Verdict] = None,
        is_simple: bool = False,
    ) -> bool:
        """Decide if a word is hidden in the next pass."""
        if session_verdict in ALWAYS_VISIBLE:
            return False
        if record is None:
            return False

        if record.error_count > 0 and record.correct_count - record.error_count < self.config.recovery_margin:
            return False
        if (is_simple or record.is_simple) and record.correct_count >= self.config.simple_word_min_correct:
            return True
        return record.correct_count >= self.config.word_min_correct

    def plan_visibility(
        self,
        tokens: Sequence[WordToken],
        records: Mapping[str, MasteryRecord],
        session_verdicts: Optional[Mapping[str, Verdict]] = None,
    ) -> VisibilityPlan:
        """Choose the hidden words and the resulting visibility."""
        session_verdicts = session_verdicts or {}
        hidden: List[int] = [
            token.index
            for token in tokens
            if self.should_hide(records.get(token.normalized), session_verdicts.get(token.normalized), token.is_simple)
        ]
        total = len(tokens)
        visibility = 100.0 - len(hidden) / total * 100 if total else 100.0
        logger.info(f"Hiding {len(hidden)} of {total} words, visibility {visibility:.1f}%")
        return VisibilityPlan(
            hidden_indices=frozenset(hidden),
            total_words=total,
            visibility_percent=visibility,
            cued_text=render_cued_text(tokens, hidden),
        )

    def target_visibility(
        self,
        days_until_deadline: Optional[int],
        weighted_accuracy: float,
        performance_trend: float = 0.0,
        consecutive_struggles: int = 0,
    ) -> float:
        """Visibility the deadline allows given recent performance."""
        far_away = days_until_deadline is None or days_until_deadline > 7

        if not far_away and days_until_deadline < 3:
            base = 20.0 if consecutive_struggles >= 3 else 10.0
        elif not far_away:
            if weighted_accuracy >= 70:
                base = 10.0
            elif weighted_accuracy >= 50:
                base = 20.0
            else:
                base = 30.0
        elif weighted_accuracy >= 80:
            base = 40 - (weighted_accuracy - 80) * 1.5
        elif weighted_accuracy >= 60:
            base = 60 - (weighted_accuracy - 60)
        elif weighted_accuracy >= 40:
            base = 80.0
        else:
            base = 100.0

        value = base - performance_trend * 10 + min(consecutive_struggles * 10, 30)

        if far_away:
            low, high = 10.0, 100.0
        elif days_until_deadline < 3:
            low, high = 5.0, 25.0
        else:
            low, high = 10.0, 40.0
        return max(low, min(high, value))
