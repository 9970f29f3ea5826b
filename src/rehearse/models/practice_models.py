"""Models for practice session data structures."""
import logging
from collections import Counter, deque
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

from rehearse.errors import InvalidRatingError

logger = logging.getLogger(__name__)


class Verdict(Enum):
    """Outcome for a single expected word."""
    CORRECT = "correct"  # Spoken in time without a hint
    HESITATED = "hesitated"  # Spoken late or after a hint
    SKIPPED = "skipped"  # Jumped over by a later match
    MISSED = "missed"  # Never reached before the session ended


# Worst first, used when a word occurs several times in one session
VERDICT_SEVERITY = {
    Verdict.MISSED: 3,
    Verdict.SKIPPED: 2,
    Verdict.HESITATED: 1,
    Verdict.CORRECT: 0,
}


class CardState(Enum):
    """Position of a speech in the spaced repetition lifecycle."""
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"

    @classmethod
    def parse(cls, value: Any) -> "CardState":
        """Parse a stored state, falling back to NEW for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            logger.warning(f"Unknown card state {value!r}, treating card as new")
            return cls.NEW


class Rating(Enum):
    """Self-assessed recall quality."""
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: Any) -> "Rating":
        """Parse a rating; anything outside the four values is rejected."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidRatingError(f"Unknown rating {value!r}") from None


class TempoPhase(Enum):
    """Calibration phase of the tempo estimator."""
    CALIBRATION = "calibration"
    LEARNING = "learning"
    ADAPTED = "adapted"


@dataclass(frozen=True)
class WordToken:
    """A single expected word of the speech."""
    text: str
    normalized: str
    index: int
    is_sentence_start: bool = False
    is_simple: bool = False


@dataclass(frozen=True)
class WordVerdict:
    """Verdict for one expected word."""
    token: WordToken
    verdict: Verdict
    elapsed_ms: Optional[float] = None
    hint_shown: bool = False
    wrong_attempts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionResult:
    """Immutable record of one completed practice attempt."""
    verdicts: Tuple[WordVerdict, ...]
    accuracy: float
    weighted_accuracy: float
    visibility_percent: float
    duration_seconds: float
    timestamp: datetime

    @property
    def counts(self) -> Dict[Verdict, int]:
        """Number of words per verdict."""
        counter = Counter(v.verdict for v in self.verdicts)
        return {verdict: counter.get(verdict, 0) for verdict in Verdict}

    @property
    def missed_words(self) -> List[str]:
        return [v.token.text for v in self.verdicts if v.verdict in (Verdict.MISSED, Verdict.SKIPPED)]

    @property
    def hesitated_words(self) -> List[str]:
        return [v.token.text for v in self.verdicts if v.verdict == Verdict.HESITATED]

    def summary(self) -> Dict[str, Any]:
        """Structured counts for the feedback collaborator."""
        counts = self.counts
        return {
            "accuracy": self.accuracy,
            "weighted_accuracy": self.weighted_accuracy,
            "visibility_percent": self.visibility_percent,
            "total_words": len(self.verdicts),
            "correct": counts[Verdict.CORRECT],
            "hesitated": counts[Verdict.HESITATED],
            "skipped": counts[Verdict.SKIPPED],
            "missed": counts[Verdict.MISSED],
            "missed_words": self.missed_words,
            "hesitated_words": self.hesitated_words,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class MasteryRecord:
    """Historical performance of one normalized word within a speech."""
    word: str
    correct_count: int = 0
    missed_count: int = 0
    hesitated_count: int = 0
    last_seen_at: Optional[datetime] = None
    is_simple: bool = False

    @property
    def error_count(self) -> int:
        return self.missed_count + self.hesitated_count


@dataclass(frozen=True)
class VisibilityPlan:
    """Which words are hidden in the next practice pass."""
    hidden_indices: frozenset
    total_words: int
    visibility_percent: float
    cued_text: str


@dataclass
class TempoWindow:
    """Bounded windows of recent word-to-word latencies in milliseconds."""
    intervals: Deque[float] = field(default_factory=lambda: deque(maxlen=50))
    sentence_pauses: Deque[float] = field(default_factory=lambda: deque(maxlen=20))
    short_word_intervals: Deque[float] = field(default_factory=lambda: deque(maxlen=30))
    long_word_intervals: Deque[float] = field(default_factory=lambda: deque(maxlen=30))
    words_processed: int = 0

    @classmethod
    def create(cls, window_size: int = 50, sentence_window_size: int = 20,
               length_window_size: int = 30) -> "TempoWindow":
        return cls(
            intervals=deque(maxlen=window_size),
            sentence_pauses=deque(maxlen=sentence_window_size),
            short_word_intervals=deque(maxlen=length_window_size),
            long_word_intervals=deque(maxlen=length_window_size),
        )


@dataclass(frozen=True)
class HintDelays:
    """Delays before the first hint and between hint levels."""
    initial_ms: float
    step_ms: float


@dataclass
class PracticeCardState:
    """Scheduler state of a speech."""
    state: CardState = CardState.NEW
    interval_minutes: float = 0
    ease_factor: float = 2.5
    learning_step: int = 0
    consecutive_struggles: int = 0
    last_accuracy: Optional[float] = None
    performance_trend: float = 0.0
    next_review_at: Optional[datetime] = None
    review_count: int = 0

    def copy(self, **changes: Any) -> "PracticeCardState":
        return replace(self, **changes)


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of scheduling the next review."""
    card: PracticeCardState
    previous_state: CardState
    interval_minutes: int
    next_review_at: datetime
    days_until_deadline: Optional[int]
    strategy: str
    rating: Optional[Rating] = None
    frequency_multiplier: Optional[float] = None


@dataclass(frozen=True)
class PracticeOutcome:
    """Everything a completed session changed."""
    session_id: int
    schedule: ScheduleResult
    visibility: VisibilityPlan
    target_visibility: float
    recommendation: str


def utc_now() -> datetime:
    """Current time, timezone aware."""
    return datetime.now(UTC)
