"""Service for matching spoken words against the expected speech in real time."""
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterable, AsyncIterator, Callable, List, Optional, Sequence, Tuple, Union

from rehearse.config import settings
from rehearse.errors import EmptySpeechError, InvalidDurationError, InvalidInputError
from rehearse.models.practice_models import (
    HintDelays,
    SessionResult,
    Verdict,
    WordToken,
    WordVerdict,
    utc_now,
)
from rehearse.monitoring import input_errors, word_verdicts
from rehearse.services.tempo_service import AdaptiveTempoEstimator
from rehearse.services.word_matching import (
    SimilarityStrategy,
    is_filler_word,
    is_match,
    normalize,
    split_spoken,
    tokenize,
)

logger = logging.getLogger(__name__)

SpokenItem = Union[str, Tuple[str, float]]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


def session_accuracy(verdicts: Sequence[WordVerdict], total_words: int) -> float:
    """Raw accuracy in percent, hesitations earn partial credit."""
    if total_words <= 0:
        return 0.0
    credit = settings.matching.hesitated_credit
    score = 0.0
    for verdict in verdicts:
        if verdict.verdict == Verdict.CORRECT:
            score += 1
        elif verdict.verdict == Verdict.HESITATED:
            score += credit
    return score / total_words * 100


def weighted_accuracy(accuracy: float, visibility_percent: float) -> float:
    """Discount accuracy by how much of the text was visible."""
    discount = settings.matching.visibility_discount
    return accuracy * (1 - discount * visibility_percent / 100)


@dataclass
class MatcherState:
    """Mutable state of one live practice session."""
    cursor: int = 0
    wrong_attempts: List[str] = field(default_factory=list)
    consumed_words: List[str] = field(default_factory=list)
    started_ms: float = 0.0
    last_match_ms: float = 0.0
    hint_shown: bool = False
    has_matched: bool = False
    finished: bool = False
    verdicts: List[WordVerdict] = field(default_factory=list)


class RealtimeWordMatcher:
    """Incremental matcher over the expected words of a speech.

    Every call returns the verdicts it could decide right away. Nothing
    blocks and nothing times out; callers poll `is_hesitating` to find out
    that the current word is overdue.
    """

    def __init__(
        self,
        expected: Union[str, Sequence[WordToken]],
        tempo: Optional[AdaptiveTempoEstimator] = None,
        strategy: SimilarityStrategy = SimilarityStrategy.CHARACTER,
        lookahead: Optional[int] = None,
        start_ms: Optional[float] = None,
        clock: Callable[[], float] = monotonic_ms,
        sentence_start_extra_ms: float = 0.0,
        visibility_percent: float = 100.0,
    ):
        """Initialize the matcher for one session.

        `visibility_percent` is the share of the text shown during the
        session and is the default used by `finish`.
        """
        self.expected: List[WordToken] = tokenize(expected) if isinstance(expected, str) else list(expected)
        if not self.expected:
            input_errors.labels(error_type="empty_speech").inc()
            raise EmptySpeechError("Cannot practice an empty speech")
        self.visibility_percent = self._check_visibility(visibility_percent)

        self.tempo = tempo or AdaptiveTempoEstimator()
        self.strategy = strategy
        self.lookahead = settings.matching.lookahead if lookahead is None else lookahead
        self.clock = clock
        self.sentence_start_extra_ms = sentence_start_extra_ms
        self.state = MatcherState()
        self.reset(start_ms)

    def reset(self, start_ms: Optional[float] = None) -> None:
        """Start the session over with a fresh state and tempo window."""
        started = self.clock() if start_ms is None else start_ms
        self.state = MatcherState(started_ms=started, last_match_ms=started)
        self.tempo.reset()

    @property
    def cursor(self) -> int:
        return self.state.cursor

    @property
    def verdicts(self) -> List[WordVerdict]:
        return list(self.state.verdicts)

    @property
    def is_complete(self) -> bool:
        """Check if every expected word has a verdict."""
        return self.state.cursor >= len(self.expected)

    @property
    def current_token(self) -> Optional[WordToken]:
        if self.is_complete:
            return None
        return self.expected[self.state.cursor]

    @property
    def accuracy(self) -> float:
        """Accuracy of the verdicts emitted so far over the whole speech."""
        return session_accuracy(self.state.verdicts, len(self.expected))

    def _timing_context(self, token: WordToken) -> dict:
        after_sentence = token.index > 0 and token.is_sentence_start
        return {
            "word_length": len(token.normalized),
            "is_after_sentence": after_sentence,
            "is_first_word": not self.state.has_matched,
            "extra_ms": self.sentence_start_extra_ms if after_sentence else 0.0,
        }

    def hesitation_threshold(self) -> Optional[float]:
        """Threshold in milliseconds for the current word."""
        token = self.current_token
        if token is None:
            return None
        return self.tempo.threshold(**self._timing_context(token))

    def hint_delays(self) -> Optional[HintDelays]:
        """Hint escalation delays for the current word."""
        token = self.current_token
        if token is None:
            return None
        return self.tempo.hint_delays(**self._timing_context(token))

    def show_hint(self) -> None:
        """Mark the current word as hinted, it can no longer be correct."""
        if not self.is_complete:
            self.state.hint_shown = True

    def is_hesitating(self, now_ms: Optional[float] = None) -> bool:
        """Check if the current word is overdue."""
        threshold = self.hesitation_threshold()
        if threshold is None or self.state.finished:
            return False
        now = self.clock() if now_ms is None else now_ms
        return now - self.state.last_match_ms >= threshold

    def _emit(self, token: WordToken, verdict: Verdict, elapsed_ms: Optional[float] = None,
              attempts: Tuple[str, ...] = ()) -> WordVerdict:
        result = WordVerdict(
            token=token,
            verdict=verdict,
            elapsed_ms=elapsed_ms,
            hint_shown=self.state.hint_shown and token.index == self.state.cursor,
            wrong_attempts=attempts,
        )
        self.state.verdicts.append(result)
        word_verdicts.labels(verdict=verdict.value).inc()
        return result

    def _timed_verdict(self, token: WordToken, elapsed_ms: float) -> Verdict:
        threshold = self.tempo.threshold(**self._timing_context(token))
        if elapsed_ms < threshold and not self.state.hint_shown:
            return Verdict.CORRECT
        return Verdict.HESITATED

    def _advance(self, position: int, at_ms: float) -> None:
        self.state.cursor = position + 1
        self.state.wrong_attempts = []
        self.state.last_match_ms = at_ms
        self.state.hint_shown = False
        self.state.has_matched = True

    def _find_ahead(self, spoken: str) -> Optional[int]:
        cursor = self.state.cursor
        for offset in range(1, self.lookahead + 1):
            position = cursor + offset
            if position >= len(self.expected):
                break
            if is_match(spoken, self.expected[position].text, self.strategy):
                return position
        return None

    def feed(self, spoken: str, at_ms: Optional[float] = None) -> List[WordVerdict]:
        """Process one spoken token and return the verdicts it decides."""
        if self.state.finished:
            input_errors.labels(error_type="finished").inc()
            raise InvalidInputError("Session is already finished")

        now = self.clock() if at_ms is None else at_ms
        elapsed = now - self.state.last_match_ms
        if elapsed < 0:
            input_errors.labels(error_type="negative_duration").inc()
            raise InvalidDurationError(f"Token arrived {-elapsed:.0f} ms before the previous match")

        if self.is_complete:
            logger.debug(f"Ignoring trailing token {spoken!r}")
            return []

        token = self.expected[self.state.cursor]
        if is_match(spoken, token.text, self.strategy):
            verdict = self._timed_verdict(token, elapsed)
            emitted = [self._emit(token, verdict, elapsed, tuple(self.state.wrong_attempts))]
            if token.index > 0:
                self.tempo.record(elapsed, len(token.normalized), token.is_sentence_start)
            self._advance(token.index, now)
            return emitted

        position = self._find_ahead(spoken)
        if position is not None:
            attempts = tuple(self.state.wrong_attempts)
            emitted = []
            for skipped in self.expected[self.state.cursor:position]:
                emitted.append(self._emit(skipped, Verdict.SKIPPED, attempts=attempts))
                attempts = ()
            self.state.hint_shown = False
            target = self.expected[position]
            verdict = self._timed_verdict(target, elapsed)
            emitted.append(self._emit(target, verdict, elapsed))
            self._advance(position, now)
            return emitted

        if is_filler_word(spoken):
            logger.debug(f"Ignoring filler word {spoken!r}")
        else:
            self.state.wrong_attempts.append(spoken)
        return []

    def feed_transcript(self, transcript: str, at_ms: Optional[float] = None) -> List[WordVerdict]:
        """Process a cumulative transcript, only the new tokens are consumed.

        Interim transcripts may be revised. Words after the prefix shared
        with the previous transcript are treated as new.
        """
        words = split_spoken(transcript)
        consumed = self.state.consumed_words
        shared = 0
        while shared < min(len(words), len(consumed)) and normalize(words[shared]) == normalize(consumed[shared]):
            shared += 1
        if shared < len(consumed):
            logger.debug(f"Transcript revised after {shared} words")
        fresh = words[shared:]
        self.state.consumed_words = words
        emitted: List[WordVerdict] = []
        for word in fresh:
            emitted.extend(self.feed(word, at_ms))
        return emitted

    async def consume(self, stream: AsyncIterable[SpokenItem], cumulative: bool = False) -> AsyncIterator[WordVerdict]:
        """Drive the matcher from an async stream of tokens or transcripts.

        Items are plain strings or `(text, at_ms)` pairs. Verdicts are
        yielded as soon as they are decided.
        """
        async for item in stream:
            if isinstance(item, tuple):
                text, at_ms = item
            else:
                text, at_ms = item, None
            if cumulative:
                emitted = self.feed_transcript(text, at_ms)
            else:
                emitted = self.feed(text, at_ms)
            for verdict in emitted:
                yield verdict

    @staticmethod
    def _check_visibility(visibility_percent: float) -> float:
        if not 0 <= visibility_percent <= 100:
            input_errors.labels(error_type="visibility").inc()
            raise InvalidInputError(f"Visibility must be between 0 and 100, got {visibility_percent}")
        return visibility_percent

    def finish(self, at_ms: Optional[float] = None, visibility_percent: Optional[float] = None) -> SessionResult:
        """Close the session, every word not yet reached is missed."""
        if self.state.finished:
            input_errors.labels(error_type="finished").inc()
            raise InvalidInputError("Session is already finished")
        if visibility_percent is None:
            visibility_percent = self.visibility_percent
        self._check_visibility(visibility_percent)

        now = self.clock() if at_ms is None else at_ms
        duration_ms = now - self.state.started_ms
        if duration_ms < 0:
            input_errors.labels(error_type="negative_duration").inc()
            raise InvalidDurationError("Session cannot end before it started")

        for token in self.expected[self.state.cursor:]:
            self._emit(token, Verdict.MISSED, attempts=tuple(self.state.wrong_attempts))
            self.state.wrong_attempts = []
        self.state.cursor = len(self.expected)
        self.state.finished = True

        accuracy = session_accuracy(self.state.verdicts, len(self.expected))
        result = SessionResult(
            verdicts=tuple(self.state.verdicts),
            accuracy=accuracy,
            weighted_accuracy=weighted_accuracy(accuracy, visibility_percent),
            visibility_percent=visibility_percent,
            duration_seconds=duration_ms / 1000,
            timestamp=utc_now(),
        )
        logger.info(
            f"Session finished: accuracy {result.accuracy:.1f}%, "
            f"weighted {result.weighted_accuracy:.1f}%, {len(self.expected)} words"
        )
        return result
