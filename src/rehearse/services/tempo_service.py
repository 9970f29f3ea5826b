"""Service for estimating the speaker's tempo and the hesitation threshold."""
import logging
from typing import Iterable, Optional

import numpy as np

from rehearse.config import TempoSettings, settings
from rehearse.models.practice_models import HintDelays, TempoPhase, TempoWindow
from rehearse.monitoring import discarded_tempo_samples

logger = logging.getLogger(__name__)

DEFAULT_STEP_MEDIAN_MS = 500.0
MIN_STEP_MS = 350.0
MAX_STEP_MS = 900.0
MIN_SAMPLES = 5
MIN_SENTENCE_SAMPLES = 3


def median(samples: Iterable[float]) -> float:
    values = np.fromiter(samples, dtype=float)
    if values.size == 0:
        return 0.0
    return float(np.median(values))


def spread(samples: Iterable[float], center: float) -> float:
    """Standard deviation measured around the given center."""
    values = np.fromiter(samples, dtype=float)
    if values.size < 2:
        return 0.0
    return float(np.sqrt(np.mean((values - center) ** 2)))


def percentile(samples: Iterable[float], rank: float) -> float:
    values = np.fromiter(samples, dtype=float)
    if values.size == 0:
        return 0.0
    return float(np.percentile(values, rank))


class AdaptiveTempoEstimator:
    """Rolling model of word-to-word latency for one practice session."""

    def __init__(self, config: Optional[TempoSettings] = None):
        """Initialize the estimator with an empty window."""
        self.config = config or settings.tempo
        self.window = self._empty_window()

    def _empty_window(self) -> TempoWindow:
        return TempoWindow.create(
            window_size=self.config.window_size,
            sentence_window_size=self.config.sentence_window_size,
            length_window_size=self.config.length_window_size,
        )

    def reset(self) -> None:
        """Forget all samples, called at the start of every session."""
        self.window = self._empty_window()

    @property
    def words_processed(self) -> int:
        return self.window.words_processed

    @property
    def phase(self) -> TempoPhase:
        """Current calibration phase."""
        if self.window.words_processed < self.config.calibration_words:
            return TempoPhase.CALIBRATION
        if self.window.words_processed < self.config.learning_words:
            return TempoPhase.LEARNING
        return TempoPhase.ADAPTED

    def record(self, interval_ms: float, word_length: int, is_after_sentence: bool) -> bool:
        """Record a latency sample. Returns False when it is discarded as noise."""
        if interval_ms < self.config.min_sample_ms or interval_ms > self.config.max_sample_ms:
            logger.debug(f"Discarding tempo sample of {interval_ms:.0f} ms")
            discarded_tempo_samples.inc()
            return False

        window = self.window
        window.intervals.append(interval_ms)
        if is_after_sentence:
            window.sentence_pauses.append(interval_ms)
        if word_length <= self.config.short_word_length:
            window.short_word_intervals.append(interval_ms)
        elif word_length >= self.config.long_word_length:
            window.long_word_intervals.append(interval_ms)
        window.words_processed += 1
        return True

    def _default_threshold(self, is_after_sentence: bool, is_first_word: bool) -> float:
        if is_after_sentence:
            return self.config.sentence_default_ms
        if is_first_word:
            return self.config.first_word_default_ms
        return self.config.normal_default_ms

    def _relevant_samples(self, word_length: int, is_after_sentence: bool):
        window = self.window
        if word_length <= self.config.short_word_length and len(window.short_word_intervals) >= MIN_SAMPLES:
            return window.short_word_intervals
        if word_length >= self.config.long_word_length and len(window.long_word_intervals) >= MIN_SAMPLES:
            return window.long_word_intervals
        if is_after_sentence and len(window.sentence_pauses) >= MIN_SENTENCE_SAMPLES:
            return window.sentence_pauses
        return window.intervals

    def threshold(
        self,
        word_length: int,
        is_after_sentence: bool = False,
        is_first_word: bool = False,
        extra_ms: float = 0.0,
    ) -> float:
        """Hesitation threshold in milliseconds for the next expected word.

        During calibration generous defaults are used. While learning, the
        defaults are blended half and half with `median + 1.5 * stddev` of the
        relevant window. Once adapted only the measured statistics count,
        with word length, sentence start and first word adjustments.
        """
        cfg = self.config
        if self.phase == TempoPhase.CALIBRATION:
            return self._default_threshold(is_after_sentence, is_first_word) + extra_ms

        samples = self._relevant_samples(word_length, is_after_sentence)
        center = median(samples)
        adaptive = center + 1.5 * spread(samples, center)

        if self.phase == TempoPhase.LEARNING:
            blended = (self._default_threshold(is_after_sentence, is_first_word) + adaptive) / 2
            if word_length <= cfg.short_word_length:
                blended *= 0.85
            elif word_length >= cfg.long_word_length:
                blended *= 1.25
            return min(max(blended, cfg.min_blended_threshold_ms), cfg.max_threshold_ms) + extra_ms

        value = adaptive
        if word_length <= cfg.short_word_length:
            value *= 0.8
        elif word_length >= cfg.long_word_length:
            value *= 1.3

        if is_after_sentence:
            if len(self.window.sentence_pauses) >= MIN_SENTENCE_SAMPLES:
                value = max(value, percentile(self.window.sentence_pauses, 90))
            else:
                value *= 1.5

        if is_first_word:
            value = max(value, cfg.first_word_floor_ms)

        return min(max(value, cfg.min_threshold_ms), cfg.max_threshold_ms) + extra_ms

    def hint_delays(
        self,
        word_length: int,
        is_after_sentence: bool = False,
        is_first_word: bool = False,
        extra_ms: float = 0.0,
    ) -> HintDelays:
        """Delay before the first hint level and between further levels."""
        initial = self.threshold(word_length, is_after_sentence, is_first_word, extra_ms)
        if len(self.window.intervals) >= MIN_SAMPLES:
            typical = median(self.window.intervals)
        else:
            typical = DEFAULT_STEP_MEDIAN_MS
        step = min(max(typical * 0.6, MIN_STEP_MS), MAX_STEP_MS)
        return HintDelays(initial_ms=initial, step_ms=step)

    @property
    def median_interval(self) -> float:
        """Median of the general window, 0 until enough samples exist."""
        if len(self.window.intervals) < MIN_SAMPLES:
            return 0.0
        return median(self.window.intervals)

    @property
    def tempo_wpm(self) -> int:
        """Speaking tempo in words per minute, 0 until enough samples exist."""
        if len(self.window.intervals) < MIN_SAMPLES:
            return 0
        mean_interval = float(np.mean(np.fromiter(self.window.intervals, dtype=float)))
        if mean_interval <= 0:
            return 0
        return int(round(60000 / mean_interval))
