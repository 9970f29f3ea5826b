"""Tests for the adaptive tempo estimator."""
import pytest
from faker import Faker

from rehearse.models.practice_models import TempoPhase
from rehearse.services.tempo_service import AdaptiveTempoEstimator, median, percentile, spread

fake = Faker()


@pytest.fixture
def tempo() -> AdaptiveTempoEstimator:
    """Create a fresh estimator."""
    return AdaptiveTempoEstimator()


def feed(tempo: AdaptiveTempoEstimator, count: int, interval: float = 600.0, word_length: int = 5) -> None:
    for _ in range(count):
        tempo.record(interval, word_length, False)


def test_statistics_helpers() -> None:
    """Test median, spread around the median and interpolated percentile."""
    assert median([]) == 0.0
    assert median([3, 1, 2]) == 2.0
    assert median([1, 2, 3, 4]) == 2.5
    assert spread([5], 5) == 0.0
    assert spread([1, 3], 2) == pytest.approx(1.0)
    assert percentile([100, 200, 300, 400, 500], 90) == pytest.approx(460.0)


def test_calibration_defaults(tempo: AdaptiveTempoEstimator) -> None:
    """Test the generous defaults before ten words are recorded."""
    assert tempo.phase == TempoPhase.CALIBRATION
    assert tempo.threshold(word_length=5) == 1500
    assert tempo.threshold(word_length=5, is_first_word=True) == 3000
    assert tempo.threshold(word_length=5, is_after_sentence=True) == 3500
    assert tempo.threshold(word_length=5, is_after_sentence=True, extra_ms=200) == 3700


def test_out_of_range_samples_are_discarded(tempo: AdaptiveTempoEstimator) -> None:
    """Test that samples outside 50..10000 ms do not count."""
    assert not tempo.record(10, 5, False)
    assert not tempo.record(20000, 5, False)
    assert tempo.record(50, 5, False)
    assert tempo.words_processed == 1
    assert list(tempo.window.intervals) == [50]


def test_phases_follow_word_count(tempo: AdaptiveTempoEstimator) -> None:
    """Test the phase boundaries at 10 and 30 recorded words."""
    feed(tempo, 9)
    assert tempo.phase == TempoPhase.CALIBRATION
    feed(tempo, 1)
    assert tempo.phase == TempoPhase.LEARNING
    feed(tempo, 19)
    assert tempo.phase == TempoPhase.LEARNING
    feed(tempo, 1)
    assert tempo.phase == TempoPhase.ADAPTED


def test_learning_blends_defaults_with_statistics(tempo: AdaptiveTempoEstimator) -> None:
    """Test the half and half blend and the word length modifiers."""
    feed(tempo, 10, interval=500.0)
    assert tempo.threshold(word_length=5) == pytest.approx((1500 + 500) / 2)
    assert tempo.threshold(word_length=10) == pytest.approx(1000 * 1.25)


def test_learning_threshold_is_clamped(tempo: AdaptiveTempoEstimator) -> None:
    """Test the short word modifier and the upper bound of the blend."""
    feed(tempo, 10, interval=60.0, word_length=2)
    assert tempo.threshold(word_length=2) == pytest.approx((1500 + 60) / 2 * 0.85)

    tempo.reset()
    feed(tempo, 10, interval=9000.0, word_length=10)
    assert tempo.threshold(word_length=10) == 5000


def test_adapted_threshold_uses_statistics(tempo: AdaptiveTempoEstimator) -> None:
    """Test the fully adapted threshold and its bounds."""
    feed(tempo, 30, interval=400.0)
    assert tempo.threshold(word_length=5) == pytest.approx(400.0)
    assert tempo.threshold(word_length=5, is_first_word=True) == 2500
    assert tempo.threshold(word_length=10) == pytest.approx(520.0)
    # Without sentence pauses the sentence start gets 1.5 times the time
    assert tempo.threshold(word_length=5, is_after_sentence=True) == pytest.approx(600.0)


def test_adapted_threshold_minimum(tempo: AdaptiveTempoEstimator) -> None:
    """Test that the adapted threshold never drops below 300 ms."""
    feed(tempo, 30, interval=100.0, word_length=2)
    assert tempo.threshold(word_length=2) == 300


def test_sentence_pauses_raise_threshold(tempo: AdaptiveTempoEstimator) -> None:
    """Test that sentence starts use the 90th percentile of sentence pauses."""
    feed(tempo, 27, interval=400.0)
    for _ in range(3):
        tempo.record(2000.0, 5, True)
    assert tempo.phase == TempoPhase.ADAPTED
    assert tempo.threshold(word_length=5, is_after_sentence=True) == pytest.approx(2000.0)


def test_hint_delays(tempo: AdaptiveTempoEstimator) -> None:
    """Test hint delays with and without enough samples."""
    delays = tempo.hint_delays(word_length=5)
    assert delays.initial_ms == 1500
    assert delays.step_ms == 350
    feed(tempo, 5, interval=1200.0)
    assert tempo.hint_delays(word_length=5).step_ms == pytest.approx(720.0)
    feed(tempo, 5, interval=3000.0)
    assert tempo.hint_delays(word_length=5).step_ms == 900


def test_tempo_wpm_and_median(tempo: AdaptiveTempoEstimator) -> None:
    """Test speaking tempo once five samples exist."""
    feed(tempo, 4, interval=500.0)
    assert tempo.tempo_wpm == 0
    assert tempo.median_interval == 0.0
    feed(tempo, 1, interval=500.0)
    assert tempo.tempo_wpm == 120
    assert tempo.median_interval == 500.0


def test_reset_clears_window(tempo: AdaptiveTempoEstimator) -> None:
    """Test that reset forgets every sample."""
    feed(tempo, fake.random_int(min=10, max=40))
    tempo.reset()
    assert tempo.words_processed == 0
    assert tempo.phase == TempoPhase.CALIBRATION
    assert len(tempo.window.intervals) == 0


def test_window_is_bounded(tempo: AdaptiveTempoEstimator) -> None:
    """Test that only the most recent samples are kept."""
    feed(tempo, 80, interval=500.0, word_length=2)
    assert len(tempo.window.intervals) == 50
    assert len(tempo.window.short_word_intervals) == 30
    assert tempo.words_processed == 80


if __name__ == "__main__":
    pytest.main([__file__])
