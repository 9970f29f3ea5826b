"""Tests for configuration settings."""
import pytest

from rehearse.config import (
    EASY_INTERVAL,
    GRADUATING_INTERVAL,
    LEARNING_STEPS,
    MatchingSettings,
    SchedulerSettings,
    Settings,
    TempoSettings,
    settings,
)


def test_settings_defaults() -> None:
    """Test default settings values."""
    assert settings.matching.match_threshold == 0.5
    assert settings.matching.lookahead == 3
    assert settings.matching.visibility_discount == 0.5
    assert settings.tempo.calibration_words == 10
    assert settings.tempo.learning_words == 30
    assert settings.mastery.simple_word_min_correct == 2
    assert settings.mastery.word_min_correct == 4
    assert settings.mastery.recovery_margin == 2
    assert settings.scheduler.learning_steps == LEARNING_STEPS == [1, 10]
    assert GRADUATING_INTERVAL == 1440
    assert EASY_INTERVAL == 5760


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that settings are read from environment variables."""
    monkeypatch.setenv("MATCH_THRESHOLD", "0.7")
    monkeypatch.setenv("WORD_MIN_CORRECT", "5")
    fresh = Settings()
    assert fresh.matching.match_threshold == 0.7
    assert fresh.mastery.word_min_correct == 5


def test_validate_rejects_bad_threshold() -> None:
    """Test that an out of range match threshold is rejected."""
    bad = Settings(matching=MatchingSettings(match_threshold=1.5))
    with pytest.raises(ValueError):
        bad.validate()


def test_validate_rejects_inverted_phases() -> None:
    """Test that calibration cannot outlast learning."""
    bad = Settings(tempo=TempoSettings(calibration_words=40))
    with pytest.raises(ValueError):
        bad.validate()


def test_validate_rejects_bad_ease_bounds() -> None:
    """Test that ease bounds must be ordered."""
    bad = Settings(scheduler=SchedulerSettings(min_ease=3.5))
    with pytest.raises(ValueError):
        bad.validate()


def test_default_settings_are_valid() -> None:
    """Test that the shipped defaults pass validation."""
    Settings().validate()


if __name__ == "__main__":
    pytest.main([__file__])
