"""Configuration settings for the memorization engine."""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Tempo settings
CALIBRATION_WORDS = 10  # first words use generous defaults
LEARNING_WORDS = 30  # until here defaults are blended with statistics

# Scheduler settings
LEARNING_STEPS = [1, 10]  # minutes
GRADUATING_INTERVAL = 1440  # 1 day in minutes
EASY_INTERVAL = 4 * 1440  # 4 days in minutes


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = field(default_factory=lambda: _env_str("DATABASE_URL", "sqlite:///rehearse.db"))
    echo: bool = field(default_factory=lambda: _env_str("DATABASE_ECHO", "false").lower() == "true")


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = field(default_factory=lambda: os.getenv("LOG_DIR", None))
    rotation: str = field(default_factory=lambda: _env_str("LOG_ROTATION", "midnight"))
    interval: int = field(default_factory=lambda: _env_int("LOG_INTERVAL", 1))
    backup_count: int = field(default_factory=lambda: _env_int("LOG_BACKUP_COUNT", 7))


@dataclass
class MatchingSettings:
    """Realtime word matching settings."""
    match_threshold: float = field(default_factory=lambda: _env_float("MATCH_THRESHOLD", 0.5))
    lookahead: int = field(default_factory=lambda: _env_int("MATCH_LOOKAHEAD", 3))
    prefix_length_ratio: float = 0.8
    prefix_score: float = 0.9
    edit_distance_budget: float = 0.3  # share of the target length
    hesitated_credit: float = 0.5
    visibility_discount: float = field(default_factory=lambda: _env_float("VISIBILITY_DISCOUNT", 0.5))


@dataclass
class TempoSettings:
    """Adaptive tempo estimation settings."""
    calibration_words: int = CALIBRATION_WORDS
    learning_words: int = LEARNING_WORDS
    window_size: int = 50
    sentence_window_size: int = 20
    length_window_size: int = 30
    min_sample_ms: float = 50.0
    max_sample_ms: float = 10000.0
    first_word_default_ms: float = 3000.0
    normal_default_ms: float = 1500.0
    sentence_default_ms: float = 3500.0
    first_word_floor_ms: float = 2500.0
    min_threshold_ms: float = 300.0
    min_blended_threshold_ms: float = 400.0
    max_threshold_ms: float = 5000.0
    short_word_length: int = 3
    long_word_length: int = 8


@dataclass
class MasterySettings:
    """Word mastery and hiding settings."""
    simple_word_min_correct: int = field(default_factory=lambda: _env_int("SIMPLE_WORD_MIN_CORRECT", 2))
    word_min_correct: int = field(default_factory=lambda: _env_int("WORD_MIN_CORRECT", 4))
    recovery_margin: int = field(default_factory=lambda: _env_int("RECOVERY_MARGIN", 2))


@dataclass
class SchedulerSettings:
    """Spaced repetition settings."""
    learning_steps: list[int] = field(default_factory=lambda: list(LEARNING_STEPS))
    graduating_interval: int = GRADUATING_INTERVAL
    easy_interval: int = EASY_INTERVAL
    default_ease: float = 2.5
    min_ease: float = 1.3
    max_ease: float = 3.0
    easy_bonus: float = 1.3
    hard_interval_modifier: float = 1.2
    lapse_interval_modifier: float = 0.5
    struggle_accuracy: float = 70.0
    recovery_accuracy: float = 80.0
    default_last_accuracy: float = 70.0


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_matching_settings() -> MatchingSettings:
    """Get matching settings."""
    return MatchingSettings()


def get_tempo_settings() -> TempoSettings:
    """Get tempo settings."""
    return TempoSettings()


def get_mastery_settings() -> MasterySettings:
    """Get mastery settings."""
    return MasterySettings()


def get_scheduler_settings() -> SchedulerSettings:
    """Get scheduler settings."""
    return SchedulerSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    matching: MatchingSettings = field(default_factory=get_matching_settings)
    tempo: TempoSettings = field(default_factory=get_tempo_settings)
    mastery: MasterySettings = field(default_factory=get_mastery_settings)
    scheduler: SchedulerSettings = field(default_factory=get_scheduler_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not 0 < self.matching.match_threshold <= 1:
            raise ValueError("MATCH_THRESHOLD must be in (0, 1]")

        if self.matching.lookahead < 0:
            raise ValueError("MATCH_LOOKAHEAD cannot be negative")

        if not 0 <= self.matching.visibility_discount <= 1:
            raise ValueError("VISIBILITY_DISCOUNT must be between 0 and 1")

        if self.tempo.calibration_words > self.tempo.learning_words:
            raise ValueError("Calibration phase cannot be longer than the learning phase")

        if self.mastery.simple_word_min_correct < 1 or self.mastery.word_min_correct < 1:
            raise ValueError("Hiding thresholds must be positive")

        if not self.scheduler.learning_steps:
            raise ValueError("At least one learning step is required")

        if self.scheduler.min_ease > self.scheduler.max_ease:
            raise ValueError("Minimum ease cannot be greater than maximum ease")


# Create global settings instance
settings = Settings()
settings.validate()
