"""Service for scheduling the next practice session of a speech."""
import logging
import math
from datetime import UTC, date, datetime, time, timedelta
from typing import Optional, Tuple, Union

from rehearse.config import SchedulerSettings, settings
from rehearse.errors import InvalidInputError, InvalidRatingError
from rehearse.models.practice_models import (
    CardState,
    PracticeCardState,
    Rating,
    ScheduleResult,
    SessionResult,
)
from rehearse.monitoring import input_errors

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440
NO_DEADLINE_CAP = 7 * MINUTES_PER_DAY


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def days_until_deadline(deadline: Optional[date], now: datetime) -> Optional[int]:
    """Whole days left until the deadline, rounded up. None without a deadline."""
    if deadline is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    goal = datetime.combine(deadline, time.min, tzinfo=UTC)
    return math.ceil((goal - now).total_seconds() / 86400)


def max_interval_for_deadline(days: Optional[int]) -> int:
    """Longest allowed interval in minutes given the days left."""
    if days is None:
        return NO_DEADLINE_CAP
    if days <= 0:
        return 30
    if days == 1:
        return 60
    if days == 2:
        return 2 * 60
    if days <= 3:
        return 4 * 60
    if days <= 5:
        return 8 * 60
    if days <= 7:
        return 12 * 60
    if days <= 14:
        return MINUTES_PER_DAY
    if days <= 30:
        return 3 * MINUTES_PER_DAY
    return NO_DEADLINE_CAP


def practice_frequency(
    days: Optional[int],
    performance_trend: float,
    last_accuracy: float,
    consecutive_struggles: int,
    word_count: int = 0,
    visibility_percent: float = 100.0,
) -> float:
    """Multiplier on the base daily practice rate.

    The product of deadline urgency, visibility, recent performance and
    speech length, bounded to [0.5, 1440].
    """
    if days is None or days > 30:
        urgency = 0.5
    elif days <= 0:
        urgency = 1440.0
    elif days == 1:
        urgency = 144.0
    elif days == 2:
        urgency = 48.0
    elif days <= 3:
        urgency = 24.0
    elif days <= 7:
        urgency = 6.0
    elif days <= 14:
        urgency = 2.0
    else:
        urgency = 1.0

    # Reading a mostly visible script inflates accuracy
    if visibility_percent >= 80:
        visibility = 2.0
    elif visibility_percent >= 60:
        visibility = 1.5
    elif visibility_percent >= 40:
        visibility = 1.2
    elif visibility_percent >= 20:
        visibility = 1.0
    else:
        visibility = 0.9

    if consecutive_struggles >= 3:
        performance = 3.0
    elif consecutive_struggles >= 2:
        performance = 2.0
    elif last_accuracy < 60:
        performance = 2.5
    elif last_accuracy < 70:
        performance = 1.8
    elif last_accuracy < 80:
        performance = 1.3
    elif last_accuracy >= 90 and visibility_percent < 50:
        performance = 0.7
    else:
        performance = 1.0

    if performance_trend < -0.3:
        performance *= 1.5
    elif performance_trend > 0.3 and visibility_percent < 50:
        performance *= 0.8

    length = 1.0
    if word_count > 1000:
        length = 1.8
    elif word_count > 500:
        length = 1.4
    elif word_count > 250:
        length = 1.2
    elif 0 < word_count < 100:
        length = 0.8

    multiplier = urgency * visibility * performance * length
    return max(0.5, min(1440.0, multiplier))


def derive_rating(weighted_accuracy: float, visibility_percent: float) -> Rating:
    """Rating implied by a session when the user did not rate it."""
    if weighted_accuracy < 50:
        return Rating.AGAIN
    if weighted_accuracy < 70:
        return Rating.HARD
    if weighted_accuracy >= 90 and visibility_percent <= 30:
        return Rating.EASY
    return Rating.GOOD


def format_interval(minutes: float) -> str:
    """Human readable interval such as '10 minutes' or '1.5 months'."""
    if minutes < MINUTES_PER_HOUR:
        value = round_half_up(minutes)
        return f"{value} minute{'s' if value != 1 else ''}"
    if minutes < MINUTES_PER_DAY:
        value = round_half_up(minutes / MINUTES_PER_HOUR)
        return f"{value} hour{'s' if value != 1 else ''}"
    days = minutes / MINUTES_PER_DAY
    if days < 30:
        value = round_half_up(days)
        return f"{value} day{'s' if value != 1 else ''}"
    return f"{days / 30:.1f} months"


class SM2Strategy:
    """Strict SM-2 state machine driven by an explicit rating."""

    name = "sm2"

    def __init__(self, config: Optional[SchedulerSettings] = None):
        self.config = config or settings.scheduler

    def _clamp_ease(self, ease: float) -> float:
        return round(max(self.config.min_ease, min(self.config.max_ease, ease)), 2)

    def _step_interval(self, step: int) -> int:
        steps = self.config.learning_steps
        return steps[step] if 0 <= step < len(steps) else steps[0]

    def schedule(self, card: PracticeCardState, rating: Rating) -> PracticeCardState:
        """Apply one rating and return the card with its raw, uncapped interval."""
        cfg = self.config
        state = card.state
        interval = float(card.interval_minutes)
        ease = card.ease_factor
        step = card.learning_step

        if card.state in (CardState.NEW, CardState.LEARNING):
            if rating == Rating.AGAIN:
                state, step, interval = CardState.LEARNING, 0, cfg.learning_steps[0]
            elif rating == Rating.HARD:
                state = CardState.LEARNING
                interval = max(self._step_interval(step), 6)
            elif rating == Rating.GOOD:
                if step >= len(cfg.learning_steps) - 1:
                    state, step, interval = CardState.REVIEW, 0, cfg.graduating_interval
                else:
                    state, step = CardState.LEARNING, step + 1
                    interval = cfg.learning_steps[step]
            else:
                state, step, interval = CardState.REVIEW, 0, cfg.easy_interval
                ease += 0.15

        elif card.state == CardState.REVIEW:
            if rating == Rating.AGAIN:
                state, step, interval = CardState.RELEARNING, 0, cfg.learning_steps[0]
                ease -= 0.20
            elif rating == Rating.HARD:
                interval = max(interval * cfg.hard_interval_modifier, interval + MINUTES_PER_DAY)
                ease -= 0.15
            elif rating == Rating.GOOD:
                interval = interval * ease
            else:
                interval = interval * ease * cfg.easy_bonus
                ease += 0.15

        else:
            if rating == Rating.AGAIN:
                step, interval = 0, cfg.learning_steps[0]
                ease -= 0.10
            elif rating == Rating.HARD:
                interval = cfg.learning_steps[-1]
            elif rating == Rating.GOOD:
                state = CardState.REVIEW
                interval = max(interval * cfg.lapse_interval_modifier, cfg.graduating_interval)
            else:
                state = CardState.REVIEW
                interval = max(interval * cfg.lapse_interval_modifier * 1.5, cfg.graduating_interval * 2)
                ease += 0.10

        return card.copy(
            state=state,
            interval_minutes=interval,
            ease_factor=self._clamp_ease(ease),
            learning_step=step,
        )


class AdaptiveStrategy:
    """Interval driven by accuracy, visibility and the practice frequency."""

    name = "adaptive"

    def interval(
        self,
        card: PracticeCardState,
        result: SessionResult,
        days: Optional[int],
        word_count: int = 0,
    ) -> Tuple[float, float]:
        """Raw interval in minutes and the frequency multiplier behind it."""
        weighted = min(result.weighted_accuracy, 100.0)
        raw = min(result.accuracy, 100.0)
        visibility = result.visibility_percent
        multiplier = practice_frequency(
            days,
            card.performance_trend,
            raw,
            card.consecutive_struggles,
            word_count,
            visibility,
        )

        if weighted >= 70 and visibility <= 30:
            # Recalled with few cues, two to four days
            interval = 2 * MINUTES_PER_DAY + (weighted - 70) / 30 * 2 * MINUTES_PER_DAY
        elif raw >= 80 and visibility >= 70:
            # Good reading of a mostly visible text, four to eight hours
            interval = 4 * MINUTES_PER_HOUR + (raw - 80) / 20 * 4 * MINUTES_PER_HOUR
        elif weighted < 50:
            # Struggling, two to six hours
            interval = 2 * MINUTES_PER_HOUR + weighted / 50 * 4 * MINUTES_PER_HOUR
        else:
            interval = max(6 * MINUTES_PER_HOUR, MINUTES_PER_DAY / multiplier)
        return interval, multiplier


class SchedulerService:
    """Service for deadline-aware spaced repetition of speeches."""

    def __init__(self, config: Optional[SchedulerSettings] = None):
        """Initialize the service with both scheduling strategies."""
        self.config = config or settings.scheduler
        self.sm2 = SM2Strategy(self.config)
        self.adaptive = AdaptiveStrategy()

    def update_performance(self, card: PracticeCardState, accuracy: float) -> PracticeCardState:
        """Track trend and consecutive struggles after a session."""
        last = card.last_accuracy if card.last_accuracy is not None else self.config.default_last_accuracy
        trend = max(-1.0, min(1.0, (accuracy - last) / 30))

        struggles = card.consecutive_struggles
        if accuracy < self.config.struggle_accuracy:
            struggles += 1
        elif accuracy >= self.config.recovery_accuracy:
            struggles = max(0, struggles - 1)

        return card.copy(last_accuracy=accuracy, performance_trend=trend, consecutive_struggles=struggles)

    def review(
        self,
        card: Optional[PracticeCardState],
        deadline: Optional[date],
        now: Optional[datetime] = None,
        rating: Union[Rating, str, None] = None,
        result: Optional[SessionResult] = None,
        word_count: int = 0,
    ) -> ScheduleResult:
        """Schedule the next review.

        An explicit rating runs the strict SM-2 table. Without one the
        adaptive strategy picks the interval from the session result and
        leaves state, ease and learning step untouched. Both are capped by
        the days left until the deadline.
        """
        now = now or datetime.now(UTC)
        card = card or PracticeCardState(ease_factor=self.config.default_ease)
        previous_state = card.state
        days = days_until_deadline(deadline, now)

        if rating is None and result is None:
            input_errors.labels(error_type="missing_rating").inc()
            raise InvalidInputError("A rating or a session result is required")

        if result is not None:
            card = self.update_performance(card, result.accuracy)

        multiplier = None
        if rating is not None:
            try:
                rating = Rating.parse(rating)
            except InvalidRatingError:
                input_errors.labels(error_type="invalid_rating").inc()
                raise
            strategy = self.sm2.name
            card = self.sm2.schedule(card, rating)
            raw_interval = card.interval_minutes
        else:
            strategy = self.adaptive.name
            raw_interval, multiplier = self.adaptive.interval(card, result, days, word_count)
            rating = derive_rating(result.weighted_accuracy, result.visibility_percent)

        cap = max_interval_for_deadline(days)
        interval = max(1, round_half_up(min(raw_interval, cap)))
        next_review_at = now + timedelta(minutes=interval)

        card = card.copy(
            interval_minutes=interval,
            next_review_at=next_review_at,
            review_count=card.review_count + 1,
        )
        days_left = days if days is not None else "no deadline"
        logger.info(
            f"Scheduled {strategy} review in {format_interval(interval)} "
            f"({previous_state.value} -> {card.state.value}, ease {card.ease_factor:.2f}, {days_left} days left)"
        )
        return ScheduleResult(
            card=card,
            previous_state=previous_state,
            interval_minutes=interval,
            next_review_at=next_review_at,
            days_until_deadline=days,
            strategy=strategy,
            rating=rating,
            frequency_multiplier=multiplier,
        )

    def recommendation(self, schedule: ScheduleResult, next_visibility: Optional[float] = None) -> str:
        """Short advice shown with the next review date."""
        interval = format_interval(schedule.interval_minutes)
        card = schedule.card
        if schedule.strategy == self.sm2.name:
            if schedule.rating == Rating.AGAIN:
                return f"Needs more practice. Review again in {interval}. Try focusing on smaller sections."
            if schedule.rating == Rating.HARD:
                return f"Keep working at it. Next review in {interval}."
            if schedule.rating == Rating.GOOD and card.state != CardState.REVIEW:
                return f"Good progress! Next step in {interval}."
            if schedule.rating == Rating.GOOD:
                return f"Great job! See you in {interval}."
            return f"Excellent recall! Extended interval to {interval}."

        days = schedule.days_until_deadline
        if card.consecutive_struggles >= 2:
            times = math.ceil(schedule.frequency_multiplier or 1)
            return f"Performance needs attention. Practice {times}x more frequently before your deadline."
        if days is not None and days <= 7 and (card.last_accuracy or 0) < 80:
            return f"Your speech is in {days} days. Practice daily to be ready."
        if next_visibility is not None and next_visibility < 30:
            return f"Almost there! Only {round_half_up(next_visibility)}% of the words remain visible."
        if card.performance_trend > 0.5:
            return "Great progress! Keep practicing to reach complete memorization."
        return f"On track. Next practice session in {interval}."
