"""Service for running practice sessions and storing their results."""
import logging
from datetime import UTC, date, datetime
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rehearse.errors import EmptySpeechError, InvalidDurationError
from rehearse.models.models import PracticeCard, PracticeSession, Speech, WordMastery
from rehearse.models.practice_models import (
    CardState,
    MasteryRecord,
    PracticeCardState,
    PracticeOutcome,
    Rating,
    SessionResult,
    Verdict,
)
from rehearse.monitoring import db_operations, input_errors, practice_sessions, session_accuracy
from rehearse.services.mastery_service import MasteryService, session_verdicts_by_word
from rehearse.services.matcher_service import RealtimeWordMatcher
from rehearse.services.scheduler_service import SchedulerService
from rehearse.services.tempo_service import AdaptiveTempoEstimator
from rehearse.services.word_matching import tokenize

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops the timezone, stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class PracticeService:
    """Service for speeches, their practice cards and session history."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.mastery_service = MasteryService()
        self.scheduler_service = SchedulerService()

    def get_speech(self, speech_id: int) -> Optional[Speech]:
        """Get a speech by its ID."""
        return self.db.query(Speech).filter(Speech.id == speech_id).first()

    def _require_speech(self, speech_id: int) -> Speech:
        speech = self.get_speech(speech_id)
        if not speech:
            raise ValueError(f"Speech {speech_id} not found")
        return speech

    def create_speech(self, user_id: int, title: str, text: str, goal_date: Optional[date] = None) -> Speech:
        """Create a speech together with a new practice card."""
        if not tokenize(text):
            input_errors.labels(error_type="empty_speech").inc()
            raise EmptySpeechError("Speech text has no words")

        speech = Speech(
            user_id=user_id,
            title=title,
            text=text,
            goal_date=goal_date,
            visibility_percent=100.0,
            cued_text=text,
            target_visibility_percent=100.0,
        )
        self.db.add(speech)
        self.db.flush()
        self.db.add(PracticeCard(speech_id=speech.id, state=CardState.NEW.value))
        self.db.commit()
        self.db.refresh(speech)
        db_operations.labels(operation_type="create_speech").inc()
        logger.info(f"Created speech {speech.id} for user {user_id}")
        return speech

    def update_speech_text(self, speech_id: int, text: str) -> Speech:
        """Replace the speech text and rebuild the cued text from known mastery."""
        speech = self._require_speech(speech_id)
        tokens = tokenize(text)
        if not tokens:
            input_errors.labels(error_type="empty_speech").inc()
            raise EmptySpeechError("Speech text has no words")

        plan = self.mastery_service.plan_visibility(tokens, self.get_mastery(speech_id))
        speech.text = text
        speech.visibility_percent = plan.visibility_percent
        speech.cued_text = plan.cued_text
        self.db.commit()
        self.db.refresh(speech)
        db_operations.labels(operation_type="update_speech").inc()
        return speech

    def get_speeches(self, user_id: int) -> List[Speech]:
        """Get all speeches of a user."""
        return self.db.query(Speech).filter(Speech.user_id == user_id).order_by(Speech.id).all()

    def get_card(self, speech_id: int) -> PracticeCardState:
        """Scheduler state of a speech, a new card if none is stored."""
        row = self.db.query(PracticeCard).filter(PracticeCard.speech_id == speech_id).first()
        if not row:
            return PracticeCardState()
        return PracticeCardState(
            state=CardState.parse(row.state),
            interval_minutes=row.interval_minutes or 0,
            ease_factor=row.ease_factor or self.scheduler_service.config.default_ease,
            learning_step=row.learning_step or 0,
            consecutive_struggles=row.consecutive_struggles or 0,
            last_accuracy=row.last_accuracy,
            performance_trend=row.performance_trend or 0.0,
            next_review_at=as_utc(row.next_review_at),
            review_count=row.review_count or 0,
        )

    def get_mastery(self, speech_id: int) -> Dict[str, MasteryRecord]:
        """Mastery records of a speech keyed by normalized word."""
        rows = self.db.query(WordMastery).filter(WordMastery.speech_id == speech_id).all()
        return {
            row.word: MasteryRecord(
                word=row.word,
                correct_count=row.correct_count or 0,
                missed_count=row.missed_count or 0,
                hesitated_count=row.hesitated_count or 0,
                last_seen_at=as_utc(row.last_seen_at),
                is_simple=bool(row.is_simple),
            )
            for row in rows
        }

    def start_session(self, speech_id: int, start_ms: Optional[float] = None, **kwargs) -> RealtimeWordMatcher:
        """Create a matcher with a fresh tempo window at the speech's current visibility."""
        speech = self._require_speech(speech_id)
        visibility = speech.visibility_percent if speech.visibility_percent is not None else 100.0
        logger.info(f"Starting practice of speech {speech_id} at {visibility:.0f}% visibility")
        kwargs.setdefault("visibility_percent", visibility)
        return RealtimeWordMatcher(speech.text, tempo=AdaptiveTempoEstimator(), start_ms=start_ms, **kwargs)

    def _save_mastery(self, speech_id: int, records: Dict[str, MasteryRecord]) -> None:
        rows = {
            row.word: row
            for row in self.db.query(WordMastery).filter(WordMastery.speech_id == speech_id).all()
        }
        for word, record in records.items():
            row = rows.get(word)
            if row is None:
                row = WordMastery(speech_id=speech_id, word=word)
                self.db.add(row)
            row.correct_count = record.correct_count
            row.missed_count = record.missed_count
            row.hesitated_count = record.hesitated_count
            row.is_simple = record.is_simple
            row.last_seen_at = record.last_seen_at

    def _save_card(self, speech_id: int, card: PracticeCardState, reviewed_at: datetime) -> None:
        row = self.db.query(PracticeCard).filter(PracticeCard.speech_id == speech_id).first()
        if row is None:
            row = PracticeCard(speech_id=speech_id)
            self.db.add(row)
        row.state = card.state.value
        row.interval_minutes = int(card.interval_minutes)
        row.ease_factor = card.ease_factor
        row.learning_step = card.learning_step
        row.consecutive_struggles = card.consecutive_struggles
        row.last_accuracy = card.last_accuracy
        row.performance_trend = card.performance_trend
        row.next_review_at = card.next_review_at
        row.last_reviewed_at = reviewed_at
        row.review_count = card.review_count

    def complete_session(
        self,
        speech_id: int,
        result: SessionResult,
        rating: Union[Rating, str, None] = None,
        now: Optional[datetime] = None,
    ) -> PracticeOutcome:
        """Store a finished session and schedule the next one.

        Mastery records, the practice card, the speech visibility and the
        session log are written in one transaction.
        """
        if result.duration_seconds < 0:
            input_errors.labels(error_type="negative_duration").inc()
            raise InvalidDurationError(f"Session duration cannot be negative, got {result.duration_seconds}")

        now = now or datetime.now(UTC)
        speech = self._require_speech(speech_id)
        tokens = tokenize(speech.text)

        records = self.mastery_service.update_records(self.get_mastery(speech_id), result, seen_at=now)
        plan = self.mastery_service.plan_visibility(tokens, records, session_verdicts_by_word(result.verdicts))
        schedule = self.scheduler_service.review(
            self.get_card(speech_id),
            speech.goal_date,
            now=now,
            rating=rating,
            result=result,
            word_count=len(tokens),
        )
        target = self.mastery_service.target_visibility(
            schedule.days_until_deadline,
            result.weighted_accuracy,
            schedule.card.performance_trend,
            schedule.card.consecutive_struggles,
        )

        counts = result.counts
        session = PracticeSession(
            speech_id=speech_id,
            accuracy=result.accuracy,
            weighted_accuracy=result.weighted_accuracy,
            visibility_percent=result.visibility_percent,
            duration_seconds=result.duration_seconds,
            correct_count=counts[Verdict.CORRECT],
            hesitated_count=counts[Verdict.HESITATED],
            skipped_count=counts[Verdict.SKIPPED],
            missed_count=counts[Verdict.MISSED],
            user_rating=schedule.rating.value if rating is not None else None,
            strategy=schedule.strategy,
        )

        try:
            self._save_mastery(speech_id, records)
            self._save_card(speech_id, schedule.card, now)
            speech.visibility_percent = plan.visibility_percent
            speech.cued_text = plan.cued_text
            speech.target_visibility_percent = target
            self.db.add(session)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving session for speech {speech_id}: {e}")
            raise
        self.db.refresh(session)

        db_operations.labels(operation_type="complete_session").inc()
        practice_sessions.labels(strategy=schedule.strategy).inc()
        session_accuracy.observe(result.accuracy)

        logger.info(
            f"Completed session {session.id} for speech {speech_id}: accuracy {result.accuracy:.1f}%, "
            f"target visibility {target:.0f}%, next review {schedule.next_review_at.isoformat()}"
        )
        return PracticeOutcome(
            session_id=session.id,
            schedule=schedule,
            visibility=plan,
            target_visibility=target,
            recommendation=self.scheduler_service.recommendation(schedule, plan.visibility_percent),
        )

    def get_sessions(self, speech_id: int) -> List[PracticeSession]:
        """Practice history of a speech, oldest first."""
        return (
            self.db.query(PracticeSession)
            .filter(PracticeSession.speech_id == speech_id)
            .order_by(PracticeSession.id)
            .all()
        )

    def get_due_speeches(self, now: Optional[datetime] = None, user_id: Optional[int] = None) -> List[Speech]:
        """Speeches whose next review is due, most overdue first."""
        now = now or datetime.now(UTC)
        query = (
            self.db.query(Speech, PracticeCard)
            .join(PracticeCard, PracticeCard.speech_id == Speech.id)
            .filter(PracticeCard.next_review_at.isnot(None))
        )
        if user_id is not None:
            query = query.filter(Speech.user_id == user_id)

        due = [
            (as_utc(card.next_review_at), speech)
            for speech, card in query.all()
            if as_utc(card.next_review_at) <= now
        ]
        due.sort(key=lambda item: item[0])
        return [speech for _, speech in due]
