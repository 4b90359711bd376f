"""
Session lifecycle: start, answer capture, expiry, completion and results.

State machine:
    in_progress -> completed   explicit complete()
    in_progress -> expired     lazily, on any access after started_at + time limit
    in_progress -> abandoned   administrative abandon()
Terminal states never transition again.

Active Session Prevention Strategy:
    1. Application check: an unexpired in-progress session for (user, test)
       is rejected with ActiveSessionExists carrying its id so the client
       can resume.
    2. Database constraint: a partial unique index on (user_id, test_id)
       WHERE status = 'IN_PROGRESS' (plus the unique attempt number) makes
       the insert itself atomic. Two starts that both pass step 1 race on
       the insert; the loser's IntegrityError is rolled back and reported
       as ActiveSessionExists with the winner's id.

Mutations of one session (answers, hints, completion) are serialized by an
in-process per-session lock and SELECT ... FOR UPDATE where the database
supports it. Different sessions share nothing and proceed in parallel.
"""
import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.core.assembly import assemble
from assessment.core.catalog import QuestionCatalog
from assessment.core.datetime_utils import (
    ensure_timezone_aware,
    is_within_window,
    utc_now,
)
from assessment.core.db_error_handling import handle_db_error
from assessment.core.exceptions import (
    ActiveSessionExists,
    AttemptLimitReached,
    NoQuestionsAvailable,
    NotFoundError,
    QuestionNotInSession,
    SessionExpired,
    StateError,
    TestUnavailable,
    ValidationError,
)
from assessment.core.logging_config import bind_log_context
from assessment.core.scoring import Score, finalize, score_question
from assessment.models.models import (
    Question,
    QuestionType,
    SessionQuestion,
    SessionStatus,
    TestDefinition,
    TestSession,
    TestStatus,
)
from assessment.schemas.definitions import (
    Pool,
    Section,
    TestDefinitionSpec,
    TestQuestionEntry,
    TestSettings,
)

logger = logging.getLogger(__name__)


class SessionLockRegistry:
    """
    In-process locks keyed by session id.

    Thread-safe. Covers a single process; across processes the row lock
    taken with SELECT ... FOR UPDATE does the serializing.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, session_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[session_id] = lock
            return lock

    @contextmanager
    def hold(self, session_id: int) -> Generator[None, None, None]:
        with self.lock_for(session_id):
            yield


_default_locks = SessionLockRegistry()


@dataclass(frozen=True)
class QuestionResult:
    """Per-question line of a session result."""

    question_id: int
    order: int
    section_order: Optional[int]
    question_type: QuestionType
    points: int
    answer: Any
    is_correct: Optional[bool]
    points_awarded: int
    time_spent_seconds: int
    hints_used: int


@dataclass(frozen=True)
class SessionResult:
    """Result view of a finished session."""

    session_id: int
    test_id: int
    user_id: int
    attempt_number: int
    status: SessionStatus
    started_at: datetime
    completed_at: Optional[datetime]
    time_spent_seconds: Optional[int]
    score: Score
    questions: List[QuestionResult] = field(default_factory=list)


def stored_score(session: TestSession) -> Score:
    """The score currently recorded on a session row."""
    return Score(
        total_points=session.total_points,
        earned_points=session.earned_points,
        percentage=session.percentage,
        passed=session.passed,
    )


class SessionManager:
    """Owns the session state machine and its timing rules."""

    def __init__(
        self,
        db: Session,
        *,
        catalog: Optional[QuestionCatalog] = None,
        clock: Callable[[], datetime] = utc_now,
        rng_factory: Callable[[], random.Random] = random.Random,
        locks: Optional[SessionLockRegistry] = None,
    ):
        self.db = db
        self.catalog = catalog or QuestionCatalog(db)
        self.clock = clock
        self.rng_factory = rng_factory
        self.locks = locks or _default_locks

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _find_active_session(self, user_id: int, test_id: int) -> Optional[TestSession]:
        return (
            self.db.execute(
                select(TestSession)
                .where(
                    TestSession.user_id == user_id,
                    TestSession.test_id == test_id,
                    TestSession.status == SessionStatus.IN_PROGRESS,
                )
                .order_by(TestSession.id.desc())
            )
            .scalars()
            .first()
        )

    def _count_prior_attempts(self, user_id: int, test_id: int) -> int:
        """Every earlier session counts as an attempt, whatever its status."""
        return self.db.execute(
            select(func.count(TestSession.id)).where(
                TestSession.user_id == user_id,
                TestSession.test_id == test_id,
            )
        ).scalar_one()

    def _load_session(self, session_id: int, *, for_update: bool = False) -> TestSession:
        query = select(TestSession).where(TestSession.id == session_id)
        if for_update:
            query = query.with_for_update()
        session = self.db.execute(query).scalars().first()
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    # ------------------------------------------------------------------
    # Expiry and scoring
    # ------------------------------------------------------------------

    @staticmethod
    def deadline(session: TestSession) -> datetime:
        """started_at plus the time limit snapshotted at start."""
        return ensure_timezone_aware(session.started_at) + timedelta(
            minutes=session.time_limit_minutes
        )

    def _apply_score(self, session: TestSession, *, freeze: bool) -> Score:
        if session.score_frozen:
            return stored_score(session)
        score = finalize(session.questions, session.passing_score_percent)
        session.total_points = score.total_points
        session.earned_points = score.earned_points
        session.percentage = score.percentage
        session.passed = score.passed
        if freeze:
            session.score_frozen = True
        return score

    def _expire_if_due(self, session: TestSession, now: datetime) -> bool:
        """
        Apply and commit the expiry transition when the time limit has passed.

        Returns:
            True if the session was expired by this call
        """
        if session.status.is_terminal:
            return False
        deadline = self.deadline(session)
        if now <= deadline:
            return False

        session.status = SessionStatus.EXPIRED
        session.completed_at = deadline
        session.time_spent_seconds = session.time_limit_minutes * 60
        self._apply_score(session, freeze=True)
        self.db.commit()

        logger.info(
            f"Session {session.id} expired at {deadline.isoformat()}",
            extra={"session_id": session.id, "status": SessionStatus.EXPIRED.value},
        )
        return True

    def _require_in_progress(self, session: TestSession, now: datetime) -> None:
        if self._expire_if_due(session, now):
            raise SessionExpired(session.id)
        if session.status.is_terminal:
            raise StateError(session.id, session.status.value)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def _check_available(
        self, test: TestDefinition, test_settings: TestSettings, now: datetime
    ) -> None:
        if test.status is not TestStatus.PUBLISHED:
            raise TestUnavailable(test.id, f"test is {test.status.value}")
        if not is_within_window(
            now, test_settings.available_from, test_settings.available_until
        ):
            raise TestUnavailable(test.id, "outside availability window")

    def _resolve_pool(
        self,
        pool: Pool,
        section: Optional[Section],
        used_ids: Set[int],
        rng: random.Random,
    ) -> List[Tuple[Question, int]]:
        entry_ids = [e.question_id for e in pool.available_questions] or None
        candidates = [
            ref
            for ref in self.catalog.query(
                question_ids=entry_ids,
                types=self.catalog.types_for_section(section),
            )
            if ref.question_id not in used_ids
        ]
        selection, _ = assemble(pool, candidates, rng=rng)
        rows = self.catalog.get_questions([s.question_id for s in selection])
        # Assembly already orders its output (random or easy-to-hard)
        return [(rows[s.question_id], s.points) for s in selection if s.question_id in rows]

    def _resolve_static(
        self,
        entries: Sequence[TestQuestionEntry],
        section: Optional[Section],
        used_ids: Set[int],
        shuffle: bool,
        rng: random.Random,
    ) -> List[Tuple[Question, int]]:
        rows = self.catalog.get_questions([e.question_id for e in entries])
        allowed = self.catalog.types_for_section(section)
        block = []
        for entry in sorted(entries, key=lambda e: e.order):
            question = rows.get(entry.question_id)
            if question is None or question.question_type not in allowed:
                continue
            if question.id in used_ids:
                continue
            points = entry.points if entry.points is not None else question.points
            block.append((question, points))
        if shuffle:
            rng.shuffle(block)
        return block

    def _materialize(
        self, spec: TestDefinitionSpec, rng: random.Random
    ) -> List[SessionQuestion]:
        """Snapshot the definition into an ordered question list."""
        test_settings = spec.settings
        if test_settings.use_sections:
            sources = [
                (section.order, section, section.questions, section.question_pool)
                for section in spec.sorted_sections()
            ]
        else:
            sources = [(None, None, spec.questions, spec.question_pool)]

        used_ids: Set[int] = set()
        snapshot: List[SessionQuestion] = []
        for section_order, section, entries, pool in sources:
            if pool is not None:
                block = self._resolve_pool(pool, section, used_ids, rng)
            else:
                block = self._resolve_static(
                    entries, section, used_ids, test_settings.shuffle_questions, rng
                )

            for question, points in block:
                used_ids.add(question.id)
                option_order = None
                if (
                    test_settings.shuffle_options
                    and question.question_type is QuestionType.MULTIPLE_CHOICE
                    and question.options
                ):
                    option_order = list(range(len(question.options)))
                    rng.shuffle(option_order)
                snapshot.append(
                    SessionQuestion(
                        question_id=question.id,
                        order=len(snapshot) + 1,
                        section_order=section_order,
                        question_type=question.question_type,
                        difficulty=question.difficulty,
                        points=points,
                        correct_answer=question.correct_answer,
                        option_order=option_order,
                        points_awarded=0,
                        time_spent_seconds=0,
                        hints_used=[],
                    )
                )
        return snapshot

    def start(self, test_id: int, user_id: int) -> TestSession:
        """
        Start a new attempt.

        Checks run in this order: test exists, test available, no active
        unexpired session, attempts remaining. An active session whose time
        limit has passed is expired first and does not block.

        Raises:
            NotFoundError: unknown test
            TestUnavailable: not published or outside its window
            ActiveSessionExists: carries the resumable session id
            AttemptLimitReached: attempts_allowed used up
            NoQuestionsAvailable: the definition materialized to no questions
        """
        with bind_log_context(test_id=test_id, user_id=user_id), handle_db_error(
            self.db, "start test session"
        ):
            test = self.db.get(TestDefinition, test_id)
            if test is None:
                raise NotFoundError("Test", test_id)
            spec = TestDefinitionSpec.from_record(test)
            now = self.clock()

            self._check_available(test, spec.settings, now)

            active = self._find_active_session(user_id, test_id)
            if active is not None and not self._expire_if_due(active, now):
                raise ActiveSessionExists(active.id)

            prior_attempts = self._count_prior_attempts(user_id, test_id)
            if prior_attempts >= spec.settings.attempts_allowed:
                raise AttemptLimitReached(spec.settings.attempts_allowed, prior_attempts)

            questions = self._materialize(spec, self.rng_factory())
            if not questions:
                raise NoQuestionsAvailable(test_id)

            session = TestSession(
                test_id=test_id,
                user_id=user_id,
                attempt_number=prior_attempts + 1,
                status=SessionStatus.IN_PROGRESS,
                started_at=now,
                time_limit_minutes=spec.settings.time_limit_minutes,
                passing_score_percent=spec.settings.passing_score_percent,
            )
            session.questions = questions
            self._apply_score(session, freeze=False)
            self.db.add(session)

            try:
                self.db.flush()
            except IntegrityError:
                # A concurrent start passed the application check too.
                self.db.rollback()
                logger.warning(
                    f"Race condition detected: user {user_id} attempted to start "
                    f"test {test_id} concurrently",
                    extra={"user_id": user_id, "test_id": test_id},
                )
                winner = self._find_active_session(user_id, test_id)
                raise ActiveSessionExists(winner.id if winner else None)

            self.db.commit()
            self.db.refresh(session)

        logger.info(
            f"Started session {session.id} (attempt {session.attempt_number}) "
            f"with {len(questions)} questions",
            extra={"session_id": session.id, "test_id": test_id, "user_id": user_id},
        )
        return session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id: int) -> TestSession:
        """Load a session, applying the expiry check first."""
        with bind_log_context(session_id=session_id), self.locks.hold(session_id):
            with handle_db_error(self.db, "load test session"):
                session = self._load_session(session_id)
                self._expire_if_due(session, self.clock())
                return session

    def get_results(self, session_id: int) -> SessionResult:
        """
        Results of a finished session.

        Only completed and expired sessions have results; abandoned ones
        were never scored for the user.

        Raises:
            StateError: the session is in progress or was abandoned
        """
        session = self.get_session(session_id)
        if not session.status.is_terminal:
            raise StateError(
                session.id,
                session.status.value,
                "Results are available once the session has ended",
            )
        if session.status is SessionStatus.ABANDONED:
            raise StateError(
                session.id,
                session.status.value,
                "Abandoned sessions have no results",
            )

        questions = [
            QuestionResult(
                question_id=sq.question_id,
                order=sq.order,
                section_order=sq.section_order,
                question_type=sq.question_type,
                points=sq.points,
                answer=sq.answer,
                is_correct=sq.is_correct,
                points_awarded=sq.points_awarded or 0,
                time_spent_seconds=sq.time_spent_seconds or 0,
                hints_used=len(sq.hints_used or []),
            )
            for sq in session.questions
        ]
        return SessionResult(
            session_id=session.id,
            test_id=session.test_id,
            user_id=session.user_id,
            attempt_number=session.attempt_number,
            status=session.status,
            started_at=ensure_timezone_aware(session.started_at),
            completed_at=(
                ensure_timezone_aware(session.completed_at)
                if session.completed_at
                else None
            ),
            time_spent_seconds=session.time_spent_seconds,
            score=stored_score(session),
            questions=questions,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def _find_question(session: TestSession, question_id: int) -> SessionQuestion:
        for sq in session.questions:
            if sq.question_id == question_id:
                return sq
        raise QuestionNotInSession(session.id, question_id)

    def record_answer(
        self,
        session_id: int,
        question_id: int,
        answer: Any,
        time_spent_delta: int = 0,
    ) -> SessionQuestion:
        """
        Store (or overwrite) an answer and grade it when auto-gradable.

        Raises:
            ValidationError: negative time_spent_delta
            NotFoundError: unknown session
            SessionExpired: the time limit passed; the expiry is persisted
            StateError: the session already ended
            QuestionNotInSession: question is not in the snapshot
        """
        if time_spent_delta < 0:
            raise ValidationError(["time_spent_delta must be non-negative"])

        with bind_log_context(session_id=session_id), self.locks.hold(session_id):
            with handle_db_error(self.db, "record answer"):
                session = self._load_session(session_id, for_update=True)
                now = self.clock()
                self._require_in_progress(session, now)
                sq = self._find_question(session, question_id)

                graded = score_question(sq, answer)
                sq.answer = answer
                sq.answered_at = now
                sq.time_spent_seconds = (sq.time_spent_seconds or 0) + time_spent_delta
                sq.is_correct = graded.is_correct
                sq.points_awarded = graded.points_awarded
                self._apply_score(session, freeze=False)

                self.db.commit()
                self.db.refresh(sq)
                return sq

    def use_hint(self, session_id: int, question_id: int, hint: str) -> SessionQuestion:
        """Record that a hint was revealed for a question."""
        with bind_log_context(session_id=session_id), self.locks.hold(session_id):
            with handle_db_error(self.db, "record hint"):
                session = self._load_session(session_id, for_update=True)
                self._require_in_progress(session, self.clock())
                sq = self._find_question(session, question_id)
                # Reassign so the JSON column is marked dirty
                sq.hints_used = list(sq.hints_used or []) + [hint]
                self.db.commit()
                self.db.refresh(sq)
                return sq

    def _finish(self, session_id: int, status: SessionStatus, operation: str) -> TestSession:
        with bind_log_context(session_id=session_id), self.locks.hold(session_id):
            with handle_db_error(self.db, operation):
                session = self._load_session(session_id, for_update=True)
                now = self.clock()
                self._require_in_progress(session, now)

                started_at = ensure_timezone_aware(session.started_at)
                session.status = status
                session.completed_at = now
                session.time_spent_seconds = max(0, int((now - started_at).total_seconds()))
                self._apply_score(session, freeze=True)

                self.db.commit()
                self.db.refresh(session)

        logger.info(
            f"Session {session_id} {status.value} with {session.percentage}%",
            extra={"session_id": session_id, "status": status.value},
        )
        return session

    def complete(self, session_id: int) -> TestSession:
        """
        Finish an in-progress session and freeze its score.

        Raises:
            NotFoundError: unknown session
            SessionExpired: the time limit passed before completion
            StateError: the session already ended
        """
        return self._finish(session_id, SessionStatus.COMPLETED, "complete test session")

    def abandon(self, session_id: int) -> TestSession:
        """Administrative transition for sessions that will never be completed."""
        return self._finish(session_id, SessionStatus.ABANDONED, "abandon test session")
