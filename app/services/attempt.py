import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.constants import (
    AttemptStatusEnum, RANKED_ATTEMPT_STATUSES, FORCED_SUBMIT_NOTE, ViolationTypeEnum
)
from app.core.exceptions import (
    AlreadySubmittedError, AttemptExpiredError, AttemptLimitExceededError, ForbiddenError,
    InvalidStateError, NotFoundError, ResultsExpiredError, TransientStoreError, ValidationFailedError
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.test import test as crud_test
from app.models.attempt import Attempt, AttemptAnswer
from app.models.student import Student
from app.models.test import Test
from app.schemas.attempt import AttemptAnswerIn, DeviceInfo
from app.services.access import access_service
from app.services.scoring import (
    aggregate_statistics, calculate_percentage, correct_identifiers, normalize_selection,
    rank_and_percentile, round_half_up, score_attempt
)
from app.utils.events import event_bus, ATTEMPT_FINALIZED

logger = logging.getLogger(__name__)


class AttemptService:
    """
    Lifecycle of a timed test attempt.

    The HTTP routes and the socket handlers both call into this service; no
    state transition or scoring logic lives in either front-end. Every
    operation re-reads the attempt row before touching it.
    """

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or datetime.utcnow()

    def _get_test(self, db: Session, test_id: int) -> Test:
        test = crud_test.get(db, id=test_id)
        if not test:
            raise NotFoundError("Test not found.")
        return test

    def _get_owned_attempt(self, db: Session, attempt_id: int, student: Student, for_update: bool = False) -> Attempt:
        if for_update:
            attempt = crud_attempt.get_for_update(db, id=attempt_id)
        else:
            attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise NotFoundError("Attempt not found.")
        if attempt.student_id != student.id:
            raise ForbiddenError("You can only access your own attempts.")
        return attempt

    def _require_in_progress(self, attempt: Attempt) -> None:
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise AlreadySubmittedError()

    def _refresh_counters(self, attempt: Attempt, answers: List[AttemptAnswer], total_marks: float) -> None:
        attempted = [a for a in answers if normalize_selection(a.selected_options)]
        attempt.attempted_questions = len(attempted)
        attempt.correct_answers = sum(1 for a in attempted if a.is_correct is True)
        attempt.incorrect_answers = sum(1 for a in attempted if a.is_correct is False)
        attempt.unanswered_questions = max(0, attempt.total_questions - len(attempted))
        attempt.score = sum(a.marks_awarded or 0 for a in answers)
        attempt.percentage = calculate_percentage(attempt.score, total_marks)

    def time_status(self, attempt: Attempt, now: Optional[datetime] = None) -> Dict:
        now = self._now(now)
        return {
            "attempt_id": attempt.id,
            "status": attempt.status,
            "server_time": now,
            "time_remaining": attempt.time_remaining_seconds(now),
            "time_elapsed": attempt.time_elapsed_seconds(now),
        }

    # Scoring and ranking

    def _finalize(self, db: Session, attempt: Attempt, *, status: AttemptStatusEnum, end_time: datetime,
                  now: datetime, is_valid: bool = True, notes: Optional[str] = None) -> Attempt:
        test = self._get_test(db, attempt.test_id)
        questions = crud_test.get_questions(db, test_id=test.id)
        answers = crud_attempt.get_answers(db, attempt.id)
        answers_by_question = {answer.question_id: answer for answer in answers}

        result = score_attempt(questions, answers_by_question, test.total_marks, test.passing_marks)

        for answer in answers:
            scored = result.answers.get(answer.question_id)
            answer.is_correct = scored.is_correct if scored else False
            answer.marks_awarded = scored.marks_awarded if scored else 0

        attempt.attempted_questions = result.attempted_questions
        attempt.correct_answers = result.correct_answers
        attempt.incorrect_answers = result.incorrect_answers
        attempt.unanswered_questions = result.unanswered_questions
        attempt.score = result.score
        attempt.percentage = result.percentage
        attempt.is_passed = result.is_passed
        attempt.section_wise_score = result.section_wise_score
        attempt.status = status
        attempt.end_time = end_time
        attempt.submitted_at = now
        attempt.is_valid = is_valid
        if notes:
            attempt.notes = notes

        db.add(attempt)
        db.commit()
        db.refresh(attempt)
        logger.info(
            f"Attempt {attempt.id} finalized as {status.value}: score={attempt.score} "
            f"percentage={attempt.percentage} valid={attempt.is_valid}"
        )

        # Separate write: a failure here leaves the score in place and rank recoverable
        if self._is_rank_eligible(attempt):
            try:
                self.update_rank(db, attempt)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Rank computation failed for attempt {attempt.id}: {e}")
        return attempt

    def _is_rank_eligible(self, attempt: Attempt) -> bool:
        return attempt.status in RANKED_ATTEMPT_STATUSES and bool(attempt.is_valid)

    def update_rank(self, db: Session, attempt: Attempt) -> Attempt:
        ranked_ids = [a.id for a in crud_attempt.get_ranked_for_test(db, attempt.test_id)]
        attempt.rank, attempt.percentile = rank_and_percentile(ranked_ids, attempt.id)
        db.add(attempt)
        db.commit()
        db.refresh(attempt)
        return attempt

    async def _publish_finalized(self, attempt: Attempt) -> None:
        await event_bus.publish(ATTEMPT_FINALIZED, {
            "attempt_id": attempt.id,
            "student_id": attempt.student_id,
            "test_id": attempt.test_id,
            "status": attempt.status.value,
        })

    async def _auto_submit(self, db: Session, attempt: Attempt, now: datetime) -> Attempt:
        fresh = crud_attempt.get_for_update(db, id=attempt.id)
        if not fresh or not fresh.is_expired(now):
            return fresh or attempt
        fresh = self._finalize(
            db, fresh,
            status=AttemptStatusEnum.AUTO_SUBMITTED,
            end_time=fresh.scheduled_end_time,
            now=now,
        )
        await self._publish_finalized(fresh)
        return fresh

    # Operations

    async def launch(self, db: Session, *, test_id: int, student: Student,
                     device_info: Optional[DeviceInfo] = None, user_agent: Optional[str] = None,
                     ip_address: Optional[str] = None, now: Optional[datetime] = None) -> Tuple[Attempt, bool]:
        now = self._now(now)
        test = self._get_test(db, test_id)
        if not test.is_active:
            raise NotFoundError("Test not found.")
        if not test.is_available(now):
            raise InvalidStateError("Test is not currently available.")
        if not access_service.can_attempt(db, student_id=student.id, test=test):
            raise ForbiddenError("Please purchase this test to attempt it.")

        existing = crud_attempt.get_in_progress(db, student.id, test.id)
        if existing:
            if not existing.is_expired(now):
                logger.info(f"Student {student.id} resumed attempt {existing.id} on test {test.id}")
                return existing, False
            await self._auto_submit(db, existing, now)

        completed = crud_attempt.count_completed(db, student.id, test.id)
        if completed >= test.attempts_allowed:
            raise AttemptLimitExceededError(f"Maximum {test.attempts_allowed} attempt(s) allowed for this test")

        device_info = device_info or DeviceInfo()
        attempt = Attempt(
            student_id=student.id,
            test_id=test.id,
            start_time=now,
            duration=test.duration,
            total_questions=test.total_questions,
            unanswered_questions=test.total_questions,
            status=AttemptStatusEnum.IN_PROGRESS,
            section_wise_score=[],
            user_agent=user_agent,
            ip_address=ip_address,
            timezone=device_info.timezone or "UTC",
            screen_resolution=device_info.screen_resolution,
        )
        try:
            db.add(attempt)
            db.commit()
        except IntegrityError:
            # Lost a concurrent launch race; the winner's attempt is the live one
            db.rollback()
            winner = crud_attempt.get_in_progress(db, student.id, test.id)
            if winner:
                return winner, False
            raise InvalidStateError("Could not start the attempt, please retry.")

        db.refresh(attempt)
        logger.info(f"Student {student.id} launched attempt {attempt.id} on test {test.id}")
        return attempt, True

    async def expire_if_due(self, db: Session, attempt: Attempt, now: Optional[datetime] = None) -> Attempt:
        """Auto-submit an in-progress attempt whose time budget is used up."""
        now = self._now(now)
        if not attempt.is_expired(now):
            return attempt
        return await self._auto_submit(db, attempt, now)

    async def expire_check(self, db: Session, *, attempt_id: int, student: Student,
                           now: Optional[datetime] = None) -> Attempt:
        attempt = self._get_owned_attempt(db, attempt_id, student)
        return await self.expire_if_due(db, attempt, now)

    async def save_answer(self, db: Session, *, attempt_id: int, student: Student, answer_in: AttemptAnswerIn,
                          now: Optional[datetime] = None) -> AttemptAnswer:
        now = self._now(now)
        attempt = self._get_owned_attempt(db, attempt_id, student)
        self._require_in_progress(attempt)

        if attempt.is_expired(now):
            await self._auto_submit(db, attempt, now)
            raise AttemptExpiredError()

        question = crud_test.get_question(db, test_id=attempt.test_id, question_id=answer_in.question_id)
        if not question:
            raise InvalidStateError("Question does not belong to this attempt's test.")

        data = {
            "selected_options": answer_in.selected_options,
            "is_marked_for_review": answer_in.is_marked_for_review,
            "section": answer_in.section or question.section,
            "time_spent": answer_in.time_spent,
            "is_correct": None,
            "marks_awarded": None,
        }
        answer = self._persist_answer(db, attempt, answer_in.question_id, data)
        return answer

    def _persist_answer(self, db: Session, attempt: Attempt, question_id: int, data: Dict) -> AttemptAnswer:
        # Two tries: a concurrent insert of the same question turns the retry into an update
        for try_number in range(2):
            try:
                answer = crud_attempt.upsert_answer(db, attempt_id=attempt.id, question_id=question_id, data=data)
                test = crud_test.get(db, id=attempt.test_id)
                self._refresh_counters(attempt, crud_attempt.get_answers(db, attempt.id), test.total_marks)
                db.add(attempt)
                db.commit()
                db.refresh(answer)
                return answer
            except IntegrityError:
                db.rollback()
                if try_number:
                    raise TransientStoreError()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to save answer for attempt {attempt.id}: {e}")
                raise TransientStoreError()

    async def submit(self, db: Session, *, attempt_id: int, student: Student,
                     answers: Optional[List[AttemptAnswerIn]] = None, now: Optional[datetime] = None) -> Attempt:
        now = self._now(now)
        attempt = self._get_owned_attempt(db, attempt_id, student, for_update=True)
        self._require_in_progress(attempt)

        if attempt.is_expired(now):
            logger.info(f"Attempt {attempt.id} submitted after its time budget, auto-submitting")
            return await self._auto_submit(db, attempt, now)

        if answers:
            question_ids = [a.question_id for a in answers]
            if len(question_ids) != len(set(question_ids)):
                raise ValidationFailedError("Duplicate question_ids found in submission.")
            questions = {q.id: q for q in crud_test.get_questions(db, test_id=attempt.test_id)}
            invalid = [qid for qid in question_ids if qid not in questions]
            if invalid:
                raise InvalidStateError(f"Invalid question_id(s): {invalid}. All questions must belong to the test.")
            for answer_in in answers:
                crud_attempt.upsert_answer(db, attempt_id=attempt.id, question_id=answer_in.question_id, data={
                    "selected_options": answer_in.selected_options,
                    "is_marked_for_review": answer_in.is_marked_for_review,
                    "section": answer_in.section or questions[answer_in.question_id].section,
                    "time_spent": answer_in.time_spent,
                })

        attempt = self._finalize(db, attempt, status=AttemptStatusEnum.SUBMITTED, end_time=now, now=now)
        await self._publish_finalized(attempt)
        return attempt

    async def report_violation(self, db: Session, *, attempt_id: int, student: Student, violation_type: str,
                               details: Optional[str] = None,
                               now: Optional[datetime] = None) -> Tuple[Attempt, int, bool]:
        now = self._now(now)
        attempt = self._get_owned_attempt(db, attempt_id, student)
        self._require_in_progress(attempt)

        if attempt.is_expired(now):
            await self._auto_submit(db, attempt, now)
            raise AttemptExpiredError()

        crud_attempt.add_violation(
            db, attempt_id=attempt.id, violation_type=violation_type, details=details, created_at=now
        )
        db.commit()
        violation_count = crud_attempt.count_violations(db, attempt.id)
        logger.warning(f"Attempt {attempt.id} violation {violation_type} ({violation_count}/{settings.MAX_VIOLATIONS})")

        if violation_count < settings.MAX_VIOLATIONS:
            db.refresh(attempt)
            return attempt, violation_count, False

        # A submit from another connection may have landed since the read above
        locked = crud_attempt.get_for_update(db, id=attempt.id)
        if not locked or locked.status != AttemptStatusEnum.IN_PROGRESS:
            return locked or attempt, violation_count, False

        attempt = self._finalize(
            db, locked,
            status=AttemptStatusEnum.AUTO_SUBMITTED,
            end_time=now,
            now=now,
            is_valid=False,
            notes=FORCED_SUBMIT_NOTE,
        )
        await self._publish_finalized(attempt)
        return attempt, violation_count, True

    def record_disconnect(self, db: Session, *, attempt_id: int, reason: str,
                          now: Optional[datetime] = None) -> bool:
        """Log a lost connection. Never submits: expiry stays purely time based."""
        now = self._now(now)
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt or attempt.status != AttemptStatusEnum.IN_PROGRESS:
            return False
        crud_attempt.add_violation(
            db,
            attempt_id=attempt.id,
            violation_type=ViolationTypeEnum.DISCONNECT.value,
            details=f"Disconnected: {reason}",
            created_at=now,
        )
        db.commit()
        return True

    async def sweep_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        now = self._now(now)
        swept = 0
        for attempt in crud_attempt.get_expired_in_progress(db, now):
            try:
                await self._auto_submit(db, attempt, now)
                swept += 1
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to auto-submit expired attempt {attempt.id}: {e}")
        return swept

    # Reads

    def get_attempt(self, db: Session, *, attempt_id: int, student: Student) -> Attempt:
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise NotFoundError("Attempt not found.")
        if attempt.student_id != student.id and not student.is_admin:
            raise ForbiddenError("You can only view your own attempts.")
        if attempt.rank is None and self._is_rank_eligible(attempt):
            attempt = self.update_rank(db, attempt)
        return attempt

    def get_attempt_details(self, db: Session, *, attempt_id: int, student: Student,
                            now: Optional[datetime] = None) -> Dict:
        now = self._now(now)
        attempt = self.get_attempt(db, attempt_id=attempt_id, student=student)
        if not attempt.is_terminal:
            raise InvalidStateError("Results are available once the attempt is submitted.")

        retention_limit = now - timedelta(days=settings.RESULT_RETENTION_DAYS)
        if not student.is_admin and (attempt.submitted_at or attempt.start_time) < retention_limit:
            raise ResultsExpiredError(
                f"Results have expired. Results are available for {settings.RESULT_RETENTION_DAYS} days only."
            )

        questions = {q.id: q for q in crud_test.get_questions(db, test_id=attempt.test_id)}
        detailed_answers = []
        for answer in attempt.answers:
            entry = {
                "question_id": answer.question_id,
                "section": answer.section,
                "selected_options": answer.selected_options or [],
                "is_marked_for_review": answer.is_marked_for_review,
                "time_spent": answer.time_spent,
                "is_correct": answer.is_correct,
                "marks_awarded": answer.marks_awarded,
                "question": None,
            }
            question = questions.get(answer.question_id)
            if question:
                correct = correct_identifiers(question)
                entry["question"] = {
                    "text": question.question_text,
                    "options": question.options or [],
                    "correct_answer": correct[0] if correct else None,
                    "correct_answers": correct,
                    "explanation": question.explanation,
                }
            detailed_answers.append(entry)

        return {"attempt": attempt, "detailed_answers": detailed_answers}

    def get_student_attempts(self, db: Session, *, student_id: int, test_id: Optional[int] = None,
                             status: Optional[AttemptStatusEnum] = None,
                             skip: int = 0, limit: int = 100) -> List[Attempt]:
        return crud_attempt.get_all_by_student(
            db, student_id, test_id=test_id, status=status, skip=skip, limit=limit
        )

    def get_student_summary(self, db: Session, *, student: Student) -> Dict:
        completed = crud_attempt.get_completed_by_student(db, student.id)
        passed = sum(1 for a in completed if a.is_passed)
        average = sum(a.score for a in completed) / len(completed) if completed else 0
        return {
            "total_attempts": crud_attempt.count_by_student(db, student.id),
            "completed_attempts": len(completed),
            "passed_attempts": passed,
            "average_score": round(average, 2),
            "pass_rate": round_half_up(passed / len(completed) * 100) if completed else 0,
        }

    def get_test_statistics(self, db: Session, *, test_id: int) -> Dict:
        self._get_test(db, test_id)
        attempts = crud_attempt.get_ranked_for_test(db, test_id)
        stats = aggregate_statistics([a.score for a in attempts], [a.is_passed for a in attempts])
        stats["test_id"] = test_id
        return stats

    async def get_attempt_questions(self, db: Session, *, test_id: int, attempt_id: int, student: Student,
                                    now: Optional[datetime] = None) -> Dict:
        now = self._now(now)
        attempt = self._get_owned_attempt(db, attempt_id, student)
        if attempt.test_id != test_id:
            raise InvalidStateError("Attempt does not belong to this test.")
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise NotFoundError("Active attempt not found.")
        if attempt.is_expired(now):
            await self._auto_submit(db, attempt, now)
            raise AttemptExpiredError()

        test = self._get_test(db, test_id)
        return {
            "questions": crud_test.get_questions(db, test_id=test_id),
            "sections": test.sections,
            "instructions": test.instructions or [],
            "saved_answers": attempt.answers,
        }


attempt_service = AttemptService()
