import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from app.core.constants import AttemptStatusEnum, FORCED_SUBMIT_NOTE, PaymentStatusEnum, RoleEnum
from app.core.exceptions import (
    AlreadySubmittedError, AttemptExpiredError, AttemptLimitExceededError, ForbiddenError, InvalidStateError,
    NotFoundError, ResultsExpiredError, ValidationFailedError
)
from app.crud.attempt import attempt as crud_attempt
from app.crud.order import order as crud_order
from app.models.attempt import Attempt
from app.schemas.attempt import AttemptAnswerIn
from app.services.attempt import attempt_service
from tests.helpers.exam_data import question_ids

T0 = datetime(2026, 3, 2, 9, 0, 0)


async def _launch(db, exam, student, now=T0):
    attempt, created = await attempt_service.launch(db, test_id=exam.id, student=student, now=now)
    return attempt


@pytest.mark.asyncio
async def test_launch_copies_test_shape_and_resumes(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()

    attempt, created = await attempt_service.launch(db_session, test_id=exam.id, student=student, now=T0)
    assert created is True
    assert attempt.status == AttemptStatusEnum.IN_PROGRESS
    assert attempt.duration == 30
    assert attempt.total_questions == 3
    assert attempt.unanswered_questions == 3
    assert attempt.start_time == T0

    again, created_again = await attempt_service.launch(
        db_session, test_id=exam.id, student=student, now=T0 + timedelta(minutes=5)
    )
    assert created_again is False
    assert again.id == attempt.id
    assert again.start_time == T0


@pytest.mark.asyncio
async def test_launch_rejects_missing_and_unavailable_tests(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    with pytest.raises(NotFoundError):
        await attempt_service.launch(db_session, test_id=999999, student=student, now=T0)

    closed = exam_factory(valid_until=T0 - timedelta(days=1))
    with pytest.raises(InvalidStateError):
        await attempt_service.launch(db_session, test_id=closed.id, student=student, now=T0)


@pytest.mark.asyncio
async def test_paid_test_requires_completed_order(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory(test_type="paid", price=499)

    with pytest.raises(ForbiddenError):
        await attempt_service.launch(db_session, test_id=exam.id, student=student, now=T0)

    crud_order.create(db_session, obj_in={
        "order_ref": f"ORD-{uuid.uuid4().hex[:10]}",
        "student_id": student.id,
        "test_id": exam.id,
        "amount": 499,
        "payment_status": PaymentStatusEnum.COMPLETED.value,
    })
    attempt = await _launch(db_session, exam, student)
    assert attempt.status == AttemptStatusEnum.IN_PROGRESS


@pytest.mark.asyncio
async def test_attempt_limit(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory(attempts_allowed=1)

    attempt = await _launch(db_session, exam, student)
    await attempt_service.submit(db_session, attempt_id=attempt.id, student=student, now=T0 + timedelta(minutes=1))

    with pytest.raises(AttemptLimitExceededError):
        await _launch(db_session, exam, student, now=T0 + timedelta(minutes=2))


@pytest.mark.asyncio
async def test_save_answer_is_an_upsert(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1, q2, q3 = question_ids(exam)
    attempt = await _launch(db_session, exam, student)

    for choice in (["3"], ["4"]):
        await attempt_service.save_answer(
            db_session, attempt_id=attempt.id, student=student,
            answer_in=AttemptAnswerIn(question_id=q1, selected_options=choice), now=T0 + timedelta(minutes=1)
        )

    answers = crud_attempt.get_answers(db_session, attempt.id)
    assert len(answers) == 1
    assert answers[0].selected_options == ["4"]
    assert answers[0].is_correct is None

    db_session.refresh(attempt)
    assert attempt.attempted_questions == 1
    assert attempt.unanswered_questions == 2
    assert attempt.score == 0


@pytest.mark.asyncio
async def test_save_answer_rejects_foreign_question(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    other = exam_factory()
    attempt = await _launch(db_session, exam, student)

    with pytest.raises(InvalidStateError):
        await attempt_service.save_answer(
            db_session, attempt_id=attempt.id, student=student,
            answer_in=AttemptAnswerIn(question_id=question_ids(other)[0], selected_options=["4"]),
            now=T0 + timedelta(minutes=1)
        )


@pytest.mark.asyncio
async def test_other_student_cannot_touch_attempt(db_session: Session, student_factory, exam_factory):
    owner = student_factory()
    intruder = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, owner)

    with pytest.raises(ForbiddenError):
        await attempt_service.submit(db_session, attempt_id=attempt.id, student=intruder, now=T0)
    with pytest.raises(ForbiddenError):
        attempt_service.get_attempt(db_session, attempt_id=attempt.id, student=intruder)

    admin = student_factory(role=RoleEnum.ADMIN)
    assert attempt_service.get_attempt(db_session, attempt_id=attempt.id, student=admin).id == attempt.id


@pytest.mark.asyncio
async def test_submit_scores_and_ranks(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1, q2, q3 = question_ids(exam)
    attempt = await _launch(db_session, exam, student)

    submitted = await attempt_service.submit(
        db_session, attempt_id=attempt.id, student=student,
        answers=[
            AttemptAnswerIn(question_id=q1, selected_options=["4"], time_spent=40),
            AttemptAnswerIn(question_id=q2, selected_options=["2"], time_spent=20),
        ],
        now=T0 + timedelta(minutes=12)
    )

    assert submitted.status == AttemptStatusEnum.SUBMITTED
    assert submitted.score == 1.5
    assert submitted.percentage == 25
    assert submitted.is_passed is False
    assert submitted.correct_answers == 1
    assert submitted.incorrect_answers == 1
    assert submitted.unanswered_questions == 1
    assert submitted.end_time == T0 + timedelta(minutes=12)
    assert submitted.actual_time_taken == 12
    assert submitted.rank == 1
    assert submitted.percentile == 100

    sections = {s["section_name"]: s for s in submitted.section_wise_score}
    assert sections["Quant"]["score"] == 1.5
    assert sections["Quant"]["time_spent"] == 60
    assert sections["Verbal"]["score"] == 0

    marks = {a.question_id: a.marks_awarded for a in crud_attempt.get_answers(db_session, attempt.id)}
    assert marks == {q1: 2, q2: -0.5}


@pytest.mark.asyncio
async def test_submit_keeps_question_sections(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1, q2, q3 = question_ids(exam)
    attempt = await _launch(db_session, exam, student)
    await attempt_service.save_answer(
        db_session, attempt_id=attempt.id, student=student,
        answer_in=AttemptAnswerIn(question_id=q1, selected_options=["3"], section="Quant"),
        now=T0 + timedelta(minutes=1)
    )

    await attempt_service.submit(
        db_session, attempt_id=attempt.id, student=student,
        answers=[AttemptAnswerIn(question_id=q1, selected_options=["4"]),
                 AttemptAnswerIn(question_id=q3, selected_options=["fast"])],
        now=T0 + timedelta(minutes=2)
    )

    sections = {a.question_id: a.section for a in crud_attempt.get_answers(db_session, attempt.id)}
    assert sections == {q1: "Quant", q3: "Verbal"}


@pytest.mark.asyncio
async def test_submit_rejects_duplicate_question_ids(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1 = question_ids(exam)[0]
    attempt = await _launch(db_session, exam, student)

    with pytest.raises(ValidationFailedError):
        await attempt_service.submit(
            db_session, attempt_id=attempt.id, student=student,
            answers=[AttemptAnswerIn(question_id=q1, selected_options=["4"]),
                     AttemptAnswerIn(question_id=q1, selected_options=["3"])],
            now=T0 + timedelta(minutes=1)
        )


@pytest.mark.asyncio
async def test_second_submit_is_rejected(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)

    first = await attempt_service.submit(db_session, attempt_id=attempt.id, student=student, now=T0 + timedelta(minutes=3))
    first_score, first_submitted_at = first.score, first.submitted_at

    with pytest.raises(AlreadySubmittedError):
        await attempt_service.submit(db_session, attempt_id=attempt.id, student=student, now=T0 + timedelta(minutes=4))

    db_session.refresh(first)
    assert first.score == first_score
    assert first.submitted_at == first_submitted_at


@pytest.mark.asyncio
async def test_expiry_is_decided_by_server_clock(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)

    assert attempt.is_expired(T0 + timedelta(minutes=29, seconds=59)) is False
    assert attempt.is_expired(T0 + timedelta(minutes=30)) is True
    assert attempt.time_remaining_seconds(T0 + timedelta(minutes=10)) == 20 * 60
    assert attempt.time_remaining_seconds(T0 + timedelta(hours=2)) == 0

    untouched = await attempt_service.expire_if_due(db_session, attempt, now=T0 + timedelta(minutes=29))
    assert untouched.status == AttemptStatusEnum.IN_PROGRESS

    late = T0 + timedelta(minutes=45)
    expired = await attempt_service.expire_if_due(db_session, attempt, now=late)
    assert expired.status == AttemptStatusEnum.AUTO_SUBMITTED
    assert expired.end_time == T0 + timedelta(minutes=30)
    assert expired.submitted_at == late
    assert expired.rank is not None


@pytest.mark.asyncio
async def test_save_after_expiry_auto_submits(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)

    with pytest.raises(AttemptExpiredError):
        await attempt_service.save_answer(
            db_session, attempt_id=attempt.id, student=student,
            answer_in=AttemptAnswerIn(question_id=question_ids(exam)[0], selected_options=["4"]),
            now=T0 + timedelta(minutes=31)
        )

    db_session.refresh(attempt)
    assert attempt.status == AttemptStatusEnum.AUTO_SUBMITTED
    assert crud_attempt.get_answers(db_session, attempt.id) == []


@pytest.mark.asyncio
async def test_late_submit_returns_auto_submitted_attempt(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1 = question_ids(exam)[0]
    attempt = await _launch(db_session, exam, student)

    result = await attempt_service.submit(
        db_session, attempt_id=attempt.id, student=student,
        answers=[AttemptAnswerIn(question_id=q1, selected_options=["4"])],
        now=T0 + timedelta(minutes=40)
    )

    assert result.status == AttemptStatusEnum.AUTO_SUBMITTED
    assert result.score == 0


@pytest.mark.asyncio
async def test_expired_in_progress_attempt_is_closed_on_relaunch(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    stale = await _launch(db_session, exam, student)

    fresh, created = await attempt_service.launch(
        db_session, test_id=exam.id, student=student, now=T0 + timedelta(hours=1)
    )

    assert created is True
    assert fresh.id != stale.id
    db_session.refresh(stale)
    assert stale.status == AttemptStatusEnum.AUTO_SUBMITTED


@pytest.mark.asyncio
async def test_sweep_auto_submits_abandoned_attempts(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)

    swept = await attempt_service.sweep_expired(db_session, now=T0 + timedelta(minutes=30))

    assert swept >= 1
    db_session.refresh(attempt)
    assert attempt.status == AttemptStatusEnum.AUTO_SUBMITTED


@pytest.mark.asyncio
async def test_violation_threshold_forces_invalid_submission(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)

    for count in range(1, 5):
        _, violation_count, terminated = await attempt_service.report_violation(
            db_session, attempt_id=attempt.id, student=student, violation_type="tab-switch",
            now=T0 + timedelta(minutes=count)
        )
        assert violation_count == count
        assert terminated is False

    final, violation_count, terminated = await attempt_service.report_violation(
        db_session, attempt_id=attempt.id, student=student, violation_type="copy-paste",
        details="ctrl+v", now=T0 + timedelta(minutes=6)
    )

    assert violation_count == 5
    assert terminated is True
    assert final.status == AttemptStatusEnum.AUTO_SUBMITTED
    assert final.is_valid is False
    assert final.notes == FORCED_SUBMIT_NOTE
    assert final.rank is None
    assert final.violation_count == 5

    stats = attempt_service.get_test_statistics(db_session, test_id=exam.id)
    assert stats["total_attempts"] == 0

    with pytest.raises(AlreadySubmittedError):
        await attempt_service.report_violation(
            db_session, attempt_id=attempt.id, student=student, violation_type="tab-switch", now=T0
        )


@pytest.mark.asyncio
async def test_violation_threshold_after_concurrent_submit(db_session: Session, session_factory, student_factory,
                                                           exam_factory, monkeypatch):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)
    for count in range(1, 5):
        await attempt_service.report_violation(
            db_session, attempt_id=attempt.id, student=student, violation_type="tab-switch",
            now=T0 + timedelta(minutes=count)
        )

    add_violation = crud_attempt.add_violation

    def submit_elsewhere_then_add(db, **kwargs):
        other = session_factory()
        try:
            other.query(Attempt).filter(Attempt.id == attempt.id).update(
                {Attempt.status: AttemptStatusEnum.SUBMITTED, Attempt.submitted_at: T0 + timedelta(minutes=5)},
                synchronize_session=False,
            )
            other.commit()
        finally:
            other.close()
        return add_violation(db, **kwargs)

    monkeypatch.setattr(crud_attempt, "add_violation", submit_elsewhere_then_add)

    final, violation_count, terminated = await attempt_service.report_violation(
        db_session, attempt_id=attempt.id, student=student, violation_type="tab-switch",
        now=T0 + timedelta(minutes=6)
    )

    assert violation_count == 5
    assert terminated is False
    assert final.status == AttemptStatusEnum.SUBMITTED
    assert final.is_valid is True
    assert final.notes is None


@pytest.mark.asyncio
async def test_disconnect_is_logged_without_submitting(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)

    assert attempt_service.record_disconnect(db_session, attempt_id=attempt.id, reason="ping timeout") is True

    db_session.refresh(attempt)
    assert attempt.status == AttemptStatusEnum.IN_PROGRESS
    assert [v.violation_type for v in attempt.violations] == ["disconnect"]


@pytest.mark.asyncio
async def test_rank_and_statistics_across_students(db_session: Session, student_factory, exam_factory):
    exam = exam_factory()
    q1, q2, q3 = question_ids(exam)
    picks = {
        "top": [(q1, ["4"]), (q2, ["2", "3"]), (q3, ["fast"])],
        "low": [(q1, ["4"])],
        "mid": [(q1, ["4"]), (q2, ["2", "3"])],
    }

    finished = {}
    for offset, (label, answers) in enumerate(picks.items()):
        student = student_factory()
        attempt = await _launch(db_session, exam, student)
        finished[label] = await attempt_service.submit(
            db_session, attempt_id=attempt.id, student=student,
            answers=[AttemptAnswerIn(question_id=qid, selected_options=sel) for qid, sel in answers],
            now=T0 + timedelta(minutes=10 + offset)
        )

    assert finished["top"].score == 6
    assert finished["mid"].score == 4
    assert finished["low"].score == 2
    assert (finished["mid"].rank, finished["mid"].percentile) == (2, 67)

    stats = attempt_service.get_test_statistics(db_session, test_id=exam.id)
    assert stats["total_attempts"] == 3
    assert stats["highest_score"] == 6
    assert stats["lowest_score"] == 2
    assert stats["average_score"] == 4
    assert stats["pass_rate"] == 67


@pytest.mark.asyncio
async def test_missing_rank_is_recovered_on_read(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    attempt = await _launch(db_session, exam, student)
    submitted = await attempt_service.submit(db_session, attempt_id=attempt.id, student=student, now=T0 + timedelta(minutes=5))

    submitted.rank = None
    submitted.percentile = None
    db_session.commit()

    recovered = attempt_service.get_attempt(db_session, attempt_id=attempt.id, student=student)
    assert recovered.rank == 1
    assert recovered.percentile == 100


@pytest.mark.asyncio
async def test_attempt_details(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1, q2, q3 = question_ids(exam)
    attempt = await _launch(db_session, exam, student)

    with pytest.raises(InvalidStateError):
        attempt_service.get_attempt_details(db_session, attempt_id=attempt.id, student=student)

    submitted = await attempt_service.submit(
        db_session, attempt_id=attempt.id, student=student,
        answers=[AttemptAnswerIn(question_id=q2, selected_options=["2"])],
        now=T0 + timedelta(minutes=5)
    )

    details = attempt_service.get_attempt_details(
        db_session, attempt_id=attempt.id, student=student, now=T0 + timedelta(days=1)
    )
    [answer] = details["detailed_answers"]
    assert answer["question_id"] == q2
    assert answer["is_correct"] is False
    assert answer["question"]["correct_answers"] == ["2", "3"]
    assert answer["question"]["correct_answer"] == "2"

    with pytest.raises(ResultsExpiredError):
        attempt_service.get_attempt_details(
            db_session, attempt_id=attempt.id, student=student,
            now=submitted.submitted_at + timedelta(days=121)
        )


@pytest.mark.asyncio
async def test_questions_for_attempt(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    other = exam_factory()
    attempt = await _launch(db_session, exam, student)

    data = await attempt_service.get_attempt_questions(
        db_session, test_id=exam.id, attempt_id=attempt.id, student=student, now=T0 + timedelta(minutes=1)
    )
    assert [q.id for q in data["questions"]] == question_ids(exam)
    assert [s.section_name for s in data["sections"]] == ["Quant", "Verbal"]

    with pytest.raises(InvalidStateError):
        await attempt_service.get_attempt_questions(
            db_session, test_id=other.id, attempt_id=attempt.id, student=student, now=T0
        )

    with pytest.raises(AttemptExpiredError):
        await attempt_service.get_attempt_questions(
            db_session, test_id=exam.id, attempt_id=attempt.id, student=student, now=T0 + timedelta(hours=1)
        )

    with pytest.raises(NotFoundError):
        await attempt_service.get_attempt_questions(
            db_session, test_id=exam.id, attempt_id=attempt.id, student=student, now=T0 + timedelta(hours=1)
        )


@pytest.mark.asyncio
async def test_student_summary(db_session: Session, student_factory, exam_factory):
    student = student_factory()
    exam = exam_factory()
    q1, q2, q3 = question_ids(exam)

    passed = await _launch(db_session, exam, student)
    await attempt_service.submit(
        db_session, attempt_id=passed.id, student=student,
        answers=[AttemptAnswerIn(question_id=q, selected_options=s) for q, s in
                 [(q1, ["4"]), (q2, ["2", "3"]), (q3, ["fast"])]],
        now=T0 + timedelta(minutes=5)
    )
    failed = await _launch(db_session, exam, student, now=T0 + timedelta(minutes=6))
    await attempt_service.submit(db_session, attempt_id=failed.id, student=student, now=T0 + timedelta(minutes=7))

    summary = attempt_service.get_student_summary(db_session, student=student)
    assert summary == {
        "total_attempts": 2,
        "completed_attempts": 2,
        "passed_attempts": 1,
        "average_score": 3,
        "pass_rate": 50,
    }
