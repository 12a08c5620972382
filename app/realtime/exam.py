from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Set
from urllib.parse import parse_qs
import asyncio
import logging

import socketio
from pydantic import ValidationError

from app.core.config import settings
from app.core.constants import AttemptStatusEnum, VIOLATION_MESSAGES, DEFAULT_VIOLATION_MESSAGE, ViolationTypeEnum
from app.core.database import SessionLocal
from app.core.exceptions import (
    AppError, AttemptExpiredError, AuthenticationError, InvalidStateError, NotFoundError, ServerError,
    ValidationFailedError
)
from app.crud.attempt import attempt as crud_attempt
from app.schemas.attempt import AttemptAnswerIn
from app.services.attempt import attempt_service
from app.services.session import session_service
from app.utils.events import event_bus, ATTEMPT_FINALIZED

logger = logging.getLogger(__name__)

EXAM_NAMESPACE = "/exam"

# student_id -> {sid, attempt_id, joined_at, last_activity}
active_exam_sessions: Dict[int, dict] = {}


def _room(attempt_id: int) -> str:
    return f"attempt_{attempt_id}"


def _time_payload(attempt, now: datetime) -> dict:
    return {
        "attemptId": attempt.id,
        "serverTime": now.isoformat(),
        "timeRemaining": attempt.time_remaining_seconds(now),
        "timeElapsed": attempt.time_elapsed_seconds(now),
    }


class ExpiryTimers:
    """One-shot auto-submit timer per joined attempt.

    A timer stays armed while at least one connection is joined to its attempt.
    """

    def __init__(self):
        self._tasks: Dict[int, asyncio.Task] = {}
        # attempt_id -> sids joined to the attempt room
        self._watchers: Dict[int, Set[str]] = {}

    def __contains__(self, attempt_id: int) -> bool:
        return attempt_id in self._tasks

    def schedule(self, sio_server: socketio.AsyncServer, attempt_id: int, delay_seconds: float):
        self.cancel(attempt_id)
        self._tasks[attempt_id] = asyncio.create_task(self._fire(sio_server, attempt_id, delay_seconds))

    def cancel(self, attempt_id: int) -> bool:
        task = self._tasks.pop(attempt_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def watch(self, attempt_id: int, sid: str):
        self._watchers.setdefault(attempt_id, set()).add(sid)

    def release(self, attempt_id: int, sid: str) -> bool:
        """Drop one connection; cancels the timer once no connection is left."""
        watchers = self._watchers.get(attempt_id)
        if watchers is not None:
            watchers.discard(sid)
            if watchers:
                return False
            del self._watchers[attempt_id]
        return self.cancel(attempt_id)

    def cancel_all(self):
        for attempt_id in list(self._tasks):
            self.cancel(attempt_id)
        self._watchers.clear()

    async def on_attempt_finalized(self, data: Dict[str, Any]):
        self._watchers.pop(data["attempt_id"], None)
        if self.cancel(data["attempt_id"]):
            logger.debug(f"Expiry timer for attempt {data['attempt_id']} cancelled after finalization")

    async def _fire(self, sio_server: socketio.AsyncServer, attempt_id: int, delay_seconds: float):
        await asyncio.sleep(max(0, delay_seconds))
        # Out of the registry before finalizing, so the finalized event does not cancel this task
        self._tasks.pop(attempt_id, None)

        db = SessionLocal()
        try:
            attempt = crud_attempt.get(db, id=attempt_id)
            if not attempt or attempt.status != AttemptStatusEnum.IN_PROGRESS:
                return
            now = datetime.utcnow()
            if not attempt.is_expired(now):
                # Woke up early; wait out the remainder
                self.schedule(sio_server, attempt_id, attempt.time_remaining_seconds(now) + 1)
                return
            attempt = await attempt_service.expire_if_due(db, attempt, now)
            logger.info(f"Expiry timer auto-submitted attempt {attempt_id}")
            await sio_server.emit("autoSubmit", {
                "message": "Time expired. Attempt auto-submitted.",
                "attemptId": attempt_id,
                "status": attempt.status.value,
            }, room=_room(attempt_id), namespace=EXAM_NAMESPACE)
        except Exception as e:
            logger.error(f"Auto-submit timer failed for attempt {attempt_id}: {e}", exc_info=True)
        finally:
            db.close()


expiry_timers = ExpiryTimers()


def cleanup_inactive_sessions(now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=settings.SESSION_IDLE_MINUTES)
    stale = [student_id for student_id, s in active_exam_sessions.items() if s["last_activity"] < cutoff]
    for student_id in stale:
        logger.info(f"Cleaning up inactive exam session for student {student_id}")
        del active_exam_sessions[student_id]
    return len(stale)


def _touch(student_id: int, now: Optional[datetime] = None):
    session = active_exam_sessions.get(student_id)
    if session:
        session["last_activity"] = now or datetime.utcnow()


def _extract_token(environ: dict, auth: Optional[dict]) -> Optional[str]:
    if auth and auth.get("token"):
        return auth["token"]
    if environ.get("QUERY_STRING"):
        query_params = parse_qs(environ.get("QUERY_STRING", ""))
        return query_params.get("token", [None])[0]
    return None


def _attempt_id_from(data: Any) -> int:
    try:
        return int((data or {})["attemptId"])
    except (KeyError, TypeError, ValueError):
        raise ValidationFailedError("attemptId is required.")


async def _emit_error(sio_server: socketio.AsyncServer, sid: str, error: AppError):
    await sio_server.emit("error", error.to_dict(), room=sid, namespace=EXAM_NAMESPACE)


async def _authenticate(sio_server: socketio.AsyncServer, sid: str, db):
    """Re-check that the socket's login session is still the student's active one."""
    session = await sio_server.get_session(sid, namespace=EXAM_NAMESPACE)
    if not session or "student_id" not in session:
        raise AuthenticationError("Not authenticated.")
    student = session_service.require_active(db, student_id=session["student_id"], session_id=session["session_id"])
    return student, session


def _require_current_attempt(session: dict, data: Any) -> int:
    attempt_id = _attempt_id_from(data)
    if session.get("attempt_id") != attempt_id:
        raise InvalidStateError("Invalid attempt ID. Join the attempt first.")
    return attempt_id


async def _leave_attempt(sio_server: socketio.AsyncServer, sid: str, session: dict, attempt_id: int):
    await sio_server.leave_room(sid, _room(attempt_id), namespace=EXAM_NAMESPACE)
    expiry_timers.release(attempt_id, sid)
    session["attempt_id"] = None
    await sio_server.save_session(sid, session, namespace=EXAM_NAMESPACE)
    current = active_exam_sessions.get(session["student_id"])
    if current and current["sid"] == sid:
        del active_exam_sessions[session["student_id"]]


async def handle_connect(sio_server: socketio.AsyncServer, sid: str, environ: dict, auth: Optional[dict]) -> bool:
    token = _extract_token(environ, auth)
    if not token:
        logger.warning(f"Exam connection rejected for {sid}: No token")
        return False

    db = SessionLocal()
    try:
        payload = session_service.decode(token)
        student = session_service.require_active(db, student_id=payload.student_id, session_id=payload.session_id)
        await sio_server.save_session(sid, {
            "student_id": student.id,
            "session_id": payload.session_id,
            "attempt_id": None,
        }, namespace=EXAM_NAMESPACE)
        logger.info(f"Client {sid} connected to exam namespace (Student: {student.id})")
        return True
    except AuthenticationError as e:
        logger.warning(f"Exam connection rejected for {sid}: {e.message}")
        return False
    finally:
        db.close()


async def handle_join_attempt(sio_server: socketio.AsyncServer, sid: str, data: Any, now: Optional[datetime] = None):
    db = SessionLocal()
    try:
        student, session = await _authenticate(sio_server, sid, db)
        attempt_id = _attempt_id_from(data)
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt or attempt.student_id != student.id or attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise NotFoundError("Invalid attempt or attempt not in progress.")

        now = now or datetime.utcnow()
        if attempt.is_expired(now):
            await attempt_service.expire_if_due(db, attempt, now)
            await sio_server.emit("attemptExpired", {
                "message": "Attempt has expired and been auto-submitted",
                "attemptId": attempt_id,
            }, room=sid, namespace=EXAM_NAMESPACE)
            return

        if session.get("attempt_id") and session["attempt_id"] != attempt_id:
            await _leave_attempt(sio_server, sid, session, session["attempt_id"])

        await sio_server.enter_room(sid, _room(attempt_id), namespace=EXAM_NAMESPACE)
        session["attempt_id"] = attempt_id
        await sio_server.save_session(sid, session, namespace=EXAM_NAMESPACE)
        active_exam_sessions[student.id] = {
            "sid": sid,
            "attempt_id": attempt_id,
            "joined_at": now,
            "last_activity": now,
        }

        await sio_server.emit("attemptJoined", _time_payload(attempt, now), room=sid, namespace=EXAM_NAMESPACE)
        expiry_timers.watch(attempt_id, sid)
        expiry_timers.schedule(sio_server, attempt_id, attempt.time_remaining_seconds(now))
        logger.info(f"Student {student.id} joined attempt {attempt_id} over socket")
    except AppError as e:
        await _emit_error(sio_server, sid, e)
    except Exception as e:
        logger.error(f"Join attempt error for {sid}: {e}", exc_info=True)
        await _emit_error(sio_server, sid, ServerError("Failed to join attempt."))
    finally:
        db.close()


async def handle_sync_time(sio_server: socketio.AsyncServer, sid: str, data: Any, now: Optional[datetime] = None):
    db = SessionLocal()
    try:
        student, session = await _authenticate(sio_server, sid, db)
        attempt_id = _require_current_attempt(session, data)
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt or attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise NotFoundError("Attempt not found or not in progress.")

        now = now or datetime.utcnow()
        await sio_server.emit("timeSync", _time_payload(attempt, now), room=sid, namespace=EXAM_NAMESPACE)
        _touch(student.id, now)
    except AppError as e:
        await _emit_error(sio_server, sid, e)
    except Exception as e:
        logger.error(f"Time sync error for {sid}: {e}", exc_info=True)
        await _emit_error(sio_server, sid, ServerError("Failed to sync time."))
    finally:
        db.close()


async def handle_save_answer(sio_server: socketio.AsyncServer, sid: str, data: Any, now: Optional[datetime] = None):
    db = SessionLocal()
    try:
        student, session = await _authenticate(sio_server, sid, db)
        attempt_id = _require_current_attempt(session, data)
        try:
            answer_in = AttemptAnswerIn(
                question_id=data.get("questionId"),
                selected_options=data.get("selectedOptions"),
                is_marked_for_review=data.get("isMarkedForReview") or False,
                section=data.get("section"),
                time_spent=data.get("timeSpent") or 0,
            )
        except ValidationError as e:
            raise ValidationFailedError("Invalid answer payload.", details={"errors": e.errors(include_url=False)})

        try:
            answer = await attempt_service.save_answer(
                db, attempt_id=attempt_id, student=student, answer_in=answer_in, now=now
            )
        except AttemptExpiredError:
            await sio_server.emit("attemptExpired", {
                "message": "Attempt has expired",
                "attemptId": attempt_id,
            }, room=sid, namespace=EXAM_NAMESPACE)
            return

        await sio_server.emit("answerSaved", {
            "questionId": answer.question_id,
            "success": True,
            "timestamp": datetime.utcnow().isoformat(),
        }, room=sid, namespace=EXAM_NAMESPACE)
        _touch(student.id)
    except AppError as e:
        await _emit_error(sio_server, sid, e)
    except Exception as e:
        logger.error(f"Save answer error for {sid}: {e}", exc_info=True)
        await _emit_error(sio_server, sid, ServerError("Failed to save answer."))
    finally:
        db.close()


async def handle_exam_violation(sio_server: socketio.AsyncServer, sid: str, data: Any, now: Optional[datetime] = None):
    db = SessionLocal()
    try:
        student, session = await _authenticate(sio_server, sid, db)
        attempt_id = _require_current_attempt(session, data)
        violation_type = data.get("violationType")
        try:
            violation_type = ViolationTypeEnum(violation_type)
        except ValueError:
            raise ValidationFailedError(f"Unknown violation type: {violation_type}")

        try:
            attempt, violation_count, terminated = await attempt_service.report_violation(
                db,
                attempt_id=attempt_id,
                student=student,
                violation_type=violation_type.value,
                details=data.get("details"),
                now=now,
            )
        except AttemptExpiredError:
            await sio_server.emit("attemptExpired", {
                "message": "Attempt has expired",
                "attemptId": attempt_id,
            }, room=sid, namespace=EXAM_NAMESPACE)
            return

        await sio_server.emit("violationWarning", {
            "type": violation_type.value,
            "message": VIOLATION_MESSAGES.get(violation_type, DEFAULT_VIOLATION_MESSAGE),
            "violationCount": violation_count,
            "maxViolations": settings.MAX_VIOLATIONS,
        }, room=sid, namespace=EXAM_NAMESPACE)

        if terminated:
            await sio_server.emit("forceSubmit", {
                "message": "Attempt submitted due to multiple violations",
                "attemptId": attempt_id,
            }, room=sid, namespace=EXAM_NAMESPACE)
            await _leave_attempt(sio_server, sid, session, attempt_id)
    except AppError as e:
        await _emit_error(sio_server, sid, e)
    except Exception as e:
        logger.error(f"Exam violation error for {sid}: {e}", exc_info=True)
        await _emit_error(sio_server, sid, ServerError("Failed to record violation."))
    finally:
        db.close()


async def handle_submit_attempt(sio_server: socketio.AsyncServer, sid: str, data: Any, now: Optional[datetime] = None):
    db = SessionLocal()
    try:
        student, session = await _authenticate(sio_server, sid, db)
        attempt_id = _require_current_attempt(session, data)
        attempt = await attempt_service.submit(db, attempt_id=attempt_id, student=student, now=now)

        message = "Attempt submitted successfully"
        if attempt.status == AttemptStatusEnum.AUTO_SUBMITTED:
            message = "Time limit reached. Attempt was auto-submitted."
        await sio_server.emit("attemptSubmitted", {
            "attemptId": attempt_id,
            "message": message,
            "status": attempt.status.value,
            "submittedAt": attempt.submitted_at.isoformat() if attempt.submitted_at else None,
            "score": attempt.score,
            "percentage": attempt.percentage,
        }, room=sid, namespace=EXAM_NAMESPACE)
        await _leave_attempt(sio_server, sid, session, attempt_id)
    except AppError as e:
        await _emit_error(sio_server, sid, e)
    except Exception as e:
        logger.error(f"Submit attempt error for {sid}: {e}", exc_info=True)
        await _emit_error(sio_server, sid, ServerError("Failed to submit attempt."))
    finally:
        db.close()


async def handle_leave_attempt(sio_server: socketio.AsyncServer, sid: str, data: Any):
    session = await sio_server.get_session(sid, namespace=EXAM_NAMESPACE)
    attempt_id = (session or {}).get("attempt_id")
    if not attempt_id:
        return
    await _leave_attempt(sio_server, sid, session, attempt_id)


async def handle_heartbeat(sio_server: socketio.AsyncServer, sid: str, data: Any = None):
    session = await sio_server.get_session(sid, namespace=EXAM_NAMESPACE)
    if session and session.get("student_id"):
        _touch(session["student_id"])
    await sio_server.emit("heartbeat_ack", {
        "serverTime": datetime.utcnow().isoformat(),
    }, room=sid, namespace=EXAM_NAMESPACE)


async def handle_disconnect(sio_server: socketio.AsyncServer, sid: str, reason: Optional[str] = None):
    session = await sio_server.get_session(sid, namespace=EXAM_NAMESPACE)
    if not session:
        return
    student_id = session.get("student_id")
    attempt_id = session.get("attempt_id")

    current = active_exam_sessions.get(student_id)
    if current and current["sid"] == sid:
        del active_exam_sessions[student_id]

    logger.info(f"Client {sid} disconnected from exam namespace (Student: {student_id}, reason: {reason})")
    if not attempt_id:
        return

    expiry_timers.release(attempt_id, sid)
    db = SessionLocal()
    try:
        attempt_service.record_disconnect(db, attempt_id=attempt_id, reason=str(reason or "transport close"))
    except Exception as e:
        logger.error(f"Disconnect handling error for attempt {attempt_id}: {e}", exc_info=True)
    finally:
        db.close()


def register_exam_events(sio_server: socketio.AsyncServer):
    event_bus.subscribe(ATTEMPT_FINALIZED, expiry_timers.on_attempt_finalized)

    @sio_server.on("connect", namespace=EXAM_NAMESPACE)
    async def connect(sid, environ, auth=None):
        return await handle_connect(sio_server, sid, environ, auth)

    @sio_server.on("disconnect", namespace=EXAM_NAMESPACE)
    async def disconnect(sid, reason=None):
        await handle_disconnect(sio_server, sid, reason)

    @sio_server.on("joinAttempt", namespace=EXAM_NAMESPACE)
    async def join_attempt(sid, data):
        await handle_join_attempt(sio_server, sid, data)

    @sio_server.on("leaveAttempt", namespace=EXAM_NAMESPACE)
    async def leave_attempt(sid, data=None):
        await handle_leave_attempt(sio_server, sid, data)

    @sio_server.on("syncTime", namespace=EXAM_NAMESPACE)
    async def sync_time(sid, data):
        await handle_sync_time(sio_server, sid, data)

    @sio_server.on("saveAnswer", namespace=EXAM_NAMESPACE)
    async def save_answer(sid, data):
        await handle_save_answer(sio_server, sid, data)

    @sio_server.on("examViolation", namespace=EXAM_NAMESPACE)
    async def exam_violation(sid, data):
        await handle_exam_violation(sio_server, sid, data)

    @sio_server.on("submitAttempt", namespace=EXAM_NAMESPACE)
    async def submit_attempt(sid, data):
        await handle_submit_attempt(sio_server, sid, data)

    @sio_server.on("heartbeat", namespace=EXAM_NAMESPACE)
    async def heartbeat(sid, data=None):
        await handle_heartbeat(sio_server, sid, data)
