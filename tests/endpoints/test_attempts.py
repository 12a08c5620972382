from datetime import datetime, timedelta

from app.crud.attempt import attempt as crud_attempt
from tests.helpers.asserts import api_call, api_data, api_error
from tests.helpers.exam_data import auth, question_ids

def _launch(client, token, exam) -> int:
    return api_data(client, "POST", f"/tests/{exam.id}/launch", headers=auth(token))["attempt_id"]

class TestAttemptEndpoints:
    def test_save_answer_and_resume_sees_it(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        q1, q2, q3 = question_ids(exam)
        attempt_id = _launch(client, token, exam)

        saved = api_call(client, "PUT", f"/attempts/{attempt_id}/answers", headers=auth(token), json={
            "question_id": q1,
            "selected_options": "4",
            "is_marked_for_review": True,
            "time_spent": 15
        }).json()["data"]
        assert saved["selected_options"] == ["4"]
        assert saved["is_marked_for_review"] is True
        assert saved["is_correct"] is None

        api_call(client, "PUT", f"/attempts/{attempt_id}/answers", headers=auth(token), json={
            "question_id": q1,
            "selected_options": ["3"]
        })

        data = api_call(
            client, "GET", f"/tests/{exam.id}/questions?attempt_id={attempt_id}", headers=auth(token)
        ).json()["data"]
        assert [(a["question_id"], a["selected_options"]) for a in data["saved_answers"]] == [(q1, ["3"])]

    def test_save_answer_validation(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        attempt_id = _launch(client, token, exam)

        api_error(client, "PUT", f"/attempts/{attempt_id}/answers", 422, "VALIDATION_ERROR",
                  headers=auth(token), json={"selected_options": ["4"]})

    def test_submit_then_read_results(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        q1, q2, q3 = question_ids(exam)
        attempt_id = _launch(client, token, exam)

        submitted = api_call(client, "POST", f"/attempts/{attempt_id}/submit", headers=auth(token), json={
            "answers": [
                {"question_id": q1, "selected_options": ["4"]},
                {"question_id": q2, "selected_options": ["2", "3"]},
                {"question_id": q3, "selected_options": ["slow"]}
            ]
        }).json()
        assert submitted["message"] == "Test submitted successfully"
        data = submitted["data"]
        assert data["status"] == "submitted"
        assert data["score"] == 4
        assert data["percentage"] == 67
        assert data["is_passed"] is True
        assert data["rank"] == 1
        assert data["percentile"] == 100
        assert {s["section_name"]: s["score"] for s in data["section_wise_score"]} == {"Quant": 4, "Verbal": 0}

        api_error(client, "POST", f"/attempts/{attempt_id}/submit", 409, "ALREADY_SUBMITTED", headers=auth(token))

        details = api_data(client, "GET", f"/attempts/{attempt_id}/details", headers=auth(token))
        review = {a["question_id"]: a for a in details["detailed_answers"]}
        assert review[q3]["is_correct"] is False
        assert review[q3]["question"]["correct_answer"] == "fast"
        assert review[q1]["marks_awarded"] == 2

        fetched = api_data(client, "GET", f"/attempts/{attempt_id}", headers=auth(token))
        assert fetched["score"] == 4

    def test_submit_without_body_uses_saved_answers(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        q1 = question_ids(exam)[0]
        attempt_id = _launch(client, token, exam)
        api_call(client, "PUT", f"/attempts/{attempt_id}/answers", headers=auth(token),
                 json={"question_id": q1, "selected_options": ["4"]})

        data = api_data(client, "POST", f"/attempts/{attempt_id}/submit", headers=auth(token))
        assert data["score"] == 2
        assert data["attempted_questions"] == 1

    def test_details_not_available_while_in_progress(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        attempt_id = _launch(client, token, exam)

        response = client.get(f"/attempts/{attempt_id}/details", headers=auth(token))
        assert response.status_code == 409

    def test_expired_attempt_flow(self, client, student_token, exam_factory, db_session):
        _, token = student_token
        exam = exam_factory()
        q1 = question_ids(exam)[0]
        attempt_id = _launch(client, token, exam)

        attempt = crud_attempt.get(db_session, id=attempt_id)
        attempt.start_time = datetime.utcnow() - timedelta(minutes=31)
        db_session.commit()

        api_error(client, "PUT", f"/attempts/{attempt_id}/answers", 410, "ATTEMPT_EXPIRED",
                  headers=auth(token), json={"question_id": q1, "selected_options": ["4"]})

        status = api_data(client, "GET", f"/attempts/{attempt_id}/time", headers=auth(token))
        assert status["status"] == "auto-submitted"
        assert status["time_remaining"] == 0

    def test_late_submit_is_accepted_as_auto_submit(self, client, student_token, exam_factory, db_session):
        _, token = student_token
        exam = exam_factory()
        attempt_id = _launch(client, token, exam)

        attempt = crud_attempt.get(db_session, id=attempt_id)
        attempt.start_time = datetime.utcnow() - timedelta(hours=1)
        db_session.commit()

        response = api_call(client, "POST", f"/attempts/{attempt_id}/submit", headers=auth(token)).json()
        assert response["message"] == "Time limit reached. Attempt was auto-submitted."
        assert response["data"]["status"] == "auto-submitted"

    def test_expire_check_and_time(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        attempt_id = _launch(client, token, exam)

        checked = api_data(client, "POST", f"/attempts/{attempt_id}/expire-check", headers=auth(token))
        assert checked["status"] == "in-progress"
        assert checked["time_remaining"] > 0

        status = api_data(client, "GET", f"/attempts/{attempt_id}/time", headers=auth(token))
        assert status["attempt_id"] == attempt_id
        assert status["time_elapsed"] + status["time_remaining"] == 30 * 60

    def test_list_and_summary(self, client, student_token, exam_factory):
        _, token = student_token
        exam = exam_factory()
        finished = _launch(client, token, exam)
        api_call(client, "POST", f"/attempts/{finished}/submit", headers=auth(token))
        live = _launch(client, token, exam)

        all_attempts = api_data(client, "GET", "/attempts/", headers=auth(token))
        assert {a["id"] for a in all_attempts} == {finished, live}

        in_progress = api_data(client, "GET", "/attempts/?status=in-progress", headers=auth(token))
        assert [a["id"] for a in in_progress] == [live]

        summary = api_data(client, "GET", "/attempts/summary", headers=auth(token))
        assert summary["total_attempts"] == 2
        assert summary["completed_attempts"] == 1

    def test_cannot_read_someone_elses_attempt(self, client, student_token, student_factory, login, exam_factory):
        _, token = student_token
        exam = exam_factory()
        attempt_id = _launch(client, token, exam)

        other = student_factory()
        other_token = login(client, other.email)
        response = client.get(f"/attempts/{attempt_id}", headers=auth(other_token))
        assert response.status_code == 403

    def test_unknown_attempt(self, client, student_token):
        _, token = student_token
        api_error(client, "GET", "/attempts/999999", 404, "NOT_FOUND", headers=auth(token))
