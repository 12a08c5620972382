import uuid


def build_test_payload(**overrides) -> dict:
    """Three-question free test: Quant (single + multiple select) and Verbal, 2 marks each."""
    payload = {
        "title": f"Mock Test {uuid.uuid4().hex[:6]}",
        "description": "Sectioned mock test",
        "test_type": "free",
        "price": 0,
        "attempts_allowed": 3,
        "passing_marks": 50,
        "instructions": ["Answer all questions"],
        "sections": [
            {"section_name": "Quant", "question_count": 2, "duration": 20, "marks_per_question": 2},
            {"section_name": "Verbal", "question_count": 1, "duration": 10, "marks_per_question": 2},
        ],
        "questions": [
            {
                "section": "Quant",
                "question_type": "single",
                "question_text": "2 + 2 = ?",
                "options": [{"text": "3"}, {"text": "4", "is_correct": True}, {"text": "5"}],
                "marks": 2,
                "negative_marks": 0.5,
                "explanation": "Basic addition.",
            },
            {
                "section": "Quant",
                "question_type": "multiple",
                "question_text": "Pick the primes",
                "options": [
                    {"text": "2", "is_correct": True},
                    {"text": "3", "is_correct": True},
                    {"text": "4"},
                ],
                "marks": 2,
                "negative_marks": 0.5,
            },
            {
                "section": "Verbal",
                "question_type": "single",
                "question_text": "Synonym of rapid",
                "options": [{"text": "slow"}, {"text": "fast", "is_correct": True}],
                "marks": 2,
                "negative_marks": 0,
            },
        ],
    }
    payload.update(overrides)
    return payload


def question_ids(exam) -> list:
    return [q.id for q in sorted(exam.questions, key=lambda q: q.position)]


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
