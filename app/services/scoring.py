"""
Pure scoring and ranking helpers.

Nothing in here touches the database: questions and answers come in as
plain mappings (or ORM rows read through ``_get``), results go out as
dataclasses that the attempt service persists.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.core.constants import QuestionTypeEnum


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        value = obj.get(key, default)
    else:
        value = getattr(obj, key, default)
    return default if value is None else value


def option_identifier(option: Any, index: int) -> str:
    """Text of the option, or ``option_<index>`` when the option has no text."""
    text = _get(option, "text", "")
    if text:
        return str(text)
    return f"option_{index}"


def correct_identifiers(question: Any) -> List[str]:
    return [
        option_identifier(option, index)
        for index, option in enumerate(_get(question, "options", []))
        if _get(option, "is_correct", False)
    ]


def normalize_selection(selected: Optional[Iterable[Any]]) -> List[str]:
    if selected is None:
        return []
    if isinstance(selected, (str, int, float)):
        selected = [selected]
    return [str(item) for item in selected if item is not None and str(item) != ""]


def evaluate_answer(question: Any, selected: Optional[Iterable[Any]]) -> Optional[bool]:
    """Correctness of a selection; ``None`` when nothing was selected."""
    selection = normalize_selection(selected)
    if not selection:
        return None

    correct = correct_identifiers(question)
    question_type = _get(question, "question_type", QuestionTypeEnum.SINGLE.value)

    if question_type == QuestionTypeEnum.MULTIPLE.value:
        return len(set(selection)) == len(selection) and set(selection) == set(correct)

    if not correct:
        return False
    return len(selection) == 1 and selection[0] == correct[0]


@dataclass
class AnswerResult:
    question_id: Any
    is_correct: bool
    marks_awarded: float


@dataclass
class SectionScore:
    section_name: str
    total_questions: int = 0
    attempted_questions: int = 0
    correct_answers: int = 0
    score: float = 0
    time_spent: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "section_name": self.section_name,
            "total_questions": self.total_questions,
            "attempted_questions": self.attempted_questions,
            "correct_answers": self.correct_answers,
            "score": self.score,
            "time_spent": self.time_spent,
        }


@dataclass
class ScoreResult:
    answers: Dict[Any, AnswerResult] = field(default_factory=dict)
    total_questions: int = 0
    attempted_questions: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    unanswered_questions: int = 0
    score: float = 0
    percentage: int = 0
    is_passed: bool = False
    section_wise_score: List[Dict[str, Any]] = field(default_factory=list)


def calculate_percentage(score: float, total_marks: float) -> int:
    if not total_marks:
        return 0
    return round_half_up(score / total_marks * 100)


def score_attempt(
    questions: Sequence[Any],
    answers: Mapping[Any, Any],
    total_marks: float,
    passing_marks: float,
) -> ScoreResult:
    """
    Score one attempt against the ordered question list of its test.

    ``answers`` maps question id to an answer row/mapping exposing
    ``selected_options`` and optionally ``time_spent``. Unanswered questions
    never receive negative marks; a multiple-select question is correct only
    on an exact set match.
    """
    result = ScoreResult(total_questions=len(questions))
    sections: Dict[str, SectionScore] = {}

    for question in questions:
        question_id = _get(question, "id")
        section_name = _get(question, "section", "General")
        section = sections.get(section_name)
        if section is None:
            section = sections[section_name] = SectionScore(section_name=section_name)
        section.total_questions += 1

        answer = answers.get(question_id)
        selected = _get(answer, "selected_options", []) if answer is not None else []
        is_correct = evaluate_answer(question, selected)

        if is_correct is None:
            result.unanswered_questions += 1
            if answer is not None:
                result.answers[question_id] = AnswerResult(question_id, False, 0)
            continue

        section.attempted_questions += 1
        section.time_spent += int(_get(answer, "time_spent", 0))
        result.attempted_questions += 1

        if is_correct:
            marks = float(_get(question, "marks", 1))
            result.correct_answers += 1
            section.correct_answers += 1
        else:
            marks = -float(_get(question, "negative_marks", 0))
            result.incorrect_answers += 1

        section.score += marks
        result.score += marks
        result.answers[question_id] = AnswerResult(question_id, is_correct, marks)

    result.percentage = calculate_percentage(result.score, total_marks)
    # passing_marks holds a percentage threshold despite the name
    result.is_passed = result.percentage >= (passing_marks or 0)
    result.section_wise_score = [section.as_dict() for section in sections.values()]
    return result


def rank_and_percentile(ordered_attempt_ids: Sequence[Any], attempt_id: Any) -> Tuple[Optional[int], Optional[int]]:
    """Rank (1-based) and percentile of ``attempt_id`` in a score-descending list."""
    try:
        index = list(ordered_attempt_ids).index(attempt_id)
    except ValueError:
        return None, None

    total = len(ordered_attempt_ids)
    if total == 1:
        return 1, 100
    return index + 1, round_half_up((total - index) / total * 100)


def aggregate_statistics(scores: Sequence[float], passed_flags: Sequence[bool]) -> Dict[str, Any]:
    if not scores:
        return {
            "total_attempts": 0,
            "average_score": 0,
            "highest_score": 0,
            "lowest_score": 0,
            "pass_rate": 0,
        }

    total = len(scores)
    return {
        "total_attempts": total,
        "average_score": round(sum(scores) / total, 2),
        "highest_score": max(scores),
        "lowest_score": min(scores),
        "pass_rate": round_half_up(sum(1 for passed in passed_flags if passed) / total * 100),
    }
