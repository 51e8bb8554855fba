"""Answer evaluation: pure grading per question type, with partial credit.

`evaluate_answer` has no side effects and never touches the database; retry
limits and persistence live in `videolearn.services.attempts`.
"""
import asyncio
import logging
from bisect import bisect_left
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from videolearn.core.errors import ValidationError
from videolearn.models.enums import QuestionType
from videolearn.schemas.question_data import (
    FillInBlankData,
    MatchingData,
    MultipleChoiceData,
    OrderingData,
    ShortAnswerData,
    TrueFalseData,
    parse_question_data,
    parse_question_type,
)

logger = logging.getLogger(__name__)

# Fixed pass marks for the two partial-credit text types; matching and
# ordering use the question's own pass_threshold.
KEY_TERMS_PASS_SCORE = 0.7
FILL_IN_BLANK_PASS_SCORE = 0.7
DEFAULT_PASS_THRESHOLD = 0.7

SemanticMatcher = Callable[[str, list[str]], Awaitable[float]]


@dataclass(frozen=True)
class EvaluationResult:
    is_correct: bool
    score: float  # 0..1


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, float(score)))


def _binary(ok: bool) -> EvaluationResult:
    return EvaluationResult(is_correct=ok, score=1.0 if ok else 0.0)


def _normalise(text: str, case_sensitive: bool) -> str:
    collapsed = " ".join(text.split())
    return collapsed if case_sensitive else collapsed.casefold()


def _as_text(value: Any, what: str) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"{what} must be a string")
    return str(value)


def _as_index(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{what} must be an integer index")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise ValidationError(f"{what} must be an integer index")


def _multiple_choice(data: MultipleChoiceData, answer: Any) -> EvaluationResult:
    correct = data.correct_index
    if isinstance(answer, bool) or answer is None:
        raise ValidationError("Multiple choice answer must be an option index, id or text")
    if isinstance(answer, int):
        if not 0 <= answer < len(data.options):
            raise ValidationError(f"Option index {answer} is out of range")
        return _binary(answer == correct)
    if isinstance(answer, str):
        return _binary(answer.strip() in data.option_keys(correct))
    raise ValidationError("Multiple choice answer must be an option index, id or text")


def _true_false(data: TrueFalseData, answer: Any) -> EvaluationResult:
    if isinstance(answer, str) and answer.strip().lower() in ("true", "false"):
        answer = answer.strip().lower() == "true"
    if not isinstance(answer, bool):
        raise ValidationError("True/false answer must be a boolean")
    return _binary(answer == data.correct_answer)


def _short_answer(data: ShortAnswerData, answer: Any) -> EvaluationResult:
    text = _normalise(_as_text(answer, "Short answer"), data.case_sensitive)
    accepted = {_normalise(a, data.case_sensitive) for a in data.correct_answers}
    if text and text in accepted:
        return _binary(True)
    if not data.key_terms:
        return _binary(False)
    matched = sum(1 for term in data.key_terms if _normalise(term, data.case_sensitive) in text)
    score = matched / len(data.key_terms)
    return EvaluationResult(is_correct=score >= KEY_TERMS_PASS_SCORE, score=score)


def _fill_in_blank(data: FillInBlankData, answer: Any) -> EvaluationResult:
    if isinstance(answer, str) and len(data.blanks) == 1:
        answer = [answer]
    if not isinstance(answer, (list, tuple)):
        raise ValidationError("Fill-in-the-blank answer must be a list aligned to the blanks")
    correct = 0
    for i, blank in enumerate(data.blanks):
        if i >= len(answer) or answer[i] is None:
            continue
        given = _normalise(_as_text(answer[i], f"Blank {i + 1}"), blank.case_sensitive)
        if given in {_normalise(a, blank.case_sensitive) for a in blank.accepted_answers}:
            correct += 1
    score = correct / len(data.blanks)
    return EvaluationResult(is_correct=score >= FILL_IN_BLANK_PASS_SCORE, score=score)


def _submitted_matches(answer: Any) -> dict[int, int]:
    """Accepts [{left, right}], [[left, right]] or {left: right}."""
    if isinstance(answer, dict):
        pairs = list(answer.items())
    elif isinstance(answer, (list, tuple)):
        pairs = []
        for item in answer:
            if isinstance(item, dict) and "left" in item and "right" in item:
                pairs.append((item["left"], item["right"]))
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                pairs.append((item[0], item[1]))
            else:
                raise ValidationError("Each match must be {left, right} or a [left, right] pair")
    else:
        raise ValidationError("Matching answer must be a list of pairs or a mapping")
    submitted: dict[int, int] = {}
    for left, right in pairs:
        submitted.setdefault(_as_index(left, "Match left"), _as_index(right, "Match right"))
    return submitted


def _matching(data: MatchingData, answer: Any, pass_threshold: float) -> EvaluationResult:
    submitted = _submitted_matches(answer)
    correct = sum(1 for m in data.correct_matches if submitted.get(m.left) == m.right)
    score = correct / len(data.correct_matches)
    return EvaluationResult(is_correct=score >= pass_threshold, score=score)


def _longest_increasing(values: list[int]) -> int:
    tails: list[int] = []
    for v in values:
        pos = bisect_left(tails, v)
        if pos == len(tails):
            tails.append(v)
        else:
            tails[pos] = v
    return len(tails)


def _ordering(data: OrderingData, answer: Any, pass_threshold: float) -> EvaluationResult:
    if not isinstance(answer, (list, tuple)):
        raise ValidationError("Ordering answer must be a list of item indices")
    submitted = [_as_index(v, "Ordering item") for v in answer]
    if submitted == data.correct_order:
        return _binary(True)
    # Longest run of items that appear in the same relative order as the key
    position = {item: pos for pos, item in enumerate(data.correct_order)}
    seen: set[int] = set()
    positions = []
    for item in submitted:
        if item in position and item not in seen:
            seen.add(item)
            positions.append(position[item])
    score = _longest_increasing(positions) / len(data.correct_order)
    return EvaluationResult(is_correct=score >= pass_threshold, score=score)


def evaluate_answer(
    question_type: Any,
    question_data: Any,
    submitted_answer: Any,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
) -> EvaluationResult:
    """Grade one submission. Raises ValidationError for unknown types or malformed payloads."""
    qtype = parse_question_type(question_type)
    data = parse_question_data(qtype, question_data)

    if qtype is QuestionType.MULTIPLE_CHOICE:
        result = _multiple_choice(data, submitted_answer)
    elif qtype is QuestionType.TRUE_FALSE:
        result = _true_false(data, submitted_answer)
    elif qtype is QuestionType.SHORT_ANSWER:
        result = _short_answer(data, submitted_answer)
    elif qtype is QuestionType.FILL_IN_BLANK:
        result = _fill_in_blank(data, submitted_answer)
    elif qtype is QuestionType.MATCHING:
        result = _matching(data, submitted_answer, pass_threshold)
    else:
        result = _ordering(data, submitted_answer, pass_threshold)
    return EvaluationResult(is_correct=result.is_correct, score=_clamp(result.score))


async def evaluate_with_matcher(
    question_type: Any,
    question_data: Any,
    submitted_answer: Any,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
    matcher: SemanticMatcher | None = None,
    timeout: float = 2.0,
) -> EvaluationResult:
    """Deterministic grading, optionally upgraded by a semantic short-answer matcher.

    The matcher only runs for short answers the string path rejected. It is
    bounded by `timeout`; on timeout or failure the deterministic result stands.
    """
    result = evaluate_answer(question_type, question_data, submitted_answer, pass_threshold)
    if matcher is None or result.is_correct or parse_question_type(question_type) is not QuestionType.SHORT_ANSWER:
        return result

    data = parse_question_data(QuestionType.SHORT_ANSWER, question_data)
    accepted = data.correct_answers or data.key_terms
    try:
        semantic = _clamp(await asyncio.wait_for(matcher(str(submitted_answer), accepted), timeout))
    except asyncio.TimeoutError:
        logger.warning("Semantic matcher timed out after %.2fs; using string match", timeout)
        return result
    except Exception:
        logger.warning("Semantic matcher failed; using string match", exc_info=True)
        return result

    if semantic <= result.score:
        return result
    return EvaluationResult(is_correct=semantic >= pass_threshold, score=semantic)
