import asyncio

import pytest

from videolearn.core.errors import ValidationError
from videolearn.schemas.question_data import public_question_data
from videolearn.services.evaluator import evaluate_answer, evaluate_with_matcher
from videolearn.services.progress import compute_letter_grade

MC = {"options": [{"id": "a", "text": "Paris", "isCorrect": True}, {"id": "b", "text": "Lyon"}]}
SHORT = {"correctAnswers": ["photosynthesis"], "keyTerms": ["light", "glucose", "oxygen"]}


def test_multiple_choice_by_index_and_by_option():
    assert evaluate_answer("MULTIPLE_CHOICE", MC, 0).score == 1.0
    assert evaluate_answer("MULTIPLE_CHOICE", MC, 1).is_correct is False
    assert evaluate_answer("MULTIPLE_CHOICE", MC, "a").is_correct is True
    assert evaluate_answer("MULTIPLE_CHOICE", MC, "Paris").is_correct is True
    assert evaluate_answer("MULTIPLE_CHOICE", MC, "Lyon").score == 0.0


def test_multiple_choice_rejects_malformed_answers():
    with pytest.raises(ValidationError):
        evaluate_answer("MULTIPLE_CHOICE", MC, 5)
    with pytest.raises(ValidationError):
        evaluate_answer("MULTIPLE_CHOICE", MC, True)
    with pytest.raises(ValidationError):
        evaluate_answer("MULTIPLE_CHOICE", MC, None)


def test_true_false_is_binary():
    data = {"correctAnswer": False}
    for answer, expected in ((False, True), (True, False), ("false", True)):
        result = evaluate_answer("TRUE_FALSE", data, answer)
        assert result.is_correct is expected
        assert result.score == (1.0 if expected else 0.0)
    with pytest.raises(ValidationError):
        evaluate_answer("TRUE_FALSE", data, "maybe")


def test_fill_in_blank_partial_credit():
    data = {
        "template": "__ + __ = __",
        "blanks": [
            {"acceptedAnswers": ["1"]},
            {"acceptedAnswers": ["2"]},
            {"acceptedAnswers": ["3", "three"]},
        ],
    }
    result = evaluate_answer("FILL_IN_BLANK", data, ["1", "2", "4"])
    assert result.score == pytest.approx(2 / 3)
    assert result.is_correct is False
    assert evaluate_answer("FILL_IN_BLANK", data, ["1", " 2 ", "THREE"]).is_correct is True


def test_short_answer_exact_and_key_terms():
    assert evaluate_answer("SHORT_ANSWER", SHORT, "  Photosynthesis ").is_correct is True
    partial = evaluate_answer("SHORT_ANSWER", SHORT, "uses light to make glucose")
    assert partial.score == pytest.approx(2 / 3)
    assert partial.is_correct is False
    full = evaluate_answer("SHORT_ANSWER", SHORT, "light makes glucose and oxygen")
    assert full.is_correct is True


def test_matching_scores_correct_pairs():
    data = {
        "leftItems": ["H2O", "CO2", "O2"],
        "rightItems": ["water", "carbon dioxide", "oxygen"],
        "correctMatches": [{"left": 0, "right": 0}, {"left": 1, "right": 1}, {"left": 2, "right": 2}],
    }
    result = evaluate_answer("MATCHING", data, [{"left": 0, "right": 0}, [1, 2], [2, 1]])
    assert result.score == pytest.approx(1 / 3)
    assert result.is_correct is False
    assert evaluate_answer("MATCHING", data, {0: 0, 1: 1, 2: 2}).is_correct is True


def test_ordering_gives_credit_for_relative_order():
    data = {"items": ["a", "b", "c", "d"], "correctOrder": [0, 1, 2, 3]}
    assert evaluate_answer("ORDERING", data, [0, 1, 2, 3]).score == 1.0
    swapped = evaluate_answer("ORDERING", data, [1, 0, 2, 3])
    assert swapped.score == pytest.approx(0.75)
    assert swapped.is_correct is True
    assert evaluate_answer("ORDERING", data, [3, 2, 1, 0]).score == pytest.approx(0.25)


def test_unknown_type_and_bad_data_raise_validation_error():
    with pytest.raises(ValidationError):
        evaluate_answer("ESSAY", {}, "text")
    with pytest.raises(ValidationError):
        evaluate_answer("MULTIPLE_CHOICE", {"options": ["only one"]}, 0)


@pytest.mark.anyio
async def test_slow_semantic_matcher_falls_back_to_string_match(anyio_backend):
    async def slow(answer, accepted):
        await asyncio.sleep(1)
        return 1.0

    result = await evaluate_with_matcher("SHORT_ANSWER", SHORT, "chlorophyll", matcher=slow, timeout=0.01)
    assert result.is_correct is False
    assert result.score == 0.0


@pytest.mark.anyio
async def test_failing_semantic_matcher_falls_back(anyio_backend):
    async def broken(answer, accepted):
        raise RuntimeError("model offline")

    result = await evaluate_with_matcher("SHORT_ANSWER", SHORT, "chlorophyll", matcher=broken)
    assert result.score == 0.0


@pytest.mark.anyio
async def test_semantic_matcher_can_upgrade_short_answers_only(anyio_backend):
    calls = []

    async def generous(answer, accepted):
        calls.append(answer)
        return 0.9

    upgraded = await evaluate_with_matcher("SHORT_ANSWER", SHORT, "plants making food from sunlight", matcher=generous)
    assert upgraded.is_correct is True
    assert upgraded.score == pytest.approx(0.9)

    mc = await evaluate_with_matcher("MULTIPLE_CHOICE", MC, 1, matcher=generous)
    assert mc.is_correct is False
    assert len(calls) == 1


@pytest.mark.parametrize(
    "percentage,letter",
    [(100.0, "A"), (90.0, "A"), (89.99, "B"), (80.0, "B"), (70.0, "C"), (60.0, "D"), (59.9, "F"), (0.0, "F")],
)
def test_letter_grade_bands(percentage, letter):
    assert compute_letter_grade(percentage) == letter


def test_public_question_data_strips_answer_keys_at_any_depth():
    assert public_question_data(MC) == {"options": [{"id": "a", "text": "Paris"}, {"id": "b", "text": "Lyon"}]}
    assert public_question_data(SHORT) == {}
    blanks = {"template": "Water boils at ___ C", "blanks": [{"acceptedAnswers": ["100"], "caseSensitive": False}]}
    assert public_question_data(blanks) == {"template": "Water boils at ___ C", "blanks": [{"caseSensitive": False}]}
    matching = {"leftItems": ["H2O"], "rightItems": ["water"], "correctMatches": [{"left": 0, "right": 0}]}
    assert public_question_data(matching) == {"leftItems": ["H2O"], "rightItems": ["water"]}
    assert public_question_data({"items": ["b", "a"], "correctOrder": [1, 0]}) == {"items": ["b", "a"]}
    assert MC["options"][0]["isCorrect"] is True
