"""Per-type question data shapes and the discriminated union used on question create.

Question data is validated once here, on the way in. Stored documents are
re-parsed with `parse_question_data` before grading so the evaluator only ever
sees one of the typed shapes below.
"""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from videolearn.core.errors import ValidationError
from videolearn.models.enums import QuestionType


def _errors(exc: PydanticValidationError) -> list[dict]:
    return exc.errors(include_url=False, include_context=False, include_input=False)


class _Data(BaseModel):
    class Config:
        populate_by_name = True
        extra = "ignore"


class ChoiceOption(_Data):
    id: str | None = None
    text: str
    is_correct: bool = Field(False, alias="isCorrect")


class MultipleChoiceData(_Data):
    options: list[Union[ChoiceOption, str]] = Field(min_length=2)
    correct_answer_index: int | None = Field(None, alias="correctAnswerIndex")

    @model_validator(mode="after")
    def _one_correct_option(self):
        flagged = [i for i, o in enumerate(self.options) if isinstance(o, ChoiceOption) and o.is_correct]
        if self.correct_answer_index is None:
            if len(flagged) != 1:
                raise ValueError("exactly one option must be marked isCorrect, or correctAnswerIndex given")
        elif not 0 <= self.correct_answer_index < len(self.options):
            raise ValueError("correctAnswerIndex is out of range")
        return self

    @property
    def correct_index(self) -> int:
        if self.correct_answer_index is not None:
            return self.correct_answer_index
        for i, option in enumerate(self.options):
            if isinstance(option, ChoiceOption) and option.is_correct:
                return i
        raise ValueError("no correct option")  # unreachable after validation

    def option_keys(self, index: int) -> set[str]:
        """Strings a client may submit to pick the option at `index`."""
        option = self.options[index]
        if isinstance(option, str):
            return {option}
        return {k for k in (option.id, option.text) if k is not None}


class TrueFalseData(_Data):
    correct_answer: bool = Field(alias="correctAnswer")


class ShortAnswerData(_Data):
    correct_answers: list[str] = Field(default_factory=list, alias="correctAnswers")
    case_sensitive: bool = Field(False, alias="caseSensitive")
    key_terms: list[str] = Field(default_factory=list, alias="keyTerms")

    @model_validator(mode="after")
    def _has_answer_key(self):
        if not self.correct_answers and not self.key_terms:
            raise ValueError("short answer questions need correctAnswers or keyTerms")
        return self


class Blank(_Data):
    accepted_answers: list[str] = Field(min_length=1, alias="acceptedAnswers")
    case_sensitive: bool = Field(False, alias="caseSensitive")


class FillInBlankData(_Data):
    template: str | None = None
    blanks: list[Blank] = Field(min_length=1)


class Match(_Data):
    left: int
    right: int


class MatchingData(_Data):
    left_items: list[str] = Field(alias="leftItems")
    right_items: list[str] = Field(alias="rightItems")
    correct_matches: list[Match] = Field(min_length=1, alias="correctMatches")

    @model_validator(mode="after")
    def _indices_in_range(self):
        for m in self.correct_matches:
            if not (0 <= m.left < len(self.left_items) and 0 <= m.right < len(self.right_items)):
                raise ValueError(f"match {m.left}->{m.right} is out of range")
        if len({m.left for m in self.correct_matches}) != len(self.correct_matches):
            raise ValueError("each left item may be matched only once")
        return self


class OrderingData(_Data):
    items: list[str] = Field(min_length=2)
    correct_order: list[int] = Field(alias="correctOrder")

    @model_validator(mode="after")
    def _is_permutation(self):
        if sorted(self.correct_order) != list(range(len(self.items))):
            raise ValueError("correctOrder must be a permutation of item indices")
        return self


QuestionData = Union[MultipleChoiceData, TrueFalseData, ShortAnswerData, FillInBlankData, MatchingData, OrderingData]

QUESTION_DATA_MODELS: dict[QuestionType, type[_Data]] = {
    QuestionType.MULTIPLE_CHOICE: MultipleChoiceData,
    QuestionType.TRUE_FALSE: TrueFalseData,
    QuestionType.SHORT_ANSWER: ShortAnswerData,
    QuestionType.FILL_IN_BLANK: FillInBlankData,
    QuestionType.MATCHING: MatchingData,
    QuestionType.ORDERING: OrderingData,
}


def parse_question_type(value: Any) -> QuestionType:
    try:
        return QuestionType(value)
    except ValueError:
        raise ValidationError(f"Unknown question type: {value!r}") from None


def parse_question_data(question_type: Any, raw: Any) -> QuestionData:
    """Validate a stored/raw question_data document against its type's shape."""
    qtype = parse_question_type(question_type)
    if isinstance(raw, QUESTION_DATA_MODELS[qtype]):
        return raw
    try:
        return QUESTION_DATA_MODELS[qtype].model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid question data for {qtype.value}", errors=_errors(exc)) from None


# --- question create payloads (discriminated on `type`) ---


class _QuestionIn(BaseModel):
    text: str = Field(min_length=1)
    explanation: str | None = None
    points: int = Field(1, ge=0)
    pass_threshold: float | None = Field(None, ge=0.0, le=1.0)


class MultipleChoiceQuestionIn(_QuestionIn):
    type: Literal["MULTIPLE_CHOICE"]
    question_data: MultipleChoiceData


class TrueFalseQuestionIn(_QuestionIn):
    type: Literal["TRUE_FALSE"]
    question_data: TrueFalseData


class ShortAnswerQuestionIn(_QuestionIn):
    type: Literal["SHORT_ANSWER"]
    question_data: ShortAnswerData


class FillInBlankQuestionIn(_QuestionIn):
    type: Literal["FILL_IN_BLANK"]
    question_data: FillInBlankData


class MatchingQuestionIn(_QuestionIn):
    type: Literal["MATCHING"]
    question_data: MatchingData


class OrderingQuestionIn(_QuestionIn):
    type: Literal["ORDERING"]
    question_data: OrderingData


QuestionCreate = Annotated[
    Union[
        MultipleChoiceQuestionIn,
        TrueFalseQuestionIn,
        ShortAnswerQuestionIn,
        FillInBlankQuestionIn,
        MatchingQuestionIn,
        OrderingQuestionIn,
    ],
    Field(discriminator="type"),
]

_question_create_adapter = TypeAdapter(QuestionCreate)


def parse_question_create(raw: Any):
    """Validate an untyped question payload (e.g. from the AI generator)."""
    try:
        return _question_create_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid question payload", errors=_errors(exc)) from None


# --- student view ---

# Keys that give the answer away, in both spellings a stored document may use
ANSWER_KEY_FIELDS = frozenset(
    {
        "isCorrect", "is_correct",
        "correctAnswerIndex", "correct_answer_index",
        "correctAnswer", "correct_answer",
        "correctAnswers", "correct_answers",
        "keyTerms", "key_terms",
        "acceptedAnswers", "accepted_answers",
        "correctMatches", "correct_matches",
        "correctOrder", "correct_order",
    }
)


def public_question_data(raw: Any) -> Any:
    """Copy of a question_data document with every answer-key field removed, at any depth."""
    if isinstance(raw, dict):
        return {k: public_question_data(v) for k, v in raw.items() if k not in ANSWER_KEY_FIELDS}
    if isinstance(raw, list):
        return [public_question_data(v) for v in raw]
    return raw
