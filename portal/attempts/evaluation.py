"""
Answer Evaluation for the Exam Portal

Submitted answers are parsed into one of four value types before any scoring
happens:

- MultipleChoice(selected): indices into the question's options
- TrueFalse(value)
- MatchPairs(pairs): (left, right) tuples
- Descriptive(text): free text, scored by a reviewer

``parse_answer`` is the only way raw request data becomes an answer value and
raises InvalidAnswerFormat for anything that does not fit the question type.
``score_answer`` compares a parsed value with the question's correct answer.

Author: Exam Portal Development Team
Version: 1.0.0
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Tuple, Union

from ..catalog.models import Question
from ..exceptions import InvalidAnswerFormat, ValidationError

QuestionType = Question.Type


@dataclass(frozen=True)
class MultipleChoice:
    selected: Tuple[int, ...]

    def to_json(self):
        return list(self.selected)


@dataclass(frozen=True)
class TrueFalse:
    value: bool

    def to_json(self):
        return self.value


@dataclass(frozen=True)
class MatchPairs:
    pairs: Tuple[Tuple[str, str], ...]

    def to_json(self):
        return [{"left": left, "right": right} for left, right in self.pairs]


@dataclass(frozen=True)
class Descriptive:
    text: str

    def to_json(self):
        return self.text


AnswerValue = Union[MultipleChoice, TrueFalse, MatchPairs, Descriptive]


# --- Shape helpers shared with question authoring ---


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_indices(raw, option_count: int, error_cls=InvalidAnswerFormat) -> Tuple[int, ...]:
    if isinstance(raw, dict):
        raw = raw.get("selected")
    if not isinstance(raw, (list, tuple)) or not raw:
        raise error_cls("Select at least one option")
    if not all(_is_int(index) for index in raw):
        raise error_cls("Selected options must be option indices")
    out_of_range = [index for index in raw if index < 0 or index >= option_count]
    if out_of_range:
        raise error_cls(
            "Selected option does not exist",
            details={"indices": out_of_range, "options": option_count},
        )
    return tuple(sorted(set(raw)))


def _parse_bool(raw, error_cls=InvalidAnswerFormat) -> bool:
    if isinstance(raw, dict):
        raw = raw.get("value")
    if not isinstance(raw, bool):
        raise error_cls("Answer must be true or false")
    return raw


def _parse_pairs(raw, error_cls=InvalidAnswerFormat, allow_empty: bool = True) -> Tuple[Tuple[str, str], ...]:
    if isinstance(raw, dict):
        raw = raw.get("pairs")
    if not isinstance(raw, (list, tuple)):
        raise error_cls("Answer must be a list of {left, right} pairs")
    pairs = []
    for pair in raw:
        if not isinstance(pair, dict) or "left" not in pair or "right" not in pair:
            raise error_cls("Every pair needs a left and a right value")
        left, right = pair["left"], pair["right"]
        if not isinstance(left, str) or not isinstance(right, str):
            raise error_cls("Pair values must be text")
        pairs.append((left.strip(), right.strip()))
    if not pairs and not allow_empty:
        raise error_cls("At least one pair is required")
    return tuple(pairs)


def _parse_text(raw, error_cls=InvalidAnswerFormat, allow_empty: bool = False) -> str:
    if isinstance(raw, dict):
        raw = raw.get("text")
    if not isinstance(raw, str):
        raise error_cls("Answer must be text")
    text = raw.strip()
    if not text and not allow_empty:
        raise error_cls("Answer must not be empty")
    return text


# --- Submitted answers ---


def parse_answer(question: Question, raw: Any) -> AnswerValue:
    """
    Validate a submitted answer against the question type.

    Raises:
        InvalidAnswerFormat: If the value does not fit the question type
    """
    if question.type == QuestionType.MULTIPLE_CHOICE:
        return MultipleChoice(_parse_indices(raw, len(question.options or [])))
    if question.type == QuestionType.TRUE_FALSE:
        return TrueFalse(_parse_bool(raw))
    if question.type == QuestionType.MATCH:
        return MatchPairs(_parse_pairs(raw))
    if question.type == QuestionType.DESCRIPTIVE:
        return Descriptive(_parse_text(raw))
    raise InvalidAnswerFormat(f"Unsupported question type '{question.type}'")


def score_answer(question: Question, value: AnswerValue) -> Tuple[Optional[bool], Optional[Decimal]]:
    """
    Score a parsed answer.

    Returns:
        (is_correct, marks): full marks when correct, minus the negative
        marks when wrong, (None, None) for descriptive answers which wait
        for a reviewer
    """
    if isinstance(value, Descriptive):
        return None, None

    correct = question.correct_answer
    if isinstance(value, MultipleChoice):
        is_correct = set(value.selected) == {index for index in (correct or []) if _is_int(index)}
    elif isinstance(value, TrueFalse):
        is_correct = value.value is correct
    elif isinstance(value, MatchPairs):
        expected = {
            (str(pair.get("left", "")).strip(), str(pair.get("right", "")).strip())
            for pair in (correct or [])
            if isinstance(pair, dict)
        }
        is_correct = set(value.pairs) == expected
    else:
        raise InvalidAnswerFormat("Unknown answer value")

    if is_correct:
        return True, question.marks
    return False, Decimal("0") - (question.negative_marks or Decimal("0"))


# --- Question authoring ---


def validate_question_shape(question_type: str, options, match_pairs, correct_answer) -> dict:
    """
    Validate the type-dependent fields of a question.

    Returns:
        Normalised ``options``, ``match_pairs`` and ``correct_answer``

    Raises:
        ValidationError: If the fields do not fit the question type
    """
    if question_type not in QuestionType.values:
        raise ValidationError(
            f"'{question_type}' is not a valid question type",
            details={"type": list(QuestionType.values)},
        )

    if question_type == QuestionType.MULTIPLE_CHOICE:
        if not isinstance(options, list) or len(options) < 2:
            raise ValidationError("Multiple choice questions need at least 2 options")
        normalised_options = []
        for position, option in enumerate(options):
            text = option.get("text") if isinstance(option, dict) else option
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("Every option needs a text", details={"option": position})
            option_id = option.get("id") if isinstance(option, dict) else None
            normalised_options.append({"id": str(option_id or position), "text": text.strip()})
        selected = _parse_indices(correct_answer, len(normalised_options), error_cls=ValidationError)
        return {"options": normalised_options, "match_pairs": [], "correct_answer": list(selected)}

    if question_type == QuestionType.TRUE_FALSE:
        return {
            "options": [],
            "match_pairs": [],
            "correct_answer": _parse_bool(correct_answer, error_cls=ValidationError),
        }

    if question_type == QuestionType.MATCH:
        shown = _parse_pairs(match_pairs, error_cls=ValidationError, allow_empty=False)
        expected = _parse_pairs(correct_answer, error_cls=ValidationError, allow_empty=False)
        return {
            "options": [],
            "match_pairs": MatchPairs(shown).to_json(),
            "correct_answer": MatchPairs(expected).to_json(),
        }

    return {
        "options": [],
        "match_pairs": [],
        "correct_answer": _parse_text(correct_answer or "", error_cls=ValidationError, allow_empty=True),
    }
