# qreview/review/validator.py
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set

from qreview.models.enums import QuestionLevel
from qreview.models.question import QuestionRecord
from qreview.models.review_result import ValidationResult
from qreview.utils.text import has_forbidden_marker, has_html_tag, is_non_empty_str

ALLOWED_LEVELS = tuple(level.value for level in QuestionLevel)

CREATE_REQUIRED_KEYS = ("question", "answers", "explanation", "level", "category", "exam_code")
# id/category/exam_code модель не присылает: подставляем из оригинала
UPDATE_REQUIRED_KEYS = ("question", "answers", "explanation", "level")
IMMUTABLE_FIELDS = ("category", "exam_code", "level")

# Жёсткие пределы на количество вариантов ответа
MIN_ANSWERS_LIMIT = 2
MAX_ANSWERS_LIMIT = 12


@dataclass(frozen=True, slots=True)
class GenerationRules:
    """
    Параметры, которые оператор задал при генерации новых вопросов.
    """

    category: str
    exam_code: str
    required_correct: int = 1
    min_answers: int = MIN_ANSWERS_LIMIT
    max_answers: int = MAX_ANSWERS_LIMIT

    def __post_init__(self) -> None:
        if self.required_correct < 1:
            raise ValueError("required_correct must be at least 1")
        if self.min_answers < MIN_ANSWERS_LIMIT:
            raise ValueError(f"min_answers must be at least {MIN_ANSWERS_LIMIT}")
        if self.max_answers < self.min_answers:
            raise ValueError("max_answers must not be less than min_answers")
        if self.required_correct >= self.max_answers:
            raise ValueError("required_correct must leave at least one distractor")


# ---- общие проверки ----

def _check_answer_text(answer: Dict[str, Any], idx: int, errors: List[str], label: str) -> None:
    text = answer.get("text")
    if not is_non_empty_str(text):
        errors.append(f"{label}[{idx}].text empty")
    elif has_forbidden_marker(text):
        errors.append(f"{label}[{idx}].text has forbidden icon/prefix")


def _check_question_and_explanation(candidate: Dict[str, Any], errors: List[str]) -> None:
    if not is_non_empty_str(candidate.get("question")):
        errors.append("question must be non-empty string")
    explanation = candidate.get("explanation")
    if not is_non_empty_str(explanation):
        errors.append("explanation empty")
    if isinstance(explanation, str) and not has_html_tag(explanation):
        errors.append("explanation must contain HTML tags")


def reconcile_immutable_field(
    candidate: Dict[str, Any],
    original: QuestionRecord,
    field_name: str,
    errors: List[str],
) -> None:
    """
    Поле отсутствует -> берём значение из оригинала.
    Поле есть и отличается -> нарушение (поле менять нельзя).
    candidate меняется на месте, поэтому передавать только копию.
    """
    expected = getattr(original, field_name)
    if field_name not in candidate:
        candidate[field_name] = expected
    elif candidate[field_name] != expected:
        errors.append(f"{field_name} changed")


def _not_an_object(position: int, candidate: Any) -> ValidationResult:
    return ValidationResult(
        position=position,
        valid=False,
        errors=[f"question[{position}] must be a JSON object"],
        candidate={"value": candidate},
    )


# ---- create ----

class NewQuestionValidator:
    """
    Проверка новых вопросов от модели перед вставкой.
    Все нарушения собираются, проверки независимы друг от друга.
    """

    def __init__(self, rules: GenerationRules) -> None:
        self.rules = rules

    def errors_for(self, candidate: Dict[str, Any]) -> List[str]:
        rules = self.rules
        errors: List[str] = []

        for key in CREATE_REQUIRED_KEYS:
            if key not in candidate:
                errors.append(f"Missing key {key}")

        answers = candidate.get("answers")
        if not isinstance(answers, list) or len(answers) < MIN_ANSWERS_LIMIT:
            errors.append(f"answers must be array length>={MIN_ANSWERS_LIMIT}")

        if isinstance(answers, list):
            if not rules.min_answers <= len(answers) <= rules.max_answers:
                errors.append(
                    f"answers count must be between {rules.min_answers} and "
                    f"{rules.max_answers} (found {len(answers)})"
                )
            correct_count = 0
            for i, answer in enumerate(answers):
                if not isinstance(answer, dict):
                    errors.append(f"answer[{i}] must be an object")
                    continue
                _check_answer_text(answer, i, errors, "answer")
                if not isinstance(answer.get("isCorrect"), bool):
                    errors.append(f"answer[{i}] isCorrect not boolean")
                elif answer["isCorrect"]:
                    correct_count += 1
            if correct_count != rules.required_correct:
                errors.append(
                    f"needs exactly {rules.required_correct} correct answers (found {correct_count})"
                )
            if correct_count >= len(answers):
                errors.append("cannot have all answers correct")

        _check_question_and_explanation(candidate, errors)

        if candidate.get("level") not in ALLOWED_LEVELS:
            errors.append("level invalid")
        if candidate.get("category") != rules.category:
            errors.append("category mismatch")
        if candidate.get("exam_code") != rules.exam_code:
            errors.append("exam_code mismatch")
        return errors

    def validate(self, candidate: Any, position: int) -> ValidationResult:
        if not isinstance(candidate, dict):
            return _not_an_object(position, candidate)
        errors = self.errors_for(candidate)
        return ValidationResult(
            position=position,
            valid=not errors,
            errors=errors,
            candidate=copy.deepcopy(candidate),
        )

    def validate_batch(self, candidates: Sequence[Any]) -> List[ValidationResult]:
        return [self.validate(c, i) for i, c in enumerate(candidates)]


# ---- update ----

class UpdateQuestionValidator:
    """
    Проверка правок существующих вопросов.

    Менять можно только question, explanation и answers[].text.
    Сопоставление с оригиналом: по явному id в ответе модели, иначе по позиции
    в порядке выбора (если не включён require_id_echo).
    """

    def __init__(self, originals: Sequence[QuestionRecord], require_id_echo: bool = False) -> None:
        self.originals: List[QuestionRecord] = list(originals)
        self.require_id_echo = require_id_echo
        # ключ — str(id): модель может вернуть 12 как "12"
        self._by_id: Dict[str, QuestionRecord] = {str(q.id): q for q in self.originals}

    def resolve_original(self, candidate: Dict[str, Any], position: int) -> Optional[QuestionRecord]:
        raw_id = candidate.get("id")
        if isinstance(raw_id, (int, str)) and not isinstance(raw_id, bool):
            return self._by_id.get(str(raw_id))
        if self.require_id_echo:
            return None
        if position < len(self.originals):
            return self.originals[position]
        return None

    def validate(self, candidate: Any, position: int) -> ValidationResult:
        if not isinstance(candidate, dict):
            return _not_an_object(position, candidate)

        merged = copy.deepcopy(candidate)
        original = self.resolve_original(merged, position)
        if original is None:
            reason = "id missing" if self.require_id_echo and "id" not in merged else "id not in selection"
            return ValidationResult(
                position=position,
                valid=False,
                errors=[reason],
                candidate=merged,
                identifier=merged.get("id"),
            )

        merged["id"] = original.id
        errors: List[str] = []
        for field_name in IMMUTABLE_FIELDS:
            reconcile_immutable_field(merged, original, field_name, errors)

        for key in UPDATE_REQUIRED_KEYS:
            if key not in merged:
                errors.append(f"missing key {key}")

        answers = merged.get("answers")
        orig_answers = original.answers
        if not isinstance(answers, list):
            errors.append("answers not array")
        else:
            if len(answers) != len(orig_answers):
                errors.append(
                    f"answer count changed (expected {len(orig_answers)}, found {len(answers)})"
                )
            for idx, answer in enumerate(answers[: len(orig_answers)]):
                if not isinstance(answer, dict):
                    errors.append(f"answers[{idx}] must be an object")
                    continue
                flag = answer.get("isCorrect")
                if not isinstance(flag, bool) or flag != orig_answers[idx].is_correct:
                    errors.append(f"answers[{idx}].isCorrect changed")
                _check_answer_text(answer, idx, errors, "answers")

        _check_question_and_explanation(merged, errors)

        return ValidationResult(
            position=position,
            valid=not errors,
            errors=errors,
            candidate=merged,
            original=original,
            identifier=original.id,
            question_changed=merged.get("question") != original.question,
            explanation_changed=merged.get("explanation") != original.explanation,
            answer_text_changed=_answer_text_diff(answers, orig_answers),
        )

    def validate_batch(self, candidates: Sequence[Any]) -> List[ValidationResult]:
        results = [self.validate(c, i) for i, c in enumerate(candidates)]

        # один оригинал — один кандидат: явный id и позиционный фолбэк
        # могут указать на ту же строку, сохранить её можно только раз
        claimed: Set[str] = set()
        for r in results:
            if r.original is None:
                continue
            key = str(r.original.id)
            if key in claimed:
                r.errors.append(f"duplicate id {r.original.id}")
                r.valid = False
            claimed.add(key)

        expected = len(self.originals)
        if len(results) != expected:
            results.append(
                ValidationResult(
                    position=len(results),
                    valid=False,
                    errors=[f"Returned {len(candidates)} questions but expected {expected}"],
                )
            )
        return results


def _answer_text_diff(answers: Any, orig_answers: List[Any]) -> List[bool]:
    if not isinstance(answers, list):
        return []
    diff: List[bool] = []
    for idx, answer in enumerate(answers):
        if idx >= len(orig_answers) or not isinstance(answer, dict):
            diff.append(True)
        else:
            diff.append(answer.get("text") != orig_answers[idx].text)
    return diff
