from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List

from .sanitize import sanitize_json_text

log = logging.getLogger(__name__)


class BatchParseError(ValueError):
    """Текст не разобрался как JSON или корень не той формы."""


@dataclass(slots=True)
class ParsedBatch:
    candidates: List[Any]
    sanitized: bool = False
    applied_rules: List[str] = field(default_factory=list)


def parse_batch(raw: str) -> ParsedBatch:
    """
    Разбирает ответ модели в список кандидатов.

    Допустимые формы корня:
      - массив вопросов: [ {...}, {...} ]
      - объект с ключом questions: { "questions": [ ... ] }

    Кандидаты возвращаются как есть, в исходном порядке (без проверки содержимого).
    При любой ошибке — BatchParseError, частичных результатов нет.
    """
    text = (raw or "").strip()
    if not text:
        raise BatchParseError("Input is empty")

    outcome = sanitize_json_text(text)
    if outcome.changed:
        log.info("Текст ответа очищен перед разбором, правила: %s", ", ".join(outcome.applied))

    try:
        data = json.loads(outcome.text)
    except json.JSONDecodeError as e:
        raise BatchParseError(str(e)) from e

    if isinstance(data, list):
        data = {"questions": data}
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise BatchParseError("Root must have questions array")

    candidates = data["questions"]
    log.debug("Разобрано кандидатов: %d", len(candidates))
    return ParsedBatch(
        candidates=list(candidates),
        sanitized=outcome.changed,
        applied_rules=list(outcome.applied),
    )
