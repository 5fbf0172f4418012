from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from qreview.models.enums import ReviewEventKind
from qreview.models.question import QuestionRecord


@dataclass
class ValidationResult:
    """
    Итог проверки одного кандидата из ответа модели.

    position   — индекс кандидата в разобранном массиве (его идентичность в сессии);
    identifier — id исходного вопроса (update) или сохранённой строки (create);
    candidate  — копия кандидата с подставленными неизменяемыми полями, None у синтетических.
    Дифф (question_changed/...) только для показа, на valid не влияет.
    """

    position: int
    valid: bool
    errors: List[str] = field(default_factory=list)
    candidate: Optional[Dict[str, Any]] = None
    original: Optional[QuestionRecord] = None
    identifier: Any = None
    question_changed: bool = False
    explanation_changed: bool = False
    answer_text_changed: List[bool] = field(default_factory=list)
    saved: bool = False
    save_error: Optional[str] = None
    discarded: bool = False

    @property
    def synthetic(self) -> bool:
        return self.candidate is None

    @property
    def pending(self) -> bool:
        """Можно сохранять: валиден, не сохранён и не отброшен."""
        return self.valid and not self.saved and not self.discarded


@dataclass(slots=True)
class ReviewEvent:
    kind: ReviewEventKind
    message: str
    position: Optional[int] = None
    count: int = 1


@dataclass(slots=True)
class ReviewSummary:
    total: int = 0
    valid: int = 0
    invalid: int = 0
    saved: int = 0
    failed: int = 0
    discarded: int = 0
