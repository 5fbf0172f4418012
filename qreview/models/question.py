from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class Answer:
    text: str
    is_correct: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Answer":
        return cls(text=str(data.get("text") or ""), is_correct=bool(data.get("isCorrect")))

    def to_dict(self) -> Dict[str, Any]:
        # В базе и в ответе модели ключ именно isCorrect
        return {"text": self.text, "isCorrect": self.is_correct}


@dataclass(slots=True)
class QuestionRecord:
    """
    Строка таблицы questions.
    Порядок answers — порядок показа, его нигде не меняем.
    """

    id: Any
    question: str
    answers: List[Answer]
    explanation: str
    level: str
    category: Optional[str]
    exam_code: str
    inactive: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QuestionRecord":
        """
        Собирает запись из строки БД / REST-ответа.
        answers может прийти строкой (json/text колонка) или уже списком.
        """
        raw_answers = row.get("answers") or []
        if isinstance(raw_answers, str):
            raw_answers = json.loads(raw_answers)
        return cls(
            id=row.get("id"),
            question=row.get("question") or "",
            answers=[Answer.from_dict(a) for a in raw_answers],
            explanation=row.get("explanation") or "",
            level=row.get("level") or "",
            category=row.get("category"),
            exam_code=row.get("exam_code") or "",
            inactive=bool(row.get("inactive")),
            created_at=_ts(row.get("created_at")),
            updated_at=_ts(row.get("updated_at")),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "answers": [a.to_dict() for a in self.answers],
            "explanation": self.explanation,
            "level": self.level,
            "category": self.category,
            "exam_code": self.exam_code,
            "inactive": self.inactive,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class ExamOption:
    exam_code: str
    exam_name: str
    vendor: Optional[str] = None
    is_active: bool = True
    categories: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ExamOption":
        return cls(
            exam_code=row.get("exam_code") or "",
            exam_name=row.get("exam_name") or "",
            vendor=row.get("vendor"),
            is_active=bool(row.get("is_active")),
        )


@dataclass(slots=True)
class DashboardStats:
    total_exams: int = 0
    total_questions: int = 0
    total_categories: int = 0
    total_competitors: int = 0
    active_exams: int = 0
    featured_exams: int = 0


def _ts(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
