# qreview/services/review_service.py

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from qreview.config import Settings
from qreview.datasources.base import QuestionGateway
from qreview.datasources.sql_repository import SqlQuestionRepository
from qreview.datasources.supabase_rest import SupabaseRestClient
from qreview.review.reconciler import CreateReviewSession, EventCallback, UpdateReviewSession
from qreview.review.validator import GenerationRules

log = logging.getLogger(__name__)


class ReviewSetupError(ValueError):
    """Сессию нельзя начать: нет экзамена, категории или выбранных вопросов."""


def _or_default(value: Optional[int], default: int) -> int:
    # явный 0 из CLI не подменяется дефолтом: его отвергнет GenerationRules
    return default if value is None else value


def make_gateway(settings: Settings) -> QuestionGateway:
    """
    db_url (прямое подключение SQLAlchemy) важнее REST, если заданы оба.
    """
    if settings.db_url:
        log.debug("Используем SQL-шлюз")
        return SqlQuestionRepository(settings.db_url)
    if settings.supabase_url and settings.supabase_key:
        log.debug("Используем REST-шлюз: %s", settings.supabase_url)
        return SupabaseRestClient(settings)
    raise ReviewSetupError("Neither db_url nor supabase_url/supabase_key is configured")


class ReviewService:
    """
    Готовит сессии ревизии:
      - create: проверяет экзамен и категорию, собирает GenerationRules;
      - update: грузит оригиналы в порядке выбора оператором.
    """

    def __init__(self, settings: Settings, gateway: QuestionGateway) -> None:
        self.settings = settings
        self.gateway = gateway

    # --- Публичный API ---

    def start_create_session(
        self,
        exam_code: str,
        category: str,
        required_correct: Optional[int] = None,
        min_answers: Optional[int] = None,
        max_answers: Optional[int] = None,
        on_event: Optional[EventCallback] = None,
    ) -> CreateReviewSession:
        exam = self.gateway.get_exam(exam_code)
        if exam is None:
            raise ReviewSetupError(f"Exam {exam_code!r} not found")

        categories = self.gateway.get_categories_by_exam_code(exam_code)
        if category not in categories:
            raise ReviewSetupError(
                f"Category {category!r} is not defined for exam {exam_code!r}"
            )

        try:
            rules = GenerationRules(
                category=category,
                exam_code=exam.exam_code,
                required_correct=_or_default(required_correct, self.settings.required_correct_answers),
                min_answers=_or_default(min_answers, self.settings.min_answers),
                max_answers=_or_default(max_answers, self.settings.max_answers),
            )
        except ValueError as e:
            raise ReviewSetupError(str(e)) from e

        log.info(
            "Сессия create: exam=%s, category=%r, correct=%d, answers=%d..%d, inactive=%s",
            exam.exam_code, category, rules.required_correct,
            rules.min_answers, rules.max_answers, not exam.is_active,
        )
        return CreateReviewSession(self.gateway, exam, rules, on_event=on_event)

    def start_update_session(
        self,
        ids: Sequence[Any],
        on_event: Optional[EventCallback] = None,
    ) -> UpdateReviewSession:
        if not ids:
            raise ReviewSetupError("No questions selected for review")

        selected: List[Any] = list(dict.fromkeys(ids))  # без дублей, порядок выбора
        limit = self.settings.review_batch_limit
        if len(selected) > limit:
            log.warning("Выбрано %d вопросов, на ревизию уйдут первые %d", len(selected), limit)
            selected = selected[:limit]

        originals = self.gateway.get_questions_by_ids(selected)
        found = {str(q.id) for q in originals}
        missing = [i for i in selected if str(i) not in found]
        if missing:
            raise ReviewSetupError(f"Questions not found: {', '.join(map(str, missing))}")

        log.info("Сессия update: %d вопрос(ов), require_id_echo=%s",
                 len(originals), self.settings.require_id_echo)
        return UpdateReviewSession(
            self.gateway,
            originals,
            require_id_echo=self.settings.require_id_echo,
            on_event=on_event,
        )
