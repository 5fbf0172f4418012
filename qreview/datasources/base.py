from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence
from qreview.models.question import DashboardStats, ExamOption, QuestionRecord


class GatewayError(Exception):
    """
    Любая ошибка слоя данных (нарушение ограничений, сеть, таймаут).
    Повторы не делаем: решает вызывающий код.
    """


class QuestionGateway:
    """
    Абстрактный доступ к таблицам админки: questions, exam_pages, exam_categories.
    """

    # ---- запись ----

    def insert_question(self, payload: Dict[str, Any]) -> QuestionRecord:
        raise NotImplementedError

    def update_question(self, payload: Dict[str, Any]) -> QuestionRecord:
        raise NotImplementedError

    # ---- чтение ----

    def get_questions_by_ids(self, ids: Sequence[Any]) -> List[QuestionRecord]:
        raise NotImplementedError

    def get_questions_by_exam_code(
        self,
        exam_code: str,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[QuestionRecord]:
        raise NotImplementedError

    def get_exam(self, exam_code: str) -> Optional[ExamOption]:
        raise NotImplementedError

    def get_exams_with_categories(self) -> List[ExamOption]:
        raise NotImplementedError

    def get_categories_by_exam_code(self, exam_code: str) -> List[str]:
        raise NotImplementedError

    def get_dashboard_stats(self) -> DashboardStats:
        raise NotImplementedError


def order_by_ids(records: Sequence[QuestionRecord], ids: Sequence[Any]) -> List[QuestionRecord]:
    """
    Выборка по IN (...) порядок не гарантирует, а для ревизии нужен порядок выбора.
    Отсутствующие id просто пропускаются.
    """
    by_id = {str(r.id): r for r in records}
    return [by_id[str(i)] for i in ids if str(i) in by_id]
