# qreview/datasources/sql_repository.py
from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence
from sqlalchemy import JSON, bindparam, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
import logging

from qreview.models.question import DashboardStats, ExamOption, QuestionRecord
from qreview.utils.text import like_term
from .base import GatewayError, QuestionGateway, order_by_ids

log = logging.getLogger(__name__)

QUESTION_COLUMNS = (
    "id, question, answers, explanation, level, category, exam_code, "
    "inactive, created_at, updated_at"
)
INSERT_COLUMNS = (
    "question", "answers", "explanation", "level", "category",
    "exam_code", "inactive", "created_at",
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqlQuestionRepository(QuestionGateway):
    """
    Репозиторий поверх SQLAlchemy Core:
    - вставка/обновление вопросов (RETURNING — нужна строка с id и updated_at)
    - выборки для ревизии и справочники экзаменов/категорий
    - счётчики для дашборда
    """

    def __init__(self, db_url: str):
        self.engine = create_engine(db_url, pool_pre_ping=True)

    @contextmanager
    def _db_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            log.warning("DB error on %s: %s", action, e)
            raise GatewayError(f"{action} failed: {e}") from e
        except (ValueError, TypeError, AttributeError) as e:
            # строка есть, но в QuestionRecord не собирается (битый answers)
            log.warning("Malformed row on %s: %s", action, e)
            raise GatewayError(f"{action} failed: malformed row ({e})") from e

    # ---- questions: запись ----

    def insert_question(self, payload: Dict[str, Any]) -> QuestionRecord:
        cols = [c for c in INSERT_COLUMNS if c in payload]
        params = {c: payload[c] for c in cols}
        params.setdefault("created_at", _utcnow_iso())
        if "created_at" not in cols:
            cols.append("created_at")

        stmt = text(f"""
            INSERT INTO questions ({", ".join(cols)})
            VALUES ({", ".join(":" + c for c in cols)})
            RETURNING {QUESTION_COLUMNS}
        """)
        if "answers" in params:
            stmt = stmt.bindparams(bindparam("answers", type_=JSON))

        with self._db_errors("insert question"):
            with self.engine.begin() as conn:
                row = conn.execute(stmt, params).mappings().one()
            record = QuestionRecord.from_row(dict(row))
        log.info("Inserted question id=%s exam_code=%s", record.id, record.exam_code)
        return record

    def update_question(self, payload: Dict[str, Any]) -> QuestionRecord:
        """
        Обновляет все поля вопроса по id и проставляет свежий updated_at.
        """
        if payload.get("id") is None:
            raise GatewayError("update question failed: payload has no id")

        params = {
            "id": payload["id"],
            "question": payload["question"],
            "answers": payload["answers"],
            "explanation": payload["explanation"],
            "level": payload["level"],
            "category": payload.get("category"),
            "exam_code": payload["exam_code"],
            "inactive": bool(payload.get("inactive", False)),
            "updated_at": _utcnow_iso(),
        }
        stmt = text(f"""
            UPDATE questions
               SET question=:question, answers=:answers, explanation=:explanation,
                   level=:level, category=:category, exam_code=:exam_code,
                   inactive=:inactive, updated_at=:updated_at
             WHERE id=:id
            RETURNING {QUESTION_COLUMNS}
        """).bindparams(bindparam("answers", type_=JSON))

        with self._db_errors("update question"):
            with self.engine.begin() as conn:
                row = conn.execute(stmt, params).mappings().first()
        if row is None:
            raise GatewayError(f"update question failed: id={payload['id']} not found")
        with self._db_errors("update question"):
            record = QuestionRecord.from_row(dict(row))
        log.info("Updated question id=%s", record.id)
        return record

    # ---- questions: чтение ----

    def get_questions_by_ids(self, ids: Sequence[Any]) -> List[QuestionRecord]:
        if not ids:
            return []
        stmt = text(
            f"SELECT {QUESTION_COLUMNS} FROM questions WHERE id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        with self._db_errors("select questions by ids"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt, {"ids": list(ids)}).mappings().all()
            records = [QuestionRecord.from_row(dict(r)) for r in rows]
        return order_by_ids(records, ids)

    def get_questions_by_exam_code(
        self,
        exam_code: str,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[QuestionRecord]:
        sql = f"SELECT {QUESTION_COLUMNS} FROM questions WHERE exam_code=:code"
        params: Dict[str, Any] = {"code": exam_code}
        if category:
            sql += " AND category=:category"
            params["category"] = category
        if search:
            sql += " AND LOWER(question) LIKE :pattern ESCAPE '\\'"
            params["pattern"] = f"%{like_term(search)}%"
        sql += " ORDER BY id"
        with self._db_errors("select questions by exam"):
            with self.engine.connect() as conn:
                rows = conn.execute(text(sql), params).mappings().all()
            return [QuestionRecord.from_row(dict(r)) for r in rows]

    # ---- exams / categories ----

    def get_exam(self, exam_code: str) -> Optional[ExamOption]:
        with self._db_errors("select exam"):
            with self.engine.connect() as conn:
                row = conn.execute(text("""
                    SELECT exam_code, exam_name, vendor, is_active
                      FROM exam_pages
                     WHERE exam_code=:code
                     LIMIT 1
                """), {"code": exam_code}).mappings().first()
        return ExamOption.from_row(dict(row)) if row else None

    def get_categories_by_exam_code(self, exam_code: str) -> List[str]:
        with self._db_errors("select categories"):
            with self.engine.connect() as conn:
                rows = conn.execute(text("""
                    SELECT category_name
                      FROM exam_categories
                     WHERE exam_code=:code
                     ORDER BY display_order, category_name
                """), {"code": exam_code}).fetchall()
        return [r.category_name for r in rows if r.category_name]

    def get_exams_with_categories(self) -> List[ExamOption]:
        """
        Экзамены (активные и нет), у которых есть хотя бы одна категория.
        """
        with self._db_errors("select exams with categories"):
            with self.engine.connect() as conn:
                exam_rows = conn.execute(text("""
                    SELECT exam_code, exam_name, vendor, is_active
                      FROM exam_pages
                     WHERE exam_code IN (SELECT exam_code FROM exam_categories)
                     ORDER BY exam_code
                """)).mappings().all()
                pairs = conn.execute(text("""
                    SELECT exam_code, category_name
                      FROM exam_categories
                     ORDER BY exam_code, display_order, category_name
                """)).fetchall()

        by_exam: Dict[str, List[str]] = {}
        for p in pairs:
            if p.category_name:
                by_exam.setdefault(p.exam_code, []).append(p.category_name)

        exams = []
        for r in exam_rows:
            exam = ExamOption.from_row(dict(r))
            exam.categories = by_exam.get(exam.exam_code, [])
            exams.append(exam)
        return exams

    # ---- dashboard ----

    def get_dashboard_stats(self) -> DashboardStats:
        with self._db_errors("dashboard stats"):
            with self.engine.connect() as conn:
                def count(table: str) -> int:
                    return int(conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar() or 0)

                flags = conn.execute(text("""
                    SELECT
                        COALESCE(SUM(CASE WHEN is_active THEN 1 ELSE 0 END), 0) AS active,
                        COALESCE(SUM(CASE WHEN is_featured THEN 1 ELSE 0 END), 0) AS featured
                      FROM exam_pages
                """)).fetchone()
                stats = DashboardStats(
                    total_exams=count("exam_pages"),
                    total_questions=count("questions"),
                    total_categories=count("exam_categories"),
                    total_competitors=count("competitor_analysis"),
                    active_exams=int(flags.active),
                    featured_exams=int(flags.featured),
                )
        log.debug("Dashboard stats: %s", stats)
        return stats
