# qreview/datasources/supabase_rest.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests import Response

from qreview.config import Settings
from qreview.models.question import DashboardStats, ExamOption, QuestionRecord
from qreview.utils.text import like_term
from .base import GatewayError, QuestionGateway, order_by_ids

EXAM_FIELDS = "exam_code,exam_name,vendor,is_active"
WRITABLE_FIELDS = (
    "question", "answers", "explanation", "level", "category",
    "exam_code", "inactive", "created_at",
)


class SupabaseRestClient(QuestionGateway):
    """
    HTTP-клиент к REST API (PostgREST) хостинга базы.
    Инкапсулирует всю работу с таблицами админки.
    """

    def __init__(self, settings: Settings) -> None:
        self.base_url: str = str(settings.supabase_url or "").rstrip("/")
        self.api_key: Optional[str] = settings.supabase_key
        self.timeout: float = settings.supabase_timeout

        self.log = logging.getLogger(self.__class__.__name__)

        if not self.base_url:
            self.log.warning("⚠️ Supabase URL is not configured.")
        if not self.api_key:
            self.log.warning("⚠️ Supabase API key is not configured.")

    # -------------------------------------------------------------
    # Internal helper
    # -------------------------------------------------------------
    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Response:
        """
        Унифицированный метод запросов.
        Добавляет apikey/Authorization, логирует запрос и ответ,
        любые сетевые/HTTP ошибки превращает в GatewayError.
        """
        url = f"{self.base_url}/rest/v1/{table}"
        headers = {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {self.api_key or ''}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer

        self.log.debug(f"HTTP {method} {url} params={params} json={json}")

        try:
            resp = requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
            self.log.debug(f"Response {resp.status_code} {resp.text[:300]}...")
            resp.raise_for_status()
        except requests.HTTPError as ex:
            raise GatewayError(self._error_message(ex.response, ex)) from ex
        except requests.RequestException as ex:
            raise GatewayError(f"{method} {table} failed: {ex}") from ex
        return resp

    @staticmethod
    def _error_message(resp: Optional[Response], ex: Exception) -> str:
        # PostgREST кладёт описание в {"message": ..., "code": ...}
        if resp is not None:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("message"):
                return str(body["message"])
        return str(ex)

    def _count(self, table: str) -> int:
        """
        HEAD + Prefer: count=exact -> Content-Range: 0-24/3573 (или */0).
        """
        resp = self._request("HEAD", table, params={"select": "*"}, prefer="count=exact")
        content_range = resp.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0

    @staticmethod
    def _json(resp: Response, action: str) -> Any:
        try:
            return resp.json()
        except ValueError as ex:
            raise GatewayError(f"{action} failed: response is not JSON ({ex})") from ex

    def _record(self, resp: Response, action: str) -> QuestionRecord:
        """
        Первая строка ответа с Prefer: return=representation -> QuestionRecord.
        Пустой или битый ответ -> GatewayError.
        """
        rows = self._json(resp, action)
        if not isinstance(rows, list) or not rows:
            raise GatewayError(f"{action} failed: no row returned")
        try:
            return QuestionRecord.from_row(rows[0])
        except (ValueError, TypeError, AttributeError) as ex:
            raise GatewayError(f"{action} failed: malformed row ({ex})") from ex

    # -------------------------------------------------------------
    # Public API methods
    # -------------------------------------------------------------

    def insert_question(self, payload: Dict[str, Any]) -> QuestionRecord:
        """
        POST /rest/v1/questions, Prefer: return=representation
        """
        body = {k: payload[k] for k in WRITABLE_FIELDS if k in payload}
        resp = self._request("POST", "questions", json=body, prefer="return=representation")
        record = self._record(resp, "insert question")
        self.log.info("Inserted question id=%s exam_code=%s", record.id, record.exam_code)
        return record

    def update_question(self, payload: Dict[str, Any]) -> QuestionRecord:
        """
        PATCH /rest/v1/questions?id=eq.<id>
        Возвращает обновлённую строку со свежим updated_at.
        """
        if payload.get("id") is None:
            raise GatewayError("update question failed: payload has no id")
        body = {k: payload[k] for k in WRITABLE_FIELDS if k in payload and k != "created_at"}
        body["updated_at"] = datetime.now(timezone.utc).isoformat()
        resp = self._request(
            "PATCH",
            "questions",
            params={"id": f"eq.{payload['id']}"},
            json=body,
            prefer="return=representation",
        )
        record = self._record(resp, "update question")
        self.log.info("Updated question id=%s", record.id)
        return record

    def get_questions_by_ids(self, ids: Sequence[Any]) -> List[QuestionRecord]:
        if not ids:
            return []
        in_list = ",".join(str(i) for i in ids)
        resp = self._request("GET", "questions", params={"select": "*", "id": f"in.({in_list})"})
        return order_by_ids([QuestionRecord.from_row(r) for r in self._json(resp, "select questions")], ids)

    def get_questions_by_exam_code(
        self,
        exam_code: str,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[QuestionRecord]:
        params = {"select": "*", "exam_code": f"eq.{exam_code}", "order": "id.asc"}
        if category:
            params["category"] = f"eq.{category}"
        if search:
            params["question"] = f"ilike.*{like_term(search)}*"
        resp = self._request("GET", "questions", params=params)
        return [QuestionRecord.from_row(r) for r in self._json(resp, "select questions")]

    def get_exam(self, exam_code: str) -> Optional[ExamOption]:
        resp = self._request(
            "GET",
            "exam_pages",
            params={"select": EXAM_FIELDS, "exam_code": f"eq.{exam_code}", "limit": "1"},
        )
        rows = self._json(resp, "select exam")
        return ExamOption.from_row(rows[0]) if rows else None

    def get_categories_by_exam_code(self, exam_code: str) -> List[str]:
        resp = self._request(
            "GET",
            "exam_categories",
            params={
                "select": "category_name",
                "exam_code": f"eq.{exam_code}",
                "order": "display_order.asc,category_name.asc",
            },
        )
        return [r["category_name"] for r in self._json(resp, "select categories") if r.get("category_name")]

    def get_exams_with_categories(self) -> List[ExamOption]:
        pairs = self._json(self._request(
            "GET",
            "exam_categories",
            params={
                "select": "exam_code,category_name",
                "order": "exam_code.asc,display_order.asc,category_name.asc",
            },
        ), "select exam categories")
        by_exam: Dict[str, List[str]] = {}
        for p in pairs:
            if p.get("category_name"):
                by_exam.setdefault(p["exam_code"], []).append(p["category_name"])
        if not by_exam:
            return []

        codes = ",".join(f'"{c}"' for c in by_exam)
        rows = self._json(self._request(
            "GET",
            "exam_pages",
            params={"select": EXAM_FIELDS, "exam_code": f"in.({codes})", "order": "exam_code.asc"},
        ), "select exams")
        exams = []
        for r in rows:
            exam = ExamOption.from_row(r)
            exam.categories = by_exam.get(exam.exam_code, [])
            exams.append(exam)
        return exams

    def get_dashboard_stats(self) -> DashboardStats:
        flags = self._json(self._request(
            "GET", "exam_pages", params={"select": "is_active,is_featured", "limit": "5000"}
        ), "dashboard stats")
        stats = DashboardStats(
            total_exams=self._count("exam_pages"),
            total_questions=self._count("questions"),
            total_categories=self._count("exam_categories"),
            total_competitors=self._count("competitor_analysis"),
            active_exams=sum(1 for e in flags if e.get("is_active")),
            featured_exams=sum(1 for e in flags if e.get("is_featured")),
        )
        self.log.debug("Dashboard stats: %s", stats)
        return stats
