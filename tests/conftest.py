"""
Pytest configuration and shared fixtures.
"""
from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional, Sequence

import pytest
from sqlalchemy import create_engine, text

from qreview.datasources.base import GatewayError, QuestionGateway, order_by_ids
from qreview.models.question import Answer, DashboardStats, ExamOption, QuestionRecord


def make_question(
    qid: Any = 1,
    question: str = "Which layer routes packets?",
    answers: Optional[List[tuple]] = None,
    explanation: str = "<p>The network layer routes packets.</p>",
    level: str = "Intermediate",
    category: str = "Networking",
    exam_code: str = "N10",
    updated_at: Optional[str] = "2026-01-01T00:00:00+00:00",
) -> QuestionRecord:
    answers = answers or [("Network", True), ("Transport", False), ("Session", False), ("Physical", False)]
    return QuestionRecord(
        id=qid,
        question=question,
        answers=[Answer(text=t, is_correct=c) for t, c in answers],
        explanation=explanation,
        level=level,
        category=category,
        exam_code=exam_code,
        updated_at=updated_at,
    )


def as_candidate(record: QuestionRecord, **overrides: Any) -> Dict[str, Any]:
    """What the model sends back for an update review: no id, category or exam_code."""
    data = {
        "question": record.question,
        "answers": [a.to_dict() for a in record.answers],
        "explanation": record.explanation,
        "level": record.level,
    }
    data.update(overrides)
    return data


def new_candidate(**overrides: Any) -> Dict[str, Any]:
    data = {
        "question": "Q1",
        "answers": [{"text": "A", "isCorrect": True}, {"text": "B", "isCorrect": False}],
        "explanation": "<p>because</p>",
        "level": "Beginner",
        "category": "Networking",
        "exam_code": "N10",
    }
    data.update(overrides)
    return data


class FakeGateway(QuestionGateway):
    """In-memory gateway: records every write, can be told to fail."""

    def __init__(self, records: Sequence[QuestionRecord] = (), exams: Sequence[ExamOption] = ()):
        self.records: Dict[str, QuestionRecord] = {str(r.id): copy.deepcopy(r) for r in records}
        self.exams = {e.exam_code: e for e in exams}
        self.inserted: List[Dict[str, Any]] = []
        self.updated: List[Dict[str, Any]] = []
        self.fail_with: Optional[str] = None
        self.fail_times = 0
        self._next_id = 1000
        self._tick = 0

    def _maybe_fail(self) -> None:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise GatewayError(self.fail_with or "boom")

    def insert_question(self, payload):
        self._maybe_fail()
        self.inserted.append(copy.deepcopy(payload))
        self._next_id += 1
        row = dict(payload, id=self._next_id)
        record = QuestionRecord.from_row(row)
        self.records[str(record.id)] = record
        return record

    def update_question(self, payload):
        self._maybe_fail()
        self.updated.append(copy.deepcopy(payload))
        self._tick += 1
        row = dict(payload, updated_at=f"2026-10-17T12:00:{self._tick:02d}+00:00")
        record = QuestionRecord.from_row(row)
        self.records[str(record.id)] = record
        return record

    def get_questions_by_ids(self, ids):
        return order_by_ids(list(self.records.values()), ids)

    def get_questions_by_exam_code(self, exam_code, category=None, search=None):
        return [r for r in self.records.values() if r.exam_code == exam_code]

    def get_exam(self, exam_code):
        return self.exams.get(exam_code)

    def get_exams_with_categories(self):
        return [e for e in self.exams.values() if e.categories]

    def get_categories_by_exam_code(self, exam_code):
        exam = self.exams.get(exam_code)
        return list(exam.categories) if exam else []

    def get_dashboard_stats(self):
        return DashboardStats(total_questions=len(self.records), total_exams=len(self.exams))


@pytest.fixture
def n10_exam() -> ExamOption:
    return ExamOption(
        exam_code="N10",
        exam_name="Network+",
        vendor="CompTIA",
        is_active=False,
        categories=["Networking", "Security"],
    )


@pytest.fixture
def originals() -> List[QuestionRecord]:
    return [
        make_question(11, question="Which layer routes packets?"),
        make_question(
            12,
            question="Which port does HTTPS use?",
            answers=[("80", False), ("443", True), ("22", False)],
            explanation="<p>HTTPS uses 443.</p>",
            level="Beginner",
        ),
    ]


@pytest.fixture
def fake_gateway(originals, n10_exam) -> FakeGateway:
    return FakeGateway(originals, [n10_exam])


# ---- SQLite database for the SQL gateway and CLI tests ----

SCHEMA = [
    """
    CREATE TABLE questions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        question TEXT NOT NULL,
        answers TEXT NOT NULL,
        explanation TEXT,
        level TEXT,
        category TEXT,
        exam_code TEXT NOT NULL,
        inactive BOOLEAN NOT NULL DEFAULT 0,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE exam_pages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        exam_code TEXT NOT NULL,
        exam_name TEXT NOT NULL,
        vendor TEXT,
        is_active BOOLEAN NOT NULL DEFAULT 1,
        is_featured BOOLEAN NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE exam_categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        exam_code TEXT NOT NULL,
        category_name TEXT,
        display_order INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE competitor_analysis (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        exam_code TEXT
    )
    """,
]


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'admin.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))
        conn.execute(text("""
            INSERT INTO exam_pages (exam_code, exam_name, vendor, is_active, is_featured) VALUES
            ('N10', 'Network+', 'CompTIA', 0, 1),
            ('AZ-900', 'Azure Fundamentals', 'Microsoft', 1, 1),
            ('SY0', 'Security+', 'CompTIA', 1, 0)
        """))
        conn.execute(text("""
            INSERT INTO exam_categories (exam_code, category_name, display_order) VALUES
            ('N10', 'Security', 2),
            ('N10', 'Networking', 1),
            ('AZ-900', 'Cloud Concepts', 1)
        """))
        conn.execute(text("INSERT INTO competitor_analysis (exam_code) VALUES ('N10')"))
        for q in (
            make_question(1, question="Which layer routes packets?"),
            make_question(
                2,
                question="Which port does HTTPS use?",
                answers=[("80", False), ("443", True), ("22", False)],
                explanation="<p>HTTPS uses 443.</p>",
                level="Beginner",
                category="Security",
            ),
            make_question(3, question="What is a VNet?", category="Cloud Concepts", exam_code="AZ-900"),
        ):
            conn.execute(
                text("""
                    INSERT INTO questions
                        (id, question, answers, explanation, level, category, exam_code,
                         inactive, created_at, updated_at)
                    VALUES (:id, :question, :answers, :explanation, :level, :category,
                            :exam_code, 0, :ts, :ts)
                """),
                {
                    "id": q.id,
                    "question": q.question,
                    "answers": json.dumps([a.to_dict() for a in q.answers]),
                    "explanation": q.explanation,
                    "level": q.level,
                    "category": q.category,
                    "exam_code": q.exam_code,
                    "ts": "2026-01-01T00:00:00+00:00",
                },
            )
    engine.dispose()
    return url
