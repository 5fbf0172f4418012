# qreview/review/reconciler.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from qreview.datasources.base import GatewayError, QuestionGateway
from qreview.models.enums import ReviewEventKind, ReviewMode
from qreview.models.question import ExamOption, QuestionRecord
from qreview.models.review_result import ReviewEvent, ReviewSummary, ValidationResult
from .parser import BatchParseError, parse_batch
from .validator import GenerationRules, NewQuestionValidator, UpdateQuestionValidator

log = logging.getLogger(__name__)

EventCallback = Callable[[ReviewEvent], None]


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


class ReviewSession:
    """
    Одна сессия ревизии ответа модели: разбор -> проверка -> сохранение.

    Список результатов принадлежит сессии и целиком заменяется при каждом parse().
    Сохранение идёт строго последовательно; ошибка одного вопроса пишется в его
    save_error и не мешает остальным.
    """

    mode: ReviewMode
    verb = "saved"

    def __init__(self, gateway: QuestionGateway, on_event: Optional[EventCallback] = None) -> None:
        self.gateway = gateway
        self.on_event = on_event
        self.results: List[ValidationResult] = []
        self.sanitized = False

    # --- Публичный API ---

    def parse(self, raw: str) -> List[ValidationResult]:
        if not (raw or "").strip():
            log.debug("Пустой ввод, разбор пропущен")
            return self.results

        self.results = []
        self.sanitized = False
        try:
            batch = parse_batch(raw)
        except BatchParseError as e:
            log.warning("Ответ модели не разобран: %s", e)
            self.results = [ValidationResult(position=0, valid=False, errors=[str(e)])]
            return self.results

        self.sanitized = batch.sanitized
        self.results = self._validate(batch.candidates)
        s = self.summary()
        log.info(
            "Разбор (%s): всего=%d, валидных=%d, с ошибками=%d, sanitized=%s",
            self.mode.value, s.total, s.valid, s.invalid, self.sanitized,
        )
        return self.results

    def find(self, position: int) -> Optional[ValidationResult]:
        for r in self.results:
            if r.position == position:
                return r
        return None

    def discard(self, position: int) -> bool:
        """Отбросить результат; уже сохранённый отбросить нельзя."""
        result = self.find(position)
        if result is None or result.saved:
            return False
        result.discarded = True
        log.info("Результат #%d отброшен оператором", position)
        return True

    def save_one(self, position: int) -> bool:
        result = self.find(position)
        if result is None:
            return False
        return self._save(result)

    def save_all_valid(self) -> int:
        # снимок очереди: сохраняем то, что было готово на момент вызова
        queue = [r for r in self.results if r.pending and not r.synthetic]
        if not queue:
            return 0
        saved = sum(1 for r in queue if self._save(r))
        log.info("Массовое сохранение: в очереди=%d, сохранено=%d", len(queue), saved)
        if saved:
            self._notify(ReviewEvent(
                kind=ReviewEventKind.BATCH_SAVED,
                message=f"{saved} question{_plural(saved)} {self.verb}.",
                count=saved,
            ))
        return saved

    def summary(self) -> ReviewSummary:
        return ReviewSummary(
            total=len(self.results),
            valid=sum(1 for r in self.results if r.valid),
            invalid=sum(1 for r in self.results if not r.valid),
            saved=sum(1 for r in self.results if r.saved),
            failed=sum(1 for r in self.results if r.save_error and not r.saved),
            discarded=sum(1 for r in self.results if r.discarded),
        )

    # --- Внутренние помощники ---

    def _validate(self, candidates: Sequence[Any]) -> List[ValidationResult]:
        raise NotImplementedError

    def build_payload(self, result: ValidationResult) -> Dict[str, Any]:
        raise NotImplementedError

    def _persist(self, payload: Dict[str, Any]) -> QuestionRecord:
        raise NotImplementedError

    def _after_save(self, result: ValidationResult, stored: QuestionRecord) -> None:
        pass

    def _save(self, result: ValidationResult) -> bool:
        # повторный save по сохранённому/отброшенному/невалидному — no-op
        if not result.pending or result.synthetic:
            return False
        payload = self.build_payload(result)
        try:
            stored = self._persist(payload)
        except GatewayError as e:
            result.save_error = str(e) or "Save failed"
            log.warning("Результат #%d не сохранён: %s", result.position, result.save_error)
            return False

        result.saved = True
        result.save_error = None
        self._after_save(result, stored)
        log.info("Результат #%d сохранён (id=%s)", result.position, stored.id)
        self._notify(ReviewEvent(
            kind=ReviewEventKind.QUESTION_SAVED,
            message=f"Question {self.verb}.",
            position=result.position,
        ))
        return True

    def _notify(self, event: ReviewEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)


class CreateReviewSession(ReviewSession):
    """
    Новые вопросы для выбранного экзамена и категории.
    inactive берётся из флага активности экзамена на момент вставки.
    """

    mode = ReviewMode.CREATE
    verb = "created"

    def __init__(
        self,
        gateway: QuestionGateway,
        exam: ExamOption,
        rules: GenerationRules,
        on_event: Optional[EventCallback] = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if rules.exam_code != exam.exam_code:
            raise ValueError(
                f"rules.exam_code={rules.exam_code!r} does not match exam {exam.exam_code!r}"
            )
        super().__init__(gateway, on_event)
        self.exam = exam
        self.rules = rules
        self.validator = NewQuestionValidator(rules)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _validate(self, candidates: Sequence[Any]) -> List[ValidationResult]:
        return self.validator.validate_batch(candidates)

    def build_payload(self, result: ValidationResult) -> Dict[str, Any]:
        q = result.candidate or {}
        return {
            "question": q["question"].strip(),
            "answers": [{"text": a["text"], "isCorrect": a["isCorrect"]} for a in q["answers"]],
            "explanation": q["explanation"].strip(),
            "level": q["level"],
            "category": q["category"],
            "exam_code": q["exam_code"],
            "inactive": not self.exam.is_active,
            "created_at": self.clock().isoformat(),
        }

    def _persist(self, payload: Dict[str, Any]) -> QuestionRecord:
        return self.gateway.insert_question(payload)

    def _after_save(self, result: ValidationResult, stored: QuestionRecord) -> None:
        result.identifier = stored.id


class UpdateReviewSession(ReviewSession):
    """
    Ревизия существующих вопросов.

    Payload = полный оригинал + question, explanation и answers[].text из ответа модели.
    isCorrect всегда берётся из оригинала, даже после успешной проверки.
    """

    mode = ReviewMode.UPDATE
    verb = "updated"

    def __init__(
        self,
        gateway: QuestionGateway,
        originals: Sequence[QuestionRecord],
        require_id_echo: bool = False,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        super().__init__(gateway, on_event)
        self.originals: List[QuestionRecord] = list(originals)
        self.originals_by_id: Dict[str, QuestionRecord] = {str(q.id): q for q in self.originals}
        self.validator = UpdateQuestionValidator(self.originals, require_id_echo=require_id_echo)

    def _validate(self, candidates: Sequence[Any]) -> List[ValidationResult]:
        results = self.validator.validate_batch(candidates)
        if len(candidates) != len(self.originals):
            log.warning(
                "Модель вернула %d вопрос(ов), ожидалось %d", len(candidates), len(self.originals)
            )
        return results

    def build_payload(self, result: ValidationResult) -> Dict[str, Any]:
        original = result.original
        if original is None or result.candidate is None:
            raise ValueError(f"result #{result.position} has no original to reconcile with")
        candidate = result.candidate
        payload = original.to_payload()
        payload["question"] = candidate["question"]
        payload["explanation"] = candidate["explanation"]
        payload["answers"] = [
            {"text": candidate["answers"][i]["text"], "isCorrect": orig.is_correct}
            for i, orig in enumerate(original.answers)
        ]
        return payload

    def _persist(self, payload: Dict[str, Any]) -> QuestionRecord:
        return self.gateway.update_question(payload)

    def _after_save(self, result: ValidationResult, stored: QuestionRecord) -> None:
        # новая точка отсчёта для диффа: обновляем updated_at у локального оригинала
        if result.original is not None:
            result.original.updated_at = stored.updated_at
