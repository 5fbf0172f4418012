# qreview/cli.py
from pathlib import Path
from typing import List, Optional

import typer
import logging

from qreview.config import Settings
from qreview.datasources.base import GatewayError
from qreview.logging_config import setup_logging
from qreview.models.review_result import ReviewEvent, ValidationResult
from qreview.review.reconciler import ReviewSession
from qreview.services.review_service import ReviewService, ReviewSetupError, make_gateway

log = logging.getLogger(__name__)
app = typer.Typer(add_completion=False)


def _bootstrap():
    settings = Settings()
    setup_logging(settings)
    try:
        gateway = make_gateway(settings)
    except ReviewSetupError as e:
        typer.echo(f"❌ {e} (.env).")
        raise typer.Exit(code=1)
    return settings, gateway


def _print_event(event: ReviewEvent) -> None:
    typer.echo(f"  ✔ {event.message}")


def _coerce_id(raw: str):
    raw = raw.strip()
    return int(raw) if raw.isdigit() else raw


def _print_result(r: ValidationResult) -> None:
    status = "OK " if r.valid else "ERR"
    ident = f" id={r.identifier}" if r.identifier is not None else ""
    typer.echo(f"[{status}] #{r.position}{ident}")
    for err in r.errors:
        typer.echo(f"      - {err}")
    if r.original is not None:
        changed = []
        if r.question_changed:
            changed.append("question")
        if r.explanation_changed:
            changed.append("explanation")
        changed += [f"answers[{i}].text" for i, flag in enumerate(r.answer_text_changed) if flag]
        typer.echo(f"      changed: {', '.join(changed) if changed else '(none)'}")


def _report(session: ReviewSession, save: bool) -> None:
    if session.sanitized:
        typer.echo("ℹ️ Текст был автоматически очищен от артефактов экранирования.")
    for r in session.results:
        _print_result(r)

    s = session.summary()
    typer.echo(f"\nВсего: {s.total}, валидных: {s.valid}, с ошибками: {s.invalid}")
    if not save:
        typer.echo("Режим проверки: ничего не записано (используйте --save).")
        return

    saved = session.save_all_valid()
    for r in session.results:
        if r.save_error:
            typer.echo(f"❌ #{r.position}: {r.save_error}")
    s = session.summary()
    typer.echo(f"Сохранено: {saved}, ошибок записи: {s.failed}, отброшено: {s.discarded}")
    if s.failed:
        raise typer.Exit(code=2)


@app.command()
def review_new(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True,
                                  help="Файл с JSON-ответом модели"),
    exam_code: str = typer.Option(..., help="Код экзамена"),
    category: str = typer.Option(..., help="Категория экзамена"),
    correct: Optional[int] = typer.Option(None, help="Сколько правильных ответов в каждом вопросе"),
    min_answers: Optional[int] = typer.Option(None, help="Минимум вариантов ответа"),
    max_answers: Optional[int] = typer.Option(None, help="Максимум вариантов ответа"),
    save: bool = typer.Option(False, "--save", help="Записать валидные вопросы в базу"),
):
    """
    Проверить новые вопросы от модели и (с --save) вставить валидные.
    """
    settings, gateway = _bootstrap()
    log.info("Запуск команды review_new (exam=%s, category=%r)", exam_code, category)

    service = ReviewService(settings, gateway)
    try:
        session = service.start_create_session(
            exam_code, category,
            required_correct=correct, min_answers=min_answers, max_answers=max_answers,
            on_event=_print_event,
        )
    except (ReviewSetupError, GatewayError) as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)

    session.parse(source.read_text(encoding="utf-8"))
    _report(session, save)
    log.info("Команда review_new завершена")


@app.command()
def review_update(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True,
                                  help="Файл с JSON-ответом модели"),
    ids: List[str] = typer.Option(..., "--id", help="id вопросов в порядке, в котором они ушли в промпт"),
    discard: List[int] = typer.Option([], "--discard", help="Позиции, которые не сохранять"),
    save: bool = typer.Option(False, "--save", help="Записать валидные правки в базу"),
):
    """
    Проверить правки существующих вопросов и (с --save) применить валидные.

    Менять можно только question, explanation и answers[].text;
    isCorrect, level, category и exam_code остаются как в базе.
    """
    settings, gateway = _bootstrap()
    log.info("Запуск команды review_update (ids=%s)", ids)

    service = ReviewService(settings, gateway)
    try:
        session = service.start_update_session([_coerce_id(i) for i in ids], on_event=_print_event)
    except (ReviewSetupError, GatewayError) as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)

    session.parse(source.read_text(encoding="utf-8"))
    for position in discard:
        if not session.discard(position):
            typer.echo(f"⚠️ #{position}: нечего отбрасывать")
    _report(session, save)
    log.info("Команда review_update завершена")


@app.command()
def exams():
    """
    Экзамены, у которых есть категории, и сами категории.
    """
    _, gateway = _bootstrap()
    try:
        exam_list = gateway.get_exams_with_categories()
    except GatewayError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)
    for exam in exam_list:
        flag = "" if exam.is_active else " (inactive)"
        typer.echo(f"{exam.exam_code} — {exam.exam_name}{flag}")
        for name in exam.categories:
            typer.echo(f"    · {name}")


@app.command()
def stats():
    """
    Счётчики для дашборда.
    """
    _, gateway = _bootstrap()
    try:
        s = gateway.get_dashboard_stats()
    except GatewayError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)
    typer.echo(f"Exams:       {s.total_exams} (active {s.active_exams}, featured {s.featured_exams})")
    typer.echo(f"Questions:   {s.total_questions}")
    typer.echo(f"Categories:  {s.total_categories}")
    typer.echo(f"Competitors: {s.total_competitors}")


def main():
    app()


if __name__ == "__main__":
    main()
