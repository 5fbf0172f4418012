from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True, slots=True)
class RewriteRule:
    name: str
    pattern: re.Pattern
    replacement: str


# Порядок важен: правила применяются последовательно к результату предыдущего.
SANITIZE_RULES: Tuple[RewriteRule, ...] = (
    # \[ и \] из markdown-экспорта
    RewriteRule("bracket_open", re.compile(r"\\(?=\[)"), ""),
    RewriteRule("bracket_close", re.compile(r"\\(?=\])"), ""),
    # \_ — не валидный JSON escape
    RewriteRule("underscore", re.compile(r"\\_"), "_"),
    # \\\" и длиннее -> \"
    RewriteRule("quote_escape", re.compile(r'\\{2,}"'), r'\\"'),
)


@dataclass(frozen=True, slots=True)
class SanitizeOutcome:
    text: str
    applied: List[str]

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def sanitize_json_text(raw: str, rules: Tuple[RewriteRule, ...] = SANITIZE_RULES) -> SanitizeOutcome:
    """
    Чистит типичные артефакты экранирования в JSON от модели.
    Возвращает новый текст и имена сработавших правил.
    Флаг changed носит справочный характер: ошибку разбора он не скрывает.
    """
    text = raw
    applied: List[str] = []
    for rule in rules:
        rewritten = rule.pattern.sub(rule.replacement, text)
        if rewritten != text:
            applied.append(rule.name)
            text = rewritten
    return SanitizeOutcome(text=text, applied=applied)
