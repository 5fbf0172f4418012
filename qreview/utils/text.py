import re
from typing import Any

# Маркеры правильности в начале текста ответа: правильность передаётся только isCorrect
ICON_MARKER_RE = re.compile(r"^\s*(✔|✅|\*|->|✓)")
CORRECT_PREFIX_RE = re.compile(r"^\s*correct[:\-\s]", re.IGNORECASE)

HTML_TAG_RE = re.compile(r"<[a-zA-Z]+")


def like_term(s: str) -> str:
    """
    Поисковая строка для LIKE/ILIKE: трим, нижний регистр,
    \\, % и _ экранируются обратным слешем.
    """
    s = (s or "").strip().lower()
    return re.sub(r"([\\%_])", r"\\\1", s)


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def has_forbidden_marker(text: str) -> bool:
    """
    '✔ Paris', '* Paris', '-> Paris', 'Correct: Paris' -> True.
    """
    return bool(ICON_MARKER_RE.match(text) or CORRECT_PREFIX_RE.match(text))


def has_html_tag(text: str) -> bool:
    return bool(HTML_TAG_RE.search(text))
