import logging
import os
from logging.handlers import RotatingFileHandler
from .config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Конфигурирует логирование:
    - Уровень из settings.log_level
    - RotatingFileHandler: log_backup_count копий по log_max_bytes
    - Формат: время, уровень, модуль, сообщение
    """
    os.makedirs(settings.log_dir, exist_ok=True)
    log_path = os.path.join(settings.log_dir, settings.log_file)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for old in root.handlers[:]:
        root.removeHandler(old)
        old.close()
    root.addHandler(handler)

    # Дублируем в консоль (stderr, чтобы не мешать выводу команд)
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    root.addHandler(stream)
