"""
Настройка логирования сервиса.
"""
import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Настраивает корневой логгер пакета copy_engine (консольный вывод).

    Повторный вызов не добавляет дублирующих обработчиков.

    Args:
        level: Уровень логирования ("DEBUG", "INFO", "WARNING", ...)

    Returns:
        Логгер пакета copy_engine
    """
    logger = logging.getLogger("copy_engine")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
