"""
Исключения сервиса.

Структурные ошибки парсинга прерывают разбор одного файла. Некритичные проблемы
(неизвестный рынок, неуверенное совпадение поля, отсутствующая вкладка)
не являются исключениями: они попадают в metadata.warnings.
"""
from typing import List

from .types import ParseFailure


class CopyEngineError(Exception):
    """Базовое исключение сервиса."""


class CatalogIntegrityError(CopyEngineError):
    """Каталог deliverables нарушает уникальность пар (секция, поле)."""


class DocumentParseError(CopyEngineError):
    """Файл не удалось прочитать как документ (Word или Excel)."""

    def __init__(self, filename: str, cause: Exception):
        self.filename = filename
        self.cause = cause
        super().__init__(f"Failed to parse {filename}: {cause}")


class InvalidStructureError(CopyEngineError):
    """Вкладка Copy Template пуста или не содержит колонок Deliverable и Name."""


class NoMarketColumnsError(InvalidStructureError):
    """В заголовке Copy Template нет ни одной колонки рынка."""


class NoFilesParsedError(CopyEngineError):
    """Ни один файл из непустого пакета не был разобран."""

    def __init__(self, failures: List[ParseFailure]):
        self.failures = failures
        names = ", ".join(f.filename for f in failures)
        super().__init__(f"No files were successfully parsed ({len(failures)} failed: {names})")


class InvalidSelectionError(CopyEngineError):
    """Некорректный выбор рынков (пустой список или ведущий рынок вне выбора)."""


class UnknownDeliverableError(CopyEngineError):
    """Deliverable отсутствует в каталоге."""


class QAConfigurationError(CopyEngineError):
    """LLM для QA не настроен."""


class QAResponseError(CopyEngineError):
    """Ответ LLM в пакетном режиме не является корректным JSON по схеме."""

    def __init__(self, message: str, raw_text: str):
        self.raw_text = raw_text
        super().__init__(message)


class RateLimitExceededError(CopyEngineError):
    """Превышен лимит QA-запросов для вызывающей стороны."""
