"""
Пакетный разбор нескольких Word-документов.
Ошибка одного файла не прерывает разбор остальных.
"""
import asyncio
import logging
from typing import Sequence

from .base_parser import BaseParser
from .errors import NoFilesParsedError
from .types import BatchParseResult, ParseFailure, UploadedFile

logger = logging.getLogger(__name__)


async def parse_word_batch(files: Sequence[UploadedFile], parser: BaseParser) -> BatchParseResult:
    """
    Разбирает файлы независимо друг от друга и дожидается всех.

    Каждый файл разбирается в отдельном потоке (синхронный парсер не блокирует
    event loop). Исключения не пробрасываются, а собираются в failures.

    Args:
        files: Загруженные файлы
        parser: Парсер одного документа

    Returns:
        Успешно разобранные документы и список ошибок по файлам
    """
    outcomes = await asyncio.gather(
        *(asyncio.to_thread(parser.parse, file) for file in files),
        return_exceptions=True,
    )

    result = BatchParseResult()
    for file, outcome in zip(files, outcomes):
        if isinstance(outcome, Exception):
            logger.warning("Failed to parse %s: %s", file.filename, outcome)
            result.failures.append(ParseFailure(filename=file.filename, error=str(outcome)))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            result.parsed.append(outcome)

    logger.info(
        "Parsed %d of %d Word documents (%d failed)",
        len(result.parsed), len(files), len(result.failures),
    )
    return result


def require_parsed(result: BatchParseResult) -> BatchParseResult:
    """
    Проверяет, что из непустого пакета разобран хотя бы один файл.

    Raises:
        NoFilesParsedError: Все файлы пакета завершились ошибкой
    """
    if not result.parsed and result.failures:
        raise NoFilesParsedError(result.failures)
    return result
