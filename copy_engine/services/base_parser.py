"""
Абстрактный базовый класс для парсеров загруженных файлов.
"""
from abc import ABC, abstractmethod
from typing import Any

from .types import UploadedFile


class BaseParser(ABC):
    """
    Базовый класс для всех парсеров.
    Определяет общий интерфейс: один загруженный файл -> одна разобранная структура.
    """

    @abstractmethod
    def parse(self, file: UploadedFile) -> Any:
        """
        Разбирает загруженный файл.

        Args:
            file: Имя и содержимое файла

        Returns:
            Разобранная структура (зависит от парсера)

        Raises:
            DocumentParseError: Если файл не может быть прочитан
        """
        pass
