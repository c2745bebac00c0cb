"""
Сервисы разбора, преобразования и генерации шаблонов копирайта.
"""
from .base_parser import BaseParser
from .catalog import DeliverableCatalog, MarketRegistry
from .excel_parser import ExcelTemplateParser
from .reconciler import FieldReconciler
from .types import ContentRow, ParsedExcelTemplate, ParsedWordDocument
from .word_parser import WordDocumentParser

__all__ = [
    "BaseParser",
    "ContentRow",
    "DeliverableCatalog",
    "ExcelTemplateParser",
    "FieldReconciler",
    "MarketRegistry",
    "ParsedExcelTemplate",
    "ParsedWordDocument",
    "WordDocumentParser",
]
