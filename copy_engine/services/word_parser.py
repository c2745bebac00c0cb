"""
Парсер Word-документов с копирайтом одного рынка.
Заголовки первого уровня открывают секции, абзацы вида "Поле: текст" становятся полями.
"""
import io
import logging
import re
from typing import List, Optional

from docx import Document
from docx.text.paragraph import Paragraph

from .base_parser import BaseParser
from .catalog import DeliverableCatalog
from .errors import DocumentParseError
from .reconciler import FieldReconciler
from .types import (
    UNKNOWN_MARKET,
    ParsedField,
    ParsedSection,
    ParsedWordDocument,
    ParseMetadata,
    UploadedFile,
)

logger = logging.getLogger(__name__)

# Разделитель - первое двоеточие
FIELD_PATTERN = re.compile(r"^(.+?):\s*(.*)$", re.DOTALL)
# Marketing_Copy_es-MX.docx -> es-MX
MARKET_PATTERN = re.compile(r"_([a-z]{2}-[a-z]{2})\.docx$", re.IGNORECASE)


def detect_market(filename: str) -> str:
    """Код рынка из имени файла или "unknown"."""
    match = MARKET_PATTERN.search(filename)
    return match.group(1) if match else UNKNOWN_MARKET


def heading_level(paragraph: Paragraph) -> Optional[int]:
    """Уровень заголовка по стилю абзаца ("Heading 1" -> 1), иначе None."""
    style = paragraph.style
    name = style.name if style is not None and style.name else ""
    if not name.startswith("Heading"):
        return None
    suffix = name[len("Heading"):].strip()
    return int(suffix) if suffix.isdigit() else None


def split_field(text: str) -> Optional[ParsedField]:
    """Разбирает абзац "Поле: текст"; None, если абзац не похож на поле."""
    match = FIELD_PATTERN.match(text.strip())
    if not match:
        return None
    label = match.group(1).strip()
    if not label:
        return None
    return ParsedField(name=label, content=match.group(2).strip())


def build_sections(paragraphs: List[Paragraph]) -> List[ParsedSection]:
    """
    Собирает секции из потока абзацев в порядке документа.

    Абзацы до первого заголовка и абзацы без двоеточия пропускаются.
    """
    sections: List[ParsedSection] = []
    current: Optional[ParsedSection] = None

    for paragraph in paragraphs:
        if heading_level(paragraph) == 1:
            if current is not None:
                sections.append(current)
            current = ParsedSection(deliverable=paragraph.text.strip())
            continue

        if current is None:
            continue

        parsed = split_field(paragraph.text)
        if parsed is not None:
            current.fields.append(parsed)

    if current is not None:
        sections.append(current)

    return sections


class WordDocumentParser(BaseParser):
    """
    Парсер .docx документов одного рынка.
    Рынок определяется по суффиксу имени файла (_xx-XX.docx).
    """

    def __init__(
        self,
        catalog: DeliverableCatalog,
        reconciler: FieldReconciler,
        numbered_fallback: bool = False,
    ):
        self.catalog = catalog
        self.reconciler = reconciler
        self.numbered_fallback = numbered_fallback

    def parse(self, file: UploadedFile) -> ParsedWordDocument:
        """
        Разбирает Word-документ в структуру секций и полей.

        Args:
            file: Загруженный .docx файл

        Returns:
            Разобранный документ с предупреждениями в metadata

        Raises:
            DocumentParseError: Если файл не является корректным .docx
        """
        try:
            document = Document(io.BytesIO(file.content))
        except Exception as e:
            logger.error("Error parsing Word document %s: %s", file.filename, e)
            raise DocumentParseError(file.filename, e)

        sections = build_sections(document.paragraphs)
        market = detect_market(file.filename)

        warnings: List[str] = []
        if market == UNKNOWN_MARKET:
            warnings.append(
                f'Market could not be detected from filename "{file.filename}" (expected suffix _xx-XX.docx)'
            )
        warnings.extend(
            self.reconciler.reconcile_sections(sections, self.catalog, self.numbered_fallback)
        )

        for warning in warnings:
            logger.warning("%s: %s", file.filename, warning)

        return ParsedWordDocument(
            market=market,
            sections=sections,
            metadata=ParseMetadata(filename=file.filename, warnings=warnings),
        )
