"""
Генерация Word-документа с копирайтом для одного рынка.

Формат рассчитан на повторный разбор WordDocumentParser:
заголовок первого уровня на секцию и абзац "Поле: текст" на каждое поле.
Служебные данные шаблона пишутся в колонтитул, а не в тело документа.
"""
import io
import logging
from datetime import datetime
from typing import Optional, Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

from .transformer import needs_placeholder, placeholder_text
from .types import Market, TallSection

logger = logging.getLogger(__name__)

DOCUMENT_TITLE = "Marketing Copy Template"
TEMPLATE_VERSION = "1.0"
INSTRUCTIONS = (
    "Instructions: Fill in the localized copy for each section below. "
    "Use the section headers to organize your content. "
    "This document will be converted to a localization spreadsheet once complete."
)
GREY = RGBColor(0x80, 0x80, 0x80)


class WordTemplateWriter:
    """Собирает .docx документ из проекции контента на один рынок."""

    def __init__(self, placeholder_policy: str = "missing", title: str = DOCUMENT_TITLE):
        self.placeholder_policy = placeholder_policy
        self.title = title

    def write(
        self,
        sections: Sequence[TallSection],
        market: Market,
        generated_at: Optional[datetime] = None,
    ) -> bytes:
        """
        Генерирует Word-документ для рынка.

        Args:
            sections: Секции с полями рынка (см. transformer.project_market)
            market: Рынок документа
            generated_at: Дата для колонтитула (по умолчанию - текущая)

        Returns:
            Бинарные данные .docx файла
        """
        generated_at = generated_at or datetime.now()
        doc = Document()

        title = doc.add_heading(self.title, level=0)
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER

        language = doc.add_paragraph()
        language.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = language.add_run(f"Language: {market.name} ({market.code})")
        run.bold = True
        run.font.size = Pt(14)

        instructions = doc.add_paragraph()
        instructions.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = instructions.add_run(INSTRUCTIONS)
        run.italic = True
        run.font.size = Pt(10)
        run.font.color.rgb = GREY

        for section in sections:
            self._write_section(doc, section)

        footer = doc.sections[0].footer.paragraphs[0]
        run = footer.add_run(
            f"Template Version: {TEMPLATE_VERSION} | Language: {market.code} | "
            f"Date: {generated_at.strftime('%B %Y')}"
        )
        run.italic = True
        run.font.size = Pt(8)
        run.font.color.rgb = GREY

        buffer = io.BytesIO()
        doc.save(buffer)
        logger.info("Generated Word document for %s: %d sections", market.code, len(sections))
        return buffer.getvalue()

    def _write_section(self, doc, section: TallSection) -> None:
        doc.add_heading(section.name, level=1)

        current_subsection = None
        for tall_field in section.fields:
            subsection = section.subsection_of.get(tall_field.name)
            if subsection and subsection != current_subsection:
                doc.add_heading(subsection, level=2)
            current_subsection = subsection

            if needs_placeholder(tall_field.content, tall_field.missing, self.placeholder_policy):
                text = placeholder_text(tall_field.name)
            else:
                text = tall_field.content

            paragraph = doc.add_paragraph()
            label = paragraph.add_run(f"{tall_field.name}: ")
            label.bold = True
            label.font.size = Pt(11)
            value = paragraph.add_run(text)
            value.font.size = Pt(11)

        doc.add_paragraph("")


def word_filename(market_code: str) -> str:
    return f"Marketing_Copy_{market_code}.docx"
