"""
Преобразование между формами контента.

Широкая форма (Excel): одна строка на поле, одна колонка на рынок.
Высокая форма (Word): один документ на рынок, поля под заголовками секций.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .catalog import DeliverableCatalog
from .errors import InvalidSelectionError
from .types import (
    ContentRow,
    GroupedDeliverable,
    GroupedField,
    ParsedField,
    ParsedSection,
    ParsedWordDocument,
    ParseMetadata,
    TallField,
    TallSection,
    WordOrigin,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "translation needed"


def order_markets(codes: Iterable[str], lead: Optional[str] = None) -> List[str]:
    """
    Порядок колонок рынков: ведущий рынок первым, остальные по возрастанию кода.

    Args:
        codes: Выбранные коды рынков
        lead: Ведущий рынок (должен входить в выбор)

    Returns:
        Упорядоченный список кодов без дубликатов

    Raises:
        InvalidSelectionError: Пустой выбор или ведущий рынок вне выбора
    """
    unique = list(dict.fromkeys(codes))
    if not unique:
        raise InvalidSelectionError("At least one market must be selected")
    if lead is None:
        return sorted(unique)
    if lead not in unique:
        raise InvalidSelectionError(f"Lead market {lead!r} is not among the selected markets")
    return [lead] + sorted(code for code in unique if code != lead)


def group_rows(rows: Iterable[ContentRow]) -> Dict[str, GroupedDeliverable]:
    """Группирует строки по deliverable (только для отображения, строки не меняются)."""
    grouped: Dict[str, GroupedDeliverable] = {}
    for row in rows:
        group = grouped.setdefault(row.deliverable, GroupedDeliverable(name=row.deliverable))
        group.fields.append(GroupedField(name=row.field, content=dict(row.content)))
    return grouped


# ---------- Выбор из каталога -> широкая форма ----------

def rows_from_selection(
    catalog: DeliverableCatalog,
    deliverable_names: Sequence[str],
    market_codes: Sequence[str],
    lead: Optional[str] = None,
) -> Tuple[List[str], List[ContentRow]]:
    """
    Строит пустой шаблон строк по выбранным deliverables и рынкам.

    Колонка Deliverable содержит имя секции каталога; поля подсекций
    разворачиваются в свою секцию. Все рынки помечены как отсутствующие.

    Returns:
        Кортеж (упорядоченные рынки, строки в порядке каталога)
    """
    markets = order_markets(market_codes, lead)
    rows: List[ContentRow] = []
    for name in deliverable_names:
        deliverable = catalog.get(name)
        for section in deliverable.sections:
            for field_name in section.all_fields():
                rows.append(ContentRow(
                    deliverable=section.name,
                    field=field_name,
                    content={market: "" for market in markets},
                    missing=set(markets),
                ))
    return markets, rows


# ---------- Высокая форма -> широкая форма ----------

def merge_word_documents(documents: Sequence[ParsedWordDocument]) -> ParsedWordDocument:
    """
    Объединяет документы одного рынка: секции и предупреждения просто дописываются.
    Повторная сверка полей не выполняется.
    """
    if not documents:
        raise ValueError("No documents to merge")
    if len(documents) == 1:
        return documents[0]

    merged = ParsedWordDocument(
        market=documents[0].market,
        sections=[],
        metadata=ParseMetadata(filename=f"{len(documents)} documents"),
    )
    for document in documents:
        merged.sections.extend(document.sections)
        merged.metadata.warnings.extend(document.metadata.warnings)
    return merged


def _merge_by_market(documents: Sequence[ParsedWordDocument]) -> Dict[str, ParsedWordDocument]:
    by_market: Dict[str, List[ParsedWordDocument]] = {}
    for document in documents:
        by_market.setdefault(document.market, []).append(document)
    return {market: merge_word_documents(docs) for market, docs in by_market.items()}


def rows_from_sections(
    sections_by_market: Dict[str, List[ParsedSection]],
    lead: Optional[str] = None,
) -> Tuple[List[str], List[ContentRow]]:
    """
    Собирает широкие строки из секций нескольких рынков.

    Ключ строки - (заголовок секции, имя поля) в порядке первого появления.
    Рынок без такого ключа получает "" и попадает в row.missing.
    При повторе ключа внутри одного рынка используется первое вхождение.
    """
    markets = order_markets(sections_by_market, lead)

    rows: Dict[Tuple[str, str], ContentRow] = {}
    for market in markets:
        for section in sections_by_market[market]:
            for parsed in section.fields:
                key = (section.deliverable, parsed.name)
                row = rows.get(key)
                if row is None:
                    row = rows[key] = ContentRow(deliverable=key[0], field=key[1])
                if market in row.content:
                    logger.debug("Duplicate field %r for %s, keeping first", key, market)
                    continue
                row.content[market] = parsed.content

    for row in rows.values():
        absent = [m for m in markets if m not in row.content]
        row.missing.update(absent)
        row.content = {m: row.content.get(m, "") for m in markets}

    return markets, list(rows.values())


def rows_from_word_documents(
    documents: Sequence[ParsedWordDocument],
    lead: Optional[str] = None,
) -> Tuple[List[str], List[ContentRow]]:
    """
    Широкие строки из разобранных Word-документов.
    Документы одного рынка сначала объединяются.
    """
    merged = _merge_by_market(documents)
    if lead is not None and lead not in merged:
        lead = None
    return rows_from_sections({m: doc.sections for m, doc in merged.items()}, lead)


# ---------- Широкая форма -> высокая форма ----------

def project_market(
    rows: Iterable[ContentRow],
    market: str,
    catalog: Optional[DeliverableCatalog] = None,
) -> List[TallSection]:
    """
    Проекция строк на один рынок для генерации Word-документа.

    Секции группируются по deliverable в порядке первого появления.
    Каждый вызов строит новые объекты, общего состояния между рынками нет.
    Ячейка с плейсхолдером Excel считается отсутствующей: Word выводит
    собственный плейсхолдер с именем поля.
    """
    sections: Dict[str, TallSection] = {}
    for row in rows:
        section = sections.get(row.deliverable)
        if section is None:
            section = sections[row.deliverable] = TallSection(
                name=row.deliverable,
                subsection_of=catalog.subsection_map(row.deliverable) if catalog else {},
            )
        content = row.content.get(market, "")
        missing = market in row.missing or market not in row.content
        if is_placeholder(content):
            content, missing = "", True
        section.fields.append(TallField(name=row.field, content=content, missing=missing))
    return list(sections.values())


def tall_to_parsed_sections(sections: Iterable[TallSection]) -> List[ParsedSection]:
    """Обратное преобразование проекции рынка в секции (пропуски отбрасываются)."""
    return [
        ParsedSection(
            deliverable=section.name,
            fields=[
                ParsedField(name=f.name, content=f.content)
                for f in section.fields
                if not f.missing
            ],
        )
        for section in sections
    ]


# ---------- Проверка полноты и плейсхолдеры ----------

def placeholder_text(label: str) -> str:
    return f"[{label} {PLACEHOLDER_MARKER}]"


def is_placeholder(content: str) -> bool:
    return "[" in content and PLACEHOLDER_MARKER in content


def needs_placeholder(content: str, missing: bool, policy: str) -> bool:
    """
    Нужно ли вывести плейсхолдер вместо содержимого ячейки.

    policy "missing": только для ячеек, отсутствовавших в источнике;
    policy "blank": также для присутствующих, но пустых ячеек.
    """
    if missing:
        return True
    return policy == "blank" and not content.strip()


def find_incomplete(rows: Sequence[ContentRow], markets: Sequence[str]) -> List[dict]:
    """
    Ячейки без перевода: плейсхолдер или пустой текст.

    Returns:
        Список {row, deliverable, field, market, issue}; row - номер строки в Excel
    """
    issues = []
    for index, row in enumerate(rows):
        for market in markets:
            content = row.content.get(market, "")
            if content and is_placeholder(content):
                issue = "Contains placeholder text"
            elif not content.strip():
                issue = "Empty content"
            else:
                continue
            issues.append({
                "row": index + 2,
                "deliverable": row.deliverable,
                "field": row.field,
                "market": market,
                "issue": issue,
            })
    return issues


def word_origin(documents: Sequence[ParsedWordDocument], lead: Optional[str] = None) -> WordOrigin:
    """Данные проекта из Word-документов: исходные документы и их широкая форма."""
    markets, rows = rows_from_word_documents(documents, lead)
    return WordOrigin(documents=list(documents), markets=markets, rows=rows)
