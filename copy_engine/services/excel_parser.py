"""
Парсер Excel-шаблона локализации.
Читает вкладку "Copy Template" (матрица deliverable x поле x рынок)
и необязательную вкладку "Asset Requirements".
"""
import io
import logging
import re
from typing import Any, List, Tuple

import pandas as pd

from .base_parser import BaseParser
from .catalog import MarketRegistry
from .errors import DocumentParseError, InvalidStructureError, NoMarketColumnsError
from .transformer import group_rows
from .types import (
    AssetRequirement,
    ContentRow,
    ParsedExcelTemplate,
    ParseMetadata,
    UploadedFile,
)

logger = logging.getLogger(__name__)

COPY_TAB = "Copy Template"
REQUIREMENTS_TAB = "Asset Requirements"
DEFAULT_PROJECT_NAME = "Imported_Project"

# ProjectName_Localization_Template_YYYY-MM-DD.xlsx
PROJECT_NAME_PATTERN = re.compile(r"^(.+?)_Localization_Template")
BASENAME_PATTERN = re.compile(r"^(.+?)\.xlsx$", re.IGNORECASE)


def _cell(value: Any) -> Any:
    """Пустая ячейка (None/NaN) -> "", остальные значения как есть."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return value


def _is_empty(value: Any) -> bool:
    return str(value).strip() == ""


def _at(row: List[Any], index: int) -> Any:
    return row[index] if index < len(row) else ""


def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def read_sheet_rows(excel: pd.ExcelFile, sheet_name: str) -> List[List[Any]]:
    """
    Читает вкладку как список строк из "сырых" ячеек.
    Полностью пустые строки отбрасываются.
    """
    df = excel.parse(sheet_name, header=None, dtype=object, keep_default_na=False)
    rows = []
    for values in df.itertuples(index=False, name=None):
        row = [_cell(v) for v in values]
        if all(_is_empty(v) for v in row):
            continue
        rows.append(row)
    return rows


def derive_project_name(filename: str) -> str:
    """Имя проекта из имени файла (без проверки по содержимому)."""
    match = PROJECT_NAME_PATTERN.match(filename)
    if match:
        return match.group(1)
    match = BASENAME_PATTERN.match(filename)
    if match:
        return match.group(1)
    return DEFAULT_PROJECT_NAME


def parse_copy_rows(data: List[List[Any]]) -> Tuple[List[str], List[ContentRow]]:
    """
    Разбирает строки вкладки Copy Template.

    Args:
        data: Непустые строки вкладки; первая строка - заголовок

    Returns:
        Кортеж (коды рынков в порядке колонок, строки контента)

    Raises:
        InvalidStructureError: Вкладка пуста или первые две колонки заголовка пусты
        NoMarketColumnsError: В заголовке нет колонок рынков
    """
    if not data:
        raise InvalidStructureError("Copy Template tab is empty")

    header = data[0]
    if _is_empty(_at(header, 0)) or _is_empty(_at(header, 1)):
        raise InvalidStructureError(
            "Invalid Excel structure. First two columns must be Deliverable and Name"
        )

    # Рынок -> индекс его колонки (пустые заголовки пропускаются)
    market_columns = [
        (_text(value).strip(), index)
        for index, value in enumerate(header)
        if index >= 2 and not _is_empty(value)
    ]
    if not market_columns:
        raise NoMarketColumnsError("No market columns found in Excel file")

    rows: List[ContentRow] = []
    for line_number, row in enumerate(data[1:], start=2):
        deliverable, field_name = _at(row, 0), _at(row, 1)

        if _is_empty(deliverable) and _is_empty(field_name):
            continue
        if _is_empty(deliverable) or _is_empty(field_name):
            logger.warning("Row %d has missing deliverable or field name, skipping", line_number)
            continue

        content = {
            market: _text(_at(row, index))
            for market, index in market_columns
        }
        rows.append(ContentRow(
            deliverable=_text(deliverable).strip(),
            field=_text(field_name).strip(),
            content=content,
        ))

    return [market for market, _ in market_columns], rows


def parse_requirement_rows(data: List[List[Any]]) -> List[AssetRequirement]:
    """Разбирает строки вкладки Asset Requirements (первая строка - заголовок)."""
    requirements = []
    for row in data[1:]:
        if _is_empty(_at(row, 0)):
            continue

        def optional(index: int):
            value = _at(row, index)
            return None if _is_empty(value) else value

        requirements.append(AssetRequirement(
            deliverable=_text(_at(row, 0)),
            asset_name=_text(_at(row, 1)),
            width=optional(2),
            height=optional(3),
            max_file_size=_text(_at(row, 4)),
            formats=_text(_at(row, 5)),
            filename_format=_text(_at(row, 6)),
            notes=_text(_at(row, 7)),
        ))
    return requirements


class ExcelTemplateParser(BaseParser):
    """
    Парсер .xlsx шаблона локализации.
    Неизвестные коды рынков не отклоняются, а дают предупреждение.
    """

    def __init__(self, markets: MarketRegistry):
        self.markets = markets

    def parse(self, file: UploadedFile) -> ParsedExcelTemplate:
        """
        Разбирает Excel-шаблон.

        Args:
            file: Загруженный .xlsx файл

        Returns:
            Разобранный шаблон: рынки, строки, группировка, требования к ассетам

        Raises:
            DocumentParseError: Если файл не читается как книга Excel
            InvalidStructureError: Если вкладка Copy Template некорректна
        """
        try:
            excel = pd.ExcelFile(io.BytesIO(file.content))
        except Exception as e:
            logger.error("Error parsing Excel file %s: %s", file.filename, e)
            raise DocumentParseError(file.filename, e)

        with excel:
            tab_names = list(excel.sheet_names)
            warnings: List[str] = []

            copy_tab = COPY_TAB
            if COPY_TAB not in tab_names:
                if not tab_names:
                    raise InvalidStructureError("No valid sheets found in Excel file")
                copy_tab = tab_names[0]
                warnings.append("Copy Template tab not found by name, using first sheet")

            markets, rows = parse_copy_rows(read_sheet_rows(excel, copy_tab))

            for code in self.markets.unknown_codes(markets):
                warnings.append(f'Unknown market code: "{code}" - may not be in standard list')

            requirements: List[AssetRequirement] = []
            if REQUIREMENTS_TAB in tab_names:
                requirements = parse_requirement_rows(read_sheet_rows(excel, REQUIREMENTS_TAB))
            else:
                warnings.append("Asset Requirements tab not found (optional)")

        for warning in warnings:
            logger.warning("%s: %s", file.filename, warning)

        return ParsedExcelTemplate(
            markets=markets,
            rows=rows,
            grouped=group_rows(rows),
            requirements=requirements,
            project_name=derive_project_name(file.filename),
            metadata=ParseMetadata(
                filename=file.filename,
                warnings=warnings,
                tab_names=tab_names,
            ),
        )
