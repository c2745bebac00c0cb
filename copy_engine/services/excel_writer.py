"""
Генерация Excel-шаблона локализации (вкладки Copy Template и Asset Requirements).
"""
import io
import logging
from typing import Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .transformer import needs_placeholder, placeholder_text
from .types import ContentRow, DeliverableTemplate

logger = logging.getLogger(__name__)

COPY_TAB = "Copy Template"
REQUIREMENTS_TAB = "Asset Requirements"

REQUIREMENTS_HEADER = [
    "Deliverable",
    "Asset Name",
    "Width (px)",
    "Height (px)",
    "Max File Size",
    "Formats",
    "Filename Format",
    "Notes",
]
REQUIREMENTS_WIDTHS = [25, 30, 12, 12, 15, 15, 40, 30]

COPY_HEADER_FILL = "4472C4"
REQUIREMENTS_HEADER_FILL = "70AD47"


def _style_header(ws, fill_rgb: str) -> None:
    for cell in ws[1]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill(fill_type="solid", fgColor=fill_rgb)
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _set_widths(ws, widths: Iterable[int]) -> None:
    for index, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width


def _append_text_row(ws, values: Sequence) -> None:
    """
    Добавляет строку, сохраняя строковые значения как текст.
    Иначе openpyxl записывает строку, начинающуюся с "=", как формулу.
    """
    ws.append(values)
    for cell in ws[ws.max_row]:
        if isinstance(cell.value, str):
            cell.data_type = "s"


def copy_tab_rows(
    rows: Sequence[ContentRow],
    markets: Sequence[str],
    placeholder_policy: str = "missing",
) -> List[List[str]]:
    """
    Строки вкладки Copy Template: заголовок и по строке на поле.

    Плейсхолдер "[<код> translation needed]" подставляется только здесь,
    по политике placeholder_policy.
    """
    table = [["Deliverable", "Name", *markets]]
    for row in rows:
        cells = [row.deliverable, row.field]
        for market in markets:
            content = row.content.get(market, "")
            missing = market in row.missing or market not in row.content
            if needs_placeholder(content, missing, placeholder_policy):
                cells.append(placeholder_text(market))
            else:
                cells.append(content)
        table.append(cells)
    return table


def requirements_tab_rows(deliverables: Iterable[DeliverableTemplate]) -> List[list]:
    """Строки вкладки Asset Requirements по ассетам выбранных deliverables."""
    table: List[list] = [list(REQUIREMENTS_HEADER)]
    for deliverable in deliverables:
        for asset in deliverable.assets:
            size = f"{asset.max_file_size_mb:g} MB" if asset.max_file_size_mb is not None else ""
            table.append([
                deliverable.name,
                asset.name,
                asset.width,
                asset.height,
                size,
                ", ".join(asset.formats),
                asset.filename_format,
                asset.notes or "",
            ])
    return table


class ExcelTemplateWriter:
    """Собирает книгу Excel из широких строк контента."""

    def __init__(self, placeholder_policy: str = "missing"):
        self.placeholder_policy = placeholder_policy

    def write(
        self,
        rows: Sequence[ContentRow],
        markets: Sequence[str],
        deliverables: Iterable[DeliverableTemplate] = (),
    ) -> bytes:
        """
        Генерирует .xlsx файл.

        Args:
            rows: Строки контента в порядке каталога/документа
            markets: Рынки в порядке колонок (ведущий первым)
            deliverables: Deliverables, чьи ассеты попадают во вкладку требований

        Returns:
            Бинарные данные .xlsx файла
        """
        wb = Workbook()

        ws = wb.active
        ws.title = COPY_TAB
        for values in copy_tab_rows(rows, markets, self.placeholder_policy):
            _append_text_row(ws, values)
        _style_header(ws, COPY_HEADER_FILL)
        _set_widths(ws, [20, 20] + [35] * len(markets))
        # Заголовок и первые две колонки закреплены
        ws.freeze_panes = "C2"

        requirements = wb.create_sheet(REQUIREMENTS_TAB)
        for values in requirements_tab_rows(deliverables):
            _append_text_row(requirements, values)
        _style_header(requirements, REQUIREMENTS_HEADER_FILL)
        _set_widths(requirements, REQUIREMENTS_WIDTHS)

        buffer = io.BytesIO()
        wb.save(buffer)
        logger.info("Generated Excel template: %d rows x %d markets", len(rows), len(markets))
        return buffer.getvalue()


def excel_filename(project_name: str) -> str:
    return f"{project_name}_Localization_Template.xlsx"
