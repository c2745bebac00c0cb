"""
Типы данных для каталога, парсинга и преобразования контента.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Set, Union

# Рынок, не определенный по имени файла
UNKNOWN_MARKET = "unknown"


@dataclass
class UploadedFile:
    """Загруженный файл: имя и содержимое целиком в памяти."""
    filename: str
    content: bytes


# ---------- Каталог и рынки ----------

@dataclass
class CatalogSubsection:
    name: str
    fields: List[str] = field(default_factory=list)


@dataclass
class CatalogSection:
    """
    Секция deliverable в каталоге.
    Либо плоский список полей (fields), либо вложенные подсекции (subsections).
    """
    name: str
    fields: List[str] = field(default_factory=list)
    subsections: List[CatalogSubsection] = field(default_factory=list)

    def all_fields(self) -> List[str]:
        """Все поля секции в порядке обхода (поля подсекций разворачиваются)."""
        if self.subsections:
            return [f for sub in self.subsections for f in sub.fields]
        return list(self.fields)


@dataclass
class AssetSpec:
    """Требования к визуальному ассету deliverable (не связаны с полями текста)."""
    name: str
    width: Optional[int] = None
    height: Optional[int] = None
    max_file_size_mb: Optional[float] = None
    formats: List[str] = field(default_factory=list)
    filename_format: str = ""
    notes: str = ""


@dataclass
class DeliverableTemplate:
    """Шаблон deliverable: форма контента без самого контента."""
    name: str
    category: str = ""
    description: str = ""
    sections: List[CatalogSection] = field(default_factory=list)
    assets: List[AssetSpec] = field(default_factory=list)


@dataclass(frozen=True)
class Market:
    code: str  # например "en-US"
    name: str  # например "English (United States)"
    region: str = ""

    @property
    def language(self) -> str:
        return self.code.split("-")[0]


# ---------- Широкая форма (Excel) ----------

@dataclass
class ContentRow:
    """
    Одно поле deliverable по всем рынкам.

    content: рынок -> текст. missing: рынки, для которых поле ни разу не встречалось
    в источнике (для них content[market] == "").
    """
    deliverable: str
    field: str
    content: Dict[str, str] = field(default_factory=dict)
    missing: Set[str] = field(default_factory=set)

    @property
    def key(self):
        return (self.deliverable, self.field)


@dataclass
class GroupedField:
    name: str
    content: Dict[str, str] = field(default_factory=dict)


@dataclass
class GroupedDeliverable:
    name: str
    fields: List[GroupedField] = field(default_factory=list)


@dataclass
class AssetRequirement:
    """Строка вкладки "Asset Requirements"."""
    deliverable: str
    asset_name: str = ""
    width: Optional[Union[int, float, str]] = None
    height: Optional[Union[int, float, str]] = None
    max_file_size: str = ""
    formats: str = ""
    filename_format: str = ""
    notes: str = ""


@dataclass
class ParseMetadata:
    filename: str
    parsed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    warnings: List[str] = field(default_factory=list)
    tab_names: List[str] = field(default_factory=list)


@dataclass
class ParsedExcelTemplate:
    markets: List[str]
    rows: List[ContentRow]
    grouped: Dict[str, GroupedDeliverable]
    requirements: List[AssetRequirement]
    project_name: str
    metadata: ParseMetadata


# ---------- Высокая форма (Word) ----------

@dataclass
class ParsedField:
    name: str
    content: str
    confidence: float = 1.0
    original_name: Optional[str] = None  # подпись до сверки с каталогом


@dataclass
class ParsedSection:
    deliverable: str  # текст заголовка первого уровня
    fields: List[ParsedField] = field(default_factory=list)


@dataclass
class ParsedWordDocument:
    market: str
    sections: List[ParsedSection]
    metadata: ParseMetadata


@dataclass
class ParseFailure:
    filename: str
    error: str


@dataclass
class BatchParseResult:
    parsed: List[ParsedWordDocument] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)


@dataclass
class TallField:
    name: str
    content: str = ""
    missing: bool = False


@dataclass
class TallSection:
    """Секция документа одного рынка (вход для генератора Word)."""
    name: str
    fields: List[TallField] = field(default_factory=list)
    # Подсекция для каждого поля (имя подзаголовка второго уровня), если есть
    subsection_of: Dict[str, str] = field(default_factory=dict)


# ---------- Данные проекта для QA ----------

@dataclass
class WordOrigin:
    """Проект, собранный из Word-документов."""
    documents: List[ParsedWordDocument]
    markets: List[str]
    rows: List[ContentRow]
    kind: Literal["word"] = "word"


@dataclass
class ExcelOrigin:
    """Проект, собранный из Excel-шаблона."""
    template: ParsedExcelTemplate
    kind: Literal["excel"] = "excel"

    @property
    def markets(self) -> List[str]:
        return self.template.markets

    @property
    def rows(self) -> List[ContentRow]:
        return self.template.rows


ProjectData = Union[WordOrigin, ExcelOrigin]


@dataclass
class FieldMatch:
    matched_name: str
    confidence: float
