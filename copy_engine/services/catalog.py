"""
Каталог deliverables и реестр рынков.
Статические справочные данные загружаются из YAML один раз при старте
и дальше используются только на чтение.
"""
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml

from .errors import CatalogIntegrityError, UnknownDeliverableError
from .types import (
    AssetSpec,
    CatalogSection,
    CatalogSubsection,
    DeliverableTemplate,
    Market,
)

logger = logging.getLogger(__name__)

# "Gallery 2" -> "Gallery"
_NUMBERED_HEADING = re.compile(r"^(.*?)\s*\d+$")


def _load_yaml(path: Path, what: str) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing {path.name}: {str(e)}")


class DeliverableCatalog:
    """
    Каталог шаблонов deliverables: секции, подсекции, поля и ассеты.
    Порядок deliverables и секций сохраняется таким, как в файле.
    """

    def __init__(self, deliverables: Iterable[DeliverableTemplate]):
        self._deliverables: Dict[str, DeliverableTemplate] = {}
        for deliverable in deliverables:
            self._deliverables[deliverable.name] = deliverable
        self.check_integrity()

    @classmethod
    def from_dict(cls, data: dict) -> "DeliverableCatalog":
        """
        Создает каталог из словаря формата deliverables.yaml.

        Args:
            data: {"deliverables": {name: {category, description, sections, assets}}}

        Returns:
            Каталог deliverables
        """
        templates = []
        for name, raw in (data.get("deliverables") or {}).items():
            sections = []
            for raw_section in raw.get("sections") or []:
                subsections = [
                    CatalogSubsection(name=sub["name"], fields=list(sub.get("fields") or []))
                    for sub in raw_section.get("subsections") or []
                ]
                sections.append(CatalogSection(
                    name=raw_section["name"],
                    fields=list(raw_section.get("fields") or []),
                    subsections=subsections,
                ))
            assets = [
                AssetSpec(
                    name=asset["name"],
                    width=asset.get("width"),
                    height=asset.get("height"),
                    max_file_size_mb=asset.get("maxFileSizeMB"),
                    formats=list(asset.get("formats") or []),
                    filename_format=asset.get("filenameFormat", ""),
                    notes=asset.get("notes") or "",
                )
                for asset in raw.get("assets") or []
            ]
            templates.append(DeliverableTemplate(
                name=name,
                category=raw.get("category", ""),
                description=raw.get("description", ""),
                sections=sections,
                assets=assets,
            ))
        return cls(templates)

    @classmethod
    def load(cls, path: Path) -> "DeliverableCatalog":
        catalog = cls.from_dict(_load_yaml(path, "Deliverable catalog"))
        logger.info("Loaded %d deliverables from %s", len(catalog), path)
        return catalog

    def __len__(self) -> int:
        return len(self._deliverables)

    def __iter__(self):
        return iter(self._deliverables.values())

    def names(self) -> List[str]:
        return list(self._deliverables)

    def get(self, name: str) -> DeliverableTemplate:
        try:
            return self._deliverables[name]
        except KeyError:
            raise UnknownDeliverableError(f"Unknown deliverable: {name!r}")

    def check_integrity(self) -> None:
        """
        Проверяет, что внутри каждого deliverable пары (секция, поле) уникальны.

        Raises:
            CatalogIntegrityError: Если найден дубликат
        """
        for deliverable in self._deliverables.values():
            seen = set()
            for section in deliverable.sections:
                if section.fields and section.subsections:
                    raise CatalogIntegrityError(
                        f"Section {section.name!r} of {deliverable.name!r} has both fields and subsections"
                    )
                for field_name in section.all_fields():
                    key = (section.name, field_name)
                    if key in seen:
                        raise CatalogIntegrityError(
                            f"Duplicate field {field_name!r} in section {section.name!r} of {deliverable.name!r}"
                        )
                    seen.add(key)

    def find_section(self, name: str, numbered_fallback: bool = False) -> Optional[CatalogSection]:
        """
        Ищет секцию каталога по имени заголовка документа.

        Берется первый deliverable, в секциях которого есть точное совпадение имени.
        При numbered_fallback заголовок вида "Gallery 2" без точного совпадения
        сопоставляется с секцией "Gallery" (эвристика, не гарантия).

        Args:
            name: Текст заголовка секции
            numbered_fallback: Разрешить сопоставление по имени без номера в конце

        Returns:
            Секция каталога или None
        """
        section = self._find_exact_section(name)
        if section is not None or not numbered_fallback:
            return section

        match = _NUMBERED_HEADING.match(name.strip())
        if match and match.group(1):
            return self._find_exact_section(match.group(1))
        return None

    def _find_exact_section(self, name: str) -> Optional[CatalogSection]:
        for deliverable in self._deliverables.values():
            for section in deliverable.sections:
                if section.name == name:
                    return section
        return None

    def subsection_map(self, section_name: str) -> Dict[str, str]:
        """Поле -> имя подсекции для секции каталога (пусто для плоских секций)."""
        section = self._find_exact_section(section_name)
        if section is None:
            return {}
        return {f: sub.name for sub in section.subsections for f in sub.fields}


class MarketRegistry:
    """Реестр известных рынков."""

    def __init__(self, markets: Iterable[Market]):
        self._markets: Dict[str, Market] = {m.code: m for m in markets}

    @classmethod
    def from_dict(cls, data: dict) -> "MarketRegistry":
        return cls(
            Market(code=m["code"], name=m.get("name", m["code"]), region=m.get("region", ""))
            for m in data.get("markets") or []
        )

    @classmethod
    def load(cls, path: Path) -> "MarketRegistry":
        registry = cls.from_dict(_load_yaml(path, "Market registry"))
        logger.info("Loaded %d markets from %s", len(registry), path)
        return registry

    def __len__(self) -> int:
        return len(self._markets)

    def __iter__(self):
        return iter(self._markets.values())

    def __contains__(self, code: str) -> bool:
        return code in self._markets

    def get(self, code: str) -> Optional[Market]:
        return self._markets.get(code)

    def resolve(self, code: str) -> Market:
        """Рынок по коду; для неизвестного кода создается рынок с именем, равным коду."""
        return self._markets.get(code) or Market(code=code, name=code)

    def by_region(self) -> Dict[str, List[Market]]:
        grouped: Dict[str, List[Market]] = {}
        for market in self._markets.values():
            grouped.setdefault(market.region or "Other", []).append(market)
        return grouped

    def unknown_codes(self, codes: Iterable[str]) -> List[str]:
        return [code for code in codes if code not in self._markets]


def load_reference_data(catalog_path: Path, markets_path: Path) -> Tuple[DeliverableCatalog, MarketRegistry]:
    """Загружает каталог и реестр рынков."""
    return DeliverableCatalog.load(catalog_path), MarketRegistry.load(markets_path)
