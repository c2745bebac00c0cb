"""
Сверка названий полей из документов с каноническими именами каталога.
"""
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .catalog import DeliverableCatalog
from .types import FieldMatch, ParsedField, ParsedSection

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
NORMALIZED_CONFIDENCE = 0.95
SYNONYM_CONFIDENCE = 0.8
NO_MATCH_CONFIDENCE = 0.0


def _normalize(label: str) -> str:
    return label.strip().lower()


def load_synonyms(path: Path) -> Dict[str, List[str]]:
    """
    Загружает таблицу синонимов полей из YAML.

    Args:
        path: Путь к field_synonyms.yaml (каноническое имя -> список синонимов)

    Returns:
        Словарь с нормализованными ключами и значениями
    """
    if not path.exists():
        raise FileNotFoundError(f"Field synonyms file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing {path.name}: {str(e)}")

    return {
        _normalize(str(canonical)): [_normalize(str(alt)) for alt in (alts or [])]
        for canonical, alts in raw.items()
    }


class FieldReconciler:
    """
    Сопоставляет подпись поля из документа со списком ожидаемых полей секции.

    Правила по приоритету (срабатывает первое):
    1. точное совпадение -> 1.0
    2. совпадение без учета регистра и пробелов по краям -> 0.95
    3. синоним из таблицы, если каноническое имя есть в списке -> 0.8
    4. иначе исходная подпись -> 0.0
    """

    def __init__(self, synonyms: Dict[str, List[str]], low_confidence_threshold: float = 0.8):
        self.synonyms = synonyms
        self.low_confidence_threshold = low_confidence_threshold

    @classmethod
    def from_file(cls, path: Path, low_confidence_threshold: float = 0.8) -> "FieldReconciler":
        return cls(load_synonyms(path), low_confidence_threshold)

    def match(self, label: str, expected: List[str]) -> FieldMatch:
        if label in expected:
            return FieldMatch(label, EXACT_CONFIDENCE)

        normalized = _normalize(label)
        by_normalized = {}
        for name in expected:
            by_normalized.setdefault(_normalize(name), name)

        if normalized in by_normalized:
            return FieldMatch(by_normalized[normalized], NORMALIZED_CONFIDENCE)

        for canonical, alternatives in self.synonyms.items():
            if normalized in alternatives and canonical in by_normalized:
                return FieldMatch(by_normalized[canonical], SYNONYM_CONFIDENCE)

        return FieldMatch(label, NO_MATCH_CONFIDENCE)

    def reconcile_field(self, parsed: ParsedField, expected: List[str]) -> ParsedField:
        result = self.match(parsed.name, expected)
        return ParsedField(
            name=result.matched_name,
            content=parsed.content,
            confidence=result.confidence,
            original_name=parsed.name if result.confidence < EXACT_CONFIDENCE else None,
        )

    def reconcile_sections(
        self,
        sections: List[ParsedSection],
        catalog: DeliverableCatalog,
        numbered_fallback: bool = False,
    ) -> List[str]:
        """
        Сверяет поля всех секций с каталогом (на месте) и возвращает предупреждения.

        Секции, имени которых нет в каталоге, остаются без изменений.

        Args:
            sections: Секции разобранного документа
            catalog: Каталог deliverables
            numbered_fallback: Сопоставлять "Gallery 2" с секцией "Gallery"

        Returns:
            Список предупреждений о неуверенных совпадениях
        """
        warnings: List[str] = []
        for section in sections:
            catalog_section = catalog.find_section(section.deliverable, numbered_fallback)
            if catalog_section is None:
                logger.debug("Section %r not in catalog, fields left as-is", section.deliverable)
                continue

            expected = catalog_section.all_fields()
            section.fields = [self.reconcile_field(f, expected) for f in section.fields]

            for f in section.fields:
                if self.is_low_confidence(f.confidence):
                    warnings.append(low_confidence_warning(f))
        return warnings

    def is_low_confidence(self, confidence: Optional[float]) -> bool:
        return confidence is not None and confidence < self.low_confidence_threshold


def low_confidence_warning(parsed: ParsedField) -> str:
    original = parsed.original_name if parsed.original_name is not None else parsed.name
    return (
        f'Low confidence match: "{original}" → "{parsed.name}" '
        f"({round(parsed.confidence * 100)}%)"
    )
