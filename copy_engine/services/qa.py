"""
QA-ассистент для маркетингового копирайта.
Сериализует данные проекта в текстовый контекст для LLM, проверяет JSON-ответ
пакетной проверки по схеме и транслирует ответы в режиме чата.
"""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from jsonschema import Draft202012Validator

from .errors import QAResponseError
from .llm import LLMClient
from .prompt_manager import PromptManager
from .types import ContentRow, ExcelOrigin, ParsedWordDocument, ProjectData, WordOrigin

logger = logging.getLogger(__name__)

NO_PROJECT_DATA = "No project data available"

QA_REPORT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["issues", "summary"],
    "properties": {
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["severity", "deliverable", "field", "market", "message"],
                "properties": {
                    "severity": {"enum": ["error", "warning", "suggestion"]},
                    "deliverable": {"type": "string"},
                    "field": {"type": "string"},
                    "market": {"type": "string"},
                    "message": {"type": "string"},
                    "suggestion": {"type": ["string", "null"]},
                },
            },
        },
        "summary": {
            "type": "object",
            "required": ["totalIssues", "errors", "warnings", "suggestions"],
            "properties": {
                "totalIssues": {"type": "integer", "minimum": 0},
                "errors": {"type": "integer", "minimum": 0},
                "warnings": {"type": "integer", "minimum": 0},
                "suggestions": {"type": "integer", "minimum": 0},
            },
        },
    },
}

_validator = Draft202012Validator(QA_REPORT_SCHEMA)


def _rows_context(rows: Sequence[ContentRow]) -> str:
    lines = ["Copy Data:"]
    for row in rows:
        lines.append("")
        lines.append(f"[{row.deliverable} - {row.field}]")
        for market, content in row.content.items():
            if content:
                lines.append(f"  {market}: {content}")
    return "\n".join(lines) + "\n"


def _documents_context(documents: Sequence[ParsedWordDocument]) -> str:
    lines = ["Copy Data:"]
    for document in documents:
        if len(documents) > 1:
            lines.append("")
            lines.append(f"Market: {document.market} ({document.metadata.filename})")
        for section in document.sections:
            lines.append("")
            lines.append(f"[{section.deliverable}]")
            for parsed in section.fields:
                lines.append(f"  {parsed.name}: {parsed.content}")
    return "\n".join(lines) + "\n"


def build_project_context(project: Optional[ProjectData]) -> str:
    """
    Текстовый контекст проекта для LLM.

    Excel: блок "[deliverable - поле]" на каждую строку и по строке на каждый
    непустой рынок. Word: блок "[deliverable]" на секцию и строка "поле: текст"
    на каждое поле. Word-проект без документов (только строки) сериализуется
    как Excel.
    """
    if project is None:
        return NO_PROJECT_DATA

    markets = ", ".join(project.markets) or "unknown"
    header = f"Markets: {markets}\n\n"

    if isinstance(project, ExcelOrigin):
        return header + _rows_context(project.template.rows)

    if isinstance(project, WordOrigin):
        if project.documents:
            return header + _documents_context(project.documents)
        return header + _rows_context(project.rows)

    raise TypeError(f"Unsupported project data: {type(project).__name__}")


def strip_code_fences(text: str) -> str:
    """LLM может вернуть JSON в markdown блоке или просто JSON."""
    json_text = text.strip()
    if json_text.startswith("```json"):
        json_text = json_text[7:]
    if json_text.startswith("```"):
        json_text = json_text[3:]
    if json_text.endswith("```"):
        json_text = json_text[:-3]
    return json_text.strip()


def parse_qa_report(response_text: str) -> Dict[str, Any]:
    """
    Разбирает и проверяет ответ пакетной QA-проверки.

    Raises:
        QAResponseError: Ответ не является JSON или не соответствует схеме
    """
    try:
        report = json.loads(strip_code_fences(response_text))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse QA response: %s", response_text)
        raise QAResponseError(f"Invalid response from QA engine: {e}", response_text)

    errors = sorted(_validator.iter_errors(report), key=lambda err: list(err.path))
    if errors:
        first = errors[0]
        location = "/".join(str(p) for p in first.path) or "<root>"
        logger.error("QA response does not match schema at %s: %s", location, first.message)
        raise QAResponseError(
            f"QA response does not match schema at {location}: {first.message}", response_text
        )
    return report


class QAEngine:
    """
    QA-проверка копирайта через LLM.
    Не изменяет данные проекта: ошибка QA не затрагивает разобранный контент.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        prompts: Optional[PromptManager] = None,
        batch_max_tokens: int = 4000,
        chat_max_tokens: int = 2000,
    ):
        self.llm_client = llm_client
        self.prompts = prompts or PromptManager()
        self.batch_max_tokens = batch_max_tokens
        self.chat_max_tokens = chat_max_tokens

    async def run_batch(self, project: Optional[ProjectData]) -> Dict[str, Any]:
        """
        Пакетная проверка всего проекта.

        Returns:
            Отчет {issues: [...], summary: {...}}

        Raises:
            QAResponseError: Ответ модели некорректен
        """
        context = build_project_context(project)
        response_text = await self.llm_client.generate_text(
            system_prompt=self.prompts.get_prompt("qa.batch_system"),
            user_prompt=self.prompts.get_prompt("qa.batch_analysis", context=context),
            temperature=0.2,
            max_tokens=self.batch_max_tokens,
        )
        report = parse_qa_report(response_text)
        logger.info("QA batch check finished: %d issues", len(report["issues"]))
        return report

    def build_chat_messages(
        self,
        project: Optional[ProjectData],
        message: str,
        history: Sequence[Dict[str, Any]] = (),
    ) -> List[Dict[str, str]]:
        """Контекст проекта, история (только записи с role и content) и новый вопрос."""
        context = build_project_context(project)
        messages = [{"role": "system", "content": self.prompts.get_prompt("qa.chat_context", context=context)}]
        messages.extend(
            {"role": h["role"], "content": h["content"]}
            for h in history
            if h.get("role") and h.get("content")
        )
        messages.append({"role": "user", "content": message})
        return messages

    async def chat(
        self,
        project: Optional[ProjectData],
        message: str,
        history: Sequence[Dict[str, Any]] = (),
    ) -> AsyncIterator[str]:
        """Потоковый ответ на вопрос о копирайте проекта."""
        messages = self.build_chat_messages(project, message, history)
        async for chunk in self.llm_client.stream_chat(messages, max_tokens=self.chat_max_tokens):
            yield chunk
