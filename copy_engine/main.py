"""
Точка входа для сервиса Copy Engine на FastAPI.
Включает настройку CORS, эндпоинты генерации и импорта шаблонов, QA-ассистента
и запуск Uvicorn.
"""
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
import asyncio
import io
import logging
import uvicorn

from .config import settings
from .logging_config import setup_logging
from .services.batch import parse_word_batch, require_parsed
from .services.catalog import DeliverableCatalog, MarketRegistry, load_reference_data
from .services.errors import (
    CatalogIntegrityError,
    CopyEngineError,
    NoFilesParsedError,
    QAConfigurationError,
    QAResponseError,
    RateLimitExceededError,
)
from .services.excel_parser import ExcelTemplateParser
from .services.excel_writer import ExcelTemplateWriter, excel_filename
from .services.llm import LLMClient
from .services.prompt_manager import PromptManager
from .services.qa import QAEngine
from .services.rate_limiter import RateLimiter
from .services.reconciler import FieldReconciler
from .services.transformer import (
    find_incomplete,
    group_rows,
    project_market,
    rows_from_selection,
    word_origin,
)
from .services.types import (
    AssetRequirement,
    ContentRow,
    ExcelOrigin,
    ParsedExcelTemplate,
    ParsedField,
    ParsedSection,
    ParsedWordDocument,
    ParseMetadata,
    ProjectData,
    UploadedFile,
    WordOrigin,
)
from .services.word_parser import WordDocumentParser
from .services.word_writer import WordTemplateWriter, word_filename

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
WORD_EXTENSIONS = (".docx",)
EXCEL_EXTENSIONS = (".xlsx",)


@dataclass
class CopyEngineServices:
    """Сервисы приложения. Создаются один раз при старте и хранятся в app.state."""
    catalog: DeliverableCatalog
    markets: MarketRegistry
    word_parser: WordDocumentParser
    excel_parser: ExcelTemplateParser
    excel_writer: ExcelTemplateWriter
    word_writer: WordTemplateWriter
    prompts: PromptManager
    rate_limiter: RateLimiter
    qa_engine: Optional[QAEngine] = None


def build_services() -> CopyEngineServices:
    """
    Загружает справочные данные и собирает сервисы по настройкам.

    Raises:
        CatalogIntegrityError: Каталог deliverables некорректен
        FileNotFoundError: Не найден один из файлов данных
    """
    catalog, markets = load_reference_data(settings.CATALOG_PATH, settings.MARKETS_PATH)
    reconciler = FieldReconciler.from_file(
        settings.FIELD_SYNONYMS_PATH,
        low_confidence_threshold=settings.LOW_CONFIDENCE_THRESHOLD,
    )
    return CopyEngineServices(
        catalog=catalog,
        markets=markets,
        word_parser=WordDocumentParser(catalog, reconciler, settings.NUMBERED_SECTION_FALLBACK),
        excel_parser=ExcelTemplateParser(markets),
        excel_writer=ExcelTemplateWriter(settings.PLACEHOLDER_POLICY),
        word_writer=WordTemplateWriter(settings.PLACEHOLDER_POLICY),
        prompts=PromptManager(),
        rate_limiter=RateLimiter(settings.QA_RATE_LIMIT, settings.QA_RATE_WINDOW_SECONDS),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Управление жизненным циклом приложения.
    Загрузка каталога, рынков и сервисов при запуске.
    """
    setup_logging(settings.LOG_LEVEL)
    app.state.services = build_services()
    logger.info(
        "%s %s started: %d deliverables, %d markets",
        settings.APP_NAME, settings.APP_VERSION,
        len(app.state.services.catalog), len(app.state.services.markets),
    )
    yield


# Создаем экземпляр FastAPI приложения
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# Настройка CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_services(request: Request) -> CopyEngineServices:
    return request.app.state.services


def get_qa_engine(services: CopyEngineServices) -> QAEngine:
    """
    QA-движок создается при первом обращении: сервис работает и без ключа LLM.

    Raises:
        QAConfigurationError: OPENAI_API_KEY не задан
    """
    if services.qa_engine is None:
        try:
            settings.validate_llm_config()
        except ValueError as e:
            raise QAConfigurationError(str(e)) from e
        services.qa_engine = QAEngine(
            LLMClient(),
            prompts=services.prompts,
            batch_max_tokens=settings.QA_MAX_TOKENS,
            chat_max_tokens=settings.CHAT_MAX_TOKENS,
        )
    return services.qa_engine


def caller_id(request: Request) -> str:
    """
    Идентификатор вызывающей стороны для ограничения частоты запросов.
    Берется из адреса соединения: заголовки клиента не учитываются.
    """
    return request.client.host if request.client else "anonymous"


def to_http_error(error: CopyEngineError) -> HTTPException:
    """Преобразует исключение сервиса в HTTP-ответ."""
    if isinstance(error, NoFilesParsedError):
        return HTTPException(
            status_code=422,
            detail={
                "message": str(error),
                "failures": [asdict(f) for f in error.failures],
            },
        )
    if isinstance(error, RateLimitExceededError):
        return HTTPException(status_code=429, detail=str(error))
    if isinstance(error, QAResponseError):
        return HTTPException(
            status_code=502,
            detail={"message": str(error), "raw_text": error.raw_text},
        )
    if isinstance(error, (QAConfigurationError, CatalogIntegrityError)):
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


async def read_uploads(
    files: List[UploadFile],
    extensions: Tuple[str, ...],
    max_files: Optional[int] = None,
) -> List[UploadedFile]:
    """
    Читает загруженные файлы в память с проверкой ограничений.

    Raises:
        HTTPException: 400 - нет файлов, слишком много файлов или неверный тип;
            413 - файл больше MAX_UPLOAD_MB
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if max_files is not None and len(files) > max_files:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files: {len(files)} (maximum {max_files})",
        )

    uploaded = []
    for upload in files:
        filename = upload.filename or "upload"
        if not filename.lower().endswith(extensions):
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported file type: {filename} (expected {', '.join(extensions)})",
            )
        content = await upload.read()
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=413,
                detail=f"File {filename} exceeds {settings.MAX_UPLOAD_MB} MB",
            )
        uploaded.append(UploadedFile(filename=filename, content=content))
    return uploaded


def file_response(data: bytes, filename: str, media_type: str) -> StreamingResponse:
    """Возвращает файл как поток с безопасным именем."""
    safe_name = "".join(c for c in filename if c.isalnum() or c in (' ', '-', '_', '.')).strip()
    return StreamingResponse(
        io.BytesIO(data),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{safe_name}"'},
    )


# Модели для API
class FieldModel(BaseModel):
    """Поле разобранного Word-документа."""
    name: str
    content: str = ""
    confidence: float = 1.0
    original_name: Optional[str] = None


class SectionModel(BaseModel):
    deliverable: str
    fields: List[FieldModel] = []


class WordDocumentModel(BaseModel):
    """Разобранный Word-документ одного рынка."""
    filename: str
    market: str
    sections: List[SectionModel] = []
    warnings: List[str] = []

    @classmethod
    def from_document(cls, document: ParsedWordDocument) -> "WordDocumentModel":
        """Создает модель из ParsedWordDocument."""
        return cls(
            filename=document.metadata.filename,
            market=document.market,
            sections=[
                SectionModel(
                    deliverable=section.deliverable,
                    fields=[FieldModel(**asdict(f)) for f in section.fields],
                )
                for section in document.sections
            ],
            warnings=document.metadata.warnings,
        )

    def to_document(self) -> ParsedWordDocument:
        return ParsedWordDocument(
            market=self.market,
            sections=[
                ParsedSection(
                    deliverable=section.deliverable,
                    fields=[ParsedField(**f.model_dump()) for f in section.fields],
                )
                for section in self.sections
            ],
            metadata=ParseMetadata(filename=self.filename, warnings=list(self.warnings)),
        )


class ContentRowModel(BaseModel):
    """Строка широкой формы: поле deliverable по всем рынкам."""
    deliverable: str
    field: str
    content: Dict[str, str] = {}
    missing: List[str] = []

    @classmethod
    def from_row(cls, row: ContentRow) -> "ContentRowModel":
        return cls(
            deliverable=row.deliverable,
            field=row.field,
            content=row.content,
            missing=[m for m in row.content if m in row.missing],
        )

    def to_row(self) -> ContentRow:
        return ContentRow(
            deliverable=self.deliverable,
            field=self.field,
            content=dict(self.content),
            missing=set(self.missing),
        )


class GroupedFieldModel(BaseModel):
    name: str
    content: Dict[str, str] = {}


class GroupedDeliverableModel(BaseModel):
    name: str
    fields: List[GroupedFieldModel] = []


class AssetRequirementModel(BaseModel):
    deliverable: str
    asset_name: str = ""
    width: Optional[Union[int, float, str]] = None
    height: Optional[Union[int, float, str]] = None
    max_file_size: str = ""
    formats: str = ""
    filename_format: str = ""
    notes: str = ""


class ParseFailureModel(BaseModel):
    filename: str
    error: str


class IncompleteCellModel(BaseModel):
    """Ячейка без перевода (row - номер строки во вкладке Copy Template)."""
    row: int
    deliverable: str
    field: str
    market: str
    issue: str


class WordImportResponse(BaseModel):
    """Результат импорта Word-документов. Может быть передан в QA как проект."""
    kind: Literal["word"] = "word"
    markets: List[str]
    rows: List[ContentRowModel]
    documents: List[WordDocumentModel]
    failures: List[ParseFailureModel] = []
    warnings: List[str] = []
    incomplete: List[IncompleteCellModel] = []


class ExcelImportResponse(BaseModel):
    """Результат импорта Excel-шаблона. Может быть передан в QA как проект."""
    kind: Literal["excel"] = "excel"
    project_name: str
    filename: str
    markets: List[str]
    rows: List[ContentRowModel]
    grouped: List[GroupedDeliverableModel] = []
    requirements: List[AssetRequirementModel] = []
    tab_names: List[str] = []
    warnings: List[str] = []
    incomplete: List[IncompleteCellModel] = []

    @classmethod
    def from_template(cls, template: ParsedExcelTemplate) -> "ExcelImportResponse":
        """Создает ответ из ParsedExcelTemplate."""
        return cls(
            project_name=template.project_name,
            filename=template.metadata.filename,
            markets=template.markets,
            rows=[ContentRowModel.from_row(row) for row in template.rows],
            grouped=[
                GroupedDeliverableModel(
                    name=group.name,
                    fields=[GroupedFieldModel(name=f.name, content=f.content) for f in group.fields],
                )
                for group in template.grouped.values()
            ],
            requirements=[AssetRequirementModel(**asdict(r)) for r in template.requirements],
            tab_names=template.metadata.tab_names,
            warnings=template.metadata.warnings,
            incomplete=find_incomplete(template.rows, template.markets),
        )


class WordProjectModel(BaseModel):
    """Проект из Word-документов (kind="word")."""
    kind: Literal["word"]
    markets: List[str] = []
    rows: List[ContentRowModel] = []
    documents: List[WordDocumentModel] = []


class ExcelProjectModel(BaseModel):
    """Проект из Excel-шаблона (kind="excel")."""
    kind: Literal["excel"]
    project_name: str = "Imported_Project"
    filename: str = ""
    markets: List[str] = []
    rows: List[ContentRowModel] = []
    requirements: List[AssetRequirementModel] = []


ProjectPayload = Annotated[Union[WordProjectModel, ExcelProjectModel], Field(discriminator="kind")]


def to_project_data(payload: Optional[ProjectPayload]) -> Optional[ProjectData]:
    """Преобразует проект из запроса в WordOrigin или ExcelOrigin."""
    if payload is None:
        return None

    if isinstance(payload, WordProjectModel):
        documents = [d.to_document() for d in payload.documents]
        if payload.rows or not documents:
            return WordOrigin(
                documents=documents,
                markets=list(payload.markets),
                rows=[r.to_row() for r in payload.rows],
            )
        return word_origin(documents)

    rows = [r.to_row() for r in payload.rows]
    return ExcelOrigin(template=ParsedExcelTemplate(
        markets=list(payload.markets),
        rows=rows,
        grouped=group_rows(rows),
        requirements=[AssetRequirement(**r.model_dump()) for r in payload.requirements],
        project_name=payload.project_name,
        metadata=ParseMetadata(filename=payload.filename or payload.project_name),
    ))


class ExcelTemplateRequest(BaseModel):
    """Запрос на генерацию Excel-шаблона по выбору из каталога."""
    project_name: str = "Marketing_Copy"
    deliverables: List[str]
    markets: List[str]
    lead_market: Optional[str] = None


class WordTemplateRequest(BaseModel):
    """Запрос на генерацию Word-шаблона для одного рынка."""
    deliverables: List[str]
    market: str


class QABatchRequest(BaseModel):
    project: Optional[ProjectPayload] = None


class ChatMessageModel(BaseModel):
    role: str = ""
    content: str = ""


class QAChatRequest(BaseModel):
    project: Optional[ProjectPayload] = None
    message: str
    history: List[ChatMessageModel] = []


@app.get("/health")
async def health_check(request: Request):
    """
    Простой эндпоинт для проверки работы сервиса.
    """
    services = get_services(request)
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "prompts_version": services.prompts.get_version(),
        "llm_configured": bool(settings.OPENAI_API_KEY),
    }


@app.get("/api/v1/catalog")
async def get_catalog(request: Request):
    """Каталог deliverables: секции, поля и требования к ассетам."""
    catalog = get_services(request).catalog
    return {"deliverables": [asdict(d) for d in catalog]}


@app.get("/api/v1/markets")
async def get_markets(request: Request):
    """Реестр рынков, сгруппированный по регионам."""
    registry = get_services(request).markets
    return {
        "total": len(registry),
        "regions": {
            region: [{"code": m.code, "name": m.name, "language": m.language} for m in markets]
            for region, markets in registry.by_region().items()
        },
    }


@app.post("/api/v1/templates/excel")
async def generate_excel_template(body: ExcelTemplateRequest, request: Request):
    """
    Генерирует Excel-шаблон локализации по выбранным deliverables и рынкам.

    Returns:
        StreamingResponse с .xlsx файлом

    Raises:
        HTTPException: 400 при некорректном выборе deliverables или рынков
    """
    services = get_services(request)
    try:
        deliverables = [services.catalog.get(name) for name in body.deliverables]
        markets, rows = rows_from_selection(
            services.catalog, body.deliverables, body.markets, body.lead_market
        )
        data = await asyncio.to_thread(services.excel_writer.write, rows, markets, deliverables)
    except CopyEngineError as e:
        raise to_http_error(e)

    return file_response(data, excel_filename(body.project_name), XLSX_MEDIA_TYPE)


@app.post("/api/v1/templates/word")
async def generate_word_template(body: WordTemplateRequest, request: Request):
    """
    Генерирует Word-шаблон одного рынка по выбранным deliverables.

    Returns:
        StreamingResponse с .docx файлом
    """
    services = get_services(request)
    try:
        _, rows = rows_from_selection(services.catalog, body.deliverables, [body.market])
        sections = project_market(rows, body.market, services.catalog)
        data = await asyncio.to_thread(
            services.word_writer.write, sections, services.markets.resolve(body.market)
        )
    except CopyEngineError as e:
        raise to_http_error(e)

    return file_response(data, word_filename(body.market), DOCX_MEDIA_TYPE)


async def _import_word_files(
    files: List[UploadFile],
    services: CopyEngineServices,
    lead_market: Optional[str],
) -> WordImportResponse:
    uploaded = await read_uploads(files, WORD_EXTENSIONS, settings.MAX_UPLOAD_FILES)
    result = require_parsed(await parse_word_batch(uploaded, services.word_parser))
    project = word_origin(result.parsed, lead_market)

    return WordImportResponse(
        markets=project.markets,
        rows=[ContentRowModel.from_row(row) for row in project.rows],
        documents=[WordDocumentModel.from_document(doc) for doc in result.parsed],
        failures=[ParseFailureModel(**asdict(f)) for f in result.failures],
        warnings=[
            f"{doc.metadata.filename}: {warning}"
            for doc in result.parsed
            for warning in doc.metadata.warnings
        ],
        incomplete=find_incomplete(project.rows, project.markets),
    )


@app.post("/api/v1/import/word", response_model=WordImportResponse)
async def import_word(
    request: Request,
    files: List[UploadFile] = File(...),
    lead_market: Optional[str] = Form(None),
):
    """
    Разбирает Word-документы (по одному на рынок) и возвращает предпросмотр.

    Ошибка разбора отдельного файла не прерывает импорт: такие файлы
    попадают в failures. Если не разобран ни один файл - 422.
    """
    try:
        return await _import_word_files(files, get_services(request), lead_market)
    except CopyEngineError as e:
        raise to_http_error(e)


@app.post("/api/v1/import/word/excel")
async def import_word_to_excel(
    request: Request,
    files: List[UploadFile] = File(...),
    lead_market: Optional[str] = Form(None),
    project_name: str = Form("Imported_Project"),
):
    """
    Конвертирует Word-документы в Excel-шаблон локализации.
    Рынки без поля получают плейсхолдер перевода.
    """
    services = get_services(request)
    try:
        uploaded = await read_uploads(files, WORD_EXTENSIONS, settings.MAX_UPLOAD_FILES)
        result = require_parsed(await parse_word_batch(uploaded, services.word_parser))
        project = word_origin(result.parsed, lead_market)
        data = await asyncio.to_thread(services.excel_writer.write, project.rows, project.markets)
    except CopyEngineError as e:
        raise to_http_error(e)

    for failure in result.failures:
        logger.warning("Skipped %s in Excel export: %s", failure.filename, failure.error)
    return file_response(data, excel_filename(project_name), XLSX_MEDIA_TYPE)


@app.post("/api/v1/import/excel", response_model=ExcelImportResponse)
async def import_excel(request: Request, file: UploadFile = File(...)):
    """
    Разбирает Excel-шаблон и возвращает предпросмотр.

    Raises:
        HTTPException: 400 если файл не читается или структура вкладки неверна
    """
    services = get_services(request)
    try:
        uploaded = (await read_uploads([file], EXCEL_EXTENSIONS))[0]
        template = await asyncio.to_thread(services.excel_parser.parse, uploaded)
    except CopyEngineError as e:
        raise to_http_error(e)

    return ExcelImportResponse.from_template(template)


@app.post("/api/v1/import/excel/word")
async def import_excel_to_word(
    request: Request,
    file: UploadFile = File(...),
    market: str = Query(..., description="Код рынка, для которого генерируется документ"),
):
    """
    Конвертирует Excel-шаблон в Word-документ одного рынка.

    Один запрос возвращает один документ. Для всех рынков клиент вызывает
    endpoint по очереди для каждого кода из template.markets, полученного
    через /api/v1/import/excel.

    Raises:
        HTTPException: 400 если рынка нет среди колонок шаблона
    """
    services = get_services(request)
    try:
        uploaded = (await read_uploads([file], EXCEL_EXTENSIONS))[0]
        template = await asyncio.to_thread(services.excel_parser.parse, uploaded)
        if market not in template.markets:
            raise HTTPException(
                status_code=400,
                detail=f"Market {market!r} not found in template (available: {', '.join(template.markets)})",
            )
        sections = project_market(template.rows, market, services.catalog)
        data = await asyncio.to_thread(
            services.word_writer.write, sections, services.markets.resolve(market)
        )
    except CopyEngineError as e:
        raise to_http_error(e)

    return file_response(data, word_filename(market), DOCX_MEDIA_TYPE)


@app.post("/api/v1/qa/batch")
async def qa_batch(body: QABatchRequest, request: Request) -> Dict[str, Any]:
    """
    Пакетная QA-проверка копирайта проекта.

    Returns:
        Отчет {issues: [...], summary: {...}}

    Raises:
        HTTPException: 429 при превышении лимита, 502 при некорректном ответе LLM,
            500 если LLM не настроен
    """
    services = get_services(request)
    try:
        engine = get_qa_engine(services)
        services.rate_limiter.hit(caller_id(request))
        return await engine.run_batch(to_project_data(body.project))
    except CopyEngineError as e:
        raise to_http_error(e)
    except RuntimeError as e:
        logger.error("QA batch request failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/api/v1/qa/chat")
async def qa_chat(body: QAChatRequest, request: Request):
    """
    Чат с QA-ассистентом о копирайте проекта.
    Ответ транслируется по мере генерации (text/plain).
    """
    services = get_services(request)
    try:
        engine = get_qa_engine(services)
        services.rate_limiter.hit(caller_id(request))
    except CopyEngineError as e:
        raise to_http_error(e)

    chunks = engine.chat(
        to_project_data(body.project),
        body.message,
        [h.model_dump() for h in body.history],
    )

    # Первый фрагмент запрашивается до начала ответа, чтобы ошибка LLM вернулась статусом
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = ""
    except RuntimeError as e:
        logger.error("QA chat request failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    async def stream():
        if first:
            yield first
        async for chunk in chunks:
            yield chunk

    return StreamingResponse(stream(), media_type="text/plain; charset=utf-8")


if __name__ == "__main__":
    # Запуск сервера через Uvicorn
    uvicorn.run(
        "copy_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,  # Автоперезагрузка в режиме отладки
    )
