"""
Конфигурация приложения.
Загрузка переменных окружения из .env файла.
"""
import os
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

# Загружаем переменные окружения из .env файла
load_dotenv()

# Каталог со статическими данными (каталог deliverables, рынки, синонимы, промпты)
DATA_DIR = Path(__file__).resolve().parent / "data"

PLACEHOLDER_POLICIES = ("missing", "blank")


class Settings:
    """Настройки приложения."""

    # Настройки приложения
    APP_NAME: str = os.getenv("APP_NAME", "Copy Engine")
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Разрешенные источники для CORS (через запятую)
    _cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    # LLM (OpenAI-compatible API) для QA-ассистента
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    QA_MAX_TOKENS: int = int(os.getenv("QA_MAX_TOKENS", "4000"))
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "2000"))

    # Ограничение частоты QA-запросов: не более QA_RATE_LIMIT за окно в секундах
    QA_RATE_LIMIT: int = int(os.getenv("QA_RATE_LIMIT", "20"))
    QA_RATE_WINDOW_SECONDS: float = float(os.getenv("QA_RATE_WINDOW_SECONDS", "3600"))

    # Политика плейсхолдеров при экспорте:
    # "missing" - плейсхолдер только для ячеек, которых не было в источнике
    # "blank"   - плейсхолдер также для пустых, но присутствующих ячеек
    PLACEHOLDER_POLICY: str = os.getenv("PLACEHOLDER_POLICY", "missing").lower()

    # Сверка названий полей с каталогом
    LOW_CONFIDENCE_THRESHOLD: float = float(os.getenv("LOW_CONFIDENCE_THRESHOLD", "0.8"))
    NUMBERED_SECTION_FALLBACK: bool = os.getenv("NUMBERED_SECTION_FALLBACK", "true").lower() == "true"

    # Пути к статическим данным
    CATALOG_PATH: Path = Path(os.getenv("CATALOG_PATH", str(DATA_DIR / "deliverables.yaml")))
    MARKETS_PATH: Path = Path(os.getenv("MARKETS_PATH", str(DATA_DIR / "markets.yaml")))
    FIELD_SYNONYMS_PATH: Path = Path(os.getenv("FIELD_SYNONYMS_PATH", str(DATA_DIR / "field_synonyms.yaml")))
    PROMPTS_PATH: Path = Path(os.getenv("PROMPTS_PATH", str(DATA_DIR / "prompts.yaml")))

    # Ограничения на загрузку файлов
    MAX_UPLOAD_FILES: int = int(os.getenv("MAX_UPLOAD_FILES", "20"))
    MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "10"))

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Список разрешенных источников для CORS."""
        return [origin.strip() for origin in self._cors_origins.split(",") if origin.strip()]

    @property
    def MAX_UPLOAD_BYTES(self) -> int:
        """Максимальный размер одного загружаемого файла в байтах."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    def validate_llm_config(self) -> None:
        """
        Проверяет, что настройки LLM заданы.
        Вызывает ValueError с понятным сообщением, если ключ API не указан.
        """
        if not self.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY not configured. Set it in the environment or .env file:\n"
                "OPENAI_API_KEY=sk-...\n"
                "OPENAI_BASE_URL=https://api.openai.com/v1  # optional, any OpenAI-compatible API\n"
                "LLM_MODEL=gpt-4o-mini  # optional"
            )


# Глобальный экземпляр настроек
settings = Settings()

# Проверяем конфигурацию при импорте (только предупреждение, не ошибка)
if settings.PLACEHOLDER_POLICY not in PLACEHOLDER_POLICIES:
    import warnings
    warnings.warn(
        f"PLACEHOLDER_POLICY={settings.PLACEHOLDER_POLICY!r} не поддерживается, используется 'missing'.",
        UserWarning
    )
    settings.PLACEHOLDER_POLICY = "missing"
