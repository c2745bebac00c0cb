"""
Клиент LLM для QA-ассистента.
Работает с любым OpenAI-compatible API.
"""
from typing import AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from ..config import settings


class LLMClient:
    """
    Клиент для работы с LLM.
    Поддерживает обычную генерацию и потоковый чат.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ):
        """Инициализация клиента."""
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.base_url = base_url or settings.OPENAI_BASE_URL
        self.llm_model = model or settings.LLM_MODEL

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url
        )

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Генерирует текст с помощью LLM.

        Args:
            system_prompt: Системный промпт (инструкции для модели)
            user_prompt: Пользовательский промпт (контекст и запрос)
            temperature: Температура генерации (0.0-1.0)
            max_tokens: Максимальное количество токенов в ответе

        Returns:
            Сгенерированный текст

        Raises:
            RuntimeError: Если произошла ошибка при генерации
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.llm_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                temperature=temperature,
                max_tokens=max_tokens
            )

            return response.choices[0].message.content or ""
        except Exception as e:
            raise RuntimeError(f"LLM request failed: {str(e)}") from e

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None
    ) -> AsyncIterator[str]:
        """
        Потоковая генерация ответа в чате.

        Args:
            messages: История сообщений [{role, content}]
            temperature: Температура генерации
            max_tokens: Максимальное количество токенов в ответе

        Yields:
            Фрагменты текста по мере поступления
        """
        try:
            stream = await self.client.chat.completions.create(
                model=self.llm_model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True
            )
        except Exception as e:
            raise RuntimeError(f"LLM request failed: {str(e)}") from e

        async for chunk in stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                yield text
