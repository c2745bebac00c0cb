"""
Ограничение частоты запросов к QA-ассистенту.
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .errors import RateLimitExceededError


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Счетчик запросов по идентификатору вызывающей стороны с фиксированным окном.

    Экземпляр принадлежит приложению и передается явно; clock подменяется в тестах.
    """

    def __init__(
        self,
        max_requests: int = 20,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: Dict[str, _Window] = {}

    def check(self, key: str = "anonymous") -> bool:
        """
        Регистрирует запрос и сообщает, укладывается ли он в лимит.
        Отклоненный запрос не увеличивает счетчик.
        """
        now = self.clock()
        self._prune(now)
        window = self._windows.get(key)
        if window is None or now > window.reset_at:
            window = self._windows[key] = _Window(count=0, reset_at=now + self.window_seconds)

        if window.count >= self.max_requests:
            return False

        window.count += 1
        return True

    def _prune(self, now: float) -> None:
        # Истекшие окна удаляются, иначе словарь растет с каждым новым ключом
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]

    def hit(self, key: str = "anonymous") -> None:
        """
        Raises:
            RateLimitExceededError: Лимит для key исчерпан в текущем окне
        """
        if not self.check(key):
            raise RateLimitExceededError("Rate limit exceeded. Please try again later.")

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)
