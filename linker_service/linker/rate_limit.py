"""Ограничение частоты запросов по ключу клиента (обычно IP).

Окно сбрасывается, когда с его начала прошло больше ``window``: счетчик
становится равным 1. Это приближение, а не скользящий журнал: серия
запросов на границе двух окон может пропустить до ``2 * limit - 1``
запросов подряд.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from linker.utils import utcnow

logger = logging.getLogger(__name__)

@dataclass
class RateWindow:
    count: int
    window_start: datetime
    last_request: datetime
    window: timedelta

class RateLimiter:
    """Счетчики запросов в памяти процесса, защищенные одной блокировкой"""

    def __init__(self):
        self._clients: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def admit(self, client_key: str, limit: int, window: timedelta, now: Optional[datetime] = None) -> bool:
        """Пропускает запрос (True) или отклоняет его (False)"""
        now = now or utcnow()

        with self._lock:
            entry = self._clients.get(client_key)

            if entry is None or now - entry.window_start > window:
                self._clients[client_key] = RateWindow(count=1, window_start=now, last_request=now, window=window)
                return True

            entry.last_request = now
            entry.window = window

            if entry.count >= limit:
                return False

            entry.count += 1
            return True

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Удаляет клиентов, неактивных дольше своего окна"""
        now = now or utcnow()

        with self._lock:
            stale = [key for key, entry in self._clients.items() if now - entry.last_request > entry.window]
            for key in stale:
                del self._clients[key]

        if stale:
            logger.info("Удалено %d неактивных записей лимитера", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
