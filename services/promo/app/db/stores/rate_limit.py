"""
요청 제한(rate limit) 카운터 저장소
키(엔드포인트 + 클라이언트 IP)별로 고정 윈도우 카운터를 유지합니다.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, int(self.reset_at - now + 0.999))


class RateLimitStorePort(Protocol):
    def now(self) -> float: ...

    async def hit(self, key: str, window_seconds: int) -> RateLimitWindow:
        """요청 1건을 기록하고 현재 윈도우 상태를 반환합니다."""
        ...


class InMemoryRateLimitStore(RateLimitStorePort):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, RateLimitWindow] = {}
        self._next_sweep_at = 0.0

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    async def hit(self, key: str, window_seconds: int) -> RateLimitWindow:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                self._sweep_expired(now, window_seconds)
                window = RateLimitWindow(count=0, reset_at=now + window_seconds)
                self._windows[key] = window
            window.count += 1
            return RateLimitWindow(count=window.count, reset_at=window.reset_at)

    def _sweep_expired(self, now: float, window_seconds: int) -> None:
        """새 윈도우를 만들 때 만료된 윈도우를 정리합니다. 윈도우 길이 간격으로 한 번만 수행합니다."""
        if now < self._next_sweep_at:
            return
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]
        self._next_sweep_at = now + window_seconds
