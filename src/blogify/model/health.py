import asyncio


class HealthGauge:
    """
    Error-burst tracker backing the readiness probe.

    Every unexpected request failure bumps the counter; the background ticker
    decays it by one each second. While the counter sits above the threshold,
    ``is_healthy`` returns False and ``/internal/ready`` answers 503.
    """

    def __init__(self, value: int = 0, health_threshold: int = 100) -> None:
        self._value = value
        self._health_threshold = health_threshold
        self._lock = asyncio.Lock()

    async def record_error(self, weight: int = 1) -> int:
        async with self._lock:
            self._value += int(weight)
            return self._value

    async def tick(self) -> None:
        async with self._lock:
            if self._value > 0:
                self._value -= 1

    async def is_healthy(self) -> bool:
        async with self._lock:
            return self._value <= self._health_threshold

    @property
    def value(self) -> int:
        return self._value
