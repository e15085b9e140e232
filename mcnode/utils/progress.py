import asyncio
from typing import AsyncIterator, Awaitable, Callable


Say = Callable[[str], Awaitable[None]]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Progress():
    """
    Turns weighted pipeline segments into "<pct>% <label>" lines.

    base is the weight of every finished segment, a segment started
    with start() covers [base, base + weight]. The percentage sent to
    say never goes down and never passes 100.
    """

    def __init__(self, say: Say):
        self.say = say
        self.base = 0.0
        self.seg_start = 0.0
        self.seg_weight = 0.0
        self.last_pct = 0

    def _pct(self, value: float) -> int:
        pct = min(100, max(self.last_pct, round(value * 100)))
        self.last_pct = pct
        return pct

    async def start(self, weight: float, label: str | None = None):
        self.seg_start = self.base
        self.seg_weight = clamp(weight)
        if label:
            await self.emit(0, label)

    async def emit(self, ratio: float, label: str):
        value = self.seg_start + self.seg_weight * clamp(ratio)
        await self.say(f"{self._pct(value)}% {label}")

    async def end(self, label: str | None = None):
        self.base = min(1.0, self.seg_start + self.seg_weight)
        self.seg_start = self.base
        self.seg_weight = 0.0
        if label:
            await self.say(f"{self._pct(self.base)}% {label}")


class ProgressChannel():
    """
    Bounded queue between a producing pipeline task and one consumer.
    close() marks the end of the stream.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 64):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def put(self, line: str):
        await self.queue.put(line)

    async def close(self):
        await self.queue.put(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self.queue.get()
            if item is self._CLOSED:
                return
            yield item
