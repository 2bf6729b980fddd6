"""Wall-clock implementation of the Clock port."""
from __future__ import annotations

import asyncio
import time


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep_ms(self, ms: int) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)
