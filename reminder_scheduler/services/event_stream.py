"""FiredEventStream - 発火イベントの購読"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

from reminder_scheduler.domain.models import FiredEvent

logger = logging.getLogger(__name__)

FiredListener = Callable[[FiredEvent], None]


class FiredEventStream:
    """
    Coordinator が公開する fired ストリーム。

    - subscribe(listener): コールバック購読。戻り値を呼ぶと購読解除
    - listen(): async for で受け取るイテレータ

    購読者の例外はログに残すだけで、プラットフォームのコールバックには伝播させない。
    """

    def __init__(self) -> None:
        self._listeners: list[FiredListener] = []
        self._queues: list[asyncio.Queue[FiredEvent]] = []

    def subscribe(self, listener: FiredListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def listen(self) -> AsyncIterator[FiredEvent]:
        queue: asyncio.Queue[FiredEvent] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._queues.remove(queue)

    def publish(self, event: FiredEvent) -> None:
        logger.info(
            "Reminder fired: reminder_id=%s, source=%s",
            event.reminder_id,
            event.source.value,
            extra={"reminder_id": event.reminder_id},
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Fired listener failed: reminder_id=%s", event.reminder_id
                )
        for queue in self._queues:
            queue.put_nowait(event)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._queues)
