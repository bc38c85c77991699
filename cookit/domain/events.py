"""Domain event dispatch."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, Iterable, Mapping

EventPayload = Mapping[str, Any]
EventListener = Callable[[EventPayload], Awaitable[None]]

PACK_OPENED = "pack.opened"
CLAIM_GRANTED = "claim.granted"
ITEM_SOLD = "item.sold"
TRADE_CREATED = "trade.created"
TRADE_ACCEPTED = "trade.accepted"
TRADE_DECLINED = "trade.declined"
ACCOUNT_REGISTERED = "account.registered"


class EventBus:
    """Async pub-sub; listeners run in subscription order after a write commits."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            await listener(payload)

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, event_name: str) -> Iterable[EventListener]:
        return tuple(self._listeners.get(event_name, ()))
