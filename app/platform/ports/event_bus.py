from typing import Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Where the outbox relay hands booking events after commit."""

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None: ...

    async def close(self) -> None: ...
