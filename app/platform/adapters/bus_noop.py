import json
import logging
from app.platform.ports.event_bus import EventBusPort

log = logging.getLogger("bus.noop")

class NoopEventBus(EventBusPort):
    """Logs events instead of shipping them; the default outside production."""

    def __init__(self):
        self.published = 0

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        self.published += 1
        log.info(f"[NOOP BUS] #{self.published} {value.get('event_type')} key={key} topic={topic} value={json.dumps(value, default=str)}")

    async def close(self) -> None:
        log.debug(f"[NOOP BUS] closed after {self.published} event(s)")
