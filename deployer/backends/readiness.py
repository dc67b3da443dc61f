# deployer/backends/readiness.py

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

from ..types import LocalHandle


class ReadinessProbe(ABC):
    """Predicate polled by the local driver until an engine is ready"""

    @abstractmethod
    async def check(self, handle: LocalHandle) -> bool:
        pass


class PortProbe(ReadinessProbe):
    """Ready once the engine accepts TCP connections on its port"""

    def __init__(self, host: str = "127.0.0.1", connect_timeout: float = 1.0):
        self.host = host
        self.connect_timeout = connect_timeout

    async def check(self, handle: LocalHandle) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, handle.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True


class LogMarkerProbe(ReadinessProbe):
    """Ready once a marker line appears in the engine log"""

    def __init__(self, marker: str):
        self.marker = marker

    async def check(self, handle: LocalHandle) -> bool:
        log_path = Path(handle.log_path)
        if not log_path.exists():
            return False
        content = log_path.read_text(encoding='utf-8', errors='replace')
        return self.marker in content


def create_probe(kind: str, host: str = "127.0.0.1", marker: str = "") -> ReadinessProbe:
    if kind == "port":
        return PortProbe(host=host)
    if kind == "log":
        if not marker:
            raise ValueError("Log readiness probe requires a marker")
        return LogMarkerProbe(marker)
    raise ValueError(f"Unknown readiness probe {kind!r}, expected 'port' or 'log'")
