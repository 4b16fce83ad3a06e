# blebridge/sinks/registry.py
from __future__ import annotations

from typing import Callable, Dict

from blebridge.app.config import SinkConfig
from blebridge.core.errors import ConfigError
from blebridge.interfaces.reading_sink import ReadingSink

from .database import DatabaseSink
from .http import HttpSink
from .log import LogSink

SinkFactory = Callable[[SinkConfig], ReadingSink]


def _database(cfg: SinkConfig) -> ReadingSink:
    return DatabaseSink.from_url(cfg.target or "", table=cfg.table)


def _http(cfg: SinkConfig) -> ReadingSink:
    return HttpSink(cfg.target or "", resource=cfg.resource, timeout_s=cfg.timeout_s)


def _log(cfg: SinkConfig) -> ReadingSink:
    return LogSink()


class SinkRegistry:
    """
    Maps sink kind keys -> factories building a concrete ReadingSink.

    Exactly one sink is active per process.
    """

    def __init__(self, factories: Dict[str, SinkFactory]):
        # normalize keys to be case-insensitive
        self._factories: Dict[str, SinkFactory] = {k.lower(): v for k, v in factories.items()}

    @classmethod
    def default(cls) -> "SinkRegistry":
        return cls(
            factories={
                "database": _database,
                "http": _http,
                "log": _log,
            }
        )

    def has(self, kind: str) -> bool:
        return kind.lower() in self._factories

    def create(self, cfg: SinkConfig) -> ReadingSink:
        key = cfg.kind.lower()
        if key not in self._factories:
            raise ConfigError(
                f"Sink kind '{cfg.kind}' not registered.",
                details={"kind": cfg.kind, "known": sorted(self._factories)},
            )
        return self._factories[key](cfg)
