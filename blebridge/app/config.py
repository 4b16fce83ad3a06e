# blebridge/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

import yaml

from blebridge.core.errors import ConfigError
from blebridge.model.reading import normalize_address

DEFAULT_RETRY_BACKOFF_S = 60.0
SINK_KINDS = ("database", "http", "log")


@dataclass(frozen=True)
class MonitorConfig:
    addresses: Tuple[str, ...]
    adapter: str = "hci0"


@dataclass(frozen=True)
class SinkConfig:
    kind: str = "log"
    target: Optional[str] = None   # connection URL (database) or base URL (http)
    table: str = "govee"
    resource: str = "govee"
    timeout_s: float = 10.0


@dataclass(frozen=True)
class ForwardingConfig:
    retry_backoff_s: float = DEFAULT_RETRY_BACKOFF_S
    backlog_warn_every: int = 1000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass(frozen=True)
class BridgeConfig:
    monitor: MonitorConfig
    sink: SinkConfig = field(default_factory=SinkConfig)
    forwarding: ForwardingConfig = field(default_factory=ForwardingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def with_overrides(self, *, log_level: Optional[str] = None, dry_run: bool = False) -> "BridgeConfig":
        cfg = self
        if log_level:
            cfg = replace(cfg, logging=replace(cfg.logging, level=log_level.upper()))
        if dry_run:
            cfg = replace(cfg, sink=replace(cfg.sink, kind="log"))
        return cfg


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------

def load_config(path: str | Path) -> BridgeConfig:
    """Load and validate a YAML config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", details={"path": str(path)})

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            "Config file is not valid YAML.",
            hint=str(e),
            details={"path": str(path)},
        ) from None

    return parse_config(data)


def parse_config(data: Any) -> BridgeConfig:
    if not isinstance(data, Mapping):
        raise ConfigError("Config root must be a mapping.")

    return BridgeConfig(
        monitor=_parse_monitor(_section(data, "monitor", required=True)),
        sink=_parse_sink(_section(data, "sink")),
        forwarding=_parse_forwarding(_section(data, "forwarding")),
        logging=_parse_logging(_section(data, "logging")),
    )


def _section(data: Mapping, name: str, *, required: bool = False) -> Mapping:
    node = data.get(name)
    if node is None:
        if required:
            raise ConfigError(f"Config is missing '{name}' section.", details={"key": name})
        return {}
    if not isinstance(node, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping.", details={"key": name})
    return node


def _parse_monitor(node: Mapping) -> MonitorConfig:
    raw = node.get("addresses")
    if not isinstance(raw, list) or not raw:
        raise ConfigError(
            "monitor.addresses must be a non-empty list.",
            hint="List the hardware addresses of the sensors to watch.",
            details={"key": "monitor.addresses"},
        )

    addresses = []
    for a in raw:
        try:
            addr = normalize_address(a)
        except ValueError as e:
            raise ConfigError(str(e), details={"key": "monitor.addresses", "value": a}) from None
        if addr not in addresses:
            addresses.append(addr)

    adapter = str(node.get("adapter", "hci0"))
    return MonitorConfig(addresses=tuple(addresses), adapter=adapter)


def _parse_sink(node: Mapping) -> SinkConfig:
    kind = str(node.get("kind", "log")).lower()
    if kind not in SINK_KINDS:
        raise ConfigError(
            f"Unknown sink kind '{kind}'.",
            hint=f"Use one of: {', '.join(SINK_KINDS)}.",
            details={"key": "sink.kind"},
        )

    target = node.get("target")
    if kind != "log" and not target:
        raise ConfigError(
            f"sink.target is required for sink kind '{kind}'.",
            details={"key": "sink.target"},
        )

    return SinkConfig(
        kind=kind,
        target=str(target) if target else None,
        table=str(node.get("table", "govee")),
        resource=str(node.get("resource", "govee")),
        timeout_s=_positive_float(node, "timeout_s", 10.0, key="sink.timeout_s"),
    )


def _parse_forwarding(node: Mapping) -> ForwardingConfig:
    backoff = _positive_float(node, "retry_backoff_s", DEFAULT_RETRY_BACKOFF_S, key="forwarding.retry_backoff_s")

    warn_every = node.get("backlog_warn_every", 1000)
    if isinstance(warn_every, bool) or not isinstance(warn_every, int) or warn_every < 0:
        raise ConfigError(
            "forwarding.backlog_warn_every must be a non-negative integer.",
            details={"key": "forwarding.backlog_warn_every"},
        )
    return ForwardingConfig(retry_backoff_s=backoff, backlog_warn_every=warn_every)


def _parse_logging(node: Mapping) -> LoggingConfig:
    level = str(node.get("level", "INFO")).upper()
    file = node.get("file")
    return LoggingConfig(level=level, file=str(file) if file else None)


def _positive_float(node: Mapping, name: str, default: float, *, key: str) -> float:
    value = node.get(name, default)
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number.", details={"key": key}) from None
    if parsed <= 0:
        raise ConfigError(f"{key} must be > 0.", details={"key": key})
    return parsed
