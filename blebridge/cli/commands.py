# blebridge/cli/commands.py
from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import Optional

from blebridge.app.config import BridgeConfig, load_config
from blebridge.app.service import BridgeService
from blebridge.common.logging import configure_logging
from blebridge.core.errors import ConfigError, ReadingDecodeError
from blebridge.model.advertisement import decode_vendor_payload
from blebridge.sinks.registry import SinkRegistry


# ---------------- Helpers ----------------

def parse_hex(text: str) -> bytes:
    cleaned = "".join(ch for ch in text if ch not in " :-")
    try:
        return bytes.fromhex(cleaned)
    except ValueError:
        raise ConfigError(f"Not a hex string: '{text}'") from None


def install_stop_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, frame) -> None:
        logging.getLogger(__name__).info("SIGNAL_RECEIVED signum=%d", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def print_config(cfg: BridgeConfig) -> None:
    print(f"Adapter:   {cfg.monitor.adapter}")
    print(f"Devices:   {len(cfg.monitor.addresses)}")
    for a in cfg.monitor.addresses:
        print(f"  - {a}")
    target = cfg.sink.target or "-"
    print(f"Sink:      {cfg.sink.kind} target={target}")
    print(f"Backoff:   {cfg.forwarding.retry_backoff_s:.1f}s")
    print(f"Log level: {cfg.logging.level}")


# ---------------- Commands ----------------

def cmd_decode(args: argparse.Namespace) -> int:
    data = parse_hex(args.payload)
    try:
        p = decode_vendor_payload(data)
    except ReadingDecodeError as e:
        print(f"ERROR: {e.message}")
        return 1

    print(f"Temperature: {p.temperature_celsius:.4f} C")
    print(f"Humidity:    {p.humidity_percent:.1f} %")
    print(f"Battery:     {p.battery_percent} %")
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    print_config(cfg)
    return 0


def cmd_run(
    args: argparse.Namespace,
    *,
    stop_event: Optional[threading.Event] = None,
    broker=None,
    registry: Optional[SinkRegistry] = None,
) -> int:
    cfg = load_config(args.config).with_overrides(log_level=args.log_level, dry_run=args.dry_run)
    configure_logging(cfg.logging.level, log_file=Path(cfg.logging.file) if cfg.logging.file else None)
    log = logging.getLogger(__name__)

    stop_event = stop_event or threading.Event()
    if threading.current_thread() is threading.main_thread():
        install_stop_handlers(stop_event)

    sink = (registry or SinkRegistry.default()).create(cfg.sink)

    owns_broker = broker is None
    if owns_broker:
        # Imported here so 'decode' and tests work without D-Bus bindings.
        from blebridge.broker.bluez import BluezBroker

        broker = BluezBroker(cfg.monitor.adapter)
        try:
            broker.open()
        except Exception:
            sink.close()
            raise

    service = BridgeService(cfg, broker=broker, sink=sink)
    try:
        service.start()
        log.info("BRIDGE_RUNNING (Ctrl+C to stop)")
        stop_event.wait()
    finally:
        service.stop(timeout=cfg.forwarding.retry_backoff_s)
        if owns_broker:
            broker.close()

    st = service.status()
    log.info(
        "BRIDGE_SUMMARY delivered=%d dropped=%d retries=%d backlog=%d",
        st.writer.delivered,
        st.writer.dropped,
        st.writer.retries,
        st.queue_depth,
    )
    return 0
