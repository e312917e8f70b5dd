from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Protocol

from hadiscovery.normalizer import decode_payload
from hadiscovery.registry import Device, DeviceRegistry, DiscoveryError, decode_discovery
from hadiscovery.resolver import ValueResolver
from hadiscovery.topics import build_topic, is_discovery_topic

LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 0.5
DEFAULT_TIMEOUT_SEC = 5.0

DevicesCallback = Callable[[list[Device]], None]
MessageHandler = Callable[[str, bytes], None]


class MessageBus(Protocol):
    def subscribe(self, topic: str, qos: int = 0) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...

    def add_message_handler(self, handler: MessageHandler) -> None: ...

    def remove_message_handler(self, handler: MessageHandler) -> None: ...


class ScanTimeoutError(TimeoutError):
    pass


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class ScanOrchestrator:
    """Collects discovery messages into the registry.

    The discovery stream has no end marker: a scan completes once at least
    one discovery message arrived and a whole poll interval passed without a
    new one, or when the timeout expires. Timer callbacks carry the scan
    generation they were started for and are ignored once a newer scan (or a
    cancel) has bumped it.
    """

    def __init__(
        self,
        bus: MessageBus,
        registry: DeviceRegistry,
        resolver: ValueResolver,
        discovery_prefix: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        on_error: Callable[[Exception], None] | None = None,
        timer_factory: Callable[[float, Callable[[], None]], Any] | None = None,
        lock: threading.RLock | None = None,
    ):
        self._bus = bus
        self._registry = registry
        self._resolver = resolver
        self._prefix = discovery_prefix
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._on_error = on_error
        self._timer_factory = timer_factory or _daemon_timer
        self._lock = lock or threading.RLock()

        self._state = ScanState.IDLE
        self._generation = 0
        self._count = 0
        self._last_count = 0
        self._callbacks: list[DevicesCallback] = []
        self._watchdog: Any = None
        self._timeout_timer: Any = None
        self._subscribed = False

    @property
    def wildcard(self) -> str:
        return build_topic(self._prefix, "/#")

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    @property
    def scanning(self) -> bool:
        return self.state == ScanState.SCANNING

    @property
    def message_count(self) -> int:
        with self._lock:
            return self._count

    def get_devices(self, callback: DevicesCallback | None = None, refresh: bool = False) -> list[Device] | None:
        with self._lock:
            if self._state == ScanState.SCANNING:
                if callback is not None:
                    self._callbacks.append(callback)
                if refresh:
                    LOGGER.info("Scansione in corso, riavvio richiesto")
                    self._start_locked()
                return None

            if refresh or len(self._registry) == 0:
                if callback is not None:
                    self._callbacks.append(callback)
                self._start_locked()
                return None

            LOGGER.info("MQTT cache devices ...")
            devices = self._registry.devices()

        if callback is not None:
            callback(devices)
        return devices

    def cancel(self) -> None:
        with self._lock:
            if self._state != ScanState.SCANNING:
                return
            self._release_locked()
            self._generation += 1
            self._callbacks = []
            self._state = ScanState.IDLE
        LOGGER.info("Scansione dispositivi annullata")

    def _start_locked(self) -> None:
        LOGGER.info("MQTT fetch devices ...")
        self._cancel_timers_locked()

        self._registry.clear()
        self._generation += 1
        self._count = 0
        self._last_count = 0
        self._state = ScanState.SCANNING

        if not self._subscribed:
            self._bus.add_message_handler(self._handle_discovery)
            self._subscribed = True
        # a restart may follow a reconnect with a clean session, and the broker
        # only replays retained discovery configs on a fresh subscribe
        self._bus.subscribe(self.wildcard)

        generation = self._generation
        self._schedule_poll_locked(generation)
        self._timeout_timer = self._timer_factory(self._timeout, lambda: self._handle_timeout(generation))
        self._timeout_timer.start()

    def _schedule_poll_locked(self, generation: int) -> None:
        self._watchdog = self._timer_factory(self._poll_interval, lambda: self._handle_poll(generation))
        self._watchdog.start()

    def _cancel_timers_locked(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        if self._timeout_timer is not None:
            self._timeout_timer.cancel()
            self._timeout_timer = None

    def _release_locked(self) -> None:
        self._cancel_timers_locked()
        if self._subscribed:
            self._bus.unsubscribe(self.wildcard)
            self._bus.remove_message_handler(self._handle_discovery)
            self._subscribed = False

    def _finish_locked(self, state: ScanState) -> tuple[list[DevicesCallback], list[Device]]:
        self._release_locked()
        self._generation += 1
        self._state = state
        callbacks = self._callbacks
        self._callbacks = []
        return callbacks, self._registry.devices()

    def _handle_discovery(self, topic: str, payload: bytes) -> None:
        if not is_discovery_topic(topic, self._prefix):
            return

        with self._lock:
            if self._state != ScanState.SCANNING:
                return
            self._count += 1

            decoded = decode_payload(payload)
            try:
                device = decode_discovery(topic, decoded, self._prefix)
            except DiscoveryError as exc:
                LOGGER.warning("Discovery scartata su %s: %s", topic, exc)
                return

            if device is None:
                if not isinstance(decoded, dict):
                    self._registry.remove(topic)
                return

            self._resolver.refresh(device)
            self._registry.add(device)

    def _handle_poll(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state != ScanState.SCANNING:
                return
            if self._count == 0 or self._count != self._last_count:
                self._last_count = self._count
                self._schedule_poll_locked(generation)
                return
            callbacks, devices = self._finish_locked(ScanState.COMPLETE)

        LOGGER.info("Scansione completata: %d dispositivi", len(devices))
        self._notify(callbacks, devices)

    def _handle_timeout(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state != ScanState.SCANNING:
                return
            callbacks, devices = self._finish_locked(ScanState.TIMED_OUT)

        LOGGER.error('Error: getDevices timeout, unsubscribe "%s"', self.wildcard)
        if self._on_error is not None:
            self._on_error(ScanTimeoutError(f"Scansione discovery scaduta dopo {self._timeout}s"))
        self._notify(callbacks, devices)

    def _notify(self, callbacks: list[DevicesCallback], devices: list[Device]) -> None:
        for callback in callbacks:
            try:
                callback(devices)
            except Exception:
                LOGGER.exception("Errore callback dispositivi")
