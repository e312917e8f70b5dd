from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from hadiscovery.models import AppConfig
from hadiscovery.mqtt_bridge import MqttBridge
from hadiscovery.normalizer import decode_payload
from hadiscovery.registry import Device, DeviceRegistry
from hadiscovery.resolver import ValueResolver
from hadiscovery.scanner import DevicesCallback, ScanOrchestrator, ScanState
from hadiscovery.topics import is_discovery_topic

LOGGER = logging.getLogger(__name__)

ALL_TOPICS = "#"


class DiscoveryService:
    """Owns the device registry and keeps it in sync with the broker.

    On every (re)connect a refresh scan rebuilds the registry; once it is
    done the service subscribes to every topic and re-resolves the devices
    that reference each incoming state or availability topic.
    """

    def __init__(
        self,
        config: AppConfig,
        bus: Any = None,
        on_device_changed: Callable[[Device], None] | None = None,
        timer_factory: Callable[[float, Callable[[], None]], Any] | None = None,
    ):
        self._config = config
        self._external_bus = bus
        self._on_device_changed = on_device_changed
        self._timer_factory = timer_factory
        self._lock = threading.RLock()

        self._running = False
        self._bus: Any = None
        self._scanner: ScanOrchestrator | None = None

        self._registry = DeviceRegistry()
        self._resolver = ValueResolver()
        self.last_error: Exception | None = None

    @property
    def config(self) -> AppConfig:
        with self._lock:
            return self._config

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def devices(self) -> list[Device]:
        with self._lock:
            return self._registry.devices()

    @property
    def scan_state(self) -> ScanState:
        with self._lock:
            if self._scanner is None:
                return ScanState.IDLE
            return self._scanner.state

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if not self._config.mqtt.host:
                LOGGER.warning("Broker MQTT non configurato, discovery disattivata")
                return
            self._running = True
            self._start_components_locked()

    def close(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            owned_bus = self._stop_components_locked()
        if owned_bus is not None:
            owned_bus.stop()

    def reload(self, config: AppConfig) -> None:
        was_running = self.running
        self.close()
        with self._lock:
            self._config = config
        if was_running:
            self.start()

        LOGGER.info("Configurazione ricaricata")

    def get_devices(self, callback: DevicesCallback | None = None, refresh: bool = False) -> list[Device] | None:
        with self._lock:
            scanner = self._scanner
        if scanner is None:
            LOGGER.warning("Discovery non attiva, richiesta dispositivi ignorata")
            return None
        return scanner.get_devices(callback, refresh=refresh)

    def _start_components_locked(self) -> None:
        bus = self._external_bus or MqttBridge(self._config.mqtt)
        self._bus = bus
        self._scanner = ScanOrchestrator(
            bus,
            self._registry,
            self._resolver,
            self._config.mqtt.discovery_prefix,
            poll_interval=self._config.scan.poll_interval_sec,
            timeout=self._config.scan.timeout_sec,
            on_error=self._handle_scan_error,
            timer_factory=self._timer_factory,
            lock=self._lock,
        )

        bus.add_connect_handler(self._handle_connect)
        bus.add_message_handler(self._handle_message)
        if self._external_bus is None:
            bus.start()

    def _stop_components_locked(self) -> Any:
        owned_bus = None
        if self._scanner:
            self._scanner.cancel()
            self._scanner = None
        if self._bus:
            self._bus.remove_connect_handler(self._handle_connect)
            self._bus.remove_message_handler(self._handle_message)
            if self._external_bus is None:
                owned_bus = self._bus
            self._bus = None
        self._registry.clear()
        self._resolver.clear()
        return owned_bus

    def _handle_scan_error(self, exc: Exception) -> None:
        self.last_error = exc

    def _handle_connect(self) -> None:
        self.get_devices(self._handle_scan_done, refresh=True)

    def _handle_scan_done(self, devices: list[Device]) -> None:
        with self._lock:
            bus = self._bus
        if bus is None:
            return
        LOGGER.info("Sottoscrizione aggiornamenti su %s (%d dispositivi)", ALL_TOPICS, len(devices))
        bus.subscribe(ALL_TOPICS)

    def _handle_message(self, topic: str, payload: bytes) -> None:
        if is_discovery_topic(topic, self._config.mqtt.discovery_prefix):
            return

        decoded = decode_payload(payload)
        with self._lock:
            self._resolver.store(topic, decoded)
            changed = [self._resolver.refresh(device) for device in self._registry.devices_for_topic(topic)]

        if self._on_device_changed is None:
            return
        for device in changed:
            try:
                self._on_device_changed(device)
            except Exception:
                LOGGER.exception("Errore notifica dispositivo %s", device.key)
