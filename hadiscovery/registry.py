from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hadiscovery.normalizer import expand_shorthand
from hadiscovery.topics import is_discovery_topic, parse_topic

SUPPORTED_COMPONENTS = ("sensor", "switch")


class DiscoveryError(ValueError):
    pass


class Dialect(str, Enum):
    HOME_ASSISTANT = "home_assistant"
    ESPHOME = "esphome"
    ZIGBEE2MQTT = "zigbee2mqtt"


@dataclass
class Device:
    key: str
    component: str
    object_id: str
    node_id: str = ""
    dialect: Dialect = Dialect.HOME_ASSISTANT
    dev_ids: Any = None
    avty_t: str | None = None
    stat_t: str | None = None
    val_tpl: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    current_status: Any = None
    current_value: Any = None
    homekit: dict[str, Any] | None = None

    @property
    def topics(self) -> list[str]:
        return [topic for topic in (self.stat_t, self.avty_t) if topic]

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "component": self.component,
            "node_id": self.node_id,
            "object_id": self.object_id,
            "dialect": self.dialect.value,
            "dev_ids": self.dev_ids,
            "avty_t": self.avty_t,
            "stat_t": self.stat_t,
            "val_tpl": self.val_tpl,
            "config": self.config,
            "current_status": self.current_status,
            "current_value": self.current_value,
            "homekit": self.homekit,
        }


def _detect_dialect(node_id: str, config: dict[str, Any]) -> Dialect:
    device = config.get("device")
    identifiers = device.get("identifiers") if isinstance(device, dict) else None
    if isinstance(config.get("availability"), list) or isinstance(identifiers, list):
        return Dialect.ZIGBEE2MQTT
    if node_id:
        return Dialect.ESPHOME
    return Dialect.HOME_ASSISTANT


def _normalize_identifiers(config: dict[str, Any]) -> Any:
    device = config.get("device")
    if device is None:
        return None
    if not isinstance(device, dict):
        raise DiscoveryError(f"Campo device non valido: {device!r}")

    identifiers = device.get("identifiers")
    if isinstance(identifiers, list):
        if not identifiers:
            raise DiscoveryError("Lista identifiers vuota")
        identifiers = identifiers[0]
        device["identifiers"] = identifiers
    return identifiers


def _normalize_availability(config: dict[str, Any]) -> str | None:
    availability = config.pop("availability", None)
    if availability is None:
        return _string_field(config, "availability_topic")

    if not isinstance(availability, list) or not availability:
        raise DiscoveryError(f"Campo availability non valido: {availability!r}")
    first = availability[0]
    if not isinstance(first, dict) or not isinstance(first.get("topic"), str):
        raise DiscoveryError(f"Voce availability senza topic: {first!r}")

    config["availability_topic"] = first["topic"]
    return first["topic"]


def _string_field(config: dict[str, Any], key: str) -> str | None:
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DiscoveryError(f"Campo {key} non valido: {value!r}")
    return value


def decode_discovery(topic: str, payload: Any, prefix: str) -> Device | None:
    """Build a device from a discovery message.

    Returns None for anything that is not a registrable discovery message:
    foreign topics, tombstones (empty or non-object payloads) and components
    other than sensor/switch. Raises DiscoveryError when the payload is an
    object that matches none of the known gateway dialects.
    """
    if not is_discovery_topic(topic, prefix):
        return None
    if not isinstance(payload, dict):
        return None

    segments = parse_topic(topic)
    assert segments is not None
    if segments.component not in SUPPORTED_COMPONENTS:
        return None

    config = expand_shorthand(payload)
    dialect = _detect_dialect(segments.node_id, config)

    return Device(
        key=topic,
        component=segments.component,
        node_id=segments.node_id,
        object_id=segments.object_id,
        dialect=dialect,
        dev_ids=_normalize_identifiers(config),
        avty_t=_normalize_availability(config),
        stat_t=_string_field(config, "state_topic"),
        val_tpl=_string_field(config, "value_template"),
        config=config,
    )


class DeviceRegistry:
    def __init__(self):
        self._devices: dict[str, Device] = {}
        self._by_topic: dict[str, set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, key: str) -> bool:
        return key in self._devices

    def clear(self) -> None:
        self._devices = {}
        self._by_topic = defaultdict(set)

    def add(self, device: Device) -> None:
        if device.key in self._devices:
            self.remove(device.key)
        self._devices[device.key] = device
        for topic in device.topics:
            self._by_topic[topic].add(device.key)

    def remove(self, key: str) -> Device | None:
        device = self._devices.pop(key, None)
        if device is None:
            return None
        for topic in device.topics:
            keys = self._by_topic.get(topic)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._by_topic[topic]
        return device

    def get(self, key: str) -> Device | None:
        return self._devices.get(key)

    def devices(self) -> list[Device]:
        return list(self._devices.values())

    def devices_for_topic(self, topic: str) -> list[Device]:
        keys = self._by_topic.get(topic)
        if not keys:
            return []
        return [device for key, device in self._devices.items() if key in keys]
