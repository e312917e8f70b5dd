from __future__ import annotations

import logging
from typing import Any

from hadiscovery.normalizer import to_homekit
from hadiscovery.registry import SUPPORTED_COMPONENTS, Device
from hadiscovery.templates import TemplateError, parse_value_template

LOGGER = logging.getLogger(__name__)

_MISSING = object()


def _lookup(payload: dict[str, Any], path: list[str]) -> Any:
    # z2m exposes flat keys that may contain dots, so try the literal key first
    literal = payload.get(".".join(path), _MISSING)
    if literal is not _MISSING:
        return literal

    current: Any = payload
    for part in path:
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


class ValueResolver:
    def __init__(self):
        self.payloads: dict[str, Any] = {}

    def store(self, topic: str, payload: Any) -> None:
        self.payloads[topic] = payload

    def clear(self) -> None:
        self.payloads = {}

    def resolve_status(self, device: Device) -> Any:
        if not device.avty_t:
            return None
        return self.payloads.get(device.avty_t)

    def resolve_value(self, device: Device) -> Any:
        if device.component not in SUPPORTED_COMPONENTS:
            return None
        if not device.stat_t:
            return None

        payload = self.payloads.get(device.stat_t)
        if device.val_tpl is None:
            return payload

        try:
            path = parse_value_template(device.val_tpl)
        except TemplateError as exc:
            LOGGER.warning("Template non valido per %s: %s", device.key, exc)
            return None

        if not isinstance(payload, dict):
            return None
        return _lookup(payload, path)

    def refresh(self, device: Device) -> Device:
        device.current_status = self.resolve_status(device)
        device.current_value = self.resolve_value(device)
        device.homekit = to_homekit(device)
        return device
