from __future__ import annotations

import json
from typing import Any

from hadiscovery.templates import template_field

BASE_TOPIC_KEY = "~"

ABBREVIATIONS: dict[str, str] = {
    "act_t": "action_topic",
    "avty": "availability",
    "avty_mode": "availability_mode",
    "avty_t": "availability_topic",
    "avty_tpl": "availability_template",
    "cmd_t": "command_topic",
    "cmd_tpl": "command_template",
    "dev": "device",
    "dev_cla": "device_class",
    "en": "enabled_by_default",
    "ent_cat": "entity_category",
    "exp_aft": "expire_after",
    "frc_upd": "force_update",
    "ic": "icon",
    "json_attr_t": "json_attributes_topic",
    "json_attr_tpl": "json_attributes_template",
    "obj_id": "object_id",
    "opt": "optimistic",
    "pl_avail": "payload_available",
    "pl_not_avail": "payload_not_available",
    "pl_off": "payload_off",
    "pl_on": "payload_on",
    "ret": "retain",
    "stat_cla": "state_class",
    "stat_off": "state_off",
    "stat_on": "state_on",
    "stat_t": "state_topic",
    "stat_tpl": "state_template",
    "sug_dsp_prc": "suggested_display_precision",
    "uniq_id": "unique_id",
    "unit_of_meas": "unit_of_measurement",
    "val_tpl": "value_template",
}

DEVICE_ABBREVIATIONS: dict[str, str] = {
    "cns": "connections",
    "cu": "configuration_url",
    "hw": "hw_version",
    "ids": "identifiers",
    "mdl": "model",
    "mdl_id": "model_id",
    "mf": "manufacturer",
    "sa": "suggested_area",
    "sn": "serial_number",
    "sw": "sw_version",
}

AVAILABILITY_ABBREVIATIONS: dict[str, str] = {
    "pl_avail": "payload_available",
    "pl_not_avail": "payload_not_available",
    "t": "topic",
    "val_tpl": "value_template",
}

DEFAULT_PAYLOAD_ON = "ON"
DEFAULT_PAYLOAD_AVAILABLE = "online"

# device_class / template field -> (characteristic, numeric)
SENSOR_CHARACTERISTICS: dict[str, tuple[str, bool]] = {
    "temperature": ("CurrentTemperature", True),
    "humidity": ("CurrentRelativeHumidity", True),
    "illuminance": ("CurrentAmbientLightLevel", True),
    "battery": ("BatteryLevel", True),
    "contact": ("ContactSensorState", False),
    "occupancy": ("OccupancyDetected", False),
    "motion": ("OccupancyDetected", False),
    "water_leak": ("LeakDetected", False),
    "moisture": ("LeakDetected", False),
}


def is_json(text: str) -> bool:
    try:
        decoded = json.loads(text)
    except (TypeError, ValueError):
        return False
    return isinstance(decoded, (dict, list))


def decode_payload(raw: bytes | str) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode("utf-8", errors="ignore").strip()
    else:
        text = str(raw).strip()

    if is_json(text):
        return json.loads(text)
    return text


def _expand_keys(payload: dict[str, Any], table: dict[str, str]) -> dict[str, Any]:
    return {table.get(key, key): value for key, value in payload.items()}


def _expand_base_topic(value: Any, base: str) -> Any:
    if not isinstance(value, str):
        return value
    if value.startswith(BASE_TOPIC_KEY):
        return base + value[len(BASE_TOPIC_KEY):]
    if value.endswith(BASE_TOPIC_KEY):
        return value[: -len(BASE_TOPIC_KEY)] + base
    return value


def expand_shorthand(payload: dict[str, Any]) -> dict[str, Any]:
    expanded = _expand_keys(payload, ABBREVIATIONS)

    device = expanded.get("device")
    if isinstance(device, dict):
        expanded["device"] = _expand_keys(device, DEVICE_ABBREVIATIONS)

    availability = expanded.get("availability")
    if isinstance(availability, list):
        expanded["availability"] = [
            _expand_keys(item, AVAILABILITY_ABBREVIATIONS) if isinstance(item, dict) else item
            for item in availability
        ]

    base = expanded.pop(BASE_TOPIC_KEY, None)
    if isinstance(base, str):
        for key, value in list(expanded.items()):
            if key.endswith("_topic"):
                expanded[key] = _expand_base_topic(value, base)
        if isinstance(expanded.get("availability"), list):
            for item in expanded["availability"]:
                if isinstance(item, dict) and "topic" in item:
                    item["topic"] = _expand_base_topic(item["topic"], base)

    return expanded


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_flag(value: Any, payload_on: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().upper() == str(payload_on).strip().upper()


def to_homekit(device: Any) -> dict[str, Any] | None:
    value = device.current_value
    status = device.current_status
    if value is None and status is None:
        return None

    config = device.config or {}
    result: dict[str, Any] = {}

    if status is not None:
        if isinstance(status, dict):
            # zigbee2mqtt: {"state": "online"}
            status = status.get("state")
        available = config.get("payload_available", DEFAULT_PAYLOAD_AVAILABLE)
        result["StatusActive"] = str(status).strip().lower() == str(available).strip().lower()

    if value is None:
        return result

    if device.component == "switch":
        result["On"] = _as_flag(value, config.get("payload_on", DEFAULT_PAYLOAD_ON))
        return result

    kind = config.get("device_class") or template_field(device.val_tpl)
    characteristic = SENSOR_CHARACTERISTICS.get(kind or "")
    if characteristic is None:
        result["value"] = value
        return result

    name, numeric = characteristic
    if numeric:
        number = _as_float(value)
        if number is not None:
            result[name] = int(number) if name == "BatteryLevel" else number
        return result

    flag = _as_flag(value, config.get("payload_on", DEFAULT_PAYLOAD_ON))
    if name == "ContactSensorState":
        # HomeKit: 0 = contact detected, 1 = contact not detected
        result[name] = 0 if flag else 1
    else:
        result[name] = 1 if flag else 0
    return result
