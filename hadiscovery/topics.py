from __future__ import annotations

import re
from dataclasses import dataclass

CONFIG_SUFFIX = "config"

_TRAILING_WILDCARDS = re.compile(r"[/+#]+$")


@dataclass(frozen=True)
class TopicSegments:
    raw: str
    prefix: str
    component: str
    node_id: str
    object_id: str
    last: str


def normalize_prefix(value: str) -> str:
    return _TRAILING_WILDCARDS.sub("", (value or "").strip())


def build_topic(prefix: str, path: str = "") -> str:
    return normalize_prefix(prefix) + (path or "")


def parse_topic(topic: str) -> TopicSegments | None:
    # <discovery_prefix>/<component>/[<node_id>/]<object_id>/config
    # homeassistant/binary_sensor/garden/config
    # homeassistant/binary_sensor/bathroom-fan/status/config (esphome)
    # homeassistant/binary_sensor/0x00158d000392b2df/contact/config (zigbee2mqtt)
    parts = topic.split("/")

    if len(parts) == 4:
        prefix, component, object_id, last = parts
        node_id = ""
    elif len(parts) == 5:
        prefix, component, node_id, object_id, last = parts
    else:
        return None

    return TopicSegments(
        raw=topic,
        prefix=prefix,
        component=component,
        node_id=node_id,
        object_id=object_id,
        last=last,
    )


def is_discovery_topic(topic: str, prefix: str) -> bool:
    segments = parse_topic(topic)
    if segments is None:
        return False
    return segments.prefix == normalize_prefix(prefix) and segments.last == CONFIG_SUFFIX


def component_of(topic: str) -> str | None:
    segments = parse_topic(topic)
    if segments is None:
        return None
    return segments.component
