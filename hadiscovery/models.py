from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hadiscovery.topics import normalize_prefix


@dataclass
class MQTTConfig:
    host: str = "127.0.0.1"
    port: int = 1883
    username: str = ""
    password: str = ""
    client_id: str = "ha-discovery"
    discovery_prefix: str = "homeassistant"
    keepalive: int = 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": self.password,
            "client_id": self.client_id,
            "discovery_prefix": self.discovery_prefix,
            "keepalive": self.keepalive,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "MQTTConfig":
        return MQTTConfig(
            host=str(data.get("host", "127.0.0.1")).strip(),
            port=int(data.get("port", 1883)),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            client_id=str(data.get("client_id", "ha-discovery")).strip() or "ha-discovery",
            discovery_prefix=normalize_prefix(str(data.get("discovery_prefix", "homeassistant"))),
            keepalive=int(data.get("keepalive", 60)),
        )


@dataclass
class ScanConfig:
    poll_interval_sec: float = 0.5
    timeout_sec: float = 5.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "poll_interval_sec": self.poll_interval_sec,
            "timeout_sec": self.timeout_sec,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ScanConfig":
        return ScanConfig(
            poll_interval_sec=float(data.get("poll_interval_sec", 0.5)),
            timeout_sec=float(data.get("timeout_sec", 5.0)),
        )


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "WebConfig":
        return WebConfig(
            host=str(data.get("host", "0.0.0.0")).strip() or "0.0.0.0",
            port=int(data.get("port", 8080)),
        )


@dataclass
class AppConfig:
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    web: WebConfig = field(default_factory=WebConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mqtt": self.mqtt.to_dict(),
            "scan": self.scan.to_dict(),
            "web": self.web.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AppConfig":
        mqtt = MQTTConfig.from_dict(data.get("mqtt", {}))
        scan = ScanConfig.from_dict(data.get("scan", {}))
        web = WebConfig.from_dict(data.get("web", {}))
        return AppConfig(mqtt=mqtt, scan=scan, web=web)
