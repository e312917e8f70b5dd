from __future__ import annotations

import copy
import json
from pathlib import Path
from threading import RLock

from hadiscovery.models import AppConfig


class ConfigError(ValueError):
    pass


class ConfigStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = RLock()
        self._config = self._load_or_create()

    @property
    def config(self) -> AppConfig:
        with self._lock:
            return copy.deepcopy(self._config)

    def update_from_dict(self, data: dict) -> AppConfig:
        try:
            config = AppConfig.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Configurazione non valida: {exc}") from exc
        self._validate(config)
        self.save(config)
        return config

    def save(self, config: AppConfig) -> None:
        with self._lock:
            self._validate(config)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(config.to_dict(), handle, indent=2, ensure_ascii=True)
            tmp_path.replace(self.path)
            self._config = config

    def _load_or_create(self) -> AppConfig:
        if not self.path.exists():
            default = AppConfig()
            self.save(default)
            return default

        with self.path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)

        config = AppConfig.from_dict(raw)
        self._validate(config)
        return config

    def _validate(self, config: AppConfig) -> None:
        prefix = config.mqtt.discovery_prefix
        if not prefix:
            raise ConfigError("Discovery prefix mancante")
        if any(char in prefix for char in "/+#"):
            raise ConfigError(f"Discovery prefix non valido: {prefix}")
        if config.mqtt.port <= 0:
            raise ConfigError("Porta MQTT non valida")
        if config.mqtt.keepalive <= 0:
            raise ConfigError("Keepalive MQTT non valido")
        if config.scan.poll_interval_sec <= 0:
            raise ConfigError("Intervallo di polling scansione deve essere > 0")
        if config.scan.timeout_sec <= config.scan.poll_interval_sec:
            raise ConfigError("Timeout scansione deve superare l'intervallo di polling")
        if config.web.port <= 0:
            raise ConfigError("Porta web non valida")
