from __future__ import annotations

import logging

from flask import Flask, jsonify, request

from hadiscovery.config_store import ConfigError, ConfigStore
from hadiscovery.service import DiscoveryService

LOGGER = logging.getLogger(__name__)


def create_web_app(store: ConfigStore, service: DiscoveryService) -> Flask:
    app = Flask(__name__)

    @app.get("/api/config")
    def get_config():
        return jsonify(store.config.to_dict())

    @app.post("/api/config")
    def update_config():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Payload JSON non valido"}), 400

        try:
            config = store.update_from_dict(payload)
            service.reload(config)
            return jsonify({"status": "ok", "message": "Configurazione salvata e caricata"})
        except ConfigError as exc:
            return jsonify({"error": str(exc)}), 400
        except Exception:
            LOGGER.exception("Errore salvataggio configurazione")
            return jsonify({"error": "Errore interno salvataggio configurazione"}), 500

    @app.get("/api/devices")
    def list_devices():
        component = request.args.get("component")
        devices = [
            device.to_dict()
            for device in service.devices
            if component is None or device.component == component
        ]
        return jsonify({
            "scan_state": service.scan_state.value,
            "last_error": str(service.last_error) if service.last_error else None,
            "devices": devices,
        })

    @app.post("/api/devices/refresh")
    def refresh_devices():
        if not service.running:
            return jsonify({"error": "Discovery non attiva"}), 409
        service.get_devices(refresh=True)
        return jsonify({"status": "ok", "message": "Scansione avviata"}), 202

    return app
