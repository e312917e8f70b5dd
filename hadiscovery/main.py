from __future__ import annotations

import logging
import os
import signal
from pathlib import Path

from hadiscovery.config_store import ConfigStore
from hadiscovery.registry import Device
from hadiscovery.service import DiscoveryService
from hadiscovery.web import create_web_app

LOGGER = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def log_device_change(device: Device) -> None:
    LOGGER.debug("Dispositivo aggiornato %s: value=%r homekit=%r", device.key, device.current_value, device.homekit)


def main() -> None:
    setup_logging()

    config_path = Path(os.getenv("HADISCOVERY_CONFIG", "./config/config.json"))
    store = ConfigStore(config_path)
    service = DiscoveryService(store.config, on_device_changed=log_device_change)
    service.start()

    app = create_web_app(store, service)

    def _shutdown(signum, frame):
        service.close()
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    cfg = store.config
    app.run(host=cfg.web.host, port=cfg.web.port, debug=False, use_reloader=False)


if __name__ == "__main__":
    main()
