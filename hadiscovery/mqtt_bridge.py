from __future__ import annotations

import json
import logging
import threading
from typing import Callable

import paho.mqtt.client as mqtt

from hadiscovery.models import MQTTConfig

LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], None]
ConnectHandler = Callable[[], None]


class MqttBridge:
    def __init__(self, config: MQTTConfig):
        self._config = config
        self._handlers_lock = threading.Lock()
        self._message_handlers: list[MessageHandler] = []
        self._connect_handlers: list[ConnectHandler] = []

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        if config.username:
            self._client.username_pw_set(config.username, config.password)

        self._client.on_connect = self._handle_connect
        self._client.on_disconnect = self._handle_disconnect
        self._client.on_message = self._handle_message

    def start(self) -> None:
        self._client.connect_async(self._config.host, self._config.port, keepalive=self._config.keepalive)
        self._client.loop_start()

    def stop(self) -> None:
        try:
            self._client.loop_stop()
            self._client.disconnect()
        except Exception:
            LOGGER.exception("Errore stop MQTT")

    def publish(self, topic: str, payload: str | int | float | dict, retain: bool = False, qos: int = 0) -> None:
        if isinstance(payload, dict):
            raw_payload = json.dumps(payload, ensure_ascii=True)
        else:
            raw_payload = str(payload)

        result = self._client.publish(topic, raw_payload, qos=qos, retain=retain)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            LOGGER.warning("Publish MQTT fallita su %s rc=%s", topic, result.rc)

    def subscribe(self, topic: str, qos: int = 0) -> None:
        rc, _ = self._client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            LOGGER.warning("Subscribe MQTT fallita su %s rc=%s", topic, rc)

    def unsubscribe(self, topic: str) -> None:
        rc, _ = self._client.unsubscribe(topic)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            LOGGER.warning("Unsubscribe MQTT fallita su %s rc=%s", topic, rc)

    def add_message_handler(self, handler: MessageHandler) -> None:
        with self._handlers_lock:
            self._message_handlers.append(handler)

    def remove_message_handler(self, handler: MessageHandler) -> None:
        with self._handlers_lock:
            if handler in self._message_handlers:
                self._message_handlers.remove(handler)

    def add_connect_handler(self, handler: ConnectHandler) -> None:
        with self._handlers_lock:
            self._connect_handlers.append(handler)

    def remove_connect_handler(self, handler: ConnectHandler) -> None:
        with self._handlers_lock:
            if handler in self._connect_handlers:
                self._connect_handlers.remove(handler)

    def _handle_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            LOGGER.error("Connessione MQTT fallita: rc=%s", reason_code)
            return
        LOGGER.info("Connesso a MQTT %s:%d", self._config.host, self._config.port)

        with self._handlers_lock:
            handlers = list(self._connect_handlers)
        for handler in handlers:
            try:
                handler()
            except Exception:
                LOGGER.exception("Errore handler connessione MQTT")

    def _handle_disconnect(self, client, userdata, flags, reason_code, properties=None):
        LOGGER.warning("Disconnesso da MQTT rc=%s", reason_code)

    def _handle_message(self, client, userdata, msg):
        with self._handlers_lock:
            handlers = list(self._message_handlers)
        for handler in handlers:
            try:
                handler(msg.topic, msg.payload)
            except Exception:
                LOGGER.exception("Errore gestione messaggio MQTT su %s", msg.topic)
