import unittest

from hadiscovery.registry import Device, DeviceRegistry, Dialect, DiscoveryError, decode_discovery

PREFIX = "homeassistant"


class DecodeDiscoveryTest(unittest.TestCase):
    def test_zigbee2mqtt_payload(self):
        payload = {
            "stat_t": "zigbee2mqtt/door",
            "val_tpl": "{{ value_json.contact }}",
            "dev": {"ids": ["a", "b"], "name": "Door"},
            "avty": [{"topic": "t/avail"}, {"topic": "t/other"}],
        }
        device = decode_discovery("homeassistant/sensor/0x1/contact/config", payload, PREFIX)

        self.assertEqual(device.component, "sensor")
        self.assertEqual(device.dialect, Dialect.ZIGBEE2MQTT)
        self.assertEqual(device.dev_ids, "a")
        self.assertEqual(device.avty_t, "t/avail")
        self.assertEqual(device.stat_t, "zigbee2mqtt/door")
        self.assertEqual(device.val_tpl, "{{ value_json.contact }}")
        self.assertNotIn("availability", device.config)
        self.assertNotIn("avty", device.config)
        self.assertEqual(device.config["device"]["identifiers"], "a")

    def test_esphome_payload(self):
        payload = {"stat_t": "bathroom-fan/switch/fan/state", "avty_t": "bathroom-fan/status", "dev": {"ids": "abc"}}
        device = decode_discovery("homeassistant/switch/bathroom-fan/fan/config", payload, PREFIX)

        self.assertEqual(device.dialect, Dialect.ESPHOME)
        self.assertEqual(device.node_id, "bathroom-fan")
        self.assertEqual(device.object_id, "fan")
        self.assertEqual(device.avty_t, "bathroom-fan/status")
        self.assertEqual(device.dev_ids, "abc")

    def test_home_assistant_payload(self):
        device = decode_discovery("homeassistant/sensor/garden/config", {"state_topic": "garden/temp"}, PREFIX)
        self.assertEqual(device.dialect, Dialect.HOME_ASSISTANT)
        self.assertEqual(device.node_id, "")
        self.assertIsNone(device.avty_t)
        self.assertIsNone(device.val_tpl)
        self.assertEqual(device.topics, ["garden/temp"])

    def test_unsupported_component_is_dropped(self):
        payload = {"stat_t": "light/state"}
        self.assertIsNone(decode_discovery("homeassistant/light/lamp/config", payload, PREFIX))
        self.assertIsNone(decode_discovery("homeassistant/binary_sensor/door/config", payload, PREFIX))

    def test_tombstone_and_foreign_topics(self):
        self.assertIsNone(decode_discovery("homeassistant/sensor/garden/config", "", PREFIX))
        self.assertIsNone(decode_discovery("homeassistant/sensor/garden/config", ["x"], PREFIX))
        self.assertIsNone(decode_discovery("garden/temp", {"stat_t": "x"}, PREFIX))
        self.assertIsNone(decode_discovery("homeassistant/sensor/garden/state", {"stat_t": "x"}, PREFIX))

    def test_reject_unknown_shapes(self):
        topic = "homeassistant/sensor/garden/config"
        with self.assertRaises(DiscoveryError):
            decode_discovery(topic, {"avty": [{"state": "online"}]}, PREFIX)
        with self.assertRaises(DiscoveryError):
            decode_discovery(topic, {"avty": "t/avail"}, PREFIX)
        with self.assertRaises(DiscoveryError):
            decode_discovery(topic, {"dev": {"ids": []}}, PREFIX)
        with self.assertRaises(DiscoveryError):
            decode_discovery(topic, {"stat_t": 12}, PREFIX)


class DeviceRegistryTest(unittest.TestCase):
    def _device(self, key, stat_t=None, avty_t=None):
        return Device(key=key, component="sensor", object_id=key, stat_t=stat_t, avty_t=avty_t)

    def test_topic_index(self):
        registry = DeviceRegistry()
        first = self._device("a", stat_t="t/state", avty_t="t/avail")
        second = self._device("b", stat_t="t/other", avty_t="t/avail")
        registry.add(first)
        registry.add(second)

        self.assertEqual(len(registry), 2)
        self.assertEqual(registry.devices_for_topic("t/state"), [first])
        self.assertEqual(registry.devices_for_topic("t/avail"), [first, second])
        self.assertEqual(registry.devices_for_topic("a"), [])

    def test_replace_reindexes(self):
        registry = DeviceRegistry()
        registry.add(self._device("a", stat_t="t/old"))
        replacement = self._device("a", stat_t="t/new")
        registry.add(replacement)

        self.assertEqual(len(registry), 1)
        self.assertEqual(registry.devices_for_topic("t/old"), [])
        self.assertEqual(registry.devices_for_topic("t/new"), [replacement])

    def test_remove_and_clear(self):
        registry = DeviceRegistry()
        registry.add(self._device("a", stat_t="t/state"))
        registry.add(self._device("b", stat_t="t/state"))

        removed = registry.remove("a")
        self.assertEqual(removed.key, "a")
        self.assertNotIn("a", registry)
        self.assertEqual([d.key for d in registry.devices_for_topic("t/state")], ["b"])
        self.assertIsNone(registry.remove("missing"))

        registry.clear()
        self.assertEqual(registry.devices(), [])
        self.assertEqual(registry.devices_for_topic("t/state"), [])


if __name__ == "__main__":
    unittest.main()
