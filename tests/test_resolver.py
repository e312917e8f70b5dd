import unittest

from hadiscovery.registry import Device
from hadiscovery.resolver import ValueResolver
from hadiscovery.templates import TemplateError, parse_value_template


def _device(component="sensor", **kwargs):
    return Device(key=f"homeassistant/{component}/x/config", component=component, object_id="x", **kwargs)


class TemplateTest(unittest.TestCase):
    def test_parse_value_template(self):
        self.assertEqual(parse_value_template("{{ value_json.contact }}"), ["contact"])
        self.assertEqual(parse_value_template("{{value_json.update.state}}"), ["update", "state"])
        self.assertEqual(parse_value_template("  {{ VALUE_JSON.linkquality-2 }} "), ["linkquality-2"])

    def test_reject_unsupported_template(self):
        with self.assertRaises(TemplateError):
            parse_value_template("{{ value | float }}")
        with self.assertRaises(TemplateError):
            parse_value_template("{{ value_json['contact'] }}")

    def test_reject_pipe_in_field_path(self):
        with self.assertRaises(TemplateError):
            parse_value_template("{{ value_json.contact|lower }}")
        with self.assertRaises(TemplateError):
            parse_value_template("{{ value_json.a|b }}")


class ValueResolverTest(unittest.TestCase):
    def setUp(self):
        self.resolver = ValueResolver()

    def test_template_extracts_field(self):
        self.resolver.store("t/state", {"contact": True, "battery": 99})
        device = _device(stat_t="t/state", val_tpl="{{ value_json.contact }}")
        self.assertIs(self.resolver.resolve_value(device), True)

    def test_template_nested_field(self):
        self.resolver.store("t/state", {"update": {"state": "idle"}})
        device = _device(stat_t="t/state", val_tpl="{{ value_json.update.state }}")
        self.assertEqual(self.resolver.resolve_value(device), "idle")

    def test_template_missing_field_or_payload(self):
        device = _device(stat_t="t/state", val_tpl="{{ value_json.contact }}")
        self.assertIsNone(self.resolver.resolve_value(device))

        self.resolver.store("t/state", {"battery": 99})
        self.assertIsNone(self.resolver.resolve_value(device))

        self.resolver.store("t/state", "ON")
        self.assertIsNone(self.resolver.resolve_value(device))

    def test_raw_payload_without_template(self):
        self.resolver.store("t/state", "ON")
        device = _device("switch", stat_t="t/state")
        self.assertEqual(self.resolver.resolve_value(device), "ON")

    def test_unsupported_component(self):
        self.resolver.store("t/state", "ON")
        device = _device("light", stat_t="t/state")
        self.assertIsNone(self.resolver.resolve_value(device))

    def test_malformed_template_resolves_to_none(self):
        self.resolver.store("t/state", {"contact": True})
        device = _device(stat_t="t/state", val_tpl="{{ value_json['contact'] }}")
        with self.assertLogs("hadiscovery.resolver", level="WARNING"):
            self.assertIsNone(self.resolver.resolve_value(device))

    def test_resolve_status(self):
        device = _device(avty_t="t/avail")
        self.assertIsNone(self.resolver.resolve_status(device))
        self.resolver.store("t/avail", "online")
        self.assertEqual(self.resolver.resolve_status(device), "online")
        self.assertIsNone(self.resolver.resolve_status(_device()))

    def test_refresh_recomputes_all_fields(self):
        device = _device("switch", stat_t="t/state", avty_t="t/avail")
        self.resolver.store("t/state", "ON")
        self.resolver.store("t/avail", "online")
        self.resolver.refresh(device)
        self.assertEqual(device.current_value, "ON")
        self.assertEqual(device.current_status, "online")
        self.assertEqual(device.homekit, {"StatusActive": True, "On": True})

        self.resolver.clear()
        self.resolver.refresh(device)
        self.assertIsNone(device.current_value)
        self.assertIsNone(device.current_status)
        self.assertIsNone(device.homekit)


if __name__ == "__main__":
    unittest.main()
