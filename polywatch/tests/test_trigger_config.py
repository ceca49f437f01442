"""Tests for polywatch.config."""

import json
import os
import tempfile
import unittest
from unittest.mock import patch

from polyconnect.errors import ValidationError
from polywatch.config import TriggerConfig, _coerce


class TestTriggerConfigLoad(unittest.TestCase):

    def test_defaults_without_file(self):
        with tempfile.TemporaryDirectory() as tmp, patch.dict(os.environ, {}, clear=True):
            config = TriggerConfig.load(tmp)
        self.assertEqual(config.trigger_on, "newMarket")
        self.assertEqual(config.poll_interval_minutes, 5.0)
        self.assertFalse(config.include_market_details)

    def test_file_overrides_env(self):
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "config.json"), "w") as f:
                json.dump({"trigger_on": "priceChange", "price_threshold": "2.5"}, f)
            env = {"POLYWATCH_TRIGGER": "orderFilled", "POLYWATCH_MARKET_ID": "501"}
            with patch.dict(os.environ, env, clear=True):
                config = TriggerConfig.load(tmp)
        self.assertEqual(config.trigger_on, "priceChange")
        self.assertEqual(config.price_threshold, 2.5)
        self.assertEqual(config.market_id, "501")

    def test_env_bool(self):
        with tempfile.TemporaryDirectory() as tmp:
            with patch.dict(os.environ, {"POLYWATCH_INCLUDE_DETAILS": "yes"}, clear=True):
                config = TriggerConfig.load(tmp)
        self.assertTrue(config.include_market_details)

    def test_bad_file_falls_back(self):
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "config.json"), "w") as f:
                f.write("{not json")
            with patch.dict(os.environ, {}, clear=True):
                config = TriggerConfig.load(tmp)
        self.assertEqual(config.trigger_on, "newMarket")

    def test_save_and_reload(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = TriggerConfig(trigger_on="marketResolution", market_id="42")
            config.save(tmp)
            with patch.dict(os.environ, {}, clear=True):
                loaded = TriggerConfig.load(tmp)
        self.assertEqual(loaded, config)


class TestTriggerConfigUpdate(unittest.TestCase):

    def test_update_coerces(self):
        config = TriggerConfig()
        config.update({"poll_interval_minutes": "15", "market_limit": "50",
                       "include_market_details": "true"})
        self.assertEqual(config.poll_interval_minutes, 15.0)
        self.assertEqual(config.market_limit, 50)
        self.assertTrue(config.include_market_details)
        self.assertEqual(config.poll_interval_seconds, 900)

    def test_update_ignores_unknown(self):
        config = TriggerConfig()
        config.update({"nope": 1})
        self.assertFalse(hasattr(config, "nope"))

    def test_coerce_bad_number(self):
        with self.assertRaises(ValidationError):
            _coerce("abc", float)


class TestTriggerConfigValidate(unittest.TestCase):

    def test_defaults_valid(self):
        TriggerConfig().validate()

    def test_unknown_trigger(self):
        with self.assertRaises(ValidationError):
            TriggerConfig(trigger_on="newTrade").validate()

    def test_market_id_required(self):
        for trigger in ("priceChange", "marketResolution"):
            with self.assertRaises(ValidationError):
                TriggerConfig(trigger_on=trigger).validate()

    def test_threshold_range(self):
        for threshold in (0, -1, 100.5):
            with self.assertRaises(ValidationError):
                TriggerConfig(trigger_on="priceChange", market_id="M",
                              price_threshold=threshold).validate()
        TriggerConfig(trigger_on="priceChange", market_id="M", price_threshold=100).validate()

    def test_interval_range(self):
        for minutes in (0, 0.5, 1441):
            with self.assertRaises(ValidationError):
                TriggerConfig(poll_interval_minutes=minutes).validate()
        TriggerConfig(poll_interval_minutes=1).validate()
        TriggerConfig(poll_interval_minutes=1440).validate()

    def test_negative_min_volume(self):
        with self.assertRaises(ValidationError):
            TriggerConfig(min_volume=-1).validate()


if __name__ == "__main__":
    unittest.main()
