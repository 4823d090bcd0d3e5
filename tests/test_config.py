import os
from pathlib import Path
import tempfile
import unittest
from unittest import mock

from buddy.config import DEFAULT_BUDDY_IDS, load_config


class TestLoadConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.config_path = Path(self._tmp.name) / "config.yaml"
        self.secrets_path = Path(self._tmp.name) / "secrets.yaml"

    def _load(self, env: dict[str, str]):
        with mock.patch.dict(os.environ, env, clear=True):
            return load_config(config_path=self.config_path, secrets_path=self.secrets_path)

    def test_missing_key_is_fatal(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            self._load({})
        self.assertIn("GEMINI_API_KEY", str(ctx.exception))

    def test_key_from_secrets_file(self) -> None:
        self.secrets_path.write_text("GEMINI_API_KEY: from-file\n", encoding="utf-8")
        self.assertEqual(self._load({}).gemini_api_key, "from-file")

    def test_env_key_wins_over_secrets_file(self) -> None:
        self.secrets_path.write_text("GEMINI_API_KEY: from-file\n", encoding="utf-8")
        self.assertEqual(self._load({"GEMINI_API_KEY": "from-env"}).gemini_api_key, "from-env")

    def test_defaults(self) -> None:
        config = self._load({"GEMINI_API_KEY": "k"})
        self.assertEqual(config.interval_sec, 8.0)
        self.assertEqual(config.fingerprint_chars, 350)
        self.assertEqual(config.buddy_ids, DEFAULT_BUDDY_IDS)
        self.assertTrue(config.single_flight)
        self.assertIsNone(config.gemini_timeout_sec)
        self.assertFalse(config.verbose)

    def test_yaml_defaults_and_env_overrides(self) -> None:
        self.config_path.write_text(
            "defaults:\n"
            "  interval: 12\n"
            "  buddies: [leo, owl]\n"
            "  model: gemini-2.5-flash\n",
            encoding="utf-8",
        )
        config = self._load({"GEMINI_API_KEY": "k", "BUDDY_INTERVAL_SEC": "5"})
        self.assertEqual(config.interval_sec, 5.0)
        self.assertEqual(config.buddy_ids, ["leo", "owl"])
        self.assertEqual(config.gemini_model, "gemini-2.5-flash")

    def test_env_buddy_ids_and_flags(self) -> None:
        config = self._load(
            {
                "GEMINI_API_KEY": "k",
                "BUDDY_IDS": "leo, spacecat,",
                "BUDDY_SINGLE_FLIGHT": "0",
                "BUDDY_VERBOSE": "yes",
            }
        )
        self.assertEqual(config.buddy_ids, ["leo", "spacecat"])
        self.assertFalse(config.single_flight)
        self.assertTrue(config.verbose)

    def test_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            self._load({"GEMINI_API_KEY": "k", "BUDDY_INTERVAL_SEC": "-1"})
        with self.assertRaises(ValueError):
            self._load({"GEMINI_API_KEY": "k", "BUDDY_GEMINI_TIMEOUT_SEC": "soon"})

    def test_unparseable_interval_falls_back(self) -> None:
        config = self._load({"GEMINI_API_KEY": "k", "BUDDY_INTERVAL_SEC": "often"})
        self.assertEqual(config.interval_sec, 8.0)


if __name__ == "__main__":
    unittest.main()
