import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from deploy_cli.config import AppConfig, load_config
from deploy_cli.errors import ConfigError


class ConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.home = Path(self._tmp.name)
        patcher = mock.patch.dict(os.environ, {"DEPLOY_CLI_HOME": str(self.home)})
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._tmp.cleanup)
        for name in ("DEPLOY_CLI_SETTLE_SECONDS", "DEPLOY_CLI_CONNECT_TIMEOUT", "DEPLOY_CLI_LOG_LEVEL"):
            os.environ.pop(name, None)

    def _write(self, name: str, payload) -> Path:
        path = self.home / name
        path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
        return path

    def test_loads_default_config(self) -> None:
        config = load_config()
        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.deployment.settle_seconds, 3.0)
        self.assertEqual(config.deployment.simulate_step_delay, 1.0)
        self.assertEqual(config.deployment.default_branch, "main")
        self.assertEqual(config.paths.servers_path, self.home / "servers.json")

    def test_reads_settings_from_home(self) -> None:
        self._write("config.json", {"deployment": {"upload_concurrency": 4}})
        self.assertEqual(load_config().deployment.upload_concurrency, 4)

    def test_loads_custom_config(self) -> None:
        path = self._write(
            "custom.json",
            {
                "_comment": "ignored",
                "deployment": {"connect_timeout": 5, "_note": "ignored too"},
                "logging": {"level": "DEBUG"},
            },
        )
        config = load_config(str(path))
        self.assertEqual(config.deployment.connect_timeout, 5)
        self.assertEqual(config.deployment.settle_seconds, 3.0)
        self.assertEqual(config.logging.level, "DEBUG")

    def test_missing_explicit_file_is_an_error(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(str(self.home / "nope.json"))

    def test_invalid_json_is_an_error(self) -> None:
        path = self._write("broken.json", "{not json")
        with self.assertRaises(ConfigError):
            load_config(str(path))

    def test_unknown_key_is_an_error(self) -> None:
        path = self._write("typo.json", {"deployment": {"settle_secs": 1}})
        with self.assertRaises(ConfigError):
            load_config(str(path))

    def test_env_vars_override_file(self) -> None:
        self._write("config.json", {"deployment": {"settle_seconds": 10}})
        with mock.patch.dict(
            os.environ,
            {
                "DEPLOY_CLI_SETTLE_SECONDS": "0.5",
                "DEPLOY_CLI_CONNECT_TIMEOUT": "7",
                "DEPLOY_CLI_LOG_LEVEL": "info",
            },
        ):
            config = load_config()
        self.assertEqual(config.deployment.settle_seconds, 0.5)
        self.assertEqual(config.deployment.connect_timeout, 7)
        self.assertEqual(config.logging.level, "INFO")

    def test_unparsable_number_override_is_an_error(self) -> None:
        with mock.patch.dict(os.environ, {"DEPLOY_CLI_CONNECT_TIMEOUT": "soon"}):
            with self.assertRaises(ConfigError):
                load_config()


if __name__ == "__main__":
    unittest.main()
