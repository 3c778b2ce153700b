import json
import logging
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from core import paths as core_paths
from core.logging_utils import JsonLogFormatter, redact_secret


class CorePathsTests(unittest.TestCase):
    def test_resolve_working_dir_prefers_environment_override(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "home"
            with mock.patch.dict("os.environ", {"WORKSHELF_HOME": str(target)}):
                resolved = core_paths.resolve_working_dir()
            self.assertEqual(resolved, target.resolve())
            self.assertTrue((resolved / "data").is_dir())

    def test_falls_back_to_local_appdata(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env = {"LOCALAPPDATA": tmp}
            with mock.patch.dict("os.environ", env), mock.patch.dict("os.environ", {"WORKSHELF_HOME": ""}):
                resolved = core_paths.resolve_working_dir()
            self.assertEqual(resolved, Path(tmp).resolve() / "WorkShelf")

    def test_file_locations(self) -> None:
        base = Path("/w")
        self.assertEqual(core_paths.get_catalog_path(base), base / "data" / "library.json")
        self.assertEqual(core_paths.get_settings_path(base), base / "settings.json")
        self.assertEqual(core_paths.get_logs_dir(base), base / "logs")


class LoggingUtilsTests(unittest.TestCase):
    def test_json_formatter_includes_extra_fields(self) -> None:
        record = logging.makeLogRecord({"name": "workshelf.test", "levelname": "INFO", "msg": "hi %s", "args": ("x",)})
        record.work_id = "RJ123456"

        payload = json.loads(JsonLogFormatter().format(record))

        self.assertEqual(payload["message"], "hi x")
        self.assertEqual(payload["work_id"], "RJ123456")
        self.assertNotIn("args", payload)

    def test_redact_secret(self) -> None:
        self.assertEqual(redact_secret(None), "")
        self.assertEqual(redact_secret("abc"), "***")
        self.assertEqual(redact_secret("abcdefghij"), "abc***ij")


if __name__ == "__main__":
    unittest.main()
