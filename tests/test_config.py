import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from siterestore.core.config import CONFIG_ENV_NAME, build_restore_context, resolve_config_path
from siterestore.core.web_config import WebConfig


class WebConfigTests(unittest.TestCase):
    def test_reads_basic_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            conf = root / "restore.env"
            conf.write_text(
                "\n".join(
                    [
                        "# restore settings",
                        "LOG_FILE='restore.log'",
                        "MYSQL_RECORDS_LIMIT=100",
                        "EXTRACT_MAX_SECONDS=2.5",
                        "ARCHIVE_DIR=./uploads",
                    ]
                ),
                encoding="utf-8",
            )
            cfg = WebConfig(conf, root, environ={})
            self.assertEqual(cfg.get_str("LOG_FILE", "x"), "restore.log")
            self.assertEqual(cfg.get_int("MYSQL_RECORDS_LIMIT", 0), 100)
            self.assertEqual(cfg.get_float("EXTRACT_MAX_SECONDS", 0.0), 2.5)
            self.assertEqual(cfg.get_path("ARCHIVE_DIR", root / "none"), root / "uploads")

    def test_missing_file_and_bad_values_fall_back(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            cfg = WebConfig(root / "missing.env", root, environ={})
            self.assertEqual(cfg.values, {})
            cfg.values = {"LIMIT": "abc", "LOW": "0", "BLANK": " "}
            self.assertEqual(cfg.get_int("LIMIT", 7), 7)
            self.assertEqual(cfg.get_int("LOW", 7, minimum=1), 1)
            self.assertEqual(cfg.get_path("BLANK", root / "default"), root / "default")

    def test_environment_overrides_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            conf = root / "restore.env"
            conf.write_text("MYSQL_RECORDS_LIMIT=100\nLOG_FILE=restore.log\n", encoding="utf-8")
            environ = {"SITE_RESTORE_MYSQL_RECORDS_LIMIT": "25", "SITE_RESTORE_": "ignored", "OTHER": "x"}
            cfg = WebConfig(conf, root, environ=environ)
            self.assertEqual(cfg.get_int("MYSQL_RECORDS_LIMIT", 0), 25)
            self.assertEqual(cfg.get_str("LOG_FILE", ""), "restore.log")
            self.assertNotIn("", cfg.values)
            self.assertNotIn("OTHER", cfg.values)


class RestoreContextConfigTests(unittest.TestCase):
    def test_env_var_selects_config_file(self):
        with patch.dict(os.environ, {CONFIG_ENV_NAME: "/etc/site/restore.env"}):
            self.assertEqual(resolve_config_path("/srv/app"), Path("/etc/site/restore.env"))
        with patch.dict(os.environ, {CONFIG_ENV_NAME: ""}):
            self.assertEqual(resolve_config_path("/srv/app"), Path("/srv/app") / "restore.env")

    def test_build_context_defaults_and_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            conf = root / "restore.env"
            conf.write_text("MYSQL_RECORDS_LIMIT=0\nDISPLAY_TZ=Not/AZone\n", encoding="utf-8")
            ctx = build_restore_context(WebConfig(conf, root, environ={}), root)
            self.assertEqual(ctx.ROOT_DIR, root)
            self.assertEqual(ctx.ARCHIVE_DIR, root / "archives")
            self.assertEqual(ctx.LOG_FILE, root / "site_restore.log")
            self.assertEqual(ctx.MYSQL_RECORDS_LIMIT, 1)
            self.assertEqual(str(ctx.DISPLAY_TZ), "UTC")
            self.assertEqual(ctx.DATABASE_URL, "")

            ctx.log_restore_action("check-system", command="probe\nline")
            lines = ctx.LOG_FILE.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 1)
            self.assertIn("<restore> [restore/check-system] probe line", lines[0])


if __name__ == "__main__":
    unittest.main()
