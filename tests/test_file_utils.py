import tempfile
import unittest
from pathlib import Path
from zoneinfo import ZoneInfo

from siterestore.core.errors import NotFound, RestoreError
from siterestore.core.filesystem_utils import (
    LocalFilesystem,
    format_mtime,
    safe_filename_in_dir,
)


class FileUtilsTests(unittest.TestCase):
    def test_safe_filename_in_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp)
            (base / "sub").mkdir()
            self.assertEqual(safe_filename_in_dir(base, "backup.tgz"), "backup.tgz")
            self.assertIsNone(safe_filename_in_dir(base, "../backup.tgz"))
            self.assertIsNone(safe_filename_in_dir(base, "sub"))
            self.assertIsNone(safe_filename_in_dir(base, ""))

    def test_format_mtime(self):
        self.assertEqual(format_mtime(0, ZoneInfo("UTC"), "%d %b,%Y %H:%M"), "01 Jan,1970 00:00")


class LocalFilesystemTests(unittest.TestCase):
    def test_list_read_and_sizes(self):
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp)
            (base / "a.txt").write_bytes(b"abc")
            (base / "dir").mkdir()
            (base / "dir" / "b.txt").write_bytes(b"hello")
            fs = LocalFilesystem(base)
            listing = {item["path"]: item for item in fs.list()}
            self.assertEqual(set(listing), {"a.txt", "dir"})
            self.assertTrue(listing["dir"]["is_dir"])
            self.assertEqual(listing["a.txt"]["size"], 3)
            self.assertEqual([item["path"] for item in fs.list("dir")], ["dir/b.txt"])
            self.assertEqual(fs.read("dir/b.txt"), b"hello")
            self.assertEqual(fs.file_size("a.txt"), 3)
            with fs.read_stream("a.txt") as stream:
                self.assertEqual(stream.read(2), b"ab")

    def test_missing_and_escaping_paths(self):
        with tempfile.TemporaryDirectory() as tmp:
            fs = LocalFilesystem(tmp)
            with self.assertRaises(NotFound):
                fs.read("missing.bin")
            with self.assertRaises(NotFound):
                fs.path("../outside")
            self.assertFalse(fs.exists("../outside"))

    def test_delete_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp)
            (base / "xcloner-abc" / "nested").mkdir(parents=True)
            fs = LocalFilesystem(base)
            fs.delete_directory("xcloner-abc")
            self.assertFalse((base / "xcloner-abc").exists())
            fs.delete_directory("xcloner-abc")
            with self.assertRaises(RestoreError):
                fs.delete_directory(".")


if __name__ == "__main__":
    unittest.main()
