import io
import tarfile
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock, patch
from zoneinfo import ZoneInfo

from siterestore.core.errors import ArchiveCorrupted, IllegalCompression, NotFound, PreconditionFailed
from siterestore.services import archive_extractor, multipart
from siterestore.state.cursors import ExtractionCursor


def make_ctx(root, max_bytes=64 * 1024 * 1024):
    root = Path(root)
    return SimpleNamespace(
        ROOT_DIR=root,
        ARCHIVE_DIR=root / "archives",
        LOG_DIR=root,
        LOG_FILE=root / "site_restore.log",
        DISPLAY_TZ=ZoneInfo("UTC"),
        MYSQL_RECORDS_LIMIT=250,
        EXTRACT_MAX_SECONDS=30.0,
        EXTRACT_MAX_BYTES=max_bytes,
        MAX_UPLOAD_SIZE=1024 * 1024,
        DATABASE_URL="",
        log_restore_action=Mock(),
        log_restore_exception=Mock(),
    )


def make_tar(path, members):
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w") as tar:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


class ArchiveExtractorTests(unittest.TestCase):
    def test_single_archive_extracts_in_one_call(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp)
            make_tar(ctx.ARCHIVE_DIR / "site.tar", [("index.php", b"<?php"), ("db.sql", b"SELECT 1;\n")])
            dest = Path(tmp) / "site"
            result = archive_extractor.extract(ctx, "site.tar", dest)
            self.assertTrue(result.cursor.finished)
            self.assertEqual(result.cursor.part_index, 1)
            self.assertEqual(result.total_size, (ctx.ARCHIVE_DIR / "site.tar").stat().st_size)
            self.assertEqual(result.cursor.processed, result.total_size)
            self.assertEqual((dest / "db.sql").read_bytes(), b"SELECT 1;\n")

    def test_multipart_sequencing_is_ordered_and_monotonic(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp, max_bytes=1)
            make_tar(ctx.ARCHIVE_DIR / "site-part1.tar", [("a.txt", b"a" * 600), ("b.txt", b"b" * 10)])
            make_tar(ctx.ARCHIVE_DIR / "site-part2.tar", [("c.txt", b"c" * 30), ("d.txt", b"d" * 900)])
            (ctx.ARCHIVE_DIR / "site-multipart.csv").write_text(
                "site-part1.tar,0\nsite-part2.tar,0\n", encoding="utf-8"
            )
            dest = Path(tmp) / "site"
            cursor = ExtractionCursor()
            seen = []
            parts = []
            processed = []
            for _ in range(20):
                result = archive_extractor.extract(ctx, "site-multipart.csv", dest, cursor=cursor)
                seen.extend(e["path"] for e in result.entries)
                parts.append(result.part_file)
                processed.append(result.cursor.processed)
                cursor = result.cursor
                if cursor.finished:
                    break
            self.assertTrue(cursor.finished)
            self.assertEqual(seen, ["a.txt", "b.txt", "c.txt", "d.txt"])
            self.assertEqual(parts, ["site-part1.tar", "site-part1.tar", "site-part2.tar", "site-part2.tar"])
            self.assertEqual(processed, sorted(processed))
            self.assertEqual(processed[-1], result.total_size)
            self.assertEqual(cursor.part_index, 2)
            self.assertEqual((dest / "d.txt").read_bytes(), b"d" * 900)

    def test_listing_uses_the_same_cursor(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp)
            make_tar(ctx.ARCHIVE_DIR / "site.tar", [("index.php", b"<?php")])
            result = archive_extractor.list_contents(ctx, "site.tar")
            self.assertEqual(result.entries[0]["path"], "index.php")
            self.assertTrue(result.cursor.finished)
            self.assertFalse((Path(tmp) / "index.php").exists())

    def test_encrypted_part_is_refused(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp)
            ctx.ARCHIVE_DIR.mkdir()
            (ctx.ARCHIVE_DIR / "site.tgz").write_bytes(b"0000000000004096" + b"\xaa" * 512)
            with self.assertRaises(PreconditionFailed):
                archive_extractor.extract(ctx, "site.tgz", Path(tmp) / "site")

    def test_active_part_is_probed_once(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp)
            make_tar(ctx.ARCHIVE_DIR / "site.tar", [("index.php", b"<?php")])
            with patch.object(multipart, "is_encrypted_file", wraps=multipart.is_encrypted_file) as probe:
                archive_extractor.extract(ctx, "site.tar", Path(tmp) / "site")
            probe.assert_called_once()
            self.assertEqual(probe.call_args.args[1], "site.tar")

    def test_missing_backup_and_bad_part_index(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp)
            make_tar(ctx.ARCHIVE_DIR / "site.tar", [("index.php", b"<?php")])
            with self.assertRaises(NotFound):
                archive_extractor.extract(ctx, "absent.tar", Path(tmp) / "site")
            with self.assertRaises(NotFound):
                archive_extractor.extract(ctx, "site.tar", Path(tmp) / "site", cursor=ExtractionCursor(part_index=3))

    def test_archive_errors_surface(self):
        with tempfile.TemporaryDirectory() as tmp:
            ctx = make_ctx(tmp)
            ctx.ARCHIVE_DIR.mkdir()
            (ctx.ARCHIVE_DIR / "site.zip").write_bytes(b"PK\x03\x04" + b"\x00" * 600)
            (ctx.ARCHIVE_DIR / "broken.tar").write_bytes(b"broken header" * 100)
            with self.assertRaises(IllegalCompression):
                archive_extractor.extract(ctx, "site.zip", Path(tmp) / "site")
            with self.assertRaises(ArchiveCorrupted):
                archive_extractor.extract(ctx, "broken.tar", Path(tmp) / "site")


if __name__ == "__main__":
    unittest.main()
