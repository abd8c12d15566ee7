import unittest
from unittest.mock import patch

from siterestore.services import serialized_rewriter
from siterestore.services.serialized_rewriter import (
    RewriteSpec,
    apply_rewrites,
    build_rewrite_specs,
    do_serialized_fix,
    rewrite,
)


class SerializedRewriterTests(unittest.TestCase):
    def test_repairs_length_prefix_after_replace(self):
        self.assertEqual(rewrite('a:1:{i:0;s:5:"hello";}', "hello", "hi"), 'a:1:{i:0;s:2:"hi";}')

    def test_length_is_counted_in_bytes(self):
        self.assertEqual(rewrite('a:1:{i:0;s:3:"abc";}', "abc", "é"), 'a:1:{i:0;s:2:"é";}')

    def test_length_is_counted_in_connection_charset(self):
        self.assertEqual(
            rewrite('a:1:{i:0;s:3:"abc";}', "abc", "é", encoding="cp1252"), 'a:1:{i:0;s:1:"é";}'
        )

    def test_undecodable_bytes_count_once(self):
        text = b'a:1:{i:0;s:3:"\xffab";}'.decode("utf-8", "surrogateescape")
        result = rewrite(text, "ab", "xyz")
        self.assertEqual(result.encode("utf-8", "surrogateescape"), b'a:1:{i:0;s:4:"\xffxyz";}')

    def test_lone_serialized_fragment_keeps_its_prefix(self):
        self.assertEqual(rewrite('s:5:"hello";', "hello", "hi"), 's:5:"hi";')

    def test_sql_escaped_serialized_values(self):
        statement = (
            "INSERT INTO wp_options VALUES (1,'widget',"
            "'a:2:{s:3:\\\"url\\\";s:18:\\\"http://example.com\\\";s:4:\\\"note\\\";s:0:\\\"\\\";}');"
        )
        result = rewrite(statement, "http://example.com", "https://new.example.org")
        self.assertIn('s:23:\\"https://new.example.org\\";', result)
        self.assertIn('s:3:\\"url\\";', result)
        self.assertIn('s:0:\\"\\";', result)

    def test_plain_text_is_only_replaced(self):
        text = "UPDATE wp_posts SET guid = 'http://example.com/?p=1';"
        self.assertEqual(
            rewrite(text, "http://example.com", "https://example.org"),
            "UPDATE wp_posts SET guid = 'https://example.org/?p=1';",
        )

    def test_fix_failure_falls_back_to_plain_replace(self):
        with patch.object(serialized_rewriter, "do_serialized_fix", side_effect=ValueError("bad")):
            result = rewrite('a:1:{i:0;s:5:"hello";}', "hello", "hi")
        self.assertEqual(result, 'a:1:{i:0;s:5:"hi";}')
        with patch.object(serialized_rewriter, "do_serialized_fix", return_value=""):
            result = rewrite('a:1:{i:0;s:5:"hello";}', "hello", "hi")
        self.assertEqual(result, 'a:1:{i:0;s:5:"hi";}')

    def test_rewrite_is_idempotent(self):
        specs = [RewriteSpec("http://old.test", "https://new.example")]
        statement = "INSERT INTO t VALUES ('a:1:{i:0;s:15:\"http://old.test\";}');"
        once = apply_rewrites(statement, specs)
        self.assertEqual(apply_rewrites(once, specs), once)
        self.assertEqual(do_serialized_fix(once), once)
        self.assertIn('s:19:"https://new.example"', once)

    def test_spec_order_and_activation(self):
        specs = build_rewrite_specs("http://a.test", "http://b.test", "http://a.test/wp", "http://b.test/wp")
        self.assertEqual([s.search for s in specs], ["http://a.test/wp", "http://a.test"])
        self.assertEqual(specs[0].replace, "http://b.test/wp")
        self.assertEqual(build_rewrite_specs("http://a.test", "", "", ""), [])
        specs = build_rewrite_specs("http://a.test/home", "http://b.test/home", "", "")
        self.assertEqual(specs, [RewriteSpec("http://a.test/home", "http://b.test/home")])


if __name__ == "__main__":
    unittest.main()
