"""
Tests for locating and decoding the embedded page payload.
"""
import json
import unittest
import sys
import os

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exceptions import PayloadDecodeError, PayloadNotFoundError
from services.payload import JsonNode, PayloadLocator, PayloadParser

URL = "https://www.tiktok.com/@john.doe/video/7123456789012345678"


class TestPayloadLocator(unittest.TestCase):
    """Test cases for PayloadLocator."""

    def setUp(self):
        self.locator = PayloadLocator()

    def test_locate(self):
        html = ('<html><head><script>var x = 1;</script>'
                '<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__" type="application/json">{"a": 1}</script>'
                '</head><body></body></html>')
        self.assertEqual(self.locator.locate(html), '{"a": 1}')

    def test_attribute_order_does_not_matter(self):
        html = ('<script type="application/json" nonce="abc" '
                'id="__UNIVERSAL_DATA_FOR_REHYDRATION__">{"b": [1, 2]}</script>')
        self.assertEqual(self.locator.locate(html), '{"b": [1, 2]}')

    def test_markup_inside_payload_is_kept(self):
        """Script content is returned verbatim, including HTML-looking strings."""
        payload = json.dumps({"desc": "<b>bold</b> & more"})
        html = f'<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__">{payload}</script>'
        self.assertEqual(self.locator.locate(html), payload)

    def test_missing_script(self):
        html = '<html><script id="SIGI_STATE">{}</script></html>'
        with self.assertRaises(PayloadNotFoundError) as ctx:
            self.locator.locate(html, url=URL)
        self.assertEqual(ctx.exception.error_code, "PAYLOAD_NOT_FOUND")
        self.assertEqual(ctx.exception.url, URL)
        self.assertEqual(ctx.exception.stage, "locate")

    def test_empty_html(self):
        with self.assertRaises(PayloadNotFoundError):
            self.locator.locate("")

    def test_empty_script(self):
        html = '<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__"></script>'
        self.assertEqual(self.locator.locate(html), "")


class TestPayloadParser(unittest.TestCase):
    """Test cases for PayloadParser."""

    def test_parse(self):
        tree = PayloadParser().parse('{"a": {"b": 2}}')
        self.assertEqual(tree["a"]["b"].value, 2)

    def test_invalid_json(self):
        with self.assertRaises(PayloadDecodeError) as ctx:
            PayloadParser().parse("{not json", url=URL)
        self.assertEqual(ctx.exception.error_code, "PAYLOAD_DECODE_ERROR")
        self.assertEqual(ctx.exception.http_status_code, 422)
        self.assertIsInstance(ctx.exception.cause, ValueError)

    def test_empty_text(self):
        with self.assertRaises(PayloadDecodeError):
            PayloadParser().parse("")


class TestJsonNode(unittest.TestCase):
    """Test cases for JsonNode navigation and coercion."""

    def test_missing_paths_never_raise(self):
        node = JsonNode({"a": [1, 2], "b": None})
        self.assertFalse(node["x"]["y"]["z"].exists)
        self.assertFalse(node["a"]["0"].exists)
        self.assertIsNone(node["x"].value)

    def test_null_exists(self):
        node = JsonNode({"b": None})
        self.assertTrue(node["b"].exists)
        self.assertIsNone(node["b"].value)

    def test_string(self):
        node = JsonNode({"s": "text", "i": 12, "f": 1.5, "b": True, "l": [1], "n": None})
        self.assertEqual(node["s"].string(), "text")
        self.assertEqual(node["i"].string(), "12")
        self.assertEqual(node["f"].string(), "1.5")
        self.assertEqual(node["b"].string(), "")
        self.assertEqual(node["l"].string(), "")
        self.assertEqual(node["n"].string("fallback"), "fallback")
        self.assertEqual(node["missing"].string(), "")

    def test_integer(self):
        node = JsonNode({
            "i": 42, "f": 3.9, "s": " 17 ", "sf": "2.5", "bad": "12abc",
            "b": True, "inf": float("inf"), "l": [1],
        })
        self.assertEqual(node["i"].integer(), 42)
        self.assertEqual(node["f"].integer(), 3)
        self.assertEqual(node["s"].integer(), 17)
        self.assertEqual(node["sf"].integer(), 2)
        self.assertEqual(node["bad"].integer(), 0)
        self.assertEqual(node["b"].integer(), 0)
        self.assertEqual(node["inf"].integer(-1), -1)
        self.assertEqual(node["l"].integer(), 0)
        self.assertEqual(node["missing"].integer(7), 7)

    def test_as_dict(self):
        node = JsonNode({"a": {"b": 1}, "c": [1]})
        self.assertEqual(node["a"].as_dict(), {"b": 1})
        self.assertEqual(node["c"].as_dict(), {})
        self.assertTrue(node["a"].is_object)
        self.assertFalse(node["c"].is_object)


if __name__ == '__main__':
    unittest.main()
