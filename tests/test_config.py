from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from feed_categorizer.config import (
    load_author_mappings,
    load_category_rules,
    load_settings,
    resolve_credentials,
    settings_sha256,
)
from feed_categorizer.config_schema import AppSettings
from feed_categorizer.errors import ConfigError

from fakes import CATEGORIES


_VALID_YAML = """\
source:
  mode: shared_items
  record_count: 25

shared_items:
  username: curator
  user_slug: curator
  password_env: TEST_FEED_PASSWORD

http:
  timeout_seconds: 10
  retry_delay_seconds: 0.5

baseline:
  minimum_datetime: "2025-09-01T00:00:00Z"
  buffer_enabled: true
  buffer_minutes: 15
  title_marker: "Dew D"

links:
  campaign_domain: ".Example.com"
"""


class TestLoadSettings(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "settings.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_settings_ok(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = load_settings(self._write(td, _VALID_YAML))

        self.assertEqual(settings.source.mode, "shared_items")
        self.assertEqual(settings.source.record_count, 25)
        self.assertEqual(settings.shared_items.username, "curator")
        self.assertEqual(settings.http.timeout_seconds, 10)
        self.assertEqual(settings.baseline.buffer_minutes, 15)
        self.assertEqual(settings.baseline.title_marker, "dew d")
        self.assertEqual(settings.links.campaign_domain, "example.com")

    def test_empty_file_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = load_settings(self._write(td, ""))
        self.assertEqual(settings, AppSettings())
        self.assertEqual(settings.source.mode, "rss")

    def test_missing_file(self) -> None:
        with self.assertRaises(ConfigError):
            load_settings("/nonexistent/settings.yaml")

    def test_rejects_unknown_keys(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "source:\n  mode: rss\n  colour: blue\n")
            with self.assertRaises(ConfigError) as ctx:
                load_settings(path)
        self.assertIn("source.colour", str(ctx.exception))

    def test_shared_mode_requires_username(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "source:\n  mode: shared_items\n")
            with self.assertRaises(ConfigError):
                load_settings(path)

    def test_rejects_non_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_settings(self._write(td, "- a\n- b\n"))

    def test_settings_hash_is_stable(self) -> None:
        self.assertEqual(settings_sha256(AppSettings()), settings_sha256(AppSettings()))


class TestResolveCredentials(unittest.TestCase):
    def _shared(self) -> AppSettings:
        return AppSettings.model_validate(
            {
                "source": {"mode": "shared_items"},
                "shared_items": {"username": " curator ", "password_env": "TEST_FEED_PASSWORD"},
            }
        )

    def test_rss_needs_no_credentials(self) -> None:
        self.assertIsNone(resolve_credentials(AppSettings(), environ={}))

    def test_requires_env(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            resolve_credentials(self._shared(), environ={})
        self.assertIn("TEST_FEED_PASSWORD", str(ctx.exception))

    def test_reads_env(self) -> None:
        creds = resolve_credentials(self._shared(), environ={"TEST_FEED_PASSWORD": "pw"})
        assert creds is not None
        self.assertEqual(creds.as_auth(), ("curator", "pw"))


class TestRuleFiles(unittest.TestCase):
    def test_packaged_category_rules(self) -> None:
        rules = load_category_rules()
        self.assertIn("AI", rules.names)
        self.assertIn("Security", rules.names)
        self.assertEqual(rules.default_category, "General")
        self.assertIn("ai", rules.whole_word_patterns)

    def test_category_rules_from_path(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "categories.json"
            path.write_text(json.dumps(CATEGORIES), encoding="utf-8")
            rules = load_category_rules(path)
        self.assertEqual(rules.names, ("Web Development", "Data Science", "DevOps", "AI"))
        self.assertEqual(sorted(rules.whole_word_patterns), ["ai", "ml"])

    def test_missing_or_invalid_rules_fall_back(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            missing = load_category_rules(Path(td) / "missing.json")

            bad = Path(td) / "bad.json"
            bad.write_text("{not json", encoding="utf-8")
            invalid = load_category_rules(bad)

        for rules in (missing, invalid):
            self.assertEqual(rules.names, ())
            self.assertEqual(rules.default_category, "General")

    def test_non_string_keyword_is_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "categories.json"
            path.write_text(json.dumps({"categories": {"AI": {"titleKeywords": ["ai", 3]}}}), encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_category_rules(path)

    def test_author_mappings(self) -> None:
        packaged = load_author_mappings()
        self.assertFalse(packaged.is_empty)

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "authors.json"
            path.write_text(
                json.dumps({"authorExact": [{"keyword": "admin", "author": "Site Team"}]}),
                encoding="utf-8",
            )
            mappings = load_author_mappings(path)
            missing = load_author_mappings(Path(td) / "missing.json")

        self.assertEqual(len(mappings.author_exact), 1)
        self.assertEqual(mappings.author_exact[0].author, "Site Team")
        self.assertTrue(missing.is_empty)


if __name__ == "__main__":
    unittest.main()
