from __future__ import annotations

import json
import unittest
from datetime import datetime, timezone
from unittest import mock

from feed_categorizer.authors import AuthorMappings, AuthorRule
from feed_categorizer.categorize import CategoryRules
from feed_categorizer.config import Credentials
from feed_categorizer.config_schema import AppSettings
from feed_categorizer.pipeline import group_by_category, refresh, source_url, with_record_count
from feed_categorizer.post import CanonicalPost

from fakes import CATEGORIES, REFERENCE_XML, RSS_XML, FakeFetcher, FakeResponse, FakeSession

_NOW = datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc)
_FEED_URL = "https://example.com/feed"
_REFERENCE_URL = "https://www.alvinashcraft.com/feed/"


def _rules() -> CategoryRules:
    return CategoryRules.from_definitions(
        CATEGORIES["categories"],
        default_category=CATEGORIES["defaultCategory"],
        whole_word_keywords=CATEGORIES["wholeWordKeywords"],
    )


def _rss_settings(**baseline: object) -> AppSettings:
    return AppSettings.model_validate(
        {
            "source": {"mode": "rss", "feed_url": _FEED_URL, "record_count": 50},
            "baseline": dict(baseline),
        }
    )


class TestSourceUrl(unittest.TestCase):
    def test_record_count_param(self) -> None:
        self.assertEqual(with_record_count("https://e.com/rss", 25), "https://e.com/rss?n=25")
        self.assertEqual(with_record_count("https://e.com/rss?a=1&n=5", 25), "https://e.com/rss?a=1&n=25")

    def test_rss_and_shared_urls(self) -> None:
        self.assertEqual(source_url(_rss_settings()), "https://example.com/feed?n=50")

        shared = AppSettings.model_validate(
            {"source": {"mode": "shared_items"}, "shared_items": {"username": "me", "user_slug": "someone"}}
        )
        self.assertEqual(
            source_url(shared),
            "https://newsblur.com/social/stories/109116/someone?n=100",
        )


class TestRefreshRss(unittest.TestCase):
    def test_reference_baseline_filters_and_groups(self) -> None:
        fetcher = FakeFetcher({_FEED_URL: RSS_XML, _REFERENCE_URL: REFERENCE_XML})

        result = refresh(
            _rss_settings(),
            rules=_rules(),
            authors=AuthorMappings(),
            fetcher=fetcher,
            now=_NOW,
        )

        self.assertEqual(result.baseline.source, "reference_feed")
        self.assertEqual(result.baseline.cutoff, datetime(2025, 9, 26, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(result.fetched, 3)
        self.assertEqual(len(result.posts), 2)

        self.assertEqual(
            list(result.categories),
            ["Web Development", "Data Science", "DevOps", "AI", "General"],
        )
        web = result.categories["Web Development"]
        self.assertEqual([p.link for p in web], ["https://example.com/react-typescript?id=7"])
        self.assertEqual(web[0].author, "John Doe")
        self.assertEqual(web[0].category, "Web Development")
        self.assertEqual([p.title for p in result.categories["Data Science"]], ["Python Data Science Tutorial"])
        self.assertEqual(result.categories["DevOps"], ())

        urls = sorted(c["url"] for c in fetcher.calls)
        self.assertEqual(urls, ["https://example.com/feed?n=50", _REFERENCE_URL])
        self.assertTrue(all(c["auth"] is None for c in fetcher.calls))

        payload = json.loads(json.dumps(result.to_dict()))
        self.assertEqual(payload["baseline"]["source"], "reference_feed")
        self.assertEqual(len(payload["posts"]), 2)

    def test_override_skips_reference_lookup(self) -> None:
        fetcher = FakeFetcher({_FEED_URL: RSS_XML, _REFERENCE_URL: REFERENCE_XML})
        result = refresh(
            _rss_settings(minimum_datetime="2023-01-01T00:00:00Z"),
            rules=_rules(),
            authors=AuthorMappings(),
            fetcher=fetcher,
            now=_NOW,
        )
        self.assertEqual(result.baseline.source, "override")
        self.assertEqual(len(result.posts), 3)
        self.assertEqual([c["url"] for c in fetcher.calls], ["https://example.com/feed?n=50"])

    def test_source_label_override_and_author_mapping(self) -> None:
        fetcher = FakeFetcher({_FEED_URL: RSS_XML})
        settings = AppSettings.model_validate(
            {
                "source": {"feed_url": _FEED_URL, "label": "Curated"},
                "baseline": {"minimum_datetime": "2025-09-01T00:00:00Z"},
            }
        )
        authors = AuthorMappings(author_exact=(AuthorRule("jane smith", "J. Smith"),))
        result = refresh(settings, rules=_rules(), authors=authors, fetcher=fetcher, now=_NOW)
        self.assertEqual({p.source_label for p in result.posts}, {"Curated"})
        self.assertIn("J. Smith", [p.author for p in result.posts])

    def test_unreachable_source_yields_empty_result(self) -> None:
        result = refresh(
            _rss_settings(minimum_datetime="2025-09-01T00:00:00Z"),
            rules=_rules(),
            authors=AuthorMappings(),
            fetcher=FakeFetcher({}),
            now=_NOW,
        )
        self.assertEqual(result.posts, ())
        self.assertTrue(all(not posts for posts in result.categories.values()))

    def test_owned_fetcher_sessions_are_closed(self) -> None:
        created: list[FakeSession] = []

        def _new_session() -> FakeSession:
            session = FakeSession()
            session.add("https://example.com/feed?n=50", FakeResponse(200, content=RSS_XML))
            session.add(_REFERENCE_URL, FakeResponse(200, content=REFERENCE_XML))
            created.append(session)
            return session

        with mock.patch("feed_categorizer.fetch.requests.Session", new=_new_session):
            result = refresh(_rss_settings(), rules=_rules(), authors=AuthorMappings(), now=_NOW)

        self.assertEqual(result.baseline.source, "reference_feed")
        self.assertEqual(len(result.posts), 2)
        self.assertGreaterEqual(len(created), 1)
        self.assertTrue(all(s.closed for s in created))


class TestRefreshSharedItems(unittest.TestCase):
    def test_authenticated_fetch_clean_and_dedupe(self) -> None:
        stories = {
            "stories": [
                {
                    "story_title": "Blazor grid tips",
                    "story_permalink": "https://www.syncfusion.com/blogs/post/grid?utm_source=newsblur",
                    "story_authors": "A, B",
                    "shared_date": "2025-09-30 10:00:00",
                },
                {
                    "story_title": "Blazor grid tips (again)",
                    "story_permalink": "https://www.syncfusion.com/blogs/post/grid?utm_medium=feed",
                    "shared_date": "2025-09-30 11:00:00",
                },
                {
                    "story_title": "Docker in production",
                    "story_permalink": "https://example.com/docker",
                    "shared_date": "1759226400",
                },
            ]
        }
        settings = AppSettings.model_validate(
            {
                "source": {"mode": "shared_items"},
                "shared_items": {"username": "me", "label": "Shared"},
                "baseline": {"minimum_datetime": "2025-09-29T00:00:00Z"},
            }
        )
        fetcher = FakeFetcher(
            {"https://newsblur.com/social/stories/": json.dumps(stories).encode("utf-8")}
        )

        result = refresh(
            settings,
            rules=_rules(),
            authors=AuthorMappings(),
            credentials=Credentials("me", "secret"),
            fetcher=fetcher,
            now=_NOW,
        )

        self.assertEqual(fetcher.calls[0]["auth"], ("me", "secret"))
        self.assertEqual(result.fetched, 3)
        self.assertEqual(result.deduplicated, 2)

        links = sorted(p.link for p in result.posts)
        self.assertEqual(
            links,
            [
                "https://example.com/docker",
                "https://www.syncfusion.com/blogs/post/grid?utm_campaign=edmoct25",
            ],
        )
        grid = next(p for p in result.posts if "syncfusion" in p.link)
        self.assertEqual(grid.title, "Blazor grid tips")
        self.assertEqual(grid.author, "A & B")
        self.assertEqual(grid.source_label, "Shared")
        self.assertEqual([p.title for p in result.categories["DevOps"]], ["Docker in production"])


class TestGroupByCategory(unittest.TestCase):
    def test_newest_first_undated_last_and_unexpected_appended(self) -> None:
        rules = CategoryRules.from_definitions({"A": ["alpha"]})
        posts = [
            CanonicalPost(title="old", link="1", published_at="2025-09-01T00:00:00Z", category="A"),
            CanonicalPost(title="undated", link="2", published_at="???", category="A"),
            CanonicalPost(title="new", link="3", published_at="2025-09-30T00:00:00Z", category="A"),
            CanonicalPost(title="stray", link="4", published_at="2025-09-30T00:00:00Z", category="Z"),
        ]
        groups = group_by_category(posts, rules)
        self.assertEqual(list(groups), ["A", "General", "Z"])
        self.assertEqual([p.title for p in groups["A"]], ["new", "old", "undated"])

    def test_out_of_range_timestamp_sorts_as_undated(self) -> None:
        rules = CategoryRules.from_definitions({"A": ["alpha"]})
        posts = [
            CanonicalPost(title="edge", link="1", published_at="9999-12-31T23:00:00-05:00", category="A"),
            CanonicalPost(title="dated", link="2", published_at="2025-09-30T00:00:00Z", category="A"),
        ]
        groups = group_by_category(posts, rules)
        self.assertEqual([p.title for p in groups["A"]], ["dated", "edge"])
        self.assertEqual(groups["General"], ())


if __name__ == "__main__":
    unittest.main()
