from __future__ import annotations

import unittest
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType

from feed_categorizer.baseline import FilterBaseline
from feed_categorizer.pipeline import PipelineResult
from feed_categorizer.post import CanonicalPost
from feed_categorizer.tree import (
    CategoryNode,
    PostNode,
    StatusNode,
    build_tree,
    children,
    render_label,
    render_text,
)

_BASELINE = FilterBaseline(cutoff=datetime(2025, 9, 26, 12, 0, tzinfo=timezone.utc), source="fallback")


def _result(categories: dict[str, tuple[CanonicalPost, ...]]) -> PipelineResult:
    posts = tuple(p for group in categories.values() for p in group)
    return PipelineResult(posts=posts, categories=MappingProxyType(categories), baseline=_BASELINE)


class TestBuildTree(unittest.TestCase):
    def test_loading_state(self) -> None:
        nodes = build_tree(None)
        self.assertEqual(len(nodes), 1)
        self.assertEqual(nodes[0].kind, "status")

    def test_empty_result_reports_cutoff(self) -> None:
        nodes = build_tree(_result({"AI": (), "General": ()}))
        self.assertEqual(len(nodes), 1)
        self.assertIsInstance(nodes[0], StatusNode)
        self.assertIn("2025-09-26T12:00:00+00:00", render_label(nodes[0]))

    def test_categories_and_posts(self) -> None:
        post = CanonicalPost(
            title="Hello",
            link="https://example.com/h",
            category="AI",
            source_label="Blog",
            author="Jane",
        )
        nodes = build_tree(_result({"AI": (post,), "General": ()}))
        self.assertEqual([n.kind for n in nodes], ["category"])

        category = nodes[0]
        assert isinstance(category, CategoryNode)
        self.assertEqual(render_label(category), "AI (1)")
        self.assertEqual(children(category), (PostNode(post),))
        self.assertEqual(render_label(children(category)[0]), "Hello by Jane [Blog]")

        text = render_text(nodes)
        self.assertEqual(text, "AI (1)\n  Hello by Jane [Blog]")

    def test_include_empty(self) -> None:
        nodes = build_tree(_result({"AI": (), "General": ()}), include_empty=True)
        self.assertEqual([render_label(n) for n in nodes], ["AI (0)", "General (0)"])

    def test_unknown_kind_rejected(self) -> None:
        @dataclass(frozen=True)
        class Bogus:
            kind: str = "bogus"

        with self.assertRaises(TypeError):
            render_label(Bogus())  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            children(Bogus())  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
