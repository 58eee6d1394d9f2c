"""
Display-neutral tree of a refresh result.

Every node carries an explicit `kind` discriminant; render_label() handles each kind
and rejects anything else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

from .pipeline import PipelineResult
from .post import CanonicalPost


@dataclass(frozen=True)
class PostNode:
    post: CanonicalPost
    kind: Literal["post"] = "post"


@dataclass(frozen=True)
class CategoryNode:
    name: str
    posts: tuple[PostNode, ...]
    kind: Literal["category"] = "category"


@dataclass(frozen=True)
class StatusNode:
    message: str
    kind: Literal["status"] = "status"


TreeNode = Union[CategoryNode, PostNode, StatusNode]


def build_tree(result: PipelineResult | None, *, include_empty: bool = False) -> list[TreeNode]:
    if result is None:
        return [StatusNode("Loading…")]

    nodes: list[TreeNode] = []
    for name, posts in result.categories.items():
        if not posts and not include_empty:
            continue
        nodes.append(CategoryNode(name=name, posts=tuple(PostNode(p) for p in posts)))

    if not nodes:
        nodes.append(StatusNode(f"No posts newer than {result.baseline.cutoff.isoformat()}"))
    return nodes


def children(node: TreeNode) -> tuple[TreeNode, ...]:
    if node.kind == "category":
        return node.posts
    if node.kind in ("post", "status"):
        return ()
    raise TypeError(f"Unknown tree node kind: {node.kind!r}")


def render_label(node: TreeNode) -> str:
    if node.kind == "category":
        return f"{node.name} ({len(node.posts)})"
    if node.kind == "post":
        post = node.post
        return f"{post.title} by {post.author} [{post.source_label}]"
    if node.kind == "status":
        return node.message
    raise TypeError(f"Unknown tree node kind: {node.kind!r}")


def render_text(nodes: list[TreeNode], *, indent: str = "  ") -> str:
    lines: list[str] = []

    def _walk(node: TreeNode, depth: int) -> None:
        lines.append(f"{indent * depth}{render_label(node)}")
        for child in children(node):
            _walk(child, depth + 1)

    for node in nodes:
        _walk(node, 0)
    return "\n".join(lines)
