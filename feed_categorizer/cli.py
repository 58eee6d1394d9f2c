from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from .config import (
    load_author_mappings,
    load_category_rules,
    load_settings,
    resolve_credentials,
    settings_sha256,
)
from .categorize import categorize
from .config_schema import AppSettings
from .errors import ConfigError
from .pipeline import refresh
from .run_log import RunLogger
from .tree import build_tree, render_text


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="feed_categorizer")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser(
        "refresh",
        help="Fetch the configured source once and print categorized posts.",
    )
    run.add_argument(
        "--config",
        help="Path to YAML settings file (defaults are used when omitted).",
    )
    run.add_argument(
        "--out",
        help="Output directory for posts.json and run.log; prints JSON to stdout when omitted.",
    )
    run.add_argument(
        "--tree",
        action="store_true",
        help="Print the category tree instead of JSON.",
    )
    run.set_defaults(_handler=_cmd_refresh)

    cat = subparsers.add_parser(
        "categorize",
        help="Categorize a single title/URL with the loaded rules.",
    )
    cat.add_argument("--config", help="Path to YAML settings file.")
    cat.add_argument("--title", required=True)
    cat.add_argument("--url", default="")
    cat.set_defaults(_handler=_cmd_categorize)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _settings_from_args(args: argparse.Namespace) -> AppSettings:
    path = getattr(args, "config", None)
    if path:
        return load_settings(path)
    return AppSettings()


def _cmd_refresh(args: argparse.Namespace) -> int:
    out_dir = Path(args.out) if args.out else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)
        log = RunLogger.open(out_dir / "run.log", overwrite=True)
    else:
        log = RunLogger.to_stderr(min_level="WARN")

    with log:
        log.info(
            "refresh_command_started",
            config_path=str(args.config or "<defaults>"),
            out_dir=str(out_dir) if out_dir is not None else None,
        )
        try:
            settings = _settings_from_args(args)
            credentials = resolve_credentials(settings)
            log.info(
                "settings_loaded",
                config_path=str(args.config or "<defaults>"),
                settings_sha256=settings_sha256(settings),
                mode=settings.source.mode,
            )

            rules = load_category_rules(settings.rules.categories_path or None, logger=log)
            authors = load_author_mappings(settings.rules.author_mappings_path or None, logger=log)

            result = refresh(
                settings,
                rules=rules,
                authors=authors,
                credentials=credentials,
                logger=log,
            )
        except Exception as e:
            log.exception("refresh_command_failed", exc=e)
            raise

    if args.tree:
        print(render_text(build_tree(result)))
    else:
        payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
        if out_dir is not None:
            posts_path = out_dir / "posts.json"
            posts_path.write_text(payload + "\n", encoding="utf-8")
            print(f"posts={len(result.posts)}")
            print(f"cutoff={result.baseline.cutoff.isoformat()}")
            print(f"posts_json={posts_path}")
            print(f"run_log={out_dir / 'run.log'}")
        else:
            print(payload)

    return 0


def _cmd_categorize(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    rules = load_category_rules(settings.rules.categories_path or None)
    print(categorize(args.title, args.url, rules))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
