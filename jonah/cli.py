from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .engine.bookmark import Location, decode
from .engine.config_io import load_config
from .engine.errors import BookmarkError, HistoryError
from .engine.history import History
from .engine.renderer import DummyRenderer, print_view
from .story.model import Story
from .story.parser import load_story


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="jonah", description="Jonah story runner")
    sub = parser.add_subparsers(dest="cmd")

    # run subcommand (default behavior)
    p_run = sub.add_parser("run", help="Read a story")
    p_run.add_argument("story", type=str, help="Path to a .tw/.twee or store-area .html story")
    p_run.add_argument("--fragment", type=str, default="", help="Bookmark to restore, e.g. '#3k.p.1'")
    p_run.add_argument("--pygame", action="store_true", help="Use the pygame window (interactive)")
    p_run.add_argument("--strict", action="store_true", help="Raise on markup errors instead of showing them")
    p_run.add_argument("--font", type=str, default=None, help="Path to a TTF/OTF font")
    p_run.add_argument("--font-size", type=int, default=None, help="Font size for passage text")
    p_run.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING...)")

    p_dec = sub.add_parser("decode", help="List the passages a bookmark replays")
    p_dec.add_argument("story", type=str)
    p_dec.add_argument("token", type=str)
    p_dec.add_argument("--log-level", default="WARNING")

    # Back-compat: if user didn't specify a subcommand, treat as 'run'
    argv_list = list(argv) if argv is not None else sys.argv[1:]
    if not argv_list or argv_list[0] not in {"run", "decode", "-h", "--help"}:
        args = p_run.parse_args(argv_list)
        args.cmd = "run"  # type: ignore[attr-defined]
    else:
        args = parser.parse_args(argv_list)

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")

    story_path = Path(args.story)
    if not story_path.exists():
        print(f"Story not found: {story_path}")  # noqa: T201
        return 2
    story = load_story(story_path)
    cfg = load_config(story_path)
    if cfg["story"].get("title"):
        story.title = cfg["story"]["title"]

    if args.cmd == "decode":
        return _cmd_decode(story, args.token)

    location = Location(args.fragment)
    if args.pygame:
        from .engine.renderer_pygame import PygameRenderer  # local import to avoid test deps
        ui = cfg["ui"]
        renderer = PygameRenderer(
            title=story.title or story_path.stem,
            width=int(ui["width"]),
            height=int(ui["height"]),
            font_path=args.font or ui.get("font_path"),
            font_size=int(args.font_size or ui["font_size"]),
            fade_ms=int(ui["fade_ms"]),
            strict=args.strict,
        )
        history = History(story, renderer, location,
                          start=cfg["story"]["start"], start_list=cfg["story"]["start_list"])
        renderer.bind(history)
        history.init()
        renderer.run()
        return 0

    history = History(story, DummyRenderer(strict=args.strict), location,
                      start=cfg["story"]["start"], start_list=cfg["story"]["start_list"])
    history.init()
    if sys.stdin.isatty():
        console_loop(history)
    return 0


def _cmd_decode(story: Story, token: str) -> int:
    try:
        ids = decode(token)
    except BookmarkError as e:
        print(f"Invalid bookmark: {e}")  # noqa: T201
        return 1
    status = 0
    for pid in ids:
        if story.has(pid):
            print(f"{pid:>4}  {story.get(pid).title}")  # noqa: T201
        else:
            print(f"{pid:>4}  <missing>")  # noqa: T201
            status = 1
    return status


HELP = "number: follow link | b: bookmark | r TITLE: rewind | s: show | restart | q: quit"


def console_loop(history: History, read: Callable[[str], str] = input) -> None:
    """Minimal reader for the headless renderer; acts on the live passage."""
    print(HELP)  # noqa: T201
    while True:
        try:
            raw = read("> ").strip()
        except EOFError:
            return
        if not raw:
            continue
        if raw in ("q", "quit"):
            return
        try:
            handle_command(history, raw)
        except HistoryError as e:
            print(f"[ERROR] {e}")  # noqa: T201


def handle_command(history: History, raw: str) -> Optional[str]:
    """Apply one console command; returns the bookmark token for `b`."""
    view = history.renderer.find(history.live.title) if history.live else None
    if raw == "b":
        token = history.bookmark(history.live)
        print(token)  # noqa: T201
        return token
    if raw == "s":
        if view is not None:
            print_view(view)
        return None
    if raw == "restart":
        history.restart()
        return None
    if raw.startswith("r "):
        title = raw[2:].strip()
        history.rewind_to(history.story.get(title))
        return None
    if raw.isdigit() and view is not None:
        links = view.links()
        idx = int(raw) - 1
        if 0 <= idx < len(links):
            history.follow(links[idx], view)
            return None
    print(HELP)  # noqa: T201
    return None


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
