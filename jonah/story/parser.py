from __future__ import annotations

import re
from html.parser import HTMLParser
from pathlib import Path
from typing import List, Optional, Tuple

from .model import Passage, Story, read_bracketed_list, unescape_line_breaks


HEADER_RE = re.compile(r"^::\s*(.*?)\s*(?:\[([^\]]*)\])?\s*$")


def _parse_header(line: str) -> Tuple[str, List[str]]:
    m = HEADER_RE.match(line)
    if not m:
        return line[2:].strip(), []
    title = m.group(1).strip()
    tags = (m.group(2) or "").split()
    return title, tags


def parse_twee(source: str, title: Optional[str] = None) -> Story:
    """Parse Twee source: `:: Title [tags]` headers, body up to the next header.

    Ids follow file order starting at 0. Text before the first header is ignored.
    """
    story = Story(title=title)
    cur_title: Optional[str] = None
    cur_tags: List[str] = []
    body: List[str] = []
    order = 0

    def flush() -> None:
        nonlocal order
        if cur_title is None:
            return
        text = "\n".join(body).strip("\n")
        story.add(Passage(cur_title, text, id=order, tags=list(cur_tags)))
        order += 1

    for raw in source.splitlines():
        if raw.startswith("::"):
            flush()
            cur_title, cur_tags = _parse_header(raw)
            body = []
            continue
        if cur_title is not None:
            body.append(raw.rstrip("\r"))
    flush()
    if story.title is None and story.has("StoryTitle"):
        story.title = story.get("StoryTitle").text.strip() or None
    return story


class _StoreAreaParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.entries: List[Tuple[str, str, List[str]]] = []
        self._cur: Optional[Tuple[str, List[str]]] = None
        self._buf: List[str] = []
        self._depth = 0

    def handle_starttag(self, tag, attrs):
        if tag != "div":
            return
        if self._cur is not None:
            self._depth += 1
            return
        a = dict(attrs)
        name = a.get("tiddler")
        if name is None:
            return
        self._cur = (name, read_bracketed_list(a.get("tags") or ""))
        self._buf = []
        self._depth = 0

    def handle_endtag(self, tag):
        if tag != "div" or self._cur is None:
            return
        if self._depth:
            self._depth -= 1
            return
        name, tags = self._cur
        self.entries.append((name, "".join(self._buf), tags))
        self._cur = None

    def handle_data(self, data):
        if self._cur is not None:
            self._buf.append(data)


def parse_store_area(html: str, title: Optional[str] = None) -> Story:
    """Parse a TiddlyWiki-style store area of `<div tiddler=...>` elements."""
    p = _StoreAreaParser()
    p.feed(html)
    p.close()
    story = Story(title=title)
    for order, (name, text, tags) in enumerate(p.entries):
        story.add(Passage(name, unescape_line_breaks(text), id=order, tags=tags))
    if story.title is None and story.has("StoryTitle"):
        story.title = story.get("StoryTitle").text.strip() or None
    return story


def load_story(path: Path) -> Story:
    source = Path(path).read_text(encoding="utf-8")
    if Path(path).suffix.lower() in (".html", ".htm"):
        return parse_store_area(source)
    return parse_twee(source)
