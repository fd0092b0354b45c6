"""
Story state: displaying passages, rewinding, and bookmark save/restore.

A History is the single piece of session state. It owns the SnapshotStack and
talks to three collaborators it is handed explicitly: the Story catalog, a
renderer, and the Location holding the current bookmark fragment.

Bookmarks do not store variables. They store the ids of the passages shown,
oldest first, and restore() rebuilds the bindings by rendering those passages
again offscreen in the same order.
"""
from __future__ import annotations

import logging
from typing import Optional, Union

from ..story.model import Passage, Story, read_bracketed_list
from .bookmark import Location, decode, encode
from .errors import (
    EmptyToken,
    HistoryBusy,
    HistoryError,
    MalformedToken,
    PassageNotInHistory,
    RewindTargetNotFound,
)
from .event_bus import EventBus
from .markup import Node, consume_choice
from .renderer import DummyRenderer, IRenderer, PassageView
from .snapshots import Snapshot, SnapshotStack
from .values import Bindings

logger = logging.getLogger(__name__)

ANIMATED = "animated"
QUIET = "quiet"
OFFSCREEN = "offscreen"
MODES = (ANIMATED, QUIET, OFFSCREEN)


class History:
    def __init__(
        self,
        story: Story,
        renderer: Optional[IRenderer] = None,
        location: Optional[Location] = None,
        events: Optional[EventBus] = None,
        *,
        start: str = "Start",
        start_list: str = "StartPassages",
    ) -> None:
        self.story = story
        self.renderer = renderer or DummyRenderer()
        self.location = location or Location()
        self.events = events or EventBus()
        self.start = start
        self.start_list = start_list
        self.stack = SnapshotStack()
        # set while a rewind waits on its out-transition
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def live(self) -> Optional[Passage]:
        return self.stack.top.passage

    @property
    def variables(self) -> Bindings:
        return self.stack.top.variables

    def init(self) -> None:
        """Restore the bookmark if there is one; otherwise start the story."""
        if self.restore():
            return
        if self.story.has(self.start_list):
            initials = read_bracketed_list(self.story.get(self.start_list).text)
            logger.debug(f"showing {self.start_list}: {initials}")
            for title in initials:
                self.display(title, None, QUIET)
        else:
            logger.debug(f"no {self.start_list}, showing {self.start}")
            self.display(self.start, None, QUIET)

    def display(
        self,
        identifier: Union[str, int],
        anchor: Optional[PassageView] = None,
        mode: str = ANIMATED,
    ) -> Optional[PassageView]:
        """Show a passage below `anchor` (or at the end) and record it.

        Returns None without touching history when the passage is already on
        screen; it is scrolled into view instead.
        """
        if self._busy:
            raise HistoryBusy("display a passage")
        if mode not in MODES:
            raise ValueError(f"unknown display mode: {mode!r}")
        logger.debug(f"displaying {identifier!r} {mode}")
        passage = self.story.get(identifier)

        existing = self.renderer.find(passage.title)
        if existing is not None:
            self.renderer.scroll_into_view(existing)
            return None

        depth = len(self.stack)
        snap = self.stack.push(passage)
        try:
            view = self.renderer.render(passage, snap.variables)
        except Exception:
            self.stack.discard_newer_than(depth)
            raise

        if mode != OFFSCREEN:
            self.renderer.insert(view, after=anchor)
            if mode == ANIMATED:
                self.renderer.scroll_into_view(view)
                self.renderer.fade_in(view)
        if mode in (QUIET, OFFSCREEN):
            self.renderer.show(view)

        self.events.emit("history.display", title=passage.title, mode=mode)
        return view

    def follow(self, node: Node, source: Optional[PassageView] = None) -> Optional[PassageView]:
        """Act on a clicked link or choice inside `source`."""
        if node.target is None:
            raise ValueError("node is not a link")
        view = self.display(node.target, source, ANIMATED)
        # a rejected display leaves the choices intact
        if node.kind == "choice" and source is not None:
            source.passage.text = consume_choice(source.passage.text, node.target)
            source.consume_choice(node.target)
        return view

    def close(self, passage: Passage) -> None:
        """Take a passage off screen immediately, without animation."""
        view = self.renderer.find(passage.title)
        logger.debug(f'closing "{passage.title}"')
        if view is not None:
            self.renderer.remove(view)

    def rewind_to(self, passage: Passage) -> None:
        """Go back to `passage`, discarding everything shown after it.

        The work happens once the renderer's out-transition finishes. The
        target's bindings revert to what they were just before it was first
        shown, and its body is re-run from its original text.
        """
        if self._busy:
            raise HistoryBusy("rewind")
        title = passage.title
        if self.stack.index_of(lambda p: p.title == title) < 0:
            raise RewindTargetNotFound(title)
        logger.debug(f'rewinding to "{title}"')
        self._busy = True
        try:
            self.renderer.transition_out(lambda: self._finish_rewind(title))
        except Exception:
            self._busy = False
            raise

    def _finish_rewind(self, title: str) -> None:
        try:
            self.stack.truncate_until(lambda p: p.title == title, self._close_snapshot, target=title)
            self.stack.reset_top_variables_from(1)
            top = self.stack.top
            target = top.passage
            self.renderer.reset_content(target)
            view = self.renderer.find(title)
            if view is not None:
                self.renderer.refresh_body(view, target, top.variables)
            else:
                view = self.renderer.render(target, top.variables)
                self.renderer.insert(view)
                self.renderer.show(view)
        finally:
            self._busy = False
            self.renderer.transition_in()
        self.events.emit("history.rewind", title=title, depth=len(self.stack))

    def _close_snapshot(self, snap: Snapshot) -> None:
        if snap.passage is not None:
            self.close(snap.passage)

    def save(self, passage: Optional[Passage] = None) -> str:
        """Bookmark token for the history up to and including `passage`.

        Without a passage the whole history is saved.
        """
        if passage is None:
            idx = 0
        else:
            idx = self.stack.index_of(lambda p: p is passage or p.title == passage.title)
            if idx < 0:
                raise PassageNotInHistory(passage.title)
        ids = [p.id for p in self.stack.passages_oldest_first(idx) if p.bookmarkable]
        token = encode(ids)
        self.events.emit("history.save", title=passage.title if passage else None, token=token)
        return token

    def bookmark(self, passage: Optional[Passage] = None) -> str:
        """save() and publish the token as the current location fragment."""
        token = self.save(passage)
        self.location.fragment = token
        return token

    def restore(self) -> bool:
        """Replay the passages named by the location fragment.

        Never raises. Any failure leaves history as it was and returns False.
        """
        token = self.location.fragment
        try:
            ids = decode(token)
        except EmptyToken:
            logger.debug("no bookmark to restore")
            return False
        except MalformedToken as e:
            logger.warning(f"ignoring bookmark: {e}")
            self.events.emit("history.restore", ok=False, token=token, count=0)
            return False
        if not ids:
            logger.debug("bookmark is empty")
            return False

        depth = len(self.stack)
        touched: list[Passage] = []
        last: Optional[PassageView] = None
        try:
            # intermediate passages render offscreen: their content is only
            # right once everything before them has run
            for pid in ids:
                logger.debug(f"restoring id {pid}")
                passage = self.story.get(pid)
                touched.append(passage)
                view = self.display(pid, None, OFFSCREEN)
                if view is not None:
                    last = view
        except HistoryError as e:
            logger.warning(f"restore of {token} failed: {e}")
            self._rollback(depth, touched)
            return False
        except Exception:
            logger.exception(f"restore of {token} failed")
            self._rollback(depth, touched)
            return False

        if last is not None:
            self.renderer.insert(last)
        self.events.emit("history.restore", ok=True, token=token, count=len(ids))
        return True

    def _rollback(self, depth: int, touched: list[Passage]) -> None:
        self.stack.discard_newer_than(depth)
        for p in touched:
            p.reset()
        self.events.emit("history.restore", ok=False, token=self.location.fragment, count=0)

    def restart(self) -> None:
        """Forget everything, clear the bookmark and start the story over."""
        if self._busy:
            raise HistoryBusy("restart")
        logger.debug("restarting")
        self.location.fragment = ""
        self.renderer.clear()
        self.stack.clear()
        self.story.reset_all()
        self.init()
