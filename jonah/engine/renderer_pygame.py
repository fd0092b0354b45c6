from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

import pygame
from pygame import Surface

from jonah.engine.errors import HistoryError
from jonah.engine.renderer import IRenderer, PassageView
from jonah.engine.transitions import Fade
from jonah.ui.textwrap import first_line, layout_runs

logger = logging.getLogger(__name__)

MARGIN = 32
GAP = 28
BAR_H = 36
BG = (246, 243, 236)
INK = (40, 36, 30)
LINK = (32, 84, 170)
CHOICE = (120, 60, 150)
ERROR = (190, 40, 40)
MUTED = (140, 132, 120)
RULE = (210, 204, 192)


class PygameRenderer(IRenderer):
    """Scrolling column of passages in a pygame window.

    Each passage has a title bar with "bookmark" and "rewind to here" actions;
    links inside its body display the next passage below it. Fades run from
    the frame loop, so rewind's out-transition completes asynchronously.
    """

    def __init__(self, title: str = "Jonah", width: int = 900, height: int = 720,
                 font_path: Optional[str] = None, font_size: int = 20, fade_ms: int = 300,
                 strict: bool = False, target_fps: int = 60) -> None:
        super().__init__(strict=strict)
        pygame.init()
        self.clock = pygame.time.Clock()
        self._title = title
        self._fps = max(10, int(target_fps))
        self.screen = pygame.display.set_mode((width, height), pygame.RESIZABLE)
        pygame.display.set_caption(title)
        self.font = pygame.font.Font(font_path, font_size)
        self.title_font = pygame.font.Font(font_path, int(font_size * 1.3))
        self.title_font.set_bold(True)
        self.small_font = pygame.font.Font(font_path, max(12, int(font_size * 0.75)))
        self.fade_ms = max(1, int(fade_ms))
        self.history = None

        self._scroll = 0
        self._content_h = 0
        self._scroll_to: Optional[PassageView] = None
        self._fade: Optional[Fade] = None
        self._view_fades: Dict[int, Fade] = {}
        self._hits: List[Tuple[pygame.Rect, Callable[[], None]]] = []
        self._banner: Optional[Tuple[str, int]] = None
        self._running = False

    def bind(self, history) -> None:
        """Attach the History whose passages this window shows."""
        self.history = history
        history.location.on_change(self._on_fragment)
        self._on_fragment(history.location.fragment)

    def _on_fragment(self, fragment: str) -> None:
        pygame.display.set_caption(f"{self._title} {fragment}".rstrip())
        if fragment:
            self.show_banner(f"Bookmark: {fragment}")

    # --- IRenderer overrides ---
    def fade_in(self, view: PassageView) -> None:
        view.visible = True
        view.alpha = 0.0
        self._view_fades[id(view)] = Fade("in", pygame.time.get_ticks(), self.fade_ms)

    def remove(self, view: PassageView) -> None:
        super().remove(view)
        self._view_fades.pop(id(view), None)

    def clear(self) -> None:
        super().clear()
        self._view_fades.clear()
        self._scroll = 0

    def scroll_into_view(self, view: PassageView) -> None:
        self._scroll_to = view

    def transition_out(self, on_complete: Callable[[], None]) -> None:
        self._fade = Fade("out", pygame.time.get_ticks(), self.fade_ms, on_complete)

    def transition_in(self) -> None:
        self._fade = Fade("in", pygame.time.get_ticks(), self.fade_ms)

    def show_banner(self, message: str) -> None:
        self._banner = (message, pygame.time.get_ticks() + 2500)

    # --- loop ---
    def run(self) -> None:
        self._running = True
        while self._running:
            for event in pygame.event.get():
                self._handle_event(event)
            self._tick(pygame.time.get_ticks())
            self._draw()
            pygame.display.flip()
            self.clock.tick(self._fps)
        pygame.quit()

    def quit(self) -> None:
        self._running = False

    def _handle_event(self, event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
        elif event.type == pygame.MOUSEWHEEL:
            self._scroll_by(-event.y * 48)
        elif event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                self.quit()
            elif event.key in (pygame.K_PAGEDOWN, pygame.K_SPACE):
                self._scroll_by(self.screen.get_height() - BAR_H)
            elif event.key == pygame.K_PAGEUP:
                self._scroll_by(-(self.screen.get_height() - BAR_H))
            elif event.key == pygame.K_HOME:
                self._scroll = 0
            elif event.key == pygame.K_END:
                self._scroll = self._max_scroll()
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            for rect, action in reversed(self._hits):
                if rect.collidepoint(event.pos):
                    self._invoke(action)
                    break

    def _invoke(self, action: Callable[[], None]) -> None:
        try:
            action()
        except HistoryError as e:
            # clicks during a rewind fade land here; nothing to undo
            logger.debug(f"ignored click: {e}")
            self.show_banner(str(e))

    def _tick(self, now: int) -> None:
        if self._fade is not None:
            fade = self._fade
            done = fade.tick(now)
            # the out-fade callback usually installs the in-fade
            if done and self._fade is fade:
                self._fade = None
        for key, fade in list(self._view_fades.items()):
            view = next((v for v in self._views if id(v) == key), None)
            if view is None:
                self._view_fades.pop(key, None)
                continue
            view.alpha = fade.alpha(now)
            if fade.tick(now):
                view.alpha = 1.0
                self._view_fades.pop(key, None)
        if self._banner and now > self._banner[1]:
            self._banner = None

    def _max_scroll(self) -> int:
        return max(0, self._content_h - (self.screen.get_height() - BAR_H) + MARGIN)

    def _scroll_by(self, dy: int) -> None:
        self._scroll = max(0, min(self._max_scroll(), self._scroll + int(dy)))

    # --- drawing ---
    def _draw(self) -> None:
        self.screen.fill(BG)
        self._hits = []
        width = self.screen.get_width() - 2 * MARGIN
        container_alpha = self._fade.alpha(pygame.time.get_ticks()) if self._fade else 1.0

        y = BAR_H + MARGIN
        tops: Dict[int, int] = {}
        for view in self._views:
            if not view.visible:
                continue
            surf, hits = self._render_view(view, width)
            tops[id(view)] = y
            alpha = int(255 * view.alpha * container_alpha)
            if alpha < 255:
                surf.set_alpha(alpha)
            self.screen.blit(surf, (MARGIN, y - self._scroll))
            for rect, action in hits:
                self._hits.append((rect.move(MARGIN, y - self._scroll), action))
            y += surf.get_height() + GAP
        self._content_h = y

        if self._scroll_to is not None:
            top = tops.get(id(self._scroll_to))
            if top is not None:
                self._scroll = max(0, min(self._max_scroll(), top - BAR_H - MARGIN))
            self._scroll_to = None

        self._draw_bar()

    def _draw_bar(self) -> None:
        w = self.screen.get_width()
        pygame.draw.rect(self.screen, (232, 226, 214), pygame.Rect(0, 0, w, BAR_H))
        pygame.draw.line(self.screen, RULE, (0, BAR_H), (w, BAR_H))
        caption = self._title
        if self.history is not None and self.history.story.title:
            caption = self.history.story.title
        cap = self.small_font.render(caption, True, INK)
        self.screen.blit(cap, (MARGIN, (BAR_H - cap.get_height()) // 2))
        label = self.small_font.render("restart", True, LINK)
        rect = label.get_rect(topright=(w - MARGIN, (BAR_H - label.get_height()) // 2))
        self.screen.blit(label, rect)
        if self.history is not None:
            self._hits.append((rect, self.history.restart))
        if self._banner:
            message = first_line(self._banner[0], lambda s: self.small_font.size(s)[0], w // 2)
            text = self.small_font.render(message, True, MUTED)
            self.screen.blit(text, text.get_rect(midtop=(w // 2, (BAR_H - text.get_height()) // 2)))

    def _render_view(self, view: PassageView, width: int) -> Tuple[Surface, List[Tuple[pygame.Rect, Callable[[], None]]]]:
        hits: List[Tuple[pygame.Rect, Callable[[], None]]] = []
        line_h = self.font.get_linesize()
        runs = [(n.text, n) for n in view.nodes]
        lines = layout_runs(runs, lambda s: self.font.size(s)[0], width)
        title_h = self.title_font.get_linesize() + 8
        height = title_h + len(lines) * line_h + 6
        surf = Surface((width, height), pygame.SRCALPHA)

        title = self.title_font.render(view.title, True, INK)
        surf.blit(title, (0, 0))
        x = width
        for text, action in self._toolbar(view):
            label = self.small_font.render(text, True, MUTED)
            x -= label.get_width()
            rect = label.get_rect(topleft=(x, (title_h - label.get_height()) // 2))
            surf.blit(label, rect)
            if action is not None:
                hits.append((rect, action))
            x -= 16
        pygame.draw.line(surf, RULE, (0, title_h - 3), (width, title_h - 3))

        for row, placements in enumerate(lines):
            ty = title_h + row * line_h
            for word, node, wx in placements:
                color = INK
                if node.kind == "link":
                    color = LINK
                elif node.kind == "choice":
                    color = CHOICE
                elif node.kind == "error":
                    color = ERROR
                img = self.font.render(word, True, color)
                rect = img.get_rect(topleft=(wx, ty))
                surf.blit(img, rect)
                if node.kind in ("link", "choice"):
                    pygame.draw.line(surf, color, rect.bottomleft, rect.bottomright)
                    hits.append((rect, self._link_action(view, node)))
        return surf, hits

    def _toolbar(self, view: PassageView) -> List[Tuple[str, Optional[Callable[[], None]]]]:
        if self.history is None:
            return []
        history = self.history
        return [
            ("rewind to here", lambda: history.rewind_to(view.passage)),
            ("bookmark", lambda: history.bookmark(view.passage)),
        ]

    def _link_action(self, view: PassageView, node) -> Callable[[], None]:
        def act() -> None:
            if self.history is not None:
                self.history.follow(node, view)
        return act
