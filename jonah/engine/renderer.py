from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..story.model import Passage
from .markup import Node, wikify
from .values import Bindings


@dataclass(eq=False)
class PassageView:
    """Render handle for one passage: its interpreted nodes plus view state."""

    passage: Passage
    nodes: List[Node] = field(default_factory=list)
    visible: bool = False
    attached: bool = False
    alpha: float = 1.0

    @property
    def title(self) -> str:
        return self.passage.title

    def links(self) -> List[Node]:
        return [n for n in self.nodes if n.kind in ("link", "choice")]

    def consume_choice(self, target: str) -> None:
        """Mirror Passage text consumption on the already rendered nodes."""
        out: List[Node] = []
        for n in self.nodes:
            if n.kind == "choice":
                n = Node("link", n.text, n.target) if n.target == target else Node("text", n.text)
            out.append(n)
        self.nodes = out


class IRenderer:
    """Rendering collaborator for History.

    Owns the passages container (the ordered list of attached views). History
    only decides where a view goes; everything visual happens here.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._views: List[PassageView] = []

    # --- materialize ---
    def render(self, passage: Passage, bindings: Bindings) -> PassageView:
        """Interpret `passage.text` and return a detached, hidden view.

        `bindings` is the live top-of-history mapping and WILL be written to by
        <<set>> macros; that side effect is what replays rebuild.
        """
        return PassageView(passage, wikify(passage.text, bindings, passage=passage.title, strict=self.strict))

    def refresh_body(self, view: PassageView, passage: Passage, bindings: Bindings) -> None:
        """Re-run the passage's current text into an existing view, in place."""
        view.nodes = wikify(passage.text, bindings, passage=passage.title, strict=self.strict)

    def reset_content(self, passage: Passage) -> None:
        passage.reset()

    # --- container ---
    def insert(self, view: PassageView, after: Optional[PassageView] = None) -> None:
        if view.attached:
            self._views.remove(view)
        if after is not None and after in self._views:
            self._views.insert(self._views.index(after) + 1, view)
        else:
            self._views.append(view)
        view.attached = True

    def remove(self, view: PassageView) -> None:
        if view in self._views:
            self._views.remove(view)
        view.attached = False

    def find(self, title: str) -> Optional[PassageView]:
        for v in self._views:
            if v.title == title:
                return v
        return None

    def views(self) -> List[PassageView]:
        return list(self._views)

    def clear(self) -> None:
        for v in self._views:
            v.attached = False
        self._views = []

    # --- presentation ---
    def show(self, view: PassageView) -> None:
        view.visible = True
        view.alpha = 1.0

    def fade_in(self, view: PassageView) -> None:
        self.show(view)

    def scroll_into_view(self, view: PassageView) -> None:
        pass

    def transition_out(self, on_complete: Callable[[], None]) -> None:
        """Fade the container out, then call on_complete (possibly later)."""
        on_complete()

    def transition_in(self) -> None:
        pass

    def show_banner(self, message: str) -> None:
        pass


class DummyRenderer(IRenderer):
    """Headless renderer that prints passages; useful for tests and CLI."""

    def __init__(self, strict: bool = False, echo: bool = True) -> None:
        super().__init__(strict=strict)
        self.echo = echo

    def insert(self, view: PassageView, after: Optional[PassageView] = None) -> None:
        super().insert(view, after)
        if self.echo:
            print_view(view)

    def remove(self, view: PassageView) -> None:
        super().remove(view)
        if self.echo:
            print(f"[closed] {view.title}")  # noqa: T201

    def refresh_body(self, view: PassageView, passage: Passage, bindings: Bindings) -> None:
        super().refresh_body(view, passage, bindings)
        if self.echo:
            print_view(view)

    def scroll_into_view(self, view: PassageView) -> None:
        if self.echo:
            print(f"[scroll] {view.title}")  # noqa: T201

    def show_banner(self, message: str) -> None:
        if self.echo:
            print(f"[INFO] {message}")  # noqa: T201


def print_view(view: PassageView) -> None:
    print(f"== {view.title} ==")  # noqa: T201
    n = 0
    parts: List[str] = []
    for node in view.nodes:
        if node.kind in ("link", "choice"):
            n += 1
            parts.append(f"[{n}:{node.text}]")
        elif node.kind == "error":
            parts.append(f"<<error: {node.text}>>")
        else:
            parts.append(node.text)
    print("".join(parts).strip())  # noqa: T201
