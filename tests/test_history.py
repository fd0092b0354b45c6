from __future__ import annotations

import pytest

from jonah.engine.bookmark import Location
from jonah.engine.errors import (
    HistoryBusy,
    PassageNotInHistory,
    RewindTargetNotFound,
    UnknownPassage,
)
from jonah.engine.event_bus import EventBus
from jonah.engine.history import History
from jonah.engine.markup import wikify
from jonah.engine.renderer import IRenderer
from jonah.engine.values import Bindings
from jonah.story.parser import parse_twee


WOODS = """
:: Start
You wake up. [[Woods]]

:: Woods
<<set $seen = true>>Trees everywhere. [[Cave]]

:: Cave
<<set $seen = false>>It is dark.
"""


class FakeRenderer(IRenderer):
    """Records every call History makes; transitions can be held back."""

    def __init__(self, defer: bool = False):
        super().__init__()
        self.calls = []
        self.defer = defer
        self.pending = None

    def render(self, passage, bindings):
        self.calls.append(("render", passage.title))
        return super().render(passage, bindings)

    def insert(self, view, after=None):
        self.calls.append(("insert", view.title, after.title if after else None))
        super().insert(view, after)

    def remove(self, view):
        self.calls.append(("remove", view.title))
        super().remove(view)

    def refresh_body(self, view, passage, bindings):
        self.calls.append(("refresh", passage.title, passage.text))
        super().refresh_body(view, passage, bindings)

    def fade_in(self, view):
        self.calls.append(("fade_in", view.title))
        super().fade_in(view)

    def scroll_into_view(self, view):
        self.calls.append(("scroll", view.title))

    def transition_out(self, on_complete):
        self.calls.append(("transition_out",))
        if self.defer:
            self.pending = on_complete
        else:
            on_complete()

    def transition_in(self):
        self.calls.append(("transition_in",))

    def finish(self):
        cb, self.pending = self.pending, None
        cb()


def make(source: str = WOODS, fragment: str = "", defer: bool = False):
    story = parse_twee(source)
    r = FakeRenderer(defer=defer)
    h = History(story, r, Location(fragment))
    return h, r


def titles(h: History):
    return [p.title for p in h.stack.passages_oldest_first()]


def test_display_pushes_and_inserts_animated():
    h, r = make()
    view = h.display("Start")
    assert view is not None and view.attached and view.visible
    assert h.live.title == "Start"
    assert len(h.stack) == 2
    assert ("scroll", "Start") in r.calls and ("fade_in", "Start") in r.calls


def test_display_after_anchor():
    h, r = make()
    start = h.display("Start", mode="quiet")
    h.display("Cave", mode="quiet")
    h.display("Woods", anchor=start, mode="quiet")
    assert [v.title for v in r.views()] == ["Start", "Woods", "Cave"]


def test_display_by_id():
    h, _ = make()
    h.display(2, mode="quiet")
    assert h.live.title == "Cave"


def test_display_same_passage_is_noop():
    h, r = make()
    h.display("Start")
    assert h.display("Start") is None
    assert len(h.stack) == 2
    assert r.calls[-1] == ("scroll", "Start")


def test_display_unknown_passage():
    h, _ = make()
    with pytest.raises(UnknownPassage):
        h.display("Nowhere")
    assert len(h.stack) == 1


def test_display_bad_mode():
    h, _ = make()
    with pytest.raises(ValueError):
        h.display("Start", mode="loudly")


def test_offscreen_display_not_inserted():
    h, r = make()
    view = h.display("Woods", mode="offscreen")
    assert view.visible and not view.attached
    assert r.views() == []
    assert h.variables["seen"] is True


def test_render_writes_only_the_new_top():
    h, _ = make()
    h.display("Start")
    h.display("Woods")
    h.display("Cave")
    assert h.stack.peek(0).variables["seen"] is False
    assert h.stack.peek(1).variables["seen"] is True
    assert "seen" not in h.stack.peek(2).variables


def test_cumulative_replay_equivalence():
    src = """
:: Start
<<set $n = 0>><<set $trail = []>>[[A]]
:: A
<<set $n += 1>><<set $trail += ["A"]>>[[B]]
:: B
<<set $n *= 10>><<set $trail += ["B"]>><<if $n gt 5>>big<<else>>small<<endif>>
:: C
<<set $n -= 3>><<set $trail += ["C"]>>
"""
    h, _ = make(src)
    order = ["Start", "A", "B", "C"]
    expected = Bindings()
    for title in order:
        h.display(title, mode="quiet")
        wikify(h.story.get(title).initial_text, expected)
        assert h.variables == expected
    assert h.variables == {"n": 7, "trail": ["A", "B", "C"]}
    # past snapshots are untouched by later passages
    assert h.stack.peek(2).variables["trail"] == ["A"]


def test_rewind_scenario():
    h, r = make()
    h.display("Start")
    h.display("Woods")
    h.display("Cave")
    h.rewind_to(h.story.get("Woods"))
    assert titles(h) == ["Start", "Woods"]
    assert len(h.stack) == 3  # includes the pre-story snapshot
    assert h.variables["seen"] is True
    assert r.find("Cave") is None
    assert ("remove", "Cave") in r.calls
    assert r.calls[-2][0] == "refresh" and r.calls[-2][1] == "Woods"
    assert r.calls[-1] == ("transition_in",)


def test_rewind_restores_bindings_from_before_target():
    src = """
:: Start
<<set $gold = 5>>
:: Shop
<<set $gold -= 2>>
:: Street
<<set $gold -= 1>>
"""
    h, _ = make(src)
    for t in ("Start", "Shop", "Street"):
        h.display(t)
    assert h.variables["gold"] == 2
    h.rewind_to(h.story.get("Shop"))
    # Shop's body ran again against gold=5 after the bindings reverted
    assert h.variables["gold"] == 3
    assert titles(h) == ["Start", "Shop"]


def test_rewind_to_top_keeps_stack_length():
    h, r = make()
    h.display("Start")
    h.display("Woods")
    h.rewind_to(h.story.get("Woods"))
    assert titles(h) == ["Start", "Woods"]
    assert not any(c[0] == "remove" for c in r.calls)


def test_rewind_unknown_target_leaves_stack():
    h, r = make()
    h.display("Start")
    h.display("Woods")
    before = list(h.stack)
    with pytest.raises(RewindTargetNotFound):
        h.rewind_to(h.story.get("Cave"))
    assert list(h.stack) == before
    assert ("transition_out",) not in r.calls
    assert not h.busy


def test_rewind_waits_for_transition_and_rejects_reentry():
    h, r = make(defer=True)
    h.display("Start")
    h.display("Woods")
    h.display("Cave")
    h.rewind_to(h.story.get("Woods"))
    assert h.busy
    assert len(h.stack) == 4  # nothing happens until the fade-out completes
    with pytest.raises(HistoryBusy):
        h.rewind_to(h.story.get("Start"))
    with pytest.raises(HistoryBusy):
        h.display("Cave")
    r.finish()
    assert not h.busy
    assert titles(h) == ["Start", "Woods"]


def test_rewind_resets_consumed_choices():
    src = """
:: Start
Pick one: <<choice Left>> <<choice "Go right" Right>>
:: Left
left
:: Right
right
"""
    h, r = make(src)
    start = h.display("Start")
    choice = [n for n in start.nodes if n.kind == "choice" and n.target == "Right"][0]
    h.follow(choice, start)
    passage = h.story.get("Start")
    assert "<<choice" not in passage.text
    assert "[[Go right|Right]]" in passage.text
    assert [n.kind for n in start.links()] == ["link"]

    h.rewind_to(passage)
    assert passage.text == passage.initial_text
    assert r.find("Right") is None
    assert [n.kind for n in r.find("Start").links()] == ["choice", "choice"]


def test_save_scenario_and_restore_in_fresh_session():
    h, _ = make()
    h.display("Start")
    h.display("Woods")
    token = h.save(h.story.get("Woods"))
    assert token == "#1"

    h2, r2 = make(fragment=token)
    assert h2.restore() is True
    assert len(h2.stack) == 2
    assert h2.live.title == "Woods"
    assert h2.variables == h.variables
    # only the last replayed passage goes on screen
    assert [v.title for v in r2.views()] == ["Woods"]


def test_save_midway_encodes_oldest_first():
    h, _ = make()
    for t in ("Start", "Woods", "Cave"):
        h.display(t)
    assert h.save(h.story.get("Woods")) == "#1"
    assert h.save(h.story.get("Cave")) == "#1.2"
    assert h.save() == "#1.2"


def test_save_passage_not_in_history():
    h, _ = make()
    h.display("Start")
    with pytest.raises(PassageNotInHistory):
        h.save(h.story.get("Cave"))


def test_bookmark_sets_location():
    h, _ = make()
    h.display("Start")
    h.display("Woods")
    h.bookmark(h.story.get("Woods"))
    assert h.location.fragment == "#1"


def test_restore_replays_in_visit_order():
    src = """
:: Start
start
:: Shop
<<set $gold = 10>>
:: Tavern
<<set $gold = $gold - 3>>
"""
    h, r = make(src, fragment="#1.2")
    assert h.restore()
    assert h.variables["gold"] == 7
    assert [c[1] for c in r.calls if c[0] == "render"] == ["Shop", "Tavern"]


def test_restore_unresolvable_id_rolls_back():
    h, r = make(fragment="#1.z.2")
    h.display("Start")
    before = list(h.stack)
    assert h.restore() is False
    assert list(h.stack) == before
    assert [v.title for v in r.views()] == ["Start"]


def test_restore_resets_touched_passages_on_failure():
    src = """
:: Start
s
:: Pick
<<choice Start>>
"""
    h, _ = make(src, fragment="#1.9")
    pick = h.story.get("Pick")
    pick.text = "changed"
    assert h.restore() is False
    assert pick.text == pick.initial_text


@pytest.mark.parametrize("fragment", ["", "#", "#1..2", "#woods!", "#-1"])
def test_restore_without_usable_bookmark(fragment):
    h, _ = make(fragment=fragment)
    assert h.restore() is False
    assert len(h.stack) == 1


def test_init_falls_back_to_start():
    h, r = make()
    h.init()
    assert h.live.title == "Start"
    assert ("fade_in", "Start") not in r.calls


def test_init_shows_start_passages_quietly():
    src = """
:: StartPassages
[[Intro]] [[Side Bar]]
:: Intro
<<set $a = 1>>
:: Side Bar
<<set $b = $a + 1>>
"""
    h, r = make(src)
    h.init()
    assert [v.title for v in r.views()] == ["Intro", "Side Bar"]
    assert h.variables == {"a": 1, "b": 2}


def test_init_prefers_bookmark():
    h, r = make(fragment="#2")
    h.init()
    assert h.live.title == "Cave"
    assert [v.title for v in r.views()] == ["Cave"]


def test_init_with_bad_bookmark_starts_normally():
    h, _ = make(fragment="#1.zz")
    h.init()
    assert titles(h) == ["Start"]


def test_restart_clears_everything():
    h, r = make(fragment="#1")
    h.init()
    h.story.get("Cave").text = "edited"
    h.restart()
    assert h.location.fragment == ""
    assert titles(h) == ["Start"]
    assert [v.title for v in r.views()] == ["Start"]
    assert h.story.get("Cave").text == h.story.get("Cave").initial_text


def test_close_removes_view():
    h, r = make()
    h.display("Start")
    h.close(h.story.get("Start"))
    assert r.find("Start") is None
    assert len(h.stack) == 2


def test_events_are_emitted():
    story = parse_twee(WOODS)
    bus = EventBus()
    seen = []
    for name in ("history.display", "history.rewind", "history.save", "history.restore"):
        bus.subscribe(name, lambda data, name=name: seen.append((name, data)))
    h = History(story, FakeRenderer(), Location(), bus)
    h.display("Start")
    h.display("Woods")
    h.save()
    h.rewind_to(story.get("Start"))
    names = [n for n, _ in seen]
    assert names == ["history.display", "history.display", "history.save", "history.rewind"]
    assert seen[-1][1] == {"title": "Start", "depth": 2}


def test_listener_failure_does_not_break_display():
    story = parse_twee(WOODS)
    bus = EventBus()

    def boom(data):
        raise RuntimeError("listener bug")

    bus.subscribe("history.display", boom)
    h = History(story, FakeRenderer(), Location(), bus)
    assert h.display("Start") is not None


def test_restart_rejected_during_rewind_transition():
    h, r = make(defer=True)
    h.display("Start")
    h.display("Woods")
    h.display("Cave")
    h.rewind_to(h.story.get("Woods"))
    with pytest.raises(HistoryBusy):
        h.restart()
    assert titles(h) == ["Start", "Woods", "Cave"]
    assert [v.title for v in r.views()] == ["Start", "Woods", "Cave"]
    r.finish()
    assert titles(h) == ["Start", "Woods"]
    h.restart()
    assert titles(h) == ["Start"]


CHOICES = """
:: Start
Pick: <<choice Left>> <<choice Right>>
:: Left
left
:: Right
right
:: Other
other
"""


def test_rejected_follow_keeps_choices():
    h, r = make(CHOICES, defer=True)
    start = h.display("Start")
    h.display("Other")
    h.rewind_to(h.story.get("Other"))
    left = [n for n in start.nodes if n.kind == "choice" and n.target == "Left"][0]
    with pytest.raises(HistoryBusy):
        h.follow(left, start)
    passage = h.story.get("Start")
    assert passage.text == passage.initial_text
    assert [n.kind for n in start.links()] == ["choice", "choice"]


def test_follow_to_missing_passage_keeps_choices():
    h, _ = make(CHOICES.replace(":: Right\nright\n", ""))
    start = h.display("Start")
    right = [n for n in start.nodes if n.kind == "choice" and n.target == "Right"][0]
    with pytest.raises(UnknownPassage):
        h.follow(right, start)
    passage = h.story.get("Start")
    assert passage.text == passage.initial_text
    assert len(h.stack) == 2


class BrokenRenderer(FakeRenderer):
    """Fails with a non-history error when asked to render `broken`."""

    def __init__(self, broken: str):
        super().__init__()
        self.broken = broken

    def render(self, passage, bindings):
        if passage.title == self.broken:
            raise RuntimeError("renderer crashed")
        return super().render(passage, bindings)


def test_restore_rolls_back_on_unexpected_renderer_error(caplog):
    story = parse_twee(WOODS)
    r = BrokenRenderer("Cave")
    h = History(story, r, Location("#1.2"))
    before = list(h.stack)
    assert h.restore() is False
    assert list(h.stack) == before
    assert len(h.stack) == 1
    assert r.views() == []
    assert "renderer crashed" in caplog.text
