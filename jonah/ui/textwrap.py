from __future__ import annotations

from typing import Callable, List, Tuple, TypeVar

T = TypeVar("T")


def layout_runs(
    runs: List[Tuple[str, T]],
    measure: Callable[[str], int],
    max_width: int,
) -> List[List[Tuple[str, T, int]]]:
    """Flow tagged text runs into lines of (word, tag, x) placements.

    Used for passage bodies where a link must stay clickable after wrapping:
    every word keeps the tag of the run it came from. Explicit newlines start
    a new line; a word wider than max_width gets a line of its own.
    """
    lines: List[List[Tuple[str, T, int]]] = [[]]
    x = 0
    space = measure(" ")
    for text, tag in runs:
        paras = text.split("\n")
        for pi, para in enumerate(paras):
            if pi > 0:
                lines.append([])
                x = 0
            for word in para.split(" "):
                if word == "":
                    continue
                w = measure(word)
                if x > 0 and x + space + w > max_width:
                    lines.append([])
                    x = 0
                if x > 0:
                    x += space
                lines[-1].append((word, tag, x))
                x += w
    return lines


def first_line(text: str, measure: Callable[[str], int], max_width: int) -> str:
    """The part of `text` that fits on one line, for single-line labels."""
    lines = layout_runs([(text, None)], measure, max_width)
    return " ".join(word for word, _, _ in lines[0])
