"""Markup interpreter for passage text.

Runs a passage's current text against live variable bindings and produces a
flat list of display nodes. Running it has side effects: <<set>> writes into
the bindings it is given.

Syntax:
- [[Target]] / [[Label|Target]]        links
- <<set $x = expr>> / <<set $x to expr>> assignment
- <<print expr>>                        value output
- <<if expr>> .. <<elseif expr>> .. <<else>> .. <<endif>>
- <<choice Target>> / <<choice "Label" Target>> / <<choice [[Label|Target]]>>
"""
from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, List, MutableMapping, Optional, Tuple

from .errors import MarkupError
from .expr import safe_assign, safe_eval

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"(\[\[.*?\]\]|<<.*?>>)", re.DOTALL)
CHOICE_RE = re.compile(r"<<\s*choice\b(.*?)>>", re.DOTALL)


@dataclass
class Node:
    kind: str  # text | link | choice | error
    text: str
    target: Optional[str] = None


@dataclass
class _Macro:
    name: str
    args: str
    source: str


@dataclass
class _Branch:
    cond: Optional[str]
    body: List[Any] = field(default_factory=list)


@dataclass
class _IfBlock:
    source: str
    branches: List[_Branch] = field(default_factory=list)


def parse_link(inner: str) -> Tuple[str, str]:
    if "|" in inner:
        label, target = inner.split("|", 1)
        return label.strip(), target.strip()
    return inner.strip(), inner.strip()


def parse_choice_args(args: str) -> Tuple[str, str]:
    args = args.strip()
    if args.startswith("[[") and args.endswith("]]"):
        return parse_link(args[2:-2])
    parts = shlex.split(args) if args else []
    if len(parts) == 1:
        return parts[0], parts[0]
    if len(parts) >= 2:
        return parts[0], " ".join(parts[1:])
    raise ValueError("choice needs a target")


def _split_macro(token: str) -> _Macro:
    body = token[2:-2].strip()
    name, _, args = body.partition(" ")
    return _Macro(name.strip().lower(), args.strip(), token)


def _build_tree(text: str) -> List[Any]:
    root: List[Any] = []
    stack: List[Tuple[List[Any], Optional[_IfBlock]]] = [(root, None)]
    for tok in TOKEN_RE.split(text):
        if not tok:
            continue
        cur, block = stack[-1]
        if tok.startswith("<<") and tok.endswith(">>"):
            m = _split_macro(tok)
            if m.name == "if":
                blk = _IfBlock(tok, [_Branch(m.args)])
                cur.append(blk)
                stack.append((blk.branches[0].body, blk))
                continue
            if m.name in ("elseif", "else") and block is not None:
                cond = m.args if m.name == "elseif" else None
                if m.name == "else" and m.args.startswith("if "):
                    cond = m.args[3:]
                branch = _Branch(cond)
                block.branches.append(branch)
                stack[-1] = (branch.body, block)
                continue
            if m.name == "endif" and block is not None:
                stack.pop()
                continue
            cur.append(m)
            continue
        cur.append(tok)
    if len(stack) > 1:
        # unterminated <<if>>: report at the opening tag
        _, blk = stack[-1]
        root.append(_Macro("endif?", "", blk.source if blk else ""))
    return root


class Wikifier:
    def __init__(self, bindings: MutableMapping[str, Any], passage: Optional[str] = None, strict: bool = False) -> None:
        self.bindings = bindings
        self.passage = passage
        self.strict = strict
        self.nodes: List[Node] = []

    def run(self, text: str) -> List[Node]:
        self._exec(_build_tree(text or ""))
        return self.nodes

    def _emit_text(self, s: str) -> None:
        if not s:
            return
        if self.nodes and self.nodes[-1].kind == "text":
            self.nodes[-1].text += s
        else:
            self.nodes.append(Node("text", s))

    def _error(self, message: str, source: str) -> None:
        if self.strict:
            raise MarkupError(message, self.passage, source)
        logger.warning(f'markup error in "{self.passage}": {message} ({source})')
        self.nodes.append(Node("error", f"{source}: {message}"))

    def _exec(self, items: List[Any]) -> None:
        for item in items:
            if isinstance(item, str):
                if item.startswith("[[") and item.endswith("]]"):
                    label, target = parse_link(item[2:-2])
                    self.nodes.append(Node("link", label, target))
                else:
                    self._emit_text(item)
            elif isinstance(item, _IfBlock):
                self._exec_if(item)
            else:
                self._exec_macro(item)

    def _exec_if(self, block: _IfBlock) -> None:
        for branch in block.branches:
            if branch.cond is None:
                self._exec(branch.body)
                return
            try:
                ok = bool(safe_eval(branch.cond, self.bindings))
            except Exception as e:
                self._error(f"bad condition: {e}", block.source)
                return
            if ok:
                self._exec(branch.body)
                return

    def _exec_macro(self, m: _Macro) -> None:
        try:
            if m.name == "set":
                safe_assign(m.args, self.bindings)
            elif m.name == "print":
                self._emit_text(format_value(safe_eval(m.args, self.bindings)))
            elif m.name == "choice":
                label, target = parse_choice_args(m.args)
                self.nodes.append(Node("choice", label, target))
            elif m.name in ("else", "elseif", "endif"):
                self._error(f"<<{m.name}>> without <<if>>", m.source)
            elif m.name == "endif?":
                self._error("<<if>> without <<endif>>", m.source)
            else:
                self._error(f"unknown macro <<{m.name}>>", m.source)
        except MarkupError:
            raise
        except Exception as e:
            self._error(str(e), m.source)


def format_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, list):
        return ", ".join(format_value(x) for x in v)
    if v is None:
        return ""
    return str(v)


def wikify(text: str, bindings: MutableMapping[str, Any], *, passage: Optional[str] = None, strict: bool = False) -> List[Node]:
    """Interpret `text` against `bindings` (mutated in place) and return nodes."""
    return Wikifier(bindings, passage=passage, strict=strict).run(text)


def consume_choice(text: str, target: str) -> str:
    """Rewrite passage text after a choice was taken.

    The chosen <<choice>> becomes an ordinary link; every other choice in the
    passage collapses to its plain label.
    """
    def repl(m: re.Match[str]) -> str:
        try:
            label, tgt = parse_choice_args(m.group(1))
        except ValueError:
            return m.group(0)
        if tgt == target:
            return f"[[{label}|{tgt}]]"
        return label

    return CHOICE_RE.sub(repl, text)
