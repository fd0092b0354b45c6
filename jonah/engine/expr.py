from __future__ import annotations

import ast
import re
from typing import Any, Mapping, MutableMapping

# quoted strings are matched first so that sigils and words inside them survive
_TOKEN_RE = re.compile(
    r"(\"[^\"]*\"|'[^']*')|\$([A-Za-z_][A-Za-z0-9_]*)|\b(is|eq|neq|gt|gte|lt|lte|to)\b"
)
_WORD_OPS = {
    "is": "==",
    "eq": "==",
    "neq": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "to": "=",
}


def normalize(expr: str) -> str:
    """Turn story syntax ($var, `eq`, `to`...) into a Python expression."""
    expr = (
        expr.replace('“', '"').replace('”', '"')
        .replace('‘', "'").replace('’', "'")
    )

    def repl(m: re.Match[str]) -> str:
        if m.group(1):
            return m.group(1)
        if m.group(2):
            return m.group(2)
        return _WORD_OPS[m.group(3)]

    return _TOKEN_RE.sub(repl, expr).strip()


class SafeEval(ast.NodeVisitor):
    """Tiny safe expression evaluator for <<set>>, <<print>> and <<if>>.

    Supported:
    - Literals: int/float/str/bool, lists
    - Names: from bindings (missing -> None)
    - Unary: +x, -x, not x
    - Binary: + - * / // %
    - Bool ops: and/or
    - Comparisons: == != < <= > >= in, not in, chainable
    """

    def __init__(self, vars: Mapping[str, Any]):
        self.vars = vars

    def evaluate(self, expr: str) -> Any:
        tree = ast.parse(normalize(expr), mode="eval")
        return self.visit(tree.body)

    def visit_Constant(self, node: ast.Constant) -> Any:
        if node.value is None:
            raise ValueError("None is not a story value")
        return node.value

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(e) for e in node.elts]

    def visit_Name(self, node: ast.Name) -> Any:
        key = node.id
        if key.lower() == 'true':
            return True
        if key.lower() == 'false':
            return False
        return self.vars.get(key, None)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        v = self.visit(node.operand)
        if isinstance(node.op, ast.UAdd):
            return +v
        if isinstance(node.op, ast.USub):
            return -v
        if isinstance(node.op, ast.Not):
            return not v
        raise ValueError("Unsupported unary operator")

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            return all(bool(self.visit(v)) for v in node.values)
        if isinstance(node.op, ast.Or):
            return any(bool(self.visit(v)) for v in node.values)
        raise ValueError("Unsupported boolean operator")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        l = self.visit(node.left)
        r = self.visit(node.right)
        if isinstance(node.op, ast.Add):
            # "You have " + 3 reads naturally in stories
            if isinstance(l, str) != isinstance(r, str):
                return f"{l}{r}"
            return l + r
        if isinstance(node.op, ast.Sub):
            return l - r
        if isinstance(node.op, ast.Mult):
            return l * r
        if isinstance(node.op, ast.Div):
            return l / r
        if isinstance(node.op, ast.FloorDiv):
            return l // r
        if isinstance(node.op, ast.Mod):
            return l % r
        raise ValueError("Unsupported binary operator")

    def visit_Compare(self, node: ast.Compare) -> Any:
        cur_left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if isinstance(op, ast.Eq):
                ok = cur_left == right
            elif isinstance(op, ast.NotEq):
                ok = cur_left != right
            elif isinstance(op, ast.Lt):
                ok = cur_left < right
            elif isinstance(op, ast.LtE):
                ok = cur_left <= right
            elif isinstance(op, ast.Gt):
                ok = cur_left > right
            elif isinstance(op, ast.GtE):
                ok = cur_left >= right
            elif isinstance(op, ast.In):
                ok = cur_left in right
            elif isinstance(op, ast.NotIn):
                ok = cur_left not in right
            else:
                raise ValueError("Unsupported comparison")
            if not ok:
                return False
            cur_left = right
        return True

    def generic_visit(self, node: ast.AST) -> Any:
        raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def safe_eval(expr: str, vars: Mapping[str, Any]) -> Any:
    return SafeEval(vars).evaluate(expr)


def safe_assign(stmt: str, vars: MutableMapping[str, Any]) -> None:
    """Run `$x = expr` / `$x += expr` statements (`;`-separated) against vars.

    Only plain names may be assigned; the right-hand side goes through SafeEval.
    """
    tree = ast.parse(normalize(stmt), mode="exec")
    if not tree.body:
        raise ValueError("Empty assignment")
    ev = SafeEval(vars)
    for node in tree.body:
        if isinstance(node, ast.Assign):
            if len(node.targets) != 1 or not isinstance(node.targets[0], ast.Name):
                raise ValueError("Only single-variable assignment is supported")
            vars[node.targets[0].id] = ev.visit(node.value)
        elif isinstance(node, ast.AugAssign) and isinstance(node.target, ast.Name):
            name = node.target.id
            current = vars.get(name, 0)
            fake = ast.BinOp(left=ast.Constant(current), op=node.op, right=node.value)
            vars[name] = ev.visit(fake)
        else:
            raise ValueError(f"Unsupported statement: {type(node).__name__}")
