"""Lark-based parser for balance-sheet formulas.

Supports:
- Same-row column references: ``ATK``
- Previous-row references: ``PREV.TotalEXP``
- Settings lookups: ``Settings.MAX_LEVEL``
- Cross-sheet references: ``REF("Monsters", "goblin", "HP")``
- Arithmetic, comparisons and calls into the function library

Function names are checked against a ``FunctionRegistry`` while parsing,
so an unknown name or a statically wrong argument count fails before any
evaluation starts.
"""

from __future__ import annotations

from lark import Token, Transformer
from lark.exceptions import (
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
    UnexpectedToken,
    VisitError,
)

from balancebook.formulas.ast import (
    REFERENCE_TYPES,
    BinaryOp,
    ColumnRef,
    CrossSheetRef,
    FunctionCall,
    Node,
    NumberLit,
    PrevRowRef,
    Reference,
    SettingsRef,
    StringLit,
    UnaryOp,
)
from balancebook.formulas.errors import FormulaError, FormulaLexError, FormulaParseError
from balancebook.formulas.lexer import FORMULA_LARK, unescape_string
from balancebook.formulas.library import FunctionRegistry, default_registry

PREV_PREFIX = "PREV"
SETTINGS_PREFIX = "Settings"

_TOKEN_NAMES = {
    "RPAR": "')'",
    "LPAR": "'('",
    "COMMA": "','",
}


def _binary(op: str):
    """Transformer callback building a BinaryOp for *op*."""

    def handler(self, children: list[Node]) -> BinaryOp:
        return BinaryOp(op, children[0], children[1])

    return handler


class _AstBuilder(Transformer):
    """Turn the Lark parse tree into immutable expression nodes."""

    def __init__(self, registry: FunctionRegistry) -> None:
        super().__init__()
        self._registry = registry

    # ---------- literals & references ----------

    def number(self, children: list[Token]) -> NumberLit:
        return NumberLit(float(children[0]))

    def string(self, children: list[Token]) -> StringLit:
        tok = children[0]
        return StringLit(unescape_string(str(tok)), tok.start_pos)

    def name(self, children: list[Token]) -> ColumnRef:
        tok = children[0]
        return ColumnRef(str(tok), tok.start_pos)

    def dotted(self, children: list[Token]) -> Reference:
        tok = children[0]
        prefix, _, field = str(tok).partition(".")
        if prefix == PREV_PREFIX:
            return PrevRowRef(field, tok.start_pos)
        if prefix == SETTINGS_PREFIX:
            return SettingsRef(field, tok.start_pos)
        raise FormulaParseError(
            f"unknown reference prefix {prefix!r} (expected PREV or Settings)",
            position=tok.start_pos,
        )

    # ---------- operators ----------

    add = _binary("+")
    sub = _binary("-")
    mul = _binary("*")
    div = _binary("/")
    pow = _binary("^")
    gt = _binary(">")
    lt = _binary("<")
    gte = _binary(">=")
    lte = _binary("<=")
    eq = _binary("=")
    neq = _binary("!=")

    def neg(self, children: list[Node]) -> UnaryOp:
        return UnaryOp("-", children[0])

    def pos(self, children: list[Node]) -> Node:
        return children[0]

    # ---------- calls ----------

    def args(self, children: list[Node]) -> list[Node]:
        return list(children)

    def call(self, children: list) -> Node:
        tok: Token = children[0]
        args: list[Node] = children[1]
        func_name = str(tok).upper()

        if func_name not in self._registry:
            raise FormulaParseError(f"unknown function: {str(tok)}", position=tok.start_pos)
        spec = self._registry[func_name]
        if not spec.accepts(len(args)):
            raise FormulaParseError(
                f"{func_name} requires {spec.arity_text()} arguments, got {len(args)}",
                position=tok.start_pos,
            )

        if func_name == "REF":
            return _cross_sheet_ref(args, tok.start_pos)
        return FunctionCall(func_name, tuple(args), tok.start_pos)


def _cross_sheet_ref(args: list[Node], position: int) -> CrossSheetRef:
    """Build a CrossSheetRef from REF's three name arguments."""
    names: list[str | int] = []
    for index, arg in enumerate(args):
        if isinstance(arg, StringLit):
            names.append(arg.value)
        elif isinstance(arg, ColumnRef):
            names.append(arg.name)
        elif index == 1 and isinstance(arg, NumberLit) and arg.value.is_integer() and arg.value >= 0:
            names.append(int(arg.value))
        else:
            raise FormulaParseError(
                f"REF argument {index + 1} must be a name or string literal",
                position=position,
            )
    sheet, row, column = names
    return CrossSheetRef(str(sheet), row, str(column), position)


def strip_formula_prefix(formula: str) -> str:
    """Drop the spreadsheet ``=`` marker from raw cell text, if present."""
    text = formula.strip()
    if text.startswith("="):
        return text[1:]
    return text


def parse_formula(body: str, registry: FunctionRegistry | None = None) -> Node:
    """Parse a formula body into an expression tree.

    Args:
        body: Formula text without the leading ``=``, e.g. ``"ATK * 1.5"``.
        registry: Function library used for name and arity checks.
            Defaults to the built-in library.

    Returns:
        The root expression node.

    Raises:
        FormulaLexError: On a character that starts no token.
        FormulaParseError: On malformed grammar, unknown function names or
            wrong argument counts.
    """
    if registry is None:
        registry = default_registry()
    if not body.strip():
        raise FormulaParseError("empty formula", position=0)

    try:
        tree = FORMULA_LARK.parse(body)
    except UnexpectedCharacters as exc:
        raise FormulaLexError(exc.pos_in_stream, exc.char) from exc
    except UnexpectedEOF as exc:
        raise FormulaParseError("unexpected end of formula", position=len(body)) from exc
    except UnexpectedToken as exc:
        raise _token_error(exc, body) from exc
    except UnexpectedInput as exc:
        pos = getattr(exc, "pos_in_stream", None)
        raise FormulaParseError("invalid formula", position=pos) from exc

    try:
        return _AstBuilder(registry).transform(tree)
    except VisitError as exc:
        raise exc.orig_exc from exc


def _token_error(exc: UnexpectedToken, body: str) -> FormulaParseError:
    """Translate a Lark UnexpectedToken into a readable parse error."""
    token = exc.token
    if token.type == "$END":
        if "RPAR" in exc.expected:
            return FormulaParseError("unmatched parenthesis", position=len(body))
        return FormulaParseError("unexpected end of formula", position=len(body))
    if token.type == "RPAR":
        return FormulaParseError("unmatched parenthesis", position=token.start_pos)
    shown = _TOKEN_NAMES.get(token.type, repr(str(token)))
    return FormulaParseError(f"unexpected token {shown}", position=token.start_pos)


def validate_formula(
    formula: str, registry: FunctionRegistry | None = None
) -> tuple[bool, str | None]:
    """Check a formula's syntax without evaluating it.

    Accepts raw cell text (a leading ``=`` is ignored).

    Returns:
        ``(True, None)`` when valid, otherwise ``(False, message)``.
    """
    try:
        parse_formula(strip_formula_prefix(formula), registry)
    except FormulaError as exc:
        return False, str(exc)
    return True, None


def extract_refs(node: Node) -> set[Reference]:
    """Collect every reference node in an expression tree."""
    found: set[Reference] = set()
    stack: list[Node] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, REFERENCE_TYPES):
            found.add(current)
        elif isinstance(current, UnaryOp):
            stack.append(current.operand)
        elif isinstance(current, BinaryOp):
            stack.extend((current.left, current.right))
        elif isinstance(current, FunctionCall):
            stack.extend(current.args)
    return found
