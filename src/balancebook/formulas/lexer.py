"""Lark grammar and tokenizer for balance-sheet formulas.

The formula body (without the leading ``=``) is tokenized into numbers,
identifiers, dotted identifiers (``PREV.Column``, ``Settings.KEY``),
double-quoted strings, operators and punctuation.  Whitespace is
insignificant.

The grammar is compiled once with the basic lexer so that the same
terminal definitions back both ``tokenize()`` and the parser.
"""

from __future__ import annotations

from typing import NamedTuple

from lark import Lark
from lark.exceptions import UnexpectedCharacters

from balancebook.formulas.errors import FormulaLexError

# LALR(1) grammar for balance formulas.
# Operator precedence (lowest to highest):
#   1. Comparison: = == != <> < > <= >=
#   2. Addition/subtraction: + -
#   3. Multiplication/division: * /
#   4. Unary minus/plus
#   5. Exponentiation: ^ (right-associative, binds tighter than unary minus)
#   6. Atoms: number, string, function call, reference, parenthesized expr
GRAMMAR = r"""
?start: expr

?expr: comparison

?comparison: addition
    | comparison ">" addition   -> gt
    | comparison "<" addition   -> lt
    | comparison ">=" addition  -> gte
    | comparison "<=" addition  -> lte
    | comparison "=" addition   -> eq
    | comparison "==" addition  -> eq
    | comparison "!=" addition  -> neq
    | comparison "<>" addition  -> neq

?addition: multiplication
    | addition "+" multiplication  -> add
    | addition "-" multiplication  -> sub

?multiplication: unary
    | multiplication "*" unary  -> mul
    | multiplication "/" unary  -> div

?unary: power
    | "-" unary  -> neg
    | "+" unary  -> pos

?power: atom
    | atom "^" unary  -> pow

?atom: NUMBER                -> number
    | STRING                 -> string
    | NAME "(" args ")"      -> call
    | DOTTED_NAME            -> dotted
    | NAME                   -> name
    | "(" expr ")"

args: expr ("," expr)*
    |

NUMBER: /(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?/

STRING: /"(?:[^"\\]|\\.)*"/

DOTTED_NAME.2: /[A-Za-z_][A-Za-z0-9_]*\.[A-Za-z_][A-Za-z0-9_]*/

NAME.1: /[A-Za-z_][A-Za-z0-9_]*/

%import common.WS
%ignore WS
"""

FORMULA_LARK = Lark(GRAMMAR, parser="lalr", lexer="basic", start="start")

_NAMED_KINDS = {
    "NUMBER": "number",
    "NAME": "identifier",
    "DOTTED_NAME": "dotted_identifier",
    "STRING": "string",
}

_PUNCTUATION_KINDS = {
    "(": "lparen",
    ")": "rparen",
    ",": "comma",
}


class FormulaToken(NamedTuple):
    """One lexical token of a formula body."""

    kind: str
    value: str
    position: int


def tokenize(body: str) -> list[FormulaToken]:
    """Split a formula body into tokens.

    Args:
        body: Formula text with the leading ``=`` already stripped.

    Returns:
        Tokens in source order.

    Raises:
        FormulaLexError: On any character that starts no token.
    """
    tokens: list[FormulaToken] = []
    try:
        for tok in FORMULA_LARK.lex(body):
            value = str(tok)
            kind = _NAMED_KINDS.get(tok.type) or _PUNCTUATION_KINDS.get(value, "operator")
            tokens.append(FormulaToken(kind, value, tok.start_pos))
    except UnexpectedCharacters as exc:
        raise FormulaLexError(exc.pos_in_stream, exc.char) from exc
    return tokens


def unescape_string(raw: str) -> str:
    """Strip the quotes from a STRING token and resolve backslash escapes."""
    inner = raw[1:-1]
    out: list[str] = []
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\" and i + 1 < len(inner):
            nxt = inner[i + 1]
            out.append({"n": "\n", "t": "\t"}.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)
