"""Error types for formula lexing, parsing, resolution and evaluation."""

from __future__ import annotations


class FormulaError(Exception):
    """Base class for all formula-related errors."""

    code = "formula_error"


class FormulaLexError(FormulaError):
    """A character that starts no token (or a malformed literal).

    Attributes:
        position: Offset of the offending character in the formula body.
        char: The unexpected character.
    """

    code = "lex_error"

    def __init__(self, position: int, char: str) -> None:
        self.position = position
        self.char = char
        super().__init__(f"unexpected character {char!r} at position {position}")


class FormulaParseError(FormulaError):
    """Syntax error in a formula expression.

    Attributes:
        position: Character position where the error was detected.
        message: Human-readable description.
    """

    code = "parse_error"

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        self.message = message
        full = message
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class FormulaRefError(FormulaError):
    """Reference to a column, row, sheet or setting that does not exist."""

    code = "reference_error"


class FormulaArgumentError(FormulaError):
    """Function called with the wrong number of arguments.

    Attributes:
        func_name: The function that caused the error.
    """

    code = "argument_error"

    def __init__(self, func_name: str, message: str) -> None:
        self.func_name = func_name
        super().__init__(message)


class FormulaTypeError(FormulaError):
    """Non-numeric value used where a number is required."""

    code = "type_error"


class FormulaMathError(FormulaError):
    """Result is NaN or non-finite at the top level, or a function failed numerically."""

    code = "math_error"


class FormulaCycleError(FormulaError):
    """A cell formula depends on itself through same-sheet chaining.

    Attributes:
        cycle_path: Cell labels (``Sheet!row/column``) forming the cycle.
    """

    code = "cycle_error"

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__(f"circular reference: {' -> '.join(cycle_path)}")


class FormulaRecursionError(FormulaError):
    """Formula chaining went deeper than the configured limit."""

    code = "recursion_limit"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"formula chain exceeds maximum depth of {limit}")


# Tuple of all engine error types, for use in except clauses.
ENGINE_ERRORS: tuple[type[Exception], ...] = (
    FormulaError,
    ArithmeticError,
    ValueError,
)

# Structural failures that IFERROR must not mask.
UNMASKABLE_ERRORS: tuple[type[FormulaError], ...] = (
    FormulaCycleError,
    FormulaRecursionError,
)
