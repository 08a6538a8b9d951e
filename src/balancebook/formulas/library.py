"""Function registry for formula evaluation.

A ``FunctionRegistry`` is an immutable name → ``FunctionSpec`` mapping.
The parser checks call arity against it and the evaluator dispatches
through it, so a restricted registry (``registry.subset(...)``) yields a
sandboxed formula language without touching any global state.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping

from balancebook.formulas.errors import FormulaArgumentError

# Display order for help panels.  Categories never affect evaluation.
CATEGORIES: tuple[str, ...] = (
    "combat",
    "economy",
    "stage",
    "util",
    "ref",
    "math",
    "stat",
    "trig",
    "logic",
)


@dataclass(frozen=True)
class FunctionSpec:
    """A registered formula function.

    Attributes:
        name: Upper-case name used in formulas.
        fn: Implementation.  Receives floats (or ``str`` at *text_args*
            positions) and returns a number.  None for special forms that
            the parser or evaluator handle themselves (``REF``, ``IF``).
        min_args: Minimum argument count.
        max_args: Maximum argument count, or None when variadic.
        category: Help-panel category.
        syntax: Call signature shown to users.
        example: Example call.
        description: One-line description.
        text_args: Zero-based argument positions that accept text.
        lazy: Arguments are passed unevaluated to the evaluator's special form.
    """

    name: str
    fn: Callable[..., Any] | None
    min_args: int
    max_args: int | None
    category: str
    syntax: str
    example: str = ""
    description: str = ""
    text_args: frozenset[int] = frozenset()
    lazy: bool = False

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return f"exactly {self.min_args}"
        return f"{self.min_args}-{self.max_args}"

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def check_arity(self, count: int) -> None:
        """Raise ``FormulaArgumentError`` if *count* arguments are not accepted."""
        if not self.accepts(count):
            raise FormulaArgumentError(
                self.name,
                f"{self.name} requires {self.arity_text()} arguments, got {count}",
            )


@dataclass(frozen=True)
class FunctionInfo:
    """Read-only help metadata for one function."""

    name: str
    category: str
    syntax: str
    example: str
    description: str


class FunctionRegistry(Mapping[str, FunctionSpec]):
    """Immutable collection of formula functions keyed by upper-case name."""

    def __init__(self, specs: Iterable[FunctionSpec]) -> None:
        table: dict[str, FunctionSpec] = {}
        for spec in specs:
            if spec.category not in CATEGORIES:
                raise ValueError(f"Unknown function category: {spec.category!r}")
            table[spec.name.upper()] = spec
        self._table = MappingProxyType(table)

    def __getitem__(self, name: str) -> FunctionSpec:
        return self._table[name.upper()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.upper() in self._table

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"FunctionRegistry({len(self)} functions)"

    def subset(self, names: Iterable[str]) -> FunctionRegistry:
        """Return a registry restricted to *names* (unknown names are ignored)."""
        wanted = {n.upper() for n in names}
        return FunctionRegistry(s for n, s in self._table.items() if n in wanted)

    def extend(self, specs: Iterable[FunctionSpec]) -> FunctionRegistry:
        """Return a registry with *specs* added (replacing same-named entries)."""
        return FunctionRegistry([*self._table.values(), *specs])

    def metadata(self, category: str | None = None) -> list[FunctionInfo]:
        """Help-panel records, grouped by category in display order."""
        specs = list(self._table.values())
        if category is not None:
            specs = [s for s in specs if s.category == category]
        specs.sort(key=lambda s: CATEGORIES.index(s.category))
        return [
            FunctionInfo(s.name, s.category, s.syntax, s.example, s.description)
            for s in specs
        ]


_DEFAULT: FunctionRegistry | None = None


def default_registry() -> FunctionRegistry:
    """The full built-in function library (built once, then shared read-only)."""
    global _DEFAULT
    if _DEFAULT is None:
        from balancebook.formulas.fn_game import GAME_FUNCTIONS
        from balancebook.formulas.fn_math import MATH_FUNCTIONS

        _DEFAULT = FunctionRegistry([*GAME_FUNCTIONS, *MATH_FUNCTIONS])
    return _DEFAULT
