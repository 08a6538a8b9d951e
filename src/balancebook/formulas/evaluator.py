"""Tree-walking evaluator for parsed formula expressions.

``evaluate()`` is the public entry point: it parses a formula body,
resolves references against an ``EvalContext`` and applies the function
library, and always returns a ``FormulaResult``.  No exception crosses
that boundary -- a single bad formula must not take down the grid.

Numeric semantics follow IEEE-754 inside an expression (``1/0`` is
Infinity, ``0/0`` is NaN).  Only the final result is checked: NaN is a
math error, and so is Infinity unless ``allow_infinity`` is configured.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from balancebook.config import EngineConfig
from balancebook.formulas.ast import (
    REFERENCE_TYPES,
    BinaryOp,
    FunctionCall,
    Node,
    NumberLit,
    StringLit,
    UnaryOp,
)
from balancebook.formulas.errors import (
    ENGINE_ERRORS,
    UNMASKABLE_ERRORS,
    FormulaError,
    FormulaMathError,
    FormulaRefError,
    FormulaTypeError,
)
from balancebook.formulas.library import FunctionRegistry, FunctionSpec, default_registry
from balancebook.formulas.parser import parse_formula, strip_formula_prefix
from balancebook.formulas.resolver import (
    EvaluationCache,
    Frame,
    ReferenceResolver,
    ResolutionGuard,
    cell_label,
)
from balancebook.logging.events import emit_warning, event_type_for_error
from balancebook.values import (
    EMPTY,
    CellValue,
    Empty,
    FormulaResult,
    Number,
    Text,
    ieee_div,
    ieee_pow,
    numeric_text,
)
from balancebook.workbook import EvalContext, Workbook

logger = logging.getLogger(__name__)

_EMPTY_WORKBOOK = Workbook()


class _Walk:
    """State for one evaluation: resolver, guard and collected warnings."""

    def __init__(
        self,
        evaluator: Evaluator,
        workbook: Workbook,
        cache: EvaluationCache | None,
    ) -> None:
        self.registry = evaluator.registry
        self.guard = ResolutionGuard(evaluator.config.max_depth)
        self.warnings: list[str] = []
        self.resolver = ReferenceResolver(
            workbook,
            evaluator.config,
            self.eval_body,
            self.guard,
            cache,
        )

    # ---------- entry points ----------

    def eval_body(self, body: str, frame: Frame | None) -> CellValue:
        """Parse and evaluate a chained formula body in *frame*."""
        return self.value(parse_formula(body, self.registry), frame)

    def value(self, node: Node, frame: Frame | None) -> CellValue:
        """Evaluate *node* to a cell value.  String literals are allowed."""
        if isinstance(node, NumberLit):
            return Number(node.value)
        if isinstance(node, StringLit):
            return Text(node.value)
        if isinstance(node, REFERENCE_TYPES):
            return self.resolver.resolve(node, frame)
        if isinstance(node, UnaryOp):
            operand = self.operand(node.operand, frame, f"operand of unary '{node.op}'")
            return Number(-operand)
        if isinstance(node, BinaryOp):
            return self._binary(node, frame)
        if isinstance(node, FunctionCall):
            return self._call(node, frame)
        raise FormulaError(f"Unknown node type: {type(node).__name__}")

    # ---------- numbers ----------

    def operand(self, node: Node, frame: Frame | None, what: str) -> float:
        """Evaluate *node* where an operator needs a number."""
        if isinstance(node, StringLit):
            raise FormulaTypeError(f"{what} is a string literal, expected a number")
        return self.number(self.value(node, frame), what)

    def number(self, value: CellValue, what: str) -> float:
        if isinstance(value, Number):
            return value.value
        if isinstance(value, Text):
            parsed = numeric_text(value.value)
            if parsed is None:
                raise FormulaTypeError(f"{what} must be a number, got text {value.value!r}")
            self.warnings.append(f"text {value.value!r} used as a number")
            return parsed
        raise FormulaTypeError(f"{what} must be a number, got an empty cell")

    # ---------- operators ----------

    def _binary(self, node: BinaryOp, frame: Frame | None) -> CellValue:
        op = node.op
        if op in ("=", "!="):
            left = self.value(node.left, frame)
            right = self.value(node.right, frame)
            if isinstance(left, Text) or isinstance(right, Text):
                if not isinstance(left, Number) and not isinstance(right, Number):
                    equal = str(left) == str(right)
                    return _truth(equal if op == "=" else not equal)
            a = self.number(left, f"left operand of '{op}'")
            b = self.number(right, f"right operand of '{op}'")
            return _truth(a == b if op == "=" else a != b)

        a = self.operand(node.left, frame, f"left operand of '{op}'")
        b = self.operand(node.right, frame, f"right operand of '{op}'")
        if op == "+":
            return Number(a + b)
        if op == "-":
            return Number(a - b)
        if op == "*":
            return Number(a * b)
        if op == "/":
            return Number(ieee_div(a, b))
        if op == "^":
            return Number(ieee_pow(a, b))
        if op == "<":
            return _truth(a < b)
        if op == ">":
            return _truth(a > b)
        if op == "<=":
            return _truth(a <= b)
        if op == ">=":
            return _truth(a >= b)
        raise FormulaError(f"Unknown operator: {op!r}")

    # ---------- function dispatch ----------

    def _call(self, node: FunctionCall, frame: Frame | None) -> CellValue:
        if node.name not in self.registry:
            raise FormulaError(f"unknown function: {node.name}")
        spec = self.registry[node.name]
        spec.check_arity(len(node.args))

        # Special forms receive unevaluated argument nodes
        if node.name == "IF":
            return self._fn_if(node.args, frame)
        if node.name == "IFERROR":
            return self._fn_iferror(node.args, frame)
        if spec.fn is None:
            raise FormulaError(f"{spec.name} cannot be called here")

        args = [self._argument(spec, i, arg, frame) for i, arg in enumerate(node.args)]
        try:
            result = spec.fn(*args)
        except (ArithmeticError, ValueError) as exc:
            raise FormulaMathError(f"{spec.name}: {exc}") from exc
        return Number(float(result))

    def _argument(self, spec: FunctionSpec, index: int, node: Node, frame: Frame | None) -> Any:
        what = f"{spec.name} argument {index + 1}"
        value = self.value(node, frame)
        if index in spec.text_args:
            if isinstance(value, Text):
                return value.value
            raise FormulaTypeError(f"{what} must be text")
        return self.number(value, what)

    def _fn_if(self, args: tuple[Node, ...], frame: Frame | None) -> CellValue:
        """IF(condition, then_value [, else_value]) -- only the chosen branch is evaluated."""
        condition = self.operand(args[0], frame, "IF argument 1")
        if condition != 0:
            return self.value(args[1], frame)
        if len(args) == 3:
            return self.value(args[2], frame)
        return Number(0.0)

    def _fn_iferror(self, args: tuple[Node, ...], frame: Frame | None) -> CellValue:
        """IFERROR(value, fallback) -- fallback on any error except cycles and depth overflow."""
        try:
            result = self.value(args[0], frame)
        except UNMASKABLE_ERRORS:
            raise
        except ENGINE_ERRORS:
            return self.value(args[1], frame)
        if isinstance(result, Number) and math.isnan(result.value):
            return self.value(args[1], frame)
        return result


def _truth(flag: bool) -> Number:
    return Number(1.0 if flag else 0.0)


class Evaluator:
    """Evaluates formula bodies against workbook contexts.

    The evaluator itself holds no per-evaluation state; each ``evaluate``
    call builds its own resolver and cycle guard, so one instance may be
    shared across threads.

    Args:
        registry: Function library.  Defaults to the built-in library.
        config: Engine options.  Defaults to ``EngineConfig()``.
    """

    def __init__(
        self,
        registry: FunctionRegistry | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.config = config if config is not None else EngineConfig()

    def evaluate(
        self,
        formula_body: str,
        context: EvalContext | None = None,
        *,
        cache: EvaluationCache | None = None,
    ) -> FormulaResult:
        """Evaluate a formula body.

        Args:
            formula_body: Expression text; a single leading ``=`` is tolerated.
            context: Workbook and current sheet/row.  Without a context only
                self-contained expressions succeed.
            cache: Optional memo shared across evaluations of one
                recalculation pass.

        Returns:
            A result holding either the value or an error message.
        """
        try:
            value, warnings = self._evaluate(formula_body, context, cache)
        except FormulaError as exc:
            self._report(formula_body, context, str(exc), exc.code)
            return FormulaResult.failure(str(exc), exc.code)
        except Exception as exc:
            logger.exception("unexpected failure evaluating %r", formula_body)
            message = f"internal error: {exc}"
            self._report(formula_body, context, message, "internal_error")
            return FormulaResult.failure(message, "internal_error")
        return FormulaResult.success(value, tuple(warnings))

    def _evaluate(
        self,
        formula_body: str,
        context: EvalContext | None,
        cache: EvaluationCache | None,
    ) -> tuple[CellValue, list[str]]:
        workbook = context.workbook if context is not None else _EMPTY_WORKBOOK
        frame = self._frame(context)
        node = parse_formula(strip_formula_prefix(formula_body), self.registry)
        if isinstance(node, StringLit):
            raise FormulaTypeError("a string literal is only valid as a function argument")

        walk = _Walk(self, workbook, cache)
        if context is not None and context.column_id is not None and frame is not None:
            column = frame.sheet.column_by_id(context.column_id)
            if column is None:
                raise FormulaRefError(f"unknown column id: {context.column_id}")
            key = (frame.sheet.id, frame.row.id, column.id)
            with walk.guard.enter(key, cell_label(frame.sheet, frame.row, column)):
                value = walk.value(node, frame)
        else:
            value = walk.value(node, frame)

        return self._check_result(value), walk.warnings

    def _frame(self, context: EvalContext | None) -> Frame | None:
        if context is None:
            return None
        sheet = context.workbook.get_sheet(context.sheet_id)
        if sheet is None:
            raise FormulaRefError(f"unknown sheet: {context.sheet_id}")
        row_index = sheet.row_index(context.row_id)
        if row_index is None:
            raise FormulaRefError(f"unknown row: {context.row_id}")
        return Frame(sheet, row_index)

    def _check_result(self, value: CellValue) -> CellValue:
        if isinstance(value, Number):
            if math.isnan(value.value):
                raise FormulaMathError("result is not a number")
            if math.isinf(value.value) and not self.config.allow_infinity:
                raise FormulaMathError("result is infinite")
        if isinstance(value, Empty):
            return EMPTY
        return value

    def _report(
        self,
        formula_body: str,
        context: EvalContext | None,
        message: str,
        code: str,
    ) -> None:
        logger.debug("formula %r failed: %s", formula_body, message)
        ctx: dict[str, Any] = {"formula": formula_body}
        if context is not None:
            ctx.update(sheet_id=context.sheet_id, row_id=context.row_id)
            if context.column_id is not None:
                ctx["column_id"] = context.column_id
        emit_warning(event_type_for_error(code), message, ctx, error_code=code)


def evaluate(
    formula_body: str,
    context: EvalContext | None = None,
    *,
    registry: FunctionRegistry | None = None,
    config: EngineConfig | None = None,
) -> FormulaResult:
    """Evaluate a formula body with a one-off ``Evaluator``.

    Args:
        formula_body: Expression text, e.g. ``"ATK * 1.5"``.
        context: Workbook plus current sheet and row.
        registry: Function library (defaults to the built-in library).
        config: Engine options (defaults to ``EngineConfig()``).

    Returns:
        ``FormulaResult`` -- never raises.
    """
    return Evaluator(registry, config).evaluate(formula_body, context)
