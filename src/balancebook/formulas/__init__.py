"""Game-balance formula parsing and evaluation.

Public API::

    from balancebook.formulas import evaluate, parse_formula, validate_formula
"""

from balancebook.formulas.errors import (
    ENGINE_ERRORS,
    FormulaArgumentError,
    FormulaCycleError,
    FormulaError,
    FormulaLexError,
    FormulaMathError,
    FormulaParseError,
    FormulaRecursionError,
    FormulaRefError,
    FormulaTypeError,
)
from balancebook.formulas.evaluator import Evaluator, evaluate
from balancebook.formulas.lexer import FormulaToken, tokenize
from balancebook.formulas.library import (
    CATEGORIES,
    FunctionInfo,
    FunctionRegistry,
    FunctionSpec,
    default_registry,
)
from balancebook.formulas.parser import extract_refs, parse_formula, validate_formula

__all__ = [
    "CATEGORIES",
    "ENGINE_ERRORS",
    "Evaluator",
    "FormulaArgumentError",
    "FormulaCycleError",
    "FormulaError",
    "FormulaLexError",
    "FormulaMathError",
    "FormulaParseError",
    "FormulaRecursionError",
    "FormulaRefError",
    "FormulaToken",
    "FormulaTypeError",
    "FunctionInfo",
    "FunctionRegistry",
    "FunctionSpec",
    "default_registry",
    "evaluate",
    "extract_refs",
    "parse_formula",
    "tokenize",
    "validate_formula",
]
