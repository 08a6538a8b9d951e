"""balancebook -- formula engine for game-balance spreadsheets."""

from balancebook.config import EngineConfig, load_engine_config
from balancebook.formulas import evaluate, validate_formula
from balancebook.values import EMPTY, Empty, FormulaResult, Number, Text
from balancebook.workbook import EvalContext, Workbook, load_workbook

__version__ = "0.3.0"

__all__ = [
    "EMPTY",
    "Empty",
    "EngineConfig",
    "EvalContext",
    "FormulaResult",
    "Number",
    "Text",
    "Workbook",
    "evaluate",
    "load_engine_config",
    "load_workbook",
    "validate_formula",
    "__version__",
]
