"""Record processing services."""

from .transformer import TransformEngine, get_field_value
from .validator import RuleValidator, ValidationRules, default_validator
from .processor import RecordProcessor
from .join_planner import JoinPlanner, JoinPreview

__all__ = [
    "TransformEngine",
    "get_field_value",
    "RuleValidator",
    "ValidationRules",
    "default_validator",
    "RecordProcessor",
    "JoinPlanner",
    "JoinPreview",
]
