"""Rule variants, the Slurm rule catalog, and per-variant normalization."""
import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

TIME_UNITS: Tuple[str, ...] = ("Minutes", "Hours", "Days")
STORAGE_UNITS: Tuple[str, ...] = ("GB", "MB")
NONE_UNIT = "None"


class RuleType(str, Enum):
    """The ``type`` tag of a rule."""

    INTEGER = "integer"
    STRING_OPTION = "string_option"
    STRING_INPUT = "string_input"


class SlurmRuleCategory(str, Enum):
    """How a Slurm rule name is interpreted."""

    TIME = "time"
    STORAGE = "storage"
    UNITLESS = "unitless"
    OPTION = "option"


# Closed catalog: Slurm rules with any other name are dropped
SLURM_RULE_CATALOG: Dict[str, SlurmRuleCategory] = {
    "time": SlurmRuleCategory.TIME,
    "memory_per_cpu": SlurmRuleCategory.STORAGE,
    "memory_per_gpu": SlurmRuleCategory.STORAGE,
    "memory": SlurmRuleCategory.STORAGE,
    "num_of_node": SlurmRuleCategory.UNITLESS,
    "num_of_task": SlurmRuleCategory.UNITLESS,
    "cpu_per_task": SlurmRuleCategory.UNITLESS,
    "gpus": SlurmRuleCategory.UNITLESS,
    "gpus_per_node": SlurmRuleCategory.UNITLESS,
    "gpus_per_socket": SlurmRuleCategory.UNITLESS,
    "gpus_per_task": SlurmRuleCategory.UNITLESS,
    "partition": SlurmRuleCategory.OPTION,
}

ALLOWED_UNITS: Dict[SlurmRuleCategory, Tuple[str, ...]] = {
    SlurmRuleCategory.TIME: TIME_UNITS,
    SlurmRuleCategory.STORAGE: STORAGE_UNITS,
}


class IntegerRule(BaseModel):
    """Bounded integer: ``min <= default_value <= max`` stepping by ``step``."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["integer"] = "integer"
    default_value: int
    min: int
    max: int
    step: int = Field(..., gt=0)
    unit: Optional[str] = None

    @model_validator(mode="after")
    def validate_bounds(self) -> "IntegerRule":
        if not self.min <= self.default_value <= self.max:
            raise ValueError(
                f"default_value {self.default_value} outside [{self.min}, {self.max}]"
            )
        return self


class StringOptionRule(BaseModel):
    """A choice among ``options``; the default is always one of them."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["string_option"] = "string_option"
    default_value: str
    options: List[str] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_default_in_options(self) -> "StringOptionRule":
        if self.default_value not in self.options:
            raise ValueError(f"default_value '{self.default_value}' not among options")
        return self


class StringInputRule(BaseModel):
    """Free text with a default."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["string_input"] = "string_input"
    default_value: str


Rule = Annotated[
    Union[IntegerRule, StringOptionRule, StringInputRule],
    Field(discriminator="type"),
]


def _without_none(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in raw.items() if v is not None}


def normalize_integer_rule(raw: Dict[str, Any], unit: Optional[str] = None) -> IntegerRule:
    """Fill missing bounds and build an IntegerRule.

    Missing ``max`` becomes twice the default, as does a zero ``max`` that
    would sit below the default. Missing ``min`` becomes 0 and a missing or
    zero ``step`` becomes 1. A given ``unit`` overrides the declared one.

    Raises:
        ValidationError: If the result still breaks the integer invariants
    """
    data = _without_none(raw)
    data["type"] = RuleType.INTEGER.value
    if unit is not None:
        data["unit"] = unit

    default = data.get("default_value")
    numeric_default = isinstance(default, (int, float)) and not isinstance(default, bool)
    if numeric_default and ("max" not in data or (data["max"] == 0 and default > 0)):
        data["max"] = default * 2
    if "min" not in data:
        data["min"] = 0
    if not data.get("step"):
        data["step"] = 1

    return IntegerRule.model_validate(data)


def normalize_string_option_rule(raw: Dict[str, Any]) -> StringOptionRule:
    """Make sure ``options`` exists and contains the default exactly once.

    Raises:
        ValidationError: If the default or options are not strings
    """
    data = _without_none(raw)
    data["type"] = RuleType.STRING_OPTION.value

    default = data.get("default_value")
    options = data.get("options")
    if not options:
        options = [default]
    elif isinstance(options, list) and default not in options:
        options = [*options, default]
    data["options"] = options

    return StringOptionRule.model_validate(data)


def normalize_string_input_rule(raw: Dict[str, Any]) -> StringInputRule:
    data = _without_none(raw)
    data["type"] = RuleType.STRING_INPUT.value
    return StringInputRule.model_validate(data)


def normalize_slurm_rule(name: str, raw: Any) -> Optional[Union[IntegerRule, StringOptionRule]]:
    """Normalize one Slurm rule, or return None if it must be dropped."""
    category = SLURM_RULE_CATALOG.get(name)
    if category is None:
        logger.warning(f"Dropping unknown slurm rule '{name}'")
        return None

    if not isinstance(raw, dict) or not raw.get("default_value"):
        logger.warning(f"Dropping slurm rule '{name}': no default_value")
        return None

    declared_unit = raw.get("unit")
    allowed_units = ALLOWED_UNITS.get(category)
    if allowed_units is not None and declared_unit is not None and declared_unit not in allowed_units:
        logger.warning(
            f"Dropping slurm rule '{name}': unit '{declared_unit}' not in {list(allowed_units)}"
        )
        return None

    try:
        if category is SlurmRuleCategory.OPTION:
            return normalize_string_option_rule(raw)
        forced_unit = NONE_UNIT if category is SlurmRuleCategory.UNITLESS else None
        return normalize_integer_rule(raw, unit=forced_unit)
    except ValidationError as e:
        logger.warning(f"Dropping slurm rule '{name}': {e.error_count()} invalid field(s)")
        return None


def normalize_param_rule(name: str, raw: Any) -> Optional[Union[IntegerRule, StringOptionRule, StringInputRule]]:
    """Normalize one parameter rule, or return None if it must be dropped."""
    if not isinstance(raw, dict) or not raw.get("default_value"):
        logger.warning(f"Dropping param rule '{name}': no default_value")
        return None

    try:
        rule_type = RuleType(raw.get("type"))
    except ValueError:
        logger.warning(f"Dropping param rule '{name}': unknown type {raw.get('type')!r}")
        return None

    try:
        if rule_type is RuleType.INTEGER:
            return normalize_integer_rule(raw)
        if rule_type is RuleType.STRING_OPTION:
            return normalize_string_option_rule(raw)
        return normalize_string_input_rule(raw)
    except ValidationError as e:
        logger.warning(f"Dropping param rule '{name}': {e.error_count()} invalid field(s)")
        return None
