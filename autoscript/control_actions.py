"""
Control-flow steps: variables, conditional branching and loops.

Conditions compare two textual operands. Equality and "contains" tests are
ordinal string comparisons; ordering tests parse both operands as numbers
and evaluate to False (with a warning) when either side is not numeric.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union

from .actions import (
    ActionError,
    BaseAction,
    ControlFlowError,
    ControlKind,
    ValidationError,
    register_action,
)


class ConditionType(Enum):
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


_CONDITION_SYMBOLS = {
    ConditionType.EQUAL: "==",
    ConditionType.NOT_EQUAL: "!=",
    ConditionType.GREATER_THAN: ">",
    ConditionType.GREATER_THAN_OR_EQUAL: ">=",
    ConditionType.LESS_THAN: "<",
    ConditionType.LESS_THAN_OR_EQUAL: "<=",
}


def parse_number(value: object) -> Optional[float]:
    """Culture-invariant float parsing; returns None when not numeric."""
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def normalize_number(number: float) -> Union[int, float]:
    """Integral results are stored as int, everything else as float."""
    if abs(number % 1) < 1e-7:
        return int(round(number))
    return number


def evaluate_condition(
    condition: ConditionType,
    left: str,
    right: str,
    action: Optional[BaseAction] = None,
) -> bool:
    if condition == ConditionType.EQUAL:
        return left == right
    if condition == ConditionType.NOT_EQUAL:
        return left != right
    if condition == ConditionType.CONTAINS:
        return right in left
    if condition == ConditionType.NOT_CONTAINS:
        return right not in left
    if condition == ConditionType.IS_EMPTY:
        return not left.strip()
    if condition == ConditionType.IS_NOT_EMPTY:
        return bool(left.strip())

    left_num = parse_number(left)
    right_num = parse_number(right)
    if left_num is None or right_num is None:
        if action is not None:
            bad = left if left_num is None else right
            action.log_warning(f"'{bad}' is not a number; condition evaluates to false")
        return False
    if condition == ConditionType.GREATER_THAN:
        return left_num > right_num
    if condition == ConditionType.GREATER_THAN_OR_EQUAL:
        return left_num >= right_num
    if condition == ConditionType.LESS_THAN:
        return left_num < right_num
    if condition == ConditionType.LESS_THAN_OR_EQUAL:
        return left_num <= right_num
    return False


def describe_condition(condition: ConditionType, left: str, right: str) -> str:
    if condition in _CONDITION_SYMBOLS:
        return f"{left} {_CONDITION_SYMBOLS[condition]} {right}"
    if condition == ConditionType.CONTAINS:
        return f"{left} contains '{right}'"
    if condition == ConditionType.NOT_CONTAINS:
        return f"{left} does not contain '{right}'"
    if condition == ConditionType.IS_EMPTY:
        return f"{left} is empty"
    return f"{left} is not empty"


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class VariableOperation(Enum):
    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


@register_action
@dataclass
class VariableSetAction(BaseAction):
    kind: ClassVar[str] = "variable_set"
    template_fields: ClassVar[Tuple[str, ...]] = ("value",)

    variable_name: str = ""
    value: str = ""
    operation: VariableOperation = VariableOperation.SET

    @property
    def name(self) -> str:
        return "Set variable"

    @property
    def description(self) -> str:
        symbol = {VariableOperation.SET: "=", VariableOperation.ADD: "+=",
                  VariableOperation.SUBTRACT: "-="}[self.operation]
        return f"{self.variable_name} {symbol} {self.value}"

    def check(self) -> None:
        if not self.variable_name.strip():
            raise ValidationError("Variable name is empty")

    def run(self) -> None:
        if self.operation == VariableOperation.SET:
            number = parse_number(self.value)
            result = self.value if number is None else normalize_number(number)
        else:
            result = self._arithmetic()
        self.ctx.set_variable(self.variable_name, result)
        self.log_info(f"{self.variable_name} = {result}")

    def _arithmetic(self) -> Union[int, float]:
        current = self.ctx.get_variable(self.variable_name)
        if current is None:
            raise ActionError(f"Variable '{self.variable_name}' is not defined")
        current_num = parse_number(current)
        if current_num is None:
            raise ActionError(f"Variable '{self.variable_name}' is not numeric: {current}")
        operand = parse_number(self.value)
        if operand is None:
            raise ActionError(f"Value '{self.value}' is not numeric")
        if self.operation == VariableOperation.ADD:
            return normalize_number(current_num + operand)
        return normalize_number(current_num - operand)


# ---------------------------------------------------------------------------
# Branching
# ---------------------------------------------------------------------------


class IfThenAction(Enum):
    CONTINUE = "continue"
    SKIP_NEXT = "skip_next"
    JUMP_TO_ACTION = "jump_to_action"
    EXIT_SCRIPT = "exit_script"


@register_action
@dataclass
class IfAction(BaseAction):
    kind: ClassVar[str] = "if"
    template_fields: ClassVar[Tuple[str, ...]] = ("left_value", "right_value")

    left_value: str = ""
    right_value: str = ""
    condition_type: ConditionType = ConditionType.EQUAL
    then_action: IfThenAction = IfThenAction.CONTINUE
    jump_to_position: int = 0

    @property
    def name(self) -> str:
        return "If"

    @property
    def description(self) -> str:
        then = {
            IfThenAction.CONTINUE: "continue",
            IfThenAction.SKIP_NEXT: "skip next",
            IfThenAction.JUMP_TO_ACTION: f"jump to #{self.jump_to_position}",
            IfThenAction.EXIT_SCRIPT: "exit",
        }[self.then_action]
        cond = describe_condition(self.condition_type, self.left_value, self.right_value)
        return f"If ({cond}) then {then}"

    def check(self) -> None:
        if self.then_action == IfThenAction.JUMP_TO_ACTION and self.jump_to_position <= 0:
            raise ValidationError("Jump target is not set")

    def referenced_positions(self) -> List[int]:
        if self.then_action == IfThenAction.JUMP_TO_ACTION:
            return [self.jump_to_position]
        return []

    def run(self) -> None:
        result = evaluate_condition(self.condition_type, self.left_value, self.right_value, self)
        self.log_info(f"{self.description} -> {result}")
        if not result:
            return
        if self.then_action == IfThenAction.SKIP_NEXT:
            self.request(ControlKind.SKIP_NEXT)
        elif self.then_action == IfThenAction.JUMP_TO_ACTION:
            self.request(ControlKind.JUMP, self.jump_to_position)
        elif self.then_action == IfThenAction.EXIT_SCRIPT:
            self.request(ControlKind.EXIT)


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


@register_action
@dataclass
class LoopStartAction(BaseAction):
    kind: ClassVar[str] = "loop_start"

    comment: str = ""

    @property
    def name(self) -> str:
        return "Loop start"

    @property
    def description(self) -> str:
        return f"Loop start: {self.comment}" if self.comment.strip() else "Loop start"

    def run(self) -> None:
        # Marker only; loop-back is decided by the paired loop end.
        self.log_debug("Entering loop body")


class LoopEndConditionType(Enum):
    ALWAYS = "always"
    IF_EQUAL = "if_equal"
    IF_NOT_EQUAL = "if_not_equal"
    IF_GREATER_THAN = "if_greater_than"
    IF_LESS_THAN = "if_less_than"
    IF_EMPTY = "if_empty"
    IF_NOT_EMPTY = "if_not_empty"
    MAX_ITERATIONS = "max_iterations"


_LOOP_END_CONDITIONS = {
    LoopEndConditionType.IF_EQUAL: ConditionType.EQUAL,
    LoopEndConditionType.IF_NOT_EQUAL: ConditionType.NOT_EQUAL,
    LoopEndConditionType.IF_GREATER_THAN: ConditionType.GREATER_THAN,
    LoopEndConditionType.IF_LESS_THAN: ConditionType.LESS_THAN,
    LoopEndConditionType.IF_EMPTY: ConditionType.IS_EMPTY,
    LoopEndConditionType.IF_NOT_EMPTY: ConditionType.IS_NOT_EMPTY,
}


@register_action
@dataclass
class LoopEndAction(BaseAction):
    kind: ClassVar[str] = "loop_end"
    template_fields: ClassVar[Tuple[str, ...]] = ("left_value", "right_value")

    loop_start_position: int = 0
    end_condition_type: LoopEndConditionType = LoopEndConditionType.ALWAYS
    left_value: str = ""
    right_value: str = ""
    max_iterations: int = 100

    current_iteration: int = field(default=0, init=False, repr=False, compare=False)

    @property
    def name(self) -> str:
        return "Loop end"

    @property
    def description(self) -> str:
        if self.end_condition_type == LoopEndConditionType.ALWAYS:
            until = "always exit"
        elif self.end_condition_type == LoopEndConditionType.MAX_ITERATIONS:
            until = f"exit after {self.max_iterations} iterations"
        else:
            cond = describe_condition(
                _LOOP_END_CONDITIONS[self.end_condition_type], self.left_value, self.right_value
            )
            until = f"exit if {cond}"
        return f"Loop end (back to #{self.loop_start_position}): {until}"

    def check(self) -> None:
        if self.loop_start_position <= 0:
            raise ValidationError("Loop start position is not set")
        if self.end_condition_type == LoopEndConditionType.MAX_ITERATIONS and self.max_iterations <= 0:
            raise ValidationError("Maximum iterations must be positive")

    def referenced_positions(self) -> List[int]:
        return [self.loop_start_position]

    def reset_state(self) -> None:
        self.current_iteration = 0

    def run(self) -> None:
        self.ctx.get_action(self.loop_start_position, LoopStartAction)
        if self.position and self.loop_start_position >= self.position:
            raise ControlFlowError(
                f"Loop start #{self.loop_start_position} must precede loop end #{self.position}"
            )

        self.current_iteration += 1
        if self._should_exit():
            self.log_info(f"Leaving loop after {self.current_iteration} iteration(s)")
            self.current_iteration = 0
            return
        self.log_info(f"Loop iteration {self.current_iteration} done, continuing")
        self.request(ControlKind.LOOP_BACK, self.loop_start_position)

    def _should_exit(self) -> bool:
        if self.end_condition_type == LoopEndConditionType.ALWAYS:
            return True
        if self.end_condition_type == LoopEndConditionType.MAX_ITERATIONS:
            return self.current_iteration >= self.max_iterations
        condition = _LOOP_END_CONDITIONS[self.end_condition_type]
        return evaluate_condition(condition, self.left_value, self.right_value, self)
