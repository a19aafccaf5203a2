"""Composable stop conditions for the agent loop.

A stop condition is a pure predicate over the full step history. Each one
carries the StopReason category it reports when it matches, so the loop
can record why a run ended. Evaluation keeps no state: running the same
conditions over the same steps always gives the same verdict.
"""

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import NamedTuple, Optional, Union

from toolloop.agent.models import AgentStep, StopReason
from toolloop.providers.models import FinishReason

StepPredicate = Callable[[Sequence[AgentStep]], bool]


class StopCondition:
    """Predicate over the step history tagged with a stop reason."""

    def __init__(
        self,
        predicate: StepPredicate,
        reason: StopReason = StopReason.STOP_CONDITION,
        name: Optional[str] = None,
    ):
        self._predicate = predicate
        self.reason = reason
        self.name = name or getattr(predicate, "__name__", "custom")

    def check(self, steps: Sequence[AgentStep]) -> Optional[StopReason]:
        """Return the stop reason if the condition matches, else None."""
        return self.reason if self._predicate(steps) else None

    def __call__(self, steps: Sequence[AgentStep]) -> bool:
        return self.check(steps) is not None

    def __repr__(self) -> str:
        return f"<StopCondition {self.name} reason={self.reason.value}>"


class _AnyOf(StopCondition):
    """Matches when any child matches; reports the first match's reason."""

    def __init__(self, conditions: Sequence[StopCondition]):
        self.conditions = list(conditions)
        self.reason = StopReason.STOP_CONDITION
        self.name = f"any_of({', '.join(c.name for c in self.conditions)})"

    def check(self, steps: Sequence[AgentStep]) -> Optional[StopReason]:
        for condition in self.conditions:
            reason = condition.check(steps)
            if reason is not None:
                return reason
        return None


class _AllOf(StopCondition):
    """Matches when every child matches; reports the last child's reason."""

    def __init__(self, conditions: Sequence[StopCondition]):
        self.conditions = list(conditions)
        self.reason = StopReason.STOP_CONDITION
        self.name = f"all_of({', '.join(c.name for c in self.conditions)})"

    def check(self, steps: Sequence[AgentStep]) -> Optional[StopReason]:
        if not self.conditions:
            return None
        reason = None
        for condition in self.conditions:
            reason = condition.check(steps)
            if reason is None:
                return None
        return reason


def _as_condition(condition: Union[StopCondition, StepPredicate]) -> StopCondition:
    if isinstance(condition, StopCondition):
        return condition
    return StopCondition(condition)


# =============================================================================
# Primitives
# =============================================================================


def step_count_is(count: int) -> StopCondition:
    """Stop once ``count`` steps have been recorded."""
    if count < 1:
        raise ValueError("step count must be at least 1")
    return StopCondition(
        lambda steps: len(steps) >= count, StopReason.MAX_STEPS, f"step_count_is({count})"
    )


def no_tool_calls() -> StopCondition:
    """Stop when the latest step requested no tool calls."""
    return StopCondition(
        lambda steps: bool(steps) and steps[-1].tool_call_count == 0,
        StopReason.NO_TOOL_CALLS,
        "no_tool_calls",
    )


def finish_reason_stop() -> StopCondition:
    """Stop when the latest model call finished with reason ``stop``."""
    return StopCondition(
        lambda steps: bool(steps) and steps[-1].ai_response.finish_reason == FinishReason.STOP.value,
        StopReason.FINISH_REASON,
        "finish_reason_stop",
    )


def has_tool_call(tool_name: str) -> StopCondition:
    """Stop once any step so far has executed ``tool_name``."""

    def predicate(steps: Sequence[AgentStep]) -> bool:
        return any(
            execution.tool_name == tool_name for step in steps for execution in step.tool_results or []
        )

    return StopCondition(predicate, StopReason.STOP_CONDITION, f"has_tool_call({tool_name})")


def max_tokens(threshold: int) -> StopCondition:
    """Stop once total token usage across all steps reaches ``threshold``."""

    def predicate(steps: Sequence[AgentStep]) -> bool:
        used = sum(step.ai_response.usage.total_tokens for step in steps if step.ai_response.usage)
        return used >= threshold

    return StopCondition(predicate, StopReason.MAX_TOKENS, f"max_tokens({threshold})")


def max_duration(milliseconds: float) -> StopCondition:
    """Stop once the span between the first and latest step reaches ``milliseconds``.

    Measured from recorded step timestamps, not the wall clock, so the
    verdict for a given history never changes.
    """

    def predicate(steps: Sequence[AgentStep]) -> bool:
        if len(steps) < 2:
            return False
        first = datetime.fromisoformat(steps[0].timestamp)
        last = datetime.fromisoformat(steps[-1].timestamp)
        return (last - first).total_seconds() * 1000 >= milliseconds

    return StopCondition(predicate, StopReason.MAX_DURATION, f"max_duration({milliseconds})")


def custom(predicate: StepPredicate, name: Optional[str] = None) -> StopCondition:
    """Wrap a bespoke predicate as a stop condition."""
    return StopCondition(predicate, StopReason.STOP_CONDITION, name)


# =============================================================================
# Combinators
# =============================================================================


def any_of(*conditions: Union[StopCondition, StepPredicate]) -> StopCondition:
    return _AnyOf([_as_condition(c) for c in conditions])


def all_of(*conditions: Union[StopCondition, StepPredicate]) -> StopCondition:
    return _AllOf([_as_condition(c) for c in conditions])


def default_stop_conditions() -> StopCondition:
    """Stop at step 10 or when the model stops calling tools."""
    return any_of(step_count_is(10), no_tool_calls())


# =============================================================================
# Evaluation
# =============================================================================


class StopEvaluation(NamedTuple):
    """Verdict of evaluate_stop_conditions."""

    should_stop: bool
    reason: Optional[StopReason] = None


StopConditions = Union[StopCondition, StepPredicate, Sequence[Union[StopCondition, StepPredicate]], None]


def evaluate_stop_conditions(
    steps: Sequence[AgentStep],
    conditions: StopConditions = None,
) -> StopEvaluation:
    """Evaluate stop conditions against the step history.

    Conditions are checked in order and the first match decides the
    reason. With no conditions configured the default conditions apply.

    Args:
        steps: Recorded steps so far
        conditions: One condition, a sequence of them, or None

    Returns:
        StopEvaluation(should_stop, reason)
    """
    if conditions is None:
        resolved = [default_stop_conditions()]
    elif isinstance(conditions, (list, tuple)):
        resolved = [_as_condition(c) for c in conditions] or [default_stop_conditions()]
    else:
        resolved = [_as_condition(conditions)]

    for condition in resolved:
        reason = condition.check(steps)
        if reason is not None:
            return StopEvaluation(True, reason)
    return StopEvaluation(False, None)
