"""
Alert evaluator for checking rule conditions against metric samples.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from alert_engine.alerts.alert_rule import AlertCondition, AlertRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """Snapshot of recent metric samples supplied to one evaluation pass"""
    metric_values: Dict[str, Sequence[float]]
    timestamp: float


@dataclass(frozen=True)
class ConditionEvaluationResult:
    """Outcome of a single condition"""
    condition: AlertCondition
    actual_value: float
    threshold: float
    met: bool
    duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'condition': self.condition.to_dict(),
            'actual_value': self.actual_value,
            'threshold': self.threshold,
            'met': self.met,
            'duration': self.duration,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one rule"""
    rule_id: str
    triggered: bool
    conditions: List[ConditionEvaluationResult]
    timestamp: float
    message: Optional[str] = None
    # Filled by AlertManager after dispatch
    notification_results: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_id': self.rule_id,
            'triggered': self.triggered,
            'conditions': [c.to_dict() for c in self.conditions],
            'timestamp': self.timestamp,
            'message': self.message,
            'notification_results': [r.to_dict() for r in self.notification_results],
        }


@dataclass
class ConditionState:
    """Duration tracking for one rule condition"""
    first_met_at: float = 0
    consecutive_met: bool = False


class AlertEvaluator:
    """Evaluates alert rules against an evaluation context"""

    def __init__(self):
        # rule id -> metric -> state
        self.condition_states: Dict[str, Dict[str, ConditionState]] = {}

    def evaluate(self, rule: AlertRule, context: EvaluationContext) -> EvaluationResult:
        """
        Evaluate all conditions of a rule.

        Args:
            rule: Alert rule to evaluate
            context: Metric samples and evaluation timestamp

        Returns:
            EvaluationResult; triggered only if every condition is met
        """
        condition_results = [
            self._evaluate_condition(rule.id, condition, context)
            for condition in rule.conditions
        ]

        triggered = bool(condition_results) and all(r.met for r in condition_results)

        if triggered:
            logger.debug(f"Rule {rule.id} triggered at {context.timestamp}")

        return EvaluationResult(
            rule_id=rule.id,
            triggered=triggered,
            conditions=condition_results,
            timestamp=context.timestamp,
            message=self._generate_message(rule, condition_results) if triggered else None,
        )

    def _evaluate_condition(self, rule_id: str, condition: AlertCondition,
                            context: EvaluationContext) -> ConditionEvaluationResult:
        """
        Evaluate one condition and advance its duration state.

        Args:
            rule_id: Owning rule id
            condition: Condition to evaluate
            context: Evaluation context

        Returns:
            ConditionEvaluationResult
        """
        values = context.metric_values.get(condition.metric)

        if values is None or len(values) == 0:
            logger.debug(f"No samples for metric {condition.metric} (rule {rule_id})")
            return ConditionEvaluationResult(
                condition=condition,
                actual_value=0.0,
                threshold=condition.threshold,
                met=False,
                duration=0,
            )

        actual_value = self._aggregate_values(values, condition.aggregation)
        comparison_met = self._compare_value(actual_value, condition.operator, condition.threshold)

        rule_states = self.condition_states.setdefault(rule_id, {})
        state = rule_states.setdefault(condition.metric, ConditionState())

        if comparison_met:
            if not state.consecutive_met:
                # False -> true transition starts a fresh window
                state.first_met_at = context.timestamp
                state.consecutive_met = True

            duration = context.timestamp - state.first_met_at
            met = duration >= condition.duration
        else:
            state.consecutive_met = False
            state.first_met_at = 0
            duration = 0
            met = False

        return ConditionEvaluationResult(
            condition=condition,
            actual_value=actual_value,
            threshold=condition.threshold,
            met=met,
            duration=duration,
        )

    def _aggregate_values(self, values: Sequence[float], aggregation: str) -> float:
        """Reduce a sample series to one value"""
        aggregators = {
            'sum': lambda v: float(sum(v)),
            'average': lambda v: float(sum(v)) / len(v),
            'min': lambda v: float(min(v)),
            'max': lambda v: float(max(v)),
            'count': lambda v: float(len(v)),
        }

        aggregator = aggregators.get(aggregation)
        if not aggregator:
            logger.error(f"Unknown aggregation: {aggregation}, using latest value")
            return float(values[-1])

        return aggregator(values)

    def _compare_value(self, actual: float, operator: str, threshold: float) -> bool:
        """
        Apply comparison operator.

        Args:
            actual: Aggregated metric value
            operator: Comparison operator
            threshold: Rule threshold

        Returns:
            True if comparison holds, False otherwise
        """
        operators = {
            '>': lambda v, t: v > t,
            '>=': lambda v, t: v >= t,
            '<': lambda v, t: v < t,
            '<=': lambda v, t: v <= t,
            '=': lambda v, t: v == t,
            '!=': lambda v, t: v != t,
        }

        operator_func = operators.get(operator)
        if not operator_func:
            logger.error(f"Unknown operator: {operator}")
            return False

        return operator_func(actual, threshold)

    def _generate_message(self, rule: AlertRule, results: List[ConditionEvaluationResult]) -> str:
        parts = [f"Alert '{rule.name}' triggered:"]

        for result in results:
            if result.met:
                parts.append(
                    f"{result.condition.metric} {result.condition.operator} {result.condition.threshold:g} "
                    f"(actual: {result.actual_value:.2f})"
                )

        return " ".join(parts)

    def get_condition_state(self, rule_id: str, metric: str) -> Optional[ConditionState]:
        """Get duration state for a rule condition, if tracked"""
        return self.condition_states.get(rule_id, {}).get(metric)

    def reset(self) -> None:
        """Clear all condition state"""
        self.condition_states.clear()

    def reset_rule(self, rule_id: str) -> None:
        """
        Purge condition state belonging to one rule.

        Args:
            rule_id: Rule whose state should be removed
        """
        self.condition_states.pop(rule_id, None)
