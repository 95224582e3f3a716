"""
Alert rule data structures, builder and loading utilities.
"""

import yaml
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
import logging

from alert_engine.alerts.errors import ValidationError
from alert_engine.utils.helpers import now_ms

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 300000  # 5 minutes


class AlertSeverity:
    """Alert severity constants"""
    CRITICAL = 'critical'
    WARNING = 'warning'
    INFO = 'info'

    ALL = (CRITICAL, WARNING, INFO)


class AlertState:
    """Alert rule lifecycle states"""
    PENDING = 'pending'      # Never triggered (or manually re-armed)
    ACTIVE = 'active'        # Triggered at least once
    RESOLVED = 'resolved'    # Resolved by an explicit call
    SILENCED = 'silenced'    # Skipped by evaluation until unsilenced

    ALL = (PENDING, ACTIVE, RESOLVED, SILENCED)


VALID_OPERATORS = ('>', '>=', '<', '<=', '=', '!=')
OPERATOR_ALIASES = {'==': '='}
VALID_AGGREGATIONS = ('average', 'sum', 'min', 'max', 'count')


@dataclass(frozen=True)
class AlertCondition:
    """Single threshold test against an aggregated metric value"""
    metric: str
    operator: str  # >, >=, <, <=, =, !=
    threshold: float
    duration: float = 0  # milliseconds the comparison must hold
    aggregation: str = 'average'  # average, sum, min, max, count

    def __post_init__(self):
        """Validate condition configuration"""
        if not self.metric:
            raise ValidationError("Condition metric must not be empty")

        operator = OPERATOR_ALIASES.get(self.operator, self.operator)
        if operator not in VALID_OPERATORS:
            raise ValidationError(f"Invalid operator: {self.operator}. Must be one of {list(VALID_OPERATORS)}")
        object.__setattr__(self, 'operator', operator)

        if self.aggregation not in VALID_AGGREGATIONS:
            raise ValidationError(
                f"Invalid aggregation: {self.aggregation}. Must be one of {list(VALID_AGGREGATIONS)}"
            )

        if self.duration < 0:
            raise ValidationError(f"duration must be >= 0, got {self.duration}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AlertRule:
    """
    Alert rule definition.

    Construct through AlertRuleBuilder; the manager mutates state and
    last_triggered in place when the rule fires.
    """
    id: str
    name: str
    severity: str  # info, warning, critical
    conditions: List[AlertCondition]
    description: str = ""
    enabled: bool = True
    cooldown: float = DEFAULT_COOLDOWN_MS
    tags: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    actions: List[str] = field(default_factory=list)
    created_at: float = 0
    updated_at: float = 0
    last_triggered: Optional[float] = None
    state: str = AlertState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain dictionary"""
        data = asdict(self)
        data['conditions'] = [condition.to_dict() for condition in self.conditions]
        return data


def validate_rule_fields(severity: Optional[str], cooldown: Optional[float], state: Optional[str] = None) -> None:
    """Validate enumerated and numeric rule fields shared by build() and updates"""
    if severity is not None and severity not in AlertSeverity.ALL:
        raise ValidationError(f"Invalid severity: {severity}. Must be one of {list(AlertSeverity.ALL)}")

    if cooldown is not None and cooldown < 0:
        raise ValidationError(f"cooldown must be >= 0, got {cooldown}")

    if state is not None and state not in AlertState.ALL:
        raise ValidationError(f"Invalid state: {state}. Must be one of {list(AlertState.ALL)}")


class AlertRuleBuilder:
    """Incrementally assembles and validates an AlertRule"""

    def __init__(self, rule_id: Optional[str] = None):
        self._id = rule_id
        self._name: Optional[str] = None
        self._description = ""
        self._severity: Optional[str] = None
        self._conditions: Optional[List[AlertCondition]] = None
        self._enabled = True
        self._cooldown: float = DEFAULT_COOLDOWN_MS
        self._tags: List[str] = []
        self._labels: Dict[str, str] = {}
        self._actions: List[str] = []

    def set_id(self, rule_id: str) -> 'AlertRuleBuilder':
        self._id = rule_id
        return self

    def set_name(self, name: str) -> 'AlertRuleBuilder':
        self._name = name
        return self

    def set_description(self, description: str) -> 'AlertRuleBuilder':
        self._description = description
        return self

    def set_severity(self, severity: str) -> 'AlertRuleBuilder':
        self._severity = severity
        return self

    def add_condition(self, condition: AlertCondition) -> 'AlertRuleBuilder':
        self._conditions = [*(self._conditions or []), condition]
        return self

    def set_conditions(self, conditions: List[AlertCondition]) -> 'AlertRuleBuilder':
        self._conditions = list(conditions)
        return self

    def set_enabled(self, enabled: bool) -> 'AlertRuleBuilder':
        self._enabled = enabled
        return self

    def set_cooldown(self, cooldown: float) -> 'AlertRuleBuilder':
        self._cooldown = cooldown
        return self

    def add_tag(self, tag: str) -> 'AlertRuleBuilder':
        self._tags = [*self._tags, tag]
        return self

    def set_tags(self, tags: List[str]) -> 'AlertRuleBuilder':
        self._tags = list(tags)
        return self

    def add_label(self, key: str, value: str) -> 'AlertRuleBuilder':
        self._labels = {**self._labels, key: value}
        return self

    def set_labels(self, labels: Dict[str, str]) -> 'AlertRuleBuilder':
        self._labels = dict(labels)
        return self

    def add_action(self, channel_id: str) -> 'AlertRuleBuilder':
        self._actions = [*self._actions, channel_id]
        return self

    def set_actions(self, actions: List[str]) -> 'AlertRuleBuilder':
        self._actions = list(actions)
        return self

    def build(self) -> AlertRule:
        """
        Build the rule.

        Returns:
            New AlertRule in the pending state

        Raises:
            ValidationError: If id, name, severity or conditions are missing,
                or a field holds an invalid value
        """
        missing = [
            name for name, value in (
                ('id', self._id),
                ('name', self._name),
                ('severity', self._severity),
                ('conditions', self._conditions),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)} "
                f"(id, name, severity, and conditions are required)"
            )

        validate_rule_fields(self._severity, self._cooldown)

        now = now_ms()
        return AlertRule(
            id=self._id,
            name=self._name,
            description=self._description or "",
            severity=self._severity,
            conditions=list(self._conditions),
            enabled=self._enabled,
            cooldown=self._cooldown,
            tags=list(self._tags),
            labels=dict(self._labels),
            actions=list(self._actions),
            created_at=now,
            updated_at=now,
            state=AlertState.PENDING,
        )


def condition_from_dict(data: Dict[str, Any]) -> AlertCondition:
    """Create an AlertCondition from a plain mapping"""
    return AlertCondition(
        metric=data['metric'],
        operator=data.get('operator', '>'),
        threshold=float(data.get('threshold', 0)),
        duration=data.get('duration', 0),
        aggregation=data.get('aggregation', 'average'),
    )


def rule_from_dict(data: Dict[str, Any]) -> AlertRule:
    """
    Create an AlertRule from a plain mapping.

    Args:
        data: Rule definition, as found in a rules file

    Returns:
        Validated AlertRule

    Raises:
        ValidationError: If required fields are missing or invalid
        KeyError: If a condition lacks its metric
    """
    builder = AlertRuleBuilder(data.get('id'))
    builder.set_name(data.get('name'))
    builder.set_description(data.get('description', ''))
    builder.set_severity(data.get('severity'))
    builder.set_conditions([condition_from_dict(c) for c in data.get('conditions') or []])
    builder.set_enabled(data.get('enabled', True))
    builder.set_cooldown(data.get('cooldown', DEFAULT_COOLDOWN_MS))
    builder.set_tags(data.get('tags') or [])
    builder.set_labels(data.get('labels') or {})
    builder.set_actions(data.get('actions') or [])
    return builder.build()


def load_alert_rules(rules_file: str) -> List[AlertRule]:
    """
    Load alert rules from YAML file.

    Args:
        rules_file: Path to YAML configuration file

    Returns:
        List of AlertRule objects

    Raises:
        FileNotFoundError: If rules file doesn't exist
        ValueError: If rules file has invalid format
    """
    try:
        with open(rules_file, 'r') as f:
            config = yaml.safe_load(f)

        if not config or 'alert_rules' not in config:
            logger.warning(f"No alert_rules found in {rules_file}")
            return []

        rules = []
        for rule_config in config['alert_rules']:
            try:
                rule = rule_from_dict(rule_config)
                rules.append(rule)
                logger.debug(f"Loaded alert rule: {rule.id}")

            except (KeyError, ValueError, TypeError) as e:
                logger.error(f"Failed to load rule {rule_config.get('id', 'unknown')}: {e}")
                continue

        logger.info(f"Loaded {len(rules)} alert rules from {rules_file}")
        return rules

    except FileNotFoundError:
        logger.error(f"Alert rules file not found: {rules_file}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {rules_file}: {e}")
        raise ValueError(f"Invalid YAML format: {e}")
