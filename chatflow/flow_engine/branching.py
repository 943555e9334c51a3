"""
Branching Logic - Evaluate condition node rules

Supports:
- equals, notEquals, contains, greaterThan, lessThan, exists, notExists
- snake_case aliases written by older flow builders (not_equals, ...)
- First matching rule wins; its id selects the outgoing edge
"""

import logging
from typing import Dict, Any, Optional, List
from enum import Enum

from chatflow.flow_engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


class ConditionOperator(str, Enum):
    """Condition operators for condition nodes"""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    EXISTS = "exists"
    NOT_EXISTS = "notExists"


OPERATOR_ALIASES = {
    'not_equals': ConditionOperator.NOT_EQUALS.value,
    'greater_than': ConditionOperator.GREATER_THAN.value,
    'less_than': ConditionOperator.LESS_THAN.value,
    'not_exists': ConditionOperator.NOT_EXISTS.value,
}


class BranchingHandler:
    """
    Handles condition rules of a condition node.

    Condition node data example:
    {
        "rules": [
            {"id": "r1", "field": "age", "operator": "greaterThan", "value": 18},
            {"id": "r2", "field": "contact.vip", "operator": "equals", "value": true}
        ]
    }

    Rules may also be stored under "conditions", and use "variable" instead
    of "field".
    """

    def __init__(self, resolver: VariableResolver):
        """
        Initialize branching handler.

        Args:
            resolver: Variable resolver over the execution context
        """
        self.resolver = resolver

    @staticmethod
    def get_rules(node_data: Dict[str, Any]) -> List[Dict[str, Any]]:
        return node_data.get('rules') or node_data.get('conditions') or []

    def evaluate_rules(self, node_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Find the first rule that evaluates true.

        Args:
            node_data: Condition node data

        Returns:
            The matching rule, or None if no rule matched
        """
        for rule in self.get_rules(node_data):
            if self.evaluate_rule(rule):
                logger.info(f"Condition rule matched: {rule.get('id')}")
                return rule

        logger.info("No condition rule matched")
        return None

    def evaluate_rule(self, rule: Dict[str, Any]) -> bool:
        """
        Evaluate a single rule against the context.

        Args:
            rule: Rule definition {field, operator, value}

        Returns:
            True if rule matches
        """
        field = rule.get('field') or rule.get('variable') or ''
        operator = rule.get('operator')
        operator = OPERATOR_ALIASES.get(operator, operator)

        actual_value = self.resolver.lookup(field) if field else None

        return self._check_condition(actual_value, operator, rule.get('value'))

    def _check_condition(
        self,
        actual: Any,
        operator: str,
        expected: Any
    ) -> bool:
        """
        Check a simple condition.

        Args:
            actual: Actual value from the context
            operator: Condition operator
            expected: Expected value

        Returns:
            True if condition matches
        """
        try:
            if operator == ConditionOperator.EQUALS.value:
                return actual == expected

            elif operator == ConditionOperator.NOT_EQUALS.value:
                return actual != expected

            elif operator == ConditionOperator.CONTAINS.value:
                if actual is None:
                    return False
                return str(expected) in str(actual)

            elif operator == ConditionOperator.GREATER_THAN.value:
                return float(actual) > float(expected)

            elif operator == ConditionOperator.LESS_THAN.value:
                return float(actual) < float(expected)

            elif operator == ConditionOperator.EXISTS.value:
                return actual is not None

            elif operator == ConditionOperator.NOT_EXISTS.value:
                return actual is None

            else:
                logger.warning(f"Unknown operator: {operator}")
                return False

        except (ValueError, TypeError) as e:
            logger.warning(f"Error evaluating condition: {e}")
            return False
