"""
Rule Evaluator - derives visible / required field sets from answers

Responsibilities:
- Evaluate each rule's condition tree against the current answers
- Apply the actions of matching rules with fixed precedence
- Produce the derived sets: visible field ids, required field ids

Design principles:
- Stateless: all state comes from (rules, answers, fields)
- Deterministic: same input always produces same output
- Total: malformed rules degrade to "condition false", never raise
- Single pass: rule actions do not chain within one evaluation.
  A field hidden or required by rule 1 is not seen as such by the
  conditions of rule 2.

Precedence:
- Baseline is "every field visible, required = intrinsic required"
- hide always wins over show. show is recorded but, with an always-visible
  baseline, never changes the outcome. It does not undo another rule's
  hide.
- optional always wins over require
"""

import logging
import operator as op
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence, Tuple

from formengine.contracts import (
    Action,
    ActionType,
    Combinator,
    Condition,
    ConditionGroup,
    EvaluationResult,
    FormField,
    Operator,
    Rule,
)
from formengine.utils.values import (
    is_empty,
    is_sequence,
    loose_equals,
    to_number,
    to_text,
)

logger = logging.getLogger(__name__)


# Nesting deeper than this is treated as a malformed rule (evaluates False).
# Editor-authored trees are 2-3 levels deep in practice.
MAX_CONDITION_DEPTH = 32


@dataclass(frozen=True)
class RuleEffects:
    """
    Accumulated effect of matching rules.

    The empty value is the baseline; each matching action folds into a new
    RuleEffects via apply(). Sets hold target field ids.
    """
    hidden: frozenset = field(default_factory=frozenset)
    shown: frozenset = field(default_factory=frozenset)
    force_required: frozenset = field(default_factory=frozenset)
    force_optional: frozenset = field(default_factory=frozenset)

    def apply(self, action: Action) -> "RuleEffects":
        target = action.target_field_id

        if action.type == ActionType.HIDE:
            return RuleEffects(self.hidden | {target}, self.shown,
                               self.force_required, self.force_optional)
        if action.type == ActionType.SHOW:
            return RuleEffects(self.hidden, self.shown | {target},
                               self.force_required, self.force_optional)
        if action.type == ActionType.REQUIRE:
            return RuleEffects(self.hidden, self.shown,
                               self.force_required | {target}, self.force_optional)
        if action.type == ActionType.OPTIONAL:
            return RuleEffects(self.hidden, self.shown,
                               self.force_required, self.force_optional | {target})

        logger.warning(f"Unknown action type '{action.type}' on '{target}', ignored")
        return self


@dataclass(frozen=True)
class RuleTrace:
    """Match outcome of one rule, for the form builder's rules sidebar."""
    rule_id: Any
    matched: bool


# =========================================================================
# Public API
# =========================================================================

def evaluate(
    rules: Iterable[Rule],
    answers: Mapping[str, Any],
    fields: Sequence[FormField],
) -> EvaluationResult:
    """
    Derive the visible and required field sets for one answers snapshot.

    Args:
        rules: Rules in author order
        answers: field id -> raw answer (read only)
        fields: Flattened field catalog (FormSchema.all_fields)

    Returns:
        EvaluationResult with frozenset visible_field_ids and
        required_field_ids
    """
    _, effects = _fold_rules(rules, answers, fields)
    return resolve(effects, fields)


def explain(
    rules: Iterable[Rule],
    answers: Mapping[str, Any],
    fields: Sequence[FormField],
) -> Tuple[Tuple[RuleTrace, ...], RuleEffects]:
    """
    Same pass as evaluate(), returning which rules matched and the folded
    effects instead of the resolved sets.
    """
    return _fold_rules(rules, answers, fields)


def resolve(effects: RuleEffects, fields: Sequence[FormField]) -> EvaluationResult:
    """
    Apply the precedence policy to accumulated effects.

    visible  = all field ids - hidden
    required = (intrinsic or force_required) and not force_optional
    """
    visible = frozenset(f.id for f in fields if f.id not in effects.hidden)
    required = frozenset(
        f.id for f in fields
        if (f.required or f.id in effects.force_required)
        and f.id not in effects.force_optional
    )
    return EvaluationResult(visible_field_ids=visible, required_field_ids=required)


def evaluate_group(
    group: ConditionGroup,
    answers: Mapping[str, Any],
    known_field_ids: frozenset,
    depth: int = 0,
) -> bool:
    """
    Evaluate a condition tree depth-first.

    - and: every child true
    - or: at least one child true
    - empty group: True (vacuous truth, the rule always fires)
    - unknown combinator or depth > MAX_CONDITION_DEPTH: False
    """
    if depth > MAX_CONDITION_DEPTH:
        logger.warning(f"Condition tree deeper than {MAX_CONDITION_DEPTH}, treated as false")
        return False

    if not group.conditions:
        return True

    results = [
        _evaluate_node(child, answers, known_field_ids, depth + 1)
        for child in group.conditions
    ]

    if group.combinator == Combinator.AND:
        return all(results)
    if group.combinator == Combinator.OR:
        return any(results)

    logger.warning(f"Unknown combinator '{group.combinator}', group treated as false")
    return False


def evaluate_condition(
    condition: Condition,
    answers: Mapping[str, Any],
    known_field_ids: frozenset,
) -> bool:
    """
    Evaluate a single condition against answers[condition.field_id].

    A condition on a field id missing from the catalog is malformed and
    evaluates to False, whatever its operator.
    """
    if condition.field_id not in known_field_ids:
        logger.warning(f"Condition references unknown field '{condition.field_id}', treated as false")
        return False

    test = _OPERATORS.get(condition.operator)
    if test is None:
        logger.warning(f"Unknown operator '{condition.operator}' on '{condition.field_id}', treated as false")
        return False

    return test(answers.get(condition.field_id), condition.value)


# =========================================================================
# Internals
# =========================================================================

def _fold_rules(rules, answers, fields):
    known_field_ids = frozenset(f.id for f in fields)
    effects = RuleEffects()
    traces = []

    for rule in rules:
        matched = evaluate_group(rule.conditions, answers, known_field_ids)
        traces.append(RuleTrace(rule_id=rule.id, matched=matched))
        if not matched:
            continue
        for action in rule.actions:
            effects = effects.apply(action)

    logger.debug(f"Rules evaluated: {sum(t.matched for t in traces)}/{len(traces)} matched, "
                 f"hidden={sorted(effects.hidden)}")
    return tuple(traces), effects


def _evaluate_node(node, answers, known_field_ids, depth):
    if isinstance(node, ConditionGroup):
        return evaluate_group(node, answers, known_field_ids, depth)
    if isinstance(node, Condition):
        return evaluate_condition(node, answers, known_field_ids)

    logger.warning(f"Unexpected condition node {node!r}, treated as false")
    return False


def _contains(actual, target) -> bool:
    if is_sequence(actual):
        return target in actual
    return to_text(target).lower() in to_text(actual).lower()


def _is_in(actual, target) -> bool:
    if not is_sequence(target) or is_sequence(actual):
        return False
    return actual in target


def _numeric(compare):
    def test(actual, target) -> bool:
        # NaN on either side makes every comparison False
        return compare(to_number(actual), to_number(target))
    return test


_OPERATORS = {
    Operator.EQ: loose_equals,
    Operator.NEQ: lambda actual, target: not loose_equals(actual, target),
    Operator.CONTAINS: _contains,
    Operator.IN: _is_in,
    Operator.IS_EMPTY: lambda actual, _target: is_empty(actual),
    Operator.IS_NOT_EMPTY: lambda actual, _target: not is_empty(actual),
    Operator.GT: _numeric(op.gt),
    Operator.GTE: _numeric(op.ge),
    Operator.LT: _numeric(op.lt),
    Operator.LTE: _numeric(op.le),
}

if set(_OPERATORS) != set(Operator):
    raise RuntimeError(f"Operator table incomplete: {set(Operator) - set(_OPERATORS)}")
