"""
Test Suite for Rule Evaluator

Covers condition operators, group combinators, action precedence and the
derived-set properties the step controller relies on.

Run with: pytest tests/test_rule_evaluator.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from formengine.contracts import (
    Action,
    ActionType,
    Combinator,
    Condition,
    ConditionGroup,
    FieldType,
    FormField,
    Operator,
    Rule,
)
from formengine.core import rule_evaluator
from formengine.core.rule_evaluator import (
    RuleEffects,
    evaluate,
    evaluate_condition,
    evaluate_group,
    explain,
)


def make_rule(conditions, actions, combinator=Combinator.AND, rule_id=None):
    return Rule(
        id=rule_id,
        conditions=ConditionGroup(combinator=combinator, conditions=tuple(conditions)),
        actions=tuple(Action(type=t, target_field_id=target) for t, target in actions),
    )


FIELDS = (
    FormField(id='country', type=FieldType.SELECT),
    FormField(id='state', type=FieldType.TEXT),
    FormField(id='phone', type=FieldType.TEXT),
    FormField(id='email', type=FieldType.EMAIL, required=True),
    FormField(id='skills', type=FieldType.MULTISELECT),
    FormField(id='age', type=FieldType.NUMBER),
    FormField(id='bio', type=FieldType.TEXTAREA),
)
KNOWN = frozenset(f.id for f in FIELDS)


# =============================================================================
# PART 1: Condition operators
# =============================================================================

class TestConditionOperators(unittest.TestCase):
    """Each operator against answers[field_id]."""

    def check(self, field_id, operator, value, answers):
        condition = Condition(field_id=field_id, operator=operator, value=value)
        return evaluate_condition(condition, answers, KNOWN)

    # -------------------------------------------------------------------------
    # eq / neq
    # -------------------------------------------------------------------------

    def test_eq_string_match(self):
        self.assertTrue(self.check('country', Operator.EQ, 'US', {'country': 'US'}))

    def test_eq_string_no_match(self):
        self.assertFalse(self.check('country', Operator.EQ, 'US', {'country': 'CA'}))

    def test_eq_numeric_string_matches_number(self):
        """Loose equality: '30' == 30."""
        self.assertTrue(self.check('age', Operator.EQ, 30, {'age': '30'}))
        self.assertTrue(self.check('age', Operator.EQ, '30', {'age': 30}))

    def test_eq_missing_field(self):
        self.assertFalse(self.check('country', Operator.EQ, 'US', {}))

    def test_neq_missing_field_is_true(self):
        """Absent answer differs from any literal."""
        self.assertTrue(self.check('country', Operator.NEQ, 'US', {}))

    def test_neq_same_value(self):
        self.assertFalse(self.check('country', Operator.NEQ, 'US', {'country': 'US'}))

    # -------------------------------------------------------------------------
    # contains
    # -------------------------------------------------------------------------

    def test_contains_list_membership(self):
        self.assertTrue(self.check('skills', Operator.CONTAINS, 'go', {'skills': ['python', 'go']}))
        self.assertFalse(self.check('skills', Operator.CONTAINS, 'rust', {'skills': ['python', 'go']}))

    def test_contains_substring_case_insensitive(self):
        self.assertTrue(self.check('bio', Operator.CONTAINS, 'PYTHON', {'bio': 'I write python daily'}))

    def test_contains_missing_field(self):
        self.assertFalse(self.check('bio', Operator.CONTAINS, 'python', {}))

    # -------------------------------------------------------------------------
    # in
    # -------------------------------------------------------------------------

    def test_in_list_target(self):
        self.assertTrue(self.check('country', Operator.IN, ['US', 'CA'], {'country': 'CA'}))
        self.assertFalse(self.check('country', Operator.IN, ['US', 'CA'], {'country': 'MX'}))

    def test_in_scalar_target_is_false(self):
        """'in' needs a list of values; a scalar target never matches."""
        self.assertFalse(self.check('country', Operator.IN, 'US', {'country': 'US'}))

    # -------------------------------------------------------------------------
    # isEmpty / isNotEmpty
    # -------------------------------------------------------------------------

    def test_is_empty_variants(self):
        for answers in ({}, {'bio': None}, {'bio': ''}, {'bio': []}):
            with self.subTest(answers=answers):
                self.assertTrue(self.check('bio', Operator.IS_EMPTY, None, answers))
                self.assertFalse(self.check('bio', Operator.IS_NOT_EMPTY, None, answers))

    def test_zero_is_not_empty(self):
        self.assertTrue(self.check('age', Operator.IS_NOT_EMPTY, None, {'age': 0}))

    # -------------------------------------------------------------------------
    # numeric comparisons
    # -------------------------------------------------------------------------

    def test_numeric_comparisons(self):
        answers = {'age': '30'}
        self.assertTrue(self.check('age', Operator.GT, 18, answers))
        self.assertTrue(self.check('age', Operator.GTE, '30', answers))
        self.assertFalse(self.check('age', Operator.LT, 30, answers))
        self.assertTrue(self.check('age', Operator.LTE, 30.0, answers))

    def test_numeric_comparison_non_numeric_is_false(self):
        """NaN on either side makes every comparison false."""
        self.assertFalse(self.check('age', Operator.GT, 18, {'age': 'thirty'}))
        self.assertFalse(self.check('age', Operator.LTE, 18, {'age': 'thirty'}))
        self.assertFalse(self.check('age', Operator.GT, 'many', {'age': 30}))

    def test_numeric_comparison_rejects_non_decimal_strings(self):
        """'inf', 'Infinity' and '1_000' are not numbers in an answer"""
        for raw in ('inf', 'Infinity', '1_000'):
            with self.subTest(raw=raw):
                self.assertFalse(self.check('age', Operator.GT, 100, {'age': raw}))
                self.assertFalse(self.check('age', Operator.LT, 100, {'age': raw}))

    def test_numeric_comparison_missing_is_false(self):
        self.assertFalse(self.check('age', Operator.GTE, 0, {}))
        self.assertFalse(self.check('age', Operator.LT, 100, {'age': ''}))

    # -------------------------------------------------------------------------
    # malformed conditions
    # -------------------------------------------------------------------------

    def test_unknown_operator_is_false(self):
        self.assertFalse(self.check('country', 'startsWith', 'U', {'country': 'US'}))

    def test_unknown_field_is_false(self):
        """A condition on a field missing from the catalog fails closed."""
        self.assertFalse(self.check('ghost', Operator.IS_EMPTY, None, {}))


# =============================================================================
# PART 2: Condition groups
# =============================================================================

class TestConditionGroups(unittest.TestCase):

    def setUp(self):
        self.is_us = Condition(field_id='country', operator=Operator.EQ, value='US')
        self.is_adult = Condition(field_id='age', operator=Operator.GTE, value=18)

    def test_empty_group_is_true(self):
        self.assertTrue(evaluate_group(ConditionGroup(), {}, KNOWN))
        self.assertTrue(evaluate_group(ConditionGroup(combinator=Combinator.OR), {}, KNOWN))

    def test_and_requires_all(self):
        group = ConditionGroup(Combinator.AND, (self.is_us, self.is_adult))
        self.assertTrue(evaluate_group(group, {'country': 'US', 'age': 20}, KNOWN))
        self.assertFalse(evaluate_group(group, {'country': 'US', 'age': 12}, KNOWN))

    def test_or_requires_any(self):
        group = ConditionGroup(Combinator.OR, (self.is_us, self.is_adult))
        self.assertTrue(evaluate_group(group, {'country': 'CA', 'age': 20}, KNOWN))
        self.assertFalse(evaluate_group(group, {'country': 'CA', 'age': 12}, KNOWN))

    def test_nested_groups(self):
        """(country == US) and (age >= 18 or skills contains go)"""
        inner = ConditionGroup(Combinator.OR, (
            self.is_adult,
            Condition(field_id='skills', operator=Operator.CONTAINS, value='go'),
        ))
        group = ConditionGroup(Combinator.AND, (self.is_us, inner))

        self.assertTrue(evaluate_group(group, {'country': 'US', 'skills': ['go']}, KNOWN))
        self.assertFalse(evaluate_group(group, {'country': 'US', 'skills': []}, KNOWN))

    def test_order_has_no_effect(self):
        answers = {'country': 'US', 'age': 5}
        forward = ConditionGroup(Combinator.OR, (self.is_us, self.is_adult))
        backward = ConditionGroup(Combinator.OR, (self.is_adult, self.is_us))
        self.assertEqual(evaluate_group(forward, answers, KNOWN),
                         evaluate_group(backward, answers, KNOWN))

    def test_unknown_combinator_is_false(self):
        group = ConditionGroup('xor', (self.is_us,))
        self.assertFalse(evaluate_group(group, {'country': 'US'}, KNOWN))

    def test_depth_guard(self):
        """A tree nested past the limit fails closed instead of recursing."""
        group = ConditionGroup(Combinator.AND, (self.is_us,))
        for _ in range(rule_evaluator.MAX_CONDITION_DEPTH + 5):
            group = ConditionGroup(Combinator.AND, (group,))

        self.assertFalse(evaluate_group(group, {'country': 'US'}, KNOWN))


# =============================================================================
# PART 3: Actions and precedence
# =============================================================================

class TestEvaluate(unittest.TestCase):

    def test_no_rules_defaults(self):
        """Everything visible, required equals intrinsic required."""
        result = evaluate([], {}, FIELDS)

        self.assertEqual(result.visible_field_ids, KNOWN)
        self.assertEqual(result.required_field_ids, frozenset({'email'}))

    def test_require_when_us(self):
        """A require rule fires only while its condition holds"""
        rule = make_rule(
            [Condition(field_id='country', operator=Operator.EQ, value='US')],
            [(ActionType.REQUIRE, 'state')],
        )

        self.assertIn('state', evaluate([rule], {'country': 'US'}, FIELDS).required_field_ids)
        self.assertNotIn('state', evaluate([rule], {'country': 'CA'}, FIELDS).required_field_ids)

    def test_hide_wins_over_show(self):
        always = []
        rules = [
            make_rule(always, [(ActionType.SHOW, 'phone')]),
            make_rule(always, [(ActionType.HIDE, 'phone')]),
            make_rule(always, [(ActionType.SHOW, 'phone')]),
        ]

        result = evaluate(rules, {}, FIELDS)

        self.assertNotIn('phone', result.visible_field_ids)

    def test_show_alone_changes_nothing(self):
        rule = make_rule([], [(ActionType.SHOW, 'phone')])
        self.assertEqual(evaluate([rule], {}, FIELDS), evaluate([], {}, FIELDS))

    def test_optional_wins_over_require(self):
        rules = [
            make_rule([], [(ActionType.OPTIONAL, 'state')]),
            make_rule([], [(ActionType.REQUIRE, 'state')]),
        ]
        self.assertNotIn('state', evaluate(rules, {}, FIELDS).required_field_ids)

    def test_optional_overrides_intrinsic_required(self):
        rule = make_rule([], [(ActionType.OPTIONAL, 'email')])
        self.assertNotIn('email', evaluate([rule], {}, FIELDS).required_field_ids)

    def test_hidden_and_required_field(self):
        """Hide and require both match: the field is hidden but still in the required set"""
        rules = [
            make_rule([Condition(field_id='country', operator=Operator.EQ, value='US')],
                      [(ActionType.HIDE, 'phone')]),
            make_rule([Condition(field_id='country', operator=Operator.IS_NOT_EMPTY)],
                      [(ActionType.REQUIRE, 'phone')]),
        ]

        result = evaluate(rules, {'country': 'US'}, FIELDS)

        self.assertNotIn('phone', result.visible_field_ids)
        self.assertIn('phone', result.required_field_ids)

    def test_untargeted_fields_keep_defaults(self):
        rules = [
            make_rule([], [(ActionType.HIDE, 'phone'), (ActionType.REQUIRE, 'state')]),
        ]
        result = evaluate(rules, {'country': 'US'}, FIELDS)

        for form_field in FIELDS:
            if form_field.id in ('phone', 'state'):
                continue
            with self.subTest(field=form_field.id):
                self.assertIn(form_field.id, result.visible_field_ids)
                self.assertEqual(form_field.id in result.required_field_ids, form_field.required)

    def test_idempotent(self):
        rules = [make_rule([Condition(field_id='age', operator=Operator.LT, value=18)],
                           [(ActionType.HIDE, 'bio')])]
        answers = {'age': 12}
        self.assertEqual(evaluate(rules, answers, FIELDS), evaluate(rules, answers, FIELDS))

    def test_single_pass_no_chaining(self):
        """Rule 2 reads the answer for 'state', not rule 1's effect on it."""
        rules = [
            make_rule([], [(ActionType.HIDE, 'state')]),
            make_rule([Condition(field_id='state', operator=Operator.IS_NOT_EMPTY)],
                      [(ActionType.HIDE, 'bio')]),
        ]

        result = evaluate(rules, {'state': 'WA'}, FIELDS)

        self.assertNotIn('state', result.visible_field_ids)
        self.assertNotIn('bio', result.visible_field_ids)

    def test_unknown_action_type_ignored(self):
        rule = make_rule([], [('toggle', 'phone'), (ActionType.HIDE, 'bio')])
        result = evaluate([rule], {}, FIELDS)

        self.assertIn('phone', result.visible_field_ids)
        self.assertNotIn('bio', result.visible_field_ids)

    def test_malformed_rule_does_not_break_others(self):
        rules = [
            make_rule([Condition(field_id='ghost', operator=Operator.IS_EMPTY)],
                      [(ActionType.HIDE, 'phone')]),
            make_rule([Condition(field_id='country', operator='matches', value='.*')],
                      [(ActionType.HIDE, 'phone')]),
            make_rule([], [(ActionType.HIDE, 'bio')]),
        ]
        result = evaluate(rules, {}, FIELDS)

        self.assertIn('phone', result.visible_field_ids)
        self.assertNotIn('bio', result.visible_field_ids)

    def test_hide_target_outside_catalog_is_harmless(self):
        rule = make_rule([], [(ActionType.HIDE, 'ghost')])
        self.assertEqual(evaluate([rule], {}, FIELDS).visible_field_ids, KNOWN)


class TestExplain(unittest.TestCase):

    def test_traces_and_effects(self):
        rules = [
            make_rule([Condition(field_id='country', operator=Operator.EQ, value='US')],
                      [(ActionType.REQUIRE, 'state'), (ActionType.SHOW, 'state')], rule_id='r1'),
            make_rule([Condition(field_id='country', operator=Operator.EQ, value='CA')],
                      [(ActionType.HIDE, 'state')], rule_id='r2'),
        ]

        traces, effects = explain(rules, {'country': 'US'}, FIELDS)

        self.assertEqual([(t.rule_id, t.matched) for t in traces], [('r1', True), ('r2', False)])
        self.assertEqual(effects.force_required, frozenset({'state'}))
        self.assertEqual(effects.shown, frozenset({'state'}))
        self.assertEqual(effects.hidden, frozenset())

    def test_baseline_effects_are_empty(self):
        baseline = RuleEffects()
        self.assertEqual(baseline.hidden, frozenset())
        self.assertEqual(baseline.force_optional, frozenset())


if __name__ == "__main__":
    unittest.main()
