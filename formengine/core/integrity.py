"""
Schema integrity checks - run once after a schema is loaded or edited

The interpreter does not re-check schema shape on every evaluation.
Hosts call check_integrity() after load / save in the form builder and
show the problems to the form author.

Checks:
- Every page has at least one field
- Field ids are unique across the whole schema
- Rule conditions and actions only reference existing fields
- Operators, combinators and action types are known
- 'in' conditions compare against a list
- require / optional actions do not target decorative fields
- Text patterns compile with their flags
- Length / value / file-count / size bounds are numbers

Application forms additionally need the applicant identity fields
(check_application_structure).
"""

import logging
import re
from typing import List

from formengine.contracts import (
    ActionType,
    Combinator,
    ConditionGroup,
    FieldType,
    FormSchema,
    Operator,
)
from formengine.core.validator_compiler import NUMERIC_BOUNDS, compile_pattern, is_numeric_bound
from formengine.utils.values import is_sequence

logger = logging.getLogger(__name__)


# attributeName -> (accepted field types, label used in the message)
APPLICATION_ATTRIBUTES = {
    'firstName': ({FieldType.TEXT}, "a required 'First Name' field (attribute: 'firstName')"),
    'lastName': ({FieldType.TEXT}, "a required 'Last Name' field (attribute: 'lastName')"),
    'email': ({FieldType.EMAIL}, "a required Email field (attribute: 'email')"),
}


def check_integrity(schema: FormSchema) -> List[str]:
    """
    Collect every structural problem in a schema.

    Returns:
        list[str]: Human-readable problems, empty when the schema is sound
    """
    errors = []

    if not schema.pages:
        errors.append("Schema has no pages")

    # Field ids, checked globally (ids are unique across pages)
    seen = set()
    fields_by_id = {}
    for page_index, page in enumerate(schema.pages):
        page_fields = page.fields()
        if not page_fields:
            errors.append(f"Page {page_index + 1} ('{page.title}') has no fields")

        for form_field in page_fields:
            if not form_field.id:
                errors.append(f"Field on page {page_index + 1} missing 'id'")
                continue
            if form_field.id in seen:
                errors.append(f"Duplicate field id '{form_field.id}'")
            seen.add(form_field.id)
            fields_by_id[form_field.id] = form_field

            pattern = getattr(form_field.validation, 'pattern', None)
            if pattern is not None:
                try:
                    compile_pattern(pattern)
                except (re.error, TypeError) as e:
                    errors.append(f"Field '{form_field.id}' has invalid pattern {pattern.value!r}: {e}")

            for attr in NUMERIC_BOUNDS:
                rule = getattr(form_field.validation, attr, None)
                if rule is not None and not is_numeric_bound(rule.value):
                    errors.append(f"Field '{form_field.id}' has non-numeric {attr} {rule.value!r}")

    # Rules
    for rule_index, rule in enumerate(schema.rules):
        label = _rule_label(rule, rule_index)
        _check_group(rule.conditions, fields_by_id, label, errors)

        for action in rule.actions:
            if action.type not in set(ActionType):
                errors.append(f"{label} has unknown action type '{action.type}'")

            target = fields_by_id.get(action.target_field_id)
            if target is None:
                errors.append(f"{label} targets unknown field '{action.target_field_id}'")
            elif target.is_decorative and action.type in (ActionType.REQUIRE, ActionType.OPTIONAL):
                errors.append(
                    f"{label} makes decorative field '{target.id}' "
                    f"{getattr(action.type, 'value', action.type)}"
                )

    if errors:
        logger.warning(f"Schema '{schema.title}' has {len(errors)} integrity problems")
    return errors


def ensure_integrity(schema: FormSchema) -> None:
    """
    Raise if check_integrity() finds anything.

    Raises:
        ValueError: Listing every problem
    """
    errors = check_integrity(schema)
    if errors:
        raise ValueError("Schema integrity check failed:\n  - " + "\n  - ".join(errors))


def check_application_structure(schema: FormSchema) -> List[str]:
    """
    Application forms must collect the applicant's identity.

    Requires intrinsically required fields tagged with attribute names
    'firstName' (text), 'lastName' (text) and 'email' (email).
    """
    errors = []
    fields = schema.all_fields

    for attribute, (types, description) in APPLICATION_ATTRIBUTES.items():
        present = any(
            f.attribute_name == attribute and f.required and f.type in types
            for f in fields
        )
        if not present:
            errors.append(f"Application forms must include {description}.")

    return errors


# =========================================================================
# Helpers
# =========================================================================

def _rule_label(rule, index: int) -> str:
    if rule.title:
        return f"Rule '{rule.title}'"
    if rule.id:
        return f"Rule '{rule.id}'"
    return f"Rule {index + 1}"


def _check_group(group: ConditionGroup, fields_by_id: dict, label: str, errors: list):
    if group.combinator not in set(Combinator):
        errors.append(f"{label} has unknown combinator '{group.combinator}'")

    for child in group.conditions:
        if isinstance(child, ConditionGroup):
            _check_group(child, fields_by_id, label, errors)
            continue

        if child.field_id not in fields_by_id:
            errors.append(f"{label} has a condition on unknown field '{child.field_id}'")
        if child.operator not in set(Operator):
            errors.append(f"{label} has unknown operator '{child.operator}'")
        elif child.operator == Operator.IN and not is_sequence(child.value):
            errors.append(f"{label} uses 'in' on '{child.field_id}' without a list of values")
