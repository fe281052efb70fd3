"""
Schema Loader - JSON form definitions to immutable contracts

Responsibilities:
- Convert stored form documents (camelCase keys, as written by the form
  builder) into FormSchema / Rule / FormField dataclasses
- Serialize a FormSchema back to the same document shape
- Load schema files from disk

Design principles:
- Fail fast on unknown field types (the field catalog is a closed set)
- Tolerate unknown operators / action types / combinators: they are kept
  as raw strings and logged, so one bad rule cannot stop a form loading.
  The rule evaluator treats them as malformed (condition False, action
  ignored) and check_integrity() reports them to the form author.
- A nested condition entry is a group iff it carries a 'conditions' key
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from formengine.contracts import (
    Action,
    ActionType,
    CheckboxValidationSpec,
    Combinator,
    Condition,
    ConditionGroup,
    DateValidationSpec,
    FieldOption,
    FieldType,
    FileValidationSpec,
    FormField,
    FormPage,
    FormRow,
    FormSchema,
    FormSection,
    NumberValidationSpec,
    Operator,
    PatternRule,
    Rule,
    SelectValidationSpec,
    TextValidationSpec,
    ValidationRule,
)

logger = logging.getLogger(__name__)


# Which spec class reads a field's 'validation' bag, keyed by field type.
# Types missing here (decorative, multiselect) ignore any stored bag.
_SPEC_CLASS_BY_TYPE = {
    FieldType.TEXT: TextValidationSpec,
    FieldType.EMAIL: TextValidationSpec,
    FieldType.TEXTAREA: TextValidationSpec,
    FieldType.NUMBER: NumberValidationSpec,
    FieldType.DATE: DateValidationSpec,
    FieldType.CHECKBOX: CheckboxValidationSpec,
    FieldType.SELECT: SelectValidationSpec,
    FieldType.RADIO: SelectValidationSpec,
    FieldType.FILE: FileValidationSpec,
}

# Stored camelCase key -> dataclass attribute, per spec class
_SPEC_KEYS = {
    TextValidationSpec: {'minLength': 'min_length', 'maxLength': 'max_length'},
    NumberValidationSpec: {'min': 'min', 'max': 'max'},
    DateValidationSpec: {
        'minDate': 'min_date',
        'maxDate': 'max_date',
        'disallowFuture': 'disallow_future',
        'disallowPast': 'disallow_past',
    },
    CheckboxValidationSpec: {'mustBeTrue': 'must_be_true'},
    SelectValidationSpec: {'allowedValues': 'allowed_values'},
    FileValidationSpec: {
        'maxFiles': 'max_files',
        'maxSizeMb': 'max_size_mb',
        'allowedExtensions': 'allowed_extensions',
        'allowedMimeTypes': 'allowed_mime_types',
    },
}


# =========================================================================
# Public API
# =========================================================================

def load_schema_file(path: Union[str, Path]) -> FormSchema:
    """
    Load a form schema from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the document is not a valid schema
    """
    schema_path = Path(path)
    if not schema_path.exists():
        raise FileNotFoundError(f"Form schema not found: {path}")

    with open(schema_path, 'r') as f:
        data = json.load(f)

    schema = load_schema(data)
    logger.info(f"Loaded form schema '{schema.title}' from {schema_path} "
                f"({schema.page_count} pages, {len(schema.rules)} rules)")
    return schema


def load_schema(data: dict) -> FormSchema:
    """
    Build a FormSchema from its stored document.

    Args:
        data: Dict with 'pages' (required), 'rules', 'id', 'title',
            'description'

    Raises:
        ValueError: If 'pages' is missing or a field has an unknown type
    """
    if not isinstance(data, dict):
        raise ValueError("Form schema must be a JSON object")
    if 'pages' not in data:
        raise ValueError("Form schema missing 'pages'")

    return FormSchema(
        id=data.get('id'),
        title=data.get('title', ''),
        description=data.get('description'),
        pages=tuple(_load_page(p) for p in data.get('pages') or []),
        rules=load_rules(data.get('rules') or []),
    )


def load_rules(raw_rules: list) -> tuple:
    """Build the rule tuple from stored rule documents."""
    return tuple(load_rule(r) for r in raw_rules)


def load_rule(data: dict) -> Rule:
    return Rule(
        id=data.get('id'),
        title=data.get('title'),
        conditions=load_condition_group(data.get('conditions') or {}),
        actions=tuple(_load_action(a) for a in data.get('actions') or []),
    )


def load_condition_group(data: dict) -> ConditionGroup:
    """
    Build a condition tree.

    Recurses into any child that has a 'conditions' key; every other
    child is a leaf Condition.
    """
    children = []
    for child in data.get('conditions') or []:
        if isinstance(child, dict) and 'conditions' in child:
            children.append(load_condition_group(child))
        else:
            children.append(_load_condition(child))

    return ConditionGroup(
        id=data.get('id'),
        combinator=_enum_or_raw(Combinator, data.get('combinator', 'and'), 'combinator'),
        conditions=tuple(children),
    )


def load_field(data: dict) -> FormField:
    """
    Build a FormField.

    Raises:
        ValueError: If 'id' is missing or 'type' is not a known FieldType
    """
    if 'id' not in data:
        raise ValueError(f"Field missing 'id': {data!r}")

    raw_type = data.get('type')
    try:
        field_type = FieldType(raw_type)
    except ValueError:
        raise ValueError(f"Field '{data['id']}' has unknown type '{raw_type}'") from None

    options = data.get('options')
    if options is not None:
        options = tuple(
            FieldOption(value=str(o.get('value', '')), label=o.get('label', ''))
            for o in options
        )

    return FormField(
        id=data['id'],
        type=field_type,
        label=data.get('label', ''),
        required=bool(data.get('required', False)),
        options=options,
        validation=_load_validation(field_type, data.get('validation')),
        attribute_name=data.get('attributeName'),
        placeholder=data.get('placeholder'),
    )


def schema_to_dict(schema: FormSchema) -> dict:
    """Serialize a FormSchema back to its stored camelCase document."""
    data = {
        'id': schema.id,
        'title': schema.title,
        'pages': [_page_to_dict(p) for p in schema.pages],
        'rules': [_rule_to_dict(r) for r in schema.rules],
    }
    if schema.description is not None:
        data['description'] = schema.description
    return data


# =========================================================================
# Loading helpers
# =========================================================================

def _load_page(data: dict) -> FormPage:
    return FormPage(
        id=data.get('id', ''),
        title=data.get('title', ''),
        description=data.get('description'),
        cover=data.get('cover'),
        sections=tuple(
            FormSection(
                id=s.get('id', ''),
                title=s.get('title', ''),
                description=s.get('description'),
                rows=tuple(
                    FormRow(
                        id=r.get('id', ''),
                        fields=tuple(load_field(f) for f in r.get('fields') or []),
                    )
                    for r in s.get('rows') or []
                ),
            )
            for s in data.get('sections') or []
        ),
    )


def _load_condition(data: Any) -> Condition:
    if not isinstance(data, dict):
        logger.warning(f"Condition is not an object, treating as malformed: {data!r}")
        return Condition(field_id='', operator=str(data))

    return Condition(
        id=data.get('id'),
        field_id=data.get('fieldId', ''),
        operator=_enum_or_raw(Operator, data.get('operator'), 'operator'),
        value=data.get('value'),
    )


def _load_action(data: dict) -> Action:
    return Action(
        id=data.get('id'),
        type=_enum_or_raw(ActionType, data.get('type'), 'action type'),
        target_field_id=data.get('targetFieldId', ''),
    )


def _enum_or_raw(enum_cls, raw, what: str):
    """Return enum_cls(raw), or raw itself (logged) when it isn't a member."""
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning(f"Unknown {what} '{raw}' kept as-is; rules using it will not match")
        return raw if isinstance(raw, str) else str(raw)


def _load_validation(field_type: FieldType, data: Optional[dict]):
    if not data:
        return None

    spec_cls = _SPEC_CLASS_BY_TYPE.get(field_type)
    if spec_cls is None:
        return None

    kwargs = {}
    for stored_key, attr in _SPEC_KEYS.get(spec_cls, {}).items():
        rule = data.get(stored_key)
        if isinstance(rule, dict) and 'value' in rule:
            kwargs[attr] = ValidationRule(value=rule['value'], message=rule.get('message'))

    if spec_cls is TextValidationSpec:
        pattern = data.get('pattern')
        if isinstance(pattern, dict) and pattern.get('value'):
            kwargs['pattern'] = PatternRule(
                value=pattern['value'],
                flags=pattern.get('flags'),
                message=pattern.get('message'),
            )

    return spec_cls(**kwargs)


# =========================================================================
# Serialization helpers
# =========================================================================

def _raw(value):
    return value.value if isinstance(value, Enum) else value


def _page_to_dict(page: FormPage) -> dict:
    data = {
        'id': page.id,
        'title': page.title,
        'sections': [
            {
                'id': s.id,
                'title': s.title,
                'rows': [
                    {'id': r.id, 'fields': [_field_to_dict(f) for f in r.fields]}
                    for r in s.rows
                ],
                **({'description': s.description} if s.description is not None else {}),
            }
            for s in page.sections
        ],
    }
    if page.description is not None:
        data['description'] = page.description
    if page.cover is not None:
        data['cover'] = page.cover
    return data


def _field_to_dict(form_field: FormField) -> dict:
    data = {
        'id': form_field.id,
        'type': form_field.type.value,
        'label': form_field.label,
        'required': form_field.required,
    }
    if form_field.options is not None:
        data['options'] = [{'label': o.label, 'value': o.value} for o in form_field.options]
    if form_field.attribute_name is not None:
        data['attributeName'] = form_field.attribute_name
    if form_field.placeholder is not None:
        data['placeholder'] = form_field.placeholder
    if form_field.validation is not None:
        data['validation'] = _validation_to_dict(form_field.validation)
    return data


def _validation_to_dict(spec) -> dict:
    data = {}
    for stored_key, attr in _SPEC_KEYS.get(type(spec), {}).items():
        rule = getattr(spec, attr)
        if rule is not None:
            entry = {'value': rule.value}
            if rule.message is not None:
                entry['message'] = rule.message
            data[stored_key] = entry

    pattern = getattr(spec, 'pattern', None)
    if pattern is not None:
        entry = {'value': pattern.value}
        if pattern.flags is not None:
            entry['flags'] = pattern.flags
        if pattern.message is not None:
            entry['message'] = pattern.message
        data['pattern'] = entry
    return data


def _rule_to_dict(rule: Rule) -> dict:
    data = {
        'id': rule.id,
        'conditions': _group_to_dict(rule.conditions),
        'actions': [
            {'id': a.id, 'type': _raw(a.type), 'targetFieldId': a.target_field_id}
            for a in rule.actions
        ],
    }
    if rule.title is not None:
        data['title'] = rule.title
    return data


def _group_to_dict(group: ConditionGroup) -> dict:
    children = []
    for child in group.conditions:
        if isinstance(child, ConditionGroup):
            children.append(_group_to_dict(child))
        else:
            children.append({
                'id': child.id,
                'fieldId': child.field_id,
                'operator': _raw(child.operator),
                'value': child.value,
            })
    return {'id': group.id, 'combinator': _raw(group.combinator), 'conditions': children}
