"""
Validator Compiler - one validator per field, consistent with derived state

Responsibilities:
- Build a type-specific validator for every validatable field
- Honor the derived sets from the rule evaluator: a hidden field gets a
  permissive validator, required-ness comes from the final required set
  (not the field's intrinsic flag)
- Apply each field's validation spec (lengths, patterns, bounds, ...)

Design principles:
- Validators are pure: value in, ValidationOutcome out, never raise
- One message per failure: checks run in a fixed order and the first
  failing check wins
- Hidden fields are never validated: you cannot be blocked by a field
  you cannot see
- Decorative fields (paragraph, divider, spacer, image) are excluded
  from the ValidatorSet entirely
- The type -> compiler table covers every validatable FieldType; a
  missing entry fails at import time, not silently at runtime
"""

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence

from formengine.contracts import (
    VALIDATABLE_FIELD_TYPES,
    FieldType,
    FileReference,
    FormField,
)
from formengine.results import ValidationOutcome
from formengine.utils.values import is_sequence, to_number

logger = logging.getLogger(__name__)


# Default messages. An author-supplied ValidationRule.message overrides
# the constraint's default.
MESSAGES = {
    'required': "This field is required",
    'text_type': "Must be text",
    'email': "Invalid email address",
    'pattern': "Invalid format",
    'min_length': "Minimum {value} characters",
    'max_length': "Maximum {value} characters",
    'number_type': "Must be a number",
    'min': "Minimum value is {value}",
    'max': "Maximum value is {value}",
    'date_required': "Date is required",
    'date_invalid': "Invalid date",
    'min_date': "Date must be after {value}",
    'max_date': "Date must be before {value}",
    'disallow_future': "Future dates not allowed",
    'disallow_past': "Past dates not allowed",
    'select_required': "Please select an option",
    'invalid_selection': "Invalid selection",
    'select_at_least_one': "Please select at least one option",
    'must_be_checked': "This must be checked",
    'checkbox_type': "Invalid value",
    'file_required': "Please upload at least one file",
    'file_invalid': "Invalid file",
    'max_files': "Maximum {value} files",
    'max_size_mb': "Each file must be {value} MB or smaller",
    'file_type': "File type not allowed",
}

# Same shape zod's .email() accepts
EMAIL_PATTERN = re.compile(
    r"^(?!\.)(?!.*\.\.)([A-Z0-9_'+\-\.]*)[A-Z0-9_+-]@([A-Z0-9][A-Z0-9\-]*\.)+[A-Z]{2,}$",
    re.IGNORECASE,
)

_REGEX_FLAGS = {'i': re.IGNORECASE, 'm': re.MULTILINE, 's': re.DOTALL}

# Constraint attributes whose ValidationRule.value must be a finite number
NUMERIC_BOUNDS = ('min_length', 'max_length', 'min', 'max', 'max_files', 'max_size_mb')

# A check returns an error message, or None when the value passes
Check = Callable[[Any], Optional[str]]


class FieldValidator:
    """
    Compiled validator for one field.

    Attributes:
        field_id: Field this validator belongs to
        permissive: True for hidden fields (accepts anything)
    """

    def __init__(self, field_id: str, check: Check, permissive: bool = False):
        self.field_id = field_id
        self.permissive = permissive
        self._check = check

    def validate(self, value: Any) -> ValidationOutcome:
        message = self._check(value)
        if message is None:
            return ValidationOutcome.success()
        return ValidationOutcome.failure(message)

    def __call__(self, value: Any) -> ValidationOutcome:
        return self.validate(value)

    def __repr__(self) -> str:
        return f"FieldValidator({self.field_id!r}, permissive={self.permissive})"


class ValidatorSet:
    """
    Validators for every validatable field of a schema, keyed by field id.

    Decorative fields are absent: `field_id in validator_set` is False for
    them, and validate() raises KeyError for ids not in the set.
    """

    def __init__(self, validators: Dict[str, FieldValidator]):
        self._validators = dict(validators)

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._validators

    def __getitem__(self, field_id: str) -> FieldValidator:
        return self._validators[field_id]

    def __iter__(self):
        return iter(self._validators)

    def __len__(self) -> int:
        return len(self._validators)

    @property
    def field_ids(self) -> frozenset:
        return frozenset(self._validators)

    def validate(self, field_id: str, value: Any) -> ValidationOutcome:
        """
        Validate one value.

        Raises:
            KeyError: If field_id has no validator (unknown or decorative)
        """
        return self._validators[field_id].validate(value)

    def validate_answers(
        self,
        answers: Mapping[str, Any],
        field_ids: Optional[Iterable[str]] = None,
    ) -> Dict[str, str]:
        """
        Validate several fields at once.

        Args:
            answers: field id -> raw answer; missing ids validate as absent
            field_ids: Restrict to these ids (ids without a validator are
                skipped). None validates every field in the set.

        Returns:
            dict: field id -> message for each failing field, in order
        """
        ids = self._validators.keys() if field_ids is None else field_ids
        errors = {}
        for field_id in ids:
            validator = self._validators.get(field_id)
            if validator is None:
                continue
            outcome = validator.validate(answers.get(field_id))
            if not outcome.ok:
                errors[field_id] = outcome.message
        return errors


# =========================================================================
# Public API
# =========================================================================

def compile_validators(
    fields: Sequence[FormField],
    required_field_ids: Iterable[str],
    visible_field_ids: Iterable[str],
    today: Optional[date] = None,
) -> ValidatorSet:
    """
    Build the ValidatorSet for one derived state.

    Args:
        fields: Flattened field catalog
        required_field_ids: Final required set from the rule evaluator
        visible_field_ids: Final visible set from the rule evaluator
        today: Reference date for disallowFuture / disallowPast. None
            means "the date at the moment each value is validated".

    Returns:
        ValidatorSet keyed by field id (decorative fields omitted)
    """
    required = frozenset(required_field_ids)
    visible = frozenset(visible_field_ids)
    validators = {}

    for form_field in fields:
        if form_field.is_decorative:
            continue

        if form_field.id not in visible:
            validators[form_field.id] = FieldValidator(form_field.id, _accept_anything, permissive=True)
            continue

        compiler = _COMPILERS[form_field.type]
        check = compiler(form_field, form_field.id in required, today)
        validators[form_field.id] = FieldValidator(form_field.id, check)

    return ValidatorSet(validators)


def compile_field(form_field: FormField, required: bool, today: Optional[date] = None) -> FieldValidator:
    """
    Compile a validator for a single visible field.

    Raises:
        ValueError: If the field is decorative
    """
    if form_field.is_decorative:
        raise ValueError(f"Field '{form_field.id}' of type '{form_field.type.value}' is not validatable")
    return FieldValidator(form_field.id, _COMPILERS[form_field.type](form_field, required, today))


# =========================================================================
# Helpers
# =========================================================================

def _accept_anything(_value: Any) -> Optional[str]:
    return None


def _message(rule, key: str) -> str:
    """Author message if set, else the default for key formatted with the rule value."""
    if rule.message:
        return rule.message
    return MESSAGES[key].format(value=rule.value)


def _rule(spec, attr: str):
    return getattr(spec, attr, None) if spec is not None else None


def compile_pattern(pattern_rule) -> re.Pattern:
    """
    Compile a PatternRule with its flags ('i', 'm', 's'; others ignored).

    Raises:
        re.error: If the pattern does not compile
        TypeError: If the pattern value is not a string
    """
    flags = 0
    for flag in pattern_rule.flags or '':
        flags |= _REGEX_FLAGS.get(flag, 0)
    return re.compile(pattern_rule.value, flags)


def is_numeric_bound(value: Any) -> bool:
    """True for a finite int / float constraint value (bool excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(to_number(value))


def _compile_pattern(form_field: FormField, pattern_rule) -> Optional[re.Pattern]:
    try:
        return compile_pattern(pattern_rule)
    except (re.error, TypeError) as e:
        logger.warning(f"Invalid pattern on field '{form_field.id}' skipped: {pattern_rule.value!r} ({e})")
        return None


def _bound(form_field: FormField, spec, attr: str):
    """The rule for attr, or None (logged) when its value is not a number."""
    rule = _rule(spec, attr)
    if rule is None:
        return None
    if not is_numeric_bound(rule.value):
        logger.warning(f"Non-numeric {attr} on field '{form_field.id}' skipped: {rule.value!r}")
        return None
    return rule


def parse_date(value: Any) -> Optional[date]:
    """
    Parse an ISO date ('2024-05-01') or datetime ('2024-05-01T10:00:00Z').

    Returns:
        date, or None when value is not a parseable string
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _as_file(value: Any) -> Optional[FileReference]:
    if isinstance(value, FileReference):
        return value
    if isinstance(value, Mapping) and 'name' in value:
        try:
            size = int(value.get('size') or 0)
        except (TypeError, ValueError):
            return None
        return FileReference(
            name=str(value['name']),
            size=size,
            content_type=str(value.get('type') or value.get('content_type') or ''),
        )
    return None


# =========================================================================
# Per-type compilers
# =========================================================================

def _compile_text(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    """text / textarea / email"""
    spec = form_field.validation
    is_email = form_field.type == FieldType.EMAIL

    pattern_rule = _rule(spec, 'pattern')
    regex = _compile_pattern(form_field, pattern_rule) if pattern_rule else None
    min_length = _bound(form_field, spec, 'min_length')
    max_length = _bound(form_field, spec, 'max_length')

    def check(value):
        if value is None or value == '':
            return MESSAGES['required'] if required else None
        if not isinstance(value, str):
            return MESSAGES['text_type']

        if is_email and not EMAIL_PATTERN.match(value):
            return MESSAGES['email']
        if regex is not None and not regex.search(value):
            return pattern_rule.message or MESSAGES['pattern']
        if min_length is not None and len(value) < min_length.value:
            return _message(min_length, 'min_length')
        if max_length is not None and len(value) > max_length.value:
            return _message(max_length, 'max_length')
        return None

    return check


def _compile_number(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    spec = form_field.validation
    minimum = _bound(form_field, spec, 'min')
    maximum = _bound(form_field, spec, 'max')

    def check(value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return MESSAGES['required'] if required else None

        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return MESSAGES['number_type']
        number = to_number(value)

        if not math.isfinite(number):
            return MESSAGES['number_type']
        if minimum is not None and number < minimum.value:
            return _message(minimum, 'min')
        if maximum is not None and number > maximum.value:
            return _message(maximum, 'max')
        return None

    return check


def _compile_date(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    spec = form_field.validation
    bounds = []

    min_date = _rule(spec, 'min_date')
    if min_date is not None and min_date.value:
        bound = parse_date(min_date.value)
        if bound is None:
            logger.warning(f"Unparseable minDate on field '{form_field.id}' skipped: {min_date.value!r}")
        else:
            bounds.append((lambda d, b=bound: d < b, _message(min_date, 'min_date')))

    max_date = _rule(spec, 'max_date')
    if max_date is not None and max_date.value:
        bound = parse_date(max_date.value)
        if bound is None:
            logger.warning(f"Unparseable maxDate on field '{form_field.id}' skipped: {max_date.value!r}")
        else:
            bounds.append((lambda d, b=bound: d > b, _message(max_date, 'max_date')))

    disallow_future = _rule(spec, 'disallow_future')
    disallow_past = _rule(spec, 'disallow_past')

    def check(value):
        if value is None or value == '':
            return MESSAGES['date_required'] if required else None
        if not isinstance(value, str):
            return MESSAGES['date_invalid']

        parsed = parse_date(value)
        if parsed is None:
            return MESSAGES['date_invalid']

        for fails, message in bounds:
            if fails(parsed):
                return message

        reference = today or date.today()
        if disallow_future is not None and disallow_future.value and parsed > reference:
            return disallow_future.message or MESSAGES['disallow_future']
        if disallow_past is not None and disallow_past.value and parsed < reference:
            return disallow_past.message or MESSAGES['disallow_past']
        return None

    return check


def _compile_choice(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    """select / radio: a single string value"""
    allowed = _rule(form_field.validation, 'allowed_values')
    allowed_values = None
    if allowed is not None and is_sequence(allowed.value):
        allowed_values = frozenset(str(v) for v in allowed.value)

    def check(value):
        if value is None or value == '':
            return MESSAGES['select_required'] if required else None
        if not isinstance(value, str):
            return MESSAGES['invalid_selection']
        if allowed_values is not None and value not in allowed_values:
            return allowed.message or MESSAGES['invalid_selection']
        return None

    return check


def _compile_string_list(required: bool) -> Check:
    """multiselect / checkbox group: list of option values"""
    def check(value):
        if value is None:
            return MESSAGES['select_at_least_one'] if required else None
        if not is_sequence(value) or not all(isinstance(v, str) for v in value):
            return MESSAGES['invalid_selection']
        if required and len(value) == 0:
            return MESSAGES['select_at_least_one']
        return None

    return check


def _compile_multiselect(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    return _compile_string_list(required)


def _compile_checkbox(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    """
    Two sub-kinds:
    - with options: checkbox group, same as multiselect
    - without options: single boolean; required means it must be True
      (the "I agree" semantic), even without an explicit mustBeTrue
    """
    if form_field.has_options:
        return _compile_string_list(required)

    must_be_true = _rule(form_field.validation, 'must_be_true')
    enforce_true = must_be_true is not None and bool(must_be_true.value)

    def check(value):
        if value is not None and not isinstance(value, bool):
            return MESSAGES['checkbox_type']
        if value is True:
            return None
        if enforce_true:
            return must_be_true.message or MESSAGES['must_be_checked']
        if required:
            return MESSAGES['must_be_checked']
        return None

    return check


def _compile_file(form_field: FormField, required: bool, today: Optional[date]) -> Check:
    spec = form_field.validation
    max_files = _bound(form_field, spec, 'max_files')
    max_size_mb = _bound(form_field, spec, 'max_size_mb')

    extensions_rule = _rule(spec, 'allowed_extensions')
    extensions = None
    if extensions_rule is not None and is_sequence(extensions_rule.value) and extensions_rule.value:
        extensions = tuple(
            (e if e.startswith('.') else '.' + e).lower() for e in map(str, extensions_rule.value)
        )

    mime_rule = _rule(spec, 'allowed_mime_types')
    mime_types = None
    if mime_rule is not None and is_sequence(mime_rule.value) and mime_rule.value:
        mime_types = tuple(str(m).lower() for m in mime_rule.value)

    def mime_allowed(content_type: str) -> bool:
        content_type = content_type.lower()
        for allowed in mime_types:
            if allowed.endswith('/*'):
                if content_type.startswith(allowed[:-1]):
                    return True
            elif content_type == allowed:
                return True
        return False

    def check(value):
        if value is None:
            return MESSAGES['file_required'] if required else None
        if not is_sequence(value):
            return MESSAGES['file_invalid']

        files = [_as_file(v) for v in value]
        if any(f is None for f in files):
            return MESSAGES['file_invalid']
        if required and not files:
            return MESSAGES['file_required']

        if max_files is not None and len(files) > max_files.value:
            return _message(max_files, 'max_files')
        if max_size_mb is not None:
            limit = max_size_mb.value * 1024 * 1024
            if any(f.size > limit for f in files):
                return _message(max_size_mb, 'max_size_mb')
        if extensions is not None:
            if not all(f.name.lower().endswith(extensions) for f in files):
                return extensions_rule.message or MESSAGES['file_type']
        if mime_types is not None:
            if not all(mime_allowed(f.content_type) for f in files):
                return mime_rule.message or MESSAGES['file_type']
        return None

    return check


_COMPILERS = {
    FieldType.TEXT: _compile_text,
    FieldType.TEXTAREA: _compile_text,
    FieldType.EMAIL: _compile_text,
    FieldType.NUMBER: _compile_number,
    FieldType.DATE: _compile_date,
    FieldType.SELECT: _compile_choice,
    FieldType.RADIO: _compile_choice,
    FieldType.CHECKBOX: _compile_checkbox,
    FieldType.MULTISELECT: _compile_multiselect,
    FieldType.FILE: _compile_file,
}

if set(_COMPILERS) != VALIDATABLE_FIELD_TYPES:
    raise RuntimeError(
        f"Validator table out of sync with FieldType: "
        f"missing {sorted(t.value for t in VALIDATABLE_FIELD_TYPES - set(_COMPILERS))}"
    )
