"""
Semantic contracts for the form schema interpreter.

This module defines immutable data structures that serve as contracts
between the schema loader, the rule evaluator, the validator compiler
and the step controller. These are NOT validators - they define shape
and semantics without enforcing rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- Closed enumerations for field types, operators, combinators and actions
- Condition trees as a tagged union (Condition | ConditionGroup)
- No dependencies on other modules

Contents:
- FieldType, Operator, Combinator, ActionType: closed enumerations
- FormField and its layout containers (FormRow, FormSection, FormPage)
- FormSchema: the whole versioned form definition
- Validation specs: per-type constraint bags
- Rule, ConditionGroup, Condition, Action: conditional logic
- FileReference: a file answer
- EvaluationResult: derived visibility/required sets

Usage:
    from formengine.contracts import FormSchema, FieldType, Rule
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union


# =============================================================================
# Enumerations
# =============================================================================

class FieldType(str, Enum):
    """
    Closed set of field kinds a form page can contain.

    The last four are decorative: they carry no answer and are never
    validated.
    """
    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    DATE = "date"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    MULTISELECT = "multiselect"
    FILE = "file"
    PARAGRAPH = "paragraph"
    DIVIDER = "divider"
    SPACER = "spacer"
    IMAGE = "image"


DECORATIVE_FIELD_TYPES = frozenset({
    FieldType.PARAGRAPH,
    FieldType.DIVIDER,
    FieldType.SPACER,
    FieldType.IMAGE,
})

VALIDATABLE_FIELD_TYPES = frozenset(set(FieldType) - DECORATIVE_FIELD_TYPES)


class Operator(str, Enum):
    """Comparison operators available to a rule condition."""
    EQ = "eq"
    NEQ = "neq"
    CONTAINS = "contains"
    IN = "in"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


class Combinator(str, Enum):
    """How a condition group combines its children."""
    AND = "and"
    OR = "or"


class ActionType(str, Enum):
    """
    Effects a matching rule can apply to its target field.

    Precedence between competing actions on one field:
    - HIDE always wins over SHOW
    - OPTIONAL always wins over REQUIRE
    """
    HIDE = "hide"
    SHOW = "show"
    REQUIRE = "require"
    OPTIONAL = "optional"


# =============================================================================
# Validation specs
# =============================================================================

@dataclass(frozen=True)
class ValidationRule:
    """
    A single constraint value with an optional author-supplied message.

    When message is None the validator compiler falls back to its default
    message for that constraint.
    """
    value: Any
    message: Optional[str] = None


@dataclass(frozen=True)
class PatternRule:
    """Regular expression constraint for text fields."""
    value: str
    flags: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class TextValidationSpec:
    min_length: Optional[ValidationRule] = None
    max_length: Optional[ValidationRule] = None
    pattern: Optional[PatternRule] = None


@dataclass(frozen=True)
class NumberValidationSpec:
    min: Optional[ValidationRule] = None
    max: Optional[ValidationRule] = None


@dataclass(frozen=True)
class DateValidationSpec:
    """Bounds are ISO date strings; disallow_* rules carry a bool value."""
    min_date: Optional[ValidationRule] = None
    max_date: Optional[ValidationRule] = None
    disallow_future: Optional[ValidationRule] = None
    disallow_past: Optional[ValidationRule] = None


@dataclass(frozen=True)
class CheckboxValidationSpec:
    must_be_true: Optional[ValidationRule] = None


@dataclass(frozen=True)
class SelectValidationSpec:
    allowed_values: Optional[ValidationRule] = None


@dataclass(frozen=True)
class FileValidationSpec:
    """
    Upload constraints.

    allowed_extensions values include the leading dot ('.pdf').
    max_size_mb applies per file.
    """
    max_files: Optional[ValidationRule] = None
    max_size_mb: Optional[ValidationRule] = None
    allowed_extensions: Optional[ValidationRule] = None
    allowed_mime_types: Optional[ValidationRule] = None


ValidationSpec = Union[
    TextValidationSpec,
    NumberValidationSpec,
    DateValidationSpec,
    CheckboxValidationSpec,
    SelectValidationSpec,
    FileValidationSpec,
]


# =============================================================================
# Field catalog
# =============================================================================

@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str = ""


@dataclass(frozen=True)
class FormField:
    """
    A single answerable (or purely decorative) unit within a page.

    Attributes:
        id: Unique across the whole schema (all pages)
        type: Closed FieldType
        label: Text shown to the applicant
        required: Intrinsic required-ness, before rules apply
        options: Choices for select / radio / checkbox / multiselect.
            A checkbox WITH options is a multi-choice group, a checkbox
            WITHOUT options is a single "I agree" boolean.
        validation: Type-specific constraint bag, None for "no extra
            constraints beyond type and required-ness"
        attribute_name: Well-known applicant attribute this field maps
            to ('firstName', 'email', ...), used by application forms
        placeholder: Rendering hint only
    """
    id: str
    type: FieldType
    label: str = ""
    required: bool = False
    options: Optional[Tuple[FieldOption, ...]] = None
    validation: Optional[ValidationSpec] = None
    attribute_name: Optional[str] = None
    placeholder: Optional[str] = None

    @property
    def is_decorative(self) -> bool:
        return self.type in DECORATIVE_FIELD_TYPES

    @property
    def has_options(self) -> bool:
        return bool(self.options)


@dataclass(frozen=True)
class FormRow:
    id: str
    fields: Tuple[FormField, ...] = ()


@dataclass(frozen=True)
class FormSection:
    id: str
    title: str = ""
    rows: Tuple[FormRow, ...] = ()
    description: Optional[str] = None


@dataclass(frozen=True)
class FormPage:
    """
    One navigable step of the form.

    Sections and rows exist purely for layout; the interpreter only
    cares about the flattened field order (see fields()).
    """
    id: str
    title: str = ""
    sections: Tuple[FormSection, ...] = ()
    description: Optional[str] = None
    cover: Optional[dict] = None

    def fields(self) -> Tuple[FormField, ...]:
        """All fields on this page in document order."""
        return tuple(
            form_field
            for section in self.sections
            for row in section.rows
            for form_field in row.fields
        )


# =============================================================================
# Conditional logic
# =============================================================================

@dataclass(frozen=True)
class Condition:
    """
    Leaf of a condition tree: compare answers[field_id] against value.

    operator is an Operator member. A raw string is kept when the stored
    schema names an operator this interpreter does not know; such a
    condition always evaluates to False.
    """
    field_id: str
    operator: Union[Operator, str]
    value: Any = None
    id: Optional[str] = None


@dataclass(frozen=True)
class ConditionGroup:
    """
    Inner node of a condition tree.

    An empty group evaluates to True (a rule with no conditions always
    fires). Children order has no semantic effect.
    """
    combinator: Union[Combinator, str] = Combinator.AND
    conditions: Tuple[Union["Condition", "ConditionGroup"], ...] = ()
    id: Optional[str] = None


ConditionNode = Union[Condition, ConditionGroup]


@dataclass(frozen=True)
class Action:
    type: Union[ActionType, str]
    target_field_id: str
    id: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    conditions: ConditionGroup = field(default_factory=ConditionGroup)
    actions: Tuple[Action, ...] = ()
    id: Optional[str] = None
    title: Optional[str] = None


# =============================================================================
# Schema
# =============================================================================

@dataclass(frozen=True)
class FormSchema:
    """
    Complete form definition: ordered pages plus the rule list.

    Immutable for a rendering session. Owned by the host (form-builder
    store or a snapshot attached to a public posting).
    """
    pages: Tuple[FormPage, ...]
    rules: Tuple[Rule, ...] = ()
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def all_fields(self) -> Tuple[FormField, ...]:
        """Every field across all pages, flattened in document order."""
        return tuple(f for page in self.pages for f in page.fields())


# =============================================================================
# Answers and derived state
# =============================================================================

@dataclass(frozen=True)
class FileReference:
    """
    A file answer as held by the host before upload.

    Attributes:
        name: Original filename ('resume.pdf')
        size: Size in bytes
        content_type: MIME type ('application/pdf')
    """
    name: str
    size: int = 0
    content_type: str = ""


@dataclass(frozen=True)
class EvaluationResult:
    """
    Derived state for one answers snapshot.

    Recomputed on every evaluation, never persisted.
    """
    visible_field_ids: frozenset
    required_field_ids: frozenset
