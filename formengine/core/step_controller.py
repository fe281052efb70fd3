"""
Step Controller - page-by-page navigation gated by validation

Responsibilities:
- Partition fields by page
- Validate the active page's visible fields before moving forward
- Re-validate the whole visible/required set at submission
- Keep the applicant's error map consistent: a page's validation only
  touches that page's errors, a changed answer clears its own error
- Hand the submission sink finalized answers

State machine:
- States: step_index in [0, page_count)
- next: forward, validated; on the last page it is a no-op
- back: backward, never validated, bounded at 0
- submit: only on the last page; validates every page, because the
  applicant may have gone back and cleared an earlier answer

Design principles:
- Functional core: StepController caches only the immutable schema;
  every command carries its FormSession and returns a new one
- Validation failures are returned as data (errors map + notice)
- Illegal transitions are returned as IllegalCommand, not raised
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional

from formengine.commands import (
    ChangeAnswer,
    FormSession,
    NextStep,
    PreviousStep,
    StartForm,
    SubmitForm,
)
from formengine.contracts import EvaluationResult, FileReference, FormSchema
from formengine.core.rule_evaluator import evaluate
from formengine.core.validator_compiler import ValidatorSet, compile_validators
from formengine.results import (
    IllegalCommand,
    PageValidation,
    StepResult,
    SubmissionAccepted,
)
from formengine.utils.values import is_sequence

logger = logging.getLogger(__name__)


# =========================================================================
# Pure functions
# =========================================================================

def page_field_ids(schema: FormSchema, step_index: int) -> tuple:
    """
    Field ids on one page, in document order.

    Raises:
        ValueError: If step_index is outside [0, page_count)
    """
    _check_step_index(schema, step_index)
    return tuple(f.id for f in schema.pages[step_index].fields())


def field_page_index(schema: FormSchema) -> Dict[str, int]:
    """field id -> index of the page holding it"""
    return {
        f.id: index
        for index, page in enumerate(schema.pages)
        for f in page.fields()
    }


def validate_page(
    schema: FormSchema,
    answers: Mapping[str, Any],
    step_index: int,
    visible_field_ids: Iterable[str],
    required_field_ids: Iterable[str],
    today: Optional[date] = None,
    validators: Optional[ValidatorSet] = None,
) -> PageValidation:
    """
    Validate the visible fields of one page.

    Errors are only ever reported for fields on that page that are in
    the visible set.

    Args:
        validators: Pre-compiled ValidatorSet for the same derived state;
            compiled here when None
    """
    visible = frozenset(visible_field_ids)
    ids = [fid for fid in page_field_ids(schema, step_index) if fid in visible]

    if validators is None:
        validators = compile_validators(schema.all_fields, required_field_ids, visible, today)

    errors = validators.validate_answers(answers, ids)
    return PageValidation(ok=not errors, errors=errors)


def validate_submission(
    schema: FormSchema,
    answers: Mapping[str, Any],
    visible_field_ids: Iterable[str],
    required_field_ids: Iterable[str],
    today: Optional[date] = None,
    validators: Optional[ValidatorSet] = None,
) -> PageValidation:
    """
    Validate every visible field across all pages.

    Returns:
        PageValidation with first_invalid_step set when anything failed
    """
    visible = frozenset(visible_field_ids)
    if validators is None:
        validators = compile_validators(schema.all_fields, required_field_ids, visible, today)

    ids = [f.id for f in schema.all_fields if f.id in visible]
    errors = validators.validate_answers(answers, ids)

    first_invalid = None
    if errors:
        pages = field_page_index(schema)
        first_invalid = min(pages[fid] for fid in errors)

    return PageValidation(ok=not errors, errors=errors, first_invalid_step=first_invalid)


def can_advance(
    schema: FormSchema,
    answers: Mapping[str, Any],
    step_index: int,
    visible_field_ids: Optional[Iterable[str]] = None,
    required_field_ids: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
) -> bool:
    """
    True when the page validates and there is a next page.

    The derived sets are evaluated from schema.rules when not supplied.
    """
    if step_index >= schema.page_count - 1:
        return False
    derived = _derive(schema, answers, visible_field_ids, required_field_ids)
    return validate_page(schema, answers, step_index, derived.visible_field_ids,
                         derived.required_field_ids, today).ok


def can_submit(
    schema: FormSchema,
    answers: Mapping[str, Any],
    step_index: int,
    visible_field_ids: Optional[Iterable[str]] = None,
    required_field_ids: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
) -> bool:
    """True when on the last page and the whole form validates."""
    if step_index != schema.page_count - 1:
        return False
    derived = _derive(schema, answers, visible_field_ids, required_field_ids)
    return validate_submission(schema, answers, derived.visible_field_ids,
                               derived.required_field_ids, today).ok


def merge_page_errors(
    existing: Mapping[str, str],
    page_errors: Mapping[str, str],
    page_ids: Iterable[str],
) -> Dict[str, str]:
    """
    Replace the errors of one page's fields with a fresh result.

    Errors of fields on other pages are left untouched.
    """
    page_ids = frozenset(page_ids)
    merged = {fid: msg for fid, msg in existing.items() if fid not in page_ids}
    merged.update(page_errors)
    return merged


def clear_field_error(errors: Mapping[str, str], field_id: str) -> Dict[str, str]:
    """Copy of errors without field_id."""
    return {fid: msg for fid, msg in errors.items() if fid != field_id}


def finalize_answers(
    schema: FormSchema,
    answers: Mapping[str, Any],
    visible_field_ids: Iterable[str],
) -> Dict[str, Any]:
    """
    Answers as handed to the submission sink.

    - Only visible, non-decorative fields of the schema are kept
    - File references become metadata dicts
      {'_type': 'file', 'name', 'size', 'type'}; the upload itself is the
      host's side channel
    """
    visible = frozenset(visible_field_ids)
    finalized = {}
    for form_field in schema.all_fields:
        if form_field.is_decorative or form_field.id not in visible:
            continue
        if form_field.id not in answers:
            continue
        finalized[form_field.id] = _sanitize(answers[form_field.id])
    return finalized


def _sanitize(value: Any) -> Any:
    if isinstance(value, FileReference):
        return {'_type': 'file', 'name': value.name, 'size': value.size, 'type': value.content_type}
    if is_sequence(value):
        return [_sanitize(v) for v in value]
    if isinstance(value, Mapping):
        return {k: _sanitize(v) for k, v in value.items()}
    return value


def _derive(schema, answers, visible_field_ids, required_field_ids) -> EvaluationResult:
    if visible_field_ids is not None and required_field_ids is not None:
        return EvaluationResult(frozenset(visible_field_ids), frozenset(required_field_ids))
    derived = evaluate(schema.rules, answers, schema.all_fields)
    return EvaluationResult(
        frozenset(visible_field_ids) if visible_field_ids is not None else derived.visible_field_ids,
        frozenset(required_field_ids) if required_field_ids is not None else derived.required_field_ids,
    )


def _check_step_index(schema: FormSchema, step_index: int):
    if not 0 <= step_index < schema.page_count:
        raise ValueError(f"step_index {step_index} outside [0, {schema.page_count})")


# =========================================================================
# StepController
# =========================================================================

class StepController:
    """
    Drives one form through its pages, one command at a time.

    Functional core design:
    - Caches the schema and its flattened field list (immutable)
    - handle() transforms a FormSession deterministically
    - No implicit state accumulation between commands
    """

    INVALID_PAGE_NOTICE = "Please fix validation errors before proceeding."
    INVALID_SUBMISSION_NOTICE = "Please fix validation errors."

    def __init__(self, schema: FormSchema, today: Optional[date] = None,
                 live_validation: bool = False):
        """
        Args:
            schema: Loaded form definition
            today: Reference date for date rules (None = real today)
            live_validation: Re-validate a field as soon as its answer
                changes, instead of only clearing its error

        Raises:
            ValueError: If the schema has no pages
        """
        if schema.page_count == 0:
            raise ValueError("Form schema has no pages")

        self.schema = schema
        self.fields = schema.all_fields
        self.today = today
        self.live_validation = live_validation
        self._page_ids = tuple(
            tuple(f.id for f in page.fields()) for page in schema.pages
        )

        logger.info(f"Step controller initialized for '{schema.title}' "
                    f"({schema.page_count} pages, {len(self.fields)} fields)")

    @property
    def last_step(self) -> int:
        return self.schema.page_count - 1

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    def derive(self, answers: Mapping[str, Any]) -> EvaluationResult:
        """Visible / required sets for an answers snapshot."""
        return evaluate(self.schema.rules, answers, self.fields)

    def validators(self, answers: Mapping[str, Any]) -> ValidatorSet:
        """Validators consistent with the derived state of answers."""
        derived = self.derive(answers)
        return compile_validators(self.fields, derived.required_field_ids,
                                  derived.visible_field_ids, self.today)

    def handle(self, command):
        """
        Process one command.

        Returns:
            StepResult, SubmissionAccepted or IllegalCommand

        Raises:
            ValueError: If the command's session has an out-of-range
                step_index (corrupt session)
        """
        if isinstance(command, StartForm):
            return self._start(command)

        session = getattr(command, 'session', None)
        if not isinstance(session, FormSession):
            return IllegalCommand(reason="Command carries no session",
                                  command_type=type(command).__name__)
        _check_step_index(self.schema, session.step_index)

        if isinstance(command, ChangeAnswer):
            return self._change_answer(command)
        if isinstance(command, NextStep):
            return self._next(session)
        if isinstance(command, PreviousStep):
            return self._previous(session)
        if isinstance(command, SubmitForm):
            return self._submit(session)

        return IllegalCommand(reason="Unknown command", command_type=type(command).__name__)

    # ---------------------------------------------------------------------
    # Command handlers
    # ---------------------------------------------------------------------

    def _start(self, command: StartForm) -> StepResult:
        answers = dict(command.initial_answers or {})
        logger.info(f"Form started with {len(answers)} prefilled answers")
        return StepResult(session=FormSession(step_index=0, answers=answers, errors={}))

    def _change_answer(self, command: ChangeAnswer) -> StepResult:
        session = command.session
        answers = dict(session.answers)
        answers[command.field_id] = command.value
        errors = clear_field_error(session.errors, command.field_id)

        derived = self.derive(answers)

        # Errors on fields that just became hidden can no longer be acted on
        errors = {fid: msg for fid, msg in errors.items() if fid in derived.visible_field_ids}

        if self.live_validation:
            validators = compile_validators(self.fields, derived.required_field_ids,
                                            derived.visible_field_ids, self.today)
            if command.field_id in validators:
                outcome = validators.validate(command.field_id, command.value)
                if not outcome.ok:
                    errors[command.field_id] = outcome.message

        return StepResult(session=FormSession(session.step_index, answers, errors))

    def _next(self, session: FormSession) -> StepResult:
        derived = self.derive(session.answers)
        result = validate_page(self.schema, session.answers, session.step_index,
                               derived.visible_field_ids, derived.required_field_ids, self.today)
        errors = merge_page_errors(session.errors, result.errors, self._page_ids[session.step_index])

        if not result.ok:
            logger.debug(f"Step {session.step_index} blocked by {sorted(result.errors)}")
            return StepResult(
                session=FormSession(session.step_index, dict(session.answers), errors),
                notice=self.INVALID_PAGE_NOTICE,
            )

        next_index = min(session.step_index + 1, self.last_step)
        return StepResult(
            session=FormSession(next_index, dict(session.answers), errors),
            moved=next_index != session.step_index,
        )

    def _previous(self, session: FormSession) -> StepResult:
        previous_index = max(session.step_index - 1, 0)
        return StepResult(
            session=FormSession(previous_index, dict(session.answers), dict(session.errors)),
            moved=previous_index != session.step_index,
        )

    def _submit(self, session: FormSession):
        if session.step_index != self.last_step:
            return IllegalCommand(
                reason=f"Submit is only allowed on the last page (on {session.step_index} of {self.last_step})",
                command_type="SubmitForm",
            )

        derived = self.derive(session.answers)
        result = validate_submission(self.schema, session.answers, derived.visible_field_ids,
                                     derived.required_field_ids, self.today)
        all_ids = [f.id for f in self.fields]
        errors = merge_page_errors(session.errors, result.errors, all_ids)
        checked = FormSession(session.step_index, dict(session.answers), errors)

        if not result.ok:
            logger.info(f"Submission rejected: {len(result.errors)} invalid fields, "
                        f"first on step {result.first_invalid_step}")
            return StepResult(
                session=checked,
                notice=self.INVALID_SUBMISSION_NOTICE,
                first_invalid_step=result.first_invalid_step,
            )

        answers = finalize_answers(self.schema, session.answers, derived.visible_field_ids)
        logger.info(f"Submission accepted with {len(answers)} answers")
        return SubmissionAccepted(answers=answers, session=checked)
