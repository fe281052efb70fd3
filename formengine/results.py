"""
Result types returned by the validator compiler and the StepController.

Validation failures are data, never exceptions: every outcome below is
a plain immutable value the host can render.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from formengine.commands import FormSession


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of running one field validator on one value.

    Attributes:
        ok: True when the value passes
        message: The single error message when ok is False
            (first failing check wins), None otherwise
    """
    ok: bool
    message: Optional[str] = None

    @staticmethod
    def success() -> "ValidationOutcome":
        return _SUCCESS

    @staticmethod
    def failure(message: str) -> "ValidationOutcome":
        return ValidationOutcome(ok=False, message=message)


_SUCCESS = ValidationOutcome(ok=True)


@dataclass(frozen=True)
class PageValidation:
    """
    Result of validating one page (or the whole form at submission).

    Attributes:
        ok: True when no field failed
        errors: field id -> message, only for fields that failed
        first_invalid_step: Index of the earliest page holding an error
            (set by full-form validation, None for single pages)
    """
    ok: bool
    errors: Dict[str, str] = field(default_factory=dict)
    first_invalid_step: Optional[int] = None


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of a navigation or answer command.

    Returned by: StartForm, ChangeAnswer, NextStep, PreviousStep and a
    rejected SubmitForm.

    Attributes:
        session: Updated session (pass to the next command)
        moved: Whether step_index changed
        notice: Page-level message for the applicant (toast), or None
        first_invalid_step: Earliest page with an error after a rejected
            submission, so the host can offer to jump there
    """
    session: FormSession
    moved: bool = False
    notice: Optional[str] = None
    first_invalid_step: Optional[int] = None


@dataclass(frozen=True)
class SubmissionAccepted:
    """
    Final validation passed.

    Returned by: SubmitForm

    Attributes:
        answers: Finalized answers for the submission sink (hidden and
            decorative fields dropped, file references as metadata dicts)
        session: Session at the moment of submission
    """
    answers: Dict[str, Any]
    session: FormSession


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the StepController (invalid transition).

    Examples:
    - SubmitForm while not on the last page
    - Unknown command type

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
