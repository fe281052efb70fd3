"""
Command types for StepController control flow.

Commands are the ONLY public interface to StepController.handle().
Each command carries the session it applies to; the controller holds
no session state between commands.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import copy


@dataclass(frozen=True)
class FormSession:
    """
    Immutable snapshot of one applicant's progress through a form.

    Attributes:
        step_index: Active page, 0-based
        answers: field id -> raw answer
        errors: field id -> message currently shown inline

    Deep copied on (de)serialization so the host's draft store and the
    controller never share mutable containers.
    """
    step_index: int = 0
    answers: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_json(self) -> dict:
        """
        Serialize to JSON-safe dict (deep copy).

        File answers are left as given; the host's draft store decides
        whether it can keep them.
        """
        return {
            'stepIndex': self.step_index,
            'answers': copy.deepcopy(self.answers),
            'errors': dict(self.errors),
        }

    @staticmethod
    def from_json(data: Mapping[str, Any]) -> "FormSession":
        """
        Deserialize from a stored draft.

        Args:
            data: Dict with 'stepIndex', 'answers', 'errors' (all optional)
        """
        return FormSession(
            step_index=int(data.get('stepIndex', 0)),
            answers=copy.deepcopy(dict(data.get('answers') or {})),
            errors=dict(data.get('errors') or {}),
        )


# Command types

@dataclass(frozen=True)
class StartForm:
    """
    Begin a new session on page 0.

    initial_answers seeds the session (e.g. a resumed draft's answers).
    Returns: StepResult with the fresh session.
    """
    initial_answers: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ChangeAnswer:
    """
    Record a new answer for one field.

    Clears any error shown for that field.
    Returns: StepResult with the updated session.
    """
    field_id: str
    value: Any
    session: FormSession


@dataclass(frozen=True)
class NextStep:
    """
    Validate the active page and move forward.

    Returns: StepResult (moved=False with errors merged when invalid).
    """
    session: FormSession


@dataclass(frozen=True)
class PreviousStep:
    """
    Move back one page. Never validated.

    Returns: StepResult.
    """
    session: FormSession


@dataclass(frozen=True)
class SubmitForm:
    """
    Validate the whole form and hand off the answers.

    Only valid on the last page.
    Returns: SubmissionAccepted, StepResult (invalid) or IllegalCommand.
    """
    session: FormSession


# Command union type for type hints
Command = StartForm | ChangeAnswer | NextStep | PreviousStep | SubmitForm
