"""
Console Test Harness for StepController (Functional Core)

Walks a form schema page by page in the terminal before wiring it into
a web flow. Type 'back' at any prompt to go to the previous page,
'quit' to stop.
"""

import logging
import os
import sys

from formengine.commands import ChangeAnswer, NextStep, PreviousStep, StartForm, SubmitForm
from formengine.contracts import FieldType, FileReference
from formengine.core.integrity import check_integrity
from formengine.core.schema_loader import load_schema_file
from formengine.core.step_controller import StepController
from formengine.results import IllegalCommand, SubmissionAccepted

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}


class NavigateBack(Exception):
    """
    Raised by the prompt loop when the user types 'back'.

    Carries the session including answers given on the page so far.
    """

    def __init__(self, session):
        super().__init__("back")
        self.session = session


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def parse_input(form_field, raw):
    """Convert console text to the answer shape the field expects"""
    raw = raw.strip()

    if form_field.type == FieldType.CHECKBOX and not form_field.has_options:
        return raw.lower() in {"y", "yes", "true", "1"}

    if form_field.type in (FieldType.MULTISELECT, FieldType.CHECKBOX):
        return [v.strip() for v in raw.split(",") if v.strip()]

    if form_field.type == FieldType.FILE:
        files = []
        for path in (p.strip() for p in raw.split(",")):
            if not path:
                continue
            size = os.path.getsize(path) if os.path.exists(path) else 0
            files.append(FileReference(name=os.path.basename(path), size=size))
        return files

    return raw


def prompt_page(controller, session):
    """Prompt for every visible field on the active page"""
    page = controller.schema.pages[session.step_index]
    derived = controller.derive(session.answers)

    print_separator("-")
    print(f"Step {session.step_index + 1}/{controller.schema.page_count}: {page.title}")
    print_separator("-")

    for form_field in page.fields():
        if form_field.is_decorative:
            if form_field.label:
                print(f"\n{form_field.label}")
            continue
        if form_field.id not in derived.visible_field_ids:
            continue

        marker = " *" if form_field.id in derived.required_field_ids else ""
        hint = ""
        if form_field.options:
            hint = f" [{', '.join(o.value for o in form_field.options)}]"
        error = session.errors.get(form_field.id)
        if error:
            print(f"  ! {error}")

        raw = input(f"{form_field.label}{marker}{hint}: ")
        if raw.strip().lower() in EXIT_COMMANDS:
            raise KeyboardInterrupt
        if raw.strip().lower() == "back":
            raise NavigateBack(session)

        result = controller.handle(ChangeAnswer(form_field.id, parse_input(form_field, raw), session))
        session = result.session

        # Rules may have changed what is visible on this page
        derived = controller.derive(session.answers)

    return session


def main():
    """Run console walkthrough"""
    schema_path = sys.argv[1] if len(sys.argv) > 1 else "data/sample_application_form.json"

    print_separator()
    print("FORM INTERPRETER - CONSOLE TEST")
    print_separator()

    try:
        schema = load_schema_file(schema_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"\nCould not load schema: {e}")
        return 1

    problems = check_integrity(schema)
    if problems:
        print("\nSchema has integrity problems:")
        for problem in problems:
            print(f"  - {problem}")
        return 1

    controller = StepController(schema)
    session = controller.handle(StartForm()).session
    print(f"\n{schema.title}\n")

    try:
        while True:
            try:
                session = prompt_page(controller, session)
            except NavigateBack as back:
                session = controller.handle(PreviousStep(back.session)).session
                continue

            if session.step_index < controller.last_step:
                result = controller.handle(NextStep(session))
            else:
                result = controller.handle(SubmitForm(session))

            if isinstance(result, SubmissionAccepted):
                print_separator()
                print("SUBMITTED")
                print_separator()
                for field_id, value in result.answers.items():
                    print(f"  {field_id}: {value}")
                return 0

            if isinstance(result, IllegalCommand):
                print(f"\nERROR: {result.reason}")
                return 1

            session = result.session
            if result.notice:
                print(f"\n{result.notice}")
                for field_id, message in session.errors.items():
                    print(f"  - {field_id}: {message}")
                if result.first_invalid_step is not None and result.first_invalid_step != session.step_index:
                    print(f"  (first problem is on step {result.first_invalid_step + 1}, type 'back' to get there)")

    except KeyboardInterrupt:
        print("\n\nStopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
