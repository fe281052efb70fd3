"""
Test the console harness

Feeds scripted input to the prompt loop and checks what reaches the
StepController.
"""

import sys
import os
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

import pytest

import main as harness
from formengine.commands import FormSession
from formengine.contracts import FieldType, FileReference, FormField
from formengine.core.schema_loader import load_schema_file
from formengine.core.step_controller import StepController


@pytest.fixture
def controller():
    schema = load_schema_file(os.path.join(ROOT, 'data', 'sample_application_form.json'))
    return StepController(schema)


def scripted_input(monkeypatch, lines):
    replies = iter(lines)
    monkeypatch.setattr('builtins.input', lambda _prompt='': next(replies))


# ========== Navigation Tests ==========

def test_back_keeps_answers_typed_on_the_page(monkeypatch, controller):
    scripted_input(monkeypatch, ['Ada', 'Lovelace', 'back'])

    with pytest.raises(harness.NavigateBack) as excinfo:
        harness.prompt_page(controller, FormSession(0, {}, {}))

    assert excinfo.value.session.answers == {'first_name': 'Ada', 'last_name': 'Lovelace'}


def test_quit_stops_the_walkthrough(monkeypatch):
    scripted_input(monkeypatch, ['quit'])
    monkeypatch.setattr(sys, 'argv', ['main.py', os.path.join(ROOT, 'data', 'sample_application_form.json')])

    assert harness.main() == 0


# ========== Input Parsing Tests ==========

def test_parse_single_checkbox():
    agree = FormField(id='agree', type=FieldType.CHECKBOX)
    assert harness.parse_input(agree, ' yes ') is True
    assert harness.parse_input(agree, 'no') is False


def test_parse_multiselect():
    skills = FormField(id='skills', type=FieldType.MULTISELECT)
    assert harness.parse_input(skills, 'python, go,') == ['python', 'go']


def test_parse_missing_file():
    resume = FormField(id='resume', type=FieldType.FILE)
    assert harness.parse_input(resume, 'no/such/cv.pdf') == [FileReference(name='cv.pdf', size=0)]
