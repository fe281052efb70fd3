"""
Flask JSON service for the form interpreter

Backs the form-builder preview and the public multi-page apply flow.
Each request carries its schema (or falls back to the configured default
schema), the answers and, for /api/step, the applicant's session. The
service keeps no session state between requests.
"""

from flask import Flask, request, jsonify
import logging
import os

from formengine.commands import (
    ChangeAnswer,
    FormSession,
    NextStep,
    PreviousStep,
    StartForm,
    SubmitForm,
)
from formengine.core.integrity import check_application_structure, check_integrity
from formengine.core.rule_evaluator import evaluate
from formengine.core.schema_loader import load_schema, load_schema_file
from formengine.core.step_controller import (
    StepController,
    can_advance,
    can_submit,
    validate_page,
)
from formengine.results import IllegalCommand, SubmissionAccepted

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config['DEFAULT_SCHEMA_PATH'] = os.getenv(
    'FORMENGINE_SCHEMA_PATH', 'data/sample_application_form.json'
)

# Default schema loaded once, on first request that needs it
_default_schema = None


def get_default_schema():
    """Load the configured default schema (cached)"""
    global _default_schema

    if _default_schema is None:
        _default_schema = load_schema_file(app.config['DEFAULT_SCHEMA_PATH'])
    return _default_schema


def schema_from_request(data):
    """Schema from the request body, or the default schema"""
    if data.get('schema') is not None:
        return load_schema(data['schema'])
    return get_default_schema()


def build_command(data, session):
    """Translate a JSON command into a command object"""
    command = data.get('command') or {}
    command_type = command.get('type')

    if command_type == 'start':
        return StartForm(initial_answers=command.get('answers'))
    if command_type == 'change':
        if 'fieldId' not in command:
            raise ValueError("change command requires 'fieldId'")
        return ChangeAnswer(field_id=command['fieldId'], value=command.get('value'), session=session)
    if command_type == 'next':
        return NextStep(session=session)
    if command_type == 'back':
        return PreviousStep(session=session)
    if command_type == 'submit':
        return SubmitForm(session=session)

    raise ValueError(f"Unknown command type: {command_type!r}")


def bad_request(message):
    return jsonify({
        'success': False,
        'error': message
    }), 400


def server_error(e):
    logger.exception(f"Unexpected error: {e}")
    return jsonify({
        'success': False,
        'error': str(e)
    }), 500


@app.route('/api/evaluate', methods=['POST'])
def evaluate_rules():
    """Visible / required field ids for the given answers"""
    try:
        data = request.get_json(silent=True) or {}
        schema = schema_from_request(data)
        answers = data.get('answers') or {}

        derived = evaluate(schema.rules, answers, schema.all_fields)

        return jsonify({
            'success': True,
            'visibleFieldIds': sorted(derived.visible_field_ids),
            'requiredFieldIds': sorted(derived.required_field_ids)
        })

    except (ValueError, FileNotFoundError) as e:
        return bad_request(str(e))
    except Exception as e:
        return server_error(e)


@app.route('/api/validate-page', methods=['POST'])
def validate_step():
    """Validate one page and report whether next / submit are allowed"""
    try:
        data = request.get_json(silent=True) or {}
        schema = schema_from_request(data)
        answers = data.get('answers') or {}
        step_index = int(data.get('stepIndex', 0))

        derived = evaluate(schema.rules, answers, schema.all_fields)
        result = validate_page(
            schema, answers, step_index,
            derived.visible_field_ids, derived.required_field_ids
        )

        return jsonify({
            'success': True,
            'ok': result.ok,
            'errors': result.errors,
            'canAdvance': can_advance(schema, answers, step_index,
                                      derived.visible_field_ids, derived.required_field_ids),
            'canSubmit': can_submit(schema, answers, step_index,
                                    derived.visible_field_ids, derived.required_field_ids)
        })

    except (ValueError, FileNotFoundError) as e:
        return bad_request(str(e))
    except Exception as e:
        return server_error(e)


@app.route('/api/step', methods=['POST'])
def step():
    """Apply one navigation command to the applicant's session"""
    try:
        data = request.get_json(silent=True) or {}
        schema = schema_from_request(data)
        session = FormSession.from_json(data.get('session') or {})

        controller = StepController(schema)
        result = controller.handle(build_command(data, session))

        if isinstance(result, IllegalCommand):
            return jsonify({
                'success': False,
                'error': result.reason,
                'commandType': result.command_type
            }), 409

        if isinstance(result, SubmissionAccepted):
            logger.info(f"Form '{schema.title}' submitted")
            return jsonify({
                'success': True,
                'submitted': True,
                'answers': result.answers,
                'session': result.session.to_json()
            })

        derived = controller.derive(result.session.answers)
        return jsonify({
            'success': True,
            'submitted': False,
            'moved': result.moved,
            'notice': result.notice,
            'firstInvalidStep': result.first_invalid_step,
            'session': result.session.to_json(),
            'visibleFieldIds': sorted(derived.visible_field_ids),
            'requiredFieldIds': sorted(derived.required_field_ids)
        })

    except (ValueError, FileNotFoundError) as e:
        return bad_request(str(e))
    except Exception as e:
        return server_error(e)


@app.route('/api/integrity', methods=['POST'])
def integrity():
    """Structural problems of a schema, for the form author"""
    try:
        data = request.get_json(silent=True) or {}
        schema = schema_from_request(data)

        errors = check_integrity(schema)
        if data.get('formType') == 'application':
            errors += check_application_structure(schema)

        return jsonify({
            'success': True,
            'valid': not errors,
            'errors': errors
        })

    except (ValueError, FileNotFoundError) as e:
        return bad_request(str(e))
    except Exception as e:
        return server_error(e)


if __name__ == '__main__':
    print("\n" + "="*60)
    print("FORM INTERPRETER - PREVIEW SERVICE")
    print("="*60)
    print(f"\nDefault schema: {app.config['DEFAULT_SCHEMA_PATH']}")
    print("Listening on: http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=True, host='0.0.0.0', port=5000)
