"""
Candidate-facing test routes: catalog listing and the session lifecycle
"""
from flask import Blueprint, current_app, g, jsonify, request

from autoexam.core.auth import login_required
from autoexam.core.schemas import StartTestSchema

test_bp = Blueprint('tests', __name__)


def _start(test_id):
    result = current_app.test_sessions.start(g.current_user['id'], test_id)
    return jsonify({
        'success': True,
        'message': 'Test started successfully',
        'test': result['test'],
        'userTest': result['userTest']
    })


@test_bp.route('/available')
@login_required
def available_tests():
    return jsonify({'success': True, 'tests': current_app.catalog.list_available()})


@test_bp.route('/userTests')
@login_required
def user_tests():
    result = current_app.test_sessions.list_for_account(g.current_user['id'])
    return jsonify({'success': True, **result})


@test_bp.route('/<int:test_id>')
@login_required
def get_user_test(test_id):
    result = current_app.test_sessions.get(g.current_user['id'], test_id)
    return jsonify({'success': True, **result})


@test_bp.route('/<int:test_id>/start', methods=['POST'])
@login_required
def start_test(test_id):
    return _start(test_id)


@test_bp.route('/start', methods=['POST'])
@login_required
def start_test_by_body():
    """Start a test named in the JSON body as testId"""
    data = StartTestSchema.model_validate(request.get_json(silent=True) or {})
    return _start(data.testId)


@test_bp.route('/<int:test_id>/upload-answer', methods=['POST'])
@login_required
def upload_answer(test_id):
    answer_pdf_url = current_app.test_sessions.upload_answer(
        g.current_user['id'], test_id, request.files.get('answerPdf')
    )
    return jsonify({'success': True, 'answerPdfUrl': answer_pdf_url})


@test_bp.route('/<int:test_id>/submit', methods=['POST'])
@login_required
def submit_test(test_id):
    current_app.test_sessions.submit(g.current_user['id'], test_id)
    return jsonify({'success': True, 'message': 'Test submitted successfully'})
