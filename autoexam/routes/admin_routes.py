"""
Administrator routes: exam catalog CRUD, user management and statistics
"""
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, g, jsonify, request

from autoexam.core.auth import admin_required, public_user
from autoexam.core.catalog import serialize_exam
from autoexam.core.errors import NotFound, ValidationError
from autoexam.core.schemas import ExamSchema

admin_bp = Blueprint('admin', __name__)


def _exam_payload():
    return ExamSchema.model_validate(request.get_json(silent=True) or {}).to_record()


@admin_bp.route('/tests')
@admin_required
def list_tests():
    tests = [serialize_exam(exam) for exam in current_app.catalog.list_all()]
    return jsonify({'success': True, 'tests': tests})


@admin_bp.route('/tests/<int:test_id>')
@admin_required
def get_test(test_id):
    return jsonify({'success': True, 'test': serialize_exam(current_app.catalog.get(test_id))})


@admin_bp.route('/tests', methods=['POST'])
@admin_required
def create_test():
    exam = current_app.catalog.create(_exam_payload())
    return jsonify({'success': True, 'test': serialize_exam(exam)}), 201


@admin_bp.route('/tests/<int:test_id>', methods=['PUT'])
@admin_required
def update_test(test_id):
    exam = current_app.catalog.update(test_id, _exam_payload())
    return jsonify({'success': True, 'test': serialize_exam(exam)})


@admin_bp.route('/tests/<int:test_id>', methods=['DELETE'])
@admin_required
def delete_test(test_id):
    current_app.catalog.delete(test_id)
    return jsonify({'success': True, 'message': 'Test deleted successfully'})


@admin_bp.route('/tests/<int:test_id>/question-paper', methods=['POST'])
@admin_required
def upload_question_paper(test_id):
    exam = current_app.catalog.attach_question_paper(test_id, request.files.get('questionPdf'))
    return jsonify({'success': True, 'test': serialize_exam(exam)})


@admin_bp.route('/users')
@admin_required
def user_management():
    users = [public_user(account) for account in current_app.storage.list_accounts()]
    return jsonify({'success': True, 'users': users})


@admin_bp.route('/users/<int:user_id>')
@admin_required
def user_detail(user_id):
    storage = current_app.storage
    account = storage.get_account(user_id)
    if not account:
        raise NotFound('User not found')

    user = public_user(account)
    user['testsStarted'] = storage.count_sessions(account_id=user_id)
    user['testsCompleted'] = storage.count_sessions(account_id=user_id, completed=True)
    return jsonify({'success': True, 'user': user})


@admin_bp.route('/users/<int:user_id>/toggle-admin', methods=['PATCH'])
@admin_required
def toggle_admin_status(user_id):
    """Flip a user's admin flag"""
    storage = current_app.storage

    # An admin cannot change their own flag
    if user_id == g.current_user['id']:
        raise ValidationError('You cannot change your own admin status')

    with storage.transaction():
        account = storage.get_account(user_id)
        if not account:
            raise NotFound('User not found')
        account = storage.set_admin(user_id, not account['is_admin'])

    current_app.logger.info(
        f"Admin {g.current_user['id']} set is_admin={account['is_admin']} for user {user_id}"
    )
    return jsonify({'success': True, 'user': public_user(account)})


@admin_bp.route('/stats')
@admin_required
def admin_stats():
    """Dashboard statistics"""
    storage = current_app.storage
    stats = _get_system_stats(storage)

    recent_users = [public_user(account) for account in storage.list_accounts(limit=10)]
    recent_attempts = [
        {
            'id': row['id'],
            'startedAt': row['started_at'],
            'completedAt': row['completed_at'],
            'score': row['score'],
            'user': {'id': row['user_id'], 'name': row['user_name']},
            'test': {'id': row['test_id'], 'title': row['test_title'], 'passingMarks': row['test_passing_marks']},
        }
        for row in storage.recent_sessions(limit=10)
    ]

    return jsonify({
        'success': True,
        'stats': stats,
        'recentUsers': recent_users,
        'recentTestAttempts': recent_attempts
    })


def _get_system_stats(storage):
    week_ago = (datetime.now(timezone.utc) - timedelta(days=7)).isoformat()
    tests_started = storage.count_sessions()
    tests_completed = storage.count_sessions(completed=True)

    return {
        'totalUsers': storage.count_accounts(),
        'newUsers': storage.count_accounts(since=week_ago),
        'totalTests': storage.count_exams(),
        'testsStarted': tests_started,
        'testsCompleted': tests_completed,
        'completionRate': round(tests_completed / tests_started * 100) if tests_started > 0 else 0
    }
