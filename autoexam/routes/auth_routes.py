"""
Registration, login and first-admin bootstrap
"""
from flask import Blueprint, current_app, g, jsonify, request

from autoexam.core.auth import create_token, hash_password, login_required, public_user, verify_password
from autoexam.core.errors import Conflict, NotFound, PermissionDenied, ValidationError
from autoexam.core.schemas import AdminSetupSchema, LoginSchema, RegisterSchema

auth_bp = Blueprint('auth', __name__)


def _json_body():
    return request.get_json(silent=True) or {}


@auth_bp.route('/register', methods=['POST'])
def register():
    data = RegisterSchema.model_validate(_json_body())
    storage = current_app.storage

    if storage.get_account_by_email(data.email):
        raise Conflict('User already exists with this email')

    account = storage.create_account(data.name, data.email, hash_password(data.password))
    current_app.logger.info(f"Registered user {account['id']}")

    return jsonify({
        'message': 'User registered successfully',
        'user': {'id': account['id'], 'name': account['name'], 'email': account['email']},
        'token': create_token(account)
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = LoginSchema.model_validate(_json_body())

    account = current_app.storage.get_account_by_email(data.email)
    if not account or not verify_password(data.password, account['password_hash']):
        raise ValidationError('Invalid credentials')

    return jsonify({
        'message': 'Login successful',
        'user': public_user(account),
        'token': create_token(account)
    })


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'user': public_user(g.current_user)})


@auth_bp.route('/setup-first-admin', methods=['POST'])
def setup_first_admin():
    """Promote an account to admin; only works while no admin exists"""
    data = AdminSetupSchema.model_validate(_json_body())
    storage = current_app.storage

    if data.adminKey != current_app.config['ADMIN_SETUP_KEY']:
        raise PermissionDenied('Invalid admin setup key')

    with storage.transaction():
        if storage.has_admin():
            raise Conflict('An admin user already exists')
        account = storage.get_account_by_email(data.email)
        if not account:
            raise NotFound('User not found')
        account = storage.set_admin(account['id'], True)

    current_app.logger.info(f"User {account['id']} set up as first admin")
    return jsonify({
        'success': True,
        'message': 'First admin user set up successfully',
        'user': {'id': account['id'], 'name': account['name'], 'email': account['email'], 'isAdmin': True}
    })
