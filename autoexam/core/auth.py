from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import current_app, g, request
from jose import ExpiredSignatureError, JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthenticationError, PermissionDenied


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password, password_hash):
    return check_password_hash(password_hash, password)


def create_token(account, config=None):
    """Sign a token identifying the account"""
    config = config or current_app.config
    expire = datetime.now(timezone.utc) + timedelta(hours=config['JWT_EXPIRES_HOURS'])
    payload = {'userId': account['id'], 'email': account['email'], 'exp': expire}
    return jwt.encode(payload, config['JWT_SECRET'], algorithm=config['JWT_ALGORITHM'])


def decode_token(token, config=None):
    config = config or current_app.config
    try:
        return jwt.decode(token, config['JWT_SECRET'], algorithms=[config['JWT_ALGORITHM']])
    except ExpiredSignatureError:
        raise AuthenticationError('Token has expired')
    except JWTError:
        raise AuthenticationError('Token is not valid')


def _token_from_request():
    token = request.headers.get('x-auth-token')
    if token:
        return token
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return None


def _load_current_user():
    token = _token_from_request()
    if not token:
        raise AuthenticationError('No token, authorization denied')

    payload = decode_token(token)
    account_id = payload.get('userId')
    if account_id is None:
        raise AuthenticationError('Token is not valid')

    account = current_app.storage.get_account(account_id)
    if not account:
        raise AuthenticationError('User not found')
    g.current_user = account
    return account


def login_required(f):
    """Require a valid token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _load_current_user()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Require a valid token belonging to an admin"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        account = _load_current_user()
        if not account['is_admin']:
            raise PermissionDenied('Access denied. Admin privileges required')
        return f(*args, **kwargs)
    return decorated_function


def public_user(account):
    """Account fields safe to return to clients"""
    return {
        'id': account['id'],
        'name': account['name'],
        'email': account['email'],
        'testsPurchased': account['credits_purchased'],
        'testsUsed': account['credits_used'],
        'isAdmin': account['is_admin'],
        'createdAt': account['created_at'],
    }
