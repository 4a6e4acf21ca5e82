import io

import pytest

from app import create_app
from autoexam.core.auth import hash_password
from autoexam.core.catalog import ExamCatalog
from autoexam.core.config import Config
from autoexam.core.database import DatabaseManager
from autoexam.core.ledger import Ledger
from autoexam.core.sessions import SessionLifecycle
from autoexam.core.storage import MemoryStorage, SQLStorage
from autoexam.core.uploads import UploadStore

PDF_BYTES = b'%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n'


def make_config(tmp_path, **overrides):
    """Config subclass pointed at a temporary SQLite database"""
    db_path = tmp_path / "test.db"

    class TestConfig(Config):
        SECRET_KEY = 'test-secret'
        JWT_SECRET = 'test-jwt-secret'
        DEBUG = False
        DATABASE_TYPE = 'sqlite'
        DATABASE_URL = f'sqlite:///{db_path}'
        STORAGE_BACKEND = 'sql'
        UPLOAD_FOLDER = str(tmp_path / 'uploads')
        SEED_SAMPLE_TESTS = False
        ADMIN_SETUP_KEY = 'setup-key'
        STRIPE_SECRET_KEY = 'sk_test_dummy'
        STRIPE_WEBHOOK_SECRET = 'whsec_dummy'
        FRONTEND_URL = 'http://frontend.example.com'

    for key, value in overrides.items():
        setattr(TestConfig, key, value)
    return TestConfig


def make_storage(kind, tmp_path):
    if kind == 'memory':
        return MemoryStorage()
    db = DatabaseManager({'DATABASE_TYPE': 'sqlite', 'DATABASE': str(tmp_path / 'store.db')})
    db.init_database()
    return SQLStorage(db)


def pdf_file(name='answer.pdf', content=PDF_BYTES):
    return (io.BytesIO(content), name, 'application/pdf')


@pytest.fixture(params=['sql', 'memory'])
def storage(request, tmp_path):
    return make_storage(request.param, tmp_path)


@pytest.fixture()
def services(storage, tmp_path):
    """Wired domain services over either storage implementation"""
    uploads = UploadStore(str(tmp_path / 'uploads'))
    ledger = Ledger(storage)
    catalog = ExamCatalog(storage, uploads)
    lifecycle = SessionLifecycle(storage, catalog, ledger, uploads)
    return {
        'storage': storage,
        'uploads': uploads,
        'ledger': ledger,
        'catalog': catalog,
        'lifecycle': lifecycle,
    }


def exam_record(**overrides):
    record = {
        'title': 'Chemistry Final',
        'subject': 'Chemistry',
        'class_level': 12,
        'description': 'Organic chemistry',
        'total_marks': 80,
        'passing_marks': 32,
        'duration': 90,
    }
    record.update(overrides)
    return record


def create_account(storage, email='student@example.com', credits=0, is_admin=False, password='secret123'):
    account = storage.create_account('Student', email, hash_password(password))
    if credits:
        storage.add_purchased_credits(account['id'], credits)
    if is_admin:
        storage.set_admin(account['id'], True)
    return storage.get_account(account['id'])


@pytest.fixture(params=['sql', 'memory'])
def app(request, tmp_path):
    return create_app(make_config(tmp_path, STORAGE_BACKEND=request.param))


@pytest.fixture()
def client(app):
    return app.test_client()


def auth_headers(client, email, password='secret123'):
    res = client.post('/api/v1/auth/login', json={'email': email, 'password': password})
    assert res.status_code == 200, res.get_json()
    return {'x-auth-token': res.get_json()['token']}
