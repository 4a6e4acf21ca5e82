import pytest

from autoexam.core.config import Config
from autoexam.core.database import MIGRATIONS, DatabaseManager


@pytest.fixture()
def db(tmp_path):
    manager = DatabaseManager({'DATABASE_TYPE': 'sqlite', 'DATABASE': str(tmp_path / 'db.sqlite')})
    manager.init_database()
    return manager


def test_migrations_are_recorded_once(db):
    db.init_database()
    versions = [row['version'] for row in db.execute_query('SELECT version FROM schema_version ORDER BY version')]
    assert versions == [version for version, _, _ in MIGRATIONS]


def test_migrated_columns_exist(db):
    columns = {row['name'] for row in db.execute_query('PRAGMA table_info(exam_tests)')}
    assert 'class_level' in columns
    tables = {row['name'] for row in db.execute_query("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {'users', 'exam_tests', 'user_tests', 'payments'} <= tables


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.execute_query(
                'INSERT INTO users (name, email, password_hash, created_at) VALUES (?, ?, ?, ?)',
                ('A', 'a@example.com', 'x', '2024-01-01')
            )
            raise RuntimeError('abort')

    assert db.execute_query('SELECT COUNT(*) AS count FROM users')[0]['count'] == 0


def test_transaction_commits(db):
    with db.transaction():
        db.execute_query(
            'INSERT INTO users (name, email, password_hash, created_at) VALUES (?, ?, ?, ?)',
            ('A', 'a@example.com', 'x', '2024-01-01')
        )
    assert db.execute_query('SELECT COUNT(*) AS count FROM users')[0]['count'] == 1


def test_insert_returns_id_or_none_on_conflict(db):
    query = ('INSERT INTO users (name, email, password_hash, created_at) VALUES (?, ?, ?, ?) '
             'ON CONFLICT (email) DO NOTHING')
    first = db.insert(query, ('A', 'a@example.com', 'x', '2024-01-01'))
    second = db.insert(query, ('B', 'a@example.com', 'y', '2024-01-01'))

    assert isinstance(first, int)
    assert second is None


def test_postgres_placeholders():
    manager = DatabaseManager({'DATABASE_TYPE': 'postgresql', 'DATABASE_URL': 'postgresql://localhost/x'})
    assert manager._adapt('SELECT * FROM users WHERE id = ? AND email = ?') == \
        'SELECT * FROM users WHERE id = %s AND email = %s'


def test_health_check_on_unreachable_database(tmp_path):
    manager = DatabaseManager({'DATABASE_TYPE': 'sqlite', 'DATABASE': str(tmp_path / 'no' / 'such' / 'dir.db')})
    assert manager.health_check() is False


def test_db_config_from_url():
    class PostgresConfig(Config):
        DATABASE_TYPE = 'postgresql'
        DATABASE_URL = 'postgresql://user:pw@db/autoexam'

    class SqliteConfig(Config):
        DATABASE_TYPE = 'sqlite'
        DATABASE_URL = 'sqlite:///data/app.db'

    assert PostgresConfig.get_db_config() == {
        'DATABASE_TYPE': 'postgresql',
        'DATABASE_URL': 'postgresql://user:pw@db/autoexam',
    }
    assert SqliteConfig.get_db_config() == {'DATABASE_TYPE': 'sqlite', 'DATABASE': 'data/app.db'}


def test_migration_timestamps_are_utc(db):
    rows = db.execute_query('SELECT applied_at FROM schema_version')
    assert rows
    assert all(row['applied_at'].endswith('+00:00') for row in rows)
