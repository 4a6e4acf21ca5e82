import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

import psycopg2
import psycopg2.extras

logger = logging.getLogger(__name__)

IntegrityErrors = (sqlite3.IntegrityError, psycopg2.IntegrityError)

# (version, sqlite statements, postgresql statements)
MIGRATIONS = [
    (1, [
        """CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            credits_purchased INTEGER NOT NULL DEFAULT 0,
            credits_used INTEGER NOT NULL DEFAULT 0,
            is_admin INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS exam_tests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            subject TEXT NOT NULL,
            description TEXT,
            total_marks INTEGER NOT NULL,
            passing_marks INTEGER NOT NULL,
            duration INTEGER NOT NULL,
            pdf_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS user_tests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(id),
            test_id INTEGER NOT NULL REFERENCES exam_tests(id),
            status TEXT NOT NULL,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            score REAL,
            answer_pdf_url TEXT,
            UNIQUE (user_id, test_id)
        )""",
        "CREATE INDEX IF NOT EXISTS idx_user_tests_user_id ON user_tests(user_id)",
    ], [
        """CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255) UNIQUE NOT NULL,
            password_hash VARCHAR(255) NOT NULL,
            credits_purchased INTEGER NOT NULL DEFAULT 0,
            credits_used INTEGER NOT NULL DEFAULT 0,
            is_admin BOOLEAN NOT NULL DEFAULT FALSE,
            created_at VARCHAR(40) NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS exam_tests (
            id SERIAL PRIMARY KEY,
            title VARCHAR(255) NOT NULL,
            subject VARCHAR(255) NOT NULL,
            description TEXT,
            total_marks INTEGER NOT NULL,
            passing_marks INTEGER NOT NULL,
            duration INTEGER NOT NULL,
            pdf_url VARCHAR(500),
            created_at VARCHAR(40) NOT NULL,
            updated_at VARCHAR(40) NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS user_tests (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            test_id INTEGER NOT NULL REFERENCES exam_tests(id),
            status VARCHAR(20) NOT NULL,
            started_at VARCHAR(40) NOT NULL,
            completed_at VARCHAR(40),
            score DOUBLE PRECISION,
            answer_pdf_url VARCHAR(500),
            UNIQUE (user_id, test_id)
        )""",
        "CREATE INDEX IF NOT EXISTS idx_user_tests_user_id ON user_tests(user_id)",
    ]),
    # Exams gained a class level (1-12)
    (2, [
        "ALTER TABLE exam_tests ADD COLUMN class_level INTEGER NOT NULL DEFAULT 10",
    ], [
        "ALTER TABLE exam_tests ADD COLUMN class_level INTEGER NOT NULL DEFAULT 10",
    ]),
    # Applied checkouts, so a payment credits the ledger once
    (3, [
        """CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(id),
            provider_session_id TEXT UNIQUE NOT NULL,
            plan TEXT NOT NULL,
            credits INTEGER NOT NULL,
            created_at TEXT NOT NULL
        )""",
    ], [
        """CREATE TABLE IF NOT EXISTS payments (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            provider_session_id VARCHAR(255) UNIQUE NOT NULL,
            plan VARCHAR(10) NOT NULL,
            credits INTEGER NOT NULL,
            created_at VARCHAR(40) NOT NULL
        )""",
    ]),
]


class DatabaseManager:
    def __init__(self, config):
        self.db_type = config['DATABASE_TYPE']
        self.config = config
        self._local = threading.local()

    def get_connection(self):
        if self.db_type == 'postgresql':
            conn = psycopg2.connect(self.config['DATABASE_URL'])
            conn.autocommit = False
            return conn
        else:
            db_path = self.config.get('DATABASE', 'autoexam.db')
            conn = sqlite3.connect(db_path, timeout=30)
            conn.row_factory = sqlite3.Row
            return conn

    def _adapt(self, query):
        if self.db_type == 'postgresql':
            return query.replace('?', '%s')
        return query

    def _cursor(self, conn):
        if self.db_type == 'postgresql':
            return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        return conn.cursor()

    def _run(self, conn, query, params):
        cur = self._cursor(conn)
        try:
            cur.execute(self._adapt(query), params or ())
            if cur.description is not None:
                return [dict(row) for row in cur.fetchall()]
            return cur.rowcount
        finally:
            cur.close()

    @contextmanager
    def transaction(self):
        """Run every query issued inside the block on one connection.

        Commits on a clean exit, rolls back on any exception. Nested blocks
        join the outer transaction.
        """
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            yield conn
            return

        conn = self.get_connection()
        if self.db_type == 'sqlite':
            # Take the write lock up front so concurrent starts serialize
            conn.isolation_level = None
            conn.execute('BEGIN IMMEDIATE')
        self._local.conn = conn
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def execute_query(self, query, params=None):
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            return self._run(conn, query, params)

        conn = self.get_connection()
        try:
            result = self._run(conn, query, params)
            conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def insert(self, query, params=None):
        """Run an INSERT and return the new row id"""
        if self.db_type == 'postgresql':
            rows = self.execute_query(query + ' RETURNING id', params)
            return rows[0]['id'] if rows else None

        conn = getattr(self._local, 'conn', None)
        owned = conn is None
        if owned:
            conn = self.get_connection()
        cur = conn.cursor()
        try:
            cur.execute(query, params or ())
            row_id = cur.lastrowid if cur.rowcount else None
            if owned:
                conn.commit()
            return row_id
        except Exception:
            if owned:
                conn.rollback()
            raise
        finally:
            cur.close()
            if owned:
                conn.close()

    def health_check(self):
        """Return True when the database answers a trivial query"""
        try:
            self.execute_query('SELECT 1 AS ok')
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    def init_database(self):
        """Apply any migrations not yet recorded in schema_version"""
        self.execute_query(
            'CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL, applied_at TEXT NOT NULL)'
        )
        applied = {row['version'] for row in self.execute_query('SELECT version FROM schema_version')}

        for version, sqlite_statements, pg_statements in MIGRATIONS:
            if version in applied:
                continue
            statements = pg_statements if self.db_type == 'postgresql' else sqlite_statements
            with self.transaction():
                for statement in statements:
                    self.execute_query(statement)
                self.execute_query(
                    'INSERT INTO schema_version (version, applied_at) VALUES (?, ?)',
                    (version, datetime.now(timezone.utc).isoformat())
                )
            logger.info(f"Applied schema migration {version}")
