"""
Storage access for accounts, the exam catalog and test sessions.

`Storage` is the one interface the services talk to. `SQLStorage` runs on
top of `DatabaseManager`; `MemoryStorage` keeps everything in process and is
used when the database cannot be reached at startup (or when asked for
explicitly). `select_storage` makes that choice once, in the composition
root.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone

from .database import DatabaseManager, IntegrityErrors
from .errors import Conflict

logger = logging.getLogger(__name__)

IN_PROGRESS = 'InProgress'
COMPLETED = 'Completed'
NOT_STARTED = 'NotStarted'

EXAM_FIELDS = ('title', 'subject', 'class_level', 'description',
               'total_marks', 'passing_marks', 'duration')


def utcnow():
    return datetime.now(timezone.utc).isoformat()


class Storage(ABC):
    mode = None

    @abstractmethod
    def transaction(self):
        """Context manager; everything inside commits or rolls back together"""

    @abstractmethod
    def health_check(self):
        pass

    # accounts
    @abstractmethod
    def create_account(self, name, email, password_hash): ...

    @abstractmethod
    def get_account(self, account_id): ...

    @abstractmethod
    def get_account_by_email(self, email): ...

    @abstractmethod
    def list_accounts(self, limit=None): ...

    @abstractmethod
    def count_accounts(self, since=None): ...

    @abstractmethod
    def has_admin(self): ...

    @abstractmethod
    def set_admin(self, account_id, is_admin): ...

    @abstractmethod
    def add_purchased_credits(self, account_id, amount): ...

    @abstractmethod
    def consume_credit(self, account_id):
        """Add one to credits_used only while credits remain; True on success"""

    @abstractmethod
    def record_payment(self, account_id, provider_session_id, plan, credits):
        """Store an applied checkout; False if it was already recorded"""

    # catalog
    @abstractmethod
    def create_exam(self, data): ...

    @abstractmethod
    def update_exam(self, exam_id, data): ...

    @abstractmethod
    def delete_exam(self, exam_id): ...

    @abstractmethod
    def get_exam(self, exam_id): ...

    @abstractmethod
    def list_exams(self): ...

    @abstractmethod
    def count_exams(self): ...

    @abstractmethod
    def set_exam_pdf(self, exam_id, pdf_url): ...

    # sessions
    @abstractmethod
    def get_session(self, account_id, exam_id): ...

    @abstractmethod
    def insert_session(self, account_id, exam_id, started_at):
        """Insert an InProgress row; None if the (account, exam) row exists"""

    @abstractmethod
    def restart_session(self, session_id, started_at): ...

    @abstractmethod
    def complete_session(self, session_id, completed_at): ...

    @abstractmethod
    def set_answer_pdf(self, session_id, answer_pdf_url): ...

    @abstractmethod
    def list_sessions(self, account_id): ...

    @abstractmethod
    def count_sessions(self, account_id=None, exam_id=None, completed=None): ...

    @abstractmethod
    def recent_sessions(self, limit=10): ...


def _account_row(row):
    if row is None:
        return None
    row = dict(row)
    row['is_admin'] = bool(row['is_admin'])
    return row


class SQLStorage(Storage):
    mode = 'SQL'

    def __init__(self, db_manager):
        self.db = db_manager

    def transaction(self):
        return self.db.transaction()

    def health_check(self):
        return self.db.health_check()

    def _one(self, query, params=()):
        rows = self.db.execute_query(query, params)
        return rows[0] if rows else None

    # accounts

    def create_account(self, name, email, password_hash):
        try:
            account_id = self.db.insert(
                'INSERT INTO users (name, email, password_hash, credits_purchased, credits_used, is_admin, created_at) '
                'VALUES (?, ?, ?, 0, 0, ?, ?)',
                (name, email, password_hash, False, utcnow())
            )
        except IntegrityErrors:
            raise Conflict('User already exists with this email')
        return self.get_account(account_id)

    def get_account(self, account_id):
        return _account_row(self._one('SELECT * FROM users WHERE id = ?', (account_id,)))

    def get_account_by_email(self, email):
        return _account_row(self._one('SELECT * FROM users WHERE email = ?', (email,)))

    def list_accounts(self, limit=None):
        query = 'SELECT * FROM users ORDER BY created_at DESC, id DESC'
        params = ()
        if limit:
            query += ' LIMIT ?'
            params = (limit,)
        return [_account_row(r) for r in self.db.execute_query(query, params)]

    def count_accounts(self, since=None):
        if since:
            row = self._one('SELECT COUNT(*) AS count FROM users WHERE created_at >= ?', (since,))
        else:
            row = self._one('SELECT COUNT(*) AS count FROM users')
        return row['count']

    def has_admin(self):
        return self._one('SELECT id FROM users WHERE is_admin = ? LIMIT 1', (True,)) is not None

    def set_admin(self, account_id, is_admin):
        self.db.execute_query('UPDATE users SET is_admin = ? WHERE id = ?', (bool(is_admin), account_id))
        return self.get_account(account_id)

    def add_purchased_credits(self, account_id, amount):
        updated = self.db.execute_query(
            'UPDATE users SET credits_purchased = credits_purchased + ? WHERE id = ?',
            (amount, account_id)
        )
        return updated == 1

    def consume_credit(self, account_id):
        updated = self.db.execute_query(
            'UPDATE users SET credits_used = credits_used + 1 '
            'WHERE id = ? AND credits_used < credits_purchased',
            (account_id,)
        )
        return updated == 1

    def record_payment(self, account_id, provider_session_id, plan, credits):
        payment_id = self.db.insert(
            'INSERT INTO payments (user_id, provider_session_id, plan, credits, created_at) '
            'VALUES (?, ?, ?, ?, ?) ON CONFLICT (provider_session_id) DO NOTHING',
            (account_id, provider_session_id, plan, credits, utcnow())
        )
        return payment_id is not None

    # catalog

    def create_exam(self, data):
        now = utcnow()
        exam_id = self.db.insert(
            'INSERT INTO exam_tests (title, subject, class_level, description, total_marks, '
            'passing_marks, duration, pdf_url, created_at, updated_at) '
            'VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)',
            tuple(data.get(f) for f in EXAM_FIELDS) + (data.get('pdf_url'), now, now)
        )
        return self.get_exam(exam_id)

    def update_exam(self, exam_id, data):
        assignments = ', '.join(f'{f} = ?' for f in EXAM_FIELDS)
        updated = self.db.execute_query(
            f'UPDATE exam_tests SET {assignments}, updated_at = ? WHERE id = ?',
            tuple(data.get(f) for f in EXAM_FIELDS) + (utcnow(), exam_id)
        )
        return self.get_exam(exam_id) if updated else None

    def delete_exam(self, exam_id):
        return self.db.execute_query('DELETE FROM exam_tests WHERE id = ?', (exam_id,)) == 1

    def get_exam(self, exam_id):
        return self._one('SELECT * FROM exam_tests WHERE id = ?', (exam_id,))

    def list_exams(self):
        return self.db.execute_query('SELECT * FROM exam_tests ORDER BY created_at DESC, id DESC')

    def count_exams(self):
        return self._one('SELECT COUNT(*) AS count FROM exam_tests')['count']

    def set_exam_pdf(self, exam_id, pdf_url):
        self.db.execute_query(
            'UPDATE exam_tests SET pdf_url = ?, updated_at = ? WHERE id = ?',
            (pdf_url, utcnow(), exam_id)
        )
        return self.get_exam(exam_id)

    # sessions

    def get_session(self, account_id, exam_id):
        return self._one(
            'SELECT * FROM user_tests WHERE user_id = ? AND test_id = ?',
            (account_id, exam_id)
        )

    def insert_session(self, account_id, exam_id, started_at):
        session_id = self.db.insert(
            'INSERT INTO user_tests (user_id, test_id, status, started_at) VALUES (?, ?, ?, ?) '
            'ON CONFLICT (user_id, test_id) DO NOTHING',
            (account_id, exam_id, IN_PROGRESS, started_at)
        )
        if session_id is None:
            return None
        return self._one('SELECT * FROM user_tests WHERE id = ?', (session_id,))

    def restart_session(self, session_id, started_at):
        self.db.execute_query(
            'UPDATE user_tests SET status = ?, started_at = ?, completed_at = NULL, score = NULL WHERE id = ?',
            (IN_PROGRESS, started_at, session_id)
        )
        return self._one('SELECT * FROM user_tests WHERE id = ?', (session_id,))

    def complete_session(self, session_id, completed_at):
        self.db.execute_query(
            'UPDATE user_tests SET status = ?, completed_at = ? WHERE id = ?',
            (COMPLETED, completed_at, session_id)
        )
        return self._one('SELECT * FROM user_tests WHERE id = ?', (session_id,))

    def set_answer_pdf(self, session_id, answer_pdf_url):
        self.db.execute_query(
            'UPDATE user_tests SET answer_pdf_url = ? WHERE id = ?',
            (answer_pdf_url, session_id)
        )
        return self._one('SELECT * FROM user_tests WHERE id = ?', (session_id,))

    def list_sessions(self, account_id):
        return self.db.execute_query('SELECT * FROM user_tests WHERE user_id = ? ORDER BY id', (account_id,))

    def count_sessions(self, account_id=None, exam_id=None, completed=None):
        clauses, params = [], []
        if account_id is not None:
            clauses.append('user_id = ?')
            params.append(account_id)
        if exam_id is not None:
            clauses.append('test_id = ?')
            params.append(exam_id)
        if completed:
            clauses.append('completed_at IS NOT NULL')
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ''
        return self._one(f'SELECT COUNT(*) AS count FROM user_tests{where}', tuple(params))['count']

    def recent_sessions(self, limit=10):
        return self.db.execute_query("""
            SELECT ut.id, ut.started_at, ut.completed_at, ut.score,
                   u.id AS user_id, u.name AS user_name,
                   t.id AS test_id, t.title AS test_title, t.passing_marks AS test_passing_marks
            FROM user_tests ut
            JOIN users u ON u.id = ut.user_id
            JOIN exam_tests t ON t.id = ut.test_id
            ORDER BY ut.started_at DESC, ut.id DESC
            LIMIT ?
        """, (limit,))


class MemoryStorage(Storage):
    """In-process tables guarded by one re-entrant lock.

    Every read and write takes the lock. A transaction holds the lock for its
    whole block and keeps an undo journal: the first change to a row records
    the row's previous state, so a rollback only touches the rows the block
    changed.
    """
    mode = 'MEMORY'

    def __init__(self):
        self._lock = threading.RLock()
        self._tables = {'users': {}, 'exam_tests': {}, 'user_tests': {}, 'payments': {}}
        self._ids = {name: 0 for name in self._tables}
        self._journal = None

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._journal is not None:
                # Nested blocks join the outer transaction
                yield self
                return

            self._journal = {'ids': dict(self._ids), 'rows': {}}
            try:
                yield self
            except Exception:
                self._rollback()
                raise
            finally:
                self._journal = None

    def _rollback(self):
        for (table, row_id), previous in self._journal['rows'].items():
            if previous is None:
                self._tables[table].pop(row_id, None)
            else:
                self._tables[table][row_id] = previous
        self._ids = self._journal['ids']

    def _remember(self, table, row_id):
        """Record a row's state before its first change inside a transaction"""
        if self._journal is None:
            return
        key = (table, row_id)
        if key not in self._journal['rows']:
            row = self._tables[table].get(row_id)
            self._journal['rows'][key] = dict(row) if row is not None else None

    def health_check(self):
        return True

    def _next_id(self, table):
        self._ids[table] += 1
        return self._ids[table]

    def _insert(self, table, row):
        row_id = self._next_id(table)
        self._remember(table, row_id)
        row = dict(row, id=row_id)
        self._tables[table][row_id] = row
        return dict(row)

    def _get(self, table, row_id):
        with self._lock:
            row = self._tables[table].get(row_id)
            return dict(row) if row else None

    def _update(self, table, row_id, **changes):
        row = self._tables[table].get(row_id)
        if row is None:
            return None
        self._remember(table, row_id)
        row.update(changes)
        return dict(row)

    def _rows(self, table):
        """Copies of every row in a table, taken under the lock"""
        with self._lock:
            return [dict(row) for row in self._tables[table].values()]

    @staticmethod
    def _newest_first(rows):
        return sorted(rows, key=lambda r: (r['created_at'], r['id']), reverse=True)

    # accounts

    def create_account(self, name, email, password_hash):
        with self._lock:
            if self.get_account_by_email(email):
                raise Conflict('User already exists with this email')
            return self._insert('users', {
                'name': name,
                'email': email,
                'password_hash': password_hash,
                'credits_purchased': 0,
                'credits_used': 0,
                'is_admin': False,
                'created_at': utcnow(),
            })

    def get_account(self, account_id):
        return self._get('users', account_id)

    def get_account_by_email(self, email):
        with self._lock:
            for row in self._tables['users'].values():
                if row['email'] == email:
                    return dict(row)
        return None

    def list_accounts(self, limit=None):
        rows = self._newest_first(self._rows('users'))
        return rows[:limit] if limit else rows

    def count_accounts(self, since=None):
        rows = self._rows('users')
        if since:
            return sum(1 for r in rows if r['created_at'] >= since)
        return len(rows)

    def has_admin(self):
        return any(r['is_admin'] for r in self._rows('users'))

    def set_admin(self, account_id, is_admin):
        with self._lock:
            return self._update('users', account_id, is_admin=bool(is_admin))

    def add_purchased_credits(self, account_id, amount):
        with self._lock:
            row = self._tables['users'].get(account_id)
            if row is None:
                return False
            self._update('users', account_id, credits_purchased=row['credits_purchased'] + amount)
            return True

    def consume_credit(self, account_id):
        with self._lock:
            row = self._tables['users'].get(account_id)
            if row is None or row['credits_used'] >= row['credits_purchased']:
                return False
            self._update('users', account_id, credits_used=row['credits_used'] + 1)
            return True

    def record_payment(self, account_id, provider_session_id, plan, credits):
        with self._lock:
            for row in self._tables['payments'].values():
                if row['provider_session_id'] == provider_session_id:
                    return False
            self._insert('payments', {
                'user_id': account_id,
                'provider_session_id': provider_session_id,
                'plan': plan,
                'credits': credits,
                'created_at': utcnow(),
            })
            return True

    # catalog

    def create_exam(self, data):
        now = utcnow()
        with self._lock:
            row = {f: data.get(f) for f in EXAM_FIELDS}
            row.update(pdf_url=data.get('pdf_url'), created_at=now, updated_at=now)
            return self._insert('exam_tests', row)

    def update_exam(self, exam_id, data):
        with self._lock:
            changes = {f: data.get(f) for f in EXAM_FIELDS}
            return self._update('exam_tests', exam_id, updated_at=utcnow(), **changes)

    def delete_exam(self, exam_id):
        with self._lock:
            self._remember('exam_tests', exam_id)
            return self._tables['exam_tests'].pop(exam_id, None) is not None

    def get_exam(self, exam_id):
        return self._get('exam_tests', exam_id)

    def list_exams(self):
        return self._newest_first(self._rows('exam_tests'))

    def count_exams(self):
        with self._lock:
            return len(self._tables['exam_tests'])

    def set_exam_pdf(self, exam_id, pdf_url):
        with self._lock:
            return self._update('exam_tests', exam_id, pdf_url=pdf_url, updated_at=utcnow())

    # sessions

    def get_session(self, account_id, exam_id):
        with self._lock:
            for row in self._tables['user_tests'].values():
                if row['user_id'] == account_id and row['test_id'] == exam_id:
                    return dict(row)
        return None

    def insert_session(self, account_id, exam_id, started_at):
        with self._lock:
            if self.get_session(account_id, exam_id) is not None:
                return None
            return self._insert('user_tests', {
                'user_id': account_id,
                'test_id': exam_id,
                'status': IN_PROGRESS,
                'started_at': started_at,
                'completed_at': None,
                'score': None,
                'answer_pdf_url': None,
            })

    def restart_session(self, session_id, started_at):
        with self._lock:
            return self._update('user_tests', session_id, status=IN_PROGRESS,
                                started_at=started_at, completed_at=None, score=None)

    def complete_session(self, session_id, completed_at):
        with self._lock:
            return self._update('user_tests', session_id, status=COMPLETED, completed_at=completed_at)

    def set_answer_pdf(self, session_id, answer_pdf_url):
        with self._lock:
            return self._update('user_tests', session_id, answer_pdf_url=answer_pdf_url)

    def list_sessions(self, account_id):
        return [r for r in self._rows('user_tests') if r['user_id'] == account_id]

    def count_sessions(self, account_id=None, exam_id=None, completed=None):
        count = 0
        for row in self._rows('user_tests'):
            if account_id is not None and row['user_id'] != account_id:
                continue
            if exam_id is not None and row['test_id'] != exam_id:
                continue
            if completed and row['completed_at'] is None:
                continue
            count += 1
        return count

    def recent_sessions(self, limit=10):
        with self._lock:
            rows = sorted(self._tables['user_tests'].values(),
                          key=lambda r: (r['started_at'], r['id']), reverse=True)[:limit]
            result = []
            for row in rows:
                user = self._tables['users'].get(row['user_id']) or {}
                test = self._tables['exam_tests'].get(row['test_id']) or {}
                result.append({
                    'id': row['id'],
                    'started_at': row['started_at'],
                    'completed_at': row['completed_at'],
                    'score': row['score'],
                    'user_id': row['user_id'],
                    'user_name': user.get('name'),
                    'test_id': row['test_id'],
                    'test_passing_marks': test.get('passing_marks'),
                    'test_title': test.get('title'),
                })
            return result


def select_storage(config):
    """Pick the storage implementation once, at startup"""
    backend = config.STORAGE_BACKEND
    if backend == 'memory':
        logger.info("Using in-memory storage")
        return MemoryStorage()

    db_manager = DatabaseManager(config.get_db_config())
    storage = SQLStorage(db_manager)
    if storage.health_check():
        db_manager.init_database()
        logger.info(f"Using {config.DATABASE_TYPE} storage")
        return storage

    if backend == 'sql':
        raise RuntimeError(f"Database is not reachable: {config.DATABASE_TYPE}")

    logger.warning("Database is not reachable, falling back to in-memory storage")
    return MemoryStorage()
