"""
Test-session lifecycle: start / resume / upload answer / submit.

A session row is created the first time an account starts an exam and is
never deleted. States run Absent -> InProgress -> Completed; restarting an
unfinished session refreshes it in place without touching the ledger.
"""
import logging

from .catalog import public_exam
from .errors import Conflict, NotFound
from .storage import COMPLETED, NOT_STARTED, utcnow

logger = logging.getLogger(__name__)


def serialize_session(session):
    return {
        'id': session['id'],
        'userId': session['user_id'],
        'testId': session['test_id'],
        'status': session['status'],
        'startedAt': session['started_at'],
        'completedAt': session['completed_at'],
        'score': session['score'],
        'answerPdfUrl': session['answer_pdf_url'],
    }


def session_exam(exam, session):
    """Exam metadata handed to a candidate who has started it"""
    return {
        'id': exam['id'],
        'title': exam['title'],
        'subject': exam['subject'],
        'classLevel': exam['class_level'],
        'description': exam['description'],
        'totalMarks': exam['total_marks'],
        'passingMarks': exam['passing_marks'],
        'duration': exam['duration'],
        'pdfUrl': exam['pdf_url'],
        'startTime': session['started_at'],
    }


class SessionLifecycle:
    def __init__(self, storage, catalog, ledger, uploads):
        self.storage = storage
        self.catalog = catalog
        self.ledger = ledger
        self.uploads = uploads

    def start(self, account_id, exam_id):
        exam = self.catalog.get(exam_id)
        now = utcnow()

        with self.storage.transaction():
            session = self.storage.get_session(account_id, exam_id)
            if session is None:
                session = self.storage.insert_session(account_id, exam_id, now)
                if session is not None:
                    # Rolls the insert back when no credit is left
                    self.ledger.consume(account_id)
                    logger.info(f"User {account_id} started test {exam_id}")
                    return {'test': session_exam(exam, session), 'userTest': serialize_session(session)}
                # Another request created it first; resume that one
                session = self.storage.get_session(account_id, exam_id)

            if session['status'] == COMPLETED:
                raise Conflict('This test has already been completed.')

            session = self.storage.restart_session(session['id'], now)
            logger.info(f"User {account_id} restarted test {exam_id}")

        return {'test': session_exam(exam, session), 'userTest': serialize_session(session)}

    def _open_session(self, account_id, exam_id):
        session = self.storage.get_session(account_id, exam_id)
        if not session or session['status'] == COMPLETED:
            raise NotFound('No active test session found')
        return session

    def upload_answer(self, account_id, exam_id, file):
        session = self._open_session(account_id, exam_id)
        previous = session['answer_pdf_url']

        answer_pdf_url = self.uploads.save_pdf(file, 'answer')
        self.storage.set_answer_pdf(session['id'], answer_pdf_url)
        if previous and previous != answer_pdf_url:
            self.uploads.delete(previous)

        logger.info(f"User {account_id} uploaded an answer for test {exam_id}")
        return answer_pdf_url

    def submit(self, account_id, exam_id):
        session = self._open_session(account_id, exam_id)
        session = self.storage.complete_session(session['id'], utcnow())
        logger.info(f"User {account_id} submitted test {exam_id}")
        return serialize_session(session)

    def get(self, account_id, exam_id):
        exam = self.catalog.get(exam_id)
        session = self.storage.get_session(account_id, exam_id)
        if not session:
            raise NotFound('Test session not found')
        return {'test': session_exam(exam, session), 'userTest': serialize_session(session)}

    def list_for_account(self, account_id):
        """Every catalog entry annotated with this account's progress"""
        summary = self.ledger.summary(account_id)
        sessions = {s['test_id']: s for s in self.storage.list_sessions(account_id)}

        tests = []
        for exam in self.catalog.list_all():
            session = sessions.get(exam['id'])
            entry = public_exam(exam)
            entry['passingMarks'] = exam['passing_marks']
            entry.update({
                'status': session['status'] if session else NOT_STARTED,
                'score': session['score'] if session else None,
                'startedAt': session['started_at'] if session else None,
                'completedAt': session['completed_at'] if session else None,
                'answerPdfUrl': session['answer_pdf_url'] if session else None,
            })
            tests.append(entry)

        summary['tests'] = tests
        return summary
