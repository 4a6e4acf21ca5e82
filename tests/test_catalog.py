import io
import os
import re
import threading

import pytest
from werkzeug.datastructures import FileStorage

from autoexam.core.catalog import SAMPLE_TESTS
from autoexam.core.errors import Conflict, InsufficientCredit, NotFound, ValidationError
from autoexam.core.storage import MemoryStorage
from autoexam.core.uploads import allowed_file
from conftest import PDF_BYTES, create_account, exam_record


def test_create_update_delete(services):
    catalog = services['catalog']
    exam = catalog.create(exam_record())
    assert exam['class_level'] == 12
    assert exam['pdf_url'] is None

    updated = catalog.update(exam['id'], exam_record(title='Chemistry Retake', duration=60))
    assert updated['title'] == 'Chemistry Retake'
    assert updated['duration'] == 60

    catalog.delete(exam['id'])
    with pytest.raises(NotFound):
        catalog.get(exam['id'])
    with pytest.raises(NotFound):
        catalog.update(exam['id'], exam_record())


def test_delete_refused_once_attempted(services):
    account = create_account(services['storage'], credits=1)
    exam = services['catalog'].create(exam_record())
    services['lifecycle'].start(account['id'], exam['id'])

    with pytest.raises(Conflict):
        services['catalog'].delete(exam['id'])
    assert services['catalog'].get(exam['id'])


def test_list_available_hides_answer_details(services):
    services['catalog'].create(exam_record())
    listing = services['catalog'].list_available()
    assert len(listing) == 1
    assert 'passingMarks' not in listing[0]
    assert listing[0]['totalMarks'] == 80


def test_seed_samples_only_into_empty_catalog(services):
    catalog = services['catalog']
    assert catalog.seed_samples() == len(SAMPLE_TESTS)
    assert catalog.seed_samples() == 0
    assert {e['title'] for e in catalog.list_all()} == {s['title'] for s in SAMPLE_TESTS}


def test_attach_question_paper_replaces_file(services):
    catalog, uploads = services['catalog'], services['uploads']
    exam = catalog.create(exam_record())

    first = catalog.attach_question_paper(
        exam['id'], FileStorage(io.BytesIO(PDF_BYTES), 'q.pdf', content_type='application/pdf'))
    second = catalog.attach_question_paper(
        exam['id'], FileStorage(io.BytesIO(PDF_BYTES), 'q2.pdf', content_type='application/pdf'))

    assert re.fullmatch(r'/uploads/question-\d+-\d{9}\.pdf', second['pdf_url'])
    assert not os.path.exists(uploads.path_for(first['pdf_url']))
    assert os.path.exists(uploads.path_for(second['pdf_url']))


def test_upload_requires_file(services):
    with pytest.raises(ValidationError):
        services['uploads'].save_pdf(None, 'answer')


def test_path_for_ignores_foreign_urls(services):
    uploads = services['uploads']
    assert uploads.path_for('https://cdn.example.com/file.pdf') is None
    assert uploads.path_for(None) is None
    assert uploads.delete('/elsewhere/file.pdf') is False


def test_allowed_file():
    assert allowed_file('paper.PDF')
    assert not allowed_file('paper.docx')
    assert not allowed_file('pdf')


def test_ledger_increment_and_consume(services):
    ledger, storage = services['ledger'], services['storage']
    account = create_account(storage)

    ledger.increment(account['id'], 2)
    assert ledger.summary(account['id']) == {'testsPurchased': 2, 'testsUsed': 0, 'availableTests': 2}

    ledger.consume(account['id'])
    ledger.consume(account['id'])
    with pytest.raises(InsufficientCredit):
        ledger.consume(account['id'])
    assert ledger.available(account['id']) == 0


@pytest.mark.parametrize('amount', [0, -1, 1.5, True, '3'])
def test_ledger_increment_rejects_bad_amounts(services, amount):
    account = create_account(services['storage'])
    with pytest.raises(ValidationError):
        services['ledger'].increment(account['id'], amount)


def test_ledger_unknown_account(services):
    with pytest.raises(NotFound):
        services['ledger'].increment(999, 1)
    with pytest.raises(NotFound):
        services['ledger'].consume(999)


def test_apply_payment_is_idempotent(services):
    ledger = services['ledger']
    account = create_account(services['storage'])

    assert ledger.apply_payment(account['id'], 'cs_1', '3') is True
    assert ledger.apply_payment(account['id'], 'cs_1', '3') is False
    assert ledger.available(account['id']) == 3


def test_memory_reads_while_another_thread_writes():
    storage = MemoryStorage()
    account = create_account(storage)
    stop = threading.Event()
    errors = []

    def write():
        for n in range(3000):
            if stop.is_set():
                break
            storage.create_exam(exam_record(title=f'Exam {n}'))
            storage.create_account('Writer', f'writer{n}@example.com', 'x')

    def read():
        try:
            for _ in range(500):
                storage.get_account_by_email(account['email'])
                storage.count_sessions(exam_id=1)
                storage.list_exams()
                storage.count_accounts()
        except Exception as e:
            errors.append(e)

    writer = threading.Thread(target=write)
    readers = [threading.Thread(target=read) for _ in range(4)]
    writer.start()
    for reader in readers:
        reader.start()
    for reader in readers:
        reader.join(timeout=120)
    stop.set()
    writer.join(timeout=10)

    assert errors == []


def test_memory_rollback_restores_only_touched_rows():
    storage = MemoryStorage()
    account = create_account(storage, credits=2)
    exam = storage.create_exam(exam_record())

    with pytest.raises(RuntimeError):
        with storage.transaction():
            storage.consume_credit(account['id'])
            storage.create_exam(exam_record(title='Rolled back'))
            storage.delete_exam(exam['id'])
            raise RuntimeError('abort')

    assert storage.get_account(account['id'])['credits_used'] == 0
    assert [e['title'] for e in storage.list_exams()] == ['Chemistry Final']
    assert storage.create_exam(exam_record(title='Next'))['id'] == exam['id'] + 1
