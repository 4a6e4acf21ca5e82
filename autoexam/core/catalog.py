"""
Exam catalog: administrator-defined exam definitions
"""
import logging

from .errors import Conflict, NotFound

logger = logging.getLogger(__name__)

# Rows inserted into an empty catalog at startup
SAMPLE_TESTS = [
    {
        'title': 'Mathematics Midterm',
        'subject': 'Mathematics',
        'class_level': 10,
        'description': 'Basic algebra and calculus concepts',
        'total_marks': 100,
        'passing_marks': 40,
        'duration': 120,
    },
    {
        'title': 'Physics Fundamentals',
        'subject': 'Physics',
        'class_level': 11,
        'description': 'Mechanics and electromagnetism',
        'total_marks': 100,
        'passing_marks': 40,
        'duration': 120,
    },
    {
        'title': 'Computer Science Basics',
        'subject': 'Computer Science',
        'class_level': 12,
        'description': 'Algorithms and data structures',
        'total_marks': 100,
        'passing_marks': 40,
        'duration': 120,
    },
]


def serialize_exam(exam):
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
        'createdAt': exam['created_at'],
        'updatedAt': exam['updated_at'],
    }


def public_exam(exam):
    """Listing fields shown to candidates before they start"""
    return {
        'id': exam['id'],
        'title': exam['title'],
        'subject': exam['subject'],
        'classLevel': exam['class_level'],
        'description': exam['description'],
        'totalMarks': exam['total_marks'],
        'duration': exam['duration'],
    }


class ExamCatalog:
    def __init__(self, storage, uploads=None):
        self.storage = storage
        self.uploads = uploads

    def list_all(self):
        return self.storage.list_exams()

    def list_available(self):
        return [public_exam(exam) for exam in self.storage.list_exams()]

    def get(self, exam_id):
        exam = self.storage.get_exam(exam_id)
        if not exam:
            raise NotFound('Test not found')
        return exam

    def create(self, record):
        exam = self.storage.create_exam(record)
        logger.info(f"Created test {exam['id']}: {exam['title']}")
        return exam

    def update(self, exam_id, record):
        self.get(exam_id)
        return self.storage.update_exam(exam_id, record)

    def delete(self, exam_id):
        exam = self.get(exam_id)
        if self.storage.count_sessions(exam_id=exam_id):
            raise Conflict('Test has been attempted and cannot be deleted')
        self.storage.delete_exam(exam_id)
        if exam['pdf_url'] and self.uploads:
            self.uploads.delete(exam['pdf_url'])
        logger.info(f"Deleted test {exam_id}")

    def attach_question_paper(self, exam_id, file):
        exam = self.get(exam_id)
        pdf_url = self.uploads.save_pdf(file, 'question')
        updated = self.storage.set_exam_pdf(exam_id, pdf_url)
        if exam['pdf_url'] and exam['pdf_url'] != pdf_url:
            self.uploads.delete(exam['pdf_url'])
        return updated

    def seed_samples(self):
        """Insert the sample exams when the catalog is empty"""
        if self.storage.count_exams() > 0:
            return 0
        logger.info("Seeding database with sample tests...")
        for sample in SAMPLE_TESTS:
            self.storage.create_exam(sample)
        logger.info("Sample tests created successfully")
        return len(SAMPLE_TESTS)
