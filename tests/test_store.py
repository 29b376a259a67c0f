import unittest
import sys
import os
from datetime import date
from unittest import mock

os.environ['FLASK_ENV'] = 'testing'

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy.exc import OperationalError

from schoolportal import app, db
from schoolportal.errors import FetchFailed
from schoolportal.models import AttendanceRecord, ClassFee, Exam, ExamClass, Student, Subject
from schoolportal.store import DataStore, any_of, contains, eq, gte, ilike, in_, lte, overlaps

class DataStoreTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.store = DataStore(db.session)
        db.session.add_all([
            Student(student_code='S1', full_name='Asha', class_name='10th', section='A', roll_number=2),
            Student(student_code='S2', full_name='Ben', class_name='10-A', roll_number=1),
            Student(student_code='S3', full_name='Cara', class_name='9th', section='A', roll_number=3, status='left'),
            ClassFee(class_label='10th', fee_type='Tuition', amount=1000.0),
            ClassFee(class_label='10', fee_type='Lab', amount=200.0),
            ClassFee(class_label='11th', fee_type='Tuition', amount=1500.0),
        ])
        exam = Exam(exam_name='Mid Term', start_date=date(2024, 3, 1))
        exam.classes = [ExamClass(class_label='10th'), ExamClass(class_label='10-A')]
        db.session.add(exam)
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def test_select_filters_and_order(self):
        rows = self.store.select(Student, [eq('status', 'active'), ilike('class_name', '%10%')], order_by=('roll_number',))
        self.assertEqual([s.full_name for s in rows], ['Ben', 'Asha'])
        rows = self.store.select(Student, [gte('roll_number', 2)], order_by=('-roll_number',))
        self.assertEqual([s.roll_number for s in rows], [3, 2])
        rows = self.store.select(Student, [lte('roll_number', 1)])
        self.assertEqual([s.full_name for s in rows], ['Ben'])

    def test_select_columns_and_limit(self):
        rows = self.store.select(Student, [in_('student_code', {'S1', 'S3'})], order_by=('student_code',),
                                 columns=('student_code',))
        self.assertEqual([r[0] for r in rows], ['S1', 'S3'])
        self.assertEqual(len(self.store.select(Student, limit=1)), 1)
        self.assertIsNone(self.store.select_one(Student, [eq('student_code', 'nope')]))

    def test_or_matched_lookup(self):
        rows = self.store.select(ClassFee, [any_of(eq('class_label', '10th'), eq('class_label', '10'))])
        self.assertEqual(sum(r.amount for r in rows), 1200.0)

    def test_relationship_predicates(self):
        self.assertEqual(len(self.store.select(Exam, [overlaps('classes', 'class_label', ['10A', '10-A'])])), 1)
        self.assertEqual(len(self.store.select(Exam, [overlaps('classes', 'class_label', ['9th'])])), 0)
        self.assertEqual(len(self.store.select(Exam, [contains('classes', 'class_label', ['10th', '10-A'])])), 1)
        self.assertEqual(len(self.store.select(Exam, [contains('classes', 'class_label', ['10th', '9th'])])), 0)

    def test_insert_and_update(self):
        self.store.insert(Subject, [{'name': 'Maths', 'code': 'M'}, {'name': 'Art', 'code': 'A'}])
        self.assertEqual(Subject.query.count(), 2)
        count = self.store.update(Subject, {'code': 'MATH'}, [eq('name', 'Maths')])
        self.assertEqual(count, 1)
        self.assertEqual(Subject.query.filter_by(name='Maths').first().code, 'MATH')

    def test_update_requires_filters(self):
        with self.assertRaises(ValueError):
            self.store.update(Subject, {'code': 'X'}, [])
        with self.assertRaises(ValueError):
            self.store.delete(Subject, [])

    def test_delete(self):
        count = self.store.delete(ClassFee, [eq('class_label', '10')])
        self.assertEqual(count, 1)
        self.assertEqual(ClassFee.query.count(), 2)
        self.assertEqual(self.store.delete(ClassFee, [eq('class_label', '12th')]), 0)

    def test_upsert_overwrites_on_conflict_keys(self):
        student = Student.query.filter_by(student_code='S1').first()
        keys = ('student_id', 'subject_id', 'date', 'period')
        row = {'student_id': student.id, 'subject_id': None, 'date': date(2024, 3, 4), 'period': 1, 'status': 'present'}
        self.store.upsert(AttendanceRecord, [row], keys)
        self.store.upsert(AttendanceRecord, [dict(row, status='late')], keys)
        records = AttendanceRecord.query.all()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].status, 'late')

    def test_database_error_becomes_fetch_failed(self):
        session = mock.Mock()
        session.query.side_effect = OperationalError('SELECT', {}, Exception('disk I/O error'))
        with self.assertRaises(FetchFailed) as cm:
            DataStore(session).select(Student)
        session.rollback.assert_called_once()
        self.assertEqual(cm.exception.table, 'student')
        self.assertEqual(cm.exception.operation, 'select')
        self.assertEqual(cm.exception.reason, 'fetch_failed')

if __name__ == "__main__":
    unittest.main()
