import unittest
import sys
import os
from datetime import date, time, timedelta
from unittest import mock

os.environ['FLASK_ENV'] = 'testing'

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schoolportal import app, db, assemblers
from schoolportal.errors import FetchFailed, InvalidEntry, NoScope
from schoolportal.identity import ClassKey
from schoolportal.models import (
    AttendanceRecord, ClassFee, Exam, ExamClass, ExamMark, ExamScheduleEntry, FeePayment, Homework,
    ParentStudentLink, Student, Subject, SubjectAssignment, SyllabusEntry, Teacher, TimetableSlot,
)
from schoolportal.session import SessionContext
from schoolportal.store import DataStore

TEN_A = ClassKey(10, 'A')
MONDAY = date(2024, 3, 4)

class AssemblerTestCase(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.store = DataStore(db.session)

        self.math = Subject(name='Mathematics', code='MATH')
        self.sci = Subject(name='Science', code='SCI')
        db.session.add_all([self.math, self.sci])
        db.session.flush()

        self.alice = Teacher(full_name='Alice', email='alice@school.edu')
        self.bob = Teacher(full_name='Bob', email='bob@school.edu')
        db.session.add_all([self.alice, self.bob])
        db.session.flush()
        db.session.add_all([
            SubjectAssignment(teacher_id=self.alice.id, subject_id=self.math.id, class_name='10th', section='A'),
            # Bob teaches science to every class
            SubjectAssignment(teacher_id=self.bob.id, subject_id=self.sci.id),
        ])

        # Same class spelled two ways, plus a different section, a leaver and an unusable label
        self.asha = Student(student_code='S1', full_name='Asha', class_name='10th', section='A', roll_number=2)
        self.ben = Student(student_code='S2', full_name='Ben', class_name='10-A', roll_number=1)
        self.cara = Student(student_code='S3', full_name='Cara', class_name='10-B', roll_number=1)
        self.dev = Student(student_code='S4', full_name='Dev', class_name='10th', section='A', roll_number=3, status='left')
        self.eli = Student(student_code='S5', full_name='Eli', class_name='Grade 10', roll_number=4)
        db.session.add_all([self.asha, self.ben, self.cara, self.dev, self.eli])
        db.session.flush()
        db.session.add(ParentStudentLink(parent_username='parent1', student_id=self.asha.id))

        self.exam = Exam(exam_name='Mid Term', exam_type='Term', start_date=MONDAY, end_date=MONDAY + timedelta(days=2))
        db.session.add(self.exam)
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

class ScopeTests(AssemblerTestCase):

    def test_parent_gets_linked_child(self):
        ctx = SessionContext('parent1', 'parent', self.asha.id)
        self.assertEqual(assemblers.resolve_student(self.store, ctx).id, self.asha.id)

    def test_parent_without_link_has_no_scope(self):
        ctx = SessionContext('parent1', 'parent', self.ben.id)
        with self.assertRaises(NoScope):
            assemblers.resolve_student(self.store, ctx)
        with self.assertRaises(NoScope):
            assemblers.resolve_student(self.store, SessionContext('parent1', 'parent'))

    def test_admin_must_name_a_student(self):
        ctx = SessionContext('admin', 'admin')
        with self.assertRaises(NoScope):
            assemblers.resolve_student(self.store, ctx)
        with self.assertRaises(NoScope):
            assemblers.resolve_student(self.store, ctx, 9999)
        self.assertEqual(assemblers.resolve_student(self.store, ctx, self.cara.id).full_name, 'Cara')

    def test_teacher_scope(self):
        ctx = SessionContext('alice@school.edu', 'teacher')
        self.assertEqual(assemblers.resolve_teacher(self.store, ctx).id, self.alice.id)
        with self.assertRaises(NoScope):
            assemblers.resolve_teacher(self.store, SessionContext('nobody@school.edu', 'teacher'))
        with self.assertRaises(NoScope):
            assemblers.resolve_student(self.store, ctx)

    def test_roster_reconciles_spellings(self):
        roster = assemblers.class_roster(self.store, TEN_A)
        self.assertEqual([s.full_name for s in roster], ['Ben', 'Asha'])

    def test_assignment_checks(self):
        assemblers.require_assignment(self.store, self.alice, self.math.id, TEN_A)
        with self.assertRaises(NoScope):
            assemblers.require_assignment(self.store, self.alice, self.math.id, ClassKey(10, 'B'))
        with self.assertRaises(NoScope):
            assemblers.require_assignment(self.store, self.alice, self.sci.id, TEN_A)
        assemblers.require_class(self.store, self.bob, ClassKey(7, 'C'))

    def test_allocations(self):
        allocations = assemblers.assemble_allocations(self.store, self.alice)
        self.assertEqual(allocations, [{'id': allocations[0]['id'], 'subject_id': self.math.id,
                                        'subject': 'Mathematics', 'class': '10-A'}])

class MarksTests(AssemblerTestCase):

    def _mark(self, student, marks, status='Pass'):
        db.session.add(ExamMark(exam_id=self.exam.id, subject_id=self.math.id, student_id=student.id,
                                marks_obtained=marks, total_marks=100, status=status))
        db.session.commit()

    def test_pending_rows_come_first(self):
        self._mark(self.ben, 80)
        view = assemblers.assemble_marks_roster(self.store, self.exam.id, self.math.id, TEN_A)
        self.assertEqual([(r.student_id, r.status) for r in view.rows],
                         [(self.asha.id, 'Pending'), (self.ben.id, 'Pass')])
        self.assertEqual(view.rows[1].marks_obtained, 80)
        self.assertTrue(view.rows[1].locked)
        self.assertEqual(view.pending_count, 1)

    def test_roster_size_independent_of_marks(self):
        for marked in ([], [self.asha], [self.asha, self.ben]):
            for s in marked:
                if not ExamMark.query.filter_by(student_id=s.id).first():
                    self._mark(s, 50)
            view = assemblers.assemble_marks_roster(self.store, self.exam.id, self.math.id, TEN_A)
            self.assertEqual(len(view.rows), 2)
        self.assertEqual([r.roll_number for r in view.rows], [1, 2])

    def test_threshold_and_absent(self):
        self.assertEqual(assemblers.marks_status(35), 'Pass')
        self.assertEqual(assemblers.marks_status(34.5), 'Fail')
        self.assertEqual(assemblers.marks_status(90, absent=True), 'Absent')
        self.assertEqual(assemblers.classify_mark(None), 'Pending')

    def test_submit_marks(self):
        entries = {
            str(self.asha.id): {'marks': '34'},
            str(self.ben.id): {'absent': True},
            str(self.cara.id): {'marks': 50},
        }
        result = assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A, entries)
        self.assertEqual(result.saved, 2)
        self.assertEqual(result.skipped, {self.cara.id: 'not_on_roster'})
        asha = ExamMark.query.filter_by(student_id=self.asha.id).first()
        self.assertEqual((asha.marks_obtained, asha.status), (34.0, 'Fail'))
        ben = ExamMark.query.filter_by(student_id=self.ben.id).first()
        self.assertEqual((ben.marks_obtained, ben.status, ben.remarks), (0.0, 'Absent', 'Absent'))

        again = assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A,
                                        {self.asha.id: {'marks': 99}})
        self.assertEqual(again.saved, 0)
        self.assertEqual(again.skipped, {self.asha.id: 'locked'})
        self.assertEqual(ExamMark.query.filter_by(student_id=self.asha.id).first().marks_obtained, 34.0)

    def test_submit_marks_validation(self):
        result = assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A, {self.asha.id: {'marks': ' '}})
        self.assertEqual(result.skipped, {self.asha.id: 'blank'})
        with self.assertRaises(InvalidEntry):
            assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A, {self.asha.id: {'marks': 'abc'}})
        with self.assertRaises(InvalidEntry):
            assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A, {self.asha.id: {'marks': 101}})
        self.assertEqual(ExamMark.query.count(), 0)

    def test_report_card(self):
        final = Exam(exam_name='Final')
        db.session.add(final)
        db.session.flush()
        self._mark(self.asha, 80)
        db.session.add(ExamMark(exam_id=final.id, subject_id=self.sci.id, student_id=self.asha.id,
                                marks_obtained=30, total_marks=100, status='Fail'))
        db.session.commit()
        card = assemblers.assemble_report_card(self.store, self.asha).as_dict()
        self.assertEqual([e['exam_name'] for e in card['exams']], ['Final', 'Mid Term'])
        self.assertEqual([s['subject'] for s in card['subjects']], ['Mathematics', 'Science'])
        math = card['subjects'][0]
        self.assertIsNone(math['marks'][0])
        self.assertEqual(math['marks'][1]['grade'], 'A')
        self.assertEqual(math['marks'][1]['exam_id'], self.exam.id)
        self.assertEqual([t['total'] for t in card['exam_totals']], [30.0, 80.0])
        self.assertEqual(card['grand_total'], 110.0)
        self.assertEqual(card['student']['class'], '10-A')

    def test_report_card_keeps_exams_sharing_a_name(self):
        first = Exam(exam_name='Unit Test', start_date=MONDAY)
        second = Exam(exam_name='Unit Test', start_date=MONDAY + timedelta(days=30))
        db.session.add_all([first, second])
        db.session.flush()
        for exam, marks in ((first, 40), (second, 90)):
            db.session.add(ExamMark(exam_id=exam.id, subject_id=self.math.id, student_id=self.asha.id,
                                    marks_obtained=marks, total_marks=100, status='Pass'))
        db.session.commit()
        card = assemblers.assemble_report_card(self.store, self.asha).as_dict()
        self.assertEqual([e['id'] for e in card['exams']], [first.id, second.id])
        self.assertEqual([c['marks_obtained'] for c in card['subjects'][0]['marks']], [40, 90])
        self.assertEqual(card['grand_total'], 130.0)

    def test_submit_marks_for_missing_exam_or_subject(self):
        entries = {self.asha.id: {'marks': 50}}
        with self.assertRaises(NoScope):
            assemblers.submit_marks(self.store, 9999, self.math.id, TEN_A, entries)
        with self.assertRaises(NoScope):
            assemblers.submit_marks(self.store, self.exam.id, 9999, TEN_A, entries)
        self.assertEqual(ExamMark.query.count(), 0)

    def test_submit_marks_rejects_malformed_entries(self):
        with self.assertRaises(InvalidEntry):
            assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A, [50, 60])
        with self.assertRaises(InvalidEntry):
            assemblers.submit_marks(self.store, self.exam.id, self.math.id, TEN_A, {self.asha.id: 50})
        self.assertEqual(ExamMark.query.count(), 0)

    def test_grade_letter(self):
        self.assertEqual([assemblers.grade_letter(m, 100) for m in (95, 85, 70, 50, 10)], ['A+', 'A', 'B', 'C', 'D'])
        self.assertEqual(assemblers.grade_letter(0, 0), '-')

class TimetableTests(AssemblerTestCase):

    def setUp(self):
        super().setUp()
        db.session.add_all([
            TimetableSlot(day='Monday', period=1, subject_id=self.math.id, grade=10, section='A'),
            TimetableSlot(day='Tuesday', period=2, subject_id=self.math.id, grade=10, section='B'),
            TimetableSlot(day='Wednesday', period=3, subject_id=self.sci.id, grade=10, section='A'),
        ])
        db.session.commit()

    def test_class_timetable_is_total(self):
        view = assemblers.assemble_class_timetable(self.store, TEN_A)
        self.assertEqual(len(view.grid), 6)
        self.assertTrue(all(len(periods) == 6 for periods in view.grid.values()))
        self.assertEqual(view.cell('Monday', 1).subject, 'Mathematics')
        self.assertEqual(view.cell('Wednesday', 3).subject, 'Science')
        self.assertTrue(view.cell('Tuesday', 2).no_class)
        grid = view.as_dict()['grid']
        self.assertEqual([d['day'] for d in grid], list(assemblers.DAYS))

    def test_teacher_timetable_filters_by_assignment(self):
        alice = assemblers.assemble_teacher_timetable(self.store, self.alice)
        filled = [(d, p) for d in alice.days for p in alice.periods if not alice.cell(d, p).no_class]
        self.assertEqual(filled, [('Monday', 1)])
        self.assertEqual(alice.cell('Monday', 1).class_label, '10-A')

        bob = assemblers.assemble_teacher_timetable(self.store, self.bob)
        filled = [(d, p) for d in bob.days for p in bob.periods if not bob.cell(d, p).no_class]
        self.assertEqual(filled, [('Wednesday', 3)])

    def test_teacher_without_assignments_gets_empty_grid(self):
        carol = Teacher(full_name='Carol', email='carol@school.edu')
        db.session.add(carol)
        db.session.commit()
        view = assemblers.assemble_teacher_timetable(self.store, carol)
        self.assertTrue(all(c.no_class for row in view.grid.values() for c in row.values()))

class ExamScheduleTests(AssemblerTestCase):

    def test_schedule_with_syllabus(self):
        db.session.add_all([
            ExamScheduleEntry(exam_id=self.exam.id, subject_id=self.math.id, class_name='10th', exam_date=MONDAY,
                              start_time=time(9, 30), end_time=time(12, 30), room='Hall 1'),
            ExamScheduleEntry(exam_id=self.exam.id, subject_id=self.sci.id, class_name='10th',
                              exam_date=MONDAY + timedelta(days=1)),
            ExamScheduleEntry(exam_id=self.exam.id, subject_id=self.sci.id, class_name='10-B', exam_date=MONDAY),
            SyllabusEntry(exam_name='mid term', class_name='10th', section='A', subject_id=self.math.id,
                          chapters=['Algebra', 'Geometry']),
        ])
        db.session.commit()
        view = assemblers.assemble_exam_schedule(self.store, TEN_A).as_dict()
        self.assertEqual(len(view['exams']), 1)
        entries = view['exams'][0]['entries']
        self.assertEqual([e['subject'] for e in entries], ['Mathematics', 'Science'])
        self.assertEqual(entries[0]['syllabus'], {'status': 'published', 'chapters': ['Algebra', 'Geometry']})
        self.assertEqual(entries[0]['start_time'], '09:30:00')
        self.assertEqual(entries[1]['syllabus'], {'status': 'pending'})

    def test_several_exams_grouped_in_date_order(self):
        final = Exam(exam_name='Final', start_date=MONDAY + timedelta(days=60))
        unit = Exam(exam_name='Unit Test', start_date=MONDAY - timedelta(days=20))
        db.session.add_all([final, unit])
        db.session.flush()
        db.session.add_all([
            ExamScheduleEntry(exam_id=final.id, subject_id=self.math.id, class_name='10th',
                              exam_date=MONDAY + timedelta(days=60)),
            ExamScheduleEntry(exam_id=self.exam.id, subject_id=self.sci.id, class_name='10-A',
                              exam_date=MONDAY + timedelta(days=1)),
            ExamScheduleEntry(exam_id=unit.id, subject_id=self.math.id, class_name='10th',
                              exam_date=MONDAY - timedelta(days=20)),
            ExamScheduleEntry(exam_id=self.exam.id, subject_id=self.math.id, class_name='10th', exam_date=MONDAY),
        ])
        db.session.commit()
        view = assemblers.assemble_exam_schedule(self.store, TEN_A).as_dict()
        self.assertEqual([g['exam_name'] for g in view['exams']], ['Unit Test', 'Mid Term', 'Final'])
        mid = view['exams'][1]['entries']
        self.assertEqual([e['subject'] for e in mid], ['Mathematics', 'Science'])
        self.assertEqual([e['exam_date'] for e in mid], [MONDAY.isoformat(), (MONDAY + timedelta(days=1)).isoformat()])

    def test_dangling_references_get_placeholders(self):
        db.session.add(ExamScheduleEntry(exam_id=4242, subject_id=4343, class_name='10-A', exam_date=MONDAY))
        db.session.commit()
        with self.assertLogs('schoolportal.errors', level='WARNING'):
            view = assemblers.assemble_exam_schedule(self.store, TEN_A).as_dict()
        entry = view['exams'][0]['entries'][0]
        self.assertEqual(view['exams'][0]['exam_name'], 'Official Examination')
        self.assertEqual(entry['subject'], 'Unknown subject')

    def test_exam_calendar(self):
        today = MONDAY - timedelta(days=3)
        self.exam.classes = [ExamClass(class_label='10th')]
        other = Exam(exam_name='Class 9 Test', start_date=MONDAY)
        other.classes = [ExamClass(class_label='9th')]
        db.session.add(other)
        db.session.commit()
        view = assemblers.assemble_exam_calendar(self.store, self.ben, today).as_dict()
        self.assertEqual(view['count'], 1)
        self.assertEqual(view['exams'][0]['status'], 'In 3 Days')

    def test_day_status(self):
        self.assertEqual(assemblers.day_status(None, None, MONDAY), 'Date TBA')
        self.assertEqual(assemblers.day_status(MONDAY, MONDAY, MONDAY), 'Starting Today')
        self.assertEqual(assemblers.day_status(MONDAY, MONDAY + timedelta(days=2), MONDAY + timedelta(days=1)), 'Ongoing')
        self.assertEqual(assemblers.day_status(MONDAY, MONDAY, MONDAY + timedelta(days=1)), 'Completed')

class FeeTests(AssemblerTestCase):

    def test_fees_match_either_spelling(self):
        db.session.add_all([
            ClassFee(class_label='10th', fee_type='Tuition', amount=1000.0),
            ClassFee(class_label='10', fee_type='Lab', amount=200.0),
            ClassFee(class_label='11th', fee_type='Tuition', amount=5000.0),
        ])
        db.session.commit()
        fees = assemblers.assemble_fees(self.store, '10th')
        self.assertEqual(fees.total, 1200.0)
        self.assertEqual(sorted(i['fee_type'] for i in fees.items), ['Lab', 'Tuition'])
        self.assertEqual(assemblers.assemble_fees(self.store, '10').total, 1200.0)

    def test_fee_stored_under_both_spellings_is_summed_and_flagged(self):
        db.session.add_all([
            ClassFee(class_label='10th', fee_type='Tuition', amount=1000.0),
            ClassFee(class_label='10', fee_type='Tuition', amount=1000.0),
        ])
        db.session.commit()
        with self.assertLogs('schoolportal.assemblers', level='WARNING'):
            fees = assemblers.assemble_fees(self.store, '10th')
        self.assertEqual(fees.total, 2000.0)

    def test_verified_payments_reduce_balance(self):
        db.session.add_all([
            ClassFee(class_label='10th', fee_type='Tuition Fee', amount=1000.0),
            ClassFee(class_label='10', fee_type='Lab Fee', amount=200.0),
            FeePayment(student_id=self.asha.id, fee_type='Tuition Fee', amount_paid=1000.0,
                       utr_number='UTR1', paid_on=MONDAY),
            FeePayment(student_id=self.asha.id, fee_type='Lab Fee', amount_paid=200.0,
                       utr_number='UTR2', status='pending'),
            FeePayment(student_id=self.ben.id, fee_type='Lab Fee', amount_paid=200.0, utr_number='UTR3'),
        ])
        db.session.commit()
        fees = assemblers.assemble_fees(self.store, '10th', self.asha.id).as_dict()
        self.assertEqual(fees['paid'], 1000.0)
        self.assertEqual(fees['balance'], 200.0)
        self.assertEqual({i['fee_type']: i['status'] for i in fees['items']}, {'Lab Fee': 'due', 'Tuition Fee': 'paid'})
        self.assertNotIn('paid', assemblers.assemble_fees(self.store, '10th').as_dict())

class HomeworkAttendanceTests(AssemblerTestCase):

    def test_homework_in_window_for_class(self):
        today = MONDAY
        db.session.add_all([
            Homework(class_name='10th', section='A', subject_id=self.math.id, teacher_id=self.alice.id,
                     assigned_date=today - timedelta(days=1), due_date=today + timedelta(days=1), title='Worksheet'),
            Homework(class_name='10th', section='B', subject_id=self.math.id, teacher_id=self.alice.id,
                     assigned_date=today, due_date=today, title='Other section'),
            Homework(class_name='10-A', section='A', subject_id=None, teacher_id=None,
                     assigned_date=today - timedelta(days=5), due_date=today - timedelta(days=1), title='Overdue'),
            Homework(class_name='10-A', section='A', subject_id=None, teacher_id=None,
                     assigned_date=today, due_date=today, title='Reading'),
        ])
        db.session.commit()
        view = assemblers.assemble_homework(self.store, TEN_A, today).as_dict()
        self.assertEqual([h['title'] for h in view['items']], ['Reading', 'Worksheet'])
        self.assertEqual(view['items'][0]['subject'], 'General')
        self.assertEqual(view['items'][0]['teacher'], 'Staff')
        self.assertEqual(view['items'][1]['teacher'], 'Alice')

    def test_attendance_summary(self):
        for day, status in enumerate(['present', 'late', 'absent', 'holiday']):
            db.session.add(AttendanceRecord(student_id=self.asha.id, subject_id=self.math.id, teacher_id=self.alice.id,
                                            date=MONDAY + timedelta(days=day), period=1, status=status))
        db.session.commit()
        view = assemblers.assemble_attendance_summary(self.store, self.asha.id).as_dict()
        self.assertEqual(view['subjects'], [{'subject': 'Mathematics', 'total': 3, 'attended': 2, 'percentage': 67}])
        self.assertEqual(len(view['log']), 4)
        self.assertEqual(view['log'][0]['status'], 'holiday')

    def test_attendance_sheet_and_save(self):
        slot = TimetableSlot(day='Monday', period=1, subject_id=self.math.id, grade=10, section='A')
        db.session.add(slot)
        db.session.commit()

        sheet = assemblers.assemble_attendance_sheet(self.store, self.alice, slot.id, MONDAY)
        self.assertFalse(sheet.submitted)
        self.assertEqual([(r['name'], r['status']) for r in sheet.rows], [('Asha', 'present'), ('Ben', 'present')])

        saved = assemblers.save_attendance(self.store, self.alice, slot.id, MONDAY, {str(self.ben.id): 'absent'})
        self.assertTrue(saved.submitted)
        self.assertEqual(saved.counts()['absent'], 1)
        self.assertEqual(AttendanceRecord.query.count(), 2)

        assemblers.save_attendance(self.store, self.alice, slot.id, MONDAY, {self.ben.id: 'late'})
        self.assertEqual(AttendanceRecord.query.count(), 2)
        self.assertEqual(AttendanceRecord.query.filter_by(student_id=self.ben.id).first().status, 'late')

        with self.assertRaises(InvalidEntry):
            assemblers.save_attendance(self.store, self.alice, slot.id, MONDAY, {}, allow_edit=False)
        with self.assertRaises(InvalidEntry):
            assemblers.save_attendance(self.store, self.alice, slot.id, MONDAY, {self.cara.id: 'present'})
        with self.assertRaises(InvalidEntry):
            assemblers.save_attendance(self.store, self.alice, slot.id, MONDAY, {self.ben.id: 'sleeping'})

    def test_other_section_in_same_period_does_not_submit_sheet(self):
        db.session.add(SubjectAssignment(teacher_id=self.bob.id, subject_id=self.math.id, class_name='10th', section='B'))
        slot_a = TimetableSlot(day='Monday', period=1, subject_id=self.math.id, grade=10, section='A')
        slot_b = TimetableSlot(day='Monday', period=1, subject_id=self.math.id, grade=10, section='B')
        db.session.add_all([slot_a, slot_b])
        db.session.commit()

        saved = assemblers.save_attendance(self.store, self.bob, slot_b.id, MONDAY, {self.cara.id: 'absent'})
        self.assertEqual(saved.class_label, '10-B')
        self.assertEqual(len(saved.rows), 1)

        sheet = assemblers.assemble_attendance_sheet(self.store, self.alice, slot_a.id, MONDAY)
        self.assertFalse(sheet.submitted)
        self.assertEqual([r['status'] for r in sheet.rows], ['present', 'present'])
        first = assemblers.save_attendance(self.store, self.alice, slot_a.id, MONDAY, {}, allow_edit=False)
        self.assertTrue(first.submitted)
        self.assertEqual(AttendanceRecord.query.count(), 3)

    def test_save_attendance_rejects_malformed_statuses(self):
        slot = TimetableSlot(day='Monday', period=2, subject_id=self.math.id, grade=10, section='A')
        db.session.add(slot)
        db.session.commit()
        with self.assertRaises(InvalidEntry):
            assemblers.save_attendance(self.store, self.alice, slot.id, MONDAY, ['absent'])
        self.assertEqual(AttendanceRecord.query.count(), 0)

    def test_attendance_sheet_scope(self):
        slot = TimetableSlot(day='Monday', period=1, subject_id=self.math.id, grade=10, section='A')
        db.session.add(slot)
        db.session.commit()
        with self.assertRaises(NoScope):
            assemblers.assemble_attendance_sheet(self.store, self.bob, slot.id, MONDAY)
        with self.assertRaises(NoScope):
            assemblers.assemble_attendance_sheet(self.store, self.alice, 9999, MONDAY)
        with self.assertRaises(InvalidEntry):
            assemblers.assemble_attendance_sheet(self.store, self.alice, slot.id, MONDAY + timedelta(days=1))

class DashboardTests(AssemblerTestCase):

    def test_dashboard_sections(self):
        db.session.add(ClassFee(class_label='10th', fee_type='Tuition', amount=1000.0))
        db.session.commit()
        view = assemblers.assemble_dashboard(self.store, self.asha, MONDAY).as_dict()
        self.assertEqual(set(view['sections']), {'timetable', 'exams', 'homework', 'fees'})
        self.assertEqual(view['sections']['fees']['total'], 1000.0)
        self.assertEqual(view['notifications'], [])

    def test_failed_section_becomes_notification(self):
        with mock.patch('schoolportal.assemblers.assemble_homework', side_effect=FetchFailed('select', 'homework')):
            view = assemblers.assemble_dashboard(self.store, self.asha, MONDAY).as_dict()
        self.assertIsNone(view['sections']['homework'])
        self.assertIsNotNone(view['sections']['timetable'])
        self.assertEqual([n['section'] for n in view['notifications']], ['homework'])

class TeacherDeskTests(AssemblerTestCase):

    def setUp(self):
        super().setUp()
        self.slot = TimetableSlot(day='Monday', period=3, subject_id=self.math.id, grade=10, section='A')
        db.session.add(self.slot)
        self.exam.classes = [ExamClass(class_label='10-A')]
        db.session.commit()

    def test_post_and_edit_homework(self):
        payload = {'title': ' Worksheet 4 ', 'description': 'Odd questions', 'due_date': '2024-03-06'}
        homework_id = assemblers.save_homework(self.store, self.alice, self.slot.id, payload, MONDAY)
        hw = db.session.get(Homework, homework_id)
        self.assertEqual((hw.title, hw.class_name, hw.section, hw.period), ('Worksheet 4', '10th', 'A', 3))

        # Parents of the class see it
        view = assemblers.assemble_homework(self.store, TEN_A, MONDAY).as_dict()
        self.assertEqual([h['title'] for h in view['items']], ['Worksheet 4'])

        assemblers.save_homework(self.store, self.alice, self.slot.id, dict(payload, title='Worksheet 5'), MONDAY,
                                 homework_id=homework_id)
        history = assemblers.assemble_teacher_homework(self.store, self.alice).as_dict()
        self.assertEqual([h['title'] for h in history['items']], ['Worksheet 5'])
        self.assertEqual(history['items'][0]['class'], '10th-A')

    def test_homework_scope_and_validation(self):
        payload = {'title': 'Worksheet', 'due_date': '2024-03-06'}
        with self.assertRaises(NoScope):
            assemblers.save_homework(self.store, self.bob, self.slot.id, payload, MONDAY)
        with self.assertRaises(InvalidEntry):
            assemblers.save_homework(self.store, self.alice, self.slot.id, dict(payload, title=' '), MONDAY)
        with self.assertRaises(InvalidEntry):
            assemblers.save_homework(self.store, self.alice, self.slot.id, dict(payload, due_date='06/03/2024'), MONDAY)
        with self.assertRaises(InvalidEntry):
            assemblers.save_homework(self.store, self.alice, self.slot.id, dict(payload, due_date='2024-03-01'), MONDAY)
        homework_id = assemblers.save_homework(self.store, self.alice, self.slot.id, payload, MONDAY)

        # Bob also teaches this slot's class, but did not post this homework
        bob_slot = TimetableSlot(day='Tuesday', period=3, subject_id=self.sci.id, grade=10, section='A')
        db.session.add(bob_slot)
        db.session.commit()
        with self.assertRaises(NoScope):
            assemblers.save_homework(self.store, self.bob, bob_slot.id, payload, MONDAY, homework_id=homework_id)
        self.assertEqual(db.session.get(Homework, homework_id).teacher_id, self.alice.id)

    def test_add_and_delete_syllabus(self):
        entry_id = assemblers.add_syllabus(self.store, self.alice, self.exam.id, self.math.id, TEN_A,
                                           ['Algebra', ' ', 'Geometry '])
        history = assemblers.assemble_syllabus_history(self.store, self.alice)
        self.assertEqual(history[0]['chapters'], ['Algebra', 'Geometry'])
        self.assertEqual(history[0]['exam_date'], MONDAY.isoformat())

        db.session.add(ExamScheduleEntry(exam_id=self.exam.id, subject_id=self.math.id, class_name='10th', exam_date=MONDAY))
        db.session.commit()
        schedule = assemblers.assemble_exam_schedule(self.store, TEN_A).as_dict()
        self.assertEqual(schedule['exams'][0]['entries'][0]['syllabus']['chapters'], ['Algebra', 'Geometry'])

        with self.assertRaises(NoScope):
            assemblers.delete_syllabus(self.store, self.bob, entry_id)
        assemblers.delete_syllabus(self.store, self.alice, entry_id)
        self.assertEqual(SyllabusEntry.query.count(), 0)

    def test_syllabus_scope_and_validation(self):
        with self.assertRaises(NoScope):
            assemblers.add_syllabus(self.store, self.alice, self.exam.id, self.math.id, ClassKey(10, 'B'), ['Algebra'])
        other = Exam(exam_name='Class 9 Test')
        other.classes = [ExamClass(class_label='9-A')]
        db.session.add(other)
        db.session.commit()
        with self.assertRaises(NoScope):
            assemblers.add_syllabus(self.store, self.alice, other.id, self.math.id, TEN_A, ['Algebra'])
        with self.assertRaises(InvalidEntry):
            assemblers.add_syllabus(self.store, self.alice, self.exam.id, self.math.id, TEN_A, [' '])
        with self.assertRaises(InvalidEntry):
            assemblers.add_syllabus(self.store, self.alice, self.exam.id, self.math.id, TEN_A, 'Algebra')
        self.assertEqual(SyllabusEntry.query.count(), 0)

if __name__ == "__main__":
    unittest.main()
