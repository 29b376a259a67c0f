from schoolportal import app, db
from schoolportal.identity import normalize_class
from schoolportal.models import (
    User, Student, Teacher, Subject, SubjectAssignment, ParentStudentLink, TimetableSlot,
    Exam, ExamClass, ExamScheduleEntry, SyllabusEntry, ClassFee, FeePayment, Homework, AttendanceRecord,
)
from werkzeug.security import generate_password_hash
from datetime import date, time, timedelta
import random

DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']

def _user(username, password, role):
    if not User.query.filter_by(username=username).first():
        db.session.add(User(username=username, password_hash=generate_password_hash(password), role=role))

def seed():
    with app.app_context():
        print("Seeding database...")
        db.create_all()
        _user('admin', 'admin', 'admin')

        # Subjects
        names = [('Mathematics', 'MATH'), ('Science', 'SCI'), ('English', 'ENG'), ('Social Studies', 'SST')]
        for name, code in names:
            if not Subject.query.filter_by(code=code).first():
                db.session.add(Subject(name=name, code=code))
        db.session.commit()
        subjects = Subject.query.order_by(Subject.id.asc()).all()
        print(f"Created {len(subjects)} subjects.")

        # Teachers, one subject each, both sections of grade 10
        teachers = []
        for i, subject in enumerate(subjects, start=1):
            email = f"teacher{i}@school.com"
            t = Teacher.query.filter_by(email=email).first()
            if not t:
                t = Teacher(full_name=f"Teacher {i}", email=email, phone=f"555-010{i}")
                db.session.add(t)
                db.session.flush()
                for section in ('A', 'B'):
                    db.session.add(SubjectAssignment(teacher_id=t.id, subject_id=subject.id,
                                                     class_name='10th', section=section))
            _user(email, 'teacher', 'teacher')
            teachers.append(t)
        db.session.commit()
        print(f"Created {len(teachers)} teachers.")

        # Students: the office used both "10th"/"A" and "10-B" styles
        students = []
        for i in range(1, 21):
            code = f"STU{i:03d}"
            s = Student.query.filter_by(student_code=code).first()
            if not s:
                if i <= 10:
                    s = Student(student_code=code, full_name=f"Student {i}", class_name='10th', section='A', roll_number=i)
                else:
                    s = Student(student_code=code, full_name=f"Student {i}", class_name='10-B', section=None, roll_number=i - 10)
                db.session.add(s)
                db.session.flush()
                parent = f"parent{i}"
                _user(parent, 'parent', 'parent')
                db.session.add(ParentStudentLink(parent_username=parent, student_id=s.id))
            students.append(s)
        db.session.commit()
        print(f"Created {len(students)} students with parents.")

        # Timetable for both sections
        for label in ('10-A', '10-B'):
            key = normalize_class(label)
            for d, day in enumerate(DAYS):
                for period in range(1, 6):
                    subject = subjects[(d + period) % len(subjects)]
                    exists = TimetableSlot.query.filter_by(day=day, period=period, grade=key.grade, section=key.section).first()
                    if not exists:
                        db.session.add(TimetableSlot(day=day, period=period, subject_id=subject.id,
                                                     grade=key.grade, section=key.section))
        db.session.commit()
        print("Created timetable.")

        # Exam, its schedule and syllabus
        exam = Exam.query.filter_by(exam_name='Mid Term').first()
        if not exam:
            start = date.today() + timedelta(days=14)
            exam = Exam(exam_name='Mid Term', exam_type='Term Exam', start_date=start,
                        end_date=start + timedelta(days=len(subjects) - 1),
                        instructions='Bring your hall ticket.')
            exam.classes = [ExamClass(class_label='10th'), ExamClass(class_label='10-A'), ExamClass(class_label='10-B')]
            db.session.add(exam)
            db.session.flush()
            for i, subject in enumerate(subjects):
                db.session.add(ExamScheduleEntry(exam_id=exam.id, subject_id=subject.id, class_name='10th',
                                                 exam_date=exam.start_date + timedelta(days=i),
                                                 start_time=time(9, 30), end_time=time(12, 30), room=f"Hall {i + 1}"))
                db.session.add(SyllabusEntry(exam_name=exam.exam_name, class_name='10th', section='A',
                                             subject_id=subject.id,
                                             chapters=[f"Chapter {n}" for n in range(1, 4)]))
        db.session.commit()
        print("Created exam schedule and syllabus.")

        # Fees, deliberately in both spellings
        if not ClassFee.query.first():
            db.session.add_all([
                ClassFee(class_label='10th', fee_type='Tuition Fee', amount=15000.0),
                ClassFee(class_label='10', fee_type='Lab Fee', amount=2000.0),
            ])
            db.session.add(FeePayment(student_id=students[0].id, fee_type='Tuition Fee', amount_paid=15000.0,
                                      utr_number='UTR0001', paid_on=date.today()))
        db.session.commit()

        # Homework and a week of attendance
        if not Homework.query.first():
            for t, subject in zip(teachers, subjects):
                db.session.add(Homework(class_name='10th', section='A', subject_id=subject.id, teacher_id=t.id,
                                        assigned_date=date.today(), due_date=date.today() + timedelta(days=3),
                                        title=f"{subject.name} worksheet", description='Complete all questions.'))
        if not AttendanceRecord.query.first():
            for s in students[:10]:
                for back in range(1, 6):
                    day = date.today() - timedelta(days=back)
                    db.session.add(AttendanceRecord(student_id=s.id, subject_id=subjects[0].id, teacher_id=teachers[0].id,
                                                    date=day, period=1,
                                                    status=random.choice(['present', 'present', 'present', 'absent', 'late'])))
        db.session.commit()
        print("Created homework and attendance.")

        print("Seeding complete.")

if __name__ == "__main__":
    seed()
