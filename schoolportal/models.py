from schoolportal import db
from datetime import datetime

class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='parent')  # admin, teacher, parent
    status = db.Column(db.String(20), nullable=False, default='active')

    def __repr__(self):
        return f"User('{self.username}', role='{self.role}')"

class Student(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    student_code = db.Column(db.String(50), unique=True)
    full_name = db.Column(db.String(100), nullable=False)
    # Free-form labels as entered by the office ("10th", "10-A", "Grade 10")
    class_name = db.Column(db.String(30), nullable=False)
    section = db.Column(db.String(30))
    roll_number = db.Column(db.Integer)
    academic_year = db.Column(db.String(20))
    status = db.Column(db.String(20), nullable=False, default='active')

    parent_links = db.relationship('ParentStudentLink', backref='student', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"Student('{self.full_name}', class='{self.class_name}', section='{self.section}')"

class Teacher(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20))

    assignments = db.relationship('SubjectAssignment', backref='teacher', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"Teacher('{self.full_name}', email='{self.email}')"

class Subject(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20))

    def __repr__(self):
        return f"Subject('{self.name}')"

class SubjectAssignment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    # Optional: an assignment without a class covers the subject everywhere
    class_name = db.Column(db.String(30))
    section = db.Column(db.String(30))

    subject = db.relationship('Subject', lazy=True)

    def __repr__(self):
        return f"SubjectAssignment(teacher_id={self.teacher_id}, subject_id={self.subject_id}, class='{self.class_name}-{self.section}')"

class ParentStudentLink(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    parent_username = db.Column(db.String(120), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    __table_args__ = (db.UniqueConstraint('parent_username', 'student_id', name='uix_parent_student'),)

    def __repr__(self):
        return f"ParentStudentLink(parent='{self.parent_username}', student_id={self.student_id})"

class TimetableSlot(db.Model):
    __tablename__ = 'timetable'
    id = db.Column(db.Integer, primary_key=True)
    day = db.Column(db.String(10), nullable=False)
    period = db.Column(db.Integer, nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'))
    # Canonical class key, written through identity.normalize_class
    grade = db.Column(db.Integer, nullable=False)
    section = db.Column(db.String(10), nullable=False)
    __table_args__ = (db.UniqueConstraint('day', 'period', 'grade', 'section', name='uix_timetable_slot'),)

    subject = db.relationship('Subject', lazy=True)

    def __repr__(self):
        return f"TimetableSlot({self.day} P{self.period}, {self.grade}-{self.section}, subject_id={self.subject_id})"

class Exam(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    exam_name = db.Column(db.String(100), nullable=False)
    exam_type = db.Column(db.String(50))
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    instructions = db.Column(db.Text)

    classes = db.relationship('ExamClass', backref='exam', lazy=True, cascade="all, delete-orphan")

    @property
    def class_labels(self):
        return [c.class_label for c in self.classes]

    def __repr__(self):
        return f"Exam('{self.exam_name}', {self.start_date}->{self.end_date})"

class ExamClass(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(db.Integer, db.ForeignKey('exam.id'), nullable=False)
    class_label = db.Column(db.String(30), nullable=False)
    __table_args__ = (db.UniqueConstraint('exam_id', 'class_label', name='uix_exam_class'),)

    def __repr__(self):
        return f"ExamClass(exam_id={self.exam_id}, class='{self.class_label}')"

class ExamScheduleEntry(db.Model):
    __tablename__ = 'exam_timetable'
    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(db.Integer, db.ForeignKey('exam.id'))
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'))
    # "10th" applies to every section of the grade, "10-A" to one section
    class_name = db.Column(db.String(30), nullable=False)
    exam_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time)
    end_time = db.Column(db.Time)
    room = db.Column(db.String(50))

    exam = db.relationship('Exam', lazy=True)
    subject = db.relationship('Subject', lazy=True)

    def __repr__(self):
        return f"ExamScheduleEntry(exam_id={self.exam_id}, subject_id={self.subject_id}, date='{self.exam_date}')"

class SyllabusEntry(db.Model):
    __tablename__ = 'exam_syllabus'
    id = db.Column(db.Integer, primary_key=True)
    exam_name = db.Column(db.String(100), nullable=False)
    class_name = db.Column(db.String(30), nullable=False)
    section = db.Column(db.String(30))
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    chapters = db.Column(db.JSON, nullable=False, default=list)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'))
    exam_date = db.Column(db.Date)

    subject = db.relationship('Subject', lazy=True)

    def __repr__(self):
        return f"SyllabusEntry('{self.exam_name}', class='{self.class_name}-{self.section}', subject_id={self.subject_id})"

class ExamMark(db.Model):
    __tablename__ = 'exam_marks'
    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(db.Integer, db.ForeignKey('exam.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    marks_obtained = db.Column(db.Float, nullable=False, default=0)
    total_marks = db.Column(db.Float, nullable=False, default=100)
    status = db.Column(db.String(10), nullable=False)  # Pass, Fail, Absent
    remarks = db.Column(db.String(200))
    recorded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    __table_args__ = (db.UniqueConstraint('exam_id', 'subject_id', 'student_id', name='uix_exam_subject_student'),)

    exam = db.relationship('Exam', lazy=True)
    subject = db.relationship('Subject', lazy=True)

    def __repr__(self):
        return f"ExamMark(exam_id={self.exam_id}, subject_id={self.subject_id}, student_id={self.student_id}, status='{self.status}')"

class AttendanceRecord(db.Model):
    __tablename__ = 'attendance'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'))
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'))
    date = db.Column(db.Date, nullable=False)
    period = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False)  # present, absent, late, leave, holiday
    __table_args__ = (db.UniqueConstraint('student_id', 'subject_id', 'date', 'period', name='uix_attendance_slot'),)

    subject = db.relationship('Subject', lazy=True)

    def __repr__(self):
        return f"AttendanceRecord(student_id={self.student_id}, date='{self.date}', period={self.period}, status='{self.status}')"

class ClassFee(db.Model):
    __tablename__ = 'class_fees'
    id = db.Column(db.Integer, primary_key=True)
    # Stored as either "10th" or "10" depending on who entered it
    class_label = db.Column('class', db.String(30), nullable=False)
    fee_type = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Float, nullable=False, default=0.0)

    def __repr__(self):
        return f"ClassFee(class='{self.class_label}', type='{self.fee_type}', amount={self.amount})"

class FeePayment(db.Model):
    __tablename__ = 'student_fees'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    # May name several fee types, e.g. "Tuition Fee, Lab Fee"
    fee_type = db.Column(db.String(200), nullable=False)
    amount_paid = db.Column(db.Float, nullable=False, default=0.0)
    utr_number = db.Column(db.String(50), unique=True)
    paid_on = db.Column(db.Date)
    status = db.Column(db.String(20), nullable=False, default='verified')

    def __repr__(self):
        return f"FeePayment(student_id={self.student_id}, type='{self.fee_type}', amount={self.amount_paid})"

class Homework(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    class_name = db.Column(db.String(30), nullable=False)
    section = db.Column(db.String(30), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'))
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'))
    period = db.Column(db.Integer)
    assigned_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)

    subject = db.relationship('Subject', lazy=True)
    teacher = db.relationship('Teacher', lazy=True)

    def __repr__(self):
        return f"Homework('{self.title}', class='{self.class_name}-{self.section}', due='{self.due_date}')"

# Convenience display helpers
def student_display_name(student: Student) -> str:
    if getattr(student, 'roll_number', None) is not None:
        return f"{student.full_name} ({student.roll_number})"
    return student.full_name
