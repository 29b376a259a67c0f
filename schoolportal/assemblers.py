"""Assemble portal view models from several tables.

Each ``assemble_*`` function takes a :class:`~schoolportal.store.DataStore`
plus an already-resolved scope (a student, a teacher or a class key), runs its
queries one after another and only then merges the rows in memory. The result
is a plain dataclass whose ``as_dict()`` is what the portals serve.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from schoolportal import identity
from schoolportal.errors import FetchFailed, InvalidEntry, NoScope, UnresolvedIdentity, placeholder
from schoolportal.grouping import build_matrix, duplicate_cells, group_by, left_join
from schoolportal.identity import ClassKey
from schoolportal.models import (
    AttendanceRecord, ClassFee, Exam, ExamMark, ExamScheduleEntry, FeePayment, Homework,
    ParentStudentLink, Student, Subject, SubjectAssignment, SyllabusEntry,
    Teacher, TimetableSlot, student_display_name,
)
from schoolportal.store import any_of, eq, gte, ilike, in_, lte, overlaps

logger = logging.getLogger(__name__)

DAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')
PERIODS = (1, 2, 3, 4, 5, 6)

PASS_MARK = 35
TOTAL_MARKS = 100

PENDING = 'Pending'
PASS = 'Pass'
FAIL = 'Fail'
ABSENT = 'Absent'

ATTENDANCE_STATUSES = ('present', 'absent', 'late', 'leave', 'holiday')
ATTENDED = ('present', 'late')


def _iso(value):
    return value.isoformat() if value is not None else None


def _percent(part, whole):
    """Whole-number percentage, halves rounded up."""
    if not whole:
        return 0
    return (part * 200 + whole) // (2 * whole)


# --- Scope resolution ---
def resolve_student(store, ctx, student_id=None):
    """The one student ``ctx`` may look at, or :class:`NoScope`.

    Parents get their active child only if a link row backs it; admins must
    name a student explicitly. There is no fallback to "all students".
    """
    if ctx.role == 'parent':
        if ctx.student_id is None:
            raise NoScope("No child selected for this parent account")
        link = store.select_one(ParentStudentLink, [
            eq('parent_username', ctx.username),
            eq('student_id', ctx.student_id),
        ])
        if link is None:
            raise NoScope(f"Student {ctx.student_id} is not linked to {ctx.username}")
        student_id = ctx.student_id
    elif ctx.role == 'admin':
        if student_id is None:
            raise NoScope("No student requested")
    else:
        raise NoScope(f"Role {ctx.role!r} has no student scope")
    student = store.select_one(Student, [eq('id', student_id)])
    if student is None:
        raise NoScope(f"Student {student_id} not found")
    return student


def resolve_teacher(store, ctx):
    if ctx.role != 'teacher' or not ctx.teacher_email:
        raise NoScope(f"Role {ctx.role!r} has no teacher scope")
    teacher = store.select_one(Teacher, [eq('email', ctx.teacher_email)])
    if teacher is None:
        raise NoScope(f"No teacher record for {ctx.teacher_email}")
    return teacher


def student_class_key(student) -> ClassKey:
    return identity.normalize_class(student.class_name, student.section)


def class_roster(store, key, order_by=('roll_number',)):
    """Active students whose class and section resolve to ``key``.

    Students whose labels cannot be resolved are left out rather than guessed.
    """
    candidates = store.select(Student, [
        eq('status', 'active'),
        ilike('class_name', identity.grade_pattern(key)),
    ], order_by=order_by)
    roster = []
    for s in candidates:
        try:
            if student_class_key(s) == key:
                roster.append(s)
        except UnresolvedIdentity as e:
            logger.warning(f"Leaving student {s.id} out of {key.label} roster: {e}")
    return roster


def _assignment_covers(assignment, subject_id, key):
    if assignment.subject_id != subject_id:
        return False
    if not assignment.class_name:
        return True
    return identity.matches_class(assignment.class_name, key, assignment.section)


def require_assignment(store, teacher, subject_id, key):
    """Raise :class:`NoScope` unless ``teacher`` teaches ``subject_id`` to ``key``."""
    assignments = store.select(SubjectAssignment, [eq('teacher_id', teacher.id)])
    if not any(_assignment_covers(a, subject_id, key) for a in assignments):
        raise NoScope(f"{teacher.email} is not assigned subject {subject_id} for {key.label}")
    return assignments


def require_class(store, teacher, key):
    """Raise :class:`NoScope` unless ``teacher`` teaches anything to ``key``."""
    assignments = store.select(SubjectAssignment, [eq('teacher_id', teacher.id)])
    if not any(not a.class_name or identity.matches_class(a.class_name, key, a.section) for a in assignments):
        raise NoScope(f"{teacher.email} does not teach {key.label}")


def assemble_allocations(store, teacher):
    """The teacher's (subject, class) assignments for picking a marks sheet."""
    rows = store.select(SubjectAssignment, [eq('teacher_id', teacher.id)], order_by=('class_name', 'section'),
                        embed=('subject',))
    out = []
    for a in rows:
        try:
            label = identity.normalize_class(a.class_name, a.section).label if a.class_name else None
        except UnresolvedIdentity as e:
            logger.warning(f"Assignment {a.id} has an unusable class label: {e}")
            continue
        out.append({
            'id': a.id,
            'subject_id': a.subject_id,
            'subject': placeholder(a.subject, 'name', 'Unknown subject', f"subject {a.subject_id}"),
            'class': label,
        })
    return out


@dataclass
class StudentSummary:
    id: int
    name: str
    student_code: Optional[str]
    roll_number: Optional[int]
    class_label: str

    @classmethod
    def of(cls, student, key):
        return cls(student.id, student_display_name(student), student.student_code,
                   student.roll_number, key.label)

    def as_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'student_code': self.student_code,
            'roll_number': self.roll_number,
            'class': self.class_label,
        }


# --- Timetable ---
@dataclass(frozen=True)
class TimetableCell:
    slot_id: Optional[int] = None
    subject: Optional[str] = None
    code: Optional[str] = None
    class_label: Optional[str] = None

    @property
    def no_class(self):
        return self.slot_id is None

    def as_dict(self):
        if self.no_class:
            return {'no_class': True}
        return {
            'no_class': False,
            'slot_id': self.slot_id,
            'subject': self.subject,
            'code': self.code,
            'class': self.class_label,
        }


NO_CLASS = TimetableCell()


@dataclass
class TimetableView:
    scope: str
    days: tuple
    periods: tuple
    grid: dict

    def cell(self, day, period):
        return self.grid[day][period]

    def as_dict(self):
        return {
            'scope': self.scope,
            'days': list(self.days),
            'periods': list(self.periods),
            'grid': [
                {'day': d, 'periods': [dict(period=p, **self.grid[d][p].as_dict()) for p in self.periods]}
                for d in self.days
            ],
        }


def _slot_cell(slot):
    ref = f"subject {slot.subject_id}" if slot.subject_id is not None else None
    return TimetableCell(
        slot_id=slot.id,
        subject=placeholder(slot.subject, 'name', 'Unknown subject', ref),
        code=placeholder(slot.subject, 'code', None),
        class_label=f"{slot.grade}-{slot.section}",
    )


def _timetable_view(scope, slots, days, periods):
    triples = [(s.day.strip().capitalize(), s.period, _slot_cell(s)) for s in slots]
    for day, period in duplicate_cells(triples):
        logger.warning(f"Timetable for {scope} has more than one class on {day} period {period}; keeping the first")
    grid = build_matrix(triples, days, periods, default=NO_CLASS)
    return TimetableView(scope, tuple(days), tuple(periods), grid)


def assemble_class_timetable(store, key, days=DAYS, periods=PERIODS):
    slots = store.select(TimetableSlot, [
        eq('grade', key.grade),
        eq('section', key.section),
    ], order_by=('period',), embed=('subject',))
    return _timetable_view(key.label, slots, days, periods)


def assemble_teacher_timetable(store, teacher, days=DAYS, periods=PERIODS):
    """Week grid of the slots whose subject (and class, if given) the teacher is assigned."""
    assignments = store.select(SubjectAssignment, [eq('teacher_id', teacher.id)])
    slots = []
    if assignments:
        candidates = store.select(TimetableSlot, [
            in_('subject_id', {a.subject_id for a in assignments}),
        ], order_by=('grade', 'section'), embed=('subject',))
        slots = [
            s for s in candidates
            if any(_assignment_covers(a, s.subject_id, ClassKey(s.grade, s.section)) for a in assignments)
        ]
    return _timetable_view(teacher.full_name, slots, days, periods)


# --- Exam schedule + syllabus ---
@dataclass
class ExamScheduleItem:
    id: int
    exam_name: str
    subject: str
    exam_date: date
    start_time: object
    end_time: object
    room: Optional[str]
    class_label: str
    chapters: Optional[List[str]]

    @property
    def syllabus_pending(self):
        return self.chapters is None

    def as_dict(self):
        return {
            'id': self.id,
            'exam_name': self.exam_name,
            'subject': self.subject,
            'exam_date': _iso(self.exam_date),
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'room': self.room,
            'class': self.class_label,
            'syllabus': {'status': 'pending'} if self.syllabus_pending
                        else {'status': 'published', 'chapters': list(self.chapters)},
        }


@dataclass
class ExamScheduleView:
    class_label: str
    groups: list  # [(exam_name, [ExamScheduleItem])]

    def as_dict(self):
        return {
            'class': self.class_label,
            'exams': [
                {'exam_name': name, 'entries': [e.as_dict() for e in entries]}
                for name, entries in self.groups
            ],
        }


def _exam_key(name):
    return (name or '').strip().lower()


def assemble_exam_schedule(store, key):
    """Exam timetable for a class grouped by exam, with each paper's syllabus attached."""
    pattern = identity.grade_pattern(key)
    candidates = store.select(ExamScheduleEntry, [ilike('class_name', pattern)],
                              order_by=('exam_date', 'start_time'), embed=('exam', 'subject'))
    entries = [e for e in candidates if identity.matches_class(e.class_name, key)]
    syllabus = [
        s for s in store.select(SyllabusEntry, [ilike('class_name', pattern)])
        if identity.matches_class(s.class_name, key, s.section)
    ]
    items = []
    for entry, syl in left_join(
            entries, syllabus,
            lambda e: (_exam_key(e.exam.exam_name if e.exam else None), e.subject_id),
            lambda s: (_exam_key(s.exam_name), s.subject_id)):
        items.append(ExamScheduleItem(
            id=entry.id,
            exam_name=placeholder(entry.exam, 'exam_name', 'Official Examination',
                                  f"exam {entry.exam_id}" if entry.exam_id is not None else None),
            subject=placeholder(entry.subject, 'name', 'Unknown subject',
                                f"subject {entry.subject_id}" if entry.subject_id is not None else None),
            exam_date=entry.exam_date,
            start_time=entry.start_time,
            end_time=entry.end_time,
            room=entry.room,
            class_label=entry.class_name,
            chapters=list(syl.chapters or []) if syl is not None else None,
        ))
    return ExamScheduleView(key.label, group_by(items, lambda i: i.exam_name))


# --- Exam calendar ---
def day_status(start, end, today):
    if start is None:
        return 'Date TBA'
    if end is not None and end < today:
        return 'Completed'
    days = (start - today).days
    if days == 0:
        return 'Starting Today'
    if days < 0:
        return 'Ongoing'
    return f"In {days} Days"


@dataclass
class ExamCalendarView:
    class_label: str
    exams: list

    def as_dict(self):
        return {'class': self.class_label, 'count': len(self.exams), 'exams': self.exams}


def assemble_exam_calendar(store, student, today):
    """Exams whose class list names the student's class in any spelling, soonest first."""
    key = student_class_key(student)
    variants = identity.class_label_variants(student.class_name, student.section)
    exams = store.select(Exam, [overlaps('classes', 'class_label', variants)], order_by=('start_date',))
    return ExamCalendarView(key.label, [
        {
            'id': e.id,
            'exam_name': e.exam_name,
            'exam_type': e.exam_type,
            'start_date': _iso(e.start_date),
            'end_date': _iso(e.end_date),
            'instructions': e.instructions,
            'status': day_status(e.start_date, e.end_date, today),
        }
        for e in exams
    ])


# --- Marks ---
def marks_status(marks_obtained, absent=False, pass_mark=PASS_MARK):
    if absent:
        return ABSENT
    return PASS if marks_obtained >= pass_mark else FAIL


def classify_mark(mark, pass_mark=PASS_MARK):
    """Status of a roster row: Pending without a stored mark, Absent if marked so."""
    if mark is None:
        return PENDING
    return marks_status(mark.marks_obtained, mark.status == ABSENT, pass_mark)


@dataclass
class RosterRow:
    student_id: int
    name: str
    roll_number: Optional[int]
    status: str
    marks_obtained: Optional[float] = None
    total_marks: Optional[float] = None
    remarks: str = ''
    mark_id: Optional[int] = None

    @property
    def locked(self):
        return self.mark_id is not None

    def as_dict(self):
        return {
            'student_id': self.student_id,
            'name': self.name,
            'roll_number': self.roll_number,
            'status': self.status,
            'marks_obtained': self.marks_obtained,
            'total_marks': self.total_marks,
            'remarks': self.remarks,
            'locked': self.locked,
        }


@dataclass
class MarksRosterView:
    exam: str
    subject: str
    class_label: str
    rows: List[RosterRow]

    @property
    def pending_count(self):
        return sum(1 for r in self.rows if r.status == PENDING)

    def as_dict(self):
        return {
            'exam': self.exam,
            'subject': self.subject,
            'class': self.class_label,
            'pending': self.pending_count,
            'rows': [r.as_dict() for r in self.rows],
        }


def _roster_order(row):
    return (row.status != PENDING, row.roll_number or 0)


def assemble_marks_roster(store, exam_id, subject_id, key, pass_mark=PASS_MARK):
    """Every active student of ``key`` with their mark for (exam, subject).

    Students without a mark come first as Pending, then everyone else by roll
    number.
    """
    exam = store.select_one(Exam, [eq('id', exam_id)])
    subject = store.select_one(Subject, [eq('id', subject_id)])
    roster = class_roster(store, key)
    marks = store.select(ExamMark, [eq('exam_id', exam_id), eq('subject_id', subject_id)])
    rows = []
    for student, mark in left_join(roster, marks, lambda s: s.id, lambda m: m.student_id):
        row = RosterRow(student.id, student.full_name, student.roll_number, classify_mark(mark, pass_mark))
        if mark is not None:
            row.marks_obtained = mark.marks_obtained
            row.total_marks = mark.total_marks
            row.remarks = mark.remarks or ''
            row.mark_id = mark.id
        rows.append(row)
    rows.sort(key=_roster_order)
    return MarksRosterView(
        exam=placeholder(exam, 'exam_name', 'Unknown exam', f"exam {exam_id}"),
        subject=placeholder(subject, 'name', 'Unknown subject', f"subject {subject_id}"),
        class_label=key.label,
        rows=rows,
    )


@dataclass
class MarksSubmission:
    saved: int
    skipped: dict = field(default_factory=dict)

    def as_dict(self):
        return {'saved': self.saved, 'skipped': {str(k): v for k, v in self.skipped.items()}}


def submit_marks(store, exam_id, subject_id, key, entries, pass_mark=PASS_MARK, total_marks=TOTAL_MARKS):
    """Store marks for roster students that have none yet.

    ``entries`` maps student id to ``{'marks': ..., 'remarks': ..., 'absent': bool}``.
    Stored marks are locked: entries for them are skipped, never overwritten.
    """
    if store.select_one(Exam, [eq('id', exam_id)]) is None:
        raise NoScope(f"Exam {exam_id} not found")
    if store.select_one(Subject, [eq('id', subject_id)]) is None:
        raise NoScope(f"Subject {subject_id} not found")
    if not isinstance(entries, dict):
        raise InvalidEntry("Marks entries must map student ids to an entry")
    view = assemble_marks_roster(store, exam_id, subject_id, key, pass_mark)
    rows = {r.student_id: r for r in view.rows}
    payload, skipped = [], {}
    for raw_id, entry in entries.items():
        try:
            student_id = int(raw_id)
        except (TypeError, ValueError):
            raise InvalidEntry(f"Invalid student id {raw_id!r}")
        if not isinstance(entry, dict):
            raise InvalidEntry(f"Entry for student {student_id} must be an object")
        row = rows.get(student_id)
        if row is None:
            skipped[student_id] = 'not_on_roster'
            continue
        if row.locked:
            skipped[student_id] = 'locked'
            continue
        absent = bool(entry.get('absent'))
        remarks = (entry.get('remarks') or '').strip()
        if absent:
            marks = 0.0
            remarks = remarks or 'Absent'
        else:
            raw = entry.get('marks')
            if raw is None or str(raw).strip() == '':
                skipped[student_id] = 'blank'
                continue
            try:
                marks = float(raw)
            except (TypeError, ValueError):
                raise InvalidEntry(f"Marks for student {student_id} must be a number")
            if not 0 <= marks <= total_marks:
                raise InvalidEntry(f"Marks for student {student_id} must be between 0 and {total_marks:g}")
        payload.append({
            'exam_id': exam_id,
            'subject_id': subject_id,
            'student_id': student_id,
            'marks_obtained': marks,
            'total_marks': total_marks,
            'status': marks_status(marks, absent, pass_mark),
            'remarks': remarks,
        })
    if payload:
        store.insert(ExamMark, payload)
        logger.info(f"Saved {len(payload)} mark(s) for exam {exam_id} subject {subject_id} class {key.label}")
    return MarksSubmission(len(payload), skipped)


def grade_letter(obtained, total):
    if not total:
        return '-'
    p = obtained / total * 100
    if p >= 90:
        return 'A+'
    if p >= 80:
        return 'A'
    if p >= 65:
        return 'B'
    if p >= 45:
        return 'C'
    return 'D'


@dataclass
class ReportCardView:
    student: StudentSummary
    exams: list  # [{'id', 'exam_name', 'start_date'}], column order
    subjects: list
    exam_totals: list
    grand_total: float

    def as_dict(self):
        return {
            'student': self.student.as_dict(),
            'exams': self.exams,
            'subjects': self.subjects,
            'exam_totals': self.exam_totals,
            'grand_total': self.grand_total,
        }


def _exam_column(mark):
    exam = mark.exam
    return {
        'id': mark.exam_id,
        'exam_name': placeholder(exam, 'exam_name', 'Unknown exam', f"exam {mark.exam_id}"),
        'start_date': _iso(exam.start_date) if exam is not None else None,
    }


def assemble_report_card(store, student):
    """Subject x exam marks grid for one student.

    Rows are the subjects taught to the student's class, followed by any other
    subject the student has marks in. Columns are exams by id, so two exams
    sharing a name stay separate.
    """
    key = student_class_key(student)
    assignments = [
        a for a in store.select(SubjectAssignment, [ilike('class_name', identity.grade_pattern(key))],
                                embed=('subject',))
        if identity.matches_class(a.class_name, key, a.section)
    ]
    marks = store.select(ExamMark, [eq('student_id', student.id)], embed=('exam', 'subject'))

    subject_names = {}
    for a in assignments:
        subject_names.setdefault(a.subject_id, placeholder(a.subject, 'name', 'Unknown subject',
                                                           f"subject {a.subject_id}"))
    for m in marks:
        subject_names.setdefault(m.subject_id, placeholder(m.subject, 'name', 'Unknown subject',
                                                           f"subject {m.subject_id}"))
    columns = {}
    for m in marks:
        columns.setdefault(m.exam_id, _exam_column(m))
    exams = sorted(columns.values(), key=lambda c: (c['start_date'] or '', c['exam_name'], c['id']))
    exam_ids = [c['id'] for c in exams]

    triples = [(m.subject_id, m.exam_id, m) for m in marks]
    for subject_id, exam_id in duplicate_cells(triples):
        logger.warning(f"Student {student.id} has more than one mark for subject {subject_id} exam {exam_id}; keeping the first")
    grid = build_matrix(triples, list(subject_names), exam_ids, default=None)

    subjects = []
    totals = {exam_id: 0.0 for exam_id in exam_ids}
    for subject_id, name in subject_names.items():
        obtained = maximum = 0.0
        cells = []
        for exam_id in exam_ids:
            m = grid[subject_id][exam_id]
            if m is None:
                cells.append(None)
                continue
            obtained += m.marks_obtained
            maximum += m.total_marks
            totals[exam_id] += m.marks_obtained
            cells.append({
                'exam_id': exam_id,
                'marks_obtained': m.marks_obtained,
                'total_marks': m.total_marks,
                'status': m.status,
                'grade': grade_letter(m.marks_obtained, m.total_marks),
            })
        subjects.append({
            'subject_id': subject_id,
            'subject': name,
            'marks': cells,
            'obtained': obtained,
            'maximum': maximum,
            'grade': grade_letter(obtained, maximum),
        })
    return ReportCardView(
        student=StudentSummary.of(student, key),
        exams=exams,
        subjects=subjects,
        exam_totals=[dict(c, total=totals[c['id']]) for c in exams],
        grand_total=sum(totals.values()),
    )


# --- Fees ---
@dataclass
class FeeSummary:
    class_label: str
    forms: List[str]
    items: list
    total: float
    paid: Optional[float] = None

    @property
    def balance(self):
        if self.paid is None:
            return None
        return max(self.total - self.paid, 0.0)

    def as_dict(self):
        out = {'class': self.class_label, 'matched_labels': self.forms, 'items': self.items, 'total': self.total}
        if self.paid is not None:
            out['paid'] = self.paid
            out['balance'] = self.balance
        return out


def _fee_paid(fee_type, payments):
    wanted = fee_type.lower()
    return any(wanted in (p.fee_type or '').lower() for p in payments)


def assemble_fees(store, class_label, student_id=None):
    """Fee lines for a class stored under any spelling of its grade, and their sum.

    Lines stored under both "10th" and "10" are both counted; the fee table is
    expected to hold one spelling per class. With ``student_id`` each line is
    marked paid or due against the student's verified payments, and the summary
    carries the amount paid and the balance.
    """
    forms = identity.grade_forms(class_label)
    rows = store.select(ClassFee, [any_of(*[eq('class_label', f) for f in forms])], order_by=('fee_type', 'id'))
    spellings = {}
    for r in rows:
        spellings.setdefault(r.fee_type, set()).add(r.class_label)
    for fee_type, labels in spellings.items():
        if len(labels) > 1:
            logger.warning(f"Fee {fee_type!r} for class {class_label} stored under {sorted(labels)}; summing all")
    items = [{'id': r.id, 'fee_type': r.fee_type, 'amount': r.amount, 'stored_class': r.class_label} for r in rows]
    summary = FeeSummary(str(class_label).strip(), forms, items, sum(r.amount for r in rows))
    if student_id is not None:
        payments = store.select(FeePayment, [eq('student_id', student_id), eq('status', 'verified')],
                                order_by=('paid_on', 'id'))
        for item in items:
            item['status'] = 'paid' if _fee_paid(item['fee_type'], payments) else 'due'
        summary.paid = sum(p.amount_paid for p in payments)
    return summary


# --- Homework ---
@dataclass
class HomeworkView:
    class_label: str
    items: list

    def as_dict(self):
        return {'class': self.class_label, 'count': len(self.items), 'items': self.items}


def assemble_homework(store, key, today):
    """Homework for the class that is assigned by ``today`` and not yet due."""
    rows = store.select(Homework, [
        ilike('class_name', identity.grade_pattern(key)),
        lte('assigned_date', today),
        gte('due_date', today),
    ], order_by=('due_date', 'id'), embed=('subject', 'teacher'))
    items = [
        {
            'id': h.id,
            'title': h.title,
            'description': h.description,
            'subject': placeholder(h.subject, 'name', 'General'),
            'teacher': placeholder(h.teacher, 'full_name', 'Staff'),
            'assigned_date': _iso(h.assigned_date),
            'due_date': _iso(h.due_date),
        }
        for h in rows if identity.matches_class(h.class_name, key, h.section)
    ]
    return HomeworkView(key.label, items)


# --- Attendance ---
@dataclass
class AttendanceSummaryView:
    subjects: list
    log: list

    def as_dict(self):
        return {'subjects': self.subjects, 'log': self.log}


def assemble_attendance_summary(store, student_id):
    """Per-subject attendance percentages plus the full log, newest first.

    Late counts as attended; holidays are left out of the totals.
    """
    records = store.select(AttendanceRecord, [eq('student_id', student_id)],
                           order_by=('-date', '-period'), embed=('subject',))
    subjects = []
    for name, rs in group_by(records, lambda r: placeholder(r.subject, 'name', 'General')):
        counted = [r for r in rs if r.status != 'holiday']
        attended = sum(1 for r in counted if r.status in ATTENDED)
        subjects.append({
            'subject': name,
            'total': len(counted),
            'attended': attended,
            'percentage': _percent(attended, len(counted)),
        })
    log = [
        {
            'date': _iso(r.date),
            'period': r.period,
            'subject': placeholder(r.subject, 'name', 'General'),
            'status': r.status,
        }
        for r in records
    ]
    return AttendanceSummaryView(subjects, log)


@dataclass
class AttendanceSheetView:
    slot_id: int
    subject_id: Optional[int]
    subject: str
    class_label: str
    date: date
    period: int
    submitted: bool
    rows: list

    def counts(self):
        out = {s: 0 for s in ATTENDANCE_STATUSES}
        for r in self.rows:
            out[r['status']] = out.get(r['status'], 0) + 1
        out['total'] = len(self.rows)
        return out

    def as_dict(self):
        return {
            'slot_id': self.slot_id,
            'subject': self.subject,
            'class': self.class_label,
            'date': _iso(self.date),
            'period': self.period,
            'submitted': self.submitted,
            'counts': self.counts(),
            'rows': self.rows,
        }


def teacher_slot(store, teacher, slot_id):
    """A timetable slot the teacher is assigned to, with its class key, or :class:`NoScope`."""
    slot = store.select_one(TimetableSlot, [eq('id', slot_id)], embed=('subject',))
    if slot is None:
        raise NoScope(f"Timetable slot {slot_id} not found")
    key = ClassKey(slot.grade, slot.section)
    assignments = store.select(SubjectAssignment, [eq('teacher_id', teacher.id)])
    if not any(_assignment_covers(a, slot.subject_id, key) for a in assignments):
        raise NoScope(f"Slot {slot_id} is not taught by {teacher.email}")
    return slot, key


def assemble_attendance_sheet(store, teacher, slot_id, on_date):
    """Roster for one of the teacher's timetable slots on ``on_date``.

    Existing records are shown as stored; a fresh sheet defaults everyone to present.
    """
    slot, key = teacher_slot(store, teacher, slot_id)
    if slot.day.strip().capitalize() != on_date.strftime('%A'):
        raise InvalidEntry(f"Slot {slot_id} runs on {slot.day}, not {on_date.strftime('%A')}")
    roster = class_roster(store, key, order_by=('full_name',))
    existing = []
    if roster:
        existing = store.select(AttendanceRecord, [
            eq('date', on_date),
            eq('period', slot.period),
            eq('subject_id', slot.subject_id),
            in_('student_id', [s.id for s in roster]),
        ])
    joined = left_join(roster, existing, lambda s: s.id, lambda r: r.student_id)
    rows = [
        {
            'student_id': s.id,
            'name': s.full_name,
            'roll_number': s.roll_number,
            'status': rec.status if rec is not None else 'present',
        }
        for s, rec in joined
    ]
    return AttendanceSheetView(
        slot_id=slot.id,
        subject_id=slot.subject_id,
        subject=placeholder(slot.subject, 'name', 'Unknown subject'),
        class_label=key.label,
        date=on_date,
        period=slot.period,
        submitted=any(rec is not None for _, rec in joined),
        rows=rows,
    )


def save_attendance(store, teacher, slot_id, on_date, statuses, allow_edit=True):
    """Record one status per roster student for a slot, replacing earlier ones if allowed."""
    sheet = assemble_attendance_sheet(store, teacher, slot_id, on_date)
    if sheet.submitted and not allow_edit:
        raise InvalidEntry(f"Attendance for period {sheet.period} on {on_date} is already submitted")
    if not isinstance(statuses, dict):
        raise InvalidEntry("Attendance statuses must map student ids to a status")
    current = {r['student_id']: r['status'] for r in sheet.rows}
    for raw_id, status in statuses.items():
        try:
            student_id = int(raw_id)
        except (TypeError, ValueError):
            raise InvalidEntry(f"Invalid student id {raw_id!r}")
        if student_id not in current:
            raise InvalidEntry(f"Student {student_id} is not in {sheet.class_label}")
        if status not in ATTENDANCE_STATUSES:
            raise InvalidEntry(f"Unknown attendance status {status!r}")
        current[student_id] = status
    rows = [
        {
            'student_id': student_id,
            'teacher_id': teacher.id,
            'subject_id': sheet.subject_id,
            'date': on_date,
            'period': sheet.period,
            'status': status,
        }
        for student_id, status in current.items()
    ]
    store.upsert(AttendanceRecord, rows, ('student_id', 'subject_id', 'date', 'period'))
    logger.info(f"Attendance saved for {sheet.class_label} period {sheet.period} on {on_date} by {teacher.email}")
    return assemble_attendance_sheet(store, teacher, slot_id, on_date)


# --- Teacher homework and syllabus desks ---
def _parse_day(value, name):
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value or '').strip(), '%Y-%m-%d').date()
    except ValueError:
        raise InvalidEntry(f"'{name}' must be a YYYY-MM-DD date")


def _homework_item(h):
    return {
        'id': h.id,
        'title': h.title,
        'description': h.description,
        'subject': placeholder(h.subject, 'name', 'General'),
        'class': f"{h.class_name}-{h.section}",
        'period': h.period,
        'assigned_date': _iso(h.assigned_date),
        'due_date': _iso(h.due_date),
    }


def save_homework(store, teacher, slot_id, payload, today, homework_id=None):
    """Post homework for one of the teacher's slots, or edit one the teacher posted.

    Class, section, subject and period come from the slot. Returns the homework id.
    """
    slot, key = teacher_slot(store, teacher, slot_id)
    if not isinstance(payload, dict):
        raise InvalidEntry("Homework must be an object")
    title = (payload.get('title') or '').strip()
    if not title:
        raise InvalidEntry("Homework needs a title")
    due_date = _parse_day(payload.get('due_date'), 'due_date')
    if due_date < today:
        raise InvalidEntry("Due date cannot be in the past")
    fields = {
        'title': title,
        'description': (payload.get('description') or '').strip(),
        'due_date': due_date,
        'teacher_id': teacher.id,
        'class_name': identity.ordinal(key.grade),
        'section': key.section,
        'period': slot.period,
        'subject_id': slot.subject_id,
        'assigned_date': today,
    }
    if homework_id is None:
        homework_id = store.insert(Homework, [fields])[0].id
    elif not store.update(Homework, fields, [eq('id', homework_id), eq('teacher_id', teacher.id)]):
        raise NoScope(f"Homework {homework_id} was not posted by {teacher.email}")
    logger.info(f"Homework {homework_id} saved for {key.label} by {teacher.email}")
    return homework_id


def assemble_teacher_homework(store, teacher):
    """Everything the teacher has posted, newest first."""
    rows = store.select(Homework, [eq('teacher_id', teacher.id)], order_by=('-assigned_date', '-id'),
                        embed=('subject',))
    return HomeworkView(teacher.full_name, [_homework_item(h) for h in rows])


def add_syllabus(store, teacher, exam_id, subject_id, key, chapters):
    """Publish the chapters of one subject for an exam the class sits."""
    require_assignment(store, teacher, subject_id, key)
    exam = store.select_one(Exam, [
        eq('id', exam_id),
        overlaps('classes', 'class_label', identity.class_label_variants(key.label)),
    ])
    if exam is None:
        raise NoScope(f"Exam {exam_id} is not scheduled for {key.label}")
    if not isinstance(chapters, list):
        raise InvalidEntry("Chapters must be a list")
    cleaned = [c.strip() for c in chapters if isinstance(c, str) and c.strip()]
    if not cleaned:
        raise InvalidEntry("Add at least one chapter")
    entry = store.insert(SyllabusEntry, [{
        'exam_name': exam.exam_name,
        'class_name': identity.ordinal(key.grade),
        'section': key.section,
        'subject_id': subject_id,
        'chapters': cleaned,
        'teacher_id': teacher.id,
        'exam_date': exam.start_date,
    }])[0]
    logger.info(f"Syllabus {entry.id} for {exam.exam_name} {key.label} added by {teacher.email}")
    return entry.id


def delete_syllabus(store, teacher, entry_id):
    if not store.delete(SyllabusEntry, [eq('id', entry_id), eq('teacher_id', teacher.id)]):
        raise NoScope(f"Syllabus entry {entry_id} was not added by {teacher.email}")


def assemble_syllabus_history(store, teacher):
    rows = store.select(SyllabusEntry, [eq('teacher_id', teacher.id)], order_by=('-id',), embed=('subject',))
    return [
        {
            'id': s.id,
            'exam_name': s.exam_name,
            'class': f"{s.class_name}-{s.section}",
            'subject': placeholder(s.subject, 'name', 'Unknown subject', f"subject {s.subject_id}"),
            'chapters': list(s.chapters or []),
            'exam_date': _iso(s.exam_date),
        }
        for s in rows
    ]


# --- Parent dashboard ---
@dataclass
class DashboardView:
    student: StudentSummary
    sections: dict
    notifications: list

    def as_dict(self):
        return {
            'student': self.student.as_dict(),
            'sections': self.sections,
            'notifications': self.notifications,
        }


def assemble_dashboard(store, student, today, days=DAYS, periods=PERIODS):
    """Landing page sections; one section failing to load leaves the others intact."""
    key = student_class_key(student)
    builders = (
        ('timetable', lambda: assemble_class_timetable(store, key, days, periods)),
        ('exams', lambda: assemble_exam_calendar(store, student, today)),
        ('homework', lambda: assemble_homework(store, key, today)),
        ('fees', lambda: assemble_fees(store, student.class_name, student.id)),
    )
    sections, notifications = {}, []
    for name, build in builders:
        try:
            sections[name] = build().as_dict()
        except FetchFailed as e:
            logger.warning(f"Dashboard section {name} unavailable for student {student.id}: {e}")
            sections[name] = None
            notifications.append({'section': name, 'message': f"Could not load {name}. Please try again."})
    return DashboardView(StudentSummary.of(student, key), sections, notifications)
