from flask import jsonify, request, session
from schoolportal import app, db
import logging
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)
from schoolportal.models import User, ParentStudentLink, Student, Teacher
from schoolportal import assemblers
from schoolportal.errors import FetchFailed, InvalidEntry, NoScope, UnresolvedIdentity
from schoolportal.identity import normalize_class
from schoolportal.session import RequestGenerations, SessionContext
from schoolportal.store import DataStore
from sqlalchemy import func
from werkzeug.security import check_password_hash
from functools import wraps
from datetime import date, datetime

generations = RequestGenerations()

PORTAL_HOME = {
    'admin': '/admin/timetable',
    'teacher': '/teacher/timetable',
    'parent': '/dashboard',
}

def _store():
    return DataStore(db.session)

def portal_required(*roles):
    """Build the caller's SessionContext and pass it to the view as ``ctx``."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            ctx = SessionContext.from_session(session)
            if ctx is None:
                return jsonify({'status': 'error', 'message': 'Please log in to access this page.'}), 401
            if ctx.role not in roles:
                return jsonify({'status': 'error', 'message': 'You are not authorized to perform this action.'}), 403
            return fn(ctx, *args, **kwargs)
        return wrapper
    return decorator

def _serve(view, ctx, build):
    """Run an assembly and drop the answer if a newer request for the same view began meanwhile."""
    key = (ctx.username, view)
    gen = generations.begin(key, request.args.get('gen', type=int))
    data = build()
    if app.config.get('REJECT_STALE_GENERATIONS', True) and not generations.is_current(key, gen):
        logger.info(f"Discarding stale {view} response for {ctx.username} (generation {gen})")
        return jsonify({'status': 'stale', 'generation': gen}), 409
    return jsonify({'status': 'ok', 'generation': gen, 'data': data})

def _grid():
    days = tuple(app.config.get('SCHOOL_DAYS') or assemblers.DAYS)
    periods = tuple(range(1, int(app.config.get('PERIODS_PER_DAY', 6)) + 1))
    return days, periods

def _marks_rules():
    return (float(app.config.get('MARKS_PASS_THRESHOLD', assemblers.PASS_MARK)),
            float(app.config.get('MARKS_TOTAL_DEFAULT', assemblers.TOTAL_MARKS)))

def _int_param(source, name):
    value = source.get(name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidEntry(f"'{name}' must be an integer")

def _class_param(source):
    return normalize_class(source.get('class', ''), source.get('section'))

def _date_param(source, name='date'):
    raw = (source.get(name) or '').strip()
    if not raw:
        return date.today()
    try:
        return datetime.strptime(raw, '%Y-%m-%d').date()
    except ValueError:
        raise InvalidEntry(f"'{name}' must be a YYYY-MM-DD date")

@app.route("/")
def index():
    ctx = SessionContext.from_session(session)
    if ctx is None:
        return jsonify({'status': 'ok', 'login': '/login'})
    return jsonify({'status': 'ok', 'user': ctx.username, 'role': ctx.role, 'home': PORTAL_HOME[ctx.role]})

# --- Authentication boundary ---
@app.route("/login", methods=['POST'])
def login():
    payload = request.get_json(silent=True) or request.form
    username = (payload.get('username') or '').strip()
    password = payload.get('password') or ''
    user = User.query.filter(func.lower(User.username) == username.lower()).first()
    if not user or user.status != 'active' or not check_password_hash(user.password_hash, password):
        logger.warning(f"Failed login for {username!r}")
        return jsonify({'status': 'error', 'message': 'Invalid credentials.'}), 401
    session.clear()
    session['logged_in'] = True
    session['user'] = user.username
    session['role'] = user.role
    session.permanent = True
    if user.role == 'parent':
        link = ParentStudentLink.query.filter_by(parent_username=user.username).order_by(ParentStudentLink.id.asc()).first()
        if link:
            session['student_id'] = link.student_id
    logger.info(f"{user.role} {user.username} logged in")
    return jsonify({'status': 'ok', 'role': user.role, 'home': PORTAL_HOME.get(user.role, '/'),
                    'student_id': session.get('student_id')})

@app.route("/logout", methods=['GET', 'POST'])
def logout():
    username = session.get('user')
    if username:
        generations.forget(username)
    session.clear()
    return jsonify({'status': 'ok', 'message': 'Logged out.'})

# --- Parent portal ---
@app.route('/parent/children')
@portal_required('parent')
def parent_children(ctx):
    links = ParentStudentLink.query.filter_by(parent_username=ctx.username).order_by(ParentStudentLink.id.asc()).all()
    return jsonify({'status': 'ok', 'active': ctx.student_id, 'children': [
        {'id': l.student.id, 'name': l.student.full_name, 'class': l.student.class_name, 'section': l.student.section}
        for l in links
    ]})

@app.route('/parent/child/<int:student_id>', methods=['POST'])
@portal_required('parent')
def parent_select_child(ctx, student_id):
    link = ParentStudentLink.query.filter_by(parent_username=ctx.username, student_id=student_id).first()
    if not link:
        return jsonify({'status': 'error', 'message': 'You are not authorized to perform this action.'}), 403
    session['student_id'] = student_id
    return jsonify({'status': 'ok', 'student_id': student_id})

@app.route('/dashboard')
@portal_required('parent')
def dashboard(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        days, periods = _grid()
        return assemblers.assemble_dashboard(store, student, date.today(), days, periods).as_dict()
    return _serve('dashboard', ctx, build)

@app.route('/parent/timetable')
@portal_required('parent')
def parent_timetable(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        days, periods = _grid()
        key = assemblers.student_class_key(student)
        return assemblers.assemble_class_timetable(store, key, days, periods).as_dict()
    return _serve('parent_timetable', ctx, build)

@app.route('/parent/exams')
@portal_required('parent')
def parent_exams(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        return assemblers.assemble_exam_calendar(store, student, date.today()).as_dict()
    return _serve('parent_exams', ctx, build)

@app.route('/parent/syllabus')
@portal_required('parent')
def parent_syllabus(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        key = assemblers.student_class_key(student)
        return assemblers.assemble_exam_schedule(store, key).as_dict()
    return _serve('parent_syllabus', ctx, build)

@app.route('/parent/marks')
@portal_required('parent')
def parent_marks(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        return assemblers.assemble_report_card(store, student).as_dict()
    return _serve('parent_marks', ctx, build)

@app.route('/parent/fees')
@portal_required('parent')
def parent_fees(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        return assemblers.assemble_fees(store, student.class_name, student.id).as_dict()
    return _serve('parent_fees', ctx, build)

@app.route('/parent/homework')
@portal_required('parent')
def parent_homework(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        key = assemblers.student_class_key(student)
        return assemblers.assemble_homework(store, key, date.today()).as_dict()
    return _serve('parent_homework', ctx, build)

@app.route('/parent/attendance')
@portal_required('parent')
def parent_attendance(ctx):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx)
        return assemblers.assemble_attendance_summary(store, student.id).as_dict()
    return _serve('parent_attendance', ctx, build)

# --- Teacher portal ---
@app.route('/teacher/timetable')
@portal_required('teacher')
def teacher_timetable(ctx):
    store = _store()
    def build():
        teacher = assemblers.resolve_teacher(store, ctx)
        days, periods = _grid()
        return assemblers.assemble_teacher_timetable(store, teacher, days, periods).as_dict()
    return _serve('teacher_timetable', ctx, build)

@app.route('/teacher/allocations')
@portal_required('teacher')
def teacher_allocations(ctx):
    store = _store()
    def build():
        teacher = assemblers.resolve_teacher(store, ctx)
        return {'allocations': assemblers.assemble_allocations(store, teacher)}
    return _serve('teacher_allocations', ctx, build)

@app.route('/teacher/exam-timetable')
@portal_required('teacher')
def teacher_exam_timetable(ctx):
    store = _store()
    def build():
        teacher = assemblers.resolve_teacher(store, ctx)
        key = _class_param(request.args)
        assemblers.require_class(store, teacher, key)
        return assemblers.assemble_exam_schedule(store, key).as_dict()
    return _serve('teacher_exam_timetable', ctx, build)

@app.route('/teacher/marks', methods=['GET', 'POST'])
@portal_required('teacher')
def teacher_marks(ctx):
    store = _store()
    source = request.args if request.method == 'GET' else (request.get_json(silent=True) or {})
    exam_id = _int_param(source, 'exam_id')
    subject_id = _int_param(source, 'subject_id')
    key = _class_param(source)
    teacher = assemblers.resolve_teacher(store, ctx)
    assemblers.require_assignment(store, teacher, subject_id, key)
    pass_mark, total = _marks_rules()
    if request.method == 'POST':
        result = assemblers.submit_marks(store, exam_id, subject_id, key, source.get('entries') or {},
                                         pass_mark=pass_mark, total_marks=total)
        return jsonify({'status': 'ok', 'data': result.as_dict()})
    def build():
        return assemblers.assemble_marks_roster(store, exam_id, subject_id, key, pass_mark).as_dict()
    return _serve('teacher_marks', ctx, build)

@app.route('/teacher/attendance/<int:slot_id>', methods=['GET', 'POST'])
@portal_required('teacher')
def teacher_attendance(ctx, slot_id):
    store = _store()
    teacher = assemblers.resolve_teacher(store, ctx)
    on_date = _date_param(request.args)
    if request.method == 'POST':
        payload = request.get_json(silent=True) or {}
        sheet = assemblers.save_attendance(store, teacher, slot_id, on_date, payload.get('statuses') or {},
                                           allow_edit=app.config.get('ATTENDANCE_ALLOW_EDIT', True))
        return jsonify({'status': 'ok', 'data': sheet.as_dict()})
    def build():
        return assemblers.assemble_attendance_sheet(store, teacher, slot_id, on_date).as_dict()
    return _serve('teacher_attendance', ctx, build)

@app.route('/teacher/homework', methods=['GET', 'POST'])
@portal_required('teacher')
def teacher_homework(ctx):
    store = _store()
    teacher = assemblers.resolve_teacher(store, ctx)
    if request.method == 'POST':
        payload = request.get_json(silent=True) or {}
        homework_id = assemblers.save_homework(store, teacher, _int_param(payload, 'slot_id'), payload, date.today())
        return jsonify({'status': 'ok', 'id': homework_id}), 201
    def build():
        return assemblers.assemble_teacher_homework(store, teacher).as_dict()
    return _serve('teacher_homework', ctx, build)

@app.route('/teacher/homework/<int:homework_id>', methods=['POST'])
@portal_required('teacher')
def teacher_homework_update(ctx, homework_id):
    store = _store()
    teacher = assemblers.resolve_teacher(store, ctx)
    payload = request.get_json(silent=True) or {}
    assemblers.save_homework(store, teacher, _int_param(payload, 'slot_id'), payload, date.today(),
                             homework_id=homework_id)
    return jsonify({'status': 'ok', 'id': homework_id})

@app.route('/teacher/syllabus', methods=['GET', 'POST'])
@portal_required('teacher')
def teacher_syllabus(ctx):
    store = _store()
    teacher = assemblers.resolve_teacher(store, ctx)
    if request.method == 'POST':
        payload = request.get_json(silent=True) or {}
        entry_id = assemblers.add_syllabus(store, teacher, _int_param(payload, 'exam_id'),
                                           _int_param(payload, 'subject_id'), _class_param(payload),
                                           payload.get('chapters'))
        return jsonify({'status': 'ok', 'id': entry_id}), 201
    def build():
        return {'entries': assemblers.assemble_syllabus_history(store, teacher)}
    return _serve('teacher_syllabus', ctx, build)

@app.route('/teacher/syllabus/<int:entry_id>', methods=['DELETE'])
@portal_required('teacher')
def teacher_syllabus_delete(ctx, entry_id):
    store = _store()
    teacher = assemblers.resolve_teacher(store, ctx)
    assemblers.delete_syllabus(store, teacher, entry_id)
    return jsonify({'status': 'ok', 'deleted': entry_id})

# --- Admin portal ---
@app.route('/admin/timetable')
@portal_required('admin')
def admin_timetable(ctx):
    store = _store()
    def build():
        days, periods = _grid()
        return assemblers.assemble_class_timetable(store, _class_param(request.args), days, periods).as_dict()
    return _serve('admin_timetable', ctx, build)

@app.route('/admin/examtimetable')
@portal_required('admin')
def admin_exam_timetable(ctx):
    store = _store()
    def build():
        return assemblers.assemble_exam_schedule(store, _class_param(request.args)).as_dict()
    return _serve('admin_examtimetable', ctx, build)

@app.route('/admin/examsmarks', methods=['GET', 'POST'])
@portal_required('admin')
def admin_exams_marks(ctx):
    store = _store()
    source = request.args if request.method == 'GET' else (request.get_json(silent=True) or {})
    exam_id = _int_param(source, 'exam_id')
    subject_id = _int_param(source, 'subject_id')
    key = _class_param(source)
    pass_mark, total = _marks_rules()
    if request.method == 'POST':
        result = assemblers.submit_marks(store, exam_id, subject_id, key, source.get('entries') or {},
                                         pass_mark=pass_mark, total_marks=total)
        return jsonify({'status': 'ok', 'data': result.as_dict()})
    def build():
        return assemblers.assemble_marks_roster(store, exam_id, subject_id, key, pass_mark).as_dict()
    return _serve('admin_examsmarks', ctx, build)

@app.route('/admin/fees')
@portal_required('admin')
def admin_fees(ctx):
    store = _store()
    class_label = (request.args.get('class') or '').strip()
    def build():
        return assemblers.assemble_fees(store, class_label).as_dict()
    return _serve('admin_fees', ctx, build)

@app.route('/admin/students/<int:student_id>/report-card')
@portal_required('admin')
def admin_report_card(ctx, student_id):
    store = _store()
    def build():
        student = assemblers.resolve_student(store, ctx, student_id)
        return assemblers.assemble_report_card(store, student).as_dict()
    return _serve('admin_report_card', ctx, build)

# --- Health & errors ---
@app.route("/healthz")
def healthz():
    try:
        student_count = Student.query.count()
        teacher_count = Teacher.query.count()
        return jsonify({"status": "ok", "students": student_count, "teachers": teacher_count}), 200
    except Exception as e:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "message": str(e)}), 500

@app.errorhandler(NoScope)
@app.errorhandler(UnresolvedIdentity)
def handle_empty_state(error):
    logger.info(f"Empty view: {error}")
    return jsonify({'status': 'empty', 'reason': error.reason, 'message': str(error)}), 200

@app.errorhandler(FetchFailed)
def handle_fetch_failed(error):
    return jsonify({'status': 'error', 'reason': error.reason,
                    'message': 'Could not load data. Please try again.'}), 503

@app.errorhandler(InvalidEntry)
def handle_invalid_entry(error):
    return jsonify({'status': 'error', 'reason': error.reason, 'message': str(error)}), 400

@app.errorhandler(404)
def handle_404(error):
    return "<h1>404 Not Found</h1>", 404

@app.errorhandler(500)
def handle_500(error):
    logger.exception("Unhandled exception")
    return "<h1>500 Internal Server Error</h1>", 500
