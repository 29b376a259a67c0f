import os

def _flag(name, default):
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")

class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_TIMEOUT_MINUTES = int(os.environ.get("SESSION_TIMEOUT_MINUTES", 120))
    # Marks governance
    MARKS_PASS_THRESHOLD = float(os.environ.get("MARKS_PASS_THRESHOLD", 35))
    MARKS_TOTAL_DEFAULT = float(os.environ.get("MARKS_TOTAL_DEFAULT", 100))
    # Timetable grid
    SCHOOL_DAYS = [d.strip() for d in os.environ.get(
        "SCHOOL_DAYS", "Monday,Tuesday,Wednesday,Thursday,Friday,Saturday"
    ).split(",") if d.strip()]
    PERIODS_PER_DAY = int(os.environ.get("PERIODS_PER_DAY", 6))
    # Attendance
    ATTENDANCE_ALLOW_EDIT = _flag("ATTENDANCE_ALLOW_EDIT", "true")
    # Stale request detection for portal views
    REJECT_STALE_GENERATIONS = _flag("REJECT_STALE_GENERATIONS", "true")

class DevelopmentConfig(BaseConfig):
    # Default to instance/school.db unless overridden
    @staticmethod
    def database_uri(instance_path: str) -> str:
        db_path = os.environ.get("DATABASE_PATH")
        if db_path:
            return f"sqlite:///{db_path}"
        return "sqlite:///" + os.path.join(instance_path, "school.db")

class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URI", "sqlite:///:memory:")

class ProductionConfig(BaseConfig):
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URI", "sqlite:///school.db")
