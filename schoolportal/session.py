import threading
from dataclasses import dataclass
from typing import Optional

ROLES = ('admin', 'teacher', 'parent')


@dataclass(frozen=True)
class SessionContext:
    """Who is asking, built once at login and passed into every assembly."""

    username: str
    role: str
    student_id: Optional[int] = None  # active child for parent sessions

    @property
    def teacher_email(self):
        return self.username if self.role == 'teacher' else None

    @classmethod
    def from_session(cls, data):
        """Build a context from the signed session cookie, or ``None`` if logged out."""
        if not data.get('logged_in') or data.get('role') not in ROLES:
            return None
        student_id = data.get('student_id')
        return cls(
            username=data.get('user', ''),
            role=data['role'],
            student_id=int(student_id) if student_id is not None else None,
        )


class RequestGenerations:
    """Newest generation seen per (user, view), so superseded requests can be dropped.

    A client bumps ``gen`` every time it re-triggers a view; when an older
    request finishes after a newer one started, its result is stale.

    State lives in this process only; with several workers a client must stick
    to one of them for the check to hold. Entries for a user are dropped at
    logout.
    """

    def __init__(self):
        self._latest = {}
        self._lock = threading.Lock()

    def begin(self, key, generation=None):
        with self._lock:
            current = self._latest.get(key, 0)
            if generation is None:
                generation = current + 1
            if generation > current:
                self._latest[key] = generation
            return generation

    def is_current(self, key, generation):
        with self._lock:
            return self._latest.get(key, 0) == generation

    def forget(self, username):
        with self._lock:
            for key in [k for k in self._latest if k[0] == username]:
                del self._latest[key]
