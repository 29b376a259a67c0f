"""Class/section label reconciliation.

Tables in this school were filled in by different people, so the same class
shows up as ``"10th"``, ``"10"``, ``"10-A"`` or ``"Grade 10"`` with the section
sometimes embedded and sometimes in its own column. Every join on a class goes
through :func:`normalize_class`; nothing else should slice class labels apart.

Policy for compound labels: the text after the *last* ``-`` is the section
("10-A-2" is grade 10 section "2"). This is deliberately no stricter than the
data we have seen.
"""
import re
from typing import NamedTuple, Optional

from schoolportal.errors import UnresolvedIdentity

SEPARATOR = "-"

_ORDINAL_SUFFIX = re.compile(r"(?<=\d)\s*(st|nd|rd|th)\b", re.IGNORECASE)
_NON_DIGIT = re.compile(r"\D")


class ClassKey(NamedTuple):
    """Canonical ``(grade, section)`` join key."""

    grade: int
    section: str

    @property
    def label(self) -> str:
        return f"{self.grade}{SEPARATOR}{self.section}"

    def __str__(self):
        return self.label


def _grade_digits(text: str) -> str:
    return _NON_DIGIT.sub("", _ORDINAL_SUFFIX.sub("", text))


def _split_compound(text: str):
    head, sep, tail = text.rpartition(SEPARATOR)
    if sep and tail.strip():
        return head, tail.strip()
    return text.rstrip(SEPARATOR), ""


def _section_token(section: Optional[str]) -> str:
    if section is None:
        return ""
    raw = str(section).strip()
    return raw.rpartition(SEPARATOR)[2].strip() or raw


def parse_grade(class_label) -> int:
    """Grade number of a label, ignoring any embedded section."""
    text = str(class_label or "").strip()
    head, _ = _split_compound(text)
    digits = _grade_digits(head)
    if not digits:
        raise UnresolvedIdentity(class_label, detail="no grade digits")
    return int(digits)


def normalize_class(class_label, section=None) -> ClassKey:
    """Map a raw class label (and optional section column) to a :class:`ClassKey`.

    A section embedded in the label wins over the separate ``section`` value.
    """
    text = str(class_label or "").strip()
    head, embedded = _split_compound(text)
    digits = _grade_digits(head)
    if not digits:
        raise UnresolvedIdentity(class_label, section, "no grade digits")
    token = embedded or _section_token(section)
    if not token:
        raise UnresolvedIdentity(class_label, section, "no section")
    return ClassKey(int(digits), token.upper())


def ordinal(grade: int) -> str:
    if 10 <= grade % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(grade % 10, "th")
    return f"{grade}{suffix}"


def _unique(values):
    seen = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return seen


def grade_forms(class_label):
    """Every spelling of a grade a table may hold: raw, plain and ordinal."""
    grade = parse_grade(class_label)
    raw = str(class_label).strip()
    if SEPARATOR in raw:
        raw = ""
    return _unique([raw, str(grade), ordinal(grade)])


def class_label_variants(class_label, section=None):
    """Labels an exam's class list may use for this class and section."""
    key = normalize_class(class_label, section)
    plain, nth = str(key.grade), ordinal(key.grade)
    forms = [
        f"{plain}{key.section}",
        f"{plain}{SEPARATOR}{key.section}",
        f"{nth}{key.section}",
        f"{nth}{SEPARATOR}{key.section}",
    ]
    return _unique(forms + grade_forms(class_label))


def grade_pattern(key: ClassKey) -> str:
    """Loose ``ilike`` pattern used to narrow a query before exact matching."""
    return f"%{key.grade}%"


def matches_class(class_label, key: ClassKey, section=None) -> bool:
    """True when a stored label refers to ``key``.

    A label with no section at all applies to every section of its grade.
    """
    try:
        return normalize_class(class_label, section) == key
    except UnresolvedIdentity:
        pass
    try:
        return parse_grade(class_label) == key.grade
    except UnresolvedIdentity:
        return False
