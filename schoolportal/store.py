"""Thin data-store client used by the assemblers.

Filters are small callables taking the model class and returning a SQLAlchemy
expression, so assemblers can say ``store.select(Homework, [eq('section', 'A')])``
without touching query objects. Every database error is rolled back and
surfaces as :class:`~schoolportal.errors.FetchFailed`.
"""
import logging
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from schoolportal.errors import FetchFailed

logger = logging.getLogger(__name__)

# --- Filter predicates ---
def eq(column, value):
    return lambda model: getattr(model, column) == value

def ilike(column, pattern):
    return lambda model: getattr(model, column).ilike(pattern)

def gte(column, value):
    return lambda model: getattr(model, column) >= value

def lte(column, value):
    return lambda model: getattr(model, column) <= value

def in_(column, values):
    return lambda model: getattr(model, column).in_(list(values))

def _related(model, relationship):
    attr = getattr(model, relationship)
    return attr, attr.property.mapper.class_

def overlaps(relationship, column, values):
    """Related collection shares at least one value with ``values``."""
    def build(model):
        attr, target = _related(model, relationship)
        return attr.any(getattr(target, column).in_(list(values)))
    return build

def contains(relationship, column, values):
    """Related collection holds every one of ``values``."""
    def build(model):
        attr, target = _related(model, relationship)
        return and_(*[attr.any(getattr(target, column) == v) for v in values])
    return build

def any_of(*predicates):
    return lambda model: or_(*[p(model) for p in predicates])


def _ordering(model, order_by):
    clauses = []
    for spec in order_by:
        if spec.startswith('-'):
            clauses.append(getattr(model, spec[1:]).desc())
        else:
            clauses.append(getattr(model, spec).asc())
    return clauses


class DataStore:
    def __init__(self, session):
        self.session = session

    def _fail(self, operation, model, exc):
        self.session.rollback()
        table = model.__table__.name
        logger.exception(f"{operation} on {table} failed")
        return FetchFailed(operation, table, exc)

    def select(self, model, filters=(), order_by=(), columns=None, embed=(), limit=None):
        """Rows of ``model`` matching every filter.

        ``columns`` returns tuples of just those columns; ``embed`` eagerly
        loads the named relationships alongside each row.
        """
        try:
            if columns:
                query = self.session.query(*[getattr(model, c) for c in columns])
            else:
                query = self.session.query(model)
                for rel in embed:
                    query = query.options(joinedload(getattr(model, rel)))
            for f in filters:
                query = query.filter(f(model))
            if order_by:
                query = query.order_by(*_ordering(model, order_by))
            if limit is not None:
                query = query.limit(limit)
            rows = query.all()
        except SQLAlchemyError as e:
            raise self._fail('select', model, e) from e
        return rows

    def select_one(self, model, filters=(), embed=()):
        rows = self.select(model, filters, embed=embed, limit=1)
        return rows[0] if rows else None

    def insert(self, model, rows):
        objs = [model(**row) for row in rows]
        try:
            self.session.add_all(objs)
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail('insert', model, e) from e
        logger.info(f"Inserted {len(objs)} row(s) into {model.__table__.name}")
        return objs

    def update(self, model, patch, filters):
        if not filters:
            # Never update an unscoped row set
            raise ValueError("update requires at least one filter")
        try:
            query = self.session.query(model)
            for f in filters:
                query = query.filter(f(model))
            count = query.update(patch, synchronize_session='fetch')
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail('update', model, e) from e
        logger.info(f"Updated {count} row(s) in {model.__table__.name}")
        return count

    def delete(self, model, filters):
        if not filters:
            raise ValueError("delete requires at least one filter")
        try:
            query = self.session.query(model)
            for f in filters:
                query = query.filter(f(model))
            count = query.delete(synchronize_session='fetch')
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail('delete', model, e) from e
        logger.info(f"Deleted {count} row(s) from {model.__table__.name}")
        return count

    def upsert(self, model, rows, conflict_keys):
        """Insert ``rows``, overwriting any existing row with the same ``conflict_keys``."""
        saved = []
        try:
            for row in rows:
                query = self.session.query(model)
                for k in conflict_keys:
                    query = query.filter(getattr(model, k) == row[k])
                obj = query.first()
                if obj is None:
                    obj = model(**row)
                    self.session.add(obj)
                else:
                    for k, v in row.items():
                        setattr(obj, k, v)
                saved.append(obj)
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail('upsert', model, e) from e
        logger.info(f"Upserted {len(saved)} row(s) into {model.__table__.name}")
        return saved
