"""
SQL constructs not covered by SQLAlchemy's generic function set.

- greatest(a, b, ...)   GREATEST on PostgreSQL/MySQL, scalar max() on SQLite
- as_datetime(expr)     CAST(expr AS DATETIME), TIMESTAMP on PostgreSQL,
                        left alone on SQLite (dates are stored as text there)
"""

from __future__ import annotations

from sqlalchemy import DateTime
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement, ReturnTypeFromArgs


class greatest(ReturnTypeFromArgs):
    inherit_cache = True


@compiles(greatest, "sqlite")
def _sqlite_greatest(element, compiler, **kw):
    return "max(%s)" % compiler.process(element.clauses, **kw)


class as_datetime(FunctionElement):
    type = DateTime()
    name = "as_datetime"
    inherit_cache = True


@compiles(as_datetime)
def _default_as_datetime(element, compiler, **kw):
    return "CAST(%s AS DATETIME)" % compiler.process(element.clauses, **kw)


@compiles(as_datetime, "postgresql")
def _postgresql_as_datetime(element, compiler, **kw):
    return "CAST(%s AS TIMESTAMP)" % compiler.process(element.clauses, **kw)


@compiles(as_datetime, "sqlite")
def _sqlite_as_datetime(element, compiler, **kw):
    return compiler.process(element.clauses, **kw)
