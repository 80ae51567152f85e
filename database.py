import sqlite3

from sqlalchemy import String, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.sql.functions import GenericFunction

from config import get_settings


class casefold(GenericFunction):
    """Unicode case folding, ``func.casefold(column)``.

    SQLite's ``lower()`` folds ASCII only, so SQLite connections get a
    ``casefold`` function backed by ``str.casefold``. Other backends render
    ``lower()``.
    """

    type = String()
    inherit_cache = True


@compiles(casefold)
def _compile_casefold(element, compiler, **kw):
    return f"lower({compiler.process(element.clauses, **kw)})"


@compiles(casefold, "sqlite")
def _compile_casefold_sqlite(element, compiler, **kw):
    return f"casefold({compiler.process(element.clauses, **kw)})"


def _sql_casefold(value):
    if value is None:
        return None
    return str(value).casefold()


@event.listens_for(Engine, "connect")
def _register_sqlite_functions(dbapi_conn, _record):
    if isinstance(dbapi_conn, sqlite3.Connection):
        dbapi_conn.create_function("casefold", 1, _sql_casefold, deterministic=True)


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        eng = create_engine(
            database_url, echo=echo, connect_args={"check_same_thread": False}
        )
        event.listen(eng, "connect", _enable_sqlite_wal)
        return eng
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def _enable_sqlite_wal(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.close()


_settings = get_settings()
engine = make_engine(_settings.database_url, echo=_settings.sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass
