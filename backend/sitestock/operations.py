# Overview: Operation boundary; turns service results and typed errors into result envelopes.

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, NamedTuple

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from .errors import LedgerError, StorageError
from .extensions import db

logger = logging.getLogger(__name__)


class WithSummary(NamedTuple):
    """Result of a report operation: rows plus an aggregate summary."""
    data: Any
    summary: dict


def run_operation(fn, *args, **kwargs) -> dict:
    """
    Call fn and wrap the outcome.

    Success: {"data": ..., "error": None} (plus "summary" for reports).
    Failure: {"data": None, "error": {"kind", "message"}}. The session is rolled
    back; storage failures are logged with a traceback and reported opaquely.
    """
    try:
        result = fn(*args, **kwargs)
    except LedgerError as exc:
        db.session.rollback()
        logger.debug("%s failed: %s", fn.__name__, exc.message)
        return {"data": None, "error": exc.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Storage failure in %s", fn.__name__)
        return {"data": None, "error": StorageError("The operation could not be completed").to_dict()}

    if isinstance(result, WithSummary):
        return {"data": result.data, "summary": result.summary, "error": None}
    return {"data": result, "error": None}


def operation(fn):
    """Decorator form of run_operation."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        return run_operation(fn, *args, **kwargs)
    return wrapper


_STATUS_BY_KIND = {
    cls.kind: cls.http_status
    for cls in (LedgerError, *LedgerError.__subclasses__())
}


def status_for(envelope: dict, success_status: int = 200) -> int:
    error = envelope.get("error")
    if not error:
        return success_status
    return _STATUS_BY_KIND.get(error.get("kind"), 500)


def envelope_response(envelope: dict, success_status: int = 200):
    """Flask response for an envelope, with the status mapped from the error kind."""
    return jsonify(envelope), status_for(envelope, success_status)
