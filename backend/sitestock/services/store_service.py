# Overview: Registry operations for projects and stores.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..decimal_utils import ZERO
from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import InventoryBalance, Project, Store, STORE_TYPES
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

PROJECT_STATUSES = ("active", "on_hold", "completed")


def _clean_name(value, field: str = "name") -> str:
    name = str(value).strip() if value is not None else ""
    if not name:
        raise ValidationError(f"{field} is required")
    if len(name) > 255:
        raise ValidationError(f"{field} exceeds max length 255")
    return name


def _active_store_named(name: str, *, exclude_id: int | None = None) -> Store | None:
    q = Store.query.filter(func.lower(Store.name) == name.lower(), Store.deleted_at.is_(None))
    if exclude_id is not None:
        q = q.filter(Store.id != exclude_id)
    return q.first()


def _active_project_named(name: str, *, exclude_id: int | None = None) -> Project | None:
    q = Project.query.filter(func.lower(Project.name) == name.lower(), Project.deleted_at.is_(None))
    if exclude_id is not None:
        q = q.filter(Project.id != exclude_id)
    return q.first()


# -- Projects --

def create_project(
    name: str,
    *,
    description: str | None = None,
    location: str | None = None,
    status: str = "active",
    actor_id: str | None = None,
) -> Project:
    """Create a project together with its project store ("<name> Store")."""
    name = _clean_name(name)
    if status not in PROJECT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PROJECT_STATUSES)}")

    def _op():
        if _active_project_named(name):
            raise ConflictError(f"A project named '{name}' already exists")
        store_name = f"{name} Store"
        if _active_store_named(store_name):
            raise ConflictError(f"A store named '{store_name}' already exists")

        project = Project(name=name, description=description, location=location, status=status)
        db.session.add(project)
        db.session.flush()

        store = Store(name=store_name, type="project", project_id=project.id)
        db.session.add(store)
        db.session.flush()

        append_audit_event(
            event_type="PROJECT_CREATED",
            entity_type="project",
            entity_id=project.id,
            store_id=store.id,
            actor_id=actor_id,
            note=name,
        )
        db.session.commit()
        logger.info("Created project %s with store %s", project.id, store.id)
        return project

    return run_with_retry(_op)


def get_project(project_id: int, *, include_deleted: bool = False) -> Project:
    project = db.session.get(Project, project_id)
    if project is None or (project.deleted_at is not None and not include_deleted):
        raise NotFound("Project not found")
    return project


def list_projects(*, include_deleted: bool = False) -> list[Project]:
    q = Project.query
    if not include_deleted:
        q = q.filter(Project.deleted_at.is_(None))
    return q.order_by(Project.name.asc()).all()


def update_project(
    project_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    location: str | None = None,
    status: str | None = None,
    actor_id: str | None = None,
) -> Project:
    if name is not None:
        name = _clean_name(name)
    if status is not None and status not in PROJECT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PROJECT_STATUSES)}")

    def _op():
        project = lock_for_update(Project.query.filter_by(id=project_id)).first()
        if project is None or project.deleted_at is not None:
            raise NotFound("Project not found")

        if name is not None:
            if _active_project_named(name, exclude_id=project.id):
                raise ConflictError(f"A project named '{name}' already exists")
            project.name = name
        if description is not None:
            project.description = description
        if location is not None:
            project.location = location
        if status is not None:
            project.status = status

        append_audit_event(
            event_type="PROJECT_UPDATED",
            entity_type="project",
            entity_id=project.id,
            actor_id=actor_id,
        )
        db.session.commit()
        return project

    return run_with_retry(_op)


def soft_delete_project(project_id: int, *, actor_id: str | None = None) -> Project:
    """Soft-delete a project and its store. Blocked while the store holds stock."""
    def _op():
        project = lock_for_update(Project.query.filter_by(id=project_id)).first()
        if project is None:
            raise NotFound("Project not found")
        if project.deleted_at is not None:
            return project

        now = utcnow()
        for store in Store.query.filter_by(project_id=project.id).filter(Store.deleted_at.is_(None)).all():
            _retire_store(store, now=now, actor_id=actor_id)

        project.deleted_at = now
        append_audit_event(
            event_type="PROJECT_DELETED",
            entity_type="project",
            entity_id=project.id,
            actor_id=actor_id,
        )
        db.session.commit()
        return project

    return run_with_retry(_op)


# -- Stores --

def create_store(
    name: str,
    store_type: str,
    *,
    project_id: int | None = None,
    actor_id: str | None = None,
) -> Store:
    name = _clean_name(name)
    if store_type not in STORE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(STORE_TYPES)}")
    if store_type == "central" and project_id is not None:
        raise ValidationError("Central stores cannot belong to a project")
    if store_type == "project" and project_id is None:
        raise ValidationError("Project stores require a project_id")

    def _op():
        if _active_store_named(name):
            raise ConflictError(f"A store named '{name}' already exists")

        if project_id is not None:
            project = db.session.get(Project, project_id)
            if project is None or project.deleted_at is not None:
                raise NotFound("Project not found")
            existing = Store.query.filter_by(project_id=project_id).filter(Store.deleted_at.is_(None)).first()
            if existing is not None:
                raise ConflictError("This project already has a store")

        store = Store(name=name, type=store_type, project_id=project_id)
        db.session.add(store)
        db.session.flush()

        append_audit_event(
            event_type="STORE_CREATED",
            entity_type="store",
            entity_id=store.id,
            store_id=store.id,
            actor_id=actor_id,
            note=name,
        )
        db.session.commit()
        return store

    return run_with_retry(_op)


def update_store(store_id: int, *, name: str | None = None, actor_id: str | None = None) -> Store:
    if name is not None:
        name = _clean_name(name)

    def _op():
        store = lock_for_update(Store.query.filter_by(id=store_id)).first()
        if store is None or store.deleted_at is not None:
            raise NotFound("Store not found")

        if name is not None:
            if _active_store_named(name, exclude_id=store.id):
                raise ConflictError(f"A store named '{name}' already exists")
            store.name = name

        append_audit_event(
            event_type="STORE_UPDATED",
            entity_type="store",
            entity_id=store.id,
            store_id=store.id,
            actor_id=actor_id,
        )
        db.session.commit()
        return store

    return run_with_retry(_op)


def _retire_store(store: Store, *, now, actor_id: str | None) -> None:
    """Soft-delete one store inside the caller's transaction."""
    balances = lock_for_update(InventoryBalance.query.filter_by(store_id=store.id)).all()
    if any(b.quantity != ZERO for b in balances):
        raise ConflictError("Cannot delete store with existing inventory. Please transfer or issue all items first.")

    # Zero rows carry no information once the store is gone
    for b in balances:
        db.session.delete(b)

    store.deleted_at = now
    append_audit_event(
        event_type="STORE_DELETED",
        entity_type="store",
        entity_id=store.id,
        store_id=store.id,
        actor_id=actor_id,
    )


def soft_delete_store(store_id: int, *, actor_id: str | None = None) -> Store:
    """
    Soft-delete a store.

    Raises ConflictError while any balance in the store is non-zero.
    Already-deleted stores are returned unchanged.
    """
    def _op():
        store = lock_for_update(Store.query.filter_by(id=store_id)).first()
        if store is None:
            raise NotFound("Store not found")
        if store.deleted_at is not None:
            return store

        _retire_store(store, now=utcnow(), actor_id=actor_id)
        db.session.commit()
        logger.info("Soft-deleted store %s", store.id)
        return store

    return run_with_retry(_op)


def get_store(store_id: int, *, include_deleted: bool = False) -> Store:
    store = db.session.get(Store, store_id)
    if store is None or (store.deleted_at is not None and not include_deleted):
        raise NotFound("Store not found")
    return store


def list_stores(*, store_type: str | None = None, include_deleted: bool = False) -> list[Store]:
    if store_type is not None and store_type not in STORE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(STORE_TYPES)}")
    q = Store.query
    if store_type is not None:
        q = q.filter(Store.type == store_type)
    if not include_deleted:
        q = q.filter(Store.deleted_at.is_(None))
    # Central stores first, then by name
    return q.order_by(Store.type.asc(), Store.name.asc()).all()


def get_project_store(project_id: int) -> Store:
    store = Store.query.filter_by(project_id=project_id).filter(Store.deleted_at.is_(None)).first()
    if store is None:
        raise NotFound("Project store not found")
    return store
