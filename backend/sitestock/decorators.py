# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import NotAuthenticated
from .permissions import ROLES, Principal


def _unauthenticated(message: str):
    return jsonify({"data": None, "error": NotAuthenticated(message).to_dict()}), NotAuthenticated.http_status


def require_auth(f):
    """
    Require an upstream-authenticated principal.

    Identity is established by the auth layer in front of this service and
    forwarded as headers:
    - X-User-Id: the user's id (required)
    - X-User-Role: admin | central_store_manager | project_store_manager (required)
    - X-Project-Id: project of a project store manager (optional)

    Sets g.principal for the route. Returns 401 if identity is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get("X-User-Id") or "").strip()
        role = (request.headers.get("X-User-Role") or "").strip()
        raw_project = (request.headers.get("X-Project-Id") or "").strip()

        if not user_id:
            return _unauthenticated("Authentication required")
        if role not in ROLES:
            return _unauthenticated("Missing or unknown role")

        project_id = None
        if raw_project:
            if not raw_project.isdigit():
                return _unauthenticated("Invalid project context")
            project_id = int(raw_project)

        g.principal = Principal(user_id=user_id, role=role, project_id=project_id)
        return f(*args, **kwargs)

    return decorated_function
