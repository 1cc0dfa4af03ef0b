"""
Audit logging middleware.
Auto-logs all requests to endpoints that read or write patient data
(patients, reports, medicine usage).
"""
import logging
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from ..models.audit import AuditLog
from ..models import base as db_base
from ..core.security import decode_access_token

logger = logging.getLogger(__name__)

# Endpoints that expose patient data - requests to these paths are logged
PATIENT_DATA_PATH_PREFIXES = (
    "/api/v1/patients",
    "/api/v1/reports",
    "/api/v1/usage",
)

ACTION_MAP = {
    "GET": "view",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def describe_request(method: str, path: str):
    """Map a request onto (action, resource_type, resource_id) for the audit row."""
    parts = [p for p in path.split("/") if p]
    resource_type = parts[2] if len(parts) >= 3 else "unknown"
    resource_id = "/".join(parts[3:]) if len(parts) >= 4 else "collection"
    return ACTION_MAP.get(method, method.lower()), resource_type, resource_id


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware that auto-logs access to patient-data endpoints."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in PATIENT_DATA_PATH_PREFIXES):
            return response
        if request.method not in ACTION_MAP:
            return response

        user_id = "anonymous"
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = decode_access_token(auth_header[7:])
            if payload:
                user_id = payload.get("sub", "anonymous")

        action, resource_type, resource_id = describe_request(request.method, path)

        db = db_base.SessionLocal()
        try:
            db.add(
                AuditLog(
                    user_id=user_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    ip_address=request.client.host if request.client else None,
                    request_method=request.method,
                    request_path=path,
                    user_agent=request.headers.get("User-Agent"),
                )
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "Audit log write failed for %s %s (user=%s): %s",
                request.method, path, user_id, exc,
            )
        finally:
            db.close()

        return response
