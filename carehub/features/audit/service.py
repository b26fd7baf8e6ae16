"""
Audit logging helper used by every write endpoint.
"""
from typing import Any, Dict, Optional
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.features.audit.models import AuditLog
from carehub.utils import get_logger


log = get_logger(__name__)


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[int],
    action: str,
    resource_type: str,
    resource_id: Any = None,
    description: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Add an audit log entry to the current unit of work.

    The entry is flushed, not committed, so it is persisted or rolled back
    together with the change it describes.
    
    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "CREATE", "UPDATE", "EMAIL_SENT")
        resource_type: Type of resource (e.g., "PATIENT", "PATIENT_TASK")
        resource_id: ID of the resource
        description: Human-readable summary
        details: Additional details
        request: Incoming request, for client IP and user agent
    
    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        description=description,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )
    
    db.add(audit_log)
    await db.flush()
    
    log.info(
        f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id}"
    )
    
    return audit_log
