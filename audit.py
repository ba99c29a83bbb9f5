from datetime import datetime
import ipaddress
import json
import os
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any

from fastapi import Request
from sqlalchemy.orm import Session

from models import AuditLog

USER_AGENT_MAX_LENGTH = 255

# Comma separated networks allowed to set X-Forwarded-For, e.g. "10.0.0.0/8"
TRUSTED_PROXY_NETWORKS = tuple(
    ipaddress.ip_network(value.strip(), strict=False)
    for value in os.getenv("TRUSTED_PROXIES", "").split(",")
    if value.strip()
)


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _is_trusted_proxy(host: Optional[str]) -> bool:
    if not host:
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(address in network for network in TRUSTED_PROXY_NETWORKS)


def get_request_ip(request: Request) -> Optional[str]:
    """Client address, taken from X-Forwarded-For only behind a trusted proxy."""
    host = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and _is_trusted_proxy(host):
        return forwarded.split(",")[0].strip()
    return host


def request_origin(request: Optional[Request]) -> Dict[str, Optional[str]]:
    if request is None:
        return {"ip": None, "user_agent": None}
    ip = get_request_ip(request)
    user_agent = request.headers.get("user-agent")
    if user_agent:
        user_agent = user_agent[:USER_AGENT_MAX_LENGTH]
    return {"ip": ip, "user_agent": user_agent}


def log_action(
    db: Session,
    request: Optional[Request],
    *,
    actor_user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Record a change to fees, tiers or payments.

    ``entity_id`` is ``None`` for platform-wide settings.
    """
    log = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload_json=json.dumps(payload, default=_json_default) if payload else None,
        created_at=datetime.utcnow(),
        **request_origin(request),
    )
    db.add(log)
    db.commit()
    return log
