import ipaddress
import json
import os
from decimal import Decimal
import pathlib
import sys

from starlette.requests import Request

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from audit import get_request_ip, log_action  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from models import AuditLog, PaymentMethodEnum  # noqa: E402


def setup_module(module):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _build_request(headers=None, client=("203.0.113.50", 12345)):
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "PUT",
        "scheme": "http",
        "path": "/",
        "raw_path": b"/",
        "query_string": b"",
        "headers": headers or [],
        "client": client,
        "server": ("testserver", 80),
    }
    return Request(scope)


def test_x_forwarded_for_ignored_without_trusted_proxy(monkeypatch):
    monkeypatch.setattr("audit.TRUSTED_PROXY_NETWORKS", tuple())
    request = _build_request(headers=[(b"x-forwarded-for", b"198.51.100.10")])
    assert get_request_ip(request) == "203.0.113.50"


def test_x_forwarded_for_accepted_from_trusted_proxy(monkeypatch):
    network = ipaddress.ip_network("10.0.0.0/24")
    monkeypatch.setattr("audit.TRUSTED_PROXY_NETWORKS", (network,))
    request = _build_request(
        headers=[(b"x-forwarded-for", b"198.51.100.10, 10.0.0.7")],
        client=("10.0.0.5", 43210),
    )
    assert get_request_ip(request) == "198.51.100.10"


def test_log_action_records_origin_and_serialises_money():
    db = SessionLocal()
    request = _build_request(headers=[(b"user-agent", b"x" * 300)])
    log_action(
        db,
        request,
        actor_user_id="org-7",
        action="manual_payment",
        entity_type="event_registration",
        entity_id=3,
        payload={"fee_amount": Decimal("14.52"), "method": PaymentMethodEnum.MANUAL},
    )

    log = db.query(AuditLog).filter(AuditLog.entity_id == 3).one()
    assert log.ip == "203.0.113.50"
    assert len(log.user_agent) == 255
    assert json.loads(log.payload_json) == {"fee_amount": "14.52", "method": "manual"}
    db.close()


def test_log_action_without_request():
    db = SessionLocal()
    log = log_action(
        db,
        None,
        actor_user_id=None,
        action="financial_settings_update",
        entity_type="financial_settings",
    )
    assert log.ip is None
    assert log.payload_json is None
    db.close()
