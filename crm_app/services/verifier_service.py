# crm_app/services/verifier_service.py
"""
Contact point verification - ask an external verifier whether an email address
or phone number is deliverable and store the answer on matching customers.
"""

from dataclasses import dataclass
from typing import Optional

import requests
from flask import current_app

from crm_app.models import Customer, ValidationStatus, db


@dataclass(frozen=True)
class VerificationResult:
    kind: str  # "email" or "phone"
    value: str
    status: str
    skipped: bool = False


class ContactVerifier:
    """Thin HTTP client for the verification service configured via ``CONTACT_VERIFIER_URL``"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        config = current_app.config
        self.base_url = (base_url or config.get("CONTACT_VERIFIER_URL") or "").rstrip("/")
        self.token = token or config.get("CONTACT_VERIFIER_TOKEN")
        self.timeout = timeout or config.get("CONTACT_VERIFIER_TIMEOUT", 10.0)
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def verify(self, kind: str, value: str) -> VerificationResult:
        if kind not in ("email", "phone"):
            raise ValueError(f"Unsupported contact point kind '{kind}'")
        if not self.enabled:
            return VerificationResult(kind=kind, value=value, status=ValidationStatus.UNKNOWN.value, skipped=True)

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = self.session.post(
            f"{self.base_url}/{kind}",
            json={kind: value},
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json() or {}
        status = str(payload.get("status") or ValidationStatus.UNKNOWN.value).strip().lower()
        return VerificationResult(kind=kind, value=value, status=status)

    def apply(self, result: VerificationResult) -> int:
        """Store ``result`` on every customer whose primary contact point matches. Returns rows updated."""
        if result.skipped:
            return 0
        if result.kind == "email":
            query = Customer.query.filter(Customer.primary_email == result.value)
            values = {Customer.email_validation_status: result.status}
        else:
            query = Customer.query.filter(Customer.primary_phone == result.value)
            values = {Customer.phone_validation_status: result.status}
        updated = query.update(values, synchronize_session=False)
        db.session.commit()
        return updated
