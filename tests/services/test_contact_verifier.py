from unittest.mock import Mock

import pytest
import requests

from crm_app.models import Customer, db
from crm_app.services.verifier_service import ContactVerifier, VerificationResult


def _session(payload=None, error=None):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.side_effect = error
    session = Mock(spec=requests.Session)
    session.post.return_value = response
    return session


def test_verifier_without_url_skips(app):
    result = ContactVerifier().verify("email", "ada@example.com")

    assert result.skipped is True
    assert result.status == "unknown"
    assert ContactVerifier().apply(result) == 0


def test_verifier_posts_value_and_normalizes_status(app):
    session = _session({"status": " Valid "})
    verifier = ContactVerifier("https://verify.test/", token="secret", timeout=3, session=session)

    result = verifier.verify("phone", "555-0100")

    assert result == VerificationResult(kind="phone", value="555-0100", status="valid")
    session.post.assert_called_once_with(
        "https://verify.test/phone",
        json={"phone": "555-0100"},
        headers={"Authorization": "Bearer secret"},
        timeout=3,
    )


def test_verifier_propagates_http_errors(app):
    verifier = ContactVerifier("https://verify.test", session=_session(error=requests.HTTPError("503")))

    with pytest.raises(requests.HTTPError):
        verifier.verify("email", "ada@example.com")


def test_verifier_rejects_unknown_kind(app):
    with pytest.raises(ValueError):
        ContactVerifier().verify("fax", "123")


def test_apply_updates_matching_customers(app):
    db.session.add_all(
        [
            Customer(primary_email="ada@example.com", email_validation_status="unknown"),
            Customer(primary_email="grace@example.com", email_validation_status="unknown"),
        ]
    )
    db.session.commit()

    updated = ContactVerifier().apply(VerificationResult(kind="email", value="ada@example.com", status="invalid"))

    assert updated == 1
    statuses = {
        customer.primary_email: customer.email_validation_status
        for customer in Customer.query.execution_options(populate_existing=True).all()
    }
    assert statuses == {"ada@example.com": "invalid", "grace@example.com": "unknown"}
