import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from linker.access import evaluate, Outcome, DenyReason, AccessDecision
from linker.models import Link, File
from linker.resolver import ResolvedResource, ResourceKind
from linker.utils import get_password_hash

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
PASSWORD_HASH = get_password_hash("correct-horse")

def link(expires_at=None):
    return ResolvedResource(ResourceKind.LINK, Link(original_url="https://example.com", expires_at=expires_at))

def file(is_public=True, hashed_password=None, expires_at=None):
    record = File(is_public=is_public, hashed_password=hashed_password, expires_at=expires_at)
    return ResolvedResource(ResourceKind.FILE, record)

def test_link_is_allowed():
    decision = evaluate(link(), NOW)
    assert decision.allowed
    assert decision.outcome is Outcome.ALLOW

def test_expired_link_denied():
    decision = evaluate(link(expires_at=NOW - timedelta(seconds=1)), NOW)
    assert decision == AccessDecision.deny(DenyReason.EXPIRED)
    assert not decision.allowed

def test_expiry_boundary_is_still_valid():
    # Expired only strictly after expires_at
    assert evaluate(link(expires_at=NOW), NOW).allowed
    assert evaluate(link(expires_at=NOW + timedelta(hours=1)), NOW).allowed

def test_naive_expiry_is_treated_as_utc():
    naive = (NOW - timedelta(minutes=1)).replace(tzinfo=None)
    assert evaluate(link(expires_at=naive), NOW).reason is DenyReason.EXPIRED

def test_public_file_allowed():
    assert evaluate(file(), NOW).allowed
    # Password is irrelevant for public files
    assert evaluate(file(hashed_password=PASSWORD_HASH), NOW, "wrong").allowed

def test_private_file_without_password_never_allowed():
    resource = file(is_public=False)
    for password in (None, "", "anything", "correct-horse"):
        decision = evaluate(resource, NOW, password)
        assert decision.outcome is Outcome.DENY
        assert decision.reason is DenyReason.PRIVATE_NO_PASSWORD

def test_private_file_challenge():
    resource = file(is_public=False, hashed_password=PASSWORD_HASH)
    assert evaluate(resource, NOW).outcome is Outcome.CHALLENGE
    # Empty password counts as not supplied
    assert evaluate(resource, NOW, "").outcome is Outcome.CHALLENGE

def test_private_file_password_check():
    resource = file(is_public=False, hashed_password=PASSWORD_HASH)
    assert evaluate(resource, NOW, "correct-horse").allowed

    decision = evaluate(resource, NOW, "wrong-horse")
    assert decision.outcome is Outcome.DENY
    assert decision.reason is DenyReason.BAD_PASSWORD

def test_expiry_takes_precedence_over_password():
    resource = file(is_public=False, hashed_password=PASSWORD_HASH, expires_at=NOW - timedelta(days=1))
    assert evaluate(resource, NOW, "correct-horse").reason is DenyReason.EXPIRED
    assert evaluate(resource, NOW).reason is DenyReason.EXPIRED

    resource = file(expires_at=NOW - timedelta(days=1))
    assert evaluate(resource, NOW).reason is DenyReason.EXPIRED

def test_evaluate_does_not_verify_without_password():
    resource = file(is_public=False, hashed_password=PASSWORD_HASH)
    with patch("linker.access.verify_password") as mock_verify:
        evaluate(resource, NOW)
    mock_verify.assert_not_called()

def test_unrecognized_hash_is_bad_password():
    resource = file(is_public=False, hashed_password="not-a-bcrypt-hash")
    decision = evaluate(resource, NOW, "anything")
    assert decision.outcome is Outcome.DENY
    assert decision.reason is DenyReason.BAD_PASSWORD
