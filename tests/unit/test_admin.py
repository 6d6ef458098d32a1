"""Unit tests for the admin access policy."""

from client_reports.auth import AdminPolicy


def test_admin_policy_is_case_insensitive() -> None:
    policy = AdminPolicy(["Boss@Example.com", " ", "ops@example.com "])

    assert policy.is_admin("boss@example.com")
    assert policy.is_admin(" OPS@example.com")
    assert not policy.is_admin("intern@example.com")
    assert not policy.is_admin(None)
    assert not policy.is_admin("")
