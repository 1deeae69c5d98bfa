"""Tests for the UserAccount state machine."""

from __future__ import annotations

import pytest

from login_gateway.exceptions import ConflictError, InvalidInputError, PreconditionError
from login_gateway.models.enums import LockType, OnboardingStep, UserStatus
from login_gateway.models.user import UserAccount, UserRead


@pytest.fixture
def account() -> UserAccount:
    return UserAccount(login_id="jdoe", email="john@example.com")


def _onboarded(account: UserAccount) -> UserAccount:
    account.mark_email_verified()
    account.set_password_established()
    account.mark_mfa_enrolled()
    return account


class TestOnboardingStep:
    def test_new_account_needs_email(self, account: UserAccount) -> None:
        assert account.status is UserStatus.PENDING_VERIFICATION
        assert account.onboarding_step is OnboardingStep.NEEDS_EMAIL_VERIFICATION

    def test_steps_follow_flags(self, account: UserAccount) -> None:
        account.mark_email_verified()
        assert account.onboarding_step is OnboardingStep.NEEDS_PASSWORD
        account.set_password_established()
        assert account.onboarding_step is OnboardingStep.NEEDS_MFA
        account.mark_mfa_enrolled()
        assert account.onboarding_step is OnboardingStep.COMPLETE
        assert account.onboarding_complete

    def test_display_name(self) -> None:
        assert UserAccount(login_id="a", email="a@x.io").display_name is None
        assert (
            UserAccount(login_id="a", email="a@x.io", first_name="Ann").display_name == "Ann"
        )
        assert (
            UserAccount(
                login_id="a", email="a@x.io", first_name="Ann", last_name="Lee"
            ).display_name
            == "Ann Lee"
        )


class TestActivate:
    def test_requires_all_flags(self, account: UserAccount) -> None:
        account.mark_email_verified()
        with pytest.raises(PreconditionError) as exc_info:
            account.activate()
        assert exc_info.value.error == "onboarding_incomplete"
        assert "password_set" in exc_info.value.description
        assert account.status is UserStatus.PENDING_VERIFICATION

    def test_activates_when_onboarded(self, account: UserAccount) -> None:
        _onboarded(account).activate()
        assert account.status is UserStatus.ACTIVE

    def test_is_idempotent(self, account: UserAccount) -> None:
        _onboarded(account).activate()
        account.activate()
        assert account.status is UserStatus.ACTIVE

    def test_override_skips_flags(self, account: UserAccount) -> None:
        account.activate(override=True, actor="ops")
        assert account.status is UserStatus.ACTIVE

    def test_locked_account_cannot_activate(self, account: UserAccount) -> None:
        account.lock(LockType.BANK, "ops")
        with pytest.raises(ConflictError):
            account.activate(override=True)

    def test_deactivated_requires_override(self, account: UserAccount) -> None:
        _onboarded(account).deactivate("left the company")
        with pytest.raises(ConflictError):
            account.activate()
        account.activate(override=True, actor="ops")
        assert account.status is UserStatus.ACTIVE
        assert account.deactivation_reason is None


class TestLock:
    def test_lock_sets_type_and_status(self, account: UserAccount) -> None:
        account.lock(LockType.SECURITY, "ops", reason="suspicious")
        assert account.status is UserStatus.LOCKED
        assert account.lock_type is LockType.SECURITY
        assert account.locked_by == "ops"

    def test_none_is_not_a_lock(self, account: UserAccount) -> None:
        with pytest.raises(InvalidInputError):
            account.lock(LockType.NONE, "ops")

    def test_changing_lock_type_requires_override(self, account: UserAccount) -> None:
        account.lock(LockType.BANK, "ops")
        account.lock(LockType.BANK, "ops")
        with pytest.raises(ConflictError):
            account.lock(LockType.SELF, "user")
        account.lock(LockType.SELF, "ops", override=True)
        assert account.lock_type is LockType.SELF

    def test_unlock_restores_pending_when_not_onboarded(self, account: UserAccount) -> None:
        account.lock(LockType.BANK, "ops")
        account.unlock("ops")
        assert account.status is UserStatus.PENDING_VERIFICATION
        assert account.lock_type is LockType.NONE

    def test_unlock_restores_active_when_onboarded(self, account: UserAccount) -> None:
        _onboarded(account).activate()
        account.lock(LockType.SELF, "user")
        account.unlock("ops")
        assert account.status is UserStatus.ACTIVE

    def test_unlock_keeps_override_activation(self, account: UserAccount) -> None:
        account.activate(override=True, actor="ops")
        account.lock(LockType.BANK, "ops")
        account.lock(LockType.SELF, "ops", override=True)
        account.unlock("ops")
        assert account.status is UserStatus.ACTIVE
        assert account.status_before_lock is None
        assert not account.onboarding_complete

    def test_unlock_unlocked_is_conflict(self, account: UserAccount) -> None:
        with pytest.raises(ConflictError):
            account.unlock("ops")


class TestDeactivate:
    def test_clears_lock(self, account: UserAccount) -> None:
        account.lock(LockType.BANK, "ops")
        account.deactivate("closed")
        assert account.status is UserStatus.DEACTIVATED
        assert account.lock_type is LockType.NONE

    def test_blocks_progress_flags(self, account: UserAccount) -> None:
        account.deactivate("closed")
        with pytest.raises(ConflictError):
            account.mark_email_verified()
        with pytest.raises(ConflictError):
            account.lock(LockType.BANK, "ops")


class TestProvisioning:
    def test_first_bind(self, account: UserAccount) -> None:
        account.mark_provisioned("auth0|1")
        assert account.is_provisioned
        account.mark_provisioned("auth0|1")

    def test_rebind_requires_reprovision(self, account: UserAccount) -> None:
        account.mark_provisioned("auth0|1")
        with pytest.raises(ConflictError) as exc_info:
            account.mark_provisioned("auth0|2")
        assert exc_info.value.error == "already_provisioned"
        account.reprovision("auth0|2", actor="ops")
        assert account.identity_provider_user_id == "auth0|2"


def test_user_read_sorts_roles(account: UserAccount) -> None:
    read = UserRead.from_account(account)
    assert read.login_id == "jdoe"
    assert read.status is UserStatus.PENDING_VERIFICATION
    assert [r.value for r in read.roles] == ["READER"]
