"""Tests for role and account-status enforcement."""

import pytest

from learnbridge.errors import AuthorizationError, InputValidationError
from learnbridge.schemas.user_schema import AccountStatus, AuthUser, UserRole
from learnbridge.services.access_guard import AccessGuard, ensure_active, ensure_role
from learnbridge.store.base import USERS
from conftest import make_actor, sign_in


class TestEnsureHelpers:
    def test_role_allowed(self):
        ensure_role(make_actor("uid-tutor"), UserRole.TUTOR, UserRole.COUNSELLOR)

    def test_role_denied(self):
        with pytest.raises(AuthorizationError, match="admin"):
            ensure_role(make_actor("uid-tutor"), UserRole.ADMIN)

    def test_active_allowed(self):
        ensure_active(make_actor("uid-student"))

    @pytest.mark.parametrize("status", [AccountStatus.PENDING, AccountStatus.SUSPENDED])
    def test_inactive_denied(self, status):
        with pytest.raises(AuthorizationError, match=status.value):
            ensure_active(make_actor("uid-student", status))


class TestResolveActor:
    @pytest.mark.asyncio
    async def test_not_signed_in(self, store, identity):
        with pytest.raises(AuthorizationError, match="Not signed in"):
            await AccessGuard(store, identity).resolve_actor()

    @pytest.mark.asyncio
    async def test_resolves_profile(self, store, identity):
        sign_in(identity, "uid-tutor")
        actor = await AccessGuard(store, identity).resolve_actor(UserRole.TUTOR, UserRole.COUNSELLOR)
        assert actor.id == "uid-tutor"
        assert actor.name == "Lena Fischer"
        assert actor.role == UserRole.TUTOR
        assert actor.status == AccountStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_missing_status_treated_as_active(self, store, identity):
        sign_in(identity, "uid-student")
        actor = await AccessGuard(store, identity).resolve_actor(UserRole.STUDENT)
        assert actor.status == AccountStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_wrong_role_signs_out(self, store, identity):
        sign_in(identity, "uid-student")
        with pytest.raises(AuthorizationError, match="your role is 'student'"):
            await AccessGuard(store, identity).resolve_actor(UserRole.ADMIN)
        assert identity.current_user() is None

    @pytest.mark.asyncio
    async def test_missing_profile_signs_out(self, store, identity):
        identity.sign_in(AuthUser(id="uid-orphan", email="orphan@uni.test"))
        with pytest.raises(AuthorizationError, match="Profile data missing"):
            await AccessGuard(store, identity).resolve_actor()
        assert identity.current_user() is None

    @pytest.mark.asyncio
    async def test_invalid_profile_signs_out(self, store, identity):
        store.seed(USERS, "uid-broken", {"name": "Broken", "role": "wizard"})
        identity.sign_in(AuthUser(id="uid-broken", email="b@uni.test"))
        with pytest.raises(AuthorizationError, match="invalid"):
            await AccessGuard(store, identity).resolve_actor()
        assert identity.current_user() is None

    @pytest.mark.asyncio
    async def test_pending_account_admitted_unless_active_required(self, store, identity):
        sign_in(identity, "uid-tutor-pending")
        guard = AccessGuard(store, identity)
        actor = await guard.resolve_actor(UserRole.TUTOR)
        assert actor.status == AccountStatus.PENDING
        with pytest.raises(AuthorizationError, match="pending"):
            await guard.resolve_actor(UserRole.TUTOR, require_active=True)
        assert identity.current_user() is None

    @pytest.mark.asyncio
    async def test_no_roles_admits_everyone(self, store, identity):
        sign_in(identity, "uid-admin")
        actor = await AccessGuard(store, identity).resolve_actor()
        assert actor.is_admin


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_sends_reset(self, store, identity):
        await AccessGuard(store, identity).request_password_reset(" sam@uni.test ")
        assert identity.reset_emails_sent == ["sam@uni.test"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["", "sam", "@uni.test", "sam@"])
    async def test_invalid_email_rejected(self, store, identity, email):
        with pytest.raises(InputValidationError):
            await AccessGuard(store, identity).request_password_reset(email)
        assert identity.reset_emails_sent == []
