"""
Password Reset Unit Tests

Tests for the credential policy and for exchanging a code for a new
password.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest


ACCOUNT = "a@example.com"
NEW_PASSWORD = "correct-horse-42"


class TestValidateNewPassword:
    """Tests for the password policy."""

    def test_accepts_reasonable_password(self):
        from recovery.services.password_reset_service import validate_new_password

        validate_new_password(NEW_PASSWORD, ACCOUNT)

    @pytest.mark.parametrize(
        "password",
        [
            "short1",               # too short
            "lettersonly",          # no digit
            "1234567890",           # no letter
            "a1" * 40,              # over 72 bytes
        ],
    )
    def test_rejects_weak_passwords(self, password):
        from recovery.core.exceptions import WeakCredentialError
        from recovery.services.password_reset_service import validate_new_password

        with pytest.raises(WeakCredentialError):
            validate_new_password(password, ACCOUNT)

    def test_rejects_account_id(self):
        """Verify the account id itself is refused, ignoring case."""
        from recovery.core.exceptions import WeakCredentialError
        from recovery.services.password_reset_service import validate_new_password

        with pytest.raises(WeakCredentialError):
            validate_new_password("USER123@EXAMPLE.COM", "user123@example.com")

    def test_rejects_local_part(self):
        """Verify the mailbox name is not accepted as a password."""
        from recovery.core.exceptions import WeakCredentialError
        from recovery.services.password_reset_service import validate_new_password

        with pytest.raises(WeakCredentialError):
            validate_new_password("jsmith2024", "jsmith2024@example.com")

    def test_min_length_configurable(self):
        from recovery.core.exceptions import WeakCredentialError
        from recovery.services.password_reset_service import validate_new_password

        with pytest.raises(WeakCredentialError):
            validate_new_password(NEW_PASSWORD, ACCOUNT, min_length=20)


class TestResetPassword:
    """Tests for PasswordResetExecutor.reset_password."""

    @pytest.mark.asyncio
    async def test_verify_then_reset(self, manager, executor, credential_store, otp_store, clock):
        """Verify the round trip updates the password and consumes the code."""
        from recovery.core.security import verify_password

        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")

        await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        assert verify_password(NEW_PASSWORD, credential_store.password_hash_for(ACCOUNT))
        assert credential_store.password_changed_at(ACCOUNT) == clock.now()
        record = await otp_store.get(ACCOUNT)
        assert record.consumed is True
        assert record.consumed_at == clock.now()
        assert record.attempts == 1

    @pytest.mark.asyncio
    async def test_reset_without_verify_counts_attempt(self, manager, executor, otp_store):
        """Verify a direct reset is itself a verification attempt."""
        await manager.request_code(ACCOUNT)

        await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        record = await otp_store.get(ACCOUNT)
        assert record.consumed is True
        assert record.attempts == 1

    @pytest.mark.asyncio
    async def test_replay_is_already_used(self, manager, executor):
        """Verify the same code cannot be reset or verified twice."""
        from recovery.core.exceptions import CodeAlreadyUsedError

        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")
        await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        with pytest.raises(CodeAlreadyUsedError):
            await manager.verify_code(ACCOUNT, "123456")
        with pytest.raises(CodeAlreadyUsedError):
            await executor.reset_password(ACCOUNT, "123456", "another-pass-7")

    @pytest.mark.asyncio
    async def test_match_on_last_attempt_can_reset(self, manager, executor, otp_store):
        """Verify a code matched on the final allowed attempt is still accepted."""
        from recovery.core.exceptions import InvalidCodeError

        await manager.request_code(ACCOUNT)
        for _ in range(2):
            with pytest.raises(InvalidCodeError):
                await manager.verify_code(ACCOUNT, "000000")
        record = await manager.verify_code(ACCOUNT, "123456")
        assert record.attempts_remaining == 0

        await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        assert (await otp_store.get(ACCOUNT)).consumed is True

    @pytest.mark.asyncio
    async def test_exhausted_by_wrong_guesses(self, manager, executor, credential_store):
        """Verify a budget spent on misses blocks the reset."""
        from recovery.core.exceptions import AttemptsExhaustedError, InvalidCodeError

        await manager.request_code(ACCOUNT)
        for _ in range(3):
            with pytest.raises(InvalidCodeError):
                await manager.verify_code(ACCOUNT, "000000")

        with pytest.raises(AttemptsExhaustedError):
            await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)
        assert credential_store.password_hash_for(ACCOUNT) == ""

    @pytest.mark.asyncio
    async def test_misses_after_match_exhaust_budget(self, manager, executor, credential_store, otp_store):
        """Verify wrong guesses after a successful verify still use up the code."""
        from recovery.core.exceptions import AttemptsExhaustedError, InvalidCodeError

        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")
        for _ in range(2):
            with pytest.raises(InvalidCodeError):
                await manager.verify_code(ACCOUNT, "000000")

        with pytest.raises(AttemptsExhaustedError):
            await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        assert credential_store.password_hash_for(ACCOUNT) == ""
        record = await otp_store.get(ACCOUNT)
        assert record.consumed is False
        assert record.attempts == 3

    @pytest.mark.asyncio
    async def test_match_after_miss_can_reset(self, manager, executor, otp_store):
        """Verify a match that follows a miss is still honoured by the reset."""
        from recovery.core.exceptions import InvalidCodeError

        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")
        with pytest.raises(InvalidCodeError):
            await manager.verify_code(ACCOUNT, "000000")
        await manager.verify_code(ACCOUNT, "123456")

        await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        assert (await otp_store.get(ACCOUNT)).consumed is True

    @pytest.mark.asyncio
    async def test_wrong_code_counts_attempt(self, manager, executor, otp_store):
        """Verify a reset with the wrong code is an Invalid attempt."""
        from recovery.core.exceptions import InvalidCodeError

        await manager.request_code(ACCOUNT)

        with pytest.raises(InvalidCodeError) as exc_info:
            await executor.reset_password(ACCOUNT, "999999", NEW_PASSWORD)

        assert exc_info.value.attempts_remaining == 2
        assert (await otp_store.get(ACCOUNT)).consumed is False

    @pytest.mark.asyncio
    async def test_verified_code_expires(self, manager, executor, clock):
        """Verify a verified code cannot be used past its expiry."""
        from recovery.core.exceptions import CodeExpiredError

        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")
        clock.advance(minutes=10)

        with pytest.raises(CodeExpiredError):
            await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_weak_password_touches_nothing(self, manager, executor, otp_store):
        """Verify the policy check runs before any attempt is spent."""
        from recovery.core.exceptions import WeakCredentialError

        await manager.request_code(ACCOUNT)

        with pytest.raises(WeakCredentialError):
            await executor.reset_password(ACCOUNT, "123456", "weak")

        record = await otp_store.get(ACCOUNT)
        assert record.attempts == 0
        assert record.consumed is False

    @pytest.mark.asyncio
    async def test_no_code_issued(self, executor):
        from recovery.core.exceptions import CodeNotFoundError

        with pytest.raises(CodeNotFoundError):
            await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_credential_failure_leaves_code_unconsumed(self, manager, executor, otp_store, credential_store):
        """Verify a failed password write does not consume the code."""
        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")

        with patch.object(
            credential_store,
            "set_password_hash",
            AsyncMock(side_effect=RuntimeError("write failed")),
        ):
            with pytest.raises(RuntimeError):
                await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)

        assert (await otp_store.get(ACCOUNT)).consumed is False

        await executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD)
        assert (await otp_store.get(ACCOUNT)).consumed is True

    @pytest.mark.asyncio
    async def test_missing_account_leaves_code_unconsumed(self, manager, executor, otp_store, credential_store):
        """Verify a code for an account with no credentials is not consumed."""
        from recovery.core.exceptions import CodeNotFoundError

        await manager.request_code("orphan@example.com")

        with pytest.raises(CodeNotFoundError):
            await executor.reset_password("orphan@example.com", "123456", NEW_PASSWORD)

        assert (await otp_store.get("orphan@example.com")).consumed is False

    @pytest.mark.asyncio
    async def test_code_superseded_before_commit(self, manager, executor, otp_store, randbelow, clock):
        """Verify a reset authorized against a replaced code is refused."""
        from recovery.core.exceptions import InvalidCodeError

        randbelow.values = [111111, 222222]
        await manager.request_code(ACCOUNT)
        stale = await manager.verify_code(ACCOUNT, "111111")
        clock.advance(minutes=3)
        await manager.request_code(ACCOUNT)

        with patch.object(manager, "authorize_reset", AsyncMock(return_value=stale)):
            with pytest.raises(InvalidCodeError):
                await executor.reset_password(ACCOUNT, "111111", NEW_PASSWORD)

        assert (await otp_store.get(ACCOUNT)).consumed is False

    @pytest.mark.asyncio
    async def test_concurrent_resets_succeed_once(self, manager, executor):
        """Verify two racing resets with one code apply exactly one password."""
        from recovery.core.exceptions import CodeAlreadyUsedError

        await manager.request_code(ACCOUNT)
        await manager.verify_code(ACCOUNT, "123456")

        results = await asyncio.gather(
            executor.reset_password(ACCOUNT, "123456", NEW_PASSWORD),
            executor.reset_password(ACCOUNT, "123456", "other-pass-99"),
            return_exceptions=True,
        )

        assert sum(1 for r in results if r is None) == 1
        assert sum(1 for r in results if isinstance(r, CodeAlreadyUsedError)) == 1
