"""
API Dependencies

Wires stores, delivery and policy settings into the recovery services
for each request.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Annotated, AsyncGenerator, NamedTuple

from fastapi import Depends

from recovery.core.clock import Clock, system_clock
from recovery.core.config import settings
from recovery.core.database import get_session_maker
from recovery.services.credential_store import CredentialStore, SqlAlchemyCredentialStore
from recovery.services.email_service import DeliveryGateway, build_delivery_gateway
from recovery.services.memory_store import InMemoryCredentialStore, InMemoryOtpRecordStore
from recovery.services.otp_generator import OtpGenerator
from recovery.services.otp_service import OtpLifecycleManager
from recovery.services.otp_store import OtpRecordStore, SqlAlchemyOtpRecordStore
from recovery.services.password_reset_service import PasswordResetExecutor
from recovery.services.rate_limiter import OtpRateLimiter


class RecoveryStores(NamedTuple):
    """Stores for one request. SQL stores share a single session."""
    otp: OtpRecordStore
    credentials: CredentialStore


# Process-wide stores for STORE_BACKEND=memory
memory_otp_store = InMemoryOtpRecordStore()
memory_credential_store = InMemoryCredentialStore(settings.memory_seed_accounts_list)


def get_clock() -> Clock:
    return system_clock


@lru_cache
def get_delivery_gateway() -> DeliveryGateway:
    """Gateway selected by EMAIL_PROVIDER, built once."""
    return build_delivery_gateway(settings)


async def get_stores() -> AsyncGenerator[RecoveryStores, None]:
    """
    Dependency that provides the recovery stores.

    For the database backend a session is opened per request; the stores
    commit their own transactions.
    """
    if settings.uses_memory_store:
        yield RecoveryStores(otp=memory_otp_store, credentials=memory_credential_store)
        return

    session_maker = get_session_maker()
    async with session_maker() as session:
        yield RecoveryStores(
            otp=SqlAlchemyOtpRecordStore(session),
            credentials=SqlAlchemyCredentialStore(session),
        )


async def get_credential_store(
    stores: Annotated[RecoveryStores, Depends(get_stores)],
) -> CredentialStore:
    return stores.credentials


async def get_otp_manager(
    stores: Annotated[RecoveryStores, Depends(get_stores)],
    gateway: Annotated[DeliveryGateway, Depends(get_delivery_gateway)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> OtpLifecycleManager:
    generator = OtpGenerator(
        clock,
        ttl=timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
        max_attempts=settings.OTP_MAX_ATTEMPTS,
    )
    rate_limiter = OtpRateLimiter(
        stores.otp,
        clock,
        cooldown=timedelta(seconds=settings.OTP_RESEND_COOLDOWN_SECONDS),
    )
    return OtpLifecycleManager(
        store=stores.otp,
        generator=generator,
        rate_limiter=rate_limiter,
        gateway=gateway,
        clock=clock,
        delivery_timeout=settings.EMAIL_DELIVERY_TIMEOUT_SECONDS,
    )


async def get_password_reset_executor(
    manager: Annotated[OtpLifecycleManager, Depends(get_otp_manager)],
    stores: Annotated[RecoveryStores, Depends(get_stores)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> PasswordResetExecutor:
    return PasswordResetExecutor(
        manager=manager,
        store=stores.otp,
        credentials=stores.credentials,
        clock=clock,
        password_min_length=settings.PASSWORD_MIN_LENGTH,
    )
