"""Global pytest configuration and fixtures for all tests."""

import os
from datetime import UTC, datetime, timedelta

# Settings are read when fleetprov is first imported, so the test
# environment must be in place before any test module imports it.
TEST_ENV_VARS = {
    "ENABLE_DOCS": "false",
    "INFRASTRUCTURE_PROVIDER": "memory",
    "CA_AUTO_GENERATE": "true",
    "CA_KEY_SIZE": "2048",
    "DEVICE_KEY_SIZE": "2048",
    "GATEWAY_DELETE_POLICY": "reject",
}
for _key, _value in TEST_ENV_VARS.items():
    os.environ[_key] = _value

import pytest  # noqa: E402

from fleetprov.config import Settings, get_settings  # noqa: E402
from fleetprov.di import reset_dependency_cache  # noqa: E402
from fleetprov.infrastructure.implementations.memory import (  # noqa: E402
    InMemoryCertificateRepository,
    InMemoryIdentityStore,
    InMemorySecretsRepository,
)
from fleetprov.services.certificate_authority import (  # noqa: E402
    CertificateAuthority,
    generate_root_certificate,
)
from fleetprov.services.device_registry import DeviceRegistry  # noqa: E402
from fleetprov.services.enrollment import EnrollmentTokenManager  # noqa: E402


class FakeClock:
    """Controllable clock injected into the services."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_caches():
    """Give every test fresh settings and fresh process-wide repositories."""
    get_settings.cache_clear()
    reset_dependency_cache()
    yield
    get_settings.cache_clear()
    reset_dependency_cache()


@pytest.fixture(scope="session")
def ca_material() -> tuple[str, str]:
    """A small root CA shared by the whole session (key generation is slow)."""
    return generate_root_certificate("Test Root CA", 30, key_size=2048)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        infrastructure_provider="memory",
        device_key_size=2048,
        ca_key_size=2048,
        ca_signing_timeout_seconds=5.0,
        store_max_retries=3,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def cert_repo() -> InMemoryCertificateRepository:
    return InMemoryCertificateRepository()


@pytest.fixture
async def secrets_repo(ca_material) -> InMemorySecretsRepository:
    repo = InMemorySecretsRepository()
    key_pem, cert_pem = ca_material
    await repo.store_ca_private_key(key_pem)
    await repo.store_ca_certificate(cert_pem)
    return repo


@pytest.fixture
def ca(secrets_repo, cert_repo, settings) -> CertificateAuthority:
    return CertificateAuthority(secrets_repo, cert_repo, settings)


@pytest.fixture
def token_manager(store, ca, settings, clock) -> EnrollmentTokenManager:
    return EnrollmentTokenManager(store, ca, settings, clock=clock)


@pytest.fixture
def registry(store, settings, clock) -> DeviceRegistry:
    return DeviceRegistry(store, settings, clock=clock)
