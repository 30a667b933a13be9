"""
Unit tests for the company registry.

Tests registration, login, trials, password changes, and company
deletion against the in-memory remote store.
"""

import os
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from petshop.errors import (
    CompanyNotFoundError,
    ConnectionUnavailableError,
    InvalidCredentialsError,
    RemoteAuthError,
    RemoteConnectionError,
    RemoteTimeoutError,
    TrialExpiredError,
    UsernameExistsError,
)
from petshop.schemas import COMPANY_LIST
from petshop.schemas.common import decode_list, encode_list
from petshop.services.company_registry import COMPANIES_PATH, CompanyRegistry, company_data_path
from petshop.services.encryption import KEY_PATH, encode_key_file
from petshop.services.local_cache import CURRENT_COMPANY_KEY, products_key
from tests.fixtures.data import LEGACY_COMPANIES_JSON
from tests.fixtures.factories import create_company
from tests.mocks.memory_remote_store import InMemoryRemoteStore


def remote_companies(remote: InMemoryRemoteStore):
    return decode_list(COMPANY_LIST, remote.content(COMPANIES_PATH), COMPANIES_PATH)


# ============================================
# Registration
# ============================================


class TestRegister:
    """Test company registration."""

    @pytest.mark.asyncio
    async def test_register_persists_and_selects(self, registry, remote, cache, clock):
        company = await registry.register("Acme", "acme1", "pass123")

        assert [c.id for c in remote_companies(remote)] == [company.id]
        assert company.trial_expires_at == clock.now + timedelta(days=10)
        assert company.encrypted_password != "pass123"
        assert registry.current_company.id == company.id
        assert cache.get(CURRENT_COMPANY_KEY) == company.id

    @pytest.mark.asyncio
    async def test_register_provisions_empty_data_files(self, registry, remote):
        company = await registry.register("Acme", "acme1", "pass123")

        assert remote.content(company_data_path(company.id, "products.json")) == b"[]"
        assert remote.content(company_data_path(company.id, "sales.json")) == b"[]"

    @pytest.mark.asyncio
    async def test_username_is_case_insensitive(self, registry):
        await registry.register("Shop", "shop", "pw")

        with pytest.raises(UsernameExistsError):
            await registry.register("Other Shop", "Shop", "pw")

    @pytest.mark.asyncio
    async def test_duplicate_checked_against_remote_list(self, registry, remote):
        """A username registered on another device is rejected too."""
        other = create_company(username="ACME1")
        remote.seed(COMPANIES_PATH, encode_list(COMPANY_LIST, [other]))

        with pytest.raises(UsernameExistsError):
            await registry.register("Acme", "acme1", "pass123")

        assert [c.id for c in remote_companies(remote)] == [other.id]

    @pytest.mark.asyncio
    async def test_concurrent_registration_is_kept(self, registry, remote):
        """A registration that lands between our read and write is merged in."""
        other = create_company(name="Other", username="other")

        def other_device_registers(path):
            if path == COMPANIES_PATH:
                remote.before_write = None
                remote.seed(path, encode_list(COMPANY_LIST, [other]))

        remote.before_write = other_device_registers
        company = await registry.register("Acme", "acme1", "pass123")

        assert [c.id for c in remote_companies(remote)] == [other.id, company.id]

    @pytest.mark.asyncio
    async def test_admin_username_is_reserved(self, registry):
        with pytest.raises(UsernameExistsError):
            await registry.register("Admin Shop", "Admin", "pw")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,username,password", [("", "u", "p"), ("n", "  ", "p"), ("n", "u", "")])
    async def test_empty_fields_rejected(self, registry, name, username, password):
        with pytest.raises(ValueError):
            await registry.register(name, username, password)

    @pytest.mark.asyncio
    async def test_register_offline_keeps_local_copy(self, cache, keys, admin_settings, clock):
        registry = CompanyRegistry(InMemoryRemoteStore(configured=False), cache, keys, admin_settings, clock=clock)

        with pytest.raises(ConnectionUnavailableError):
            await registry.register("Acme", "acme1", "pass123")

        assert [c.username for c in registry.companies] == ["acme1"]
        assert registry.current_company is None

    @pytest.mark.asyncio
    async def test_register_after_key_outage_can_log_in(self, registry, keys, remote):
        """The startup key load fails once; registration still uses the shared key."""
        remote.seed(KEY_PATH, encode_key_file(os.urandom(32)))
        remote.fail_reads[KEY_PATH] = RemoteTimeoutError("Request timed out")
        await keys.load()
        del remote.fail_reads[KEY_PATH]

        await registry.register("Acme", "acme1", "pass123")
        registry.logout()

        company = await registry.login("acme1", "pass123")
        assert company.username == "acme1"


# ============================================
# Login & Session
# ============================================


class TestLogin:
    """Test company and admin login."""

    @pytest.mark.asyncio
    async def test_register_then_login(self, registry):
        company = await registry.register("Acme", "acme1", "pass123")
        registry.logout()

        assert (await registry.login("ACME1", "pass123")).id == company.id
        assert registry.current_company.id == company.id
        assert not registry.is_admin

    @pytest.mark.asyncio
    async def test_login_force_reloads_key(self, registry, keys, remote):
        await registry.register("Acme", "acme1", "pass123")
        reads = len(remote.reads)

        await registry.login("acme1", "pass123")

        assert "config/encryption_key.json" in remote.reads[reads:]

    @pytest.mark.asyncio
    async def test_unknown_username(self, registry):
        with pytest.raises(CompanyNotFoundError):
            await registry.login("nobody", "pw")

    @pytest.mark.asyncio
    async def test_wrong_password(self, registry):
        await registry.register("Acme", "acme1", "pass123")

        with pytest.raises(InvalidCredentialsError):
            await registry.login("acme1", "wrong")

    @pytest.mark.asyncio
    async def test_company_from_other_device_is_found(self, registry, remote, cache, keys, admin_settings, clock):
        """A company missing from the local list triggers a reload."""
        other_device = CompanyRegistry(remote, cache, keys, admin_settings, clock=clock)
        company = await other_device.register("Acme", "acme1", "pass123")

        assert registry.companies == []
        assert (await registry.login("acme1", "pass123")).id == company.id

    @pytest.mark.asyncio
    async def test_login_succeeds_only_before_expiry(self, registry, remote, clock):
        await registry.register("Acme", "acme1", "pass123")

        clock.advance(days=9, hours=23)
        await registry.login("acme1", "pass123")

        clock.advance(hours=1)
        with pytest.raises(TrialExpiredError):
            await registry.login("acme1", "pass123")

    @pytest.mark.asyncio
    async def test_expired_login_does_not_delete(self, registry, remote, clock):
        company = await registry.register("Acme", "acme1", "pass123")
        clock.advance(days=11)

        with pytest.raises(TrialExpiredError):
            await registry.login("acme1", "pass123")

        assert [c.id for c in remote_companies(remote)] == [company.id]

    @pytest.mark.asyncio
    async def test_expired_login_reaps_when_enabled(self, registry, remote, clock):
        registry.reap_on_login = True
        company = await registry.register("Acme", "acme1", "pass123")
        clock.advance(days=11)

        with pytest.raises(TrialExpiredError):
            await registry.login("acme1", "pass123")

        assert remote_companies(remote) == []
        assert remote.content(company_data_path(company.id, "products.json")) == b"[]"

    @pytest.mark.asyncio
    async def test_admin_login(self, registry):
        assert await registry.login("admin", "201812055") is None

        assert registry.is_admin
        assert registry.current_company is None
        assert registry.scope == "admin"
        assert registry.data_path("products.json") == "data/products.json"

    @pytest.mark.asyncio
    async def test_admin_wrong_password(self, registry):
        with pytest.raises(InvalidCredentialsError):
            await registry.login("admin", "nope")
        assert not registry.is_admin


class TestSession:
    """Test company selection and session restore."""

    @pytest.mark.asyncio
    async def test_data_path_for_company(self, registry):
        company = await registry.register("Acme", "acme1", "pass123")

        assert registry.scope == company.id
        assert registry.data_path("sales.json") == f"companies/{company.id}/sales.json"

    def test_no_session(self, registry):
        assert registry.scope is None
        assert registry.data_path("products.json") == "data/products.json"

    @pytest.mark.asyncio
    async def test_restore_session(self, registry, remote, cache, keys, admin_settings, clock):
        company = await registry.register("Acme", "acme1", "pass123")

        restarted = CompanyRegistry(remote, cache, keys, admin_settings, clock=clock)
        await restarted.load_companies()

        assert restarted.restore_session().id == company.id
        assert restarted.current_company.id == company.id

    @pytest.mark.asyncio
    async def test_restore_skips_expired(self, registry, clock):
        await registry.register("Acme", "acme1", "pass123")
        registry.current_company = None
        clock.advance(days=10)

        assert registry.restore_session() is None

    @pytest.mark.asyncio
    async def test_logout_clears_selection(self, registry, cache):
        await registry.register("Acme", "acme1", "pass123")

        registry.logout()

        assert registry.current_company is None
        assert cache.get(CURRENT_COMPANY_KEY) is None


# ============================================
# Loading
# ============================================


class TestLoadCompanies:
    """Test loading with cache fallback."""

    @pytest.mark.asyncio
    async def test_legacy_records_get_trial_default(self, registry, remote):
        remote.seed(COMPANIES_PATH, LEGACY_COMPANIES_JSON)

        (company,) = await registry.load_companies()

        assert company.trial_expires_at == company.created_at + timedelta(days=10)

    @pytest.mark.asyncio
    async def test_read_failure_uses_cache(self, registry, remote):
        company = await registry.register("Acme", "acme1", "pass123")
        remote.fail_reads[COMPANIES_PATH] = RemoteConnectionError("offline")
        registry.companies = []

        await registry.load_companies()

        assert [c.id for c in registry.companies] == [company.id]
        assert "offline" in registry.last_error

    @pytest.mark.asyncio
    async def test_unconfigured_store_uses_cache(self, registry, remote):
        await registry.register("Acme", "acme1", "pass123")
        remote.configured = False

        companies = await registry.load_companies()

        assert [c.username for c in companies] == ["acme1"]
        assert registry.last_errors

    @pytest.mark.asyncio
    async def test_corrupt_remote_list_uses_cache(self, registry, remote):
        await registry.register("Acme", "acme1", "pass123")
        remote.seed(COMPANIES_PATH, b"{not json")

        companies = await registry.load_companies()

        assert [c.username for c in companies] == ["acme1"]
        assert registry.last_errors


# ============================================
# Passwords
# ============================================


class TestPasswords:
    """Test company and admin password changes."""

    @pytest.mark.asyncio
    async def test_change_password(self, registry):
        await registry.register("Acme", "acme1", "pass123")

        await registry.change_password("pass123", "newpass")
        registry.logout()

        await registry.login("acme1", "newpass")
        with pytest.raises(InvalidCredentialsError):
            await registry.login("acme1", "pass123")

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, registry):
        await registry.register("Acme", "acme1", "pass123")

        with pytest.raises(InvalidCredentialsError):
            await registry.change_password("wrong", "newpass")

    @pytest.mark.asyncio
    async def test_change_password_empty_new(self, registry):
        await registry.register("Acme", "acme1", "pass123")

        with pytest.raises(InvalidCredentialsError):
            await registry.change_password("pass123", "")

    @pytest.mark.asyncio
    async def test_change_password_requires_company(self, registry):
        with pytest.raises(CompanyNotFoundError):
            await registry.change_password("a", "b")

    def test_change_admin_password(self, registry, config_service):
        registry.change_admin_password("201812055", "s3cret")

        assert registry.admin.verify_password("s3cret")
        assert not registry.admin.verify_password("201812055")
        assert config_service.get("admin.password_hash").startswith("$2")

    def test_change_admin_password_wrong_current(self, registry):
        with pytest.raises(InvalidCredentialsError):
            registry.change_admin_password("wrong", "s3cret")

    @pytest.mark.asyncio
    async def test_company_passwords(self, registry):
        acme = await registry.register("Acme", "acme1", "pass123")
        broken = create_company(name="Broken", username="broken")
        registry.companies.append(broken)

        passwords = await registry.company_passwords()

        assert passwords == {acme.id: "pass123", broken.id: None}


# ============================================
# Trials & Deletion
# ============================================


class TestTrials:
    """Test trial extension and expiry reaping."""

    @pytest.mark.asyncio
    async def test_extend_active_trial_stacks(self, registry, clock):
        company = await registry.register("Acme", "acme1", "pass123")
        clock.advance(days=3)

        extended = await registry.extend_trial(company.id, 5)

        assert extended.trial_expires_at == company.trial_expires_at + timedelta(days=5)

    @pytest.mark.asyncio
    async def test_extend_expired_trial_restarts(self, registry, clock):
        company = await registry.register("Acme", "acme1", "pass123")
        clock.advance(days=20)

        extended = await registry.extend_trial(company.id, 5)

        assert extended.trial_expires_at == clock.now + timedelta(days=5)

    @pytest.mark.asyncio
    async def test_extend_persists_remotely(self, registry, remote):
        company = await registry.register("Acme", "acme1", "pass123")

        await registry.extend_trial(company.id, 30)

        (stored,) = remote_companies(remote)
        assert stored.trial_expires_at == company.trial_expires_at + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_extend_unknown_company(self, registry):
        await registry.register("Acme", "acme1", "pass123")

        with pytest.raises(CompanyNotFoundError):
            await registry.extend_trial("missing", 5)

    @pytest.mark.asyncio
    async def test_extend_requires_positive_days(self, registry):
        with pytest.raises(ValueError):
            await registry.extend_trial("any", 0)

    @pytest.mark.asyncio
    async def test_reap_expired(self, registry, remote, clock):
        old = await registry.register("Old", "old", "pw")
        clock.advance(days=5)
        new = await registry.register("New", "new", "pw")
        clock.advance(days=6)

        deleted = await registry.check_and_delete_expired_trials()

        assert [c.id for c in deleted] == [old.id]
        assert [c.id for c in remote_companies(remote)] == [new.id]

    @pytest.mark.asyncio
    async def test_reap_continues_after_failure(self, registry, remote, clock):
        first = await registry.register("First", "first", "pw")
        second = await registry.register("Second", "second", "pw")
        clock.advance(days=11)
        remote.fail_reads[company_data_path(first.id, "products.json")] = RemoteConnectionError("down")

        deleted = await registry.check_and_delete_expired_trials()

        assert [c.id for c in deleted] == [second.id]
        assert [c.id for c in remote_companies(remote)] == [first.id]
        assert "first" in registry.last_error


class TestDeleteCompany:
    """Test hardened company deletion."""

    @pytest.mark.asyncio
    async def test_wipes_data_before_unlisting(self, registry, remote, cache):
        company = await registry.register("Acme", "acme1", "pass123")
        products_path = company_data_path(company.id, "products.json")
        remote.seed(products_path, b'[{"stale": true}]')
        remote.seed(company_data_path(company.id, "sales.json"), b'[{"stale": true}]')
        cache.set(products_key(company.id), "[]")
        remote.writes.clear()

        await registry.delete_company(company)

        assert [path for path, _ in remote.writes] == [
            products_path,
            company_data_path(company.id, "sales.json"),
            COMPANIES_PATH,
        ]
        assert remote.content(products_path) == b"[]"
        assert remote_companies(remote) == []
        assert cache.get(products_key(company.id)) is None
        assert registry.current_company is None

    @pytest.mark.asyncio
    async def test_failed_wipe_keeps_company_listed(self, registry, remote):
        company = await registry.register("Acme", "acme1", "pass123")
        remote.seed(company_data_path(company.id, "products.json"), b"[1]")
        remote.fail_writes = [RemoteAuthError("bad token", status_code=403)]

        with pytest.raises(RemoteAuthError):
            await registry.delete_company(company)

        assert [c.id for c in remote_companies(remote)] == [company.id]


# ============================================
# Mocked Collaborators
# ============================================


class TestWithMocks:
    """Test call contracts with mocked key provider and store methods."""

    @pytest.fixture
    def mock_keys(self):
        keys = MagicMock()
        keys.load = AsyncMock()
        keys.verify = AsyncMock(return_value=False)
        return keys

    @pytest.mark.asyncio
    async def test_login_reloads_key_before_verifying(self, remote, cache, admin_settings, clock, mock_keys):
        remote.seed(COMPANIES_PATH, encode_list(COMPANY_LIST, [create_company()]))
        registry = CompanyRegistry(remote, cache, mock_keys, admin_settings, clock=clock)

        with pytest.raises(InvalidCredentialsError):
            await registry.login("acme1", "pass123")

        mock_keys.load.assert_awaited_once_with(force_reload=True)
        mock_keys.verify.assert_awaited_once_with("pass123", "not-a-real-ciphertext")
        assert registry.current_company is None

    @pytest.mark.asyncio
    async def test_provisioning_failure_is_recorded(self, registry, remote):
        remote.put_file = AsyncMock(side_effect=RemoteConnectionError("network down"))

        company = await registry.register("Acme", "acme1", "pass123")

        assert registry.current_company.id == company.id
        assert remote.put_file.await_count == 2
        assert len(registry.last_errors) == 2
        assert "network down" in registry.last_error
