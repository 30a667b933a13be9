### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Company Registry -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Company Registry

Multi-tenant account management. The company list is one JSON array in
the remote store (companies/companies.json), mirrored into the local
cache. Each company owns two data files:
- companies/<id>/products.json
- companies/<id>/sales.json

The reserved admin identity has no company; its data lives under data/.

Every change to the company list goes through RemoteStore.update(), so
the change is re-applied to the freshest remote list on each attempt and
concurrent registrations on other devices are not lost.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from petshop.config import AdminSettings, hash_password
from petshop.errors import (
    CompanyNotFoundError,
    ConnectionUnavailableError,
    DecodingError,
    InvalidCredentialsError,
    RemoteStoreError,
    TrialExpiredError,
    UsernameExistsError,
)
from petshop.schemas import COMPANY_LIST, PRODUCT_LIST, SALE_LIST, TRIAL_DAYS, Company
from petshop.schemas.common import decode_list, encode_list, utcnow
from petshop.services.encryption import EncryptionKeyProvider
from petshop.services.local_cache import COMPANIES_KEY, CURRENT_COMPANY_KEY, LocalCache
from petshop.services.remote_store import RemoteStore

if TYPE_CHECKING:
    from petshop.services.config_service import ConfigService

logger = logging.getLogger(__name__)

COMPANIES_PATH = "companies/companies.json"
PRODUCTS_FILE = "products.json"
SALES_FILE = "sales.json"

# Cache scope and remote directory of the admin namespace
ADMIN_SCOPE = "admin"
ADMIN_DATA_DIR = "data"


def company_data_path(company_id: str, file: str) -> str:
    return f"companies/{company_id}/{file}"


def _same_username(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class CompanyRegistry:
    """
    Registry of companies and the current session.

    A session is either a selected company (``current_company``) or the
    admin identity (``is_admin``), never both.
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        keys: EncryptionKeyProvider,
        admin: AdminSettings,
        config_service: "ConfigService | None" = None,
        trial_days: int = TRIAL_DAYS,
        reap_on_login: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the registry.

        Args:
            remote: Remote file store
            cache: Local cache
            keys: Shared encryption key provider
            admin: Admin login settings
            config_service: ConfigService used to store a new admin password hash
            trial_days: Trial length for new companies
            reap_on_login: Delete a company when a login finds its trial expired
            clock: Returns the current UTC time
        """
        self.remote = remote
        self.cache = cache
        self.keys = keys
        self.admin = admin
        self.config_service = config_service
        self.trial_days = trial_days
        self.reap_on_login = reap_on_login
        self.clock = clock

        self.companies: list[Company] = []
        self.current_company: Company | None = None
        self.is_admin = False
        self.is_loading = False
        self.last_errors: list[str] = []

    @property
    def last_error(self) -> str | None:
        return self.last_errors[-1] if self.last_errors else None

    def clear_errors(self) -> None:
        self.last_errors.clear()

    def _record_error(self, message: str) -> None:
        logger.warning(message)
        self.last_errors.append(message)

    # ========================================
    # Loading
    # ========================================

    async def load_companies(self) -> list[Company]:
        """
        Load the company list from the remote store.

        Falls back to the cached list (with an advisory in last_errors)
        when no store is configured, the read fails, or the remote list
        is empty.
        """
        if not self.remote.is_configured:
            self._set_companies(self._cached_companies(), cache=False)
            self._record_error("No remote connection configured. Loaded companies from the local cache.")
            return self.companies

        self.is_loading = True
        try:
            data = await self.remote.read(COMPANIES_PATH)
            companies = decode_list(COMPANY_LIST, data, COMPANIES_PATH)
        except (RemoteStoreError, DecodingError) as e:
            self._set_companies(self._cached_companies(), cache=False)
            self._record_error(f"Could not load companies ({e}). Loaded companies from the local cache.")
            return self.companies
        finally:
            self.is_loading = False

        if companies:
            self._set_companies(companies)
        else:
            self._set_companies(self._cached_companies(), cache=False)
        logger.info(f"Loaded {len(self.companies)} companies")
        return self.companies

    def _cached_companies(self) -> list[Company]:
        raw = self.cache.get(COMPANIES_KEY)
        if raw is None:
            return []
        try:
            return decode_list(COMPANY_LIST, raw, "cached companies")
        except DecodingError as e:
            logger.warning(f"Ignoring cached company list: {e}")
            return []

    def _set_companies(self, companies: list[Company], cache: bool = True) -> None:
        self.companies = companies
        if cache:
            self.cache.set(COMPANIES_KEY, encode_list(COMPANY_LIST, companies).decode("utf-8"))
        # Keep the session pointing at the current record
        if self.current_company is not None:
            self.current_company = self.find_by_id(self.current_company.id) or self.current_company

    async def _persist(self, mutate: Callable[[list[Company]], list[Company]], message: str) -> list[Company]:
        """
        Apply ``mutate`` to the remote company list and store the result.

        Without a configured store the change is applied to the local list
        only and ConnectionUnavailableError is raised so the caller knows
        it was not shared.
        """
        if not self.remote.is_configured:
            self._set_companies(mutate(list(self.companies)))
            raise ConnectionUnavailableError()

        def transform(content: bytes) -> bytes:
            return encode_list(COMPANY_LIST, mutate(decode_list(COMPANY_LIST, content, COMPANIES_PATH)))

        stored = await self.remote.update(COMPANIES_PATH, transform, message)
        self._set_companies(decode_list(COMPANY_LIST, stored, COMPANIES_PATH))
        return self.companies

    # ========================================
    # Lookup
    # ========================================

    def find_by_username(self, username: str) -> Company | None:
        return next((c for c in self.companies if _same_username(c.username, username)), None)

    def find_by_id(self, company_id: str) -> Company | None:
        return next((c for c in self.companies if c.id == company_id), None)

    @property
    def scope(self) -> str | None:
        """Cache scope of the session: company id, "admin", or None"""
        if self.current_company is not None:
            return self.current_company.id
        if self.is_admin:
            return ADMIN_SCOPE
        return None

    def data_path(self, file: str) -> str:
        """Remote path of a data file for the current session"""
        if self.current_company is None:
            return f"{ADMIN_DATA_DIR}/{file}"
        return company_data_path(self.current_company.id, file)

    # ========================================
    # Registration
    # ========================================

    async def register(self, name: str, username: str, password: str) -> Company:
        """
        Register a new company and select it.

        Raises:
            ValueError: If name, username or password is empty
            UsernameExistsError: If the username is taken (case-insensitive)
            ConnectionUnavailableError: If no remote store is configured
        """
        name = name.strip()
        username = username.strip()
        if not name or not username or not password:
            raise ValueError("Name, username and password are required")
        if self.admin.is_admin_username(username) or self.find_by_username(username):
            raise UsernameExistsError(username)

        now = self.clock()
        company = Company(
            name=name,
            username=username,
            encrypted_password=await self.keys.encrypt(password),
            created_at=now,
            trial_expires_at=now + timedelta(days=self.trial_days),
        )

        def add(companies: list[Company]) -> list[Company]:
            if any(_same_username(c.username, username) for c in companies):
                raise UsernameExistsError(username)
            return [*companies, company]

        await self._persist(add, f"Register company {name}")
        await self._provision(company)

        self.select_company(company)
        logger.info(f"Registered company '{username}' ({company.id})")
        return company

    async def _provision(self, company: Company) -> None:
        """Create the empty data files of a new company"""
        empty = {
            PRODUCTS_FILE: encode_list(PRODUCT_LIST, []),
            SALES_FILE: encode_list(SALE_LIST, []),
        }
        for file, content in empty.items():
            path = company_data_path(company.id, file)
            try:
                await self.remote.put_file(path, content, f"Create company database - {file}")
            except RemoteStoreError as e:
                # The first sync creates the file anyway
                self._record_error(f"Could not create {path}: {e}")

    # ========================================
    # Session
    # ========================================

    async def login(self, username: str, password: str) -> Company | None:
        """
        Log in as a company, or as admin.

        Returns:
            The selected company, or None for an admin session

        Raises:
            CompanyNotFoundError: No company has this username
            TrialExpiredError: The company's trial has ended
            InvalidCredentialsError: The password does not match
        """
        # Another device may have created the key our data is encrypted with
        await self.keys.load(force_reload=True)

        company = self.find_by_username(username)
        if company is None:
            await self.load_companies()
            company = self.find_by_username(username)

        if company is None:
            if self.admin.is_admin_username(username):
                if not self.admin.verify_password(password):
                    raise InvalidCredentialsError()
                self.start_admin_session()
                return None
            raise CompanyNotFoundError()

        if company.is_trial_expired(self.clock()):
            if self.reap_on_login:
                try:
                    await self.delete_company(company)
                except (RemoteStoreError, DecodingError) as e:
                    self._record_error(f"Could not delete expired company '{company.username}': {e}")
            raise TrialExpiredError(company.username)

        if not await self.keys.verify(password, company.encrypted_password):
            logger.info(f"Login failed: invalid password for '{username}'")
            raise InvalidCredentialsError()

        self.select_company(company)
        logger.info(f"Logged in as '{company.username}'")
        return company

    def select_company(self, company: Company) -> None:
        self.current_company = company
        self.is_admin = False
        self.cache.set(CURRENT_COMPANY_KEY, company.id)

    def start_admin_session(self) -> None:
        self.current_company = None
        self.is_admin = True
        self.cache.delete(CURRENT_COMPANY_KEY)
        logger.info("Started admin session")

    def logout(self) -> None:
        self.current_company = None
        self.is_admin = False
        self.cache.delete(CURRENT_COMPANY_KEY)

    def restore_session(self) -> Company | None:
        """Re-select the last used company, unless it is gone or expired"""
        company_id = self.cache.get(CURRENT_COMPANY_KEY)
        if not company_id:
            return None
        company = self.find_by_id(company_id)
        if company is None or company.is_trial_expired(self.clock()):
            self.cache.delete(CURRENT_COMPANY_KEY)
            return None
        self.current_company = company
        self.is_admin = False
        return company

    # ========================================
    # Passwords
    # ========================================

    async def change_password(self, current_password: str, new_password: str) -> Company:
        """
        Change the password of the current company.

        Raises:
            CompanyNotFoundError: No company is selected
            InvalidCredentialsError: Wrong current password, or empty new one
        """
        company = self.current_company
        if company is None:
            raise CompanyNotFoundError()
        if not await self.keys.verify(current_password, company.encrypted_password):
            raise InvalidCredentialsError()
        if not new_password:
            raise InvalidCredentialsError("New password cannot be empty.")

        encrypted = await self.keys.encrypt(new_password)

        def apply(companies: list[Company]) -> list[Company]:
            return self._replace(
                companies, company.id, lambda c: c.model_copy(update={"encrypted_password": encrypted})
            )

        await self._persist(apply, f"Change password for {company.username}")
        return self.current_company

    def change_admin_password(self, current_password: str, new_password: str) -> None:
        """Change the admin password, stored as a bcrypt hash in config.yaml"""
        if not self.admin.verify_password(current_password):
            raise InvalidCredentialsError()
        if not new_password:
            raise InvalidCredentialsError("New password cannot be empty.")

        password_hash = hash_password(new_password)
        if self.config_service is not None:
            self.config_service.set_admin_password_hash(password_hash)
        self.admin.set_password_hash(password_hash)
        logger.info("Admin password changed")

    async def company_passwords(self) -> dict[str, str | None]:
        """Decrypted password per company id (None where decryption fails)"""
        return {c.id: await self.keys.decrypt(c.encrypted_password) for c in self.companies}

    # ========================================
    # Trial Management
    # ========================================

    @staticmethod
    def _replace(
        companies: list[Company], company_id: str, change: Callable[[Company], Company]
    ) -> list[Company]:
        for i, company in enumerate(companies):
            if company.id == company_id:
                companies[i] = change(company)
                return companies
        raise CompanyNotFoundError()

    async def extend_trial(self, company_id: str, days: int) -> Company:
        """
        Extend a company's trial.

        An active trial is extended from its current expiry; an expired one
        restarts from now.
        """
        if days <= 0:
            raise ValueError("days must be positive")
        now = self.clock()

        def extend(company: Company) -> Company:
            start = now if company.is_trial_expired(now) else company.trial_expires_at
            return company.model_copy(update={"trial_expires_at": start + timedelta(days=days)})

        await self._persist(
            lambda companies: self._replace(companies, company_id, extend),
            f"Extend trial for {company_id} by {days} days",
        )
        return self.find_by_id(company_id)

    async def delete_company(self, company: Company) -> None:
        """
        Delete a company and wipe its data.

        The data files are emptied first. If that fails the company stays
        listed, so a later reap can retry, and the error is raised.
        """
        for file, adapter in ((PRODUCTS_FILE, PRODUCT_LIST), (SALES_FILE, SALE_LIST)):
            await self.remote.overwrite(
                company_data_path(company.id, file),
                encode_list(adapter, []),
                f"Clear data for deleted company {company.username}",
            )

        await self._persist(
            lambda companies: [c for c in companies if c.id != company.id],
            f"Delete company {company.username}",
        )
        self.cache.drop_snapshot(company.id)

        if self.current_company is not None and self.current_company.id == company.id:
            self.logout()
        logger.info(f"Deleted company '{company.username}' ({company.id})")

    async def check_and_delete_expired_trials(self) -> list[Company]:
        """
        Delete every company whose trial has expired.

        A failure for one company is recorded and the scan continues.

        Returns:
            The companies that were deleted
        """
        await self.load_companies()
        now = self.clock()

        deleted = []
        for company in [c for c in self.companies if c.is_trial_expired(now)]:
            try:
                await self.delete_company(company)
                deleted.append(company)
            except (RemoteStoreError, DecodingError) as e:
                self._record_error(f"Could not delete expired company '{company.username}': {e}")

        if deleted:
            logger.info(f"Deleted {len(deleted)} expired companies")
        return deleted
