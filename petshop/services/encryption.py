### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Encryption Key Provider -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Encryption Key Provider

Company passwords are encrypted with one shared AES-256-GCM key so that
every device can verify every company's password. The key lives in the
remote store at config/encryption_key.json and is mirrored into the local
cache.

Key resolution order:
1. Local cache (skipped on force reload)
2. Remote key file
3. Generate a new key - but re-check the remote first and, on a write
   conflict, adopt whatever key another device stored. An existing remote
   key always wins over a locally generated one.
4. Remote store unreachable - keep the current or cached key, otherwise
   generate an unconfirmed local key that is never cached as the shared
   one.

Ciphertext format: base64(nonce[12] + ciphertext + tag[16]).
"""

import asyncio
import base64
import binascii
import hmac
import json
import logging
import os
from enum import Enum

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from petshop.errors import ConflictError, DecodingError, RemoteStoreError
from petshop.services.local_cache import ENCRYPTION_KEY, LOCAL_ENCRYPTION_KEY, LocalCache
from petshop.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)

KEY_PATH = "config/encryption_key.json"
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class KeyState(str, Enum):
    """Lifecycle of the shared key"""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


def encode_key_file(key: bytes) -> bytes:
    """Remote key file body"""
    return json.dumps({"key": base64.b64encode(key).decode("ascii")}, indent=2).encode("utf-8")


def decode_key(encoded: str) -> bytes:
    """
    Decode a base64 key and check its size.

    Raises:
        DecodingError: If the value is not a base64 256-bit key
    """
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise DecodingError("Encryption key is not valid base64")
    if len(key) != KEY_SIZE:
        raise DecodingError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
    return key


class EncryptionKeyProvider:
    """
    Loads the shared key and encrypts/decrypts company passwords.

    Concurrent load() calls within one process are serialized by a lock,
    so only one of them talks to the remote store.

    A key that could not be checked against the remote store (generated
    offline) is unconfirmed: it is kept apart from the shared key in the
    cache, and encrypt() tries to confirm it before every use. If no
    remote key exists by then, the local key is published as the shared
    one.
    """

    def __init__(self, remote: RemoteStore, cache: LocalCache):
        self.remote = remote
        self.cache = cache
        self.state = KeyState.UNLOADED
        self.is_confirmed = False
        self._key: bytes | None = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self.state is KeyState.LOADED

    async def load(self, force_reload: bool = False) -> bytes:
        """
        Resolve the shared key.

        Args:
            force_reload: Ignore the cached key and resolve remote-first.
                Used when decryption fails, since another device may have
                created the key our data was encrypted with.

        Returns:
            The 32-byte key
        """
        async with self._lock:
            if self.state is KeyState.LOADED and not force_reload:
                return self._key

            previous_state = self.state
            self.state = KeyState.LOADING
            try:
                key, confirmed = await self._resolve_key(force_reload)
            except Exception:
                self.state = previous_state
                raise

            self._adopt(key, confirmed)
            return key

    async def _resolve_key(self, force_reload: bool) -> tuple[bytes, bool]:
        if not force_reload:
            cached = self._cached_key(ENCRYPTION_KEY)
            if cached is not None:
                logger.debug("Using cached encryption key")
                return cached, True

        try:
            remote_key = await self._read_remote_key()
            if remote_key is not None:
                logger.debug("Loaded encryption key from remote store")
                return remote_key, True
            return await self._bootstrap_remote_key(), True

        except (RemoteStoreError, DecodingError) as e:
            if self._key is not None:
                logger.warning(f"Could not load encryption key from remote store ({e}); keeping current key")
                return self._key, self.is_confirmed
            cached = self._cached_key(ENCRYPTION_KEY)
            if cached is not None:
                logger.warning(f"Could not load encryption key from remote store ({e}); keeping cached key")
                return cached, True
            local = self._cached_key(LOCAL_ENCRYPTION_KEY)
            if local is not None:
                logger.warning(f"Could not load encryption key from remote store ({e}); keeping unconfirmed local key")
                return local, False
            logger.warning(f"Could not load encryption key from remote store ({e}); generating a local key")
            return AESGCM.generate_key(bit_length=256), False

    async def _read_remote_key(self) -> bytes | None:
        data = await self.remote.read(KEY_PATH)
        if not data.strip():
            return None
        try:
            payload = json.loads(data)
        except ValueError:
            raise DecodingError(f"Invalid JSON in {KEY_PATH}")
        if not isinstance(payload, dict) or not payload.get("key"):
            raise DecodingError(f"Missing key in {KEY_PATH}")
        return decode_key(payload["key"])

    async def _bootstrap_remote_key(self) -> bytes:
        """Create the shared key, deferring to any key another device stored first"""
        # Passwords encrypted offline stay readable if their key becomes the shared one
        new_key = self._key or self._cached_key(LOCAL_ENCRYPTION_KEY) or AESGCM.generate_key(bit_length=256)

        # Another device may have created the key since our first read
        existing = await self._read_remote_key()
        if existing is not None:
            logger.info("Encryption key appeared remotely during bootstrap; adopting it")
            return existing

        try:
            await self.remote.write(KEY_PATH, encode_key_file(new_key), "Create encryption key", sha=None)
            logger.info("Created shared encryption key")
            return new_key
        except ConflictError:
            winner = await self._read_remote_key()
            if winner is None:
                raise
            logger.info("Lost encryption key bootstrap race; adopting remote key")
            return winner

    def _cached_key(self, cache_key: str) -> bytes | None:
        encoded = self.cache.get(cache_key)
        if not encoded:
            return None
        try:
            return decode_key(encoded)
        except DecodingError:
            logger.warning(f"Discarding invalid cached encryption key '{cache_key}'")
            return None

    def _adopt(self, key: bytes, confirmed: bool) -> None:
        if self._key is not None and key != self._key:
            logger.info("Switching to a different encryption key")
        self._key = key
        self.is_confirmed = confirmed
        encoded = base64.b64encode(key).decode("ascii")
        if confirmed:
            self.cache.set(ENCRYPTION_KEY, encoded)
            self.cache.delete(LOCAL_ENCRYPTION_KEY)
        else:
            self.cache.set(LOCAL_ENCRYPTION_KEY, encoded)
        self.state = KeyState.LOADED

    # ========================================
    # Encrypt / Decrypt
    # ========================================

    async def encrypt(self, plaintext: str) -> str:
        """
        Encrypt text with the shared key, returning base64 nonce+ciphertext+tag.

        An unconfirmed key is re-checked against the remote store first, so
        nothing new is encrypted with a key other devices do not have.
        """
        key = await self.load()
        if not self.is_confirmed:
            key = await self.load(force_reload=True)
        nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    async def decrypt(self, token: str) -> str | None:
        """
        Decrypt a token produced by encrypt().

        On an authentication failure the key is reloaded from the remote
        store once and decryption retried.

        Returns:
            The plaintext, or None if decryption failed (treat as
            "password does not match")
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError, TypeError):
            logger.warning("Ciphertext is not valid base64")
            return None
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            logger.warning("Ciphertext is too short")
            return None

        key = await self.load()
        try:
            return self._open(key, raw)
        except InvalidTag:
            logger.info("Decryption failed with local key; reloading shared key")

        key = await self.load(force_reload=True)
        try:
            return self._open(key, raw)
        except InvalidTag:
            logger.warning("Decryption failed after reloading shared key")
            return None

    @staticmethod
    def _open(key: bytes, raw: bytes) -> str | None:
        plaintext = AESGCM(key).decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            return None

    async def verify(self, plaintext: str, token: str) -> bool:
        """Check a password against its stored ciphertext"""
        decrypted = await self.decrypt(token)
        if decrypted is None:
            return False
        return hmac.compare_digest(decrypted.encode("utf-8"), plaintext.encode("utf-8"))
