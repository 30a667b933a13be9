"""
Unit tests for the shared encryption key provider.

Tests key resolution order, the bootstrap race between devices, and
decryption with a stale local key.
"""

import base64
import json
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from petshop.services.encryption import KEY_PATH, EncryptionKeyProvider, KeyState, decode_key, encode_key_file
from petshop.services.local_cache import ENCRYPTION_KEY, LOCAL_ENCRYPTION_KEY, LocalCache
from petshop.errors import DecodingError, RemoteTimeoutError
from tests.mocks.memory_remote_store import InMemoryRemoteStore


def new_key() -> bytes:
    return os.urandom(32)


def stored_key(remote: InMemoryRemoteStore) -> bytes:
    return base64.b64decode(json.loads(remote.content(KEY_PATH))["key"])


class TestKeyResolution:
    """Test where the key comes from."""

    @pytest.mark.asyncio
    async def test_bootstraps_remote_key_when_missing(self, keys, remote, cache):
        key = await keys.load()

        assert keys.state is KeyState.LOADED
        assert stored_key(remote) == key
        assert decode_key(cache.get(ENCRYPTION_KEY)) == key

    @pytest.mark.asyncio
    async def test_adopts_existing_remote_key(self, keys, remote, cache):
        existing = new_key()
        remote.seed(KEY_PATH, encode_key_file(existing))

        assert await keys.load() == existing
        assert remote.writes == []
        assert decode_key(cache.get(ENCRYPTION_KEY)) == existing

    @pytest.mark.asyncio
    async def test_cached_key_skips_remote(self, keys, remote, cache):
        cached = new_key()
        cache.set(ENCRYPTION_KEY, base64.b64encode(cached).decode())

        assert await keys.load() == cached
        assert remote.reads == []

    @pytest.mark.asyncio
    async def test_force_reload_prefers_remote_over_cache(self, keys, remote, cache):
        cache.set(ENCRYPTION_KEY, base64.b64encode(new_key()).decode())
        remote_key = new_key()
        remote.seed(KEY_PATH, encode_key_file(remote_key))

        assert await keys.load(force_reload=True) == remote_key

    @pytest.mark.asyncio
    async def test_loaded_key_is_reused(self, keys, remote):
        first = await keys.load()
        reads = len(remote.reads)

        assert await keys.load() == first
        assert len(remote.reads) == reads

    @pytest.mark.asyncio
    async def test_bootstrap_conflict_adopts_winner(self, keys, remote):
        """Another device creates the key between our check and our write."""
        winner = new_key()

        def other_device_creates_key(path):
            remote.before_write = None
            remote.seed(path, encode_key_file(winner))

        remote.before_write = other_device_creates_key

        assert await keys.load() == winner
        assert stored_key(remote) == winner

    @pytest.mark.asyncio
    async def test_unconfigured_store_generates_local_key(self, cache):
        provider = EncryptionKeyProvider(InMemoryRemoteStore(configured=False), cache)

        key = await provider.load()

        assert len(key) == 32
        assert provider.is_loaded
        assert not provider.is_confirmed
        assert cache.get(ENCRYPTION_KEY) is None
        assert decode_key(cache.get(LOCAL_ENCRYPTION_KEY)) == key

    @pytest.mark.asyncio
    async def test_force_reload_keeps_key_when_offline(self, cache):
        remote = InMemoryRemoteStore(configured=False)
        provider = EncryptionKeyProvider(remote, cache)
        key = await provider.load()

        assert await provider.load(force_reload=True) == key

    @pytest.mark.asyncio
    async def test_corrupt_remote_key_falls_back_locally(self, keys, remote):
        remote.seed(KEY_PATH, b'{"key": "short"}')

        key = await keys.load()

        assert len(key) == 32
        assert remote.content(KEY_PATH) == b'{"key": "short"}'

    @pytest.mark.asyncio
    async def test_key_generated_during_outage_is_not_shared(self, keys, remote, cache):
        remote_key = new_key()
        remote.seed(KEY_PATH, encode_key_file(remote_key))
        remote.fail_reads[KEY_PATH] = RemoteTimeoutError("Request timed out")

        local_key = await keys.load()

        assert local_key != remote_key
        assert not keys.is_confirmed
        assert cache.get(ENCRYPTION_KEY) is None

    @pytest.mark.asyncio
    async def test_encrypt_confirms_key_after_outage(self, keys, remote, cache):
        remote_key = new_key()
        remote.seed(KEY_PATH, encode_key_file(remote_key))
        remote.fail_reads[KEY_PATH] = RemoteTimeoutError("Request timed out")
        await keys.load()
        del remote.fail_reads[KEY_PATH]

        token = await keys.encrypt("pass123")

        assert keys.is_confirmed
        assert decode_key(cache.get(ENCRYPTION_KEY)) == remote_key
        assert cache.get(LOCAL_ENCRYPTION_KEY) is None
        raw = base64.b64decode(token)
        assert AESGCM(remote_key).decrypt(raw[:12], raw[12:], None) == b"pass123"

    @pytest.mark.asyncio
    async def test_outage_key_is_published_when_no_remote_key(self, keys, remote):
        remote.fail_reads[KEY_PATH] = RemoteTimeoutError("Request timed out")
        local_key = await keys.load()
        token = await keys.encrypt("pass123")
        del remote.fail_reads[KEY_PATH]

        await keys.encrypt("other")

        assert keys.is_confirmed
        assert stored_key(remote) == local_key
        assert await keys.decrypt(token) == "pass123"

    @pytest.mark.asyncio
    async def test_unconfirmed_key_survives_restart(self, remote, cache):
        remote.fail_reads[KEY_PATH] = RemoteTimeoutError("Request timed out")
        local_key = await EncryptionKeyProvider(remote, cache).load()

        restarted = EncryptionKeyProvider(remote, cache)

        assert await restarted.load() == local_key
        assert not restarted.is_confirmed


class TestEncryptDecrypt:
    """Test the password cipher."""

    @pytest.mark.asyncio
    async def test_round_trip(self, keys):
        for password in ["pass123", "", "şifre-ğüİ", "x" * 500]:
            assert await keys.decrypt(await keys.encrypt(password)) == password

    @pytest.mark.asyncio
    async def test_ciphertext_is_randomized(self, keys):
        assert await keys.encrypt("pass123") != await keys.encrypt("pass123")

    @pytest.mark.asyncio
    async def test_ciphertext_layout(self, keys):
        raw = base64.b64decode(await keys.encrypt("abc"))
        # nonce + 3 bytes + tag
        assert len(raw) == 12 + 3 + 16

    @pytest.mark.asyncio
    async def test_stale_local_key_reloads_from_remote(self, remote, cache, tmp_path):
        """Data encrypted by another device decrypts after a forced reload."""
        remote_key = new_key()
        remote.seed(KEY_PATH, encode_key_file(remote_key))
        other_device = EncryptionKeyProvider(remote, LocalCache(f"sqlite:///{tmp_path / 'other.db'}"))
        token = await other_device.encrypt("pass123")

        cache.set(ENCRYPTION_KEY, base64.b64encode(new_key()).decode())
        provider = EncryptionKeyProvider(remote, cache)

        assert await provider.decrypt(token) == "pass123"
        assert decode_key(cache.get(ENCRYPTION_KEY)) == remote_key

    @pytest.mark.asyncio
    async def test_wrong_key_returns_none(self, keys, cache, tmp_path):
        stranger = EncryptionKeyProvider(
            InMemoryRemoteStore(configured=False),
            LocalCache(f"sqlite:///{tmp_path / 'stranger.db'}"),
        )
        token = await stranger.encrypt("pass123")

        assert await keys.decrypt(token) is None

    @pytest.mark.asyncio
    async def test_malformed_input_returns_none(self, keys):
        assert await keys.decrypt("not base64!") is None
        assert await keys.decrypt(base64.b64encode(b"short").decode()) is None

    @pytest.mark.asyncio
    async def test_verify(self, keys):
        token = await keys.encrypt("pass123")

        assert await keys.verify("pass123", token)
        assert not await keys.verify("pass124", token)


class TestKeyEncoding:
    def test_decode_rejects_wrong_size(self):
        with pytest.raises(DecodingError):
            decode_key(base64.b64encode(b"x" * 16).decode())

    def test_decode_rejects_invalid_base64(self):
        with pytest.raises(DecodingError):
            decode_key("@@@")
