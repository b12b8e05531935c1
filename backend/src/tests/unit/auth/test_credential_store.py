"""
Tests for credential persistence and the email index.
"""

import pytest

from docsagent.auth.credential_store import CredentialStore, email_key, token_key
from docsagent.auth.credentials import UserCredential
from docsagent.core.encryption import TokenEncryptionService


def _credential(user_id="u1", email="u1@example.com", **overrides) -> UserCredential:
    values = {
        "user_id": user_id,
        "email": email,
        "access_token": f"access-{user_id}",
        "refresh_token": f"refresh-{user_id}",
        "expires_at": 4_102_444_800_000,
        "scopes": ["https://www.googleapis.com/auth/documents"],
    }
    values.update(overrides)
    return UserCredential(**values)


@pytest.mark.asyncio
async def test_save_writes_record_and_email_index(memory_backend):
    store = CredentialStore(memory_backend)
    credential = _credential()
    await store.save(credential)

    assert await store.get("u1") == credential
    assert await memory_backend.get(email_key("u1@example.com")) == "u1"
    assert await store.exists("u1")


@pytest.mark.asyncio
async def test_delete_removes_record_and_index(memory_backend):
    store = CredentialStore(memory_backend)
    await store.save(_credential())

    removed = await store.delete("u1")

    assert removed is True
    assert await memory_backend.keys("*") == []
    assert await store.delete("u1") is False


@pytest.mark.asyncio
async def test_delete_keeps_index_owned_by_another_user(memory_backend):
    store = CredentialStore(memory_backend)
    await store.save(_credential("u1", "shared@example.com"))
    await store.save(_credential("u2", "shared@example.com"))

    await store.delete("u1")

    assert await store.get_user_id_for_email("shared@example.com") == "u2"


@pytest.mark.asyncio
async def test_email_change_drops_stale_index(memory_backend):
    store = CredentialStore(memory_backend)
    await store.save(_credential(email="old@example.com"))

    await store.save(_credential(email="new@example.com"), previous_email="old@example.com")

    assert await store.get_user_id_for_email("old@example.com") is None
    assert await store.get_user_id_for_email("new@example.com") == "u1"


@pytest.mark.asyncio
async def test_list_all_skips_unreadable_records(memory_backend):
    store = CredentialStore(memory_backend)
    await store.save(_credential("u1"))
    await store.save(_credential("u2", "u2@example.com"))
    await memory_backend.set(token_key("broken"), "{not json")

    users = await store.list_all()

    assert sorted(c.user_id for c in users) == ["u1", "u2"]


@pytest.mark.asyncio
async def test_encrypted_records(memory_backend):
    store = CredentialStore(memory_backend, TokenEncryptionService(TokenEncryptionService.generate_key()))
    await store.save(_credential())

    raw = await memory_backend.get(token_key("u1"))
    assert "refresh-u1" not in raw
    assert (await store.get("u1")).refresh_token == "refresh-u1"
    # The email index stays readable
    assert await memory_backend.get(email_key("u1@example.com")) == "u1"


@pytest.mark.asyncio
async def test_records_from_another_key_are_skipped_when_listing(memory_backend):
    writer = CredentialStore(memory_backend, TokenEncryptionService(TokenEncryptionService.generate_key()))
    reader = CredentialStore(memory_backend, TokenEncryptionService(TokenEncryptionService.generate_key()))
    await writer.save(_credential())

    assert await reader.list_all() == []


@pytest.mark.asyncio
async def test_delete_removes_record_written_under_another_key(memory_backend):
    writer = CredentialStore(memory_backend, TokenEncryptionService(TokenEncryptionService.generate_key()))
    reader = CredentialStore(memory_backend, TokenEncryptionService(TokenEncryptionService.generate_key()))
    await writer.save(_credential())

    assert await reader.delete("u1") is True

    assert not await reader.exists("u1")
    assert await reader.delete("u1") is False


@pytest.mark.asyncio
async def test_delete_removes_corrupt_record(memory_backend):
    store = CredentialStore(memory_backend)
    await memory_backend.set(token_key("broken"), "{not json")

    assert await store.delete("broken") is True
    assert await memory_backend.keys("*") == []


def test_public_view_hides_tokens():
    view = _credential(created_at=0, updated_at=0).public_view()

    assert "access_token" not in view and "refresh_token" not in view
    assert view["created_at"] == "1970-01-01T00:00:00+00:00"
    assert view["expires_at"].startswith("2100-01-01")


def test_is_expired_uses_skew():
    credential = _credential(expires_at=1_000_000)

    assert credential.is_expired(skew_ms=60_000, at_ms=1_000_000 - 60_000)
    assert not credential.is_expired(skew_ms=60_000, at_ms=1_000_000 - 60_001)
    assert not _credential(expires_at=None).is_expired()
