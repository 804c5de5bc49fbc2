"""Tests for credential hashing."""
import bcrypt
import pytest

from security.password import MEMORY_COST_KIB, PARALLELISM, TIME_COST, hash_password, verify_password

from conftest import PASSWORD, password_hash


def test_digest_is_argon2id_with_configured_costs():
    digest = password_hash()
    assert digest.startswith("$argon2id$")
    assert f"m={MEMORY_COST_KIB},t={TIME_COST},p={PARALLELISM}" in digest


def test_stored_digest_comes_first():
    digest = password_hash()
    assert verify_password(digest, PASSWORD)
    assert not verify_password(PASSWORD, digest)


def test_wrong_password():
    assert not verify_password(password_hash(), "not-the-password")


@pytest.mark.parametrize("digest", ["", "plaintext", "$argon2id$garbage", "$2b$12$short"])
def test_malformed_digest_never_matches(digest):
    assert not verify_password(digest, PASSWORD)


def test_empty_candidate_never_matches():
    assert not verify_password(password_hash(), "")


def test_legacy_bcrypt_digest_still_verifies():
    legacy = bcrypt.hashpw(PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
    assert verify_password(legacy, PASSWORD)
    assert not verify_password(legacy, "nope")


def test_hash_rejects_empty():
    with pytest.raises(ValueError):
        hash_password("")
