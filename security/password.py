"""
Credential hashing: argon2id for new digests.

bcrypt digests written by older deployments still verify; they are
recognised by prefix, the same way the argon2 ones are.
"""
import bcrypt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

# 64 MiB, 3 passes, 4 lanes
MEMORY_COST_KIB = 65536
TIME_COST = 3
PARALLELISM = 4

_ARGON2_PREFIX = "$argon2"
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

_hasher = PasswordHasher(
    time_cost=TIME_COST,
    memory_cost=MEMORY_COST_KIB,
    parallelism=PARALLELISM,
    type=Type.ID,
)


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")
    return _hasher.hash(plain_password)


def verify_password(password_hash: str, plain_password: str) -> bool:
    """Stored digest first, candidate second. Unknown or malformed digests never match."""
    if not password_hash or not plain_password:
        return False

    if password_hash.startswith(_ARGON2_PREFIX):
        try:
            return _hasher.verify(password_hash, plain_password)
        except (VerificationError, InvalidHashError):
            return False

    if password_hash.startswith(_BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    return False

