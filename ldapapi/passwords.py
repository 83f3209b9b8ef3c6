"""
Password hashes in the ``{SCHEME}base64(digest[+salt])`` form LDAP servers
store in ``userPassword`` (RFC 2307).
"""

import hashlib
import hmac
import os
from base64 import b64decode as decode
from base64 import b64encode as encode

#: Length of the random salt used by :func:`ldap_password_ssha`
SALT_LENGTH = 8


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def ldap_password_sha(password: str | bytes) -> str:
    """
    Hash ``password`` with unsalted SHA1.

    Args:
        password: The plain text password to hash.

    Returns:
        ``{SHA}`` followed by the base64 encoded digest.

    """
    digest = hashlib.sha1(_to_bytes(password)).digest()  # noqa: S324
    return "{SHA}" + encode(digest).decode("ascii")


def ldap_password_ssha(password: str | bytes, salt: bytes | None = None) -> str:
    """
    Hash ``password`` with salted SHA1.

    Args:
        password: The plain text password to hash.

    Keyword Args:
        salt: The salt to use.  A random one is generated if not given.

    Returns:
        ``{SSHA}`` followed by the base64 encoding of the digest with the salt
        appended.

    """
    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    h = hashlib.sha1(_to_bytes(password))  # noqa: S324
    h.update(salt)
    return "{SSHA}" + encode(h.digest() + salt).decode("ascii")


def ldap_password_md5(password: str | bytes, encrypted: bool = False) -> str:  # noqa: FBT001, FBT002
    """
    Hash ``password`` with MD5.

    Args:
        password: The plain text password, or if ``encrypted`` is ``True``, the
            hex MD5 digest of the password.

    Keyword Args:
        encrypted: whether ``password`` has already been run through MD5

    Raises:
        ValueError: ``encrypted`` is ``True`` but ``password`` is not a hex
            MD5 digest.

    Returns:
        ``{MD5}`` followed by the base64 encoded digest.

    """
    if encrypted:
        hexdigest = password.decode("ascii") if isinstance(password, bytes) else password
        digest = bytes.fromhex(hexdigest)
        if len(digest) != hashlib.md5().digest_size:  # noqa: S324
            msg = f"Not an MD5 hex digest: {hexdigest!r}"
            raise ValueError(msg)
    else:
        digest = hashlib.md5(_to_bytes(password)).digest()  # noqa: S324
    return "{MD5}" + encode(digest).decode("ascii")


HASHERS = {
    "sha": ldap_password_sha,
    "ssha": ldap_password_ssha,
    "md5": ldap_password_md5,
}


def make_password(password: str | bytes, algo: str, encrypted: bool = False) -> str:  # noqa: FBT001, FBT002
    """
    Hash ``password`` with the scheme named by ``algo``.

    Args:
        password: the password to hash
        algo: ``sha``, ``ssha`` or ``md5``, in any case

    Keyword Args:
        encrypted: passed on to :func:`ldap_password_md5`; ignored otherwise

    Raises:
        ValueError: ``algo`` is not one we know.

    """
    try:
        hasher = HASHERS[algo.lower()]
    except KeyError as e:
        msg = f"Unknown password hash algorithm: {algo}"
        raise ValueError(msg) from e
    if hasher is ldap_password_md5:
        return ldap_password_md5(password, encrypted=encrypted)
    return hasher(password)


def check_password(password: str | bytes, hashed: str | bytes) -> bool:
    """
    Return ``True`` if ``password`` matches ``hashed``, a ``{SHA}``,
    ``{SSHA}`` or ``{MD5}`` value.  Anything else does not match.
    """
    if isinstance(hashed, bytes):
        try:
            hashed = hashed.decode("ascii")
        except UnicodeDecodeError:
            # hashes are always base64; this is a cleartext value
            return False
    if not hashed.startswith("{") or "}" not in hashed:
        return False
    scheme, _, payload = hashed[1:].partition("}")
    scheme = scheme.lower()
    if not payload.isascii():
        return False
    if scheme == "ssha":
        try:
            raw = decode(payload)
        except ValueError:
            return False
        salt = raw[hashlib.sha1().digest_size :]  # noqa: S324
        candidate = ldap_password_ssha(password, salt=salt)
    elif scheme in ("sha", "md5"):
        candidate = HASHERS[scheme](password)
    else:
        return False
    return hmac.compare_digest(candidate[len(scheme) + 2 :], payload)
