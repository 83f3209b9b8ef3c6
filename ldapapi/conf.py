"""
Configuration handling for :class:`ldapapi.client.LdapApi`.

A configuration is a plain dictionary.  It can be passed to the client
directly, or looked up by name in ``settings.LDAP_SERVERS``::

    LDAP_SERVERS = {
        "default": {
            "host": "ldap://ldap.example.com:389",
            "basedn": "dc=example,dc=com",
            "binddn": "cn=admin,dc=example,dc=com",
            "bindpw": "secret",
            "login_attribute": "uid",
            "fullname_attribute": "cn",
            "objectclass_org": ["organizationalUnit", "top"],
            "objectclass_person": ["inetOrgPerson", "posixAccount", "top"],
            "log_path": "/var/log/ldap",
            "log_enable": True,
            "log_debug": False,
        }
    }
"""

import hashlib
import json
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

#: Values used for any key the caller leaves out.
DEFAULTS: dict[str, Any] = {
    "host": "ldap://localhost:389",
    "basedn": "",
    "binddn": None,
    "bindpw": None,
    "login_attribute": "uid",
    "fullname_attribute": "cn",
    "password_attribute": "userPassword",
    "objectclass_org": ["organizationalUnit", "top"],
    "objectclass_person": ["inetOrgPerson", "posixAccount", "top"],
    "log_enable": False,
    "log_debug": False,
    "log_path": "/tmp",  # noqa: S108
    "use_starttls": False,
    "tls_verify": "never",
    "tls_ca_certfile": None,
    "timeout": 15.0,
    "sizelimit": None,
    "follow_referrals": False,
}

TLS_VERIFY_CHOICES = ("never", "always")


def merge_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Overlay ``config`` on :data:`DEFAULTS`.

    Args:
        config: the caller's configuration

    Raises:
        ImproperlyConfigured: ``config`` has keys we don't know about, an
            objectclass setting that is not a list, or a bad ``tls_verify``.

    Returns:
        A new dictionary with every key in :data:`DEFAULTS` set.

    """
    config = config or {}
    unknown = sorted(set(config) - set(DEFAULTS))
    if unknown:
        msg = f"Unknown LDAP configuration keys: {', '.join(unknown)}"
        raise ImproperlyConfigured(msg)
    merged = dict(DEFAULTS)
    merged.update(config)
    for key in ("objectclass_org", "objectclass_person"):
        if not isinstance(merged[key], list | tuple):
            msg = f"LDAP configuration key '{key}' must be a list of objectclasses"
            raise ImproperlyConfigured(msg)
        merged[key] = list(merged[key])
    if merged["tls_verify"] not in TLS_VERIFY_CHOICES:
        msg = f"Invalid tls_verify value: {merged['tls_verify']}"
        raise ImproperlyConfigured(msg)
    return merged


def config_fingerprint(config: dict[str, Any] | None = None) -> str:
    """
    Return the MD5 hex digest of the canonical JSON form of ``config``.

    Key order does not matter: ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}``
    share a fingerprint.
    """
    payload = json.dumps(config or {}, sort_keys=True, default=str)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()  # noqa: S324


def get_server_config(name: str = "default") -> dict[str, Any]:
    """
    Look up the configuration for ``name`` in ``settings.LDAP_SERVERS``.

    Raises:
        ImproperlyConfigured: there is no ``settings.LDAP_SERVERS``, or it has
            no key ``name``.

    """
    try:
        servers = settings.LDAP_SERVERS
    except AttributeError as e:
        msg = "settings.LDAP_SERVERS does not exist!"
        raise ImproperlyConfigured(msg) from e
    try:
        return dict(servers[name])
    except KeyError as e:
        msg = f"settings.LDAP_SERVERS has no key '{name}'"
        raise ImproperlyConfigured(msg) from e
