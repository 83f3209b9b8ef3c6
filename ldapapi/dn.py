"""
Distinguished name helpers.
"""

import logging

from ldapapi import ldap

from .typing import ParsedDN

logger = logging.getLogger("django-ldapapi")


def parse_dn(dn: str) -> ParsedDN:
    """
    Split ``dn`` into its attribute values, grouped by attribute type.

    Example:
        >>> parse_dn("uid=bob,ou=people,ou=staff,dc=example,dc=com")
        {'uid': ['bob'], 'ou': ['people', 'staff'], 'dc': ['example', 'com']}

    Attribute types keep the order in which they first appear in ``dn`` and
    values keep their order within each type.  Escaped characters in values
    are unescaped, and every part of a multi-valued RDN (``cn=a+sn=b``) is
    included.

    Args:
        dn: the distinguished name to parse

    Returns:
        A dict of attribute type to list of values, or an empty dict if ``dn``
        can't be parsed.

    """
    try:
        rdns = ldap.dn.str2dn(dn)
    except ldap.DECODING_ERROR:
        logger.warning("ldapapi.parse_dn.failed dn=%s", dn)
        return {}
    parsed: ParsedDN = {}
    for rdn in rdns:
        for attribute, value, _ in rdn:
            parsed.setdefault(attribute, []).append(value)
    return parsed


def get_ou(dn: str) -> str | None:
    """
    Return the value of the first ``ou`` component of ``dn``, or ``None`` if
    it has none.  The attribute type is matched case-insensitively.
    """
    for attribute, values in parse_dn(dn).items():
        if attribute.lower() == "ou":
            return values[0]
    return None


def build_dn(attribute: str, value: str, basedn: str) -> str:
    """
    Return the DN of the entry named ``attribute=value`` directly under
    ``basedn``, escaping ``value`` as needed.
    """
    rdn = f"{attribute}={ldap.dn.escape_dn_chars(value)}"
    if not basedn:
        return rdn
    return f"{rdn},{basedn}"
