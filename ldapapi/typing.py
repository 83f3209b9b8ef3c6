"""
Type aliases for the LDAP data structures handled by :mod:`ldapapi`.
"""

from typing import Any

AttributeValues = list[bytes]
LDAPData = tuple[str, dict[str, AttributeValues]]
AddModlist = list[tuple[str, AttributeValues]]
ModifyModList = list[tuple[int, str, AttributeValues | None]]
#: What callers pass to ``add``/``modify``: a single value or a list of them
EntryData = dict[str, Any]
ParsedDN = dict[str, list[str]]
