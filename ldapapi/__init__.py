"""
A small procedural client for LDAP directories built on python-ldap.
"""

__version__ = "1.0.0"
