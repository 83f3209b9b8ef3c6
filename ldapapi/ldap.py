# This module exists so that tests can patch ``ldapapi.ldap.initialize``.
# python-ldap-faker patches ``<module>.ldap.initialize``, so everything in this
# package talks to python-ldap through here.
import ldap
from ldap import *  # noqa: F403
from ldap import dn  # noqa: F401

__version__ = ldap.__version__
