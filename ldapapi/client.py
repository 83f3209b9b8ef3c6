"""
The LDAP client.

:class:`LdapApi` opens one connection to an LDAP server, binds it, and offers
plain search, add, modify and delete calls on it.  Directory errors never
escape those calls: they are logged and the call returns ``False``.

Example:
    >>> api = LdapApi.get_instance({
    ...     "host": "ldap://ldap.example.com:389",
    ...     "basedn": "dc=example,dc=com",
    ...     "binddn": "cn=admin,dc=example,dc=com",
    ...     "bindpw": "secret",
    ... })
    >>> api.search("(uid=bob)")
    [('uid=bob,ou=people,dc=example,dc=com', {'uid': [b'bob'], ...})]

"""

from collections.abc import Callable
from contextlib import suppress
from functools import wraps
from pathlib import Path
from typing import Any, ClassVar, Literal

from ldap_filter import Filter

from ldapapi import ldap

from .conf import config_fingerprint, get_server_config, merge_config
from .dn import get_ou
from .log import close_logger, get_logger
from .passwords import make_password
from .typing import AddModlist, EntryData, LDAPData, ModifyModList

ModifyType = Literal["add", "del", "replace"]

#: Maps the ``type`` argument of :meth:`LdapApi.modify_case` to a python-ldap
#: modification operation
MODIFY_TYPES: dict[str, int] = {
    "add": ldap.MOD_ADD,  # type: ignore[attr-defined]
    "del": ldap.MOD_DELETE,  # type: ignore[attr-defined]
    "replace": ldap.MOD_REPLACE,  # type: ignore[attr-defined]
}


# -----------------------
# Helpers
# -----------------------


def encode_values(value: Any) -> list[bytes]:
    """
    Convert an attribute value, or list of values, to the list of bytes
    python-ldap wants.  ``None`` becomes an empty list.
    """
    if value is None:
        return []
    if not isinstance(value, list | tuple | set):
        value = [value]
    return [v if isinstance(v, bytes) else str(v).encode("utf-8") for v in value]


def add_modlist(entry: EntryData) -> AddModlist:
    """
    Build the modlist for ``add_s`` from ``entry``.  Attributes with no values
    are left out.
    """
    _modlist: AddModlist = []
    for key, value in entry.items():
        values = encode_values(value)
        if values:
            _modlist.append((key, values))
    return _modlist


def modify_modlist(entry: EntryData, modtype: int) -> ModifyModList:
    """
    Build the modlist for ``modify_s`` from ``entry``, applying ``modtype`` to
    every attribute.

    An attribute with no values is sent as ``None``, which for
    ``MOD_DELETE`` and ``MOD_REPLACE`` removes the whole attribute.
    """
    _modlist: ModifyModList = []
    for key, value in entry.items():
        values = encode_values(value)
        _modlist.append((modtype, key, values or None))
    return _modlist


def get_attribute(attrs: dict[str, list[bytes]], name: str) -> list[bytes]:
    """
    Return the values of attribute ``name`` from a search result, matching the
    name case-insensitively.
    """
    for key, values in attrs.items():
        if key.lower() == name.lower():
            return values
    return []


def error_details(error: ldap.LDAPError) -> tuple[Any, str, str]:  # type: ignore[name-defined]
    """
    Pull the result code, description and diagnostic message out of a
    python-ldap exception.
    """
    details: dict[str, Any] = {}
    if error.args and isinstance(error.args[0], dict):
        details = error.args[0]
    return (
        details.get("result", ""),
        details.get("desc", str(error)),
        details.get("info", ""),
    )


# -----------------------
# Decorators
# -----------------------


def suppress_ldap_errors(operation: str) -> Callable:
    """
    Decorator for :class:`LdapApi` methods that talk to the server.

    If the client has no connection, log that and return ``False`` without
    calling the method.  Any :class:`ldap.LDAPError` the method raises is
    logged and turned into a ``False`` return value.

    Args:
        operation: the name to use for the method in log messages

    """

    def real_decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Any:
            # the DN or filter is always the first argument
            target = args[0] if args else kwargs.get("dn", kwargs.get("searchfilter"))
            if self.connection is None:
                self.logger.error(
                    "ldapapi.%s.not_connected host=%s target=%s",
                    operation,
                    self.config["host"],
                    target,
                )
                return False
            try:
                return func(self, *args, **kwargs)
            except ldap.LDAPError as e:  # type: ignore[attr-defined]
                self.log_error(operation, e, target)
                return False

        return wrapper

    return real_decorator


# -----------------------
# Client
# -----------------------


class LdapApi:
    """
    A connection to one LDAP server, bound with the credentials from its
    configuration.

    Use :meth:`get_instance` (or :meth:`from_settings`) rather than the
    constructor to share one connection between all callers that use the same
    configuration.

    Args:
        config: the server configuration.  See :mod:`ldapapi.conf` for the
            keys and their defaults.

    Raises:
        django.core.exceptions.ImproperlyConfigured: ``config`` is not valid
        OSError: ``tls_ca_certfile`` does not exist or is not a file

    """

    #: Registered clients, keyed by configuration fingerprint
    _instances: ClassVar[dict[str, "LdapApi"]] = {}

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.fingerprint: str = config_fingerprint(config)
        self.config: dict[str, Any] = merge_config(config)
        self.logger = get_logger(self.fingerprint[:12], self.config)
        self._logger_released = False
        self.basedn: str = self.config["basedn"]
        self.binddn: str | None = self.config["binddn"]
        self.login_attribute: str = self.config["login_attribute"]
        self.fullname_attribute: str = self.config["fullname_attribute"]
        self.password_attribute: str = self.config["password_attribute"]
        self.connection: ldap.ldapobject.LDAPObject | None = None  # type: ignore[name-defined]
        self.is_bound: bool = False
        try:
            self.connection = self._connect()
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self.log_error("connect", e, self.config["host"])
            return
        except OSError:
            self.release_logger()
            raise
        self.bind(self.binddn, self.config["bindpw"])

    def __repr__(self) -> str:
        return (
            f"<LdapApi host={self.config['host']} basedn={self.basedn} "
            f"bound={self.is_bound}>"
        )

    def __enter__(self) -> "LdapApi":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------------
    # Registry
    # -----------------------

    @classmethod
    def get_instance(cls, config: dict[str, Any] | None = None) -> "LdapApi":
        """
        Return the client for ``config``, creating it the first time this
        configuration is seen.
        """
        key = config_fingerprint(config)
        if key not in cls._instances:
            cls._instances[key] = cls(config)
        return cls._instances[key]

    @classmethod
    def from_settings(cls, name: str = "default") -> "LdapApi":
        """
        Return the client for ``settings.LDAP_SERVERS[name]``.
        """
        return cls.get_instance(get_server_config(name))

    @classmethod
    def release_all(cls) -> None:
        """
        Close every registered client and forget about them.
        """
        for instance in list(cls._instances.values()):
            instance.close()
        cls._instances.clear()

    # -----------------------
    # Connection management
    # -----------------------

    def _connect(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Create a new, unbound LDAP connection object from our configuration.

        Raises:
            OSError: the CA Certificate file is configured but does not exist
                or is not a file.

        Returns:
            An LDAPObject, with StartTLS already done if configured.

        """
        config = self.config
        ldap_object: ldap.ldapobject.LDAPObject = ldap.initialize(config["host"])  # type: ignore[name-defined]
        ldap_object.protocol_version = ldap.VERSION3  # type: ignore[attr-defined]
        if config["follow_referrals"]:
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(config["timeout"]))  # type: ignore[attr-defined]
        if config["sizelimit"]:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(config["sizelimit"]))  # type: ignore[attr-defined]
        if config["tls_verify"] == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        if tls_ca_certfile := config["tls_ca_certfile"]:
            ca_certfile = Path(tls_ca_certfile)
            if not ca_certfile.exists():
                msg = f"CA Certificate file does not exist: {tls_ca_certfile}"
                raise OSError(msg)
            if not ca_certfile.is_file():
                msg = f"CA Certificate file is not a file: {tls_ca_certfile}"
                raise OSError(msg)
            ldap_object.set_option(ldap.OPT_X_TLS_CACERTFILE, tls_ca_certfile)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if config["use_starttls"]:
            ldap_object.start_tls_s()
        return ldap_object

    def close(self) -> None:
        """
        Unbind and drop our connection.  Calling this more than once is
        harmless.
        """
        if self.connection is not None:
            try:
                self.connection.unbind_s()
            except ldap.LDAPError as e:  # type: ignore[attr-defined]
                self.log_error("unbind", e, self.config["host"])
            self.connection = None
        self.is_bound = False
        if self._instances.get(self.fingerprint) is self:
            del self._instances[self.fingerprint]
        self.release_logger()

    def release_logger(self) -> None:
        """
        Give up our use of the shared client logger.  Its handlers are closed
        once no client built from the same configuration still uses them.
        """
        if not self._logger_released:
            close_logger(self.logger)
            self._logger_released = True

    def log_error(self, operation: str, error: Exception, target: Any) -> None:
        """
        Log a failed directory operation.

        Args:
            operation: what we were trying to do
            error: the python-ldap exception
            target: the DN or filter we were working on

        """
        result, desc, info = error_details(error)  # type: ignore[arg-type]
        self.logger.error(
            "ldapapi.%s.failed target=%s result=%s desc=%s info=%s",
            operation,
            target,
            result,
            desc,
            info,
        )

    # -----------------------
    # Directory operations
    # -----------------------

    @suppress_ldap_errors("bind")
    def bind(self, dn: str | None, password: str | None) -> bool:
        """
        Bind our connection as ``dn``.  ``None`` for both arguments does an
        anonymous bind.

        Returns:
            ``True`` if the bind succeeded, ``False`` otherwise.

        """
        self.is_bound = False
        self.connection.simple_bind_s(dn or "", password or "")  # type: ignore[union-attr]
        self.is_bound = True
        return True

    @suppress_ldap_errors("search")
    def search(
        self,
        searchfilter: str,
        basedn: str = "",
        attributes: list[str] | None = None,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
    ) -> list[LDAPData] | Literal[False]:
        """
        Search the directory.

        Args:
            searchfilter: the LDAP search filter string

        Keyword Args:
            basedn: where to start the search.  Defaults to the configured
                ``basedn``.
            attributes: which attributes to return.  Defaults to all of them.
            scope: LDAP search scope

        Returns:
            A list of ``(dn, attrs)`` tuples, or ``False`` if nothing matched
            or the search failed.

        """
        if not basedn:
            basedn = self.basedn
        data = self.connection.search_s(  # type: ignore[union-attr]
            basedn, scope, filterstr=searchfilter, attrlist=attributes or None
        )
        # AD sends referrals along with the entries; they have no attrs dict
        results = [obj for obj in data if isinstance(obj[1], dict)]
        if not results:
            return False
        return results

    def first_entry(self, searchfilter: str) -> LDAPData | Literal[False]:
        """
        Return the first entry under our ``basedn`` matching ``searchfilter``,
        or ``False``.
        """
        results = self.search(searchfilter)
        if not results:
            return False
        return results[0]

    def get_dn(self, entry: LDAPData | None) -> str | Literal[False]:
        """
        Return the DN of a search result entry, or ``False`` if ``entry`` is
        empty.
        """
        if not entry:
            return False
        return entry[0]

    @suppress_ldap_errors("add")
    def add(self, dn: str, entry: EntryData | None = None) -> bool:
        """
        Add a new entry.

        Args:
            dn: the DN of the new entry
            entry: attribute name to a value or list of values

        """
        self.connection.add_s(dn, add_modlist(entry or {}))  # type: ignore[union-attr]
        return True

    @suppress_ldap_errors("modify")
    def modify(self, dn: str, entry: EntryData | None = None) -> bool:
        """
        Replace the attributes in ``entry`` on the entry at ``dn``.  Attributes
        not named in ``entry`` are left alone.
        """
        _modlist = modify_modlist(entry or {}, ldap.MOD_REPLACE)  # type: ignore[attr-defined]
        if not _modlist:
            self.logger.debug("ldapapi.modify.no-changes dn=%s", dn)
            return True
        self.connection.modify_s(dn, _modlist)  # type: ignore[union-attr]
        return True

    @suppress_ldap_errors("modify_case")
    def modify_case(self, dn: str, entry: EntryData, type: ModifyType) -> bool:  # noqa: A002
        """
        Add, delete or replace attribute values on the entry at ``dn``.

        Args:
            dn: the entry to change
            entry: attribute name to a value or list of values
            type: ``"add"`` to add the values, ``"del"`` to delete them (an
                attribute with no values is deleted entirely), or
                ``"replace"`` to replace the attribute's values

        Returns:
            ``True`` on success, ``False`` if the change failed or ``type`` is
            not one of the above.

        """
        try:
            modtype = MODIFY_TYPES[type]
        except KeyError:
            self.logger.error("ldapapi.modify_case.unknown_type dn=%s type=%s", dn, type)
            return False
        self.connection.modify_s(dn, modify_modlist(entry, modtype))  # type: ignore[union-attr]
        return True

    @suppress_ldap_errors("delete")
    def delete(self, dn: str) -> bool:
        """
        Delete the entry at ``dn``.
        """
        self.connection.delete_s(dn)  # type: ignore[union-attr]
        return True

    # -----------------------
    # Users and organizational units
    # -----------------------

    def find_user(
        self, login: str, attributes: list[str] | None = None
    ) -> LDAPData | Literal[False]:
        """
        Return the entry whose ``login_attribute`` is ``login``, or ``False``.
        """
        searchfilter = Filter.attribute(self.login_attribute).equal_to(login).to_string()
        results = self.search(searchfilter, attributes=attributes)
        if not results:
            return False
        return results[0]

    def get_fullname(self, login: str) -> str | Literal[False]:
        """
        Return the ``fullname_attribute`` value of the user ``login``, or
        ``False`` if there is no such user or the user has no full name.
        """
        user = self.find_user(login, attributes=[self.fullname_attribute])
        if not user:
            return False
        values = get_attribute(user[1], self.fullname_attribute)
        if not values:
            return False
        return values[0].decode("utf-8")

    def authenticate(self, login: str, password: str) -> bool:
        """
        Check ``password`` for the user ``login`` by binding as that user on a
        separate connection.  Our own connection stays bound as ``binddn``.

        Returns:
            ``False`` if the user does not exist, the password is empty or wrong,
            or the server could not be reached; ``True`` otherwise.

        """
        if not password:
            # An empty password would be an anonymous bind, which succeeds
            self.logger.warning("auth.empty_password user=%s", login)
            return False
        user = self.find_user(login, attributes=[self.login_attribute])
        if not user:
            self.logger.warning("auth.no_such_user user=%s", login)
            return False
        connection = None
        try:
            connection = self._connect()
            connection.simple_bind_s(user[0], password)
        except ldap.INVALID_CREDENTIALS:  # type: ignore[attr-defined]
            self.logger.warning("auth.invalid_credentials user=%s", login)
            return False
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self.log_error("authenticate", e, user[0])
            return False
        finally:
            if connection is not None:
                with suppress(ldap.LDAPError):  # type: ignore[attr-defined]
                    connection.unbind_s()
        self.logger.info("auth.success user=%s", login)
        return True

    def add_person(self, dn: str, entry: EntryData) -> bool:
        """
        Add a person entry, with ``objectClass`` set from the configured
        ``objectclass_person``.
        """
        data = {k: v for k, v in entry.items() if k.lower() != "objectclass"}
        data["objectClass"] = self.config["objectclass_person"]
        return self.add(dn, data)

    def add_org(self, dn: str, entry: EntryData | None = None) -> bool:
        """
        Add an organizational unit, with ``objectClass`` set from the
        configured ``objectclass_org``.  If ``entry`` has no ``ou``, it is
        taken from ``dn``.
        """
        data = {k: v for k, v in (entry or {}).items() if k.lower() != "objectclass"}
        data["objectClass"] = self.config["objectclass_org"]
        if not any(k.lower() == "ou" for k in data):
            ou = get_ou(dn)
            if ou:
                data["ou"] = ou
        return self.add(dn, data)

    def set_password(self, dn: str, password: str, algo: str = "ssha") -> bool:
        """
        Replace the ``password_attribute`` of the entry at ``dn`` with the
        ``algo`` hash of ``password``.

        Raises:
            ValueError: ``algo`` is not a hash we know.

        """
        hashed = make_password(password, algo)
        if not self.modify(dn, {self.password_attribute: hashed}):
            return False
        self.logger.info("ldapapi.set_password.success dn=%s", dn)
        return True
