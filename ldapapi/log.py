"""
Log file handling for :class:`ldapapi.client.LdapApi`.

Every client logs through a child of the ``django-ldapapi`` logger.  When a
configuration sets ``log_enable``, failures are also appended to
``<log_path>/ldap_<YYYY-MM-DD>.log``; ``log_debug`` echoes the same lines to
stdout.
"""

import datetime
import logging
import sys
from pathlib import Path
from typing import Any

logger = logging.getLogger("django-ldapapi")

LOG_FORMAT = "%(asctime)s\t%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: How many open clients use each client logger, by logger name
_users: dict[str, int] = {}


class DailyFileHandler(logging.FileHandler):
    """
    A :class:`logging.FileHandler` that writes to ``ldap_<date>.log`` in
    ``directory`` and moves on to a new file when the date changes.
    """

    def __init__(self, directory: str, prefix: str = "ldap_") -> None:
        self.directory = Path(directory)
        self.prefix = prefix
        self.current_date = datetime.date.today()
        super().__init__(self.filename_for(self.current_date), delay=True)

    def filename_for(self, day: datetime.date) -> str:
        return str(self.directory / f"{self.prefix}{day.isoformat()}.log")

    def emit(self, record: logging.LogRecord) -> None:
        today = datetime.date.today()
        if today != self.current_date:
            self.acquire()
            try:
                self.close()
                self.current_date = today
                self.baseFilename = self.filename_for(today)
            finally:
                self.release()
        super().emit(record)


def get_logger(name: str, config: dict[str, Any]) -> logging.Logger:
    """
    Return the logger for the client identified by ``name``, with the file
    and stdout handlers ``config`` asks for.

    Clients built from the same configuration share one logger.  Handlers are
    only attached for the first of them, so log lines are not doubled up, and
    stay attached until the last of them calls :func:`close_logger`.
    """
    client_logger = logger.getChild(name)
    _users[client_logger.name] = _users.get(client_logger.name, 0) + 1
    if client_logger.handlers:
        return client_logger
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    if config.get("log_enable"):
        Path(config["log_path"]).mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = DailyFileHandler(config["log_path"])
        handler.setFormatter(formatter)
        client_logger.addHandler(handler)
        if config.get("log_debug"):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(formatter)
            client_logger.addHandler(handler)
        if client_logger.level == logging.NOTSET:
            client_logger.setLevel(logging.INFO)
    return client_logger


def close_logger(client_logger: logging.Logger) -> None:
    """
    Release one use of ``client_logger``.  When no client uses it any more,
    detach and close every handler :func:`get_logger` attached.
    """
    remaining = _users.get(client_logger.name, 0) - 1
    if remaining > 0:
        _users[client_logger.name] = remaining
        return
    _users.pop(client_logger.name, None)
    for handler in list(client_logger.handlers):
        client_logger.removeHandler(handler)
        handler.close()
