"""
connectivity.py
Gate for admin writes: network reachability first, then a store liveness probe.

Passing the gate is advisory; the guarded operation can still fail on its own.
"""

from __future__ import annotations

import logging
import socket
from typing import Callable

import config
import db
from errors import ConnectivityError

logger = logging.getLogger(__name__)


def network_reachable(host: str | None = None, timeout: float | None = None) -> bool:
    """
    TCP connect to "host:port". With no host configured the store is local, so True.
    """
    host = host if host is not None else config.NETWORK_CHECK_HOST
    if not host:
        return True
    name, _, port = host.rpartition(":")
    if not name or not port.isdigit():
        raise ConnectivityError(f"Network check host must look like host:port, got {host!r}")
    try:
        with socket.create_connection((name, int(port)), timeout=timeout or config.NETWORK_CHECK_TIMEOUT):
            return True
    except OSError as e:
        logger.warning("Network check against %s failed: %s", host, e)
        return False


class ConnectivityGuard:
    def __init__(
        self,
        network_check: Callable[[], bool] = network_reachable,
        probe: Callable[[], bool] = db.ping,
    ):
        self.network_check = network_check
        self.probe = probe

    def check(self) -> None:
        if not self.network_check():
            raise ConnectivityError("You are offline. Please check your internet connection.")
        if not self.probe():
            raise ConnectivityError("Cannot connect to server. Please check your connection.")

    def run(self, fn, *args, **kwargs):
        """Check connectivity, then call fn. Nothing is called when the check fails."""
        self.check()
        return fn(*args, **kwargs)
