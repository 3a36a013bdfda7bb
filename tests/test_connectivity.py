import socket

import pytest

import config
import db
from connectivity import ConnectivityGuard, network_reachable
from errors import ConnectivityError
from repositories import MemberRepository


def test_offline_guard_makes_no_backend_calls():
    calls = []

    def probe():
        calls.append("probe")
        return True

    def operation(*args, **kwargs):
        calls.append("operation")

    guard = ConnectivityGuard(network_check=lambda: False, probe=probe)
    with pytest.raises(ConnectivityError):
        guard.run(operation)
    assert calls == []


def test_offline_guard_writes_nothing(admin):
    members = MemberRepository()
    guard = ConnectivityGuard(network_check=lambda: False)
    with pytest.raises(ConnectivityError):
        guard.run(members.create, admin, "Ann", "ann@x.com")
    assert members.list() == []
    assert db.query("logs") == []


def test_failed_probe_aborts():
    called = []
    guard = ConnectivityGuard(network_check=lambda: True, probe=lambda: False)
    with pytest.raises(ConnectivityError):
        guard.run(called.append, "x")
    assert called == []


def test_guard_passes_through_result(admin):
    guard = ConnectivityGuard(network_check=lambda: True)
    m = guard.run(MemberRepository().create, admin, "Ann", "ann@x.com")
    assert m.email == "ann@x.com"


def test_guard_uses_store_probe_by_default(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "missing" / "gym.db")
    with pytest.raises(ConnectivityError):
        ConnectivityGuard(network_check=lambda: True).check()


def test_network_reachable_without_configured_host(monkeypatch):
    monkeypatch.setattr(config, "NETWORK_CHECK_HOST", None)
    assert network_reachable() is True


def test_network_reachable_against_listening_socket():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    try:
        port = server.getsockname()[1]
        assert network_reachable(f"127.0.0.1:{port}", timeout=1) is True
    finally:
        server.close()


def test_network_unreachable_on_closed_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    assert network_reachable(f"127.0.0.1:{port}", timeout=1) is False


def test_network_host_must_include_port():
    with pytest.raises(ConnectivityError):
        network_reachable("example.org", timeout=1)


def test_misconfigured_host_stops_the_guard(admin, monkeypatch):
    monkeypatch.setattr(config, "NETWORK_CHECK_HOST", "example.org")
    members = MemberRepository()
    with pytest.raises(ConnectivityError):
        ConnectivityGuard().run(members.create, admin, "Ann", "ann@x.com")
    assert members.list() == []
