from __future__ import annotations

import pytest
import redis

import apps.worker.main as worker_main
from docs_platform.common.config import get_settings
from docs_platform.common.errors import BrokerUnavailableError
from docs_platform.queue.broker import QueueBroker


@pytest.fixture(autouse=True)
def _no_signals(monkeypatch):
    monkeypatch.setattr(worker_main.signal, "signal", lambda *_a, **_kw: None)


@pytest.fixture()
def worker_settings():
    s = get_settings()
    snapshot = s.worker_queues
    try:
        s.worker_queues = "sync_repo,build_task"
        yield s
    finally:
        s.worker_queues = snapshot


def _connect_to(broker: QueueBroker):
    return classmethod(lambda cls, *a, **kw: broker)


def test_broker_unavailable_exits_1(monkeypatch, worker_settings) -> None:
    def _down(cls, *a, **kw):
        raise BrokerUnavailableError("Не удалось подключиться к Redis")

    monkeypatch.setattr(QueueBroker, "connect", classmethod(_down))
    assert worker_main.run() == 1


def test_declare_failure_exits_1(monkeypatch, worker_settings, broker, fake_redis) -> None:
    fake_redis.fail_on["xgroup_create"] = redis.ResponseError("NOPERM no permissions")
    monkeypatch.setattr(QueueBroker, "connect", _connect_to(broker))

    assert worker_main.run() == 1
    assert fake_redis.closed is True


def test_connection_loss_exits_1(monkeypatch, worker_settings, broker, fake_redis) -> None:
    fake_redis.fail_on["xreadgroup"] = redis.ConnectionError("Connection reset by peer")
    monkeypatch.setattr(QueueBroker, "connect", _connect_to(broker))

    assert worker_main.run() == 1
    assert fake_redis.closed is True


def test_declares_configured_queues(monkeypatch, worker_settings, broker, fake_redis) -> None:
    pools: list = []
    original_init = worker_main.WorkerPool.__init__

    def _init(self, *a, **kw):
        original_init(self, *a, **kw)
        pools.append(self)

    monkeypatch.setattr(worker_main.WorkerPool, "__init__", _init)
    monkeypatch.setattr(QueueBroker, "connect", _connect_to(broker))
    fake_redis.idle_hook = lambda _r: pools[0].stop()

    assert worker_main.run() == 0
    assert {q for q, _g in fake_redis.groups} == {"sync_repo", "build_task"}
