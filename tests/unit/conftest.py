from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

import pytest
import redis
import requests

from docs_platform.queue.broker import QueueBroker


def _id_num(entry_id: str) -> int:
    return int(str(entry_id).split("-", 1)[0])


class FakeStreamRedis:
    """
    Redis Streams в памяти: ровно то подмножество команд, которое использует QueueBroker.
    Ответ XREADGROUP в форме RESP2: [[stream, [(id, fields), ...]]].
    """

    def __init__(self) -> None:
        self.streams: dict[str, list[tuple[str, dict[str, str]]]] = {}
        self.groups: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_on: dict[str, Exception] = {}
        self.idle_hook: Callable[[FakeStreamRedis], None] | None = None
        self.closed = False
        self._seq = 0
        self._lock = threading.RLock()

    def _maybe_fail(self, op: str) -> None:
        err = self.fail_on.get(op)
        if err is not None:
            raise err

    def ping(self) -> bool:
        self._maybe_fail("ping")
        return True

    def close(self) -> None:
        self.closed = True

    def xgroup_create(self, name: str, groupname: str, id: str = "$", mkstream: bool = False):
        self._maybe_fail("xgroup_create")
        with self._lock:
            if (name, groupname) in self.groups:
                raise redis.ResponseError("BUSYGROUP Consumer Group name already exists")
            if name not in self.streams:
                if not mkstream:
                    raise redis.ResponseError("ERR The XGROUP subcommand requires the key to exist")
                self.streams[name] = []
            self.groups[(name, groupname)] = {"delivered": set(), "pending": {}}
            return True

    def xadd(self, name: str, fields: dict[str, str]) -> str:
        self._maybe_fail("xadd")
        with self._lock:
            self._seq += 1
            entry_id = f"{self._seq}-0"
            self.streams.setdefault(name, []).append((entry_id, dict(fields)))
            return entry_id

    def xreadgroup(
        self,
        groupname: str,
        consumername: str,
        streams: dict[str, str],
        count: int | None = None,
        block: int | None = None,
        noack: bool = False,
    ):
        self._maybe_fail("xreadgroup")
        ((stream, start),) = streams.items()
        with self._lock:
            group = self.groups.get((stream, groupname))
            if group is None:
                raise redis.ResponseError("NOGROUP No such key or consumer group")
            entries = self.streams.get(stream, [])
            if start == ">":
                out = [(eid, f) for eid, f in entries if eid not in group["delivered"]]
                if count:
                    out = out[:count]
                for eid, _ in out:
                    group["delivered"].add(eid)
                    group["pending"][eid] = consumername
            else:
                after = _id_num(start)
                out = [
                    (eid, f)
                    for eid, f in entries
                    if group["pending"].get(eid) == consumername and _id_num(eid) > after
                ]
                if count:
                    out = out[:count]

        if out:
            return [[stream, out]]
        if block is not None:
            if self.idle_hook is not None:
                self.idle_hook(self)
            time.sleep(0.001)
        return []

    def xack(self, name: str, groupname: str, *ids: str) -> int:
        self._maybe_fail("xack")
        with self._lock:
            group = self.groups.get((name, groupname))
            if group is None:
                return 0
            return sum(1 for eid in ids if group["pending"].pop(eid, None) is not None)

    def xdel(self, name: str, *ids: str) -> int:
        self._maybe_fail("xdel")
        with self._lock:
            before = len(self.streams.get(name, []))
            self.streams[name] = [(eid, f) for eid, f in self.streams.get(name, []) if eid not in ids]
            return before - len(self.streams[name])

    def xlen(self, name: str) -> int:
        self._maybe_fail("xlen")
        with self._lock:
            return len(self.streams.get(name, []))

    def xpending(self, name: str, groupname: str) -> dict[str, Any]:
        self._maybe_fail("xpending")
        with self._lock:
            group = self.groups.get((name, groupname))
            if group is None:
                raise redis.ResponseError("NOGROUP No such key or consumer group")
            return {"pending": len(group["pending"]), "min": None, "max": None, "consumers": []}

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        return _FakePipeline(self)

    # helpers для тестов
    def bodies(self, name: str) -> list[str]:
        return [f.get("body", "") for _, f in self.streams.get(name, [])]


class _FakePipeline:
    def __init__(self, client: FakeStreamRedis) -> None:
        self._client = client
        self._ops: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def op(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self

        return op

    def execute(self) -> list[Any]:
        self._client._maybe_fail("execute")
        with self._client._lock:
            return [getattr(self._client, name)(*a, **kw) for name, a, kw in self._ops]


@pytest.fixture()
def fake_redis() -> FakeStreamRedis:
    return FakeStreamRedis()


@pytest.fixture()
def broker(fake_redis: FakeStreamRedis) -> QueueBroker:
    return QueueBroker(fake_redis, group="g:worker", consumer="worker-test", block_ms=10)


class FakeResponse:
    def __init__(self, status_code: int = 200, data: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._data = data
        self.text = text
        self.content = b"" if data is None else b"{}"

    def json(self) -> Any:
        if self._data is None:
            raise ValueError("no json")
        return self._data


class HttpRecorder:
    """
    Подмена requests.request: пишет вызовы, отвечает по (method, path).
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.responses: dict[tuple[str, str], FakeResponse | Exception] = {}
        self.default = FakeResponse(200)
        self._lock = threading.Lock()

    def respond(self, method: str, path: str, resp: FakeResponse | Exception) -> None:
        self.responses[(method.upper(), path)] = resp

    def __call__(self, method: str, url: str, json=None, headers=None, timeout=None, **_kw):
        path = "/" + url.split("://", 1)[-1].split("/", 1)[-1]
        with self._lock:
            self.calls.append(
                {"method": method, "url": url, "path": path, "json": json, "timeout": timeout}
            )
        resp = self.responses.get((method.upper(), path), self.default)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def calls_to(self, path: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["path"] == path]


@pytest.fixture()
def http(monkeypatch) -> HttpRecorder:
    recorder = HttpRecorder()
    recorder.respond("POST", "/logs", FakeResponse(201))
    monkeypatch.setattr(requests, "request", recorder)
    return recorder
