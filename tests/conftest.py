import json
import threading

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig

from esbulk.options import Options


def api_error(cls, status: int, message: str):
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return cls(message, meta=meta, body={})


def ok_response(operations):
    items = []
    for header in operations[0::2]:
        meta = json.loads(header)["index"]
        items.append({"index": {"_index": meta["_index"], "_id": meta.get("_id", "auto"), "status": 201}})
    return {"took": 3, "errors": False, "items": items}


class FakeIndices:
    def __init__(self, client):
        self._client = client

    def create(self, index):
        self._client.record("create", index=index)

    def delete(self, index):
        self._client.record("delete", index=index)

    def put_mapping(self, index, body):
        self._client.record("put_mapping", index=index, body=body)

    def put_settings(self, index, settings):
        self._client.record("put_settings", index=index, settings=settings)

    def flush(self, index):
        self._client.record("flush", index=index)


class FakeClient:
    """Records every request in order; bulk answers with bulk_response(operations)."""

    def __init__(self, bulk_response=ok_response, fail=None):
        self.calls = []
        self.bulks = []
        self.lock = threading.Lock()
        self.bulk_response = bulk_response
        self.fail = fail or {}
        self.indices = FakeIndices(self)

    def record(self, name, **kwargs):
        with self.lock:
            self.calls.append((name, kwargs))
        error = self.fail.get(name)
        if error is not None:
            raise error

    def bulk(self, operations):
        self.record("bulk", size=len(operations) // 2)
        with self.lock:
            self.bulks.append((threading.current_thread().name, list(operations)))
        return self.bulk_response(operations)

    def names(self):
        return [name for name, _ in self.calls]

    def settings_calls(self):
        return [kwargs["settings"] for name, kwargs in self.calls if name == "put_settings"]


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def options():
    return Options(index="docs", batch_size=2, num_workers=1)
