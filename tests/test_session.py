import logging
import math
import re
from collections import defaultdict

import pytest
from elasticsearch.exceptions import ConnectionError, NotFoundError

from esbulk.exceptions import ConfigurationError, SetupError, StreamReadError, TeardownError, WriterError
from esbulk.indices import REFRESH_DISABLED, REFRESH_RESTORED, REPLICAS_RESTORED, ZERO_REPLICAS
from esbulk.options import Options
from esbulk.session import IndexingSession, restore_settings
from tests.conftest import FakeClient, api_error


def run(client, options, records, sleeps=None):
    sleep = sleeps.append if sleeps is not None else (lambda seconds: None)
    return IndexingSession(options, client=client, sleep=sleep).run(records)


def test_three_records_batch_of_two_one_worker(client, options):
    report = run(client, options, ['{"n":1}', '{"n":2}', '{"n":3}'])
    assert [len(ops) // 2 for _, ops in client.bulks] == [2, 1]
    assert report.records == 3
    assert report.requests == 2
    assert report.failed_docs == 0
    assert report.workers == 1


def test_settings_bracket_every_bulk_request(client):
    options = Options(index="docs", batch_size=3, num_workers=4)
    run(client, options, [str(i) for i in range(40)])
    names = client.names()
    first_bulk = names.index("bulk")
    last_bulk = len(names) - 1 - names[::-1].index("bulk")
    disabled = client.calls.index(("put_settings", {"index": "docs", "settings": REFRESH_DISABLED}))
    restored = client.calls.index(("put_settings", {"index": "docs", "settings": REFRESH_RESTORED}))
    assert names[:2] == ["create", "put_settings"]
    assert disabled < first_bulk
    assert restored > last_bulk
    assert names[-3:] == ["put_settings", "put_settings", "flush"]
    assert client.settings_calls()[-2:] == [REFRESH_RESTORED, REPLICAS_RESTORED]


def test_every_record_reaches_exactly_one_batch(client):
    options = Options(index="docs", batch_size=7, num_workers=4)
    records = [f'{{"n": {i}}}' for i in range(100)]
    report = run(client, options, records)

    per_writer = defaultdict(list)
    for thread_name, ops in client.bulks:
        per_writer[thread_name].append(len(ops) // 2)
    sent = sorted(doc for _, ops in client.bulks for doc in ops[1::2])
    assert sent == sorted(records)
    assert report.records == 100
    for batch_sizes in per_writer.values():
        handled = sum(batch_sizes)
        assert len(batch_sizes) == math.ceil(handled / 7)
        assert all(size == 7 for size in batch_sizes[:-1])


def test_purge_deletes_then_pauses_then_creates(client):
    sleeps = []
    options = Options(index="docs", purge=True, num_workers=1)
    run(client, options, ["x"], sleeps=sleeps)
    assert client.names()[:2] == ["delete", "create"]
    assert sleeps == [5.0]


def test_purge_of_missing_index_is_not_an_error():
    client = FakeClient(fail={"delete": api_error(NotFoundError, 404, "index_not_found_exception")})
    run(client, Options(index="docs", purge=True, num_workers=1), ["x"])
    assert "bulk" in client.names()


def test_mapping_is_applied_before_settings_and_writes(client):
    options = Options(index="docs", mapping='{"properties": {"n": {"type": "long"}}}', num_workers=1)
    run(client, options, ["x"])
    assert client.names()[:3] == ["create", "put_mapping", "put_settings"]
    assert client.calls[1][1]["body"] == {"properties": {"n": {"type": "long"}}}


def test_zero_replicas_during_load(client):
    run(client, Options(index="docs", zero_replica=True, num_workers=1), ["x"])
    assert client.settings_calls() == [REFRESH_DISABLED, ZERO_REPLICAS, REFRESH_RESTORED, REPLICAS_RESTORED]


def test_missing_index_fails_before_any_request(client):
    with pytest.raises(ConfigurationError):
        run(client, Options(index=""), ["x"])
    assert client.calls == []


def test_failed_create_aborts_before_settings():
    client = FakeClient(fail={"create": ConnectionError("connection refused")})
    with pytest.raises(SetupError) as excinfo:
        run(client, Options(index="docs", num_workers=1), ["x"])
    assert excinfo.value.step == "create index"
    assert client.names() == ["create"]


def test_failed_disable_refresh_still_restores():
    client = FakeClient(fail={"put_settings": ConnectionError("connection refused")})
    with pytest.raises(SetupError) as excinfo:
        run(client, Options(index="docs", num_workers=1), ["x"])
    assert excinfo.value.step == "disable refresh"
    assert "bulk" not in client.names()
    assert client.names()[-1] == "flush"


def test_writer_failure_raises_and_restores():
    client = FakeClient(fail={"bulk": ConnectionError("connection refused")})
    with pytest.raises(WriterError) as excinfo:
        run(client, Options(index="docs", batch_size=1, num_workers=2), [str(i) for i in range(50)])
    assert excinfo.value.worker.startswith("worker-")
    assert client.settings_calls()[-2:] == [REFRESH_RESTORED, REPLICAS_RESTORED]
    assert client.names()[-1] == "flush"


def test_reader_failure_propagates_and_restores(client):
    def records():
        yield "a"
        yield "b"
        raise StreamReadError("read failed after line 2: boom")

    with pytest.raises(StreamReadError):
        run(client, Options(index="docs", batch_size=10, num_workers=2), records())
    assert client.names()[-1] == "flush"


def test_failed_flush_after_clean_load_is_reported():
    client = FakeClient(fail={"flush": ConnectionError("connection refused")})
    with pytest.raises(TeardownError) as excinfo:
        run(client, Options(index="docs", num_workers=1), ["x"])
    assert excinfo.value.errors[0].startswith("flush")
    assert "bulk" in client.names()


@pytest.mark.filterwarnings("ignore::pytest.PytestUnhandledThreadExceptionWarning")
def test_writer_killed_by_system_exit_fails_the_session():
    client = FakeClient(fail={"bulk": SystemExit(3)})
    with pytest.raises(WriterError):
        run(client, Options(index="docs", batch_size=1, num_workers=2), [str(i) for i in range(50)])
    assert client.names()[-1] == "flush"


def test_restore_attempts_every_step_whatever_fails():
    client = FakeClient(fail={"put_settings": RuntimeError("unexpected")})
    errors = restore_settings(client, Options(index="docs"))
    assert len(errors) == 2
    assert client.names() == ["put_settings", "put_settings", "flush"]


def test_verbose_session_reports_throughput(client, caplog):
    caplog.set_level(logging.INFO, logger="esbulk")
    run(client, Options(index="docs", batch_size=2, num_workers=1, verbose=True), ["a", "b", "c"])
    reports = [r.getMessage() for r in caplog.records if r.name == "esbulk.session"]
    assert any(re.match(r"3 docs in [\d.]+s at [\d.]+ docs/s with 1 workers$", m) for m in reports)


def test_quiet_session_reports_nothing(client, caplog):
    caplog.set_level(logging.INFO, logger="esbulk")
    run(client, Options(index="docs", batch_size=2, num_workers=1), ["a", "b", "c"])
    assert not [r for r in caplog.records if "docs/s" in r.getMessage()]
