from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from searchpipe import cli


class _Stdio(io.TextIOWrapper):
    """Text stream whose raw bytes can be inspected after the run."""

    def __init__(self, data: bytes = b"") -> None:
        super().__init__(io.BytesIO(data), encoding="utf-8")


@pytest.fixture
def use_client(monkeypatch):
    def install(fake) -> list:
        created: list = []

        def factory(target):
            created.append(target)
            return fake

        monkeypatch.setattr(cli, "get_opensearch_client", factory)
        return created

    return install


def test_no_command_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "usage: searchpipe" in capsys.readouterr().out


def test_progress_lines_are_printed_bare() -> None:
    record = logging.LogRecord(
        "searchpipe.services.export", logging.INFO, __file__, 1, "Fetched another batch, have now processed %d", (7,), None
    )
    assert cli.build_log_handler().format(record) == "Fetched another batch, have now processed 7"

    verbose = cli.build_log_handler(verbose=True).format(record)
    assert verbose.endswith("searchpipe.services.export  Fetched another batch, have now processed 7")
    assert "INFO" in verbose


def test_invalid_target_fails_without_client(use_client, empty_client) -> None:
    created = use_client(empty_client)
    assert cli.main(["import", "ftp://host/idx"]) == 1
    assert created == []


def test_invalid_size_is_rejected(capsys) -> None:
    with pytest.raises(SystemExit):
        cli.main(["export", "http://localhost:9200", "-s", "0"])
    assert "must be at least 1" in capsys.readouterr().err


def test_round_trip_between_clusters(monkeypatch, use_client, client, empty_client, corpus) -> None:
    stdout = _Stdio()
    monkeypatch.setattr(sys, "stdout", stdout)
    use_client(client)
    assert cli.main(["export", "http://source:9200/books", "-s", "100", "-c", "1"]) == 0

    exported = stdout.buffer.getvalue()
    docs = [json.loads(line) for line in exported.decode().splitlines()]
    assert all("_score" not in doc and "sort" not in doc for doc in docs)

    monkeypatch.setattr(sys, "stdin", _Stdio(exported))
    use_client(empty_client)
    assert cli.main(["import", "http://target:9200/", "-s", "100", "-c", "1"]) == 0

    assert empty_client.data == corpus
    assert empty_client.refreshed == ["_all"]


def test_compressed_round_trip(monkeypatch, use_client, client, empty_client, corpus) -> None:
    stdout = _Stdio()
    monkeypatch.setattr(sys, "stdout", stdout)
    use_client(client)
    assert cli.main(["export", "http://source:9200/books", "-c", "3", "-s", "7", "--compress"]) == 0

    monkeypatch.setattr(sys, "stdin", _Stdio(stdout.buffer.getvalue()))
    use_client(empty_client)
    assert cli.main(["import", "http://target:9200/restored", "-c", "2", "-s", "4", "-z"]) == 0

    assert empty_client.data == {"restored": corpus["books"]}


def test_cluster_failure_exits_non_zero(monkeypatch, use_client, empty_client, connection_error) -> None:
    empty_client.bulk_error = connection_error
    monkeypatch.setattr(sys, "stdin", _Stdio(b'{"_id":"1","_index":"a","_source":{}}\n'))
    use_client(empty_client)

    assert cli.main(["import", "http://target:9200"]) == 1
