"""Tests for the command line interface."""

import argparse

import httpx
import pytest

from src import cli
from src.tracker.client import TrackerClient


def _args(tmp_path, **kwargs):
    return argparse.Namespace(data_dir=str(tmp_path), verbose=False, **kwargs)


@pytest.fixture
def daemon(monkeypatch):
    """Route CLI clients to a mocked daemon and record the requests."""
    requests = []
    responses = {}

    def handler(request):
        requests.append(request)
        status, body = responses.get(request.url.path, (200, {"success": True}))
        return httpx.Response(status, json=body)

    def make_client(socket_path, **kwargs):
        return TrackerClient(socket_path, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(cli, "TrackerClient", make_client)
    return requests, responses


class TestFormatting:
    def test_format_duration(self):
        assert cli._format_duration(0) == "0h 00m"
        assert cli._format_duration(3 * 3600 + 5 * 60 + 59) == "3h 05m"


class TestCommands:
    """Tests for client commands."""

    def test_watch(self, tmp_path, daemon, capsys):
        requests, _ = daemon
        project = tmp_path / "project"
        project.mkdir()

        cli.cmd_watch(_args(tmp_path, dir=str(project), label=None))

        assert requests[0].url.path == "/watch"
        assert str(project) in capsys.readouterr().out

    def test_watch_missing_directory(self, tmp_path, daemon):
        with pytest.raises(SystemExit) as exc:
            cli.cmd_watch(_args(tmp_path, dir=str(tmp_path / "missing"), label=None))

        assert exc.value.code == 1
        assert daemon[0] == []

    def test_error_exits_nonzero(self, tmp_path, daemon):
        requests, responses = daemon
        responses["/tick"] = (400, {"error": "missing label"})

        with pytest.raises(SystemExit) as exc:
            cli.cmd_tick(_args(tmp_path, label="x"))

        assert exc.value.code == 1

    def test_intervals_output(self, tmp_path, daemon, capsys):
        _, responses = daemon
        responses["/intervals"] = (200, {
            "intervals": [{"start": 0, "end": 3600, "label": ""}],
            "end_gap": 0,
            "by_label": {"work": [{"start": 0, "end": 3600, "label": "work"}]},
        })

        cli.cmd_intervals(_args(tmp_path, start=None, end=None))

        out = capsys.readouterr().out
        assert "Total: 1h 00m" in out
        assert "work: 1h 00m" in out

    def test_clear_requires_yes(self, tmp_path, daemon):
        with pytest.raises(SystemExit):
            cli.cmd_clear(_args(tmp_path, yes=False))

        assert daemon[0] == []

    def test_clear(self, tmp_path, daemon):
        cli.cmd_clear(_args(tmp_path, yes=True))

        assert daemon[0][0].url.path == "/clear"
