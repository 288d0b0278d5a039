"""Test the CLI watch command against replayed captures."""

import json

import pytest
from click.testing import CliRunner

from daemon_events.cli import main


def _events(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


@pytest.fixture
def capture(tmp_path, lifecycle_records, encode):
    path = tmp_path / "events.jsonl"
    path.write_bytes(encode(*lifecycle_records))
    return path


class TestWatchCommand:
    def test_replay_prints_every_event(self, capture):
        result = CliRunner().invoke(
            main, ["watch", "--replay", str(capture), "--log-level", "WARNING"],
        )
        assert result.exit_code == 0, result.output
        events = _events(result.output)
        assert [(e["Type"], e["Action"]) for e in events] == [
            ("container", "create"),
            ("network", "create"),
            ("volume", "create"),
            ("container", "destroy"),
        ]
        assert events[0]["Actor"]["Attributes"] == {"name": "container-name"}

    def test_route_by_type(self, capture):
        result = CliRunner().invoke(
            main,
            ["watch", "--replay", str(capture), "--by", "type", "--only", "container",
             "--log-level", "WARNING"],
        )
        assert result.exit_code == 0, result.output
        assert [e["Action"] for e in _events(result.output)] == ["create", "destroy"]

    def test_route_by_action(self, capture):
        result = CliRunner().invoke(
            main,
            ["watch", "--replay", str(capture), "--by", "action", "--only", "create",
             "--log-level", "WARNING"],
        )
        assert result.exit_code == 0, result.output
        assert [e["Type"] for e in _events(result.output)] == ["container", "network", "volume"]

    def test_malformed_replay_fails(self, tmp_path, make_record, encode):
        path = tmp_path / "broken.jsonl"
        path.write_bytes(encode(make_record("container", "create")) + b"{oops}\n")

        result = CliRunner().invoke(
            main, ["watch", "--replay", str(path), "--log-level", "WARNING"],
        )
        assert result.exit_code == 1
        assert "Error" in result.output
        assert len(_events(result.output)) == 1


class TestWatchUsage:
    def test_invalid_filter(self, capture):
        result = CliRunner().invoke(
            main, ["watch", "--replay", str(capture), "--filter", "container"],
        )
        assert result.exit_code == 2
        assert "expected key=value" in result.output

    def test_only_needs_a_classifier(self, capture):
        result = CliRunner().invoke(
            main, ["watch", "--replay", str(capture), "--only", "container"],
        )
        assert result.exit_code == 2

    def test_classifier_needs_keys(self, capture):
        result = CliRunner().invoke(
            main, ["watch", "--replay", str(capture), "--by", "type"],
        )
        assert result.exit_code == 2
        assert "--only" in result.output

    def test_missing_replay_file(self, tmp_path):
        result = CliRunner().invoke(
            main, ["watch", "--replay", str(tmp_path / "absent.jsonl")],
        )
        assert result.exit_code == 2

    def test_bad_config_file(self, tmp_path, capture):
        config = tmp_path / "config.toml"
        config.write_text("[monitor\nbuffer_size = 1\n")
        result = CliRunner().invoke(
            main, ["watch", "--config", str(config), "--replay", str(capture)],
        )
        assert result.exit_code == 2
        assert "Cannot read config" in result.output

    def test_unknown_event_type(self, capture):
        result = CliRunner().invoke(
            main, ["watch", "--replay", str(capture), "--by", "type", "--only", "contianer"],
        )
        assert result.exit_code == 2
        assert "Unknown event type(s) contianer" in result.output
