"""CLI tests using click's CliRunner."""

import json

import pytest
from click.testing import CliRunner

import smart_web_messaging.cli.main as cli_main
from smart_web_messaging.cli.main import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def config_file(tmp_path, monkeypatch):
    path = tmp_path / ".swm" / "config.json"
    monkeypatch.setattr(cli_main, "CONFIG_FILE", path)
    return path


HANDSHAKE = json.dumps({
    "messageId": "hs-1",
    "messagingHandle": "smart-web-messaging",
    "messageType": "status.handshake",
    "payload": {},
})


class TestHandle:
    def test_json_reply(self, runner):
        result = runner.invoke(main, ["handle", "--json", HANDSHAKE])
        assert result.exit_code == 0
        reply = json.loads(result.output)
        assert reply["responseToMessageId"] == "hs-1"

    def test_stdin(self, runner):
        result = runner.invoke(main, ["handle", "--json", "-"], input=HANDSHAKE)
        assert result.exit_code == 0
        assert json.loads(result.output)["responseToMessageId"] == "hs-1"

    def test_error_reply(self, runner):
        message = HANDSHAKE.replace("status.handshake", "unknown.type")
        result = runner.invoke(main, ["handle", message])
        assert result.exit_code == 0
        assert "UnknownMessageTypeException" in result.output

    def test_response_has_no_reply(self, runner):
        result = runner.invoke(main, ["handle", '{"messageId": "r-1", "responseToMessageId": "m-1"}'])
        assert result.exit_code == 0
        assert "no reply is sent" in result.output


class TestPage:
    def test_stdout(self, runner):
        result = runner.invoke(main, ["page", "--sdc-endpoint", "https://sdc.example.org/fhir/r5"])
        assert result.exit_code == 0
        assert 'sdc-endpoint-address="https://sdc.example.org/fhir/r5"' in result.output

    def test_output_file(self, runner, tmp_path):
        out = tmp_path / "form.html"
        result = runner.invoke(main, [
            "page", "--sdc-endpoint", "https://sdc", "--data-endpoint", "https://data", "-o", str(out),
        ])
        assert result.exit_code == 0
        assert result.output.strip() == out.resolve().as_uri()
        assert 'data-endpoint-address="https://data"' in out.read_text(encoding="utf-8")

    def test_requires_sdc_endpoint(self, runner):
        result = runner.invoke(main, ["page"])
        assert result.exit_code != 0


class TestConfig:
    def test_set_show_unset(self, runner, config_file):
        result = runner.invoke(main, ["config", "set", "relay_url", "http://localhost:8080"])
        assert result.exit_code == 0
        assert json.loads(config_file.read_text()) == {"relay_url": "http://localhost:8080"}

        result = runner.invoke(main, ["config", "show"])
        assert result.exit_code == 0
        assert "relay_url" in result.output

        result = runner.invoke(main, ["config", "unset", "relay_url"])
        assert result.exit_code == 0
        assert json.loads(config_file.read_text()) == {}

    def test_timeout_is_numeric(self, runner, config_file):
        result = runner.invoke(main, ["config", "set", "handshake_timeout", "12.5"])
        assert result.exit_code == 0
        assert json.loads(config_file.read_text()) == {"handshake_timeout": 12.5}

        result = runner.invoke(main, ["config", "set", "handshake_timeout", "soon"])
        assert result.exit_code != 0

    def test_unknown_key(self, runner):
        result = runner.invoke(main, ["config", "set", "colour", "blue"])
        assert result.exit_code != 0

    def test_show_empty(self, runner):
        result = runner.invoke(main, ["config", "show"])
        assert result.exit_code == 0
        assert "No settings saved" in result.output


class TestFill:
    def test_requires_relay(self, runner):
        result = runner.invoke(main, ["fill", "http://example.org/Questionnaire/q1", "--target-url", "https://f"])
        assert result.exit_code == 1
        assert "No relay URL" in result.output

    def test_requires_target(self, runner):
        result = runner.invoke(main, ["fill", "http://example.org/Questionnaire/q1", "--relay", "http://relay"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
