"""
Tests for the command-line front end.
Each test runs against its own config.yaml pointing into tmp_path.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from chatbench.backends import InferenceGateway, RequestFailure
from chatbench.cli import build_parser, main
from chatbench.models import ModelInfo


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n"
        f"  sqlite_path: {tmp_path / 'conv.db'}\n"
        f"  settings_path: {tmp_path / 'settings.yaml'}\n"
        "wiretap:\n"
        "  enabled: true\n"
        f"  path: {tmp_path / 'wire.jsonl'}\n"
    )
    return str(path)


def run(config_path, *argv):
    return main(["--config", config_path, *argv])


def test_aliases_resolve_to_same_command():
    parser = build_parser()
    for name in ("chat", "talk", "say"):
        args = parser.parse_args([name, "hello"])
        assert args.func.__name__ == "cmd_chat"
        assert args.message == ["hello"]


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_new_without_config_asks_for_configuration(config_path, capsys):
    assert run(config_path, "new") == 1
    assert "No endpoint configured" in capsys.readouterr().out


def test_configure_picks_first_advertised_model(config_path, capsys):
    models = [ModelInfo(id="llama3.2", name="llama3.2"), ModelInfo(id="qwen", name="qwen")]
    with patch.object(InferenceGateway, "list_models", AsyncMock(return_value=models)):
        assert run(config_path, "configure", "--host", "localhost:11434") == 0

    out = capsys.readouterr().out
    assert "Saved: localhost:11434 / llama3.2" in out
    assert "Conversation:" in out


def test_configure_without_models_requires_explicit_model(config_path, capsys):
    with patch.object(InferenceGateway, "list_models", AsyncMock(return_value=[])):
        assert run(config_path, "configure", "--host", "localhost:11434") == 1
    assert "pass --model" in capsys.readouterr().out


def test_chat_round_trip_and_history(config_path, tmp_path, capsys):
    assert run(config_path, "configure", "--host", "h", "--model", "m") == 0

    with patch.object(InferenceGateway, "send_chat", AsyncMock(return_value="pong")):
        assert run(config_path, "chat", "ping") == 0
    assert "pong" in capsys.readouterr().out

    assert run(config_path, "list") == 0
    out = capsys.readouterr().out
    assert "2 msgs" in out
    assert "ping" in out

    export = tmp_path / "export.json"
    assert run(config_path, "dump", "-o", str(export)) == 0
    data = json.loads(export.read_text())
    assert [m["content"] for m in data[0]["messages"]] == ["ping", "pong"]

    assert run(config_path, "tap", "--raw") == 0
    wire = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
    assert [e["dir"] for e in wire] == ["outbound", "inbound"]


def test_chat_endpoint_failure_is_recorded(config_path, capsys):
    run(config_path, "configure", "--host", "h", "--model", "m")
    failure = RequestFailure("API request failed: Service Unavailable - busy")
    with patch.object(InferenceGateway, "send_chat", AsyncMock(side_effect=failure)):
        assert run(config_path, "chat", "hello") == 1
    assert "Error: API request failed: Service Unavailable - busy" in capsys.readouterr().out


def test_delete_by_prefix(config_path, capsys):
    run(config_path, "configure", "--host", "h", "--model", "m")
    out = capsys.readouterr().out
    conversation_id = out.split("Conversation: ")[1].split()[0]

    assert run(config_path, "delete", conversation_id[:8]) == 0
    assert run(config_path, "list") == 0
    assert "No conversations yet." in capsys.readouterr().out


def test_delete_unknown(config_path, capsys):
    assert run(config_path, "delete", "zzz") == 1
    assert "No conversation matching 'zzz'" in capsys.readouterr().out


def test_embed_prints_dimensions(config_path, tmp_path, capsys):
    run(config_path, "configure", "--host", "h", "--model", "m")
    doc = tmp_path / "doc.txt"
    doc.write_text("vector me")

    with patch.object(InferenceGateway, "get_embedding", AsyncMock(return_value=[0.5] * 12)):
        assert run(config_path, "embed", str(doc)) == 0
    out = capsys.readouterr().out
    assert "Vector dimensions: 12" in out
    assert "..." in out
