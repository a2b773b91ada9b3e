"""CLI entry point wiring."""

import os
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from december.cli import main
from december.llm_clients import TokenUsage
from december.orchestrator import TurnEvent, TurnResult
from december.sessions import Message


def _message(role, content):
    return Message(id=f"{role}-1", role=role, content=content, timestamp=datetime.now(timezone.utc))


class FakeOrchestrator:
    def __init__(self):
        self.sent = []

    async def send_message(self, environment_id, text, attachments=()):
        self.sent.append((environment_id, text))
        return TurnResult(
            user_message=_message("user", text),
            assistant_message=_message("assistant", "Wrote the file."),
            commands_executed=1,
        )

    async def send_message_stream(self, environment_id, text, attachments=()):
        self.sent.append((environment_id, text))
        yield TurnEvent("user", _message("user", text))
        yield TurnEvent("assistant", _message("assistant", "Stream"))
        yield TurnEvent("assistant", _message("assistant", "Streamed reply"))
        yield TurnEvent(
            "done",
            _message("assistant", "Streamed reply"),
            {"commands_executed": 0, "errors": []},
        )


@pytest.fixture
def fake_orchestrator(monkeypatch):
    orch = FakeOrchestrator()
    monkeypatch.setattr("december.cli.build_orchestrator", lambda path, config: (orch, TokenUsage()))
    return orch


def test_version():
    import december

    assert december.__version__ == "0.1.0"


def test_no_command_prints_help_and_exits_1(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])

    assert exc.value.code == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_init_writes_config_and_refuses_twice(tmp_path: Path, capsys):
    main(["init", str(tmp_path), "--provider", "anthropic"])

    assert (tmp_path / ".december" / "config.yaml").is_file()
    assert "Provider: anthropic" in capsys.readouterr().out

    with pytest.raises(SystemExit) as exc:
        main(["init", str(tmp_path)])
    assert exc.value.code == 1

    main(["init", str(tmp_path), "--force"])
    assert "Provider: openai" in capsys.readouterr().out


def test_analyze_shows_selection(tmp_path: Path, capsys):
    main(["analyze", "fix the error in my form", "--path", str(tmp_path)])

    out = capsys.readouterr().out
    assert "error_handling_examples.md" in out
    assert "common_errors.md" in out
    assert "Prompt length" in out


def test_docs_lists_packaged_corpus(tmp_path: Path, capsys):
    main(["docs", "--path", str(tmp_path)])

    out = capsys.readouterr().out
    assert "nextjs_examples.md" in out
    assert "shadcn_documentation.md" in out
    assert "loaded" in out


def test_send_buffered(tmp_path: Path, capsys, fake_orchestrator):
    main(["send", "add a footer", "--path", str(tmp_path), "--no-stream", "--env", "env-7"])

    out = capsys.readouterr().out
    assert fake_orchestrator.sent == [("env-7", "add a footer")]
    assert "Wrote the file." in out
    assert "1 command(s) executed" in out


def test_send_streamed(tmp_path: Path, capsys, fake_orchestrator):
    main(["send", "hello", "--path", str(tmp_path), "--stream"])

    out = capsys.readouterr().out
    assert fake_orchestrator.sent == [(".", "hello")]
    assert "Streamed reply" in out


def test_chat_runs_shell(tmp_path: Path, monkeypatch, fake_orchestrator):
    launched = []

    class FakeShell:
        def __init__(self, orchestrator, environment_id, usage):
            launched.append((orchestrator, environment_id))

        async def run(self):
            return None

    monkeypatch.setattr("december.cli.ChatShell", FakeShell)

    main(["chat", "--path", str(tmp_path)])

    assert launched == [(fake_orchestrator, ".")]


def test_missing_api_key_exits_1(tmp_path: Path, capsys):
    with patch.dict(os.environ, {}, clear=True), patch("december.llm_clients.load_dotenv"):
        with pytest.raises(SystemExit) as exc:
            main(["send", "hi", "--path", str(tmp_path)])

    assert exc.value.code == 1
    assert "OPENAI_API_KEY" in capsys.readouterr().err
