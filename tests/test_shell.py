import asyncio
from datetime import datetime, timezone

from december.orchestrator import TurnEvent
from december.sessions import Message
from december.shell import render_turn


def _assistant(content):
    return Message(id="assistant-1", role="assistant", content=content, timestamp=datetime.now(timezone.utc))


async def _events(*events):
    for event in events:
        yield event


def test_render_turn_restarts_on_second_phase_and_reprints_cleaned_text(capsys):
    events = _events(
        TurnEvent("user", None),
        TurnEvent("assistant", _assistant("Checking")),
        TurnEvent(
            "tool_processing",
            {"message": "Loading additional examples and context...",
             "tool_calls": [{"type": "load_examples", "examples": ["foo.md"], "context": []}]},
        ),
        TurnEvent("assistant", _assistant("Done <dec-write")),
        TurnEvent("done", _assistant("Done"), {"commands_executed": 1, "errors": ["Delete operation not yet implemented"]}),
    )

    final = asyncio.run(render_turn(events))

    out = capsys.readouterr().out
    assert final == "Done"
    assert "Loading additional examples and context..." in out
    assert "load_examples: foo.md" in out
    assert out.rstrip().splitlines()[-1] == "- Delete operation not yet implemented"
    assert "\nDone\n" in out
