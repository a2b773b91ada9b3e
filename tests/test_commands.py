from december.commands import (
    AddDependencyCommand,
    DeleteCommand,
    RenameCommand,
    WriteCommand,
    parse_commands,
    render_commands,
)


def test_plain_text_has_no_commands_and_is_only_trimmed():
    text = "  Here is how you would do it.\n\nNo changes needed.  \n"

    parsed = parse_commands(text)

    assert parsed.commands == []
    assert not parsed.has_commands
    assert parsed.cleaned == text.strip()


def test_write_then_delete_keeps_source_order():
    text = 'Updating.<dec-write file_path="a.ts">X</dec-write><dec-delete file_path="a.ts" /> Done.'

    parsed = parse_commands(text)

    assert parsed.commands == [WriteCommand("a.ts", "X"), DeleteCommand("a.ts")]
    assert parsed.cleaned == "Updating. Done."


def test_order_is_positional_across_command_types():
    text = (
        '<dec-delete file_path="old.ts" />\n'
        '<dec-add-dependency package="zod@3" />\n'
        '<dec-write file_path="new.ts">export {}</dec-write>\n'
        '<dec-rename from="new.ts" to="final.ts" />'
    )

    parsed = parse_commands(text)

    assert [c.type for c in parsed.commands] == ["delete", "add-dependency", "write", "rename"]
    assert parsed.commands[1] == AddDependencyCommand("zod@3")
    assert parsed.commands[3] == RenameCommand("new.ts", "final.ts")
    assert parsed.cleaned == ""


def test_write_content_is_trimmed_but_otherwise_verbatim():
    body = "\n  const a = 1;\n\n  <div>{a}</div>\n"
    parsed = parse_commands(f'<dec-write file_path="src/a.tsx">{body}</dec-write>')

    assert parsed.commands[0].content == "const a = 1;\n\n  <div>{a}</div>"


def test_markup_inside_write_body_is_not_a_second_command():
    text = (
        '<dec-write file_path="docs.md">Use <dec-delete file_path="x.ts" /> to delete.</dec-write>'
    )

    parsed = parse_commands(text)

    assert len(parsed.commands) == 1
    assert parsed.commands[0].content == 'Use <dec-delete file_path="x.ts" /> to delete.'


def test_reparsing_cleaned_text_yields_nothing():
    text = 'Intro <dec-write file_path="a.ts">A</dec-write> outro'

    first = parse_commands(text)
    second = parse_commands(first.cleaned)

    assert first.commands == [WriteCommand("a.ts", "A")]
    assert second.commands == []
    assert second.cleaned == first.cleaned


def test_wrapper_rules():
    text = (
        "<dec-thinking>plan the change</dec-thinking>"
        "<dec-code>Added a button.</dec-code> "
        "<dec-error>Could not rename.</dec-error> "
        "<dec-success>Saved.</dec-success>"
    )

    parsed = parse_commands(text)

    assert parsed.cleaned == "Added a button. Could not rename. Saved."
    assert "plan the change" not in parsed.cleaned


def test_command_inside_thinking_is_still_parsed():
    text = '<dec-thinking>draft <dec-delete file_path="a.ts" /></dec-thinking>Answer'

    parsed = parse_commands(text)

    assert parsed.commands == [DeleteCommand("a.ts")]
    assert parsed.cleaned == "Answer"


def test_missing_required_attribute_is_ignored():
    text = '<dec-rename from="a.ts" /><dec-write>body</dec-write><dec-add-dependency package="" />'

    parsed = parse_commands(text)

    assert parsed.commands == []
    assert parsed.cleaned == text


def test_render_commands_round_trips():
    commands = [
        WriteCommand("src/a.ts", "export const a = 1;"),
        RenameCommand("src/a.ts", "src/b.ts"),
        DeleteCommand("src/c.ts"),
        AddDependencyCommand("clsx"),
    ]

    assert parse_commands(render_commands(commands)).commands == commands
