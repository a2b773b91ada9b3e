"""Scanner for the XML-like tags embedded in model output.

The grammar is deliberately small: a tag name, zero or more double-quoted
attributes, and either a self-closing ``/>`` or a body that runs up to the
first matching close tag. There is no nesting of same-named elements and no
escaping inside attribute values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

_ATTR = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')


@dataclass(frozen=True)
class TagMatch:
    """One element found in a text, with its half-open source span."""

    name: str
    start: int
    end: int
    attrs: dict[str, str] = field(default_factory=dict)
    body: str | None = None

    @property
    def self_closing(self) -> bool:
        return self.body is None


def _open_tag_pattern(name: str) -> re.Pattern:
    return re.compile(
        rf'<{re.escape(name)}(?P<attrs>(?:\s+[A-Za-z_][\w-]*\s*=\s*"[^"]*")*)\s*(?P<slash>/?)>'
    )


def scan(text: str, name: str, *, self_closing: bool = False) -> list[TagMatch]:
    """Return every well-formed ``name`` element in ``text`` in source order.

    With ``self_closing`` only ``<name ... />`` forms match; otherwise only
    ``<name ...>body</name>`` forms do. An open tag without a close tag is not
    an element and stays in the text untouched.
    """
    pattern = _open_tag_pattern(name)
    close_tag = f"</{name}>"
    matches: list[TagMatch] = []
    pos = 0

    while True:
        m = pattern.search(text, pos)
        if m is None:
            break
        attrs = dict(_ATTR.findall(m.group("attrs")))
        is_self_closed = bool(m.group("slash"))

        if self_closing:
            if is_self_closed:
                matches.append(TagMatch(name=name, start=m.start(), end=m.end(), attrs=attrs))
            pos = m.end()
            continue

        if is_self_closed:
            pos = m.end()
            continue

        close_at = text.find(close_tag, m.end())
        if close_at == -1:
            break
        end = close_at + len(close_tag)
        matches.append(
            TagMatch(
                name=name,
                start=m.start(),
                end=end,
                attrs=attrs,
                body=text[m.end():close_at],
            )
        )
        pos = end

    return matches


def remove_spans(text: str, matches: Iterable[TagMatch]) -> str:
    """Delete each match's span from ``text``. Spans must not overlap."""
    return rewrite(text, matches, lambda match: "")


def rewrite(text: str, matches: Iterable[TagMatch], replacement: Callable[[TagMatch], str]) -> str:
    """Replace each matched span with ``replacement(match)``."""
    out = []
    pos = 0
    for match in sorted(matches, key=lambda m: m.start):
        if match.start < pos:
            continue
        out.append(text[pos:match.start])
        out.append(replacement(match))
        pos = match.end
    out.append(text[pos:])
    return "".join(out)


def unwrap(text: str, name: str, *, keep_body: bool = True) -> str:
    """Strip ``<name>`` wrappers, keeping or discarding what they enclose."""
    return rewrite(text, scan(text, name), lambda m: (m.body or "") if keep_body else "")
