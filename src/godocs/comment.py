"""Go doc comment parser and HTML printer.

Single-pass block scanner over the text of a doc comment. Recognises the
block forms of Go doc comments: paragraphs, ``# Heading`` lines, indented
code blocks and indented lists. Rendering is pure: the same text and
heading level always produce byte-identical HTML.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Literal

_LIST_MARKER_RE = re.compile(r"^(?:([-*+•])|(\d+)[.)])\s+(.*)$")
_URL_RE = re.compile(r"https?://[^\s<>\"']+")
_DOC_LINK_RE = re.compile(r"\[(\*?[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)\]")
_HEADING_ID_RE = re.compile(r"[^0-9A-Za-z]+")

# Synopses starting with these are licence or authorship boilerplate.
_ILLEGAL_SYNOPSIS_PREFIXES = ("copyright", "all rights", "author")


@dataclass
class Block:
    kind: Literal["paragraph", "heading", "code", "list"]
    lines: list[str] = field(default_factory=list)
    # list blocks only
    ordered: bool = False
    items: list[tuple[str, str]] = field(default_factory=list)  # (number, text)


def _is_indented(line: str) -> bool:
    return line.startswith((" ", "\t"))


def _dedent(lines: list[str]) -> list[str]:
    prefix: str | None = None
    for line in lines:
        if not line.strip():
            continue
        lead = line[: len(line) - len(line.lstrip(" \t"))]
        if prefix is None:
            prefix = lead
            continue
        n = 0
        while n < min(len(prefix), len(lead)) and prefix[n] == lead[n]:
            n += 1
        prefix = prefix[:n]
    cut = len(prefix or "")
    return [line[cut:] if line.strip() else "" for line in lines]


def _indented_block(lines: list[str]) -> Block:
    dedented = _dedent(lines)
    while dedented and not dedented[-1]:
        dedented.pop()

    first = _LIST_MARKER_RE.match(dedented[0]) if dedented else None
    if first is None:
        return Block(kind="code", lines=dedented)

    block = Block(kind="list", ordered=first.group(2) is not None)
    for line in dedented:
        match = _LIST_MARKER_RE.match(line)
        if match is not None:
            block.items.append((match.group(2) or "", match.group(3).strip()))
        elif line.strip() and block.items:
            number, text = block.items[-1]
            block.items[-1] = (number, f"{text} {line.strip()}")
    return block


def parse(text: str) -> list[Block]:
    """Split doc comment text into blocks."""
    blocks: list[Block] = []
    lines = text.splitlines()
    i = 0

    while i < len(lines):
        line = lines[i]

        if not line.strip():
            i += 1
            continue

        if _is_indented(line):
            span: list[str] = []
            while i < len(lines):
                current = lines[i]
                if _is_indented(current):
                    span.append(current)
                elif not current.strip():
                    # Blank lines stay inside the span only if indentation resumes.
                    j = i
                    while j < len(lines) and not lines[j].strip():
                        j += 1
                    if j < len(lines) and _is_indented(lines[j]):
                        span.extend(lines[i:j])
                        i = j
                        continue
                    break
                else:
                    break
                i += 1
            blocks.append(_indented_block(span))
            continue

        paragraph: list[str] = []
        while i < len(lines) and lines[i].strip() and not _is_indented(lines[i]):
            paragraph.append(lines[i].rstrip())
            i += 1

        if len(paragraph) == 1 and paragraph[0].startswith("# ") and paragraph[0][2:].strip():
            blocks.append(Block(kind="heading", lines=[paragraph[0][2:].strip()]))
        else:
            blocks.append(Block(kind="paragraph", lines=paragraph))

    return blocks


def _first_sentence(text: str) -> str:
    # A sentence ends at a period followed by a space, unless the period
    # follows a single upper-case letter (an initial such as "J. Doe").
    ppp = pp = p = ""
    for i, q in enumerate(text):
        if q in "\n\r\t":
            q = " "
        if q == " " and p == "." and (not pp.isupper() or ppp.isupper()):
            return text[:i]
        if p in ("。", "．"):
            return text[:i]
        ppp, pp, p = pp, p, q
    return text


def synopsis(text: str) -> str:
    """Return the first sentence of the first paragraph of a doc comment."""
    for block in parse(text):
        if block.kind != "paragraph":
            continue
        sentence = " ".join(_first_sentence(" ".join(block.lines)).split())
        if sentence.lower().startswith(_ILLEGAL_SYNOPSIS_PREFIXES):
            return ""
        return sentence
    return ""


def _inline(text: str) -> str:
    out: list[str] = []
    pos = 0
    for match in _URL_RE.finditer(text):
        url = match.group(0).rstrip(".,;:!?)")
        out.append(_doc_links(text[pos : match.start()]))
        escaped = html.escape(url)
        out.append(f'<a href="{escaped}">{escaped}</a>')
        pos = match.start() + len(url)
    out.append(_doc_links(text[pos:]))
    return "".join(out)


def _doc_links(text: str) -> str:
    out: list[str] = []
    pos = 0
    for match in _DOC_LINK_RE.finditer(text):
        out.append(html.escape(text[pos : match.start()]))
        name = match.group(1)
        target = html.escape(name.lstrip("*"))
        out.append(f'<a href="#{target}">{html.escape(name)}</a>')
        pos = match.end()
    out.append(html.escape(text[pos:]))
    return "".join(out)


def heading_id(text: str) -> str:
    return "hdr-" + _HEADING_ID_RE.sub("_", text).strip("_")


def to_html(text: str, heading_level: int = 3) -> str:
    """Render doc comment text as an HTML fragment."""
    if not text.strip():
        return ""

    parts: list[str] = []
    for block in parse(text):
        if block.kind == "heading":
            title = block.lines[0]
            parts.append(
                f'<h{heading_level} id="{heading_id(title)}">'
                f"{html.escape(title)}</h{heading_level}>\n"
            )
        elif block.kind == "paragraph":
            parts.append("<p>" + "\n".join(_inline(line) for line in block.lines) + "</p>\n")
        elif block.kind == "code":
            parts.append("<pre>" + html.escape("\n".join(block.lines)) + "\n</pre>\n")
        else:
            tag = "ol" if block.ordered else "ul"
            parts.append(f"<{tag}>\n")
            for number, item in block.items:
                value = f' value="{number}"' if block.ordered and number else ""
                parts.append(f"<li{value}>{_inline(item)}</li>\n")
            parts.append(f"</{tag}>\n")
    return "".join(parts)
