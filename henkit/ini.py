"""Comment-preserving INI file reader and writer."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

MAX_KEY_LENGTH = 256
MAX_VALUE_LENGTH = 512
MAX_SECTION_LENGTH = 256
MAX_COMMENT_LENGTH = 512

_WHITESPACE = " \t\n\v\f\r"
_QUOTES = "\"'"

logger = logging.getLogger(__name__)


def _trim(text: str) -> str:
    return text.strip(_WHITESPACE)


def _clip(text: str, limit: int) -> str:
    """Keep at most ``limit - 1`` characters, as a fixed-size field would."""
    return text[: limit - 1]


def _split_comment(line: str, marker: str) -> tuple[str, str | None]:
    """Split ``line`` at ``marker`` unless the marker sits inside quotes.

    Returns the text before the marker and the trimmed comment, or the
    unchanged line and ``None`` when there is no usable comment.
    """
    pos = line.find(marker)
    if pos < 0:
        return line, None
    in_quotes = False
    i = 0
    while i < pos:
        char = line[i]
        if char in _QUOTES:
            in_quotes = not in_quotes
        elif char == "\\" and i + 1 < len(line) and line[i + 1] in _QUOTES:
            i += 1
        i += 1
    if in_quotes:
        return line, None
    return line[:pos], _trim(line[pos + 1 :])


def _split_any_comment(line: str) -> tuple[str, str | None]:
    body, comment = _split_comment(line, ";")
    if comment is None:
        body, comment = _split_comment(line, "#")
    return body, comment


def _render_comments(comments: list[str]) -> list[str]:
    return ["\n" if not text else f"; {text}\n" for text in comments]


@dataclass
class KeyValue:
    """A key with its value, trailing comment and the comment lines above it."""

    key: str
    value: str = ""
    comment: str = ""
    comments_before: list[str] = field(default_factory=list)


@dataclass
class Section:
    """A named section holding its keys, most recently added first."""

    name: str
    comment: str = ""
    comments_before: list[str] = field(default_factory=list)
    keys: list[KeyValue] = field(default_factory=list)

    def _find_key(self, key: str) -> KeyValue | None:
        return next((kv for kv in self.keys if kv.key == key), None)

    def _create_key(self, key: str) -> KeyValue:
        kv = KeyValue(_clip(key, MAX_KEY_LENGTH))
        self.keys.insert(0, kv)
        return kv


@dataclass
class IniFile:
    """An INI document bound to a file name, most recently added section first."""

    filename: str
    sections: list[Section] = field(default_factory=list)
    header_comments: list[str] = field(default_factory=list)
    modified: bool = False

    def _find_section(self, name: str) -> Section | None:
        return next((s for s in self.sections if s.name == name), None)

    def _require_section(self, name: str) -> Section:
        section = self._find_section(name)
        if section is None:
            raise KeyError(name)
        return section

    def _create_section(self, name: str) -> Section:
        section = Section(_clip(name, MAX_SECTION_LENGTH))
        self.sections.insert(0, section)
        return section

    def get(self, section: str, key: str) -> str | None:
        """Return the value of ``key`` in ``section``, or ``None``."""
        found = self._find_section(section)
        if found is None:
            return None
        kv = found._find_key(key)
        return None if kv is None else kv.value

    def set(self, section: str, key: str, value: str, comment: str | None = None) -> None:
        """Set a value, creating the section and key when missing."""
        target = self._find_section(section) or self._create_section(section)
        kv = target._find_key(key) or target._create_key(key)
        kv.value = _clip(value, MAX_VALUE_LENGTH)
        if comment is not None:
            kv.comment = _clip(comment, MAX_COMMENT_LENGTH)
        self.modified = True

    def add_comment(self, section: str | None, text: str) -> None:
        """Append a comment line to the file header or above a section."""
        if section is None:
            target = self.header_comments
        else:
            target = self._require_section(section).comments_before
        target.append(_clip(text, MAX_COMMENT_LENGTH))
        self.modified = True

    def add_section_comment(self, section: str, text: str) -> None:
        """Set the comment written on a section's header line."""
        self._require_section(section).comment = _clip(text, MAX_COMMENT_LENGTH)
        self.modified = True

    def delete_key(self, section: str, key: str) -> None:
        """Remove a key; raise KeyError when the section or key is missing."""
        target = self._require_section(section)
        kv = target._find_key(key)
        if kv is None:
            raise KeyError(key)
        target.keys.remove(kv)
        self.modified = True

    def delete_section(self, section: str) -> None:
        """Remove a section; raise KeyError when it is missing."""
        self.sections.remove(self._require_section(section))
        self.modified = True

    def render(self) -> str:
        """Return the document as it is written to disk."""
        out = _render_comments(self.header_comments)
        for section in self.sections:
            out.extend(_render_comments(section.comments_before))
            if section.comment:
                out.append(f"[{section.name}] ; {section.comment}\n")
            else:
                out.append(f"[{section.name}]\n")
            for kv in section.keys:
                out.extend(_render_comments(kv.comments_before))
                if kv.comment:
                    out.append(f"{kv.key} = {kv.value} ; {kv.comment}\n")
                else:
                    out.append(f"{kv.key} = {kv.value}\n")
            out.append("\n")
        return "".join(out)

    def save(self) -> None:
        """Write the document to its file and clear the modified flag."""
        if not self.filename:
            raise ValueError("INI document has no file name")
        with open(self.filename, "w", encoding="utf-8", errors="surrogateescape", newline="\n") as handle:
            handle.write(self.render())
        self.modified = False

    def dump(self, stream: TextIO | None = None) -> None:
        """Print a summary header followed by the document."""
        out = sys.stdout if stream is None else stream
        out.write(f"INI File: {self.filename}\n")
        out.write(f"Modified: {'Yes' if self.modified else 'No'}\n\n")
        out.write(self.render())


def load(filename: str | Path) -> IniFile:
    """Read an INI file; a missing or unreadable file gives an empty document."""
    ini = IniFile(str(filename))
    try:
        raw = Path(filename).read_bytes()
    except OSError:
        logger.warning("Could not open file '%s'. Creating new INI structure.", filename)
        return ini

    lines = raw.decode("utf-8", "surrogateescape").split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    current: Section | None = None
    pending = ini.header_comments

    for raw_line in lines:
        line = raw_line.split("\r", 1)[0]
        trimmed = _trim(line)

        if trimmed[:1] in (";", "#"):
            pending.append(_clip(_trim(trimmed[1:]), MAX_COMMENT_LENGTH))
        elif not trimmed:
            pending.append("")
        elif trimmed.startswith("["):
            body, comment = _split_any_comment(line)
            end = body.find("]")
            if end < 0:
                continue
            # Comments gathered before a section header are discarded.
            pending.clear()
            current = ini._create_section(_trim(body[1:end]))
            if comment:
                current.comment = _clip(comment, MAX_COMMENT_LENGTH)
            pending = current.comments_before
        elif "=" in line and current is not None:
            body, comment = _split_any_comment(line)
            key, sep, value = body.partition("=")
            if not sep:
                continue
            kv = current._create_key(_trim(key))
            kv.value = _clip(_trim(value), MAX_VALUE_LENGTH)
            kv.comments_before = list(pending)
            pending.clear()
            if comment:
                kv.comment = _clip(comment, MAX_COMMENT_LENGTH)

    return ini