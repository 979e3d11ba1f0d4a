"""Command policy for the shell tool.

This is a usage check, not a sandbox: it rejects commands that duplicate
dedicated tools and fixes the most common quoting mistake before the
command reaches the shell.
"""

from __future__ import annotations

import logging
import os
import re

logger = logging.getLogger(__name__)

DISCOURAGED_PREFIXES = ("find ", "grep ", "cat ", "head ", "tail ")

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def is_discouraged(command: str, prefixes: tuple[str, ...] | list[str] = DISCOURAGED_PREFIXES) -> bool:
    lowered = command.strip().lower()
    return any(lowered.startswith(p) for p in prefixes)


def looks_like_path(text: str) -> bool:
    return "/" in text or "\\" in text or text.startswith((".", "~")) or bool(_DRIVE_LETTER.match(text))


def _is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"')


def _split_preserving_escapes(command: str) -> list[str]:
    """Split on unescaped, unquoted spaces; quoted and backslash-escaped spaces stay in the token."""
    tokens: list[str] = []
    current: list[str] = []
    quote = ""
    i = 0
    while i < len(command):
        ch = command[i]
        if ch == "\\" and i + 1 < len(command) and not quote:
            current.append(command[i : i + 2])
            i += 2
            continue
        if quote:
            if ch == quote:
                quote = ""
        elif ch in ("'", '"'):
            quote = ch
        elif ch == " ":
            if current:
                tokens.append("".join(current))
                current = []
            i += 1
            continue
        current.append(ch)
        i += 1
    if current:
        tokens.append("".join(current))
    return tokens


def _resolves(candidate: str, cwd: str | None) -> bool:
    path = os.path.expanduser(candidate)
    if not os.path.isabs(path) and cwd:
        path = os.path.join(cwd, path)
    return os.path.exists(path)


def _quote(path: str) -> str:
    # Tilde is not expanded inside quotes, so keep it outside.
    if path.startswith("~/"):
        return '~/"' + path[2:] + '"'
    return '"' + path + '"'


def quote_paths_with_spaces(command: str, cwd: str | None = None) -> str:
    """Quote path-like runs of words that contain unescaped spaces.

    ``cd /Users/me/My Documents`` becomes ``cd "/Users/me/My Documents"``
    when that directory exists. A path token absorbs the following bare
    words for as long as the joined result names an existing file, so
    ``ls /tmp foo`` is left untouched. Quoted and escaped paths are not
    modified.
    """
    tokens = _split_preserving_escapes(command)
    out: list[str] = []
    changed = False
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if looks_like_path(tok) and "\\ " not in tok and '"' not in tok and "'" not in tok:
            end = 0
            for j in range(i + 1, len(tokens)):
                if not _continues_path(tokens[j]):
                    break
                if _resolves(" ".join(tokens[i : j + 1]), cwd):
                    end = j
            if end:
                out.append(_quote(" ".join(tokens[i : end + 1])))
                changed = True
                i = end + 1
                continue
        out.append(tok)
        i += 1
    return " ".join(out) if changed else command


_OPERATORS = {"|", "||", "&", "&&", ";", ">", ">>", "<", "2>", "2>&1"}


def _continues_path(token: str) -> bool:
    if token in _OPERATORS or token.startswith(("-", "|", "&", ";", ">", "<")):
        return False
    return not _is_quoted(token) and "\\ " not in token


def sanitize_command(
    command: str,
    discouraged: tuple[str, ...] | list[str] = DISCOURAGED_PREFIXES,
    cwd: str | None = None,
) -> tuple[str, str | None]:
    """Validate a shell command.

    Returns (command, error_message). On success the command has had
    path-with-spaces quoting applied.
    """
    if not command or not command.strip():
        return "", "Command cannot be empty"

    if "\x00" in command:
        return "", "Command contains null bytes"

    if is_discouraged(command, discouraged):
        logger.warning("Rejected discouraged command: %s", command[:50])
        return "", f"Command '{command}' is discouraged. Use appropriate tools instead."

    return quote_paths_with_spaces(command, cwd), None
