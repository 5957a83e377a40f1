# modtune/core/codec.py
"""
Modtune – format codec
======================

Reads and writes the three config dialects the managed mods use:

• json        – full documents, canonical 2-space pretty print
• properties  – flat `key=value` lines (Java style)
• toml        – a restricted *flat* subset: optional `[section]` header,
                then `key = value` lines

Public helpers
--------------
parse(content, fmt)                    -> ConfigTree
serialize(tree, fmt, section=None)     -> str
content_hash(content)                  -> sha256 hex
deep_merge(target, source, preserve)   -> ConfigTree (new tree)
round_trip_valid(tree, text, fmt)      -> bool
load_file(path, fmt)                   -> ConfigTree ({} if absent/corrupt)
atomic_write(path, content)            -> None (tmp + rename)
atomic_copy(src, dest)                 -> None (tmp + rename)

The properties/TOML parsers are deliberately permissive: blank lines,
`#` comments and lines without `=` are dropped, nothing ever raises.
A file with one stray line loses that line, not the whole file.
"""

from __future__ import annotations

import copy
import hashlib
import json
import os
import re
import shutil
import sys
from pathlib import Path
from typing import Any, Optional

from modtune.core.errors import ParseError
from modtune.core.models import ConfigTree, FileFormat

HEADER_COMMENT = "# Configuration file"

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


# ──────────────────────────────────────────────
# 1. Scalar inference (properties / toml)
# ──────────────────────────────────────────────
def _infer_scalar(raw: str) -> Any:
    if raw == "true":
        return True
    if raw == "false":
        return False
    if _INT_RE.match(raw):
        return int(raw)
    if _FLOAT_RE.match(raw):
        return float(raw)
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    return raw


def _parse_flat(content: str, skip_sections: bool) -> ConfigTree:
    result: ConfigTree = {}
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if skip_sections and stripped.startswith("["):
            continue
        if "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        key = key.strip()
        if not key:
            continue
        result[key] = _infer_scalar(value.strip())
    return result


def _needs_quotes(value: str) -> bool:
    # a bare string that would come back as something else
    return (
        value != value.strip()
        or value == ""
        or _infer_scalar(value) != value
    )


def _render_flat(value: Any, quote_strings: bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        if quote_strings or _needs_quotes(value):
            return f'"{value}"'
        return value
    # lists and None have no flat spelling; round-trip validation catches it
    return json.dumps(value)


# ──────────────────────────────────────────────
# 2. Parse / serialize
# ──────────────────────────────────────────────
def parse(content: str, fmt: FileFormat | str) -> ConfigTree:
    """
    Parse *content* in the given dialect.

    Raises ParseError only for malformed JSON (or JSON whose top level
    is not an object).
    """
    fmt = FileFormat(fmt)
    if fmt is FileFormat.json:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError("JSON document is not an object")
        return data
    if fmt is FileFormat.properties:
        return _parse_flat(content, skip_sections=False)
    return _parse_flat(content, skip_sections=True)


def serialize(tree: ConfigTree, fmt: FileFormat | str, section: Optional[str] = None) -> str:
    """Render *tree*; nested objects are skipped for the flat dialects."""
    fmt = FileFormat(fmt)
    if fmt is FileFormat.json:
        return json.dumps(tree, indent=2, ensure_ascii=False)

    lines = [HEADER_COMMENT]
    if fmt is FileFormat.properties:
        for key, value in tree.items():
            if isinstance(value, dict):
                continue
            lines.append(f"{key}={_render_flat(value, quote_strings=False)}")
    else:
        if section:
            lines.append(f"[{section}]")
        for key, value in tree.items():
            if isinstance(value, dict):
                continue
            lines.append(f"{key} = {_render_flat(value, quote_strings=True)}")
    return "\n".join(lines) + "\n"


def format_for_path(path: Path | str) -> FileFormat:
    """Guess the dialect from a file extension (json fallback)."""
    ext = Path(path).suffix.lstrip(".").lower()
    try:
        return FileFormat(ext)
    except ValueError:
        return FileFormat.json


# ──────────────────────────────────────────────
# 3. Hashing & structural comparison
# ──────────────────────────────────────────────
def content_hash(content: str | bytes) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def hash_file(path: Path) -> Optional[str]:
    """sha256 of the raw file bytes, or None if unreadable."""
    try:
        return content_hash(Path(path).read_bytes())
    except OSError:
        return None


def trees_equal(a: Any, b: Any) -> bool:
    """Deep value equality; `True` is not `1` here."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(trees_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(trees_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b


def round_trip_valid(tree: ConfigTree, serialized: str, fmt: FileFormat | str) -> bool:
    """Reparse *serialized* and compare with *tree*."""
    try:
        reparsed = parse(serialized, fmt)
    except ParseError:
        return False
    return trees_equal(tree, reparsed)


# ──────────────────────────────────────────────
# 4. Deep merge
# ──────────────────────────────────────────────
def deep_merge(target: ConfigTree, source: ConfigTree, preserve_existing: bool = False) -> ConfigTree:
    """
    Merge *source* into a copy of *target*.

    • preserve_existing and key already in target → target value kept,
      no recursion for that key
    • both sides nested dicts → recurse
    • anything else (lists included) → source value replaces target's
    """
    result = copy.deepcopy(target)
    for key, src_val in source.items():
        if preserve_existing and key in target:
            continue
        tgt_val = result.get(key)
        if isinstance(src_val, dict) and isinstance(tgt_val, dict):
            result[key] = deep_merge(tgt_val, src_val, preserve_existing)
        else:
            result[key] = copy.deepcopy(src_val)
    return result


# ──────────────────────────────────────────────
# 5. File helpers
# ──────────────────────────────────────────────
def read_text(path: Path) -> str:
    """Read without newline translation so hashes match the bytes on disk."""
    return Path(path).read_bytes().decode("utf-8")


def load_file(path: Path, fmt: FileFormat | str) -> ConfigTree:
    """
    Return the parsed tree, `{}` if the file is absent or not valid JSON.
    I/O errors other than a missing file propagate.
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        return parse(read_text(path), fmt)
    except (ParseError, UnicodeDecodeError) as exc:
        sys.stderr.write(f"[codec] {path.name} unreadable ({exc}), using empty config\n")
        return {}


def _tmp_path(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def _stash_failed(tmp: Path) -> None:
    # keep the half-written file for forensics
    if tmp.exists():
        try:
            tmp.replace(tmp.with_name(tmp.name + ".failed"))
        except OSError as exc:
            sys.stderr.write(f"[codec] could not keep failed write {tmp.name}: {exc}\n")


def atomic_write(path: Path, content: str) -> None:
    """
    Write to `<path>.tmp`, fsync, then rename over *path*.
    On failure the temp file is moved aside as `<path>.tmp.failed`
    and the original error is re-raised.
    """
    path = Path(path)
    tmp = _tmp_path(path)
    try:
        with tmp.open("wb") as fh:
            fh.write(content.encode("utf-8"))
            fh.flush()
            os.fsync(fh.fileno())
        tmp.replace(path)
    except Exception:
        _stash_failed(tmp)
        raise


def atomic_copy(src: Path, dest: Path) -> None:
    """Copy *src* over *dest* through a sibling temp file."""
    dest = Path(dest)
    tmp = _tmp_path(dest)
    try:
        shutil.copy2(src, tmp)
        tmp.replace(dest)
    except Exception:
        _stash_failed(tmp)
        raise
