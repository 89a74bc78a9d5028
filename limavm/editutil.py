"""Open an editor on an instance configuration."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)

DEFAULT_YAML = "default.yaml"
OVERRIDE_YAML = "override.yaml"

_EDITOR_CANDIDATES = ("vim", "vi", "nano", "emacs")


def file_warning(filename: str | os.PathLike[str]) -> str:
    """Return a commented warning quoting the content of *filename*, or "" if absent or empty."""
    try:
        text = Path(filename).read_text()
    except OSError:
        return ""
    if not text:
        return ""
    out = [
        f"# WARNING: {os.fspath(filename)} includes the following settings,\n",
        "# which are applied before applying this YAML:\n",
        "# -----------\n",
    ]
    for line in text.removesuffix("\n").split("\n"):
        out.append(f"# {line}\n" if line else "#\n")
    out.append("# -----------\n")
    out.append("\n")
    return "".join(out)


def generate_editor_warning_header(config_dir: str | os.PathLike[str] | None) -> str:
    """Build the editor header warning about defaults and overrides in *config_dir*."""
    if config_dir is None:
        return "# WARNING: failed to load the config dir\n\n"
    base = Path(config_dir)
    return file_warning(base / DEFAULT_YAML) + file_warning(base / OVERRIDE_YAML)


def detect_editor() -> str | None:
    """Return the editor named by $EDITOR, or the first common editor found on PATH."""
    editor = os.environ.get("EDITOR")
    if editor:
        return editor
    for candidate in _EDITOR_CANDIDATES:
        found = shutil.which(candidate)
        if found:
            return found
    return None


def open_editor(name: str, content: bytes, hdr: str) -> bytes | None:
    """Let the user edit *content* below *hdr*; return the result without the header.

    Returns None when the file was saved empty, apart from whitespace.
    """
    editor = detect_editor()
    if not editor:
        raise RuntimeError("could not detect a text editor binary, try setting $EDITOR")
    hdr_bytes = hdr.encode()
    fd, path = tempfile.mkstemp(prefix="lima-editor-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(hdr_bytes + content)
        os.chmod(path, 0o600)
        log.debug('opening editor "%s" for a file "%s" (instance "%s")', editor, path, name)
        try:
            subprocess.run([editor, path], check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise RuntimeError(
                f'could not execute editor "{editor}" for a file "{path}": {e}'
            ) from e
        modified = Path(path).read_bytes()
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)
    modified = modified.removeprefix(hdr_bytes)
    if not modified.strip():
        return None
    return modified