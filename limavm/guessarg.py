"""Guess what kind of thing a command-line argument refers to."""

from __future__ import annotations

import re
from urllib.parse import SplitResult, urlsplit

_IDENTIFIER_MAX_LENGTH = 76
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9]+(?:[._-](?:[A-Za-z0-9]+))*$")


def validate_identifier(s: str) -> str:
    """Check that *s* is a valid identifier and return it; raise ValueError otherwise."""
    if not s:
        raise ValueError("identifier must not be empty")
    if len(s) > _IDENTIFIER_MAX_LENGTH:
        raise ValueError(
            f'identifier "{s}" greater than maximum length ({_IDENTIFIER_MAX_LENGTH} characters)'
        )
    if not _IDENTIFIER_RE.match(s):
        raise ValueError(f'identifier "{s}" must match {_IDENTIFIER_RE.pattern}')
    return s


def _parse(arg: str) -> SplitResult | None:
    try:
        return urlsplit(arg)
    except ValueError:
        return None


def seems_template_url(arg: str) -> tuple[bool, SplitResult | None]:
    """Return whether *arg* is a ``template://`` URL, together with its parsed form."""
    u = _parse(arg)
    if u is None:
        return False, None
    return u.scheme == "template", u


def seems_http_url(arg: str) -> bool:
    """Return whether *arg* is an http or https URL."""
    u = _parse(arg)
    return u is not None and u.scheme in ("http", "https")


def seems_file_url(arg: str) -> bool:
    """Return whether *arg* is a ``file://`` URL."""
    u = _parse(arg)
    return u is not None and u.scheme == "file"


def seems_yaml_path(arg: str) -> bool:
    """Return whether *arg* looks like a path to a YAML file."""
    if "/" in arg:
        return True
    lower = arg.lower()
    return lower.endswith(".yml") or lower.endswith(".yaml")


def _base(p: str) -> str:
    if p == "":
        return "."
    stripped = p.rstrip("/")
    if stripped == "":
        return "/"
    return stripped.rsplit("/", 1)[-1]


def inst_name_from_url(url_str: str) -> str:
    """Derive an instance name from the last path element of a URL."""
    u = _parse(url_str)
    if u is None:
        raise ValueError(f'invalid URL "{url_str}"')
    return inst_name_from_yaml_path(_base(u.path))


def inst_name_from_yaml_path(yaml_path: str) -> str:
    """Derive an instance name from a YAML file path."""
    s = _base(yaml_path).lower()
    s = s.removesuffix(".yml").removesuffix(".yaml")
    s = s.replace(".", "-")
    try:
        validate_identifier(s)
    except ValueError as e:
        raise ValueError(f'filename "{yaml_path}" is invalid: {e}') from e
    return s