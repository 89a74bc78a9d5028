"""Fetch files from URLs or local paths, with optional caching and digest checks."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import sys
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

log = logging.getLogger(__name__)

_CHUNK_SIZE = 1 << 16

# Hex lengths of the digest algorithms that can be verified.
_DIGEST_HEX_LENGTHS = {"sha256": 64, "sha384": 96, "sha512": 128}


class Status(str, Enum):
    """The outcome of a download."""

    UNKNOWN = ""
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    USED_CACHE = "used-cache"


@dataclass
class Result:
    status: Status
    cache_path: str = ""
    validated_digest: bool = False


class DownloadError(Exception):
    """Raised when fetching or verifying a file fails."""


def user_cache_dir() -> str:
    """Return the per-user cache directory of the platform."""
    platform = sys.platform
    if platform == "win32":
        local_app_data = os.environ.get("LocalAppData") or os.environ.get("LOCALAPPDATA")
        if not local_app_data:
            raise OSError("%LocalAppData% is not defined")
        return local_app_data
    if platform == "darwin":
        home = os.environ.get("HOME")
        if not home:
            raise OSError("$HOME is not defined")
        return os.path.join(home, "Library", "Caches")
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return xdg
    home = os.environ.get("HOME")
    if not home:
        raise OSError("neither $XDG_CACHE_HOME nor $HOME are defined")
    return os.path.join(home, ".cache")


def is_local(s: str) -> bool:
    """Return whether *s* names a local file (no scheme, or ``file://``)."""
    return "://" not in s or s.startswith("file://")


def _expand(s: str) -> str:
    if s.startswith("~"):
        s = os.path.expanduser(s)
    return os.path.abspath(s)


def _canonical_local_path(s: str) -> str:
    if not s:
        raise ValueError("got empty path")
    if not is_local(s):
        raise ValueError(f'got non-local path: "{s}"')
    if s.startswith("file://"):
        res = s.removeprefix("file://")
        if not os.path.isabs(res):
            raise ValueError(f'got non-absolute path "{res}"')
        return res
    return _expand(s)


def _check_expected_digest(expected_digest: str) -> str:
    """Validate *expected_digest* and return its algorithm."""
    algo = expected_digest.split(":", 1)[0] if ":" in expected_digest else ""
    if algo not in _DIGEST_HEX_LENGTHS:
        raise ValueError(f'expected digest algorithm "{algo}" is not available')
    encoded = expected_digest.split(":", 1)[1]
    if len(encoded) != _DIGEST_HEX_LENGTHS[algo]:
        raise ValueError("invalid checksum digest length")
    if not re.fullmatch(r"[a-f0-9]+", encoded):
        raise ValueError("invalid checksum digest format")
    return algo


def _remove_all(path: str) -> None:
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except FileNotFoundError:
        pass


def _file_digest(path: str, algo: str) -> str:
    hasher = hashlib.new(algo)
    with open(path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return f"{algo}:{hasher.hexdigest()}"


def _validate_local_file_digest(local_path: str, expected_digest: str | None) -> None:
    if not local_path:
        raise ValueError("got empty local path for digest validation")
    if not expected_digest:
        return
    log.debug('verifying digest of local file "%s" (%s)', local_path, expected_digest)
    algo = _check_expected_digest(expected_digest)
    actual = _file_digest(local_path, algo)
    if actual != expected_digest:
        raise DownloadError(f'expected digest "{expected_digest}", got "{actual}"')


def _copy_local(dst: str, src: str, expected_digest: str | None) -> None:
    src_path = _canonical_local_path(src)
    _validate_local_file_digest(src_path, expected_digest)
    if not dst:
        # An empty destination means caching-only mode.
        return
    dst_path = _canonical_local_path(dst)
    shutil.copyfile(src_path, dst_path)
    shutil.copymode(src_path, dst_path)


def _download_http(local_path: str, url: str, expected_digest: str | None) -> None:
    if not local_path:
        raise ValueError("got empty local path for HTTP download")
    log.debug('downloading "%s" into "%s"', url, local_path)
    tmp_path = local_path + ".tmp"
    _remove_all(tmp_path)
    hasher = hashlib.new(_check_expected_digest(expected_digest)) if expected_digest else None
    with open(tmp_path, "wb") as out:
        try:
            resp = urllib.request.urlopen(url)
        except urllib.error.HTTPError as e:
            raise DownloadError(f"expected HTTP status 200, got {e.code} {e.reason}") from e
        with resp:
            if resp.status != 200:
                raise DownloadError(f"expected HTTP status 200, got {resp.status} {resp.reason}")
            while chunk := resp.read(_CHUNK_SIZE):
                out.write(chunk)
                if hasher is not None:
                    hasher.update(chunk)
        if hasher is not None:
            actual = f"{hasher.name}:{hasher.hexdigest()}"
            if actual != expected_digest:
                raise DownloadError(f'expected digest "{expected_digest}", got "{actual}"')
        out.flush()
        os.fsync(out.fileno())
    _remove_all(local_path)
    os.replace(tmp_path, local_path)


def download(
    local: str,
    remote: str,
    cache_dir: str | os.PathLike[str] | None = None,
    expected_digest: str | None = None,
) -> Result:
    """Download *remote* into *local*.

    When *cache_dir* is given, remote resources are cached there; local files
    are never cached. When *local* already exists, nothing is done and the
    result has status SKIPPED. *local* may be empty for caching-only mode.
    """
    if expected_digest:
        _check_expected_digest(expected_digest)
    else:
        expected_digest = None
    cache = os.fspath(cache_dir) if cache_dir else ""
    validated = expected_digest is not None

    local_path = ""
    if not local:
        if not cache:
            raise ValueError("caching-only mode requires the cache directory to be specified")
    else:
        local_path = _canonical_local_path(local)
        try:
            os.stat(local_path)
        except FileNotFoundError:
            pass
        else:
            log.debug(
                'file "%s" already exists, skipping downloading from "%s" (and skipping digest validation)',
                local_path,
                remote,
            )
            return Result(status=Status.SKIPPED, validated_digest=False)
        os.makedirs(os.path.dirname(local_path), mode=0o755, exist_ok=True)

    if is_local(remote):
        _copy_local(local_path, remote, expected_digest)
        return Result(status=Status.DOWNLOADED, validated_digest=validated)

    if not cache:
        _download_http(local_path, remote, expected_digest)
        return Result(status=Status.DOWNLOADED, validated_digest=validated)

    shad = os.path.join(
        cache, "download", "by-url-sha256", hashlib.sha256(remote.encode()).hexdigest()
    )
    shad_data = os.path.join(shad, "data")
    shad_digest = ""
    if expected_digest is not None:
        algo = expected_digest.split(":", 1)[0]
        shad_digest = os.path.join(shad, algo + ".digest")

    if os.path.exists(shad_data):
        log.debug('file "%s" is cached as "%s"', local_path, shad_data)
        cached_digest: str | None = None
        if shad_digest:
            try:
                cached_digest = Path(shad_digest).read_text().strip()
            except OSError:
                cached_digest = None
        if cached_digest is not None:
            log.debug(
                'comparing digest "%s" with the cached digest file "%s", not computing the actual digest of "%s"',
                expected_digest,
                shad_digest,
                shad_data,
            )
            if expected_digest != cached_digest:
                raise DownloadError(
                    f'expected digest "{expected_digest}" does not match the cached digest "{cached_digest}"'
                )
            _copy_local(local_path, shad_data, None)
        else:
            _copy_local(local_path, shad_data, expected_digest)
        return Result(status=Status.USED_CACHE, cache_path=shad_data, validated_digest=validated)

    _remove_all(shad)
    os.makedirs(shad, mode=0o700)
    Path(shad, "url").write_text(remote)
    _download_http(shad_data, remote, expected_digest)
    # The digest has already been verified while downloading.
    _copy_local(local_path, shad_data, None)
    if shad_digest and expected_digest is not None:
        Path(shad_digest).write_text(expected_digest)
    return Result(status=Status.DOWNLOADED, cache_path=shad_data, validated_digest=validated)