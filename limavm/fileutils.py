"""Download files described in an instance configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from limavm.downloader import DownloadError, Result, Status, download, user_cache_dir

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class File:
    """A file to fetch for a given architecture, optionally with its digest."""

    location: str
    arch: str
    digest: str = ""


def download_file(dest: str, f: File, description: str, expected_arch: str) -> Result:
    """Download *f* into *dest*, using the user cache."""
    if f.arch != expected_arch:
        raise ValueError(f'unsupported arch: "{f.arch}"')
    log.info('Attempting to download %s from "%s" (digest %s)', description, f.location, f.digest)
    try:
        res = download(
            dest,
            f.location,
            cache_dir=os.path.join(user_cache_dir(), "lima"),
            expected_digest=f.digest or None,
        )
    except (DownloadError, OSError, ValueError) as e:
        raise DownloadError(f'failed to download "{f.location}": {e}') from e
    log.debug("res.validated_digest=%s", res.validated_digest)
    if res.status == Status.DOWNLOADED:
        log.info('Downloaded %s from "%s"', description, f.location)
    elif res.status == Status.USED_CACHE:
        log.info('Using cache "%s"', res.cache_path)
    else:
        log.warning("Unexpected result from download(): %s", res)
    return res