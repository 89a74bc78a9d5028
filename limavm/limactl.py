"""Building blocks of the limactl commands: shell, copy, stop, factory-reset, prune, list, hostagent."""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import shutil
from dataclasses import dataclass
from typing import IO, Any, Callable, Iterator

from limavm.downloader import user_cache_dir

log = logging.getLogger(__name__)

DEFAULT_INSTANCE_NAME = "default"
STATUS_RUNNING = "Running"
STATUS_STOPPED = "Stopped"

_RUNTIME_SUFFIXES = (".pid", ".sock")
_CONFIG_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class InstanceRef:
    """What the commands need to know about an instance."""

    name: str
    dir: str
    status: str = STATUS_STOPPED
    ssh_local_port: int = 0


class SyncWriter:
    """A writer that flushes and syncs the underlying file after every write."""

    def __init__(self, stream: IO[Any]) -> None:
        self.stream = stream

    def write(self, data: Any) -> int:
        written = self.stream.write(data)
        with contextlib.suppress(AttributeError, OSError, ValueError):
            self.stream.flush()
            os.fsync(self.stream.fileno())
        return written


def build_shell_script(
    workdir: str | None,
    mounts_present: bool,
    shell: str | None,
    command: list[str] | None,
    cwd: str | None,
    home: str | None,
) -> str:
    """Build the script run in the guest by ``limactl shell``.

    With *workdir* set the shell must start there or fail. Otherwise, when
    the host home seems mounted, it tries the host's *cwd*, then *home*.
    A *cwd* or *home* of None means it could not be determined.
    """
    change_dir = ""
    if workdir:
        change_dir = f"cd {shlex.quote(workdir)} || exit 1"
    elif mounts_present:
        if cwd is not None:
            change_dir = f"cd {shlex.quote(cwd)}"
        else:
            change_dir = "false"
            log.warning("failed to get the current directory")
        if home is not None:
            change_dir = f"{change_dir} || cd {shlex.quote(home)}"
        else:
            log.warning("failed to get the home directory")
    else:
        log.debug("the host home does not seem mounted, so the guest shell will have a different cwd")
    if not change_dir:
        change_dir = "false"
    log.debug("change_dir=%r", change_dir)

    shell_expr = shlex.quote(shell) if shell else '"$SHELL"'
    script = f"{change_dir} ; exec {shell_expr} --login"
    if command:
        joined = " ".join(shlex.quote(arg) for arg in command)
        script += f" -c {shlex.quote(joined)}"
    return script


def build_scp_args(
    args: list[str],
    username: str,
    lookup: Callable[[str], InstanceRef],
    recursive: bool = False,
    debug: bool = False,
    legacy_ssh: bool = False,
) -> tuple[list[str], dict[str, str]]:
    """Translate ``limactl copy`` arguments into scp arguments.

    Guest paths are written ``INSTANCE:PATH``. *lookup* returns the instance
    of a name and raises FileNotFoundError if there is none. Returns the scp
    arguments and a mapping of the involved instance names to their directories.
    """
    scp_flags: list[str] = []
    scp_args: list[str] = []
    inst_dirs: dict[str, str] = {}
    if debug:
        scp_flags.append("-v")
    if recursive:
        scp_flags.append("-r")
    for arg in args:
        parts = arg.split(":")
        if len(parts) == 1:
            scp_args.append(arg)
            continue
        if len(parts) > 2:
            raise ValueError(f'path "{arg}" contains multiple colons')
        inst_name, path = parts
        try:
            inst = lookup(inst_name)
        except FileNotFoundError:
            raise ValueError(
                f'instance "{inst_name}" does not exist, run `limactl start {inst_name}` '
                "to create a new instance"
            ) from None
        if inst.status == STATUS_STOPPED:
            raise RuntimeError(
                f'instance "{inst_name}" is stopped, run `limactl start {inst_name}` '
                "to start the instance"
            )
        if legacy_ssh:
            scp_flags += ["-P", str(inst.ssh_local_port)]
            scp_args.append(f"{username}@127.0.0.1:{path}")
        else:
            scp_args.append(f"scp://{username}@127.0.0.1:{inst.ssh_local_port}/{path}")
        inst_dirs[inst_name] = inst.dir
    if legacy_ssh and len(inst_dirs) > 1:
        raise ValueError(
            "More than one (instance) host is involved in this command, "
            "this is only supported for openSSH v8.0 or higher"
        )
    return scp_flags + ["-3", "--"] + scp_args, inst_dirs


def instance_matches(arg: str, instances: list[str]) -> list[str]:
    """Return the instance names equal to *arg*."""
    return [inst for inst in instances if inst == arg]


def remove_runtime_files(inst_dir: str) -> list[str]:
    """Remove the ``*.pid`` and ``*.sock`` files of an instance; return the removed paths."""
    log.info('Removing *.pid *.sock under "%s"', inst_dir)
    try:
        names = sorted(os.listdir(inst_dir))
    except OSError as e:
        log.error("%s", e)
        return []
    removed: list[str] = []
    for name in names:
        path = os.path.join(inst_dir, name)
        if path.endswith(_RUNTIME_SUFFIXES):
            log.info('Removing "%s"', path)
            try:
                os.remove(path)
            except OSError as e:
                log.error("%s", e)
                continue
            removed.append(path)
    return removed


def factory_reset_dir(inst_dir: str) -> list[str]:
    """Remove everything but the YAML files from an instance directory; return the removed paths."""
    removed: list[str] = []
    for name in sorted(os.listdir(inst_dir)):
        path = os.path.join(inst_dir, name)
        if path.endswith(_CONFIG_SUFFIXES):
            continue
        log.info('Removing "%s"', path)
        try:
            os.remove(path)
        except OSError as e:
            log.error("%s", e)
            continue
        removed.append(path)
    return removed


def prune_cache(cache_dir: str | None = None) -> str:
    """Remove the download cache directory and return its path."""
    if cache_dir is None:
        cache_dir = os.path.join(user_cache_dir(), "lima")
    log.info('Pruning "%s"', cache_dir)
    if os.path.isdir(cache_dir) and not os.path.islink(cache_dir):
        shutil.rmtree(cache_dir)
    else:
        with contextlib.suppress(FileNotFoundError):
            os.remove(cache_dir)
    return cache_dir


@contextlib.contextmanager
def write_pidfile(path: str) -> Iterator[str]:
    """Write this process's pid to *path* for the duration of the block."""
    if os.path.lexists(path):
        raise FileExistsError(f'pidfile "{path}" already exists')
    with open(path, "w") as f:
        f.write(f"{os.getpid()}\n")
    try:
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)