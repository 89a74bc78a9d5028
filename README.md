# limavm

A library of building blocks for running Linux virtual machines from a host.
It has two parts:

- **Guest side.** These pieces read the guest's listening TCP sockets from
  `/proc/net/tcp` and `/proc/net/tcp6`. An HTTP API then reports ports to the
  host over a UNIX socket, and a client on the host reads that API.
- **Host side.** These are helpers for tools that manage instances:
  - working out what a `start` argument refers to,
  - downloading images with caching and digest checks,
  - preparing cloud-init arguments and the guest environment,
  - editing a configuration in an editor,
  - assembling `ssh`/`scp` command lines and cleaning up instance directories.

## Modules

| Module | What it provides |
| --- | --- |
| `limavm.guessarg` | `seems_template_url`, `seems_http_url`, `seems_file_url` and `seems_yaml_path` tell apart the kinds of argument. `inst_name_from_yaml_path` and `inst_name_from_url` turn a file name or URL into a valid instance name. `validate_identifier` checks a name. |
| `limavm.procnettcp` | `parse(stream, kind)` and `parse_address(s)` read the kernel's TCP socket tables. `parse_files()` reads `/proc/net/tcp` and `/proc/net/tcp6` and skips any table that is missing. |
| `limavm.api` | The `IPPort`, `Info` and `Event` records, each with `to_dict()` and `from_dict()` for its JSON form. |
| `limavm.server` | `create_server(agent, socket_path)` binds a `UnixHTTPServer` on a UNIX socket and makes the socket world-writable. It serves `GET /v1/info` and `GET /v1/events`. |
| `limavm.client` | `GuestAgentClient(socket_path)` talks to that server. |
| `limavm.downloader` | `download(local, remote, cache_dir, expected_digest)` copies a local file or fetches a remote one. It caches by URL and checks `sha256:`, `sha384:` or `sha512:` digests. It returns a `Result` whose `Status` is `DOWNLOADED`, `SKIPPED` or `USED_CACHE`. |
| `limavm.fileutils` | `download_file(dest, f, description, expected_arch)` downloads a per-architecture `File` through the user cache. |
| `limavm.cidata` | `TemplateArgs` and its parts, with `validate_template_args`. `setup_env` merges proxy settings and points loopback proxies at the guest gateway. `get_cert`, `get_boot_cmds` and `disk_device_name_from_order` are also here. |
| `limavm.editutil` | `open_editor(name, content, hdr)` opens `$EDITOR`, or a common editor found on `PATH`. It returns `None` when the file is saved empty. `generate_editor_warning_header(config_dir)` quotes `default.yaml` and `override.yaml`. |
| `limavm.limactl` | `build_shell_script` and `build_scp_args` build the guest shell command and the `scp` arguments. `remove_runtime_files`, `factory_reset_dir` and `prune_cache` clean up instance and cache directories. `write_pidfile` is a context manager, and `SyncWriter` syncs its file after each write. |

## The HTTP API

`create_server` takes any agent object that provides two methods:

- `info()` returns an `Info`.
- `events(stop)` returns a generator of `Event`s. It must end once the
  `threading.Event` `stop` is set.

The server answers two requests:

- `GET /v1/info` returns JSON such as
  `{"localPorts": [{"ip": "127.0.0.1", "port": 8080}]}`. If the agent raises,
  the answer is status 500 with `{"message": ...}`.
- `GET /v1/events` streams newline-delimited JSON events.

```python
import threading
from limavm.server import create_server

server = create_server(my_agent, "/tmp/agent.sock")
threading.Thread(target=server.serve_forever, daemon=True).start()
```

On the host:

```python
from limavm.client import GuestAgentClient

client = GuestAgentClient("/tmp/agent.sock")
print(client.info().local_ports)
client.events(print)  # raises EOFError when the stream ends
```

## Example: reading listening ports

```python
from limavm import procnettcp

with open("/proc/net/tcp") as stream:
    for entry in procnettcp.parse(stream, procnettcp.Kind.TCP):
        print(entry.ip, entry.port, entry.state)
```

## Example: naming an instance from a template file

```python
from limavm.guessarg import inst_name_from_yaml_path, seems_yaml_path

arg = "examples/fedora.yaml"
if seems_yaml_path(arg):
    print(inst_name_from_yaml_path(arg))  # fedora
```

## What this package does not do

The package has no command-line program and no daemon. It also does not
provide an agent implementation to pass to `create_server`. You supply an
object with `info()` and `events(stop)` yourself, for example one built on
`procnettcp.parse_files()`. The package does not read iptables NAT rules, and
it does not start, stop or drive virtual machines.

## Requirements

Python 3.10 or later, with no third-party dependencies. The server and client
need UNIX sockets. `open_editor` starts an editor. `build_shell_script` and
`build_scp_args` produce arguments for `ssh` and `scp` but do not run them.