"""Guest agent HTTP API, cloud-init data and host-side helpers for Linux virtual machines."""

__version__ = "0.1.0"