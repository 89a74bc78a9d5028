[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "limavm"
version = "0.1.0"
description = "Guest agent HTTP API, cloud-init data and host-side helpers for Linux virtual machines"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "virtual-machine",
    "guest-agent",
    "port-forwarding",
    "cloud-init",
    "downloader",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["limavm"]

[tool.pytest.ini_options]
addopts = "-ra"
