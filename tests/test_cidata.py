from ipaddress import ip_address

import pytest

from limavm.cidata import (
    BootCmds,
    Cert,
    Mount,
    Provision,
    TemplateArgs,
    disk_device_name_from_order,
    get_boot_cmds,
    get_cert,
    setup_env,
    validate_template_args,
)

GATEWAY = "192.168.5.2"


def fake_lookup_ip(host):
    return [ip_address("127.0.0.0")]


def no_loopback_lookup(host):
    return [ip_address("10.0.0.1")]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("http://127.0.0.1", "http://192.168.5.2"),
        ("http://127.0.0.1:8080", "http://192.168.5.2:8080"),
        ("https://127.0.0.1:8080", "https://192.168.5.2:8080"),
        ("sock4://127.0.0.1:8080", "sock4://192.168.5.2:8080"),
        ("sock5://127.0.0.1:8080", "sock5://192.168.5.2:8080"),
        ("http://127.0.0.1:8080/", "http://192.168.5.2:8080/"),
        ("http://127.0.0.1:8080/path", "http://192.168.5.2:8080/path"),
        ("http://localhost:8080", "http://192.168.5.2:8080"),
        ("http://localhost:8080/", "http://192.168.5.2:8080/"),
        ("http://localhost:8080/path", "http://192.168.5.2:8080/path"),
        ("http://docker.for.mac.localhost:8080", "http://192.168.5.2:8080"),
        ("http://docker.for.mac.localhost:8080/", "http://192.168.5.2:8080/"),
        ("http://docker.for.mac.localhost:8080/path", "http://192.168.5.2:8080/path"),
    ],
)
def test_setup_env_replaces_loopback(value, expected):
    envs = setup_env({"http_proxy": value}, False, lookup_ip=fake_lookup_ip, gateway=GATEWAY)
    assert envs["http_proxy"] == expected
    assert envs["HTTP_PROXY"] == expected


def test_setup_invalid_env():
    value = "://localhost:8080"
    envs = setup_env({"http_proxy": value}, False, lookup_ip=fake_lookup_ip, gateway=GATEWAY)
    assert envs["http_proxy"] == value


def test_setup_env_keeps_non_loopback():
    value = "http://proxy.example.com:3128"
    envs = setup_env({"https_proxy": value}, False, lookup_ip=no_loopback_lookup)
    assert envs["https_proxy"] == value
    assert envs["HTTPS_PROXY"] == value


def test_setup_env_no_proxy_not_rewritten():
    envs = setup_env({"no_proxy": "localhost,127.0.0.1"}, False, lookup_ip=fake_lookup_ip)
    assert envs["no_proxy"] == "localhost,127.0.0.1"
    assert envs["NO_PROXY"] == "localhost,127.0.0.1"


def test_setup_env_lowercase_wins():
    envs = setup_env(
        {"ftp_proxy": "ftp://a.example.com", "FTP_PROXY": "ftp://b.example.com"},
        False,
        lookup_ip=no_loopback_lookup,
    )
    assert envs["FTP_PROXY"] == "ftp://a.example.com"


def test_setup_env_uppercase_copied_to_lowercase():
    envs = setup_env({"HTTP_PROXY": "http://a.example.com"}, False, lookup_ip=no_loopback_lookup)
    assert envs["http_proxy"] == "http://a.example.com"


def test_setup_env_yaml_overrides_system_settings():
    envs = setup_env(
        {"FOO": "yaml"},
        False,
        proxy_settings={"FOO": "system", "BAR": "system"},
        lookup_ip=no_loopback_lookup,
    )
    assert envs == {"FOO": "yaml", "BAR": "system"}


def test_setup_env_propagates_process_env(monkeypatch):
    for name in ("ftp_proxy", "http_proxy", "https_proxy", "no_proxy"):
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.upper(), raising=False)
    monkeypatch.setenv("https_proxy", "http://c.example.com")
    envs = setup_env(
        {"https_proxy": "http://yaml.example.com"}, True, lookup_ip=no_loopback_lookup
    )
    assert envs["https_proxy"] == "http://c.example.com"
    assert envs["HTTPS_PROXY"] == "http://c.example.com"


def _valid_args(**overrides):
    args = TemplateArgs(
        name="default",
        user="foo",
        uid=501,
        ssh_pub_keys=["ssh-rsa dummy foo@example.com"],
        mounts=[Mount(mount_point="/Users/dummy"), Mount(mount_point="/Users/dummy/lima")],
        mount_type="reverse-sshfs",
    )
    for k, v in overrides.items():
        setattr(args, k, v)
    return args


def test_validate_template_args_accepts_valid():
    args = _valid_args()
    validate_template_args(args)
    assert args.name == "default"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"user": "root"}, "root"),
        ({"uid": 0}, "UID"),
        ({"ssh_pub_keys": []}, "SSHPubKeys"),
        ({"mounts": [Mount(mount_point="relative/dir")]}, "mounts[0]"),
        ({"name": ""}, "empty"),
        ({"user": "bad name"}, "must match"),
    ],
)
def test_validate_template_args_rejects(overrides, message):
    with pytest.raises(ValueError, match=message.replace("[", r"\[").replace("]", r"\]")):
        validate_template_args(_valid_args(**overrides))


def test_get_cert_strips_and_skips_empty_lines():
    content = "-----BEGIN CERTIFICATE-----\n  abc  \n\ndef\n-----END CERTIFICATE-----\n"
    assert get_cert(content) == Cert(
        lines=["-----BEGIN CERTIFICATE-----", "abc", "def", "-----END CERTIFICATE-----"]
    )


def test_get_boot_cmds_only_boot_mode():
    provisions = [
        Provision(mode="system", script="echo system\n"),
        Provision(mode="boot", script="echo one\n  echo two\n"),
        Provision(mode="user", script="echo user\n"),
        Provision(mode="boot", script="echo three"),
    ]
    assert get_boot_cmds(provisions) == [
        BootCmds(lines=["echo one", "echo two"]),
        BootCmds(lines=["echo three"]),
    ]


def test_get_boot_cmds_empty():
    assert get_boot_cmds([Provision(mode="system", script="x")]) == []


@pytest.mark.parametrize("order, name", [(0, "vdb"), (1, "vdc"), (2, "vdd")])
def test_disk_device_name_from_order(order, name):
    assert disk_device_name_from_order(order) == name