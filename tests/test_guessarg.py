import pytest

from limavm.guessarg import (
    inst_name_from_url,
    inst_name_from_yaml_path,
    seems_file_url,
    seems_http_url,
    seems_template_url,
    seems_yaml_path,
    validate_identifier,
)


def test_template_url():
    ok, u = seems_template_url("template://docker")
    assert ok is True
    assert u.netloc == "docker"


def test_template_url_negative():
    ok, _ = seems_template_url("https://example.com/docker.yaml")
    assert ok is False


@pytest.mark.parametrize(
    "arg,expected",
    [
        ("http://example.com/a.yaml", True),
        ("https://example.com/a.yaml", True),
        ("template://docker", False),
        ("default", False),
    ],
)
def test_http_url(arg, expected):
    assert seems_http_url(arg) is expected


def test_file_url():
    assert seems_file_url("file:///tmp/a.yaml") is True
    assert seems_file_url("/tmp/a.yaml") is False


@pytest.mark.parametrize(
    "arg,expected",
    [("a/b", True), ("foo.YAML", True), ("foo.yml", True), ("default", False)],
)
def test_yaml_path(arg, expected):
    assert seems_yaml_path(arg) is expected


def test_inst_name_from_yaml_path():
    assert inst_name_from_yaml_path("/usr/local/share/lima/examples/fedora.yaml") == "fedora"


def test_inst_name_dots_replaced():
    assert inst_name_from_yaml_path("examples/Ubuntu.22.04.yml") == "ubuntu-22-04"


def test_inst_name_from_url():
    assert inst_name_from_url("https://example.com/foo/alpine.yaml") == "alpine"


def test_inst_name_is_valid_identifier():
    name = inst_name_from_yaml_path("Some.Thing.yaml")
    assert name == name.lower()
    assert validate_identifier(name) == name


@pytest.mark.parametrize("path", ["bad name.yaml", "_x.yaml", ".yaml"])
def test_inst_name_invalid(path):
    with pytest.raises(ValueError, match="is invalid"):
        inst_name_from_yaml_path(path)


def test_validate_identifier_length():
    assert validate_identifier("a" * 76) == "a" * 76
    with pytest.raises(ValueError, match="maximum length"):
        validate_identifier("a" * 77)


def test_validate_identifier_empty():
    with pytest.raises(ValueError, match="must not be empty"):
        validate_identifier("")