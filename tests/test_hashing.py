"""Tests for content-derived identities."""

import datetime
from pathlib import Path

import attrs
import pytest

from pyvider.melange.exceptions import IdentityError
from pyvider.melange.hashing import canonicalize, compute_identity, content_identity
from pyvider.melange.models import Architecture, PackageConfig


def test_identity_is_stable(minimal_config: PackageConfig) -> None:
    first = compute_identity(minimal_config)
    assert first == compute_identity(minimal_config)
    assert len(first) == 64
    assert all(c in "0123456789abcdef" for c in first)


@pytest.mark.parametrize(
    "change",
    [
        {"name": "other"},
        {"version": "0.0.2"},
        {"epoch": 4},
    ],
)
def test_identity_changes_with_package_fields(
    minimal_config: PackageConfig, change: dict
) -> None:
    updated = attrs.evolve(minimal_config, package=attrs.evolve(minimal_config.package, **change))
    assert compute_identity(updated) != compute_identity(minimal_config)


def test_identity_changes_with_environment(minimal_config: PackageConfig) -> None:
    contents = attrs.evolve(
        minimal_config.environment.contents,
        packages=(*minimal_config.environment.contents.packages, "bash"),
    )
    updated = attrs.evolve(
        minimal_config,
        environment=attrs.evolve(minimal_config.environment, contents=contents),
    )
    assert compute_identity(updated) != compute_identity(minimal_config)


def test_identity_ignores_mapping_order() -> None:
    first = {"package": {"name": "x", "version": "1", "epoch": 0}, "vars": {"a": 1, "b": 2}}
    second = {"vars": {"b": 2, "a": 1}, "package": {"epoch": 0, "version": "1", "name": "x"}}
    assert compute_identity(first) == compute_identity(second)

    config_one = PackageConfig.from_dict(first)
    config_two = PackageConfig.from_dict(second)
    assert compute_identity(config_one) == compute_identity(config_two)


def test_identity_ignores_source_path(minimal_config: PackageConfig) -> None:
    moved = attrs.evolve(minimal_config, source_path=Path("/somewhere/else.yaml"))
    assert compute_identity(moved) == compute_identity(minimal_config)


def test_list_order_is_significant() -> None:
    assert compute_identity({"deps": ["a", "b"]}) != compute_identity({"deps": ["b", "a"]})


def test_canonical_form_of_plain_values() -> None:
    value = {"b": {Architecture.X86_64}, "a": (Path("/x"), None, True)}
    assert canonicalize(value) == b'{"a":["/x",null,true],"b":["x86_64"]}'


def test_content_identity_matches_text_and_bytes() -> None:
    assert content_identity("hello") == content_identity(b"hello")
    assert (
        content_identity("hello")
        == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
    )


def test_unsupported_value_is_a_programmer_error() -> None:
    with pytest.raises(IdentityError, match="object"):
        compute_identity({"x": object()})
    assert issubclass(IdentityError, TypeError)


def test_dates_hash_as_iso_text() -> None:
    dated = {"released": datetime.date(2024, 1, 15), "at": datetime.datetime(2024, 1, 15, 10, 0)}
    text = {"released": "2024-01-15", "at": "2024-01-15T10:00:00"}
    assert compute_identity(dated) == compute_identity(text)
