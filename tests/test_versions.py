"""Tests for release ordering helpers."""

import pytest

from hermetic_builtin.versions import is_channel, latest_version, version_key


def test_numeric_ordering() -> None:
    assert version_key("1.78.0") > version_key("1.9.0")
    assert version_key("1.78") < version_key("1.78.1")
    assert latest_version(["1.9.0", "1.78.0", "1.10.2"]) == "1.78.0"


def test_prerelease_sorts_before_release() -> None:
    ordered = sorted(["1.79.0", "1.79.0-beta.2", "1.79.0-rc.1", "1.79.0-nightly"], key=version_key)
    assert ordered == ["1.79.0-nightly", "1.79.0-beta.2", "1.79.0-rc.1", "1.79.0"]


def test_latest_version_ignores_blanks() -> None:
    assert latest_version(["1.76.0", "", "1.78.0", "1.77.2"]) == "1.78.0"


def test_channels() -> None:
    assert is_channel("Stable")
    assert is_channel("latest")
    assert not is_channel("1.78.0")


def test_empty_version_is_rejected() -> None:
    with pytest.raises(ValueError):
        version_key("  ")
