"""Tests for feature resolution."""

import pytest

from hermetic_core.errors import ConfigurationError, UnknownFeatureError
from hermetic_core.features import FeatureSet, parse_feature_list, resolve_features

KNOWN = frozenset({"windowing:wayland", "windowing:x11", "gpu:vk", "gpu:gl"})


def test_defaults_apply_without_overrides() -> None:
    features = resolve_features(["windowing:wayland", "windowing:x11"], None, known_tags=KNOWN)
    assert features.sorted() == ["windowing:wayland", "windowing:x11"]


@pytest.mark.parametrize(
    "override",
    [
        [],
        ["gpu:gl"],
        ["gpu:vk", "windowing:x11"],
        sorted(KNOWN),
    ],
)
def test_overrides_replace_defaults(override: list[str]) -> None:
    features = resolve_features(["gpu:vk"], override, known_tags=KNOWN)
    assert features.tags == frozenset(override)


def test_unknown_override_lists_every_unknown_tag() -> None:
    with pytest.raises(UnknownFeatureError) as excinfo:
        resolve_features(["gpu:vk"], ["gpu:metal", "gpu:gl", "audio:alsa"], known_tags=KNOWN)
    assert excinfo.value.tags == ("audio:alsa", "gpu:metal")


def test_unknown_default_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_features(["gpu:metal"], None, known_tags=KNOWN)


def test_feature_set_iteration_is_sorted() -> None:
    features = FeatureSet(frozenset({"b", "a"}))
    assert list(features) == ["a", "b"]
    assert "a" in features
    assert features.enables(frozenset({"c", "b"}))
    assert not features.enables(frozenset({"c"}))


def test_parse_feature_list() -> None:
    assert parse_feature_list(None) is None
    assert parse_feature_list("") == []
    assert parse_feature_list("gpu:vk, gpu:gl windowing:x11") == ["gpu:vk", "gpu:gl", "windowing:x11"]
