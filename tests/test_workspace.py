"""Tests for the workspace resolver, layout helpers and engine settings."""

from pathlib import Path

import pytest

from hermetic_core.config import EngineSettings, default_config_path
from hermetic_core.errors import ConfigurationError
from hermetic_core.paths import UserDirs
from hermetic_core.workspace import CONFIG_FILE_NAME, WorkspaceLayout, WorkspaceResolver


def _user_dirs(tmp_path: Path) -> UserDirs:
    return UserDirs(
        config_dir_override=tmp_path / "user-config",
        data_dir_override=tmp_path / "user-data",
    )


def test_find_workspace_in_parent(tmp_path: Path) -> None:
    project = tmp_path / "project"
    workspace_root = project / ".hermetic"
    workspace_root.mkdir(parents=True)
    (project / "sub").mkdir()

    resolver = WorkspaceResolver(env={}, user_dirs=_user_dirs(tmp_path))
    assert resolver.find_workspace(project / "sub") == workspace_root


def test_ensure_workspace_creates_layout(tmp_path: Path) -> None:
    resolver = WorkspaceResolver(env={}, user_dirs=_user_dirs(tmp_path))
    start_dir = tmp_path / "project"
    start_dir.mkdir()

    workspace_root = resolver.ensure_workspace(start_dir)
    layout = WorkspaceLayout.from_root(workspace_root)

    assert workspace_root == start_dir.resolve() / ".hermetic"
    assert layout.artifacts_dir.is_dir()
    assert layout.config_file.is_file()
    assert layout.artifact_dir("inlyne", "0.4.1") == layout.artifacts_dir / "inlyne-0.4.1"
    assert resolver.ensure_workspace(start_dir) == workspace_root


def test_workspace_dir_override(tmp_path: Path) -> None:
    override = tmp_path / "elsewhere"
    resolver = WorkspaceResolver(env={"HERMETIC_DIR": str(override)}, user_dirs=_user_dirs(tmp_path))
    assert resolver.find_workspace(tmp_path) is None
    assert resolver.ensure_workspace(tmp_path) == override.resolve()
    assert resolver.find_workspace(tmp_path) == override.resolve()


def test_config_resolution_precedence(tmp_path: Path) -> None:
    user_dirs = _user_dirs(tmp_path)
    user_config_dir = user_dirs.config_dir()
    user_config_dir.mkdir()
    (user_config_dir / CONFIG_FILE_NAME).write_text('timeout_seconds = "40"')

    project = tmp_path / "project"
    workspace_dir = project / ".hermetic"
    workspace_dir.mkdir(parents=True)
    (workspace_dir / CONFIG_FILE_NAME).write_text("[hermetic]\ntimeout_seconds = 30\n")

    resolver = WorkspaceResolver(
        cli_overrides={"timeout_seconds": "10"},
        env={"HERMETIC_TIMEOUT": "20"},
        user_dirs=user_dirs,
    )
    assert resolver.resolve_setting("timeout_seconds", start_dir=project) == "10"

    resolver = WorkspaceResolver(cli_overrides={"timeout_seconds": None}, env={"HERMETIC_TIMEOUT": "20"}, user_dirs=user_dirs)
    assert resolver.resolve_setting("timeout_seconds", start_dir=project) == "20"

    resolver = WorkspaceResolver(env={}, user_dirs=user_dirs)
    assert resolver.resolve_setting("timeout_seconds", start_dir=project) == "30"

    (workspace_dir / CONFIG_FILE_NAME).unlink()
    assert resolver.resolve_setting("timeout_seconds", start_dir=project) == "40"

    (user_config_dir / CONFIG_FILE_NAME).unlink()
    assert resolver.resolve_setting("timeout_seconds", start_dir=project) == "300"


def test_engine_settings_defaults(tmp_path: Path) -> None:
    user_dirs = _user_dirs(tmp_path)
    settings = EngineSettings.resolve(WorkspaceResolver(env={}, user_dirs=user_dirs), tmp_path)
    assert settings.store_dir == tmp_path / "user-data" / "store"
    assert settings.timeout_seconds == 300.0
    assert settings.max_workers == 4
    assert settings.fetch_command == ()
    assert settings.descriptor is None
    assert default_config_path(user_dirs) == tmp_path / "user-config" / CONFIG_FILE_NAME


def test_engine_settings_from_environment(tmp_path: Path) -> None:
    env = {
        "HERMETIC_STORE": str(tmp_path / "store"),
        "HERMETIC_TIMEOUT": "none",
        "HERMETIC_MAX_WORKERS": "8",
        "HERMETIC_FETCH_COMMAND": "nix-store --realise '--quiet'",
        "HERMETIC_DESCRIPTOR": "build/hermetic.yml",
    }
    settings = EngineSettings.resolve(WorkspaceResolver(env=env, user_dirs=_user_dirs(tmp_path)), tmp_path)
    assert settings.store_dir == tmp_path / "store"
    assert settings.timeout_seconds is None
    assert settings.max_workers == 8
    assert settings.fetch_command == ("nix-store", "--realise", "--quiet")
    assert settings.descriptor == Path("build/hermetic.yml")


@pytest.mark.parametrize(
    "env",
    [
        {"HERMETIC_TIMEOUT": "soon"},
        {"HERMETIC_TIMEOUT": "-1"},
        {"HERMETIC_MAX_WORKERS": "0"},
        {"HERMETIC_MAX_WORKERS": "many"},
    ],
)
def test_engine_settings_validation(tmp_path: Path, env: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError):
        EngineSettings.resolve(WorkspaceResolver(env=env, user_dirs=_user_dirs(tmp_path)), tmp_path)
