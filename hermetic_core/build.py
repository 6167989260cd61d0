"""Run the opaque build command inside the materialized environment."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from .closure import BuildClosure
from .descriptor import Descriptor
from .environment import BIN_PATH_VAR, EnvironmentView
from .errors import BuildCommandError, ConfigurationError, WrapFailureError
from .wrapper import CompiledBinary, compose_search_path

__all__ = [
    "BuildRunner",
    "DEFAULT_PASSTHROUGH",
    "build_command_for",
    "build_environment",
    "shell_environment",
]

logger = logging.getLogger(__name__)

DEFAULT_PASSTHROUGH = ("HOME", "USER", "LANG", "LC_ALL", "TERM", "TMPDIR")


def build_command_for(descriptor: Descriptor, closure: BuildClosure) -> list[str]:
    project = descriptor.project
    if not project.build_command:
        raise ConfigurationError("project.build_command is empty; nothing to build", identity=project.name)
    command = list(project.build_command)
    names = project.build_feature_names(closure.features)
    if names:
        command.extend([project.features_flag, ",".join(names)])
    return command


def build_environment(
    descriptor: Descriptor,
    view: EnvironmentView,
    ambient: Mapping[str, str],
    *,
    passthrough: Sequence[str] = DEFAULT_PASSTHROUGH,
) -> dict[str, str]:
    """Explicit build env: selected ambient keys, descriptor extras, then the view."""
    env = {key: ambient[key] for key in passthrough if key in ambient}
    env.update(descriptor.shell.env)
    env.update(view.as_env())
    env.setdefault(BIN_PATH_VAR, "")
    return env


def shell_environment(descriptor: Descriptor, view: EnvironmentView, ambient: Mapping[str, str]) -> dict[str, str]:
    """Interactive dev-shell env: the build env, with the caller's PATH kept after ours."""
    env = build_environment(descriptor, view, ambient, passthrough=(*DEFAULT_PASSTHROUGH, "SHELL"))
    env[BIN_PATH_VAR] = os.pathsep.join(compose_search_path(view.bin_path, ambient.get(BIN_PATH_VAR)))
    return env


@dataclass
class BuildRunner:
    timeout_seconds: float | None = None
    passthrough: Sequence[str] = DEFAULT_PASSTHROUGH
    capture_output: bool = False

    def run(
        self,
        descriptor: Descriptor,
        closure: BuildClosure,
        view: EnvironmentView,
        *,
        out_dir: Path,
        ambient: Mapping[str, str] | None = None,
    ) -> CompiledBinary:
        command = build_command_for(descriptor, closure)
        env = build_environment(descriptor, view, ambient or {}, passthrough=self.passthrough)
        workdir = descriptor.workdir
        logger.info("building %s in %s: %s", descriptor.project.name, workdir, " ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=workdir,
                env=env,
                check=False,
                capture_output=self.capture_output,
                text=True,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise BuildCommandError(f"build command not found in the build environment: {command[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise BuildCommandError(f"build command timed out after {self.timeout_seconds}s") from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip() if self.capture_output else ""
            message = f"build command failed (exit={result.returncode})"
            if detail:
                message += f": {detail.splitlines()[-1]}"
            raise BuildCommandError(message, returncode=result.returncode)

        produced = workdir / descriptor.project.binary
        if not produced.is_file():
            raise WrapFailureError(f"build finished but {produced} does not exist")
        return CompiledBinary(path=install_binary(produced, out_dir))


def install_binary(produced: Path, out_dir: Path) -> Path:
    bin_dir = out_dir / "bin"
    target = bin_dir / produced.name
    try:
        bin_dir.mkdir(parents=True, exist_ok=True)
        for stale in (target, target.with_name(f".{target.name}-wrapped")):
            if stale.exists():
                stale.unlink()
        shutil.copy2(produced, target)
        os.chmod(target, target.stat().st_mode | 0o111)
    except OSError as exc:
        raise WrapFailureError(f"unable to install {produced} into {bin_dir}: {exc}") from exc
    logger.debug("installed %s -> %s", produced, target)
    return target
