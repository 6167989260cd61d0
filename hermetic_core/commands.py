"""Built-in CLI commands registered before dispatch."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from argparse import REMAINDER, ArgumentParser, Namespace
from pathlib import Path
from typing import Any, Sequence

from .api import HermeticAbstractCommand, hcommand
from .api.decorators import FEATURE_ATTRIBUTE
from .app import Plan, Provisioner, store_from_settings
from .build import BuildRunner, shell_environment
from .config import EngineSettings
from .descriptor import Descriptor, find_descriptor, load_descriptor
from .environment import Mode, render_exports
from .errors import BuildCommandError, ConfigurationError, HermeticError
from .events import Event, EventBus
from .features import parse_feature_list
from .lockfile import DEFAULT_LOCKFILE_NAME, load_lock, verify_lock_against_closure
from .registry import CommandRegistry, RegistryEntry
from .workspace import WorkspaceLayout, WorkspaceResolver

__all__ = ["BUILTIN_COMMANDS", "register_builtin_commands"]

logger = logging.getLogger(__name__)


class _ProvisioningCommand(HermeticAbstractCommand):
    """Shared option handling: settings, descriptor lookup and provisioner setup."""

    label = "hermetic"

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--descriptor", help="Path to hermetic.toml / hermetic.yml (default: search upwards)")
        parser.add_argument("--store", dest="store_dir", help="Local store root")
        parser.add_argument("--fetch-command", dest="fetch_command", help="External fetch command (shell-quoted)")
        parser.add_argument("--timeout", dest="timeout_seconds", help="Resolution/build timeout in seconds (0 = none)")
        parser.add_argument("--max-workers", dest="max_workers", help="Parallel store lookups")
        parser.add_argument("--workspace-dir", dest="workspace_dir", help="Workspace root (.hermetic)")
        cls.configure_command(parser)

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        return None

    def run(self, args: Namespace) -> int:
        try:
            return self.execute(args)
        except HermeticError as exc:
            print(f"[hermetic:{self.label}] error: {exc}")
            return 1

    def execute(self, args: Namespace) -> int:
        raise NotImplementedError

    # ---------- helpers ----------

    def _start_dir(self, args: Namespace) -> Path:
        raw = getattr(args, "start_dir", None)
        return Path(raw) if raw else Path.cwd()

    def _resolver(self, args: Namespace) -> WorkspaceResolver:
        overrides = {
            key: getattr(args, key, None)
            for key in ("store_dir", "fetch_command", "timeout_seconds", "max_workers", "workspace_dir", "descriptor")
        }
        return WorkspaceResolver(cli_overrides=overrides)

    def _settings(self, args: Namespace) -> EngineSettings:
        return EngineSettings.resolve(self._resolver(args), self._start_dir(args))

    def _descriptor(self, settings: EngineSettings, args: Namespace) -> Descriptor:
        start = self._start_dir(args)
        if settings.descriptor is not None:
            path = settings.descriptor if settings.descriptor.is_absolute() else start / settings.descriptor
        else:
            path = find_descriptor(start)
        if path is None or not path.is_file():
            raise ConfigurationError(f"no hermetic descriptor found from {start}")
        return load_descriptor(path)

    def _provisioner(self, settings: EngineSettings) -> Provisioner:
        store, index = store_from_settings(settings)
        events = EventBus()
        events.on_all(_log_event)
        return Provisioner(
            store,
            index=index,
            events=events,
            timeout=settings.timeout_seconds,
            max_workers=settings.max_workers,
        )

    def _artifact_dir(self, args: Namespace, descriptor: Descriptor) -> Path:
        layout = WorkspaceLayout.from_root(self._resolver(args).ensure_workspace(descriptor.root))
        return layout.artifact_dir(descriptor.project.name, descriptor.project.version)

    def _overrides(self, args: Namespace) -> list[str] | None:
        overrides = parse_feature_list(getattr(args, "features", None))
        if overrides is None and getattr(args, "no_default_features", False):
            return []
        return overrides


def _log_event(event: Event) -> None:
    logger.debug("event %s %s", event.name, event.payload)


def _trailing_arguments(values: Sequence[str] | None) -> list[str]:
    """REMAINDER arguments minus a leading ``--`` separator."""
    items = list(values or [])
    return items[1:] if items[:1] == ["--"] else items


def _add_feature_arguments(parser: ArgumentParser) -> None:
    parser.add_argument("--features", help="Comma separated capability tags; replaces the defaults")
    parser.add_argument(
        "--no-default-features",
        action="store_true",
        dest="no_default_features",
        help="Start from an empty feature set",
    )


@hcommand(name="build", group="hermetic")
class BuildCommand(_ProvisioningCommand):
    """Build the project inside the dev shell and wrap the resulting binary."""

    label = "build"

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        _add_feature_arguments(parser)
        parser.add_argument("--out", help="Output directory (default: .hermetic/artifacts/<name>-<version>)")
        parser.add_argument("--lock-file", dest="lock_file", help=f"Lockfile path (default: {DEFAULT_LOCKFILE_NAME})")
        parser.add_argument("--locked", action="store_true", help="Refuse to build if the lockfile is out of date")

    def execute(self, args: Namespace) -> int:
        settings = self._settings(args)
        descriptor = self._descriptor(settings, args)
        provisioner = self._provisioner(settings)

        out_dir = Path(args.out) if args.out else self._artifact_dir(args, descriptor)
        lock_path = Path(args.lock_file) if args.lock_file else descriptor.root / DEFAULT_LOCKFILE_NAME

        result = provisioner.build(
            descriptor,
            self._overrides(args),
            out_dir=out_dir,
            runner=BuildRunner(timeout_seconds=settings.timeout_seconds),
            lock_path=lock_path,
            locked=bool(args.locked),
            ambient=os.environ,
        )
        plan = result.plan
        print(
            f"[hermetic:build] {descriptor.project.name}@{descriptor.project.version} "
            f"toolchain={plan.toolchain.name}@{plan.toolchain.version} features={','.join(plan.features) or '-'}"
        )
        print(f"[hermetic:build] artifact={result.artifact.path} digest={result.artifact.digest}")
        if result.lock_path is not None:
            print(f"[hermetic:build] lockfile={result.lock_path}")
        return 0


@hcommand(name="shell", group="hermetic")
class ShellCommand(_ProvisioningCommand):
    """Run a command (or $SHELL) inside the development environment."""

    label = "shell"

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        _add_feature_arguments(parser)
        parser.add_argument("command", nargs=REMAINDER, help="Command to run (default: $SHELL)")

    def execute(self, args: Namespace) -> int:
        settings = self._settings(args)
        descriptor = self._descriptor(settings, args)
        plan = self._provisioner(settings).plan(descriptor, self._overrides(args))

        command = _trailing_arguments(args.command)
        if not command:
            command = [os.environ.get("SHELL") or "/bin/sh"]
        env = shell_environment(descriptor, plan.dev_shell, os.environ)
        for line in descriptor.shell.banner:
            print(line, flush=True)
        try:
            completed = subprocess.run(command, cwd=descriptor.root, env=env, check=False)
        except FileNotFoundError as exc:
            raise BuildCommandError(f"command not found in the dev shell: {command[0]}") from exc
        return completed.returncode


@hcommand(name="run", group="hermetic")
class RunCommand(_ProvisioningCommand):
    """Run the wrapped artifact, building it first when it is missing."""

    label = "run"

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        _add_feature_arguments(parser)
        parser.add_argument("--rebuild", action="store_true", help="Build again even if the artifact exists")
        parser.add_argument("arguments", nargs=REMAINDER, help="Arguments passed to the artifact")

    def execute(self, args: Namespace) -> int:
        settings = self._settings(args)
        descriptor = self._descriptor(settings, args)
        out_dir = self._artifact_dir(args, descriptor)
        artifact = out_dir / "bin" / descriptor.project.binary_name

        if args.rebuild or not artifact.is_file():
            result = self._provisioner(settings).build(
                descriptor,
                self._overrides(args),
                out_dir=out_dir,
                runner=BuildRunner(timeout_seconds=settings.timeout_seconds),
                ambient=os.environ,
            )
            artifact = result.artifact.path
            print(f"[hermetic:run] built {artifact}", flush=True)
        else:
            logger.debug("reusing artifact %s", artifact)

        try:
            completed = subprocess.run([str(artifact), *_trailing_arguments(args.arguments)], check=False)
        except OSError as exc:
            raise BuildCommandError(f"cannot start {artifact}: {exc}") from exc
        return completed.returncode


@hcommand(name="env", group="hermetic")
class EnvCommand(_ProvisioningCommand):
    """Print the environment for a mode as shell exports or JSON."""

    label = "env"

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        _add_feature_arguments(parser)
        parser.add_argument("--mode", choices=[mode.value for mode in Mode], default=Mode.DEV_SHELL.value)
        parser.add_argument("--format", choices=["sh", "json"], default="sh")

    def execute(self, args: Namespace) -> int:
        settings = self._settings(args)
        descriptor = self._descriptor(settings, args)
        plan = self._provisioner(settings).plan(descriptor, self._overrides(args))
        mode = Mode.parse(args.mode)
        view = plan.view(mode)
        extra = dict(descriptor.shell.env) if mode is Mode.DEV_SHELL else {}

        if args.format == "json":
            payload = {
                "mode": mode.value,
                "identities": list(view.identities),
                "paths": {name: list(entries) for name, entries in view.path_lists().items()},
                "env": extra,
            }
            print(json.dumps(payload, indent=2))
            return 0
        print(render_exports(view, extra=extra), end="")
        return 0


@hcommand(name="lock", group="hermetic")
class LockCommand(_ProvisioningCommand):
    """Resolve the closure and write (or check) the lockfile."""

    label = "lock"

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        _add_feature_arguments(parser)
        parser.add_argument("--lock-file", dest="lock_file", help=f"Lockfile path (default: {DEFAULT_LOCKFILE_NAME})")
        parser.add_argument("--check", action="store_true", help="Verify the existing lockfile instead of writing it")

    def execute(self, args: Namespace) -> int:
        settings = self._settings(args)
        descriptor = self._descriptor(settings, args)
        provisioner = self._provisioner(settings)
        lock_path = Path(args.lock_file) if args.lock_file else descriptor.root / DEFAULT_LOCKFILE_NAME

        if args.check:
            plan = provisioner.plan(descriptor, self._overrides(args))
            if not lock_path.exists():
                print(f"[hermetic:lock] missing lockfile: {lock_path}")
                return 1
            try:
                payload = load_lock(lock_path)
            except (OSError, ValueError) as exc:
                raise ConfigurationError(f"unable to read lockfile {lock_path}: {exc}") from exc
            result = verify_lock_against_closure(payload, plan.closure, descriptor)
            if result.ok:
                print(f"[hermetic:lock] {lock_path} is up to date")
                return 0
            for error in result.errors:
                print(f"[hermetic:lock] {error}")
            return 1

        plan = provisioner.lock(descriptor, lock_path, self._overrides(args))
        print(f"[hermetic:lock] wrote {lock_path} dependencies={len(plan.closure.dependencies)}")
        return 0


@hcommand(name="show", group="hermetic")
class ShowCommand(_ProvisioningCommand):
    """Summarize the resolved toolchain, features and closure."""

    label = "show"

    @classmethod
    def configure_command(cls, parser: ArgumentParser) -> None:
        _add_feature_arguments(parser)
        parser.add_argument("--format", choices=["text", "json"], default="text")

    def execute(self, args: Namespace) -> int:
        settings = self._settings(args)
        descriptor = self._descriptor(settings, args)
        plan = self._provisioner(settings).plan(descriptor, self._overrides(args))
        summary = _plan_summary(plan)
        if args.format == "json":
            print(json.dumps(summary, indent=2))
            return 0

        toolchain = summary["toolchain"]
        print(f"[hermetic:show] project={summary['project']} descriptor={descriptor.path}")
        print(
            f"[hermetic:show] toolchain={toolchain['name']}@{toolchain['version']} "
            f"channel={toolchain['channel']} identity={toolchain['identity']}"
        )
        print(f"[hermetic:show] features={','.join(summary['features']) or '-'}")
        for item in summary["dependencies"]:
            print(f"  - {item['name']} [{item['category']}] {item['location']}")
        print(
            f"[hermetic:show] devshell={len(plan.dev_shell.identities)} runtime={len(plan.runtime.identities)}"
        )
        return 0


def _plan_summary(plan: Plan) -> dict[str, Any]:
    project = plan.descriptor.project
    toolchain = plan.toolchain
    return {
        "project": f"{project.name}@{project.version}",
        "toolchain": {
            "name": toolchain.name,
            "version": toolchain.version,
            "channel": toolchain.channel,
            "identity": toolchain.identity,
            "components": list(toolchain.component_names()),
        },
        "features": plan.features.sorted(),
        "dependencies": [
            {
                "name": item.identity,
                "category": item.dependency.category.value,
                "location": item.location.as_posix(),
            }
            for item in plan.closure.dependencies
        ],
        "runtime": list(plan.runtime.identities),
    }


@hcommand(name="help", group="hermetic")
class HelpCommand(HermeticAbstractCommand):
    """Display the list of available commands."""

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument(
            "--long",
            action="store_true",
            dest="long_format",
            help="Show detailed help about each command.",
        )

    def run(self, args: Namespace) -> int:
        self.long_format = bool(getattr(args, "long_format", False))
        return 0


BUILTIN_COMMANDS: Sequence[type] = (
    BuildCommand,
    ShellCommand,
    RunCommand,
    EnvCommand,
    LockCommand,
    ShowCommand,
    HelpCommand,
)


def register_builtin_commands(registry: CommandRegistry) -> None:
    for command in BUILTIN_COMMANDS:
        marker = getattr(command, FEATURE_ATTRIBUTE, None)
        if marker is not None:
            registry.register(RegistryEntry(group=marker.group, name=marker.name, target=command, kind=marker.kind))
