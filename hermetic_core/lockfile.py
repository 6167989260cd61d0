"""JSON lockfile recording the resolved toolchain and dependency closure."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Mapping

from .closure import BuildClosure
from .descriptor import Descriptor

LOCKFILE_VERSION = 1
DEFAULT_LOCKFILE_NAME = "hermetic.lock.json"


@dataclass(frozen=True)
class VerifyResult:
    ok: bool
    errors: tuple[str, ...]


def _digest(sections: Mapping[str, Any]) -> str:
    canonical = json.dumps(sections, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _engine_version() -> str:
    try:
        return importlib_metadata.version("hermetic")
    except importlib_metadata.PackageNotFoundError:
        return "0+unknown"


def lock_sections(closure: BuildClosure, descriptor: Descriptor) -> dict[str, Any]:
    """The verified part of a lock: identical inputs give identical output on any host.

    Store entries are recorded by their content-addressed directory name,
    never by the absolute path of the store they were found in.
    """
    toolchain = closure.toolchain
    return {
        "project": {
            "name": descriptor.project.name,
            "version": descriptor.project.version,
        },
        "toolchain": {
            "name": toolchain.name,
            "version": toolchain.version,
            "channel": toolchain.channel,
            "identity": toolchain.identity,
            "store_path": toolchain.location.name,
            "components": [{"name": name, "digest": digest} for name, digest in toolchain.components],
        },
        "features": closure.features.sorted(),
        "dependencies": [
            {
                "name": item.dependency.name,
                "version": item.dependency.version,
                "category": item.dependency.category.value,
                "tags": sorted(item.dependency.tags),
                "store_path": item.location.name,
            }
            for item in closure.dependencies
        ],
    }


def closure_digest(closure: BuildClosure, descriptor: Descriptor) -> str:
    return _digest(lock_sections(closure, descriptor))


def render_lock(
    closure: BuildClosure,
    descriptor: Descriptor,
    *,
    artifacts: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    payload: dict[str, Any] = {"lockfileVersion": LOCKFILE_VERSION}
    payload.update(lock_sections(closure, descriptor))
    payload["closure_digest"] = closure_digest(closure, descriptor)
    payload["artifacts"] = {name: digest for name, digest in sorted((artifacts or {}).items())}
    # informational only; never compared by verify_lock_against_closure
    payload["resolution"] = {
        "generated_at": stamp,
        "hermetic_version": _engine_version(),
        "toolchain_location": closure.toolchain.location.as_posix(),
        "locations": {item.identity: item.location.as_posix() for item in closure.dependencies},
    }
    return payload


def write_lock(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(dict(payload), indent=2, ensure_ascii=False)
    path.write_text(text + "\n", encoding="utf-8")


def load_lock(path: Path) -> dict[str, Any]:
    """Read a lockfile; raises ``ValueError`` unless the top level is a JSON object."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        return payload
    raise ValueError(f"{path}: expected a JSON object at the top level")


def verify_lock_against_closure(
    lock_payload: Mapping[str, Any],
    closure: BuildClosure,
    descriptor: Descriptor,
) -> VerifyResult:
    problems: list[str] = []
    recorded_version = lock_payload.get("lockfileVersion")
    if recorded_version != LOCKFILE_VERSION:
        problems.append(f"lockfileVersion mismatch: lockfile has {recorded_version!r}, engine writes {LOCKFILE_VERSION}")
    elif lock_payload.get("closure_digest") == closure_digest(closure, descriptor):
        return VerifyResult(ok=True, errors=())

    expected = lock_sections(closure, descriptor)
    problems.extend(f"{key} mismatch" for key in ("project", "toolchain", "features") if lock_payload.get(key) != expected[key])

    locked = {entry.get("name"): entry for entry in lock_payload.get("dependencies") or [] if isinstance(entry, dict)}
    current = {entry["name"]: entry for entry in expected["dependencies"]}
    problems.extend(f"dependency removed: {name}" for name in sorted(locked.keys() - current.keys()))
    problems.extend(f"dependency added: {name}" for name in sorted(current.keys() - locked.keys()))
    problems.extend(
        f"dependency changed: {name}" for name in sorted(locked.keys() & current.keys()) if locked[name] != current[name]
    )
    if not problems and list(locked) != list(current):
        problems.append("dependency order mismatch")

    return VerifyResult(ok=not problems, errors=tuple(problems))
