"""Store client that shells out to an external fetch command."""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path

from hermetic_core.errors import DependencyUnavailableError, ResolutionTimeoutError, StoreError

from .types import CommandStoreConfig

logger = logging.getLogger(__name__)

# exit status the fetch command uses for "identity not in store"
MISSING_EXIT_CODE = 44


class CommandStore:
    """Run ``command + [identity]`` and read the location from stdout."""

    def __init__(self, config: CommandStoreConfig) -> None:
        if not config.command:
            raise ValueError("fetch command cannot be empty")
        self.config = config

    def fetch(self, identity: str) -> Path:
        argv = [*self.config.command, identity]
        attempts = max(int(self.config.max_retries), 1)
        delay = max(float(self.config.backoff_seconds), 0.0)
        for attempt in range(1, attempts + 1):
            logger.debug("fetching %s (attempt %d of %d)", identity, attempt, attempts)
            code, stdout, stderr = self._invoke(argv)
            if code == 0:
                return self._location(identity, stdout)
            if code == MISSING_EXIT_CODE:
                raise DependencyUnavailableError(f"{identity} is not present in the store")
            logger.warning("fetch of %s exited with %d", identity, code)
            if attempt < attempts:
                time.sleep(min(delay * attempt, 2.0))
        message = f"fetch command failed for {identity} (exit={code}): {' '.join(argv)}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        raise StoreError(message)

    def _invoke(self, argv: list[str]) -> tuple[int, str, str]:
        limit = None if self.config.timeout_seconds is None else max(float(self.config.timeout_seconds), 1.0)
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, check=False, timeout=limit)
        except FileNotFoundError as exc:
            raise StoreError(f"fetch command not found: {argv[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ResolutionTimeoutError(f"fetch command gave no answer within {limit}s") from exc
        return proc.returncode, proc.stdout or "", proc.stderr or ""

    @staticmethod
    def _location(identity: str, stdout: str) -> Path:
        printed = [line.strip() for line in stdout.splitlines() if line.strip()]
        if not printed:
            raise StoreError(f"fetch command printed no location for {identity}")
        location = Path(printed[-1])
        if not location.is_dir():
            raise StoreError(f"fetch command returned a missing location for {identity}: {location}")
        return location
