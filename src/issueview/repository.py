from __future__ import annotations

import shutil
import subprocess  # nosec B404 - subprocess is required to read the git HEAD
from pathlib import Path

from .events import EventEmitter
from .interfaces import ManagerState
from .logging import get_logger


class RepositoryStateManager:
    """In-process holder of the repository manager state."""

    def __init__(self, state: ManagerState = ManagerState.LOADING):
        self._state = state
        self.on_did_change_state = EventEmitter("manager state changed")

    @property
    def state(self) -> ManagerState:
        return self._state

    def set_state(self, state: ManagerState) -> None:
        if state is self._state:
            return
        self._state = state
        self.on_did_change_state.publish()


class GitHeadRef:
    """Current HEAD commit of a local git checkout.

    ``poll`` re-reads HEAD and always publishes ``on_did_change_ref``, the way a
    repository state watcher fires for any state change; deciding whether the
    ref really moved is left to the subscriber.
    """

    def __init__(self, path: str | Path = "."):
        self._path = Path(path)
        self._git = shutil.which("git") or "git"
        self._ref: str | None = self._read_head()
        self.on_did_change_ref = EventEmitter("ref changed")

    @property
    def current_ref(self) -> str | None:
        return self._ref

    def poll(self) -> str | None:
        self._ref = self._read_head()
        self.on_did_change_ref.publish()
        return self._ref

    def _read_head(self) -> str | None:
        try:
            out = subprocess.check_output(  # nosec B603 - fixed argument list
                [self._git, "rev-parse", "HEAD"],
                cwd=self._path,
                text=True,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            get_logger().debug("no git HEAD available", path=str(self._path), error=str(exc))
            return None
        return out.strip() or None


__all__ = ["GitHeadRef", "RepositoryStateManager"]
