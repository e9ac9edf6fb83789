"""Path classification: is a write target inside the sandbox or not."""

import os
import re
from fnmatch import fnmatchcase
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict

from bashscan.core.config import Config

logger = structlog.get_logger()

SYSTEM_PREFIXES = (
    "/etc/",
    "/usr/",
    "/var/",
    "/bin/",
    "/sbin/",
    "/boot/",
    "/sys/",
    "/proc/",
    "/lib/",
    "/lib64/",
    "/opt/",
)

_HOME_VAR_RE = re.compile(r"\$HOME(?![A-Za-z0-9_])")
_PWD_VAR_RE = re.compile(r"\$PWD(?![A-Za-z0-9_])")
_PATH_ALIAS_RE = re.compile(r"\$(?:HOME|PWD)(?![A-Za-z0-9_])|\$\(pwd\)")


class PathClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    is_safe: bool
    reason: str


def _home_dir() -> str:
    try:
        return str(Path.home())
    except RuntimeError:
        return ""


def _within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip("/") + "/")


def is_dynamic_path(path: str) -> bool:
    """True when the path still holds variables or substitutions after alias removal."""
    stripped = _PATH_ALIAS_RE.sub("", path)
    return "$" in stripped or "`" in stripped


class PathClassifier:
    def __init__(self, cwd: str | None = None, config: Config | None = None) -> None:
        self._cwd = os.path.normpath(cwd or os.getcwd())
        self._home = _home_dir()
        self._config = config or Config()

    @property
    def cwd(self) -> str:
        return self._cwd

    def classify_path(self, path: str) -> PathClassification:
        if not path:
            return self._result(path, True, "Empty path")
        if path == "/dev/null":
            return self._result(path, True, "Standard null device")

        resolved = self.resolve(path)

        for pattern in self._config.safe_paths:
            if self._matches(resolved, pattern):
                return self._result(path, True, f"Matches configured safe path: {pattern}")

        if _within(resolved, "/tmp"):
            return self._result(path, True, "Temporary directory")

        if ".." in path:
            return self._result(path, False, "Parent directory traversal detected")

        for prefix in SYSTEM_PREFIXES:
            if resolved.startswith(prefix):
                return self._result(path, False, f"System directory: {prefix}")

        if (
            self._home
            and _within(resolved, self._home)
            and not _within(resolved, self._cwd)
        ):
            return self._result(path, False, "Home directory write outside CWD")

        if not os.path.isabs(resolved):
            return self._result(
                path, True, "Relative path in current working directory"
            )

        if _within(resolved, self._cwd):
            return self._result(path, True, "Within current working directory")

        return self._result(
            path, False, "Absolute path outside CWD and not in safe list"
        )

    def resolve(self, path: str) -> str:
        """Expand $HOME, ~, $PWD and $(pwd), then normalize."""
        resolved = path
        if self._home:
            resolved = _HOME_VAR_RE.sub(lambda _: self._home, resolved)
            if resolved == "~":
                resolved = self._home
            elif resolved.startswith("~/"):
                resolved = os.path.join(self._home, resolved[2:])
        resolved = _PWD_VAR_RE.sub(lambda _: self._cwd, resolved)
        resolved = resolved.replace("$(pwd)", self._cwd)
        return os.path.normpath(resolved)

    def _matches(self, resolved: str, pattern: str) -> bool:
        # Component-wise so wildcards never cross a "/".
        target = self.resolve(pattern)
        path_parts = resolved.split("/")
        pattern_parts = target.split("/")
        if len(path_parts) != len(pattern_parts):
            return False
        return all(
            fnmatchcase(part, pat) for part, pat in zip(path_parts, pattern_parts)
        )

    def _result(self, path: str, is_safe: bool, reason: str) -> PathClassification:
        if not is_safe:
            logger.debug("path_classified_unsafe", path=path, reason=reason)
        return PathClassification(path=path, is_safe=is_safe, reason=reason)
