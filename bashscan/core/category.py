"""YAML-driven activity categories for tool calls and bash commands."""

import re
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from bashscan.core.safety.analyzer import analyze
from bashscan.exceptions import ShellParseError

logger = structlog.get_logger()

CATEGORY_CONFIG_NAME = ".bash-categories.yaml"
DEFAULT_CATEGORY_CONFIG = Path(__file__).parent.parent / "categories" / "default.yaml"
PLANS_DIR_MARKER = "/.claude/plans/"


class Category(Enum):
    BUILD = "build"
    TEST = "test"
    INSTALL = "install"
    EXPLORE = "explore"
    LINT = "lint"
    CLEANUP = "cleanup"
    GIT = "git"
    DOCKER = "docker"
    K8S = "k8s"
    RUN = "run"
    PLAN = "plan"
    EDIT = "edit"
    CLARIFY = "clarify"
    READ = "read"
    OTHER = "other"


_PRIORITY: dict[Category, int] = {
    Category.INSTALL: 100,
    Category.EDIT: 90,
    Category.RUN: 80,
    Category.TEST: 70,
    Category.BUILD: 60,
    Category.CLEANUP: 50,
    Category.DOCKER: 40,
    Category.K8S: 40,
    Category.GIT: 30,
    Category.EXPLORE: 20,
    Category.LINT: 20,
    Category.PLAN: 20,
    Category.READ: 15,
    Category.CLARIFY: 10,
    Category.OTHER: 0,
}

# Highest priority first; sorted() is stable so ties keep declaration order.
_MATCH_ORDER: tuple[Category, ...] = tuple(
    sorted(Category, key=lambda c: -_PRIORITY[c])
)


def category_priority(category: Category) -> int:
    """Higher means more impactful."""
    return _PRIORITY[category]


class CategoryRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    commands: list[str] = []
    patterns: list[str] = []
    tools: list[str] = []

    @field_validator("commands", "patterns", "tools", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class CategoryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: dict[Category, CategoryRule] = {}

    @field_validator("categories", mode="before")
    @classmethod
    def drop_unknown_categories(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v
        known = {c.value for c in Category}
        kept = {}
        for name, rule in v.items():
            if isinstance(name, Category) or name in known:
                kept[name] = rule if rule is not None else {}
            else:
                logger.warning("category_unknown", category=name)
        return kept


def load_category_config(path: Path) -> CategoryConfig | None:
    """Read one category file. Returns ``None`` if it is missing or invalid."""
    if not path.is_file():
        return None
    try:
        raw = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("category_config_read_failed", path=str(path), error=str(exc))
        return None

    if not isinstance(raw, dict):
        logger.warning("category_config_not_a_mapping", path=str(path))
        return None

    try:
        config = CategoryConfig(**raw)
    except ValidationError as exc:
        logger.warning("category_config_invalid", path=str(path), error=str(exc))
        return None

    logger.debug(
        "category_config_loaded", path=str(path), categories=len(config.categories)
    )
    return config


def default_category_config(project_dir: str | Path | None = None) -> CategoryConfig:
    """Project ``.bash-categories.yaml``, then the home one, then the packaged default."""
    candidates: list[Path] = []
    if project_dir:
        candidates.append(Path(project_dir) / CATEGORY_CONFIG_NAME)
    try:
        candidates.append(Path.home() / CATEGORY_CONFIG_NAME)
    except RuntimeError:
        logger.debug("home_directory_unavailable")
    candidates.append(DEFAULT_CATEGORY_CONFIG)

    for path in candidates:
        config = load_category_config(path)
        if config is not None:
            return config
    logger.warning("category_config_unavailable")
    return CategoryConfig()


class CategoryClassifier:
    def __init__(self, config: CategoryConfig | None = None) -> None:
        self._config = config if config is not None else default_category_config()
        self._rules: list[tuple[Category, CategoryRule]] = [
            (cat, self._config.categories[cat])
            for cat in _MATCH_ORDER
            if cat in self._config.categories
        ]
        self._compiled: list[tuple[Category, re.Pattern[str]]] = []
        for cat, rule in self._rules:
            for pattern in rule.patterns:
                try:
                    self._compiled.append((cat, re.compile(pattern)))
                except re.error as exc:
                    logger.warning(
                        "category_pattern_invalid",
                        category=cat.value,
                        pattern=pattern,
                        error=str(exc),
                    )

    def classify(self, command: str) -> Category:
        cmd = command.strip()
        if not cmd:
            return Category.OTHER

        for cat, rule in self._rules:
            for prefix in rule.commands:
                if cmd == prefix or cmd.startswith(prefix + " "):
                    return cat

        for cat, regex in self._compiled:
            if regex.search(cmd):
                return cat

        return Category.OTHER

    def classify_tool(self, tool: str) -> Category:
        for cat, rule in self._rules:
            if tool in rule.tools:
                return cat
        return Category.OTHER

    def classify_tool_with_path(self, tool: str, file_path: str = "") -> Category:
        if file_path and PLANS_DIR_MARKER in file_path:
            return Category.PLAN
        return self.classify_tool(tool)

    def classify_bash(self, command: str) -> Category:
        """Category of the most impactful command in a compound bash line."""
        try:
            commands = analyze(command).commands
        except ShellParseError:
            logger.debug("classify_bash_parse_failed", command=command)
            return self.classify(command)
        if not commands:
            return self.classify(command)

        highest = Category.OTHER
        for cmd in commands:
            cat = self.classify(cmd)
            if _PRIORITY[cat] > _PRIORITY[highest]:
                highest = cat
        return highest
