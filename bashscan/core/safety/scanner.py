"""Bash safety scanner: walks the parsed command and judges every stage."""

import re
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, model_serializer

from bashscan.core import shell
from bashscan.core.config import Config
from bashscan.core.safety import rules
from bashscan.core.safety.analyzer import FileOperation, analyze_tree
from bashscan.core.safety.sandbox import PathClassifier, is_dynamic_path
from bashscan.core.shell import Node
from bashscan.exceptions import ShellParseError

logger = structlog.get_logger()

PARSE_FAILURE_REASON = "Failed to parse bash command"

NETWORK_RECOMMENDATION = (
    "Network operations require review. Ensure the endpoint is trusted and necessary."
)
INSTALL_RECOMMENDATION = (
    "Package installation modifies the system. Verify this is intentional and required."
)
DELETE_RECOMMENDATION = (
    "Ensure you're operating in the correct directory. "
    "Consider using 'rm' without -f flag and verify the path."
)
PERMISSION_RECOMMENDATION = (
    "Permission changes on system files are dangerous. Ensure you have the correct path."
)
WRITE_RECOMMENDATION = (
    "Avoid writing to system directories. Use paths within your project or /tmp instead."
)

HEREDOC_VIOLATION_PREFIX = "In heredoc script: "
HEREDOC_NOTE_PREFIX = "heredoc: "

_SHELL_WORDS = frozenset(
    {
        "if", "then", "else", "elif", "fi",
        "for", "while", "until", "do", "done",
        "case", "esac", "function",
        "echo", "printf", "cat", "grep", "awk", "sed",
        "cd", "ls", "rm", "cp", "mv", "mkdir", "export",
        "set", "source", "exit", "true", "false", "test", "sudo",
        "bash", "sh", "find", "python", "python3",
    }
)  # fmt: skip

_SCRIPT_WORDS = (
    _SHELL_WORDS
    | rules.SAFE_PIPE_COMMANDS
    | rules.DESTRUCTIVE_DELETE_COMMANDS
    | rules.NETWORK_COMMANDS
    | rules.PERMISSION_COMMANDS
    | rules.PACKAGE_MANAGERS
    | rules.ARCHIVE_COMMANDS
    | rules.DEV_TOOLS
    | rules.FILE_WRITE_COMMANDS
)

# Command positions: line starts and the text after each control operator.
_COMMAND_BOUNDARY_RE = re.compile(r"&&|\|\||\$\(|[\n;|&(){}`]")
_ASSIGNMENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*=")


def _drop_empty(data: dict[str, Any], keep: tuple[str, ...]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k in keep or v not in ("", [], None)}


class Violation(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    command: str
    path: str = ""
    recommendation: str = ""

    @model_serializer(mode="wrap")
    def _serialize(self, handler):
        return _drop_empty(handler(self), keep=("message", "command"))


class ScanResult(BaseModel):
    """Verdict for one command. ``allowed`` is true only with no violations and no parse error."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str = ""
    violations: list[Violation] = []
    operations: list[FileOperation] = []
    safe_operations: list[str] = []
    parse_error: str = ""

    @model_serializer(mode="wrap")
    def _serialize(self, handler):
        return _drop_empty(handler(self), keep=("allowed",))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class _ScanState(BaseModel):
    violations: list[Violation] = []
    safe_operations: list[str] = []

    def note(self, text: str) -> None:
        self.safe_operations.append(text)

    def violate(
        self, message: str, command: str, path: str = "", recommendation: str = ""
    ) -> None:
        self.violations.append(
            Violation(
                message=message,
                command=command,
                path=path,
                recommendation=recommendation,
            )
        )


def looks_like_script(content: str) -> bool:
    """Heuristic: a shebang, or a shell keyword or known command at any command position."""
    text = content.strip()
    if not text:
        return False
    if text.startswith("#!"):
        return True
    for segment in _COMMAND_BOUNDARY_RE.split(text):
        tokens = segment.split()
        while tokens and _ASSIGNMENT_RE.match(tokens[0]):
            tokens.pop(0)
        if tokens and tokens[0] in _SCRIPT_WORDS:
            return True
    return False


class Scanner:
    def __init__(self, cwd: str | None = None, config: Config | None = None) -> None:
        self._config = config or Config()
        self._classifier = PathClassifier(cwd, self._config)

    @property
    def classifier(self) -> PathClassifier:
        return self._classifier

    def scan(self, command: str) -> ScanResult:
        try:
            tree = shell.parse(command)
        except ShellParseError as e:
            logger.info("scan_parse_failed", error=str(e))
            return ScanResult(
                allowed=False,
                reason=PARSE_FAILURE_REASON,
                violations=[
                    Violation(message=f"{PARSE_FAILURE_REASON}: {e}", command=command)
                ],
                parse_error=str(e),
            )

        operations: list[FileOperation] = []
        try:
            operations = analyze_tree(tree).operations
        except Exception:
            logger.debug("scan_extractor_failed", exc_info=True)

        state = _ScanState()
        for node in tree.nodes:
            self._walk(node, state)

        allowed = not state.violations
        result = ScanResult(
            allowed=allowed,
            reason="" if allowed else state.violations[0].message,
            violations=state.violations,
            operations=operations,
            safe_operations=state.safe_operations,
        )
        logger.debug(
            "scan_completed",
            allowed=result.allowed,
            violations=len(result.violations),
            safe_operations=len(result.safe_operations),
        )
        return result

    # -- structural walk ----------------------------------------------------

    def _walk(self, node: Node, state: _ScanState) -> None:
        kind = node.kind
        if kind in ("list", "pipeline"):
            self._walk_children(node.parts, state)
        elif kind == "compound":
            self._walk_children(node.list, state)
            for redirect in shell.command_redirects(node):
                self._analyze_redirect(redirect, state)
        elif kind in ("if", "for", "while", "until"):
            self._walk_children(node.parts, state)
        elif kind == "function":
            self._walk(node.body, state)
        elif kind == "command":
            self._analyze_command(node, state)
            for redirect in shell.command_redirects(node):
                self._analyze_redirect(redirect, state)

    def _walk_children(self, children: list[Node], state: _ScanState) -> None:
        for child in children:
            if child.kind in shell.COMMAND_KINDS:
                self._walk(child, state)

    # -- commands -----------------------------------------------------------

    def _analyze_command(self, node: Node, state: _ScanState) -> None:
        words = [shell.word_to_string(w) for w in shell.command_words(node)]
        if not words:
            return
        name, args = words[0], words[1:]

        if self._is_whitelisted(name, args):
            state.note(f"{name} (whitelisted)")
        elif rules.is_python_command(name):
            state.note(f"{name} (python - not analyzed)")
        elif rules.is_find_command(name):
            self._analyze_find(name, args, state)
        elif rules.is_safe_pipe_command(name):
            state.note(f"{name} (safe pipe)")
        elif rules.is_dev_tool(name, args):
            state.note(f"{name} (dev tool)")
        elif rules.is_network_command(name):
            state.violate(
                "Network operation detected",
                name,
                recommendation=NETWORK_RECOMMENDATION,
            )
        elif rules.is_package_install(name, args):
            state.violate(
                "Package installation detected",
                name,
                recommendation=INSTALL_RECOMMENDATION,
            )
        elif rules.is_destructive_delete(name, args):
            self._analyze_delete(name, args, state)
        elif rules.is_permission_command(name):
            self._analyze_permission(name, args, state)
        elif rules.is_archive_extract(name, args):
            self._analyze_archive(name, args, state)
        elif (target := rules.file_write_target(name, args)) is not None:
            self._analyze_write(name, target, state)
        else:
            state.note(name)

    def _is_whitelisted(self, name: str, args: list[str]) -> bool:
        whitelist = self._config.whitelisted_commands
        if not whitelist:
            return False
        full = " ".join([name, *args])
        return name in whitelist or full in whitelist

    def _analyze_delete(self, name: str, args: list[str], state: _ScanState) -> None:
        for path in (a for a in args if not a.startswith("-")):
            verdict = self._classifier.classify_path(path)
            if verdict.is_safe:
                state.note(f"delete {path} (safe path)")
            else:
                state.violate(
                    f"Destructive delete targeting: {path} ({verdict.reason})",
                    name,
                    path=path,
                    recommendation=DELETE_RECOMMENDATION,
                )

    def _analyze_permission(
        self, name: str, args: list[str], state: _ScanState
    ) -> None:
        if not args:
            return
        path = args[-1]
        verdict = self._classifier.classify_path(path)
        if not verdict.is_safe:
            state.violate(
                f"Permission change on: {path} ({verdict.reason})",
                name,
                path=path,
                recommendation=PERMISSION_RECOMMENDATION,
            )

    def _analyze_archive(self, name: str, args: list[str], state: _ScanState) -> None:
        target = rules.archive_target_dir(name, args)
        if not target:
            return
        verdict = self._classifier.classify_path(target)
        if not verdict.is_safe:
            state.violate(
                f"Archive extraction to unsafe location: {target} ({verdict.reason})",
                name,
                path=target,
            )

    def _analyze_write(self, name: str, path: str, state: _ScanState) -> None:
        verdict = self._classifier.classify_path(path)
        if verdict.is_safe:
            note = f"write to {path} ({verdict.reason})"
            if is_dynamic_path(path):
                note += " (unresolved)"
            state.note(note)
            return
        state.violate(
            f"File write to unsafe location: {path} ({verdict.reason})",
            name,
            path=path,
            recommendation=WRITE_RECOMMENDATION,
        )

    def _analyze_find(self, name: str, args: list[str], state: _ScanState) -> None:
        found = rules.extract_find_exec(args)
        if not found.has_exec:
            state.note("find (no -exec)")
            return

        root = found.search_path
        root_safe = self._classifier.classify_path(root).is_safe
        exec_name, exec_args = found.command[0], found.command[1:]
        context = f"In find -exec from {root}: "

        if rules.is_destructive_delete(exec_name, exec_args):
            if root_safe:
                state.note(f"find -exec {exec_name} (safe path)")
            else:
                state.violate(
                    f"{context}Destructive delete command '{exec_name}' "
                    "will execute on multiple files",
                    name,
                    path=root,
                )
        elif rules.is_permission_command(exec_name):
            if not root_safe:
                state.violate(
                    f"{context}Permission change command '{exec_name}' "
                    "will execute on multiple files",
                    name,
                    path=root,
                )
        elif rules.is_network_command(exec_name):
            state.violate(
                f"{context}Network operation '{exec_name}' will execute on multiple files",
                name,
                path=root,
            )
        elif rules.is_safe_pipe_command(exec_name) or rules.is_dev_tool(
            exec_name, exec_args
        ):
            state.note(f"find -exec {exec_name} (safe operation)")
        else:
            state.note(f"find -exec {exec_name} (from {root})")

    # -- redirects ----------------------------------------------------------

    def _analyze_redirect(self, redirect: Node, state: _ScanState) -> None:
        if redirect.type in shell.HEREDOC_REDIRECTS:
            self._analyze_heredoc(redirect, state)
            return
        if redirect.type not in shell.WRITE_REDIRECTS | shell.APPEND_REDIRECTS:
            return
        target = shell.redirect_target(redirect)
        if target is None:
            return
        self._analyze_write("redirect", shell.word_to_string(target), state)

    def _analyze_heredoc(self, redirect: Node, state: _ScanState) -> None:
        body = shell.heredoc_body(redirect)
        if body is None or not looks_like_script(body):
            state.note("heredoc (data)")
            return

        nested = self.scan(body)
        for v in nested.violations:
            state.violations.append(
                v.model_copy(update={"message": HEREDOC_VIOLATION_PREFIX + v.message})
            )
        for op in nested.safe_operations:
            state.note(HEREDOC_NOTE_PREFIX + op)
