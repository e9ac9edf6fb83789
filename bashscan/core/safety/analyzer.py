"""File-operation extractor: which paths a bash script creates, modifies or deletes."""

from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from bashscan.core import shell
from bashscan.core.shell import Node, ParsedScript


class OperationType(Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class FileOperation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str = Field(alias="Path")
    operation: OperationType = Field(alias="Operation")
    command: str = Field(alias="Command")
    line: int = Field(alias="Line")
    has_glob: bool = Field(default=False, alias="HasGlob")
    has_var: bool = Field(default=False, alias="HasVar")


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    operations: list[FileOperation] = []
    commands: list[str] = []
    referenced_paths: list[str] = []

    def created(self) -> list[FileOperation]:
        return self._filter(OperationType.CREATE)

    def modified(self) -> list[FileOperation]:
        return self._filter(OperationType.MODIFY)

    def deleted(self) -> list[FileOperation]:
        return self._filter(OperationType.DELETE)

    def paths(self) -> list[str]:
        """Distinct operation paths in first-seen order."""
        return list(dict.fromkeys(op.path for op in self.operations))

    def _filter(self, op: OperationType) -> list[FileOperation]:
        return [o for o in self.operations if o.operation == op]


_Selector = Callable[[list[Node]], list[Node]]
_FlagCheck = Callable[[list[str]], bool]


def _every(args: list[Node]) -> list[Node]:
    return args


def _first_of_pair(args: list[Node]) -> list[Node]:
    return args[:1] if len(args) >= 2 else []


def _last_of_pair(args: list[Node]) -> list[Node]:
    return args[-1:] if len(args) >= 2 else []


def _after_first(args: list[Node]) -> list[Node]:
    return args[1:] if len(args) >= 2 else []


def _has_flag(*flags: str) -> _FlagCheck:
    return lambda args: any(a in flags for a in args)


def _sed_in_place(args: list[str]) -> bool:
    return any(
        a == "--in-place" or a.startswith("--in-place=") or a.startswith("-i")
        for a in args
    )


class CommandHandler(BaseModel):
    """How one command maps its arguments to file operations.

    ``emits`` pairs an operation with the selector picking its targets from the
    non-flag arguments. ``requires`` gates the whole handler on a flag check and
    ``append`` turns every emitted operation into a modify.
    """

    model_config = ConfigDict(frozen=True)

    emits: tuple[tuple[OperationType, _Selector], ...]
    requires: _FlagCheck | None = None
    append: _FlagCheck | None = None


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "touch": CommandHandler(emits=((OperationType.CREATE, _every),)),
    "mkdir": CommandHandler(emits=((OperationType.CREATE, _every),)),
    "rm": CommandHandler(emits=((OperationType.DELETE, _every),)),
    "rmdir": CommandHandler(emits=((OperationType.DELETE, _every),)),
    "cp": CommandHandler(emits=((OperationType.CREATE, _last_of_pair),)),
    "mv": CommandHandler(
        emits=(
            (OperationType.DELETE, _first_of_pair),
            (OperationType.CREATE, _last_of_pair),
        )
    ),
    "chmod": CommandHandler(emits=((OperationType.MODIFY, _after_first),)),
    "chown": CommandHandler(emits=((OperationType.MODIFY, _after_first),)),
    "tee": CommandHandler(
        emits=((OperationType.CREATE, _every),),
        append=_has_flag("-a", "--append"),
    ),
    "sed": CommandHandler(
        emits=((OperationType.MODIFY, _after_first),),
        requires=_sed_in_place,
    ),
}


def _operation(
    word: Node, op: OperationType, command: str, line: int
) -> FileOperation:
    path = shell.word_to_string(word)
    return FileOperation(
        path=path,
        operation=op,
        command=command,
        line=line,
        has_glob=shell.contains_glob(path),
        has_var=shell.contains_var(word),
    )


def _non_flag(words: list[Node]) -> list[Node]:
    result = []
    for w in words:
        text = shell.word_to_string(w)
        if text and not text.startswith("-"):
            result.append(w)
    return result


def _redirect_operations(node: Node, tree: ParsedScript) -> list[FileOperation]:
    ops: list[FileOperation] = []
    for redirect in shell.command_redirects(node):
        target = shell.redirect_target(redirect)
        if target is None or not shell.word_to_string(target):
            continue
        if redirect.type in shell.WRITE_REDIRECTS:
            op, label = OperationType.CREATE, ">"
        elif redirect.type in shell.APPEND_REDIRECTS:
            op, label = OperationType.MODIFY, ">>"
        else:
            continue
        ops.append(_operation(target, op, label, tree.line_of(redirect)))
    return ops


def _command_operations(
    name: str, args: list[Node], line: int
) -> list[FileOperation]:
    handler = COMMAND_HANDLERS.get(name)
    if handler is None:
        return []

    arg_strings = [shell.word_to_string(a) for a in args]
    if handler.requires is not None and not handler.requires(arg_strings):
        return []
    appending = handler.append is not None and handler.append(arg_strings)

    targets = _non_flag(args)
    ops: list[FileOperation] = []
    for op, select in handler.emits:
        if appending:
            op = OperationType.MODIFY
        ops.extend(_operation(w, op, name, line) for w in select(targets))
    return ops


def _referenced_paths(parts: list[str]) -> list[str]:
    if parts[0] == "cd":
        return parts[1:2]
    return [p for p in parts[1:] if p.startswith("/") and not p.startswith("/dev/")]


def analyze_tree(tree: ParsedScript) -> AnalysisResult:
    """Extract file operations, command strings and referenced paths from a parsed tree."""
    operations: list[FileOperation] = []
    commands: list[str] = []
    referenced: list[str] = []

    for node in shell.walk(tree.nodes):
        if node.kind == "compound":
            operations.extend(_redirect_operations(node, tree))
            continue
        if node.kind != "command":
            continue

        operations.extend(_redirect_operations(node, tree))
        words = shell.command_words(node)
        if not words:
            continue

        parts = [shell.word_to_string(w) for w in words]
        commands.append(" ".join(parts))
        referenced.extend(_referenced_paths(parts))
        operations.extend(_command_operations(parts[0], words[1:], tree.line_of(node)))

    operations.sort(key=lambda op: op.line)
    return AnalysisResult(
        operations=operations, commands=commands, referenced_paths=referenced
    )


def analyze(script: str) -> AnalysisResult:
    """Parse *script* and extract its file operations.

    Raises:
        ShellParseError: the script is not valid shell syntax.
    """
    return analyze_tree(shell.parse(script))
