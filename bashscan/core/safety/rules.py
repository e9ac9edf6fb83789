"""Static command rule tables and the predicates the scanner judges commands with."""

from pydantic import BaseModel, ConfigDict

SAFE_PIPE_COMMANDS = frozenset(
    {
        "grep", "egrep", "fgrep", "rg",
        "awk", "gawk", "sed",
        "head", "tail", "wc",
        "sort", "uniq", "cut", "tr",
        "jq", "yq", "cat", "tee", "xargs",
        "column", "paste", "join",
    }
)  # fmt: skip

DESTRUCTIVE_DELETE_COMMANDS = frozenset({"rm", "rmdir"})

NETWORK_COMMANDS = frozenset(
    {"curl", "wget", "nc", "netcat", "ssh", "scp", "rsync", "ftp", "sftp"}
)

PERMISSION_COMMANDS = frozenset({"chmod", "chown", "chgrp"})

PACKAGE_MANAGERS = frozenset(
    {"apt", "apt-get", "brew", "npm", "yarn", "pnpm", "pip", "pip3", "go", "gem", "bundle"}
)

ARCHIVE_COMMANDS = frozenset({"tar", "unzip", "gunzip", "untar"})

DEV_TOOLS = frozenset(
    {
        "make", "cmake", "go", "npm", "yarn", "pnpm",
        "pytest", "jest", "mocha", "cargo", "rustc",
        "mvn", "gradle", "task",
    }
)  # fmt: skip

FILE_WRITE_COMMANDS = frozenset({"echo", "printf", "cat", "tee", "touch", "cp", "mv", "dd"})

_JS_MANAGERS = frozenset({"npm", "yarn", "pnpm"})
_INSTALL_GUARDED_DEV_TOOLS = _JS_MANAGERS | {"go"}
# Every invocation of these counts as an install, upgrades and removals included.
_SYSTEM_MANAGERS = frozenset({"apt", "apt-get", "brew", "gem", "bundle"})

FIND_RESULT = "FIND_RESULT"
_FIND_EXEC_FLAGS = frozenset({"-exec", "-execdir"})
_FIND_EXEC_TERMINATORS = frozenset({";", "\\;", "+"})


class FindExec(BaseModel):
    model_config = ConfigDict(frozen=True)

    search_path: str
    command: list[str] = []
    has_exec: bool = False


def _install_subcommands(cmd: str) -> frozenset[str]:
    if cmd in _JS_MANAGERS:
        return frozenset({"install", "i", "add"})
    return frozenset({"install"})


def _non_flag(args: list[str]) -> list[str]:
    return [a for a in args if a and not a.startswith("-")]


def is_safe_pipe_command(cmd: str) -> bool:
    return cmd in SAFE_PIPE_COMMANDS


def is_network_command(cmd: str) -> bool:
    return cmd in NETWORK_COMMANDS


def is_permission_command(cmd: str) -> bool:
    return cmd in PERMISSION_COMMANDS


def is_find_command(cmd: str) -> bool:
    return cmd == "find"


def is_python_command(cmd: str) -> bool:
    return cmd in ("python", "python2", "python3") or cmd.startswith(("python2.", "python3."))


def _is_install_subcommand(cmd: str, args: list[str]) -> bool:
    operands = _non_flag(args)
    return bool(operands) and operands[0] in _install_subcommands(cmd)


def is_package_install(cmd: str, args: list[str]) -> bool:
    if cmd not in PACKAGE_MANAGERS:
        return False
    if cmd in _SYSTEM_MANAGERS:
        return True
    return _is_install_subcommand(cmd, args)


def is_dev_tool(cmd: str, args: list[str]) -> bool:
    if cmd not in DEV_TOOLS:
        return False
    if cmd in _INSTALL_GUARDED_DEV_TOOLS:
        return not _is_install_subcommand(cmd, args)
    return True


def is_destructive_delete(cmd: str, args: list[str]) -> bool:
    """rm/rmdir with a force flag, alone or clustered with a recursive flag."""
    if cmd not in DESTRUCTIVE_DELETE_COMMANDS:
        return False
    for arg in args:
        if arg in ("-f", "--force"):
            return True
        if arg.startswith("-") and not arg.startswith("--"):
            letters = arg[1:]
            if "f" in letters and ("r" in letters or "R" in letters):
                return True
    return False


def is_archive_extract(cmd: str, args: list[str]) -> bool:
    if cmd not in ARCHIVE_COMMANDS:
        return False
    if cmd == "tar":
        return any(a.startswith("-") and "x" in a for a in args)
    return True


def archive_target_dir(cmd: str, args: list[str]) -> str | None:
    """Destination directory of an extraction, or None when it extracts in place."""
    for i, arg in enumerate(args):
        if arg == "-C" or arg == "--directory" or (cmd == "unzip" and arg == "-d"):
            if i + 1 < len(args):
                return args[i + 1]
            return None
        if arg.startswith("--directory="):
            return arg.split("=", 1)[1]
    return None


def file_write_target(cmd: str, args: list[str]) -> str | None:
    """Destination a file-writing command writes to, when it can be read off its args."""
    if cmd not in FILE_WRITE_COMMANDS:
        return None
    if cmd == "dd":
        for arg in args:
            if arg.startswith("of="):
                return arg[3:]
        return None

    operands = _non_flag(args)
    if cmd in ("cp", "mv") and len(operands) >= 2:
        return operands[-1]
    if cmd == "touch" and operands:
        return operands[0]
    return None


def extract_find_exec(args: list[str]) -> FindExec:
    search_path = args[0] if args and not args[0].startswith("-") else "."

    start = next((i for i, a in enumerate(args) if a in _FIND_EXEC_FLAGS), None)
    if start is None:
        return FindExec(search_path=search_path)

    command: list[str] = []
    for arg in args[start + 1 :]:
        if arg in _FIND_EXEC_TERMINATORS:
            break
        command.append(FIND_RESULT if arg == "{}" else arg)
    return FindExec(search_path=search_path, command=command, has_exec=bool(command))
