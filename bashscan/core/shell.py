"""bashlex wrapper: parsing, node traversal and word flattening.

bashlex returns untyped ``bashlex.ast.node`` objects whose attributes depend on
``node.kind``. Everything in bashscan that touches those nodes goes through the
helpers here so the rest of the code deals in plain strings.
"""

import re
from collections.abc import Iterable, Iterator
from typing import Any

import bashlex
import bashlex.errors
import structlog
from pydantic import BaseModel, ConfigDict

from bashscan.core.normalize import ARITH_PLACEHOLDER, normalize
from bashscan.exceptions import ShellParseError

logger = structlog.get_logger()

Node = Any

_BRACED_PARAM_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

GLOB_CHARS = frozenset("*?[")
DYNAMIC_PART_KINDS = frozenset(
    {"parameter", "commandsubstitution", "processsubstitution"}
)
COMMAND_KINDS = frozenset(
    {"command", "pipeline", "list", "compound", "if", "for", "while", "until", "function"}
)

WRITE_REDIRECTS = frozenset({">", ">|", "&>"})
APPEND_REDIRECTS = frozenset({">>", "&>>"})
HEREDOC_REDIRECTS = frozenset({"<<", "<<-"})

_CHILD_ATTRS = ("parts", "list", "redirects", "command", "body", "output", "heredoc")


class ParsedScript(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    source: str
    nodes: list[Any] = []

    def line_of(self, node: Node) -> int:
        """1-based line of the node's first character."""
        pos = getattr(node, "pos", None)
        if not pos:
            return 1
        return self.source.count("\n", 0, pos[0]) + 1


def parse(command: str) -> ParsedScript:
    """Parse *command* into bashlex trees.

    The source is normalized first (see :mod:`bashscan.core.normalize`), and
    ``ParsedScript.source`` holds the normalized text node offsets refer to.

    Raises:
        ShellParseError: bashlex rejected the syntax.
    """
    source = normalize(command)
    if not source.strip():
        return ParsedScript(source=source)

    try:
        nodes = bashlex.parse(source)
    except bashlex.errors.ParsingError as e:
        raise ShellParseError(str(e), original_error=e) from e
    except NotImplementedError as e:
        raise ShellParseError(f"unsupported shell syntax: {e}", original_error=e) from e
    except Exception as e:
        logger.warning("shell_parse_unexpected_error", error=str(e), exc_info=True)
        raise ShellParseError(f"unexpected parsing error: {e}", original_error=e) from e

    return ParsedScript(source=source, nodes=nodes)


def walk(nodes: Iterable[Node]) -> Iterator[Node]:
    """Yield every node in source order, including substitution bodies."""
    seen: set[int] = set()
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node

        children: list[Node] = []
        for attr in _CHILD_ATTRS:
            child = getattr(node, attr, None)
            if isinstance(child, list):
                children.extend(c for c in child if hasattr(c, "kind"))
            elif hasattr(child, "kind"):
                children.append(child)
        stack.extend(reversed(children))


def command_words(node: Node) -> list[Node]:
    """Word parts of a command node, skipping assignments and redirects."""
    return [p for p in node.parts if p.kind == "word"]


def command_redirects(node: Node) -> list[Node]:
    if node.kind == "compound":
        return list(getattr(node, "redirects", None) or [])
    return [p for p in node.parts if p.kind == "redirect"]


def redirect_target(redirect: Node) -> Node | None:
    """The target word of a redirect, or None for fd duplications like ``2>&1``."""
    output = getattr(redirect, "output", None)
    if hasattr(output, "kind") and output.kind == "word":
        return output
    return None


def heredoc_body(redirect: Node) -> str | None:
    heredoc = getattr(redirect, "heredoc", None)
    if heredoc is None:
        return None

    body: str = getattr(heredoc, "value", "") or ""
    delimiter = word_to_string(redirect_target(redirect))
    lines = body.rstrip("\n").split("\n")
    if delimiter and lines and lines[-1].strip() == delimiter:
        lines = lines[:-1]
    return "\n".join(lines)


def word_to_string(word: Node | None) -> str:
    """Best-effort flat string for a word node (quotes already removed by bashlex)."""
    if word is None:
        return ""
    text = getattr(word, "word", "") or ""
    text = _BRACED_PARAM_RE.sub(r"$\1", text)
    return text.replace(ARITH_PLACEHOLDER, "$(())")


def contains_glob(text: str) -> bool:
    return any(c in GLOB_CHARS for c in text)


def contains_var(word: Node | None) -> bool:
    """True if the word holds a parameter, command substitution or arithmetic part."""
    if word is None:
        return False
    for part in getattr(word, "parts", None) or []:
        if part.kind in DYNAMIC_PART_KINDS:
            return True
        if part.kind == "word" and contains_var(part):
            return True
    return False
