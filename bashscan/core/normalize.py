"""Source rewrites for valid bash that bashlex cannot parse.

Every rewrite keeps the commands a construct runs and only changes the syntax
around them, so the scanner still judges each one:

- ``$((expr))`` becomes a placeholder parameter (still dynamic content).
- ``for ((init; cond; step))`` becomes ``for <var> in 1;``.
- quoted heredoc delimiters (``<<'EOF'``, ``<<"EOF"``, ``<<\\EOF``) are
  unquoted; bashlex keeps the body as raw text either way.
- ``[[ expr ]]`` becomes ``[ expr ]`` with its operators escaped.
- ``case WORD in pat) cmds ;; ... esac`` becomes ``{ : WORD; cmds; ... }``.
"""

import re

ARITH_PLACEHOLDER = "$__bashscan_arith__"
ARITH_LOOP_VAR = "__bashscan_arith__"

_ARITH_FOR_RE = re.compile(r"\bfor\s*\(\(")
_TRAILING_SEMICOLON_RE = re.compile(r"[ \t]*;")
_QUOTED_HEREDOC_RE = re.compile(
    r"(?<!<)(<<-?)[ \t]*(?:'([\w.-]+)'|\"([\w.-]+)\"|\\([\w.-]+))"
)
_COND_OPEN_RE = re.compile(r"(?:^|(?<=[\s;&|(!{]))\[\[(?=\s)")
_CASE_RE = re.compile(r"(?:^|(?<=[\s;&|({]))case\s")
_CASE_HEADER_RE = re.compile(r"case\s+(\"[^\"]*\"|'[^']*'|\S+)\s+in(?=\s)")
_ESAC_RE = re.compile(r"(?<=[\s;])esac(?=$|[\s;&|)])")

_COND_OPERATORS = frozenset("&|<>()")
_COND_CLOSE_FOLLOWERS = frozenset(";&|)")
_CASE_SEPARATORS = (";;&", ";;", ";&")


def normalize(source: str) -> str:
    source = _replace_arith(source)
    source = _rewrite_arith_for(source)
    source = _unquote_heredocs(source)
    source = _rewrite_conditionals(source)
    source = _rewrite_case(source)
    return source


# -- scanning helpers ---------------------------------------------------------


def _quoted_end(source: str, start: int) -> int:
    """Index just past the quoted string opening at *start*."""
    quote = source[start]
    i = start + 1
    while i < len(source):
        if source[i] == "\\" and quote == '"':
            i += 2
            continue
        if source[i] == quote:
            return i + 1
        i += 1
    return len(source)


def _paren_end(source: str, start: int) -> int | None:
    """Index just past the ``)`` matching the ``(`` at *start*, or None."""
    depth = 0
    i = start
    while i < len(source):
        c = source[i]
        if c in "'\"":
            i = _quoted_end(source, i)
            continue
        if c == "\\":
            i += 2
            continue
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def _double_paren_end(source: str, start: int) -> int | None:
    """Index just past the ``))`` closing the ``((`` at *start*, or None."""
    end = _paren_end(source, start)
    if end is None or _paren_end(source, start + 1) != end - 1:
        return None
    return end


# -- arithmetic ---------------------------------------------------------------


def _replace_arith(source: str) -> str:
    parts: list[str] = []
    pos = 0
    while (start := source.find("$((", pos)) >= 0:
        end = _double_paren_end(source, start + 1)
        if end is None:
            break
        parts.append(source[pos:start])
        parts.append(ARITH_PLACEHOLDER)
        pos = end
    parts.append(source[pos:])
    return "".join(parts)


def _rewrite_arith_for(source: str) -> str:
    parts: list[str] = []
    pos = 0
    for match in _ARITH_FOR_RE.finditer(source):
        if match.start() < pos:
            continue
        end = _double_paren_end(source, match.end() - 2)
        if end is None:
            continue
        semicolon = _TRAILING_SEMICOLON_RE.match(source, end)
        parts.append(source[pos : match.start()])
        parts.append(f"for {ARITH_LOOP_VAR} in 1;")
        pos = semicolon.end() if semicolon else end
    parts.append(source[pos:])
    return "".join(parts)


# -- heredocs -----------------------------------------------------------------


def _unquote_heredocs(source: str) -> str:
    return _QUOTED_HEREDOC_RE.sub(
        lambda m: m.group(1) + (m.group(2) or m.group(3) or m.group(4)), source
    )


# -- [[ ... ]] ----------------------------------------------------------------


def _rewrite_conditionals(source: str) -> str:
    parts: list[str] = []
    pos = 0
    for match in _COND_OPEN_RE.finditer(source):
        if match.start() < pos:
            continue
        close = _cond_close(source, match.end())
        if close is None:
            continue
        parts.append(source[pos : match.start()])
        parts.append("[" + _escape_operators(source[match.end() : close]) + "]")
        pos = close + 2
    parts.append(source[pos:])
    return "".join(parts)


def _cond_close(source: str, start: int) -> int | None:
    """Index of the ``]]`` ending the conditional whose body starts at *start*."""
    i = start
    while i < len(source):
        c = source[i]
        if c in "'\"":
            i = _quoted_end(source, i)
            continue
        if c == "\\":
            i += 2
            continue
        if source.startswith("$(", i):
            i = _paren_end(source, i + 1) or len(source)
            continue
        if (
            source.startswith("]]", i)
            and source[i - 1].isspace()
            and (
                i + 2 == len(source)
                or source[i + 2].isspace()
                or source[i + 2] in _COND_CLOSE_FOLLOWERS
            )
        ):
            return i
        i += 1
    return None


def _escape_operators(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c in "'\"":
            end = _quoted_end(text, i)
            out.append(text[i:end])
            i = end
        elif c == "\\":
            out.append(text[i : i + 2])
            i += 2
        elif text.startswith("$(", i):
            end = _paren_end(text, i + 1) or len(text)
            out.append(text[i:end])
            i = end
        else:
            out.append("\\" + c if c in _COND_OPERATORS else c)
            i += 1
    return "".join(out)


# -- case ... esac ------------------------------------------------------------


def _rewrite_case(source: str) -> str:
    # Innermost first: the last ``case`` owns the first ``esac`` after it.
    while True:
        starts = [m.start() for m in _CASE_RE.finditer(source)]
        for start in reversed(starts):
            rewritten = _rewrite_one_case(source, start)
            if rewritten is not None:
                source = rewritten
                break
        else:
            return source


def _rewrite_one_case(source: str, start: int) -> str | None:
    header = _CASE_HEADER_RE.match(source, start)
    if header is None:
        return None
    esac = _ESAC_RE.search(source, header.end())
    if esac is None:
        return None

    commands = [
        cmds
        for clause in _split_clauses(source[header.end() : esac.start()])
        if (cmds := _clause_commands(clause))
    ]
    group = "{ : " + header.group(1) + "\n" + "\n".join(commands) + "\n}"
    return source[:start] + group + source[esac.end() :]


def _split_clauses(body: str) -> list[str]:
    clauses: list[str] = []
    start = 0
    i = 0
    while i < len(body):
        c = body[i]
        if c in "'\"":
            i = _quoted_end(body, i)
            continue
        if c == "\\":
            i += 2
            continue
        sep = next((s for s in _CASE_SEPARATORS if body.startswith(s, i)), None)
        if sep:
            clauses.append(body[start:i])
            i += len(sep)
            start = i
            continue
        i += 1
    clauses.append(body[start:])
    return clauses


def _clause_commands(clause: str) -> str:
    """Command list of one case clause, with its ``pattern)`` prefix removed."""
    text = clause.lstrip()
    i = 1 if text.startswith("(") else 0
    while i < len(text):
        c = text[i]
        if c in "'\"":
            i = _quoted_end(text, i)
            continue
        if c == "\\":
            i += 2
            continue
        if c == "(":
            i = _paren_end(text, i) or len(text)
            continue
        if c == ")":
            return text[i + 1 :].strip()
        i += 1
    return ""
