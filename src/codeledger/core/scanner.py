"""
CodeLedger Source Scanner

Regex-based extraction of HTTP endpoints and functions from JavaScript /
TypeScript source text.  This is a best-effort heuristic, not a parser:

- the method-declaration family also matches ordinary call sites
  (``foo(x);``), and control keywords followed by ``(``;
- brace balancing counts braces inside string and template literals;
- several families can match the same declaration.  Within one file only
  the first match per derived id is kept, so overlaps collapse only when
  name and path coincide.
- function descriptions come from the comment block above the
  declaration: an ``@description`` line replaces every unlabeled line,
  and other ``@tag`` lines (``@param``, ``@returns``) never reach the
  description; parameters and the return type come from the signature.
"""

import bisect
import logging
import re
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from codeledger.core.models import ApiEndpoint, Function, Parameter, new_api_endpoint, new_function

logger = logging.getLogger(__name__)

ENDPOINT_COMMENT_LOOKBACK = 9
FUNCTION_COMMENT_LOOKBACK = 19

_VERBS = r"(?i:get|post|put|patch|delete)"

# ── Endpoint families ─────────────────────────────────────────────
EXPRESS_ROUTE = re.compile(r"\bapp\.(" + _VERBS + r")\s*\(\s*['\"]([^'\"]+)['\"]")
FRAMEWORK_ROUTE = re.compile(r"\b(?:fastify|router)\.(" + _VERBS + r")\s*\(\s*['\"]([^'\"]+)['\"]")
DECORATOR_ROUTE = re.compile(r"@(" + _VERBS + r")\s*\(\s*['\"]([^'\"]*)['\"]\s*\)")
DECORATED_METHOD = re.compile(
    r"^\s*(?:(?:public|private|protected)\s+)?(?:async\s+)?([A-Za-z_$][\w$]*)\s*\(",
    re.MULTILINE,
)

# ── Function families ─────────────────────────────────────────────
NAMED_FUNCTION = re.compile(
    r"(?:export\s+)?(?:async\s+)?function\s+([A-Za-z0-9_]+)\s*\(([^)]*)\)"
    r"(?:\s*:\s*([^{;\n]*))?"
)
ARROW_FUNCTION = re.compile(
    r"(?:export\s+)?(?:(?:public|private|protected)\s+)?"
    r"([A-Za-z0-9_]+)\s*(?:=\s*(?:async\s+)?)?"
    r"(?:\(([^)]*)\)|([A-Za-z0-9_]+))"
    r"(?:\s*:\s*([^=\n]*))?\s*=>\s*"
)
CLASS_METHOD = re.compile(
    r"(?:(?:public|private|protected)\s+)?(?:static\s+)?(?:async\s+)?"
    r"([A-Za-z0-9_]+)\s*\(([^)]*)\)(?:\s*:\s*([^{;\n]*))?"
)

_DESCRIPTION_MARKER = re.compile(r"@description\b", re.IGNORECASE)
_PURPOSE_MARKER = re.compile(r"@purpose\b", re.IGNORECASE)
_DEFAULT_SPLIT = re.compile(r"=(?!>)")


# =============================================================================
# Text helpers
# =============================================================================

class _LineIndex:
    """Maps character offsets to 1-based line numbers."""

    def __init__(self, content: str):
        self.starts = [0]
        for i, ch in enumerate(content):
            if ch == "\n":
                self.starts.append(i + 1)

    def line_of(self, offset: int) -> int:
        return bisect.bisect_right(self.starts, offset)


def _comment_text(stripped: str) -> Optional[str]:
    """Return the text of a comment line, or ``None`` if it is not a comment."""
    if not stripped.startswith(("//", "/*", "*")):
        return None
    text = re.sub(r"\*+/\s*$", "", stripped)
    text = re.sub(r"^(?://+|/\*+|\*+)", "", text)
    return text.strip()


def _comments_above(lines: List[str], line_no: int, lookback: int) -> List[str]:
    """Comment texts directly above *line_no* (1-based), nearest last.

    Blank lines are skipped; the first other non-comment line stops the scan.
    """
    collected: List[str] = []
    lowest = max(0, line_no - 1 - lookback)
    for i in range(line_no - 2, lowest - 1, -1):
        stripped = lines[i].strip()
        if not stripped:
            continue
        text = _comment_text(stripped)
        if text is None:
            break
        if text:
            collected.append(text)
    collected.reverse()
    return collected


def _body_end_line(content: str, index: _LineIndex, offset: int) -> Optional[int]:
    """Line on which the brace balance opened at or after *offset* returns to zero."""
    depth = 0
    opened = False
    for i in range(offset, len(content)):
        ch = content[i]
        if ch == "{":
            depth += 1
            opened = True
        elif ch == "}" and opened:
            depth -= 1
            if depth == 0:
                return index.line_of(i)
    return None


def parse_parameters(raw: str) -> List[Parameter]:
    """Split a raw parameter list into :class:`Parameter` records.

    ``name?: T`` marks the parameter optional; ``name: T = v`` (or
    ``name = v``) records *v* as the default and marks it optional; a
    missing type is recorded as ``any``.
    """
    params: List[Parameter] = []
    for fragment in raw.split(","):
        fragment = fragment.strip()
        if not fragment:
            continue
        head, *default = _DEFAULT_SPLIT.split(fragment, maxsplit=1)
        name, sep, type_text = head.partition(":")
        name = name.strip()
        is_optional = name.endswith("?")
        if is_optional:
            name = name[:-1].strip()
        default_value = default[0].strip() if default else None
        params.append(Parameter(
            name=name,
            type=type_text.strip() if sep and type_text.strip() else "any",
            description=f"Parameter {name}",
            is_optional=is_optional or default_value is not None,
            default_value=default_value,
        ))
    return params


def read_source(file_path: Union[str, Path]) -> str:
    """Read a source file as UTF-8, replacing undecodable bytes."""
    with open(file_path, "r", encoding="utf-8", errors="replace", newline="") as fh:
        return fh.read()


# =============================================================================
# Scanner
# =============================================================================

class SourceScanner:
    """
    Heuristic endpoint and function extractor.

    All methods are pure functions of the text they are given; the
    ``scan_file_*`` variants only add the file read.
    """

    # ── Public API ───────────────────────────────────────────────

    @staticmethod
    def extract_api_endpoints(content: str, file_path: str, project_id: str) -> List[ApiEndpoint]:
        """Extract route declarations from *content*.

        Recognises ``app.get('/x', ...)``, ``fastify.post('/x', ...)`` /
        ``router.put('/x', ...)`` and ``@Get('/x')`` decorators that are
        followed by a method declaration.
        """
        lines = content.split("\n")
        index = _LineIndex(content)
        endpoints: List[ApiEndpoint] = []
        seen = set()

        def emit(match: "re.Match") -> None:
            method = match.group(1).upper()
            path = match.group(2)
            line_no = index.line_of(match.start())
            comments = _comments_above(lines, line_no, ENDPOINT_COMMENT_LOOKBACK)
            description = "\n".join(comments).strip() or f"{method} endpoint for {path}"
            endpoint = new_api_endpoint(project_id, method, path, description, file_path)
            if endpoint.id in seen:
                return
            seen.add(endpoint.id)
            endpoints.append(endpoint)

        for pattern in (EXPRESS_ROUTE, FRAMEWORK_ROUTE):
            for match in pattern.finditer(content):
                emit(match)

        for match in DECORATOR_ROUTE.finditer(content):
            if DECORATED_METHOD.search(content, match.end()):
                emit(match)

        logger.debug(f"{file_path}: {len(endpoints)} endpoint(s)")
        return endpoints

    @staticmethod
    def extract_functions(content: str, file_path: str, project_id: str) -> List[Function]:
        """Extract function, arrow-function and class-method declarations."""
        lines = content.split("\n")
        index = _LineIndex(content)
        functions: List[Function] = []
        seen = set()

        families: List[Tuple["re.Pattern", str, Callable]] = [
            (NAMED_FUNCTION, "Function", lambda m: (m.group(2), m.group(3))),
            (ARROW_FUNCTION, "Function", lambda m: (m.group(2) or m.group(3) or "", m.group(4))),
            (CLASS_METHOD, "Method", lambda m: (m.group(2), m.group(3))),
        ]

        for pattern, label, signature in families:
            is_arrow = pattern is ARROW_FUNCTION
            for match in pattern.finditer(content):
                name = match.group(1)
                if pattern is CLASS_METHOD and name == "constructor":
                    continue
                raw_params, raw_return = signature(match)
                function = SourceScanner._build_function(
                    content, lines, index, match, name, raw_params or "", raw_return,
                    label, is_arrow, file_path, project_id,
                )
                if function.id in seen:
                    continue
                seen.add(function.id)
                functions.append(function)

        logger.debug(f"{file_path}: {len(functions)} function(s)")
        return functions

    @staticmethod
    def scan_file_for_apis(file_path: Union[str, Path], project_id: str) -> List[ApiEndpoint]:
        return SourceScanner.extract_api_endpoints(read_source(file_path), str(file_path), project_id)

    @staticmethod
    def scan_file_for_functions(file_path: Union[str, Path], project_id: str) -> List[Function]:
        return SourceScanner.extract_functions(read_source(file_path), str(file_path), project_id)

    # ── Internals ────────────────────────────────────────────────

    @staticmethod
    def _build_function(content, lines, index, match, name, raw_params, raw_return,
                        label, is_arrow, file_path, project_id) -> Function:
        start_line = index.line_of(match.start(1))

        if is_arrow and not content.startswith("{", match.end()):
            # Expression body: ends where the arrow is.
            end_line = index.line_of(match.end() - 1)
        else:
            body_from = match.end() if is_arrow else index.starts[start_line - 1]
            end_line = _body_end_line(content, index, body_from) or start_line
        end_line = max(end_line, start_line)

        return_type = raw_return.strip() if raw_return and raw_return.strip() else "void"
        description, purpose = SourceScanner._mine_docs(lines, start_line)

        return new_function(
            project_id=project_id,
            name=name,
            description=description or f"{label} {name}",
            parameters=parse_parameters(raw_params),
            return_type=return_type,
            return_description=f"Returns {return_type}",
            implementation="\n".join(lines[start_line - 1:end_line]),
            implementation_path=file_path,
            start_line=start_line,
            end_line=end_line,
            purpose=purpose or f"Implements functionality for {name}",
        )

    @staticmethod
    def _mine_docs(lines: List[str], start_line: int) -> Tuple[str, str]:
        """Return ``(description, purpose)`` mined from the comments above a declaration.

        An ``@description`` line beats unlabeled lines; the nearest labeled
        line wins.  Other ``@tag`` lines (``@param``, ``@returns``) are ignored.
        """
        labeled_description = ""
        purpose = ""
        unlabeled: List[str] = []
        for text in reversed(_comments_above(lines, start_line, FUNCTION_COMMENT_LOOKBACK)):
            if _DESCRIPTION_MARKER.search(text):
                if not labeled_description:
                    labeled_description = _DESCRIPTION_MARKER.sub("", text).strip()
            elif _PURPOSE_MARKER.search(text):
                if not purpose:
                    purpose = _PURPOSE_MARKER.sub("", text).strip()
            elif not text.startswith("@"):
                unlabeled.insert(0, text)
        return labeled_description or "\n".join(unlabeled), purpose
