"""
Recursive file discovery for project scans.
"""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Pattern, Union

from codeledger.core.config import DEFAULT_EXCLUDE_DIRS

logger = logging.getLogger(__name__)


@lru_cache(maxsize=64)
def _glob_regex(pattern: str) -> Pattern:
    """``*`` -> any run of characters, ``?`` -> one character, all else literal."""
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


def match_pattern(filename: str, pattern: str) -> bool:
    """True when the whole *filename* (not its path) matches the glob *pattern*."""
    return _glob_regex(pattern).fullmatch(filename) is not None


def find_files(
    root: Union[str, Path],
    pattern: str,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
) -> List[str]:
    """
    Recursively collect files under *root* whose name matches *pattern*.

    Directories named in *exclude_dirs* (``.git``, ``node_modules`` ...)
    are pruned in place so ``os.walk`` never descends into them.

    Returns sorted absolute paths.
    """
    exclude = frozenset(exclude_dirs)
    matches: List[str] = []
    for dirpath, dirnames, filenames in os.walk(os.path.abspath(root)):
        dirnames[:] = [d for d in dirnames if d not in exclude]
        for fname in filenames:
            if match_pattern(fname, pattern):
                matches.append(os.path.join(dirpath, fname))
    matches.sort()
    logger.debug(f"find_files({root}, {pattern!r}) -> {len(matches)} file(s)")
    return matches
