"""
CodeLedger Scan Pipeline

Walks a tracked project's directory, runs the heuristic scanner over every
matching file and stores what it finds.  Files are processed one at a time
in path order; a file that cannot be read or scanned is logged and
skipped, the rest of the scan carries on.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Union

from tqdm import tqdm

from codeledger.core.config import DEFAULT_EXCLUDE_DIRS, DEFAULT_FILE_PATTERNS
from codeledger.core.models import Project
from codeledger.core.scanner import SourceScanner
from codeledger.core.store import EntityStore
from codeledger.core.walker import find_files

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Outcome of :meth:`ScanPipeline.run`."""
    scanned_files: int = 0
    api_endpoint_ids: List[str] = field(default_factory=list)
    function_ids: List[str] = field(default_factory=list)
    errors: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "scannedFiles": self.scanned_files,
            "apiEndpoints": len(self.api_endpoint_ids),
            "functions": len(self.function_ids),
            "apiEndpointIds": list(self.api_endpoint_ids),
            "functionIds": list(self.function_ids),
        }


class ScanPipeline:
    """
    Scan files of one project and persist the extracted entities.

    Args:
        store: Shared entity store.
        project: The project whose ``path`` is walked and whose id owns
            every extracted entity.
        file_patterns: Filename globs (``*.ts``); defaults to ``*.ts`` and ``*.js``.
        exclude_dirs: Directory names never descended into.
        show_progress: Show a tqdm progress bar over the file list.
    """

    def __init__(
        self,
        store: EntityStore,
        project: Project,
        file_patterns: Sequence[str] = DEFAULT_FILE_PATTERNS,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
        show_progress: bool = False,
    ):
        self.store = store
        self.project = project
        self.file_patterns = list(file_patterns) or list(DEFAULT_FILE_PATTERNS)
        self.exclude_dirs = frozenset(exclude_dirs)
        self.show_progress = show_progress

    # ── Single file ───────────────────────────────────────────────

    def index_endpoints(self, file_path: Union[str, Path]) -> List[str]:
        """Extract and store the endpoints declared in *file_path*; return their ids."""
        endpoints = SourceScanner.scan_file_for_apis(file_path, self.project.id)
        return [self.store.save_api_endpoint(e).id for e in endpoints]

    def index_functions(self, file_path: Union[str, Path]) -> List[str]:
        """Extract and store the functions declared in *file_path*; return their ids."""
        functions = SourceScanner.scan_file_for_functions(file_path, self.project.id)
        return [self.store.save_function(f).id for f in functions]

    # ── Whole project ─────────────────────────────────────────────

    def collect_files(self) -> List[str]:
        """Files under the project root matching any pattern, each listed once."""
        files: List[str] = []
        seen = set()
        for pattern in self.file_patterns:
            for path in find_files(self.project.path, pattern, self.exclude_dirs):
                if path not in seen:
                    seen.add(path)
                    files.append(path)
        return files

    def run(self) -> ScanResult:
        logger.info(f"Scanning project {self.project.name} at {self.project.path}")
        files = self.collect_files()
        logger.info(f"  Found {len(files):,} file(s) matching {', '.join(self.file_patterns)}")

        result = ScanResult(scanned_files=len(files))
        iterator = tqdm(files, desc="Scanning", unit="file") if self.show_progress else files
        for path in iterator:
            try:
                endpoint_ids = self.index_endpoints(path)
                function_ids = self.index_functions(path)
            except (OSError, UnicodeError) as exc:
                result.errors += 1
                logger.warning(f"Skipping {path}: {exc}")
                continue
            result.api_endpoint_ids.extend(endpoint_ids)
            result.function_ids.extend(function_ids)
            logger.debug(f"  {path}: {len(endpoint_ids)} endpoint(s), {len(function_ids)} function(s)")

        logger.info(
            f"Scan complete: {result.scanned_files} file(s), "
            f"{len(result.api_endpoint_ids)} endpoint(s), "
            f"{len(result.function_ids)} function(s), {result.errors} error(s)"
        )
        return result
