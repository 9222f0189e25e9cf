"""Filesystem discovery adapter.

Implements DiscoveryPort with pathlib globbing.
"""

import logging
from pathlib import Path

from testmux.core.ports import DiscoveryPort

logger = logging.getLogger(__name__)


class GlobDiscoveryAdapter(DiscoveryPort):
    """Finds test files by glob pattern beneath a directory."""

    def discover(self, root: Path, pattern: str) -> list[Path]:
        """Resolve test files.

        A path naming a single file is returned as-is; a directory is
        searched with the pattern; a missing path yields nothing.
        """
        if root.is_file():
            return [root]
        if not root.is_dir():
            logger.warning(f"Test path {root} does not exist")
            return []
        return sorted(path for path in root.glob(pattern) if path.is_file())
