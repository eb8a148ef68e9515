"""Local JSON Lines export of pipeline results for the minting service."""

import fcntl
import json
from collections.abc import Sequence
from pathlib import Path

from receipt_mint.models import PipelineResult


class MetadataExporter:
    """Appends pipeline results to a JSON Lines file, one object per receipt.

    The minting collaborator picks records up from this file; this class
    never talks to it directly.
    """

    def export(self, results: Sequence[PipelineResult], path: Path) -> int:
        """Append results to ``path``.

        Results without metadata (empty art pool) are skipped.

        Args:
            results: Pipeline results to write
            path: JSON Lines file to create or append to

        Returns:
            Number of records written.

        Raises:
            PermissionError: If the file cannot be written due to permissions
            OSError: If there are filesystem-related errors
        """
        lines = [
            json.dumps(result.to_json_dict(), ensure_ascii=False)
            for result in results
            if result.metadata is not None
        ]
        if not lines:
            return 0

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, mode="a", encoding="utf-8") as f:
            # Exclusive lock so concurrent CLI runs don't interleave lines
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                for line in lines:
                    f.write(line + "\n")
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        return len(lines)
