"""Output directory resolution for caller-supplied, untrusted paths."""

import os
import posixpath

from ..constants import DEFAULT_OUTPUT_ROOT
from ..logging import debug, LogRecord, LogEvent


class PathResolver:
    """Turns a requested output directory into an absolute filesystem path.

    In relative mode the directory is anchored under ``root`` and can never
    ascend above it: ``..`` segments that would escape are dropped and
    absolute-looking inputs such as ``/mcp/images`` are treated as relative
    to the root. Resolution never fails; the worst case is the root itself.
    """

    def __init__(self, root: str = DEFAULT_OUTPUT_ROOT):
        self.root = os.path.abspath(root)

    def resolve(self, raw_dir: str, relative_mode: bool) -> str:
        if not relative_mode:
            # Caller owns writability and reachability in this mode.
            return os.path.abspath(raw_dir)

        sanitized = self._contain(raw_dir)
        resolved = os.path.join(self.root, sanitized) if sanitized else self.root

        debug(
            LogRecord(
                event=LogEvent.PATH_RESOLUTION.value,
                message="Resolved relative output directory",
                data={"requested": raw_dir, "resolved": resolved},
            )
        )
        return resolved

    @staticmethod
    def _contain(raw_dir: str) -> str:
        """Normalize ``raw_dir`` into a root-relative path with no escapes.

        Normalizing against a virtual ``/`` collapses ``.`` and ``..`` and
        discards any ``..`` that would climb past the top.
        """
        unified = raw_dir.replace("\\", "/")
        normalized = posixpath.normpath("/" + unified)
        # normpath keeps a leading "//" as-is
        return normalized.lstrip("/")
