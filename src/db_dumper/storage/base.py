"""Upload collaborator protocol.

A finished dump file is handed to an ``Uploader`` together with a category
tag: ``"table"`` for data chunks, ``"schema"`` for ``CREATE TABLE`` files.
Uploads are blocking calls; the dispatcher runs them in worker threads.
"""

from pathlib import Path
from typing import Literal, Protocol

UploadCategory = Literal["table", "schema"]


class Uploader(Protocol):
    """Durable off-process storage for finished dump files."""

    def upload(self, path: Path, category: UploadCategory) -> str:
        """Upload one file.

        Args:
            path: Local path of a closed dump file.
            category: ``"table"`` or ``"schema"``.

        Returns:
            Remote location of the uploaded object.
        """
        ...
