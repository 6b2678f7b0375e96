from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from repo_transform_tool.domain.errors import AccessError
from repo_transform_tool.domain.ports import FileSystemPort


class LocalFileSystemAdapter(FileSystemPort):
    def ensure_directory(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def path_exists(self, path: Path) -> bool:
        return path.exists()

    def list_files(self, root: Path, *, exclude_dirs: Iterable[str] = ()) -> list[str]:
        if not root.is_dir():
            raise AccessError(f"Repository root is not a readable directory: {root}")
        try:
            os.listdir(root)
        except OSError as error:
            raise AccessError(f"Repository root is not readable: {root}: {error}") from error

        excluded = {item.strip("/") for item in exclude_dirs}
        files: list[str] = []

        def _on_error(error: OSError) -> None:
            if Path(error.filename or "") == root:
                raise AccessError(f"Repository root is not readable: {root}: {error}") from error

        for current, dirnames, filenames in os.walk(root, onerror=_on_error):
            relative_dir = Path(current).relative_to(root).as_posix()
            prefix = "" if relative_dir == "." else f"{relative_dir}/"
            dirnames[:] = sorted(
                name for name in dirnames if name not in excluded and f"{prefix}{name}" not in excluded
            )
            for name in filenames:
                files.append(f"{prefix}{name}")

        return sorted(files)

    def read_bytes(self, path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def write_bytes(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def remove_file(self, path: Path) -> None:
        path.unlink(missing_ok=True)
