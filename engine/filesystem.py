"""Filesystem primitives used by collection and tracker mutations."""

from __future__ import annotations

import os
import shutil
from typing import Protocol


class Filesystem(Protocol):
    def exists(self, path: str) -> bool:
        ...

    def make_directories(self, path: str) -> None:
        ...

    def copy_tree(self, source: str, target: str) -> None:
        """Copy ``source`` into ``target``; colliding files are overwritten."""

    def remove_tree(self, path: str) -> None:
        ...

    def remove_file(self, path: str) -> None:
        ...


class LocalFilesystem:
    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def make_directories(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def copy_tree(self, source: str, target: str) -> None:
        shutil.copytree(source, target, dirs_exist_ok=True, copy_function=shutil.copy2)

    def remove_tree(self, path: str) -> None:
        shutil.rmtree(path)

    def remove_file(self, path: str) -> None:
        os.remove(path)
