from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import PathTraversal


def normalize_relative(rel: str) -> str:
    return rel.lstrip('/' + os.sep)


@dataclass(frozen=True)
class PathResolver:
    """Confines client-relative paths beneath a fixed root.

    Resolution is purely lexical: nothing is stat'ed and symlinks are not
    followed, so a rejected path never reaches the filesystem.
    """

    root: str

    def __post_init__(self):
        object.__setattr__(self, 'root', os.path.normpath(os.path.abspath(self.root)))

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    def resolve(self, rel: str) -> Path:
        if '\x00' in rel:
            raise PathTraversal('invalid path: contains a NUL byte')
        joined = os.path.join(self.root, normalize_relative(rel))
        candidate = os.path.abspath(os.path.normpath(joined))
        prefix = self.root if self.root.endswith(os.sep) else self.root + os.sep
        if candidate != self.root and not candidate.startswith(prefix):
            raise PathTraversal()
        return Path(candidate)
