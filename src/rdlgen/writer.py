# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Writing of generated artifacts to the output directory.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Sequence, Union

import rdlgen

from ._codegen import Artifact
from .errors import RdlWriteError


class _PathLocks:
    """Hands out one lock per destination path."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Path, threading.Lock] = {}

    def get(self, path: Path) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(path, threading.Lock())


class ArtifactWriter:
    """Writes artifacts below an output directory. Writes to the same path are serialized."""

    def __init__(self, output_dir: Union[str, Path]) -> None:
        self.output_dir = Path(output_dir)
        self._locks = _PathLocks()
        self._written_lock = threading.Lock()
        self.written: List[str] = []

    def destination(self, artifact: Artifact) -> Path:
        return self.output_dir.joinpath(*artifact.path.split("/"))

    def write(self, artifact: Artifact) -> None:
        """
        Write a single artifact, replacing any existing file.

        :raises OSError: If the file could not be written.
        """
        path = self.destination(artifact)

        with self._locks.get(path):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(artifact.data)

        with self._written_lock:
            self.written.append(artifact.path)

        rdlgen.log.debug(f"Wrote {path}")

    def written_so_far(self) -> List[str]:
        with self._written_lock:
            return list(self.written)


def write_artifacts(
    artifacts: Sequence[Artifact], output_dir: Union[str, Path], jobs: int = 1
) -> List[str]:
    """
    Write artifacts below the output directory, creating intermediate directories and
    overwriting existing files.

    :param artifacts: Artifacts to write.
    :param output_dir: Directory to write the artifacts to.
    :param jobs: Number of worker threads to use.
    :raises RdlWriteError: On the first artifact that could not be written. The error lists the
                           artifacts that were written before it.
    :return: Relative paths of the written artifacts, in input order.
    """
    writer = ArtifactWriter(output_dir)

    def _write(artifact: Artifact) -> None:
        try:
            writer.write(artifact)
        except OSError as e:
            raise RdlWriteError(
                f"Unable to write {writer.destination(artifact)}: {e.strerror or e}",
                path=artifact.path,
                written=writer.written_so_far(),
            ) from e

    if jobs > 1 and len(artifacts) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            futures = [executor.submit(_write, a) for a in artifacts]
            # The first failure in input order is reported
            for future in futures:
                future.result()
    else:
        for artifact in artifacts:
            _write(artifact)

    rdlgen.log.info(f"Wrote {len(artifacts)} artifact(s) to {writer.output_dir}")
    return [a.path for a in artifacts]
