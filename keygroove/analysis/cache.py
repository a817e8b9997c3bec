"""LMDB store for finished analysis results.

One environment lives at ``{cache_dir}/results.lmdb``. Every record is a
JSON-encoded ``AnalysisResult.to_dict()`` under the key::

    results:{extractor}:{pipeline}:{audio}

``pipeline`` fingerprints the analysis modules, ``audio`` fingerprints the
samples and their rate. Records written by another pipeline version are
never read and get purged whenever the cache is opened.
"""

import hashlib
import json
import logging
from pathlib import Path

import lmdb
import numpy as np

logger = logging.getLogger(__name__)

# Upper bound on the memory map; the file itself grows as needed
_MAP_SIZE = 1 << 30

_PREFIX = "results"

_PACKAGE_DIR = Path(__file__).resolve().parent.parent

# Modules (relative to the package) that decide what a result looks like
PIPELINE_FILES = (
    "analysis/clustering.py",
    "analysis/engine.py",
    "analysis/extractor.py",
    "analysis/tempo.py",
    "audio/preprocessing.py",
)


def pipeline_fingerprint(files=PIPELINE_FILES) -> str:
    """12 hex chars identifying the current analysis code."""
    digest = hashlib.sha256()
    for rel in files:
        source = _PACKAGE_DIR / rel
        digest.update(rel.encode())
        if source.is_file():
            digest.update(source.read_bytes())
    return digest.hexdigest()[:12]


def _split_key(raw: bytes) -> tuple[str, str, str] | None:
    """(extractor, pipeline, audio) for a well-formed key, else None."""
    try:
        prefix, extractor, pipeline, audio = raw.decode("utf-8").split(":")
    except (UnicodeDecodeError, ValueError):
        return None
    if prefix != _PREFIX:
        return None
    return extractor, pipeline, audio


class AnalysisCache:
    """Result cache shared by every analysis run of one process."""

    def __init__(self, cache_dir: Path | str = ".cache"):
        self.cache_dir = Path(cache_dir)
        self.pipeline = pipeline_fingerprint()

        db_dir = self.cache_dir / "results.lmdb"
        db_dir.mkdir(parents=True, exist_ok=True)
        self._env = lmdb.open(str(db_dir), map_size=_MAP_SIZE, readahead=False)
        self._purge_foreign_pipelines()

    def __enter__(self) -> "AnalysisCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @staticmethod
    def audio_hash(samples: np.ndarray, sr: int) -> str:
        """16 hex chars over the sample rate and the float32 sample bytes."""
        digest = hashlib.sha256(f"{int(sr)}:".encode())
        digest.update(np.ascontiguousarray(samples, dtype=np.float32).tobytes())
        return digest.hexdigest()[:16]

    def _key(self, extractor: str, audio_hash: str) -> bytes:
        return f"{_PREFIX}:{extractor}:{self.pipeline}:{audio_hash}".encode()

    def load_result(self, audio_hash: str, extractor: str) -> dict | None:
        with self._env.begin() as txn:
            raw = txn.get(self._key(extractor, audio_hash))
        return json.loads(raw) if raw is not None else None

    def save_result(self, audio_hash: str, extractor: str, result: dict) -> None:
        payload = json.dumps(result, sort_keys=True).encode()
        with self._env.begin(write=True) as txn:
            txn.put(self._key(extractor, audio_hash), payload)

    def stats(self) -> dict[str, int]:
        """Stored result count per extractor."""
        counts: dict[str, int] = {}
        with self._env.begin() as txn:
            for raw in txn.cursor().iternext(keys=True, values=False):
                parts = _split_key(raw)
                if parts:
                    counts[parts[0]] = counts.get(parts[0], 0) + 1
        return counts

    def _purge_foreign_pipelines(self) -> None:
        """Delete records from other pipeline versions and malformed keys."""
        if self._env.stat()["entries"] == 0:
            return
        with self._env.begin(write=True) as txn:
            doomed = []
            for raw in txn.cursor().iternext(keys=True, values=False):
                parts = _split_key(raw)
                if parts is None or parts[1] != self.pipeline:
                    doomed.append(raw)
            for raw in doomed:
                txn.delete(raw)
        if doomed:
            logger.info(f"Result cache: dropped {len(doomed)} outdated entries")

    def close(self) -> None:
        """Close the environment; further calls are no-ops."""
        if self._env is not None:
            self._env.close()
            self._env = None
