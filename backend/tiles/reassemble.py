from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Literal, Sequence

from service.errors import IOFailure
from service.logging_setup import get_logger

log = get_logger(__name__)

ReassemblyStatus = Literal["present", "complete", "partial"]

_COPY_BUFFER = 1024 * 1024


@dataclass(frozen=True)
class ChunkSpec:
    """
    One ordered fragment of the tile container as shipped on disk.
    """

    path: Path
    # A missing required chunk aborts reassembly; others are skipped with a warning.
    required: bool = False

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ReassemblyResult:
    destination: Path
    status: ReassemblyStatus
    written: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    bytes_written: int = 0

    @property
    def partial(self) -> bool:
        return self.status == "partial"

    def as_dict(self) -> dict[str, Any]:
        return {
            "destination": str(self.destination),
            "status": self.status,
            "written": len(self.written),
            "skipped": list(self.skipped),
            "bytesWritten": self.bytes_written,
        }


def resolve_chunks(
    chunk_dir: Path,
    *,
    names: Sequence[str] | None = None,
    pattern: str | None = None,
    required: Iterable[str] = (),
) -> list[ChunkSpec]:
    """
    Turn configured chunk names (or a glob pattern) into ordered ChunkSpecs.

    Pattern matches are sorted by name, which is the order `split` assigns
    suffixes (`.aa`, `.ab`, ...). Explicit names keep their declared order,
    duplicates included.
    """
    required_names = set(required)
    if names:
        paths = [chunk_dir / n for n in names]
    elif pattern:
        paths = sorted(chunk_dir.glob(pattern), key=lambda p: p.name)
    else:
        raise ValueError("Chunk list needs either explicit names or a pattern")
    return [ChunkSpec(path=p, required=p.name in required_names) for p in paths]


def reassemble(
    chunks: Sequence[ChunkSpec | Path | str], destination: Path | str
) -> ReassemblyResult:
    """
    Concatenate `chunks`, in order, into `destination`.

    If `destination` already exists nothing is read or written. Otherwise the
    chunks are streamed into a sibling `.partial` file which is renamed onto
    `destination` only after the last chunk has been written and synced, so a
    failed run never leaves a truncated container behind.
    """
    specs = [c if isinstance(c, ChunkSpec) else ChunkSpec(path=Path(c)) for c in chunks]
    if not specs:
        raise ValueError("reassemble() needs at least one chunk")

    dest = Path(destination)
    if dest.exists():
        log.info("Container already present, skipping reassembly: %s", dest)
        return ReassemblyResult(destination=dest, status="present")

    tmp = dest.with_name(dest.name + ".partial")

    written: list[str] = []
    skipped: list[str] = []
    total = 0
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("wb") as out:
            for spec in specs:
                if not spec.path.is_file():
                    if spec.required:
                        raise IOFailure(f"Required chunk is missing: {spec.path}")
                    log.warning(
                        "Skipping missing chunk %s",
                        spec.name,
                        extra={"extra": {"chunk": str(spec.path), "destination": str(dest)}},
                    )
                    skipped.append(spec.name)
                    continue
                with spec.path.open("rb") as src:
                    total += _copy(src, out)
                written.append(spec.name)

            if not written:
                raise IOFailure(f"None of the {len(specs)} chunks for {dest} exist")
            out.flush()
            os.fsync(out.fileno())
        os.replace(tmp, dest)
    except IOFailure:
        _discard(tmp)
        raise
    except OSError as e:
        _discard(tmp)
        raise IOFailure(f"Reassembly of {dest} failed: {e}") from e

    status: ReassemblyStatus = "partial" if skipped else "complete"
    if skipped:
        log.warning(
            "Container reassembled from %d/%d chunks; tile coverage is partial",
            len(written),
            len(specs),
            extra={"extra": {"skipped": skipped}},
        )
    else:
        log.info("Container reassembled: %s (%d chunks, %d bytes)", dest, len(written), total)

    return ReassemblyResult(
        destination=dest,
        status=status,
        written=tuple(written),
        skipped=tuple(skipped),
        bytes_written=total,
    )


def _copy(src, out) -> int:
    n = 0
    while True:
        buf = src.read(_COPY_BUFFER)
        if not buf:
            return n
        out.write(buf)
        n += len(buf)


def _discard(tmp: Path) -> None:
    try:
        tmp.unlink(missing_ok=True)
    except OSError:
        log.exception("Could not remove partial container %s", tmp)
