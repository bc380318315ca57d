from __future__ import annotations

from pathlib import Path
from typing import Sequence

from corpus.loaders import load_feature_collection
from corpus.types import ChurchFeature, Corpus, SourceReport, SourceSpec
from service.errors import IOFailure
from service.logging_setup import get_logger

log = get_logger(__name__)


def load_corpus(sources: Sequence[SourceSpec | Path | str]) -> Corpus:
    """
    Load every source, in order, into one immutable Corpus.

    Best-effort: a missing or malformed source is logged and skipped unless it
    is marked required, in which case start-up fails with IOFailure.
    """
    specs = [s if isinstance(s, SourceSpec) else SourceSpec(path=Path(s)) for s in sources]

    features: list[ChurchFeature] = []
    reports: list[SourceReport] = []
    for spec in specs:
        path = spec.path
        try:
            loaded = load_feature_collection(path, start=len(features))
        except FileNotFoundError as e:
            report = SourceReport(path=str(path), status="missing", error=str(e))
            _skip(spec, report, e)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors.
            report = SourceReport(path=str(path), status="malformed", error=str(e))
            _skip(spec, report, e)
        else:
            features.extend(loaded)
            report = SourceReport(path=str(path), status="loaded", count=len(loaded))
            log.info("Loaded %d features from %s", len(loaded), path)
        reports.append(report)

    log.info(
        "Total churches loaded: %d (%d/%d sources)",
        len(features),
        sum(1 for r in reports if r.status == "loaded"),
        len(reports),
    )
    return Corpus(features=tuple(features), sources=tuple(reports))


def _skip(spec: SourceSpec, report: SourceReport, err: Exception) -> None:
    if spec.required:
        raise IOFailure(f"Required feature source {report.status}: {spec.path}") from err
    log.warning(
        "Skipping %s feature source %s",
        report.status,
        spec.path,
        extra={"extra": report.as_dict()},
    )
