from __future__ import annotations

from pathlib import Path

import pytest

from wallet_yield_lab.core import SnapshotRepository
from wallet_yield_lab.pipeline import Pipeline
from wallet_yield_lab.sources import CSVSnapshotSource, JSONSnapshotSource


class FailingSource:
    def fetch(self) -> list[object]:
        raise RuntimeError("boom")


@pytest.fixture(scope="module")
def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def test_pipeline_loads_bundled_sample(project_root: Path) -> None:
    json_path = project_root / "src" / "sample_snapshots.json"
    repo = Pipeline([JSONSnapshotSource(str(json_path))]).run()
    assert repo.users() == ["demo-user"]
    snapshots = list(repo)
    assert len(snapshots) == 10
    assert snapshots == sorted(snapshots, key=lambda s: s.date)
    assert all(len(s.positions) == 3 for s in snapshots)


def test_pipeline_merges_sources_into_existing_repository(project_root: Path) -> None:
    repo = SnapshotRepository()
    csv_path = project_root / "tests" / "fixtures" / "snapshots.csv"
    out = Pipeline([CSVSnapshotSource(str(csv_path))]).run(repo)
    assert out is repo
    assert len(repo) == 3


def test_pipeline_logs_and_recovers_from_source_failure(
    caplog: pytest.LogCaptureFixture, project_root: Path
) -> None:
    json_path = project_root / "src" / "sample_snapshots.json"
    pipeline = Pipeline([FailingSource(), JSONSnapshotSource(str(json_path))])
    with caplog.at_level("WARNING", logger="wallet_yield_lab.pipeline"):
        repo = pipeline.run()
    assert any(
        rec.levelname == "WARNING" and "FailingSource" in rec.message for rec in caplog.records
    )
    assert len(repo) > 0
