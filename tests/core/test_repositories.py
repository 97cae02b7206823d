from __future__ import annotations

import pytest

from wallet_yield_lab.core import SnapshotRepository


@pytest.fixture
def repository(make_snapshot, make_position) -> SnapshotRepository:
    return SnapshotRepository(
        [
            make_snapshot("2026-10-03", [make_position(value=1_030.0)]),
            make_snapshot("2026-10-01", [make_position(value=1_000.0)]),
            make_snapshot("2026-10-02", [make_position(value=1_010.0)]),
            make_snapshot("2026-10-02", [make_position(value=50.0)], user_id="user-2"),
        ]
    )


def test_snapshots_are_kept_in_date_order(repository: SnapshotRepository) -> None:
    dates = [s.date.strftime("%Y-%m-%d") for s in repository if s.user_id == "user-1"]
    assert dates == ["2026-10-01", "2026-10-02", "2026-10-03"]
    assert len(repository) == 4
    assert repository.users() == ["user-1", "user-2"]


@pytest.mark.asyncio
async def test_find_snapshot_returns_latest_at_or_before(repository: SnapshotRepository) -> None:
    found = await repository.find_snapshot("user-1", "2026-10-02T18:00:00Z")
    assert found is not None
    assert found.positions[0].total_value == 1_010.0

    assert await repository.find_snapshot("user-1", "2026-09-30") is None
    assert await repository.find_snapshot("missing", "2026-10-05") is None


@pytest.mark.asyncio
async def test_find_snapshots_uses_inclusive_bounds(repository: SnapshotRepository) -> None:
    rows = await repository.find_snapshots("user-1", "2026-10-02", "2026-10-03")
    assert [r.positions[0].total_value for r in rows] == [1_010.0, 1_030.0]

    open_start = await repository.find_snapshots("user-1", None, "2026-10-01")
    assert len(open_start) == 1

    open_both = await repository.find_snapshots("user-1", None, None)
    assert len(open_both) == 3


def test_to_dataframe_exposes_portfolio_value(repository: SnapshotRepository) -> None:
    df = repository.to_dataframe()
    assert list(df.columns) == [
        "user_id",
        "date",
        "wallet_address",
        "positions",
        "tokens",
        "portfolio_value",
    ]
    assert df.loc[df["user_id"] == "user-2", "portfolio_value"].iloc[0] == 50.0
