from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

from wallet_yield_lab import (
    APYEngine,
    CSVSnapshotSource,
    EngineConfig,
    JSONSnapshotSource,
    Pipeline,
    SnapshotRepository,
    load_config,
)
from wallet_yield_lab.core import QUALITY_METRICS_KEY
from wallet_yield_lab.reporting import best_period_apy, format_apy_for_display, write_apy_report

logger = logging.getLogger(__name__)


def _build_repository(cfg: dict[str, Any]) -> SnapshotRepository:
    snap_cfg = cfg.get("snapshots", {})
    path = str(snap_cfg.get("path"))
    fmt = str(snap_cfg.get("format", "json")).lower()
    if fmt == "csv":
        source = CSVSnapshotSource(path)
    else:
        source = JSONSnapshotSource(path)
    return Pipeline([source]).run()


def _print_summary(title: str, response: dict[str, Any]) -> None:
    print(f"{title}:")
    for identity, periods in response.items():
        if identity == QUALITY_METRICS_KEY:
            continue
        best = best_period_apy(periods)
        daily = format_apy_for_display(periods.get("daily"))
        headline = f"{best['apy']:+.2f}% ({best['period']})" if best else "n/a"
        daily_text = daily["formattedAPY"] if daily else "n/a"
        print(f"  {identity:<50} best {headline:<22} daily {daily_text}")
    quality = response.get(QUALITY_METRICS_KEY, {})
    print(
        f"  completeness {quality.get('dataCompleteness', 0.0):.2f}%, "
        f"confidence {quality.get('overallConfidence', 'low')}"
    )


async def _run(engine: APYEngine, user_id: str, target: Any) -> dict[str, Any]:
    async with engine:
        return await engine.calculate_all(user_id, target)


def main() -> None:
    """Run the demo using configuration from file or environment variables."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    cfg_file = os.getenv("WALLET_YIELD_CONFIG") or (sys.argv[1] if len(sys.argv) > 1 else None)
    cfg = load_config(cfg_file)

    if snapshots_env := os.getenv("WALLET_YIELD_SNAPSHOTS"):
        cfg.setdefault("snapshots", {})["path"] = snapshots_env
    if user_env := os.getenv("WALLET_YIELD_USER"):
        cfg["user_id"] = user_env
    if outdir_env := os.getenv("WALLET_YIELD_OUTDIR"):
        cfg.setdefault("output", {})["outdir"] = outdir_env

    repo = _build_repository(cfg)
    users = repo.users()
    if not users:
        print("No snapshots loaded; nothing to calculate.")
        return
    user_id = str(cfg.get("user_id") or users[0])

    # Default to the latest capture so the bundled sample stays in range.
    target = cfg.get("target_date")
    if target is None:
        own = [s for s in repo if s.user_id == user_id]
        if not own:
            print(f"No snapshots for user {user_id}.")
            return
        target = own[-1].date

    engine = APYEngine(repo, config=EngineConfig.from_mapping(cfg.get("engine")))
    results = asyncio.run(_run(engine, user_id, target))

    print(f"Snapshots loaded: {len(repo)} for {len(users)} user(s)")
    _print_summary("Position APYs", results["positions"])
    _print_summary("Token APYs", results["tokens"])
    _print_summary("Portfolio", results["portfolio"])

    outdir = cfg.get("output", {}).get("outdir")
    if outdir:
        for kind, response in results.items():
            write_apy_report(response, Path(outdir), prefix=kind)
        logger.info("Reports written to %s", outdir)


if __name__ == "__main__":
    main()
