from __future__ import annotations

import asyncio
import logging
import random
from typing import NoReturn, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from mtfoundry.logging_config import setup_logging
from mtfoundry.models.schemas import SeedArtifact
from mtfoundry.services.event_service import EventBroker
from mtfoundry.services.simulation.catalog import ReferenceRatio, get_catalog
from mtfoundry.services.simulation.errors import SimulationError
from mtfoundry.services.workspace_service import MetamorphicWorkspace

app = typer.Typer(add_completion=False, help="MTFoundry CLI")
console = Console()


# ============================================================
# 小工具：日志
# ============================================================
def _info(msg: str) -> None:
    print(f"[cyan][MT][/cyan] {msg}")


def _ok(msg: str) -> None:
    print(f"[green][MT][OK][/green] {msg}")


def _fail(msg: str, code: int = 1) -> NoReturn:
    print(f"[red][MT][FAIL][/red] {msg}")
    raise typer.Exit(code)


def _parse_ratio(raw: str) -> tuple[str, ReferenceRatio]:
    """解析 NAME=PASSED/TOTAL，例如 Greyscale=4/5"""
    name, sep, frac = raw.partition("=")
    passed, slash, total = frac.partition("/")
    if not sep or not slash or not name.strip():
        _fail(f"invalid --ratio '{raw}', expected NAME=PASSED/TOTAL")
    try:
        return name.strip(), ReferenceRatio(passed=int(passed), total=int(total))
    except ValueError as e:
        _fail(f"invalid --ratio '{raw}': {e}")


# ============================================================
# 命令
# ============================================================
@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000):
    """Run FastAPI server."""
    import uvicorn

    uvicorn.run("mtfoundry.main:app", host=host, port=port, reload=True)


@app.command()
def catalog():
    """Print the relation catalog."""
    cat = get_catalog()
    table = Table(title=f"Relation catalog v{cat.version}")
    table.add_column("Relation")
    table.add_column("Target", justify="right")
    table.add_column("Base rate", justify="right")
    table.add_column("Description")
    for name, defaults in cat.relations.items():
        table.add_row(name, str(defaults.target_count), str(defaults.base_rate), defaults.description)
    table.add_row(
        "[dim](fallback)[/dim]",
        str(cat.fallback.target_count),
        str(cat.fallback.base_rate),
        "",
    )
    console.print(table)
    _info(f"default pass ratio: {cat.default_pass_ratio}")


@app.command()
def simulate(
    relation: list[str] = typer.Option(..., "--relation", "-r", help="Relation name (repeatable)"),
    ratio: Optional[list[str]] = typer.Option(
        None, "--ratio", help="Reference pass ratio NAME=PASSED/TOTAL (repeatable)"
    ),
    time_unit: float = typer.Option(0.001, "--time-unit", help="Seconds per abstract time unit"),
    seed_name: str = typer.Option("Seed", "--seed-name", help="Seed test name"),
    rng_seed: Optional[int] = typer.Option(None, "--rng-seed", help="Random seed for reproducible runs"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Run generation then execution in-process and print the results."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING, to_file=False)

    reference_ratios = dict(_parse_ratio(r) for r in ratio or [])
    workspace = MetamorphicWorkspace(
        broker=EventBroker(),
        session_factory=None,
        reference_ratios=reference_ratios or None,
        time_unit=time_unit,
        rng=random.Random(rng_seed),
    )

    async def _simulate():
        workspace.select_seed(SeedArtifact(name=seed_name))
        workspace.add_relations(relation)
        _info("generating: " + ", ".join(f"{r.name}={r.target_count}" for r in workspace.relations))
        handle = workspace.start_generation()
        await handle.wait()
        _ok(f"generated {workspace.generation_stats.total_generated} test(s)")

        result = workspace.start_execution()
        if not result.started:
            _info(f"[WARN] {result.notice}")
            return
        _info(f"executing {result.total} test(s)")
        await workspace.scheduler.wait()

    try:
        asyncio.run(_simulate())
    except SimulationError as e:
        _fail(str(e))

    splits = {s.relation: s for s in workspace.scheduler.splits}
    stats = workspace.execution_stats
    table = Table(title=workspace.suite_name)
    table.add_column("Relation")
    table.add_column("Generated", justify="right")
    table.add_column("Target pass/fail", justify="right")
    table.add_column("Passed", justify="right")
    table.add_column("Failed", justify="right")
    for rel in workspace.relations:
        result = stats.mr_results.get(rel.name)
        split = splits.get(rel.name)
        table.add_row(
            rel.name,
            str(rel.generated_count),
            f"{split.target_passed}/{split.target_failed}" if split else "-",
            str(result.passed) if result else "-",
            str(result.failed) if result else "-",
        )
    console.print(table)
    _ok(
        f"executed {stats.total_executed}: {stats.passed} passed, "
        f"{stats.failed} failed, success rate {stats.success_rate}%"
    )


if __name__ == "__main__":
    app()
