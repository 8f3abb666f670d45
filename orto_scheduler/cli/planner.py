"""
orto: command line planner for the adaptive scheduler.

Reads a learner state file and prints the scheduler's decisions.

Commands:
- orto plan STATE      - Compose today's daily mix
- orto band STATE      - Show the band status and any pending adjustment
- orto due STATE       - List due review cards by urgency
- orto domains STATE   - Show domain progress and gate requirements
"""
from __future__ import annotations

import json
import random
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import Settings, get_settings
from orto_scheduler.adaptive.band_controller import (
    BAND_DEFINITIONS,
    calculate_band_adjustment,
    has_two_difficult_days_in_row,
)
from orto_scheduler.adaptive.domain_progression import (
    gate_summary,
    get_domain_progress_message,
    is_gate_requirement_met,
    select_next_domain,
    update_domain_srs_stability,
)
from orto_scheduler.adaptive.retention_analysis import identify_weak_domains, retention_by_domain
from orto_scheduler.cli.state_file import StateFile, load_state_file
from orto_scheduler.core.constants import (
    BandThresholds,
    DailyMixRatios,
    DomainSelectionWeights,
    GateThresholds,
    SRSConstants,
)
from orto_scheduler.core.enums import DomainState
from orto_scheduler.core.errors import ConfigurationError
from orto_scheduler.core.models import DailyMix, GateProgress
from orto_scheduler.session.daily_mix import DailyMixComposer
from orto_scheduler.study.srs_engine import (
    PASSING_GRADE,
    calculate_urgency,
    get_due_cards,
    prioritize_cards,
)


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="orto",
    help="orto: adaptive learning scheduler",
    no_args_is_help=True,
)
console = Console()

STATE_ARGUMENT = typer.Argument(..., help="Learner state JSON file", exists=True, dir_okay=False)
NOW_OPTION = typer.Option(
    None,
    "--now",
    help="Reference time (defaults to now)",
    formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"],
)


# =============================================================================
# Styling
# =============================================================================

STYLES = {
    "ok": "bold green",
    "fail": "bold red",
    "info": "bold cyan",
    "warning": "bold yellow",
    "dim": "dim",
    "state": {
        DomainState.LOCKED: "dim",
        DomainState.ACTIVE: "cyan",
        DomainState.GATED: "yellow",
        DomainState.COMPLETED: "green",
    },
}


def _flag(value: bool) -> str:
    return "[green]✓[/green]" if value else "[red]✗[/red]"


# =============================================================================
# Helpers
# =============================================================================


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr (and the configured log file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


def _load(path: Path) -> StateFile:
    try:
        return load_state_file(path)
    except ValidationError as exc:
        console.print(f"[{STYLES['fail']}]Invalid state file {path}[/{STYLES['fail']}]")
        console.print(str(exc), style=STYLES["dim"])
        raise typer.Exit(1)


def _mix_to_dict(mix: DailyMix) -> dict:
    interleaving = None
    if mix.interleaving is not None:
        interleaving = {
            "domain": mix.interleaving.domain.value,
            "items": list(mix.interleaving.item_ids),
            "estimated_minutes": mix.interleaving.estimated_minutes,
        }
    return {
        "date": mix.date.isoformat(),
        "target_band": mix.target_band.name,
        "is_recovery_day": mix.is_recovery_day,
        "extra_hints": mix.extra_hints,
        "difficult_follow_up": mix.difficult_follow_up,
        "new_content": {
            "domain": mix.new_content.domain.value,
            "items": list(mix.new_content.item_ids),
            "estimated_minutes": mix.new_content.estimated_minutes,
        },
        "interleaving": interleaving,
        "srs_reviews": {
            "cards": list(mix.srs_reviews.card_ids),
            "estimated_minutes": mix.srs_reviews.estimated_minutes,
        },
        "total_estimated_minutes": mix.total_estimated_minutes,
        "weak_domains": [domain.value for domain in mix.weak_domains],
    }


def _display_mix(mix: DailyMix) -> None:
    header = f"Daily mix {mix.date:%Y-%m-%d}  |  Band {mix.target_band}  |  ~{mix.total_estimated_minutes:.0f} min"
    lines = []
    if mix.is_recovery_day and mix.encouragement:
        lines.append(f"[{STYLES['warning']}]{mix.encouragement}[/{STYLES['warning']}]\n")

    table = Table()
    table.add_column("Slice")
    table.add_column("Domain")
    table.add_column("Items", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_row(
        "New content",
        mix.new_content.domain.value,
        str(len(mix.new_content.item_ids)),
        f"{mix.new_content.estimated_minutes:.0f}",
    )
    if mix.interleaving is not None:
        table.add_row(
            "Interleaving",
            mix.interleaving.domain.value,
            str(len(mix.interleaving.item_ids)),
            f"{mix.interleaving.estimated_minutes:.0f}",
        )
    table.add_row(
        "SRS reviews",
        "-",
        str(len(mix.srs_reviews.card_ids)),
        f"{mix.srs_reviews.estimated_minutes:.0f}",
    )

    console.print(Panel("\n".join(lines) + mix.new_content.reasoning, title=header, title_align="left", border_style="cyan"))
    console.print(table)
    if mix.weak_domains:
        weak = ", ".join(domain.value for domain in mix.weak_domains)
        console.print(f"[{STYLES['warning']}]Weak domains:[/{STYLES['warning']}] {weak}")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def plan(
    state_path: Path = STATE_ARGUMENT,
    minutes: Optional[int] = typer.Option(
        None,
        "--minutes",
        "-m",
        help="Session length (defaults to the state file or settings)",
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for domain choices"),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON"),
    now: Optional[datetime] = NOW_OPTION,
) -> None:
    """Compose today's daily mix."""
    settings = get_settings()
    now = now or datetime.now()
    state_file = _load(state_path)
    state = state_file.to_learner_state(now)

    try:
        ratios = DailyMixRatios.from_settings(settings)
        srs = SRSConstants.from_settings(settings)
    except ConfigurationError as exc:
        console.print(f"[{STYLES['fail']}]Configuration error:[/{STYLES['fail']}] {exc}")
        raise typer.Exit(1)

    rng = random.Random(seed if seed is not None else settings.random_seed)
    composer = DailyMixComposer(ratios=ratios, srs=srs, rng=rng)

    recent = state.recent_days
    is_recovery = state.is_recovery_mode or has_two_difficult_days_in_row(recent)
    reviewed = [
        (card.domain, card.last_grade >= PASSING_GRADE)
        for card in state.cards
        if card.last_grade is not None
    ]

    mix = composer.compose(
        primary_domain=state.primary_domain,
        target_band=state.band_status.current_band,
        srs_cards=state.cards,
        available_new_content=state_file.available_content(),
        completed_domains=state.completed_domains,
        is_recovery_day=is_recovery,
        target_minutes=minutes or state_file.target_minutes or settings.target_minutes_per_day,
        user_domains=state.user_domains,
        is_first_day=state_file.is_first_day,
        difficult_follow_up=bool(recent) and recent[0].difficult,
        weak_domains=identify_weak_domains(retention_by_domain(reviewed)),
        now=now,
    )

    if as_json:
        typer.echo(json.dumps(_mix_to_dict(mix), indent=2, ensure_ascii=False))
    else:
        _display_mix(mix)


@app.command()
def band(
    state_path: Path = STATE_ARGUMENT,
    now: Optional[datetime] = NOW_OPTION,
) -> None:
    """Show the band status and any pending adjustment."""
    settings = get_settings()
    now = now or datetime.now()
    state = _load(state_path).to_learner_state(now)
    status = state.band_status
    definition = BAND_DEFINITIONS[status.current_band]

    console.print(f"\n[{STYLES['info']}]Band {status.current_band}: {definition.label}[/{STYLES['info']}]")
    console.print(definition.description, style=STYLES["dim"])

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    performance = status.recent_performance
    table.add_row("Days at band", str(status.streak_at_band))
    table.add_row("Correct rate", f"{performance.correct_rate:.0%}")
    table.add_row("Hints per item", f"{performance.hint_usage:.2f}")
    table.add_row("Time efficiency", f"{performance.time_efficiency:.0%}")
    table.add_row("Confidence", f"{performance.confidence:.0%}")
    table.add_row("Version", str(status.version))
    console.print(table)

    try:
        thresholds = BandThresholds.from_settings(settings)
    except ConfigurationError as exc:
        console.print(f"[{STYLES['fail']}]Configuration error:[/{STYLES['fail']}] {exc}")
        raise typer.Exit(1)

    adjustment = calculate_band_adjustment(status, state.recent_days, now, thresholds)
    if adjustment is None:
        console.print("\nNo band change today.")
    else:
        style = STYLES["ok"] if adjustment.is_promotion else STYLES["warning"]
        console.print(
            f"\n[{style}]{adjustment.from_band} -> {adjustment.to_band}[/{style}] {adjustment.reason}"
        )


@app.command()
def due(
    state_path: Path = STATE_ARGUMENT,
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum cards to list"),
    now: Optional[datetime] = NOW_OPTION,
) -> None:
    """List due review cards, most urgent first."""
    now = now or datetime.now()
    state = _load(state_path).to_learner_state(now)

    cards = prioritize_cards(
        get_due_cards(state.cards, now),
        state.primary_domain,
        state.user_domains,
        limit=limit,
        now=now,
    )
    if not cards:
        console.print("[green]No cards due.[/green]")
        return

    table = Table(title=f"Due cards ({len(cards)})")
    table.add_column("Card")
    table.add_column("Domain")
    table.add_column("Due")
    table.add_column("Stability", justify="right")
    table.add_column("Urgency", justify="right")
    for card in cards:
        urgency = calculate_urgency(card, state.primary_domain, state.user_domains, now)
        name = f"{card.id} [red](leech)[/red]" if card.is_leech else card.id
        table.add_row(
            name,
            card.domain.value,
            f"{card.due_date:%Y-%m-%d}",
            f"{card.stability:.2f}",
            f"{urgency:.2f}",
        )
    console.print(table)


@app.command()
def domains(
    state_path: Path = STATE_ARGUMENT,
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for the next-domain suggestion"),
    now: Optional[datetime] = NOW_OPTION,
) -> None:
    """Show domain progress and gate requirements."""
    settings = get_settings()
    state = _load(state_path).to_learner_state(now)

    try:
        thresholds = GateThresholds.from_settings(settings)
        weights = DomainSelectionWeights.from_settings(settings)
    except ConfigurationError as exc:
        console.print(f"[{STYLES['fail']}]Configuration error:[/{STYLES['fail']}] {exc}")
        raise typer.Exit(1)

    table = Table(title="Domains")
    table.add_column("Domain")
    table.add_column("State")
    for name in gate_summary(GateProgress()):
        table.add_column(name, justify="center")
    table.add_column("Progress")

    for domain, status in state.domain_statuses.items():
        if status.state in (DomainState.ACTIVE, DomainState.GATED):
            status = update_domain_srs_stability(status, state.cards, thresholds)
        color = STYLES["state"][status.state]
        label = f"{domain.value} *" if domain == state.primary_domain else domain.value
        flags = [_flag(value) for value in gate_summary(status.gate_progress).values()]
        table.add_row(
            label,
            f"[{color}]{status.state.value}[/{color}]",
            *flags,
            get_domain_progress_message(status),
        )
    console.print(table)

    primary = state.domain_statuses.get(state.primary_domain)
    if primary is None or primary.state == DomainState.COMPLETED:
        return
    if not is_gate_requirement_met(primary, state.cards, thresholds):
        return

    rng = random.Random(seed if seed is not None else settings.random_seed)
    next_domain = select_next_domain(
        state.primary_domain,
        state.completed_domains,
        list(state.domain_statuses),
        weights,
        rng,
    )
    if next_domain is None:
        console.print(f"\n[{STYLES['ok']}]All gate requirements met. This is the last open domain.[/{STYLES['ok']}]")
    else:
        console.print(
            f"\n[{STYLES['ok']}]All gate requirements met for {state.primary_domain.value}.[/{STYLES['ok']}] "
            f"Next suggestion: {next_domain.value}"
        )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
