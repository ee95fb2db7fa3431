#!/usr/bin/env python3
"""timekeep CLI.

Keep several named timers in a SQLite file and credit idle time to them.

Usage:
    timekeep status                          # Show all timers
    timekeep add "Code review"               # Add a timer
    timekeep rename 2 "Email"                # Rename by position, id, or id prefix
    timekeep credit 45m --to 1               # Credit 45 minutes to timer 1
    timekeep credit 1h --percent 1=25 --remainder 2
    timekeep away                            # Mark the start of an absence
    timekeep back                            # Reconcile the absence
"""

from __future__ import annotations

import logging
import re

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .allocator import AllocationChoice, AllocationStrategy, build_allocation
from .config import db_option, get_settings, verbose_option
from .counter import CounterState, format_elapsed
from .errors import AllocationError, PersistenceError, TimerLimitError, ValidationError
from .manager import TimerManager
from .session import AllocationRequest, TimerSession
from .store import SnapshotStore, SqliteStore

console = Console()

DURATION_PATTERN = re.compile(r"^(?P<amount>\d+)(?P<unit>ms|s|m|h)?$")
UNIT_MS = {"ms": 1, "s": 1000, "m": 60 * 1000, "h": 60 * 60 * 1000}


def parse_duration(value: str) -> int:
    """Parse '1500', '1500ms', '30s', '15m', or '2h' into milliseconds."""
    match = DURATION_PATTERN.match(value.strip().lower())
    if not match:
        raise click.BadParameter(
            f"Unsupported duration {value!r}. Use a number with optional ms/s/m/h suffix.",
            param_hint="duration",
        )
    return int(match.group("amount")) * UNIT_MS[match.group("unit") or "ms"]


def _parse_pairs(pairs: tuple[str, ...] | list[str], convert) -> list[tuple[str, object]]:
    parsed = []
    for pair in pairs:
        ref, sep, value = pair.partition("=")
        if not sep or not ref or not value:
            raise click.BadParameter(f"Expected TIMER=VALUE, got {pair!r}")
        parsed.append((ref.strip(), convert(value.strip())))
    return parsed


def _parse_percent(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise click.BadParameter(f"Not a percentage: {value!r}")


def _state_style(state: CounterState) -> str:
    styles = {
        CounterState.RUNNING: "bold green",
        CounterState.PAUSED: "yellow",
        CounterState.STOPPED: "dim",
    }
    return styles.get(state, "white")


def configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("timekeep")
    logger.handlers.clear()
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _open_backend(ctx: click.Context) -> SqliteStore:
    if "backend" not in ctx.obj:
        settings = ctx.obj["settings"]
        try:
            ctx.obj["backend"] = SqliteStore(settings.db_path)
        except PersistenceError as e:
            raise click.ClickException(str(e))
    return ctx.obj["backend"]


def _open_manager(ctx: click.Context) -> TimerManager:
    if "manager" not in ctx.obj:
        settings = ctx.obj["settings"]
        store = SnapshotStore(_open_backend(ctx))
        ctx.obj["manager"] = TimerManager(settings.initial_timers, store)
    return ctx.obj["manager"]


def resolve_timer_id(manager: TimerManager, ref: str) -> str:
    """Accept a full id, a 1-based position, or a unique id prefix."""
    if manager.get_timer(ref) is not None:
        return ref

    timers = manager.get_all_timers()
    if ref.isdigit():
        index = int(ref)
        if 1 <= index <= len(timers):
            return timers[index - 1].id

    matches = [t.id for t in timers if t.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise click.ClickException(f"Timer reference {ref!r} is ambiguous")
    raise click.ClickException(f"No timer matches {ref!r}")


def _print_timers(manager: TimerManager) -> None:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="dim", width=8)
    table.add_column("Title")
    table.add_column("State", width=8)
    table.add_column("Elapsed", justify="right")

    for position, timer in enumerate(manager.get_all_timers(), start=1):
        table.add_row(
            str(position),
            timer.id[:8],
            timer.title,
            Text(timer.state.value, style=_state_style(timer.state)),
            timer.get_formatted_time(),
        )
    console.print(table)


def _print_allocation(manager: TimerManager, allocation: dict[str, int]) -> None:
    if not allocation:
        console.print("[yellow]Idle time discarded.[/yellow]")
        return
    for counter_id, ms in allocation.items():
        timer = manager.get_timer(counter_id)
        label = timer.title if timer else counter_id
        console.print(f"  +{format_elapsed(ms)}  {label}")


@click.group()
@db_option
@verbose_option
@click.pass_context
def cli(ctx, db_path, verbose):
    """timekeep - chess-clock timers with idle-time allocation."""
    settings = get_settings()
    if db_path is not None:
        settings.db_path = db_path
    if verbose:
        settings.verbose = True

    configure_logging(settings.verbose)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.pass_context
def status(ctx):
    """Show all timers."""
    _print_timers(_open_manager(ctx))


@cli.command()
@click.argument("title", required=False)
@click.pass_context
def add(ctx, title):
    """Add a timer, optionally with TITLE."""
    manager = _open_manager(ctx)
    try:
        timer = manager.add_timer(title)
    except (TimerLimitError, ValidationError) as e:
        raise click.ClickException(str(e))
    console.print(f"[green]Added[/green] {timer.title} ({timer.id[:8]})")


@cli.command()
@click.argument("timer_ref")
@click.pass_context
def remove(ctx, timer_ref):
    """Remove a timer. The last timer cannot be removed."""
    manager = _open_manager(ctx)
    counter_id = resolve_timer_id(manager, timer_ref)
    if not manager.remove_timer(counter_id):
        raise click.ClickException("Cannot remove the last timer")
    console.print(f"[green]Removed[/green] {counter_id[:8]}")


@cli.command()
@click.argument("timer_ref")
@click.argument("title")
@click.pass_context
def rename(ctx, timer_ref, title):
    """Rename a timer."""
    manager = _open_manager(ctx)
    counter_id = resolve_timer_id(manager, timer_ref)
    try:
        manager.update_timer_title(counter_id, title)
    except ValidationError as e:
        raise click.ClickException(str(e))
    console.print(f"[green]Renamed[/green] {counter_id[:8]} to {title}")


@cli.command()
@click.argument("timer_ref", required=False)
@click.option("--all", "reset_all", is_flag=True, help="Reset every timer")
@click.pass_context
def reset(ctx, timer_ref, reset_all):
    """Reset one timer, or all of them with --all."""
    manager = _open_manager(ctx)
    if reset_all:
        manager.reset_all()
        console.print("[green]All timers reset[/green]")
        return
    if timer_ref is None:
        raise click.UsageError("Give a timer or --all")
    counter_id = resolve_timer_id(manager, timer_ref)
    manager.reset_timer(counter_id)
    console.print(f"[green]Reset[/green] {counter_id[:8]}")


@cli.command()
@click.argument("duration")
@click.option("--to", "to_ref", help="Credit everything to this timer")
@click.option("--fixed", multiple=True, metavar="TIMER=DURATION", help="Fixed share")
@click.option("--percent", multiple=True, metavar="TIMER=PCT", help="Percentage share")
@click.option("--remainder", "remainder_ref", help="Timer receiving what is left")
@click.option("--discard", is_flag=True, help="Drop the time")
@click.pass_context
def credit(ctx, duration, to_ref, fixed, percent, remainder_ref, discard):
    """Split DURATION across timers."""
    total_ms = parse_duration(duration)
    chosen = [bool(to_ref), bool(fixed), bool(percent), discard]
    if sum(chosen) != 1:
        raise click.UsageError("Pick exactly one of --to, --fixed, --percent, --discard")

    manager = _open_manager(ctx)
    choice = _choice_from_options(manager, to_ref, fixed, percent, remainder_ref)
    try:
        allocation = build_allocation(choice, total_ms)
    except AllocationError as e:
        raise click.ClickException(str(e))

    if allocation:
        manager.distribute_time(allocation)
    _print_allocation(manager, allocation)


def _choice_from_options(manager, to_ref, fixed, percent, remainder_ref) -> AllocationChoice:
    if to_ref:
        return AllocationChoice(
            AllocationStrategy.SELECTED_TIMER, timer_id=resolve_timer_id(manager, to_ref)
        )
    if fixed or percent:
        if not remainder_ref:
            raise click.UsageError("--remainder is required with --fixed/--percent")
        strategy = AllocationStrategy.FIXED if fixed else AllocationStrategy.PERCENTAGE
        pairs = _parse_pairs(fixed, parse_duration) if fixed else _parse_pairs(percent, _parse_percent)
        return AllocationChoice(
            strategy,
            amounts={resolve_timer_id(manager, ref): value for ref, value in pairs},
            remainder_id=resolve_timer_id(manager, remainder_ref),
        )
    return AllocationChoice(AllocationStrategy.DISCARD)


def _prompt_allocation(manager: TimerManager, request: AllocationRequest) -> None:
    """Interactive chooser. Aborting (Ctrl-C / EOF) discards the idle time."""
    console.print(f"[bold]Idle time:[/bold] {format_elapsed(request.idle_ms)}")
    _print_timers(manager)

    strategies = [s.value for s in AllocationStrategy]
    if request.previous_running_id is None:
        strategies.remove(AllocationStrategy.PREVIOUS_TIMER.value)

    while not request.done:
        try:
            strategy = AllocationStrategy(
                click.prompt("Allocate to", type=click.Choice(strategies), default="discard")
            )
            choice = _prompt_choice(manager, strategy)
            allocation = request.choose(choice)
        except click.Abort:
            request.cancel()
            allocation = {}
        except (AllocationError, click.ClickException) as e:
            console.print(f"[red]{e}[/red]")
            continue
        _print_allocation(manager, allocation)


def _prompt_choice(manager: TimerManager, strategy: AllocationStrategy) -> AllocationChoice:
    if strategy == AllocationStrategy.SELECTED_TIMER:
        ref = click.prompt("Timer")
        return AllocationChoice(strategy, timer_id=resolve_timer_id(manager, ref))
    if strategy in (AllocationStrategy.FIXED, AllocationStrategy.PERCENTAGE):
        hint = "TIMER=DURATION" if strategy == AllocationStrategy.FIXED else "TIMER=PCT"
        raw = click.prompt(f"Shares ({hint}, comma separated)")
        convert = parse_duration if strategy == AllocationStrategy.FIXED else _parse_percent
        try:
            pairs = _parse_pairs([p for p in raw.split(",") if p.strip()], convert)
        except click.BadParameter as e:
            raise click.ClickException(e.format_message())
        remainder = click.prompt("Remainder timer")
        return AllocationChoice(
            strategy,
            amounts={resolve_timer_id(manager, ref): value for ref, value in pairs},
            remainder_id=resolve_timer_id(manager, remainder),
        )
    return AllocationChoice(strategy)


@cli.command()
@click.pass_context
def away(ctx):
    """Record that you are stepping away."""
    settings = ctx.obj["settings"]
    manager = _open_manager(ctx)
    session = TimerSession(
        manager,
        _open_backend(ctx),
        chooser=lambda request: request.cancel(),
        idle_threshold_ms=settings.idle_threshold_ms,
        check_on_start=False,
    )
    session.hidden()
    console.print("[dim]Away marker recorded.[/dim]")


@cli.command()
@click.pass_context
def back(ctx):
    """Reconcile time spent away since `timekeep away`."""
    settings = ctx.obj["settings"]
    manager = _open_manager(ctx)
    session = TimerSession(
        manager,
        _open_backend(ctx),
        chooser=lambda request: _prompt_allocation(manager, request),
        idle_threshold_ms=settings.idle_threshold_ms,
        check_on_start=False,
    )
    if session.visible() is None:
        console.print("[dim]Nothing to reconcile.[/dim]")


if __name__ == "__main__":
    cli()
