"""Command-line interface for arbiter."""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from arbiter import __version__
from arbiter.configs import EngineConfig, resolve_referee_config
from arbiter.errors import ArbiterError
from arbiter.utils.logging import setup_logging

app = typer.Typer(
    name="arbiter",
    help="arbiter: referee a chess game between humans and search engines",
    add_completion=False,
)
console = Console()


@app.command()
def version() -> None:
    """Print version information."""
    console.print(f"[bold blue]arbiter[/bold blue] v{__version__}")


@app.command()
def play(
    white: bool = typer.Option(False, "--white", "-w", help="Engine plays white"),
    black: bool = typer.Option(False, "--black", "-b", help="Engine plays black"),
    randomized: bool = typer.Option(False, "--randomized", "-r", help="Shuffle engine move order"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log search statistics per depth"),
    no_display: bool = typer.Option(False, "--no-display", "-d", help="Play without the display"),
    tournament: bool = typer.Option(False, "--tournament", "-t", help="Text-only tournament mode"),
    avg_time: float | None = typer.Option(None, "--avg-time", "-a", help="Average seconds per move"),
    init_file: Path | None = typer.Option(None, "--init", "-i", help="History file to replay first"),
    transcript: Path | None = typer.Option(None, "--output", "-o", help="Transcript path"),
    pace: bool = typer.Option(False, "--pace", help="Make each timed engine move take about --avg-time"),
    max_plies: int | None = typer.Option(None, "--max-plies", help="Stop an unfinished game after N plies"),
    seed: int | None = typer.Option(None, "--seed", help="Seed for randomized move order"),
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML config file"),
    overrides: list[str] | None = typer.Option(None, "--set", help="Config override, e.g. retry.attempts=5"),
    log_level: str | None = typer.Option(None, "--log-level", help="Minimum log level"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also log to this file"),
) -> None:
    """Referee one game."""
    from arbiter.referee.game_loop import run_game

    flags = {
        "engine_white": white or None,
        "engine_black": black or None,
        "no_display": no_display or None,
        "tournament": tournament or None,
        "init_file": str(init_file) if init_file else None,
        "transcript": str(transcript) if transcript else None,
        "log_level": log_level,
        "max_plies": max_plies,
        "log_file": str(log_file) if log_file else None,
        "engine": {
            "avg_time": avg_time,
            "randomized": randomized or None,
            "verbose": verbose or None,
            "seed": seed,
            "pace": pace or None,
        },
    }
    try:
        referee_config = resolve_referee_config(config, flags=flags, overrides=overrides)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1) from e

    setup_logging(referee_config.log_level, referee_config.log_file)

    try:
        summary = run_game(referee_config, console=console)
    except ArbiterError as e:
        logger.error(str(e))
        raise typer.Exit(e.exit_code) from e
    logger.debug(f"Final position: {summary.position}")


@app.command()
def engine(
    avg_time: float = typer.Option(0.0, "--avg-time", help="Average seconds per move; 0 is untimed"),
    randomized: bool = typer.Option(False, "--randomized", help="Shuffle move order"),
    verbose: bool = typer.Option(False, "--verbose", help="Log one line per completed depth"),
    seed: int | None = typer.Option(None, "--seed", help="Seed for randomized move order"),
    max_depth: int = typer.Option(64, "--max-depth", help="Depth cap for timed play"),
    untimed_max_depth: int = typer.Option(3, "--untimed-max-depth", help="Depth cap for untimed play"),
    min_budget: float = typer.Option(0.05, "--min-budget", help="Shortest deadline in seconds"),
    ponder: bool = typer.Option(True, "--ponder/--no-ponder", help="Think on the opponent's time"),
    pace: bool = typer.Option(False, "--pace", help="Make each timed move take about --avg-time"),
    log_level: str = typer.Option("INFO", "--log-level", help="Minimum diagnostic level"),
) -> None:
    """Run the search engine child on stdin/stdout."""
    from arbiter.engine.child import run_engine

    try:
        engine_config = EngineConfig(
            avg_time=avg_time,
            randomized=randomized,
            verbose=verbose,
            seed=seed,
            max_depth=max_depth,
            untimed_max_depth=untimed_max_depth,
            min_budget=min_budget,
            ponder=ponder,
            pace=pace,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    raise typer.Exit(run_engine(engine_config, log_level=log_level))


@app.command()
def display(
    tty: str | None = typer.Option(None, "--tty", help="Terminal to render to and read moves from"),
    input_path: str | None = typer.Option(None, "--input", help="Read moves from here instead of --tty"),
    output_path: str | None = typer.Option(None, "--output", help="Render here instead of --tty"),
    log_level: str = typer.Option("INFO", "--log-level", help="Minimum diagnostic level"),
) -> None:
    """Run the display child on stdin/stdout."""
    from arbiter.display.child import run_display

    raise typer.Exit(
        run_display(
            output_path=output_path or tty,
            input_path=input_path or tty,
            log_level=log_level,
        )
    )


if __name__ == "__main__":
    app()
