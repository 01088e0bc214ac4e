"""Strongly-typed configuration schemas for the referee and the engine.

These dataclasses are the single source of truth for every tunable. YAML
files and CLI flags are merged on top of their defaults by
arbiter.configs.loader.
"""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class RetryPolicy:
    """How long the referee waits for a notification to be acknowledged."""

    attempts: int = 3
    timeout: float = 2.0  # Seconds per attempt
    backoff: float = 0.08  # Sleep between attempts, doubled each time

    def __post_init__(self) -> None:
        """Validate."""
        if self.attempts < 1:
            msg = f"attempts must be >= 1, got {self.attempts}"
            raise ValueError(msg)
        if self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout}"
            raise ValueError(msg)


@dataclass
class EngineConfig:
    """Configuration for the search engine child."""

    avg_time: float = 0.0  # Average seconds per move; 0 disables the deadline
    randomized: bool = False
    verbose: bool = False
    seed: int | None = None
    max_depth: int = 64  # Depth cap when a deadline is armed
    untimed_max_depth: int = 3  # Depth cap when avg_time is 0
    min_budget: float = 0.05  # Never arm a deadline shorter than this
    ponder: bool = True  # Keep deepening on the opponent's time
    pace: bool = False  # Timed moves take at least avg_time, like a human clock

    def __post_init__(self) -> None:
        """Validate."""
        if self.avg_time < 0:
            msg = f"avg_time must be >= 0, got {self.avg_time}"
            raise ValueError(msg)
        if self.max_depth < 1 or self.untimed_max_depth < 1:
            msg = "depth caps must be >= 1"
            raise ValueError(msg)

    def to_argv(self) -> list[str]:
        """Command-line flags that reproduce this config in an `arbiter engine` child."""
        argv = [
            "--avg-time", str(self.avg_time),
            "--max-depth", str(self.max_depth),
            "--untimed-max-depth", str(self.untimed_max_depth),
            "--min-budget", str(self.min_budget),
        ]
        if self.randomized:
            argv.append("--randomized")
        if self.verbose:
            argv.append("--verbose")
        if self.seed is not None:
            argv += ["--seed", str(self.seed)]
        if not self.ponder:
            argv.append("--no-ponder")
        if self.pace:
            argv.append("--pace")
        return argv


@dataclass
class RefereeConfig:
    """Top-level configuration for one refereed game."""

    engine_white: bool = False
    engine_black: bool = False
    no_display: bool = False
    tournament: bool = False
    init_file: str | None = None  # History to preload before live play
    transcript: str | None = None  # Transcript output path
    display_tty: str | None = None  # Terminal the display child renders to
    max_plies: int | None = None  # Stop an unfinished game after this many plies

    spawn_timeout: float = 10.0  # Seconds to wait for a child's ready banner
    grace_period: float = 0.25  # Seconds between SIGTERM and SIGKILL
    poll_interval: float = 0.1  # Read slice while blocked on a child

    log_level: str = "INFO"
    log_file: str | None = None

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    engine: EngineConfig = field(default_factory=EngineConfig)

    def __post_init__(self) -> None:
        """Validate."""
        if self.max_plies is not None and self.max_plies < 1:
            msg = f"max_plies must be >= 1, got {self.max_plies}"
            raise ValueError(msg)

    @property
    def uses_engine(self) -> bool:
        return self.engine_white or self.engine_black

    @property
    def uses_display(self) -> bool:
        return not self.no_display and not self.tournament


def config_from_dict(data: dict[str, Any]) -> RefereeConfig:
    """Create RefereeConfig from a dictionary (e.g., from OmegaConf).

    Args:
        data: Dictionary with configuration values.

    Returns:
        RefereeConfig instance.
    """
    data = dict(data)
    retry = RetryPolicy(**data.pop("retry", {}) or {})
    engine = EngineConfig(**data.pop("engine", {}) or {})
    return RefereeConfig(retry=retry, engine=engine, **data)


def config_to_dict(config: RefereeConfig) -> dict[str, Any]:
    """Convert RefereeConfig to a dictionary for serialization."""
    return asdict(config)
