"""Engine child process entry point.

Wires the wake-up signal into the ledger, announces readiness and hands
control to the scheduler. The signal handler only bumps a counter; it never
touches the streams, so an emitted move line is always written whole.
"""

import signal

from loguru import logger

from arbiter.configs.schema import EngineConfig
from arbiter.engine.scheduler import SearchScheduler
from arbiter.engine.timer import WakeupLedger
from arbiter.errors import ArbiterError
from arbiter.game.rules import ChessRules, GameRules
from arbiter.process.supervisor import WAKEUP_SIGNAL
from arbiter.protocol.channel import StdioChannel
from arbiter.protocol.messages import Diagnostic
from arbiter.utils.logging import setup_child_logging

EXIT_OK = 0


def run_engine(
    config: EngineConfig,
    *,
    rules: GameRules | None = None,
    log_level: str = "INFO",
) -> int:
    """Run the engine until the referee hangs up.

    Args:
        config: Engine configuration.
        rules: Game rules; chess when None.
        log_level: Minimum level of forwarded diagnostics.

    Returns:
        Process exit status; NoLegalMove maps to its own distinct code.
    """
    setup_child_logging(log_level)

    wakeups = WakeupLedger()
    signal.signal(WAKEUP_SIGNAL, wakeups.notify)

    channel = StdioChannel(wakeups)
    wakeups.input_ready = channel.input_ready
    scheduler = SearchScheduler(rules or ChessRules(), config, channel, wakeups)

    try:
        channel.send(Diagnostic("ready"))
        scheduler.run()
    except ArbiterError as e:
        logger.error(f"engine: {e}")
        return e.exit_code
    except OSError as e:
        # The referee went away mid-write; nobody is left to report to.
        logger.debug(f"engine output closed: {e}")
        return EXIT_OK
    finally:
        scheduler.timer.disarm()
    return EXIT_OK
