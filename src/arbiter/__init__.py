"""arbiter: a referee for two-player board games and its search engine.

The referee process drives the game loop and supervises its children:
- `from arbiter.referee import GameLoop, run_game`
- `from arbiter.process import Supervisor`

Child processes:
- `from arbiter.engine.child import run_engine`
- `from arbiter.display.child import run_display`
"""

__version__ = "0.1.0"

# Re-export common utilities for convenience
from arbiter.configs import RefereeConfig, load_config, resolve_referee_config, save_config
from arbiter.game import ChessRules
from arbiter.utils.logging import setup_logging

__all__ = [
    "ChessRules",
    "RefereeConfig",
    "__version__",
    "load_config",
    "resolve_referee_config",
    "save_config",
    "setup_logging",
]
