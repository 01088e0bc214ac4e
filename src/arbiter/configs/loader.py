"""Configuration loading utilities."""

from pathlib import Path
from typing import Any

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import ConfigKeyError

from arbiter.configs.schema import RefereeConfig, config_from_dict, config_to_dict


def load_config(config_path: str | Path) -> DictConfig:
    """Load a referee YAML file, rejecting keys the schema does not know.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        The file's settings only (not merged with defaults).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file names an unknown setting.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    loaded = OmegaConf.load(path)
    _check_keys(loaded, path)
    return loaded


def save_config(config: RefereeConfig | DictConfig | dict[str, Any], path: str | Path) -> None:
    """Write a configuration to YAML, creating parent directories."""
    if isinstance(config, RefereeConfig):
        config = config_to_dict(config)
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    OmegaConf.save(OmegaConf.create(config) if isinstance(config, dict) else config, target)


def _check_keys(loaded: DictConfig, path: Path) -> None:
    schema = OmegaConf.create(config_to_dict(RefereeConfig()))
    OmegaConf.set_struct(schema, True)
    try:
        OmegaConf.merge(schema, loaded)
    except ConfigKeyError as e:
        raise ValueError(f"{path}: {e}") from e


def resolve_referee_config(
    config_path: str | Path | None = None,
    flags: dict[str, Any] | None = None,
    overrides: list[str] | None = None,
) -> RefereeConfig:
    """Build a RefereeConfig from defaults, a YAML file and CLI values.

    Precedence, lowest first: schema defaults, the YAML file, dotlist
    overrides, then explicit CLI flags. Flags whose value is None are treated
    as "not given" so they don't clobber the file.

    Args:
        config_path: Optional YAML file.
        flags: Nested dict of CLI values, e.g. {"engine": {"avg_time": 1.0}}.
        overrides: Optional dotlist overrides.

    Returns:
        Validated RefereeConfig.
    """
    merged = OmegaConf.create(config_to_dict(RefereeConfig()))
    if config_path is not None:
        merged = OmegaConf.merge(merged, load_config(config_path))
    if overrides:
        merged = OmegaConf.merge(merged, OmegaConf.from_dotlist(overrides))
    if flags:
        merged = OmegaConf.merge(merged, OmegaConf.create(_drop_unset(flags)))

    container = OmegaConf.to_container(merged, resolve=True)
    return config_from_dict(container)


def _drop_unset(values: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            nested = _drop_unset(value)
            if nested:
                cleaned[key] = nested
        elif value is not None:
            cleaned[key] = value
    return cleaned
