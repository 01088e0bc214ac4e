"""Tests for configuration schemas and loading."""

from pathlib import Path

import pytest
from omegaconf import OmegaConf

from arbiter.configs import (
    EngineConfig,
    RefereeConfig,
    RetryPolicy,
    config_from_dict,
    config_to_dict,
    load_config,
    resolve_referee_config,
    save_config,
)


class TestSchemas:
    """Tests for the configuration dataclasses."""

    def test_defaults(self) -> None:
        config = RefereeConfig()
        assert config.retry == RetryPolicy(attempts=3, timeout=2.0, backoff=0.08)
        assert config.engine.untimed_max_depth == 3
        assert config.uses_display
        assert not config.uses_engine

    def test_tournament_has_no_display(self) -> None:
        assert not RefereeConfig(tournament=True).uses_display
        assert not RefereeConfig(no_display=True).uses_display

    @pytest.mark.parametrize(
        "kwargs",
        [{"attempts": 0}, {"timeout": 0.0}],
    )
    def test_invalid_retry_policy(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_invalid_engine_config(self) -> None:
        with pytest.raises(ValueError):
            EngineConfig(avg_time=-1.0)
        with pytest.raises(ValueError):
            EngineConfig(max_depth=0)

    def test_invalid_ply_limit(self) -> None:
        with pytest.raises(ValueError, match="max_plies"):
            RefereeConfig(max_plies=0)
        assert RefereeConfig(max_plies=1).max_plies == 1

    def test_engine_argv(self) -> None:
        argv = EngineConfig(avg_time=1.5, randomized=True, seed=9, ponder=False).to_argv()
        assert argv[argv.index("--avg-time") + 1] == "1.5"
        assert argv[argv.index("--seed") + 1] == "9"
        assert "--randomized" in argv
        assert "--no-ponder" in argv
        assert "--verbose" not in argv
        assert "--pace" not in argv
        assert "--pace" in EngineConfig(avg_time=1.0, pace=True).to_argv()

    def test_dict_round_trip(self) -> None:
        config = RefereeConfig(engine_white=True, engine=EngineConfig(avg_time=2.0))
        assert config_from_dict(config_to_dict(config)) == config


class TestLoader:
    """Tests for YAML loading and layered resolution."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "referee.yaml"
        save_config(config_to_dict(RefereeConfig(tournament=True)), path)
        loaded = load_config(path)
        assert loaded.tournament is True

    def test_save_dataclass_directly(self, tmp_path: Path) -> None:
        path = tmp_path / "referee.yaml"
        save_config(RefereeConfig(engine=EngineConfig(avg_time=3.0)), path)
        assert load_config(path).engine.avg_time == 3.0

    def test_unknown_key_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "referee.yaml"
        OmegaConf.save(OmegaConf.create({"engine": {"avg_tiem": 2.0}}), path)
        with pytest.raises(ValueError, match="avg_tiem"):
            load_config(path)

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_precedence(self, tmp_path: Path) -> None:
        """Test defaults < file < overrides < flags."""
        path = tmp_path / "referee.yaml"
        OmegaConf.save(
            OmegaConf.create({"engine_black": True, "engine": {"avg_time": 2.0}, "retry": {"attempts": 5}}),
            path,
        )
        config = resolve_referee_config(
            path,
            flags={"engine": {"avg_time": 0.5, "seed": None}, "engine_white": None},
            overrides=["retry.timeout=4.0"],
        )
        assert config.engine_black is True
        assert config.engine_white is False
        assert config.engine.avg_time == 0.5
        assert config.retry.attempts == 5
        assert config.retry.timeout == 4.0

    def test_unset_flags_keep_file_values(self, tmp_path: Path) -> None:
        path = tmp_path / "referee.yaml"
        OmegaConf.save(OmegaConf.create({"transcript": "game.txt"}), path)
        config = resolve_referee_config(path, flags={"transcript": None})
        assert config.transcript == "game.txt"

    def test_invalid_values_are_rejected(self) -> None:
        with pytest.raises(ValueError):
            resolve_referee_config(overrides=["retry.attempts=0"])
