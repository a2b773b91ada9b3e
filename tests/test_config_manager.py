import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from december.config_manager import (
    DEFAULT_INSTRUCTIONS_DIR,
    AgentConfig,
    ConfigManager,
    apply_env_overrides,
)


def test_initialize_creates_config(tmp_path: Path) -> None:
    manager = ConfigManager(str(tmp_path))

    manager.initialize()

    assert (tmp_path / ".december" / "config.yaml").is_file()
    assert (tmp_path / ".december" / ".gitignore").is_file()
    assert manager.is_initialized()


def test_initialize_raises_if_already_initialized(tmp_path: Path) -> None:
    manager = ConfigManager(str(tmp_path))
    manager.initialize()

    with pytest.raises(FileExistsError):
        manager.initialize()


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    manager = ConfigManager(str(tmp_path))
    config = AgentConfig(provider="anthropic", model="claude-opus-4-6", temperature=0.4, stream=False)

    manager.save_config(config)

    assert manager.load_config(apply_env=False) == config


def test_missing_keys_use_defaults(tmp_path: Path) -> None:
    manager = ConfigManager(str(tmp_path))
    manager.config_path.parent.mkdir(parents=True)
    manager.config_path.write_text(yaml.dump({"model": "gpt-4o-mini"}), encoding="utf-8")

    config = manager.load_config(apply_env=False)

    assert config.model == "gpt-4o-mini"
    assert config.provider == "openai"
    assert config.max_tokens == 8192


def test_load_without_config_file_is_default(tmp_path: Path) -> None:
    assert ConfigManager(str(tmp_path)).load_config(apply_env=False) == AgentConfig()


def test_env_overrides_cast_types() -> None:
    config = apply_env_overrides(
        AgentConfig(),
        {
            "DECEMBER_PROVIDER": "anthropic",
            "DECEMBER_TEMPERATURE": "0.7",
            "DECEMBER_MAX_TOKENS": "1024",
            "DECEMBER_MODEL": "",
        },
    )

    assert config.provider == "anthropic"
    assert config.temperature == 0.7
    assert config.max_tokens == 1024
    assert config.model == "gpt-4o"


def test_load_config_reads_project_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("DECEMBER_MODEL=from-dotenv\n", encoding="utf-8")

    with patch.dict(os.environ, {}, clear=False):
        os.environ.pop("DECEMBER_MODEL", None)
        config = ConfigManager(str(tmp_path)).load_config()

    assert config.model == "from-dotenv"


def test_resolved_instructions_dir() -> None:
    assert AgentConfig().resolved_instructions_dir == DEFAULT_INSTRUCTIONS_DIR
    assert AgentConfig(instructions_dir="/corpus").resolved_instructions_dir == "/corpus"
    assert (Path(DEFAULT_INSTRUCTIONS_DIR) / "core.txt").is_file()
