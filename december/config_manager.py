from dataclasses import asdict, dataclass
import os
from pathlib import Path

from dotenv import load_dotenv
import yaml


DEFAULT_INSTRUCTIONS_DIR = str(Path(__file__).parent / "instructions")

ENV_OVERRIDES = {
    "DECEMBER_PROVIDER": "provider",
    "DECEMBER_MODEL": "model",
    "DECEMBER_BASE_URL": "base_url",
    "DECEMBER_TEMPERATURE": "temperature",
    "DECEMBER_MAX_TOKENS": "max_tokens",
    "DECEMBER_INSTRUCTIONS_DIR": "instructions_dir",
}


@dataclass
class AgentConfig:
    """User-editable agent preferences from config.yaml."""

    version: int = 1
    provider: str = "openai"
    model: str = "gpt-4o"
    base_url: str = ""
    temperature: float = 0.0
    max_tokens: int = 8192
    instructions_dir: str = ""
    workspace_dir: str = "."
    stream: bool = True

    @property
    def resolved_instructions_dir(self) -> str:
        return self.instructions_dir or DEFAULT_INSTRUCTIONS_DIR


class ConfigManager:
    def __init__(self, project_path: str):
        self.project_path = Path(project_path).resolve()
        self.december_dir = self.project_path / ".december"

    @property
    def config_path(self) -> Path:
        return self.december_dir / "config.yaml"

    def is_initialized(self) -> bool:
        """Check if .december/ exists and has config.yaml."""
        return self.config_path.is_file()

    def initialize(self, config: AgentConfig | None = None) -> None:
        """Create .december/ with a default config.yaml."""
        if self.is_initialized():
            raise FileExistsError(
                f".december/ already initialized at {self.december_dir}"
            )

        self.december_dir.mkdir(parents=True, exist_ok=True)
        self.save_config(config or AgentConfig())
        (self.december_dir / ".gitignore").write_text(
            "*.log\n",
            encoding="utf-8",
        )

    def load_config(self, apply_env: bool = True) -> AgentConfig:
        """Read config.yaml into AgentConfig. Missing keys use defaults.

        Environment variables (and a project .env file) override file values
        unless ``apply_env`` is False.
        """
        data = {}
        if self.config_path.is_file():
            data = yaml.safe_load(self.config_path.read_text(encoding="utf-8")) or {}

        defaults = AgentConfig()
        kwargs = {}
        for field_name in AgentConfig.__dataclass_fields__:
            kwargs[field_name] = data.get(field_name, getattr(defaults, field_name))
        config = AgentConfig(**kwargs)

        if apply_env:
            load_dotenv(self.project_path / ".env")
            apply_env_overrides(config)
        return config

    def save_config(self, config: AgentConfig) -> None:
        """Write AgentConfig to config.yaml."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(
            yaml.dump(
                asdict(config),
                default_flow_style=False,
                sort_keys=False,
            ),
            encoding="utf-8",
        )


def apply_env_overrides(config: AgentConfig, environ=None) -> AgentConfig:
    """Overlay DECEMBER_* environment variables onto ``config`` in place."""
    environ = os.environ if environ is None else environ
    for env_name, field_name in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        current = getattr(config, field_name)
        if isinstance(current, bool):
            value = raw.strip().lower() in ("1", "true", "yes", "on")
        elif isinstance(current, int):
            value = int(raw)
        elif isinstance(current, float):
            value = float(raw)
        else:
            value = raw
        setattr(config, field_name, value)
    return config
