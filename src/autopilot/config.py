from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from autopilot.errors import AutopilotError

VendorName = Literal["openai", "anthropic"]
RestartPolicy = Literal["abandon", "terminate"]
LogFormat = Literal["json", "text"]

DEFAULT_CONFIG_FILE = "autopilot.toml"
MARKER_FILE = ".autopilot.toml"


class WorkspaceMarkerError(AutopilotError):
    """Raised when a workspace's marker file is missing or unreadable."""


@dataclass(slots=True)
class WorkspaceConfig:
    projects_dir: str = "projects"
    default_kind: str = "vite-react-ts"
    preview_host: str = "localhost"
    preview_base_port: int = 5174
    preview_restart: RestartPolicy = "abandon"


@dataclass(slots=True)
class AgentConfig:
    max_tokens: int = 1024
    openai_api_key: str = ""
    anthropic_api_key: str = ""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    format: LogFormat = "json"


@dataclass(slots=True)
class ProfileConfig:
    vendor: VendorName
    model: str


def default_profiles() -> dict[str, ProfileConfig]:
    return {
        "gpt-4.1": ProfileConfig(vendor="openai", model="gpt-4.1"),
        "gpt-4.1-mini": ProfileConfig(vendor="openai", model="gpt-4.1-mini"),
        "o4-mini": ProfileConfig(vendor="openai", model="o4-mini"),
        "o3": ProfileConfig(vendor="openai", model="o3"),
        "claude-opus-4": ProfileConfig(vendor="anthropic", model="claude-opus-4-20250514"),
        "claude-sonnet-4": ProfileConfig(vendor="anthropic", model="claude-sonnet-4-20250514"),
        "claude-3-7-sonnet": ProfileConfig(vendor="anthropic", model="claude-3-7-sonnet-latest"),
    }


@dataclass(slots=True)
class AutopilotConfig:
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, ProfileConfig] = field(default_factory=default_profiles)

    @classmethod
    def default(cls) -> AutopilotConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> AutopilotConfig:
        profiles_data = data.get("profiles")
        if profiles_data is None:
            profiles = default_profiles()
        else:
            profiles = {name: ProfileConfig(**values) for name, values in profiles_data.items()}
        return cls(
            workspace=WorkspaceConfig(**data.get("workspace", {})),
            agent=AgentConfig(**data.get("agent", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            profiles=profiles,
        )

    def to_dict(self) -> dict:
        return {
            "workspace": {
                "projects_dir": self.workspace.projects_dir,
                "default_kind": self.workspace.default_kind,
                "preview_host": self.workspace.preview_host,
                "preview_base_port": self.workspace.preview_base_port,
                "preview_restart": self.workspace.preview_restart,
            },
            "agent": {
                "max_tokens": self.agent.max_tokens,
                "openai_api_key": self.agent.openai_api_key,
                "anthropic_api_key": self.agent.anthropic_api_key,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
            },
            "profiles": {
                name: {"vendor": profile.vendor, "model": profile.model}
                for name, profile in self.profiles.items()
            },
        }

    @property
    def projects_path(self) -> Path:
        return Path(self.workspace.projects_dir)


@dataclass(slots=True)
class WorkspaceMarker:
    preview_port: int
    kind: str

    def to_dict(self) -> dict:
        return {"preview_port": self.preview_port, "kind": self.kind}


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return json.dumps(str(value), ensure_ascii=False)


def _toml_table(lines: list[str], header: str, values: dict) -> None:
    lines.append(f"[{header}]")
    for key, value in values.items():
        lines.append(f"{key} = {_toml_value(value)}")
    lines.append("")


def dumps_toml(config: AutopilotConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("workspace", "agent", "logging"):
        _toml_table(lines, section, data[section])
    for name, values in data["profiles"].items():
        _toml_table(lines, f"profiles.{json.dumps(name)}", values)
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> AutopilotConfig:
    if not path.exists():
        return AutopilotConfig.default()
    return AutopilotConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: AutopilotConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")


def write_marker(root_path: Path, marker: WorkspaceMarker) -> None:
    lines: list[str] = []
    for key, value in marker.to_dict().items():
        lines.append(f"{key} = {_toml_value(value)}")
    (root_path / MARKER_FILE).write_text("\n".join(lines) + "\n", encoding="utf-8")


def read_marker(root_path: Path) -> WorkspaceMarker:
    marker_path = root_path / MARKER_FILE
    try:
        data = tomllib.loads(marker_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise WorkspaceMarkerError(f"Workspace marker not found: {marker_path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise WorkspaceMarkerError(f"Workspace marker is not valid TOML: {marker_path}") from exc

    port = data.get("preview_port")
    kind = data.get("kind")
    if not isinstance(port, int) or isinstance(port, bool) or not isinstance(kind, str):
        raise WorkspaceMarkerError(
            f"Workspace marker must define an integer preview_port and a kind: {marker_path}"
        )
    return WorkspaceMarker(preview_port=port, kind=kind)
