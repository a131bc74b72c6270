from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_launch_options() -> dict:
    opts: dict = {"headless": True, "chromium_sandbox": False}
    # Prefer the system chromium when the container ships one.
    system_chromium = shutil.which("chromium") or shutil.which("chromium-browser")
    if system_chromium:
        opts["executable_path"] = system_chromium
    return opts


class ViewportSize(BaseModel):
    width: int = 1280
    height: int = 800


class BrowserConfig(BaseModel):
    browser_name: Literal["chromium", "firefox", "webkit"] = "chromium"
    launch_options: dict = Field(default_factory=_default_launch_options)
    context_options: dict = Field(default_factory=dict)
    viewport: ViewportSize = Field(default_factory=ViewportSize)
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = (
        "networkidle"
    )


class TimeoutsConfig(BaseModel):
    selector: int = 5000
    navigation: int = 30000
    settle_idle: int = 500
    settle: int = 5000
    max_wait: int = 60000


class SessionsConfig(BaseModel):
    max_sessions: int = 10
    sweep_interval: float = 60.0
    max_log_entries: int = 1000


class ExtractionDefaults(BaseModel):
    max_depth: int
    text_min_length: int
    max_elements: int


class ExtractionConfig(BaseModel):
    local: ExtractionDefaults = Field(
        default_factory=lambda: ExtractionDefaults(
            max_depth=10, text_min_length=1, max_elements=500
        )
    )
    public: ExtractionDefaults = Field(
        default_factory=lambda: ExtractionDefaults(
            max_depth=3, text_min_length=10, max_elements=200
        )
    )
    known_local_hosts: list[str] = Field(default_factory=list)

    @field_validator("known_local_hosts", mode="before")
    @classmethod
    def parse_known_local_hosts(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [h.strip().lower() for h in v.split(";") if h.strip()]
        return [h.lower() for h in v]


class LivenessConfig(BaseModel):
    enabled: bool = True
    start_time_file: str = "/start-time.txt"
    threshold_minutes: float = 60.0
    kill_delay_ms: int = 60_000
    memory_threshold_mb: int = 300
    memory_check_interval: float = 30.0

    @property
    def threshold_ms(self) -> int:
        return int(self.threshold_minutes * 60_000)


class ServerConfig(BaseModel):
    socket_path: str = "/tmp/browser-relay.sock"


class RelayConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BROWSER_RELAY_",
        env_nested_delimiter="__",
    )

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    liveness: LivenessConfig = Field(default_factory=LivenessConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def apply_env_overrides(config: RelayConfig) -> RelayConfig:
    """Apply the flat ``BROWSER_RELAY_*`` shortcuts that don't follow the
    nested delimiter convention."""

    # BROWSER_RELAY_HEADLESS -> browser.launch_options.headless
    headless = os.environ.get("BROWSER_RELAY_HEADLESS")
    if headless is not None:
        config.browser.launch_options["headless"] = headless.lower() in (
            "1",
            "true",
            "yes",
        )

    # BROWSER_RELAY_EXECUTABLE_PATH -> browser.launch_options.executable_path
    executable_path = os.environ.get("BROWSER_RELAY_EXECUTABLE_PATH")
    if executable_path is not None:
        config.browser.launch_options["executable_path"] = executable_path

    # BROWSER_RELAY_SOCKET -> server.socket_path
    socket_path = os.environ.get("BROWSER_RELAY_SOCKET")
    if socket_path is not None:
        config.server.socket_path = socket_path

    return config


def load_config(config_path: str | None = None) -> RelayConfig:
    """Load configuration from an optional JSON file and the environment.

    Priority (highest to lowest):
        1. The flat shortcuts handled by ``apply_env_overrides``
        2. Values from the JSON file at *config_path*, when it exists
        3. ``BROWSER_RELAY_*`` nested environment variables
        4. Built-in defaults
    """
    file_values: dict = {}
    if config_path is not None:
        config_file = Path(config_path)
        if config_file.is_file():
            file_values = json.loads(config_file.read_text(encoding="utf-8"))

    config = RelayConfig(**file_values)
    return apply_env_overrides(config)
