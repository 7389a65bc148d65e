from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    kind: Literal["file", "git", "github"] = "file"
    root: str = "."  # working copy for file/git stores
    remote: str = "origin"
    branch: Optional[str] = None  # None = current branch (git) or repo default branch (github)
    push: bool = True
    owner: Optional[str] = None
    repo: Optional[str] = None
    token_env: str = "GITHUB_TOKEN"
    api_url: str = "https://api.github.com"
    timeout_s: float = 15.0


class RetryConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_retries: int = Field(default=1, ge=0)
    sync_before: bool = False


class RunnerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_steps: int = Field(default=20, ge=1)
    runner_name: str = "batch-runner"


class DispatchConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_runs: int = Field(default=200, ge=1)
    sync_first: bool = False
    publish: bool = False


class NotificationsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    base_url: Optional[str] = None  # dashboard base URL; unset disables run-channel creation
    timeout_s: float = 10.0

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().rstrip("/")
        if v.startswith("${"):  # unset env reference
            return None
        return v or None


class BoardConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    limit: int = Field(default=50, ge=1)


class SwarmFactoryConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    store: StoreConfig = StoreConfig()
    retry: RetryConfig = RetryConfig()
    runner: RunnerConfig = RunnerConfig()
    dispatch: DispatchConfig = DispatchConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    board: BoardConfig = BoardConfig()
