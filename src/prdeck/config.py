from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import tomllib
from typing import cast

from prdeck.app_state import AppSettings, MergeBotSettings
from prdeck.models import MergeMethod, Repo
from prdeck.theme import THEMES


DEFAULT_STATE_DIR = "~/.local/state/prdeck"
_MERGE_METHODS: tuple[MergeMethod, ...] = ("merge", "squash", "rebase")


@dataclass(frozen=True)
class RuntimeConfig:
    state_dir: Path
    worker_count: int = 4
    refresh_seconds: float = 0.25
    monitor_interval_seconds: float = 30.0
    monitor_max_checks: int = 40


@dataclass(frozen=True)
class UiConfig:
    theme: str = "dark"
    ide_command: str = "code"
    temp_dir: Path = Path("/tmp/prdeck")
    approval_message: str = ":rocket: thanks for your contribution"
    close_comment: str = "Closing this pull request."


@dataclass(frozen=True)
class SeedRepoConfig:
    repo_id: str
    owner: str
    name: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def to_repo(self) -> Repo:
        return Repo(org=self.owner, repo=self.name, branch=self.branch)


@dataclass(frozen=True)
class AppConfig:
    runtime: RuntimeConfig
    merge_bot: MergeBotSettings
    ui: UiConfig
    repos: tuple[SeedRepoConfig, ...] = ()

    def app_settings(self) -> AppSettings:
        return AppSettings(
            ide_command=self.ui.ide_command,
            temp_dir=self.ui.temp_dir,
            approval_message=self.ui.approval_message,
            close_comment=self.ui.close_comment,
            monitor_interval_seconds=self.runtime.monitor_interval_seconds,
            monitor_max_checks=self.runtime.monitor_max_checks,
            seed_repos=tuple(repo.to_repo() for repo in self.repos),
        )


class ConfigError(ValueError):
    pass


def load_config(path: Path) -> AppConfig:
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    runtime_data = _optional_table(data, "runtime") or {}
    bot_data = _require_table(data, "merge_bot")
    ui_data = _optional_table(data, "ui") or {}
    repo_data = _optional_table(data, "repo") or {}

    runtime = RuntimeConfig(
        state_dir=Path(
            _str_with_default(runtime_data, "state_dir", DEFAULT_STATE_DIR)
        ).expanduser(),
        worker_count=_int_with_default(runtime_data, "worker_count", 4),
        refresh_seconds=_number_with_default(runtime_data, "refresh_seconds", 0.25),
        monitor_interval_seconds=_number_with_default(
            runtime_data, "monitor_interval_seconds", 30.0
        ),
        monitor_max_checks=_int_with_default(runtime_data, "monitor_max_checks", 40),
    )
    if runtime.worker_count < 1:
        raise ConfigError("runtime.worker_count must be >= 1")
    if runtime.refresh_seconds <= 0:
        raise ConfigError("runtime.refresh_seconds must be > 0")
    if runtime.monitor_interval_seconds <= 0:
        raise ConfigError("runtime.monitor_interval_seconds must be > 0")
    if runtime.monitor_max_checks < 1:
        raise ConfigError("runtime.monitor_max_checks must be >= 1")

    merge_bot = _parse_merge_bot_settings(bot_data)

    ui = UiConfig(
        theme=_str_with_default(ui_data, "theme", "dark"),
        ide_command=_str_with_default(ui_data, "ide_command", "code"),
        temp_dir=Path(_str_with_default(ui_data, "temp_dir", "/tmp/prdeck")).expanduser(),
        approval_message=_str_with_default(
            ui_data, "approval_message", ":rocket: thanks for your contribution"
        ),
        close_comment=_str_with_default(ui_data, "close_comment", "Closing this pull request."),
    )
    if ui.theme not in THEMES:
        raise ConfigError(f"ui.theme must be one of {', '.join(sorted(THEMES))}")

    return AppConfig(
        runtime=runtime,
        merge_bot=merge_bot,
        ui=ui,
        repos=_load_seed_repos(repo_data),
    )


def _parse_merge_bot_settings(bot_data: dict[str, object]) -> MergeBotSettings:
    settings = MergeBotSettings(
        concurrency_limit=_require_int(bot_data, "concurrency_limit"),
        retry_budget=_require_int(bot_data, "retry_budget"),
        ci_poll_interval_seconds=_number_with_default(bot_data, "ci_poll_interval_seconds", 15.0),
        backoff_base_seconds=_number_with_default(bot_data, "backoff_base_seconds", 5.0),
        backoff_max_seconds=_number_with_default(bot_data, "backoff_max_seconds", 300.0),
        rerun_failed_jobs=_bool_with_default(bot_data, "rerun_failed_jobs", True),
        merge_method=_merge_method_with_default(bot_data, "merge_method", "squash"),
    )
    if settings.concurrency_limit < 1:
        raise ConfigError("merge_bot.concurrency_limit must be >= 1")
    if settings.retry_budget < 0:
        raise ConfigError("merge_bot.retry_budget must be >= 0")
    if settings.ci_poll_interval_seconds < 1:
        raise ConfigError("merge_bot.ci_poll_interval_seconds must be >= 1")
    if settings.backoff_base_seconds < 1:
        raise ConfigError("merge_bot.backoff_base_seconds must be >= 1")
    if settings.backoff_max_seconds < settings.backoff_base_seconds:
        raise ConfigError("merge_bot.backoff_max_seconds must be >= merge_bot.backoff_base_seconds")
    return settings


def _load_seed_repos(repo_data: dict[str, object]) -> tuple[SeedRepoConfig, ...]:
    repos: list[SeedRepoConfig] = []
    for repo_id, raw_value in sorted(repo_data.items()):
        repo_table = _require_repo_table(raw_value, table_name=f"[repo.{repo_id}]")
        repos.append(
            SeedRepoConfig(
                repo_id=repo_id,
                owner=_require_str(repo_table, "owner"),
                name=_str_with_default(repo_table, "name", repo_id),
                branch=_str_with_default(repo_table, "branch", "main"),
            )
        )
    _ensure_unique_full_names(repos)
    return tuple(repos)


def _require_table(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] is required and must be a TOML table")
    if not all(isinstance(item, str) for item in value.keys()):
        raise ConfigError(f"[{key}] must have string keys")
    return cast(dict[str, object], value)


def _optional_table(data: dict[str, object], key: str) -> dict[str, object] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a TOML table when provided")
    if not all(isinstance(item, str) for item in value.keys()):
        raise ConfigError(f"[{key}] must have string keys")
    return cast(dict[str, object], value)


def _require_repo_table(value: object, *, table_name: str) -> dict[str, object]:
    if not isinstance(value, dict):
        raise ConfigError(f"{table_name} must be a TOML table")
    if not all(isinstance(item, str) for item in value.keys()):
        raise ConfigError(f"{table_name} must have string keys")
    return cast(dict[str, object], value)


def _require_str(data: dict[str, object], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} is required and must be a non-empty string")
    return value


def _require_int(data: dict[str, object], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} is required and must be an integer")
    return value


def _int_with_default(data: dict[str, object], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    return value


def _number_with_default(data: dict[str, object], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def _bool_with_default(data: dict[str, object], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean")
    return value


def _str_with_default(data: dict[str, object], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a non-empty string")
    return value


def _merge_method_with_default(
    data: dict[str, object], key: str, default: MergeMethod
) -> MergeMethod:
    value = data.get(key, default)
    if not isinstance(value, str) or value not in _MERGE_METHODS:
        raise ConfigError(f"{key} must be one of {', '.join(_MERGE_METHODS)}")
    return cast(MergeMethod, value)


def _ensure_unique_full_names(repos: list[SeedRepoConfig]) -> None:
    seen: dict[str, str] = {}
    for repo in repos:
        existing_id = seen.get(repo.full_name)
        if existing_id is not None:
            raise ConfigError(
                f"Duplicate repo full_name {repo.full_name!r} across repo ids "
                f"{existing_id!r} and {repo.repo_id!r}"
            )
        seen[repo.full_name] = repo.repo_id
