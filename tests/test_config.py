from __future__ import annotations

from pathlib import Path
import re
from typing import cast

import pytest

from prdeck import config
from prdeck.app_state import MergeBotSettings
from prdeck.config import AppConfig, ConfigError
from prdeck.models import Repo


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


_MINIMAL = """
[merge_bot]
concurrency_limit = 2
retry_budget = 3
""".strip()


def test_load_config_full_file(tmp_path: Path) -> None:
    cfg_path = _write(
        tmp_path / "prdeck.toml",
        """
[runtime]
state_dir = "~/tmp/prdeck"
worker_count = 8
refresh_seconds = 0.5
monitor_interval_seconds = 10
monitor_max_checks = 6

[merge_bot]
concurrency_limit = 3
retry_budget = 2
ci_poll_interval_seconds = 30
backoff_base_seconds = 10
backoff_max_seconds = 120
rerun_failed_jobs = false
merge_method = "rebase"

[ui]
theme = "light"
ide_command = "idea"
temp_dir = "/tmp/review"
approval_message = "lgtm"
close_comment = "Superseded."

[repo.web]
owner = "acme"
branch = "develop"

[repo.api]
owner = "acme"
name = "api-server"
""".strip(),
    )

    loaded = config.load_config(cfg_path)

    assert isinstance(loaded, AppConfig)
    assert loaded.runtime.state_dir.as_posix().endswith("/tmp/prdeck")
    assert "~" not in loaded.runtime.state_dir.as_posix()
    assert loaded.runtime.worker_count == 8
    assert loaded.runtime.refresh_seconds == 0.5
    assert loaded.runtime.monitor_interval_seconds == 10.0
    assert loaded.runtime.monitor_max_checks == 6
    assert loaded.merge_bot == MergeBotSettings(
        concurrency_limit=3,
        retry_budget=2,
        ci_poll_interval_seconds=30.0,
        backoff_base_seconds=10.0,
        backoff_max_seconds=120.0,
        rerun_failed_jobs=False,
        merge_method="rebase",
    )
    assert loaded.ui.theme == "light"
    assert loaded.ui.ide_command == "idea"
    assert loaded.ui.temp_dir == Path("/tmp/review")
    assert loaded.ui.approval_message == "lgtm"

    # Repo tables are sorted by id; name defaults to the id.
    assert [repo.repo_id for repo in loaded.repos] == ["api", "web"]
    assert [repo.full_name for repo in loaded.repos] == ["acme/api-server", "acme/web"]
    assert loaded.repos[1].to_repo() == Repo(org="acme", repo="web", branch="develop")

    settings = loaded.app_settings()
    assert settings.ide_command == "idea"
    assert settings.approval_message == "lgtm"
    assert settings.close_comment == "Superseded."
    assert settings.monitor_interval_seconds == 10.0
    assert settings.monitor_max_checks == 6
    assert settings.seed_repos == (
        Repo(org="acme", repo="api-server", branch="main"),
        Repo(org="acme", repo="web", branch="develop"),
    )


def test_load_config_applies_defaults(tmp_path: Path) -> None:
    loaded = config.load_config(_write(tmp_path / "prdeck.toml", _MINIMAL))

    assert loaded.runtime.worker_count == 4
    assert loaded.runtime.refresh_seconds == 0.25
    assert loaded.runtime.monitor_interval_seconds == 30.0
    assert loaded.runtime.monitor_max_checks == 40
    assert loaded.runtime.state_dir == Path(config.DEFAULT_STATE_DIR).expanduser()
    assert loaded.merge_bot.concurrency_limit == 2
    assert loaded.merge_bot.retry_budget == 3
    assert loaded.merge_bot.ci_poll_interval_seconds == 15.0
    assert loaded.merge_bot.backoff_base_seconds == 5.0
    assert loaded.merge_bot.backoff_max_seconds == 300.0
    assert loaded.merge_bot.rerun_failed_jobs is True
    assert loaded.merge_bot.merge_method == "squash"
    assert loaded.ui.theme == "dark"
    assert loaded.ui.ide_command == "code"
    assert loaded.repos == ()
    assert loaded.app_settings().seed_repos == ()


@pytest.mark.parametrize(
    "content, expected",
    [
        ("[ui]\ntheme = 'dark'", "[merge_bot] is required"),
        ("merge_bot = 3", "[merge_bot] is required"),
        ("[merge_bot]\nretry_budget = 3", "concurrency_limit is required"),
        ("[merge_bot]\nconcurrency_limit = 1", "retry_budget is required"),
        ("[merge_bot]\nconcurrency_limit = true\nretry_budget = 1", "concurrency_limit"),
        ("[merge_bot]\nconcurrency_limit = 0\nretry_budget = 1", "merge_bot.concurrency_limit"),
        ("[merge_bot]\nconcurrency_limit = 1\nretry_budget = -1", "merge_bot.retry_budget"),
        (
            _MINIMAL + "\nci_poll_interval_seconds = 0.5",
            "merge_bot.ci_poll_interval_seconds",
        ),
        (_MINIMAL + "\nbackoff_base_seconds = 0", "merge_bot.backoff_base_seconds"),
        (
            _MINIMAL + "\nbackoff_base_seconds = 10\nbackoff_max_seconds = 5",
            "merge_bot.backoff_max_seconds must be >= merge_bot.backoff_base_seconds",
        ),
        (_MINIMAL + "\nrerun_failed_jobs = 'yes'", "rerun_failed_jobs must be a boolean"),
        (_MINIMAL + "\nmerge_method = 'octopus'", "merge_method must be one of"),
        ("runtime = 1\n" + _MINIMAL, "[runtime] must be a TOML table"),
        ("[runtime]\nworker_count = 0\n" + _MINIMAL, "runtime.worker_count"),
        ("[runtime]\nrefresh_seconds = 0\n" + _MINIMAL, "runtime.refresh_seconds"),
        (
            "[runtime]\nmonitor_interval_seconds = 0\n" + _MINIMAL,
            "runtime.monitor_interval_seconds",
        ),
        ("[runtime]\nmonitor_max_checks = 0\n" + _MINIMAL, "runtime.monitor_max_checks"),
        ("[runtime]\nstate_dir = ''\n" + _MINIMAL, "state_dir must be a non-empty string"),
        ("[ui]\ntheme = 'solarized'\n" + _MINIMAL, "ui.theme must be one of dark, light"),
        ("[repo]\nweb = 1\n" + _MINIMAL, "[repo.web] must be a TOML table"),
        ("[repo.web]\nname = 'web'\n" + _MINIMAL, "owner is required"),
    ],
)
def test_load_config_errors_name_the_offending_key(
    tmp_path: Path, content: str, expected: str
) -> None:
    cfg_path = _write(tmp_path / "bad.toml", content)
    with pytest.raises(ConfigError, match=re.escape(expected)):
        config.load_config(cfg_path)


def test_load_config_rejects_duplicate_repo_full_names(tmp_path: Path) -> None:
    cfg_path = _write(
        tmp_path / "dup.toml",
        _MINIMAL
        + """

[repo.a]
owner = "acme"
name = "web"

[repo.web]
owner = "acme"
""",
    )
    with pytest.raises(ConfigError, match="Duplicate repo full_name 'acme/web'"):
        config.load_config(cfg_path)


def test_helper_tables_and_strings() -> None:
    assert config._require_table({"x": {}}, "x") == {}
    with pytest.raises(ConfigError, match="required and must be a TOML table"):
        config._require_table({"x": 3}, "x")
    with pytest.raises(ConfigError, match="must have string keys"):
        config._require_table({"x": {1: "v"}}, "x")

    assert config._optional_table({}, "x") is None
    with pytest.raises(ConfigError, match="must have string keys"):
        config._optional_table({"x": cast(dict[str, object], {1: "v"})}, "x")
    with pytest.raises(ConfigError, match="must have string keys"):
        config._require_repo_table(cast(object, {1: "v"}), table_name="[repo.bad]")

    assert config._require_str({"k": "v"}, "k") == "v"
    with pytest.raises(ConfigError, match="required and must be a non-empty string"):
        config._require_str({"k": 1}, "k")


def test_helper_numbers_and_enums() -> None:
    assert config._require_int({"k": 3}, "k") == 3
    assert config._int_with_default({}, "k", 7) == 7
    with pytest.raises(ConfigError, match="must be an integer"):
        config._int_with_default({"k": 1.5}, "k", 7)

    assert config._number_with_default({"k": 2}, "k", 1.0) == 2.0
    assert isinstance(config._number_with_default({"k": 2}, "k", 1.0), float)
    with pytest.raises(ConfigError, match="must be a number"):
        config._number_with_default({"k": True}, "k", 1.0)

    assert config._merge_method_with_default({}, "k", "merge") == "merge"
    with pytest.raises(ConfigError, match="merge, squash, rebase"):
        config._merge_method_with_default({"k": 1}, "k", "merge")
