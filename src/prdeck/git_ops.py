from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import shlex

from prdeck.models import Repo
from prdeck.observability import log_event
from prdeck.shell import run, spawn


LOGGER = logging.getLogger("prdeck.git_ops")


@dataclass(frozen=True)
class WorkspaceLayout:
    checkouts_root: Path

    def checkout_path(self, repo: Repo) -> Path:
        return self.checkouts_root / repo.org / repo.repo


class GitRepoManager:
    def __init__(self, temp_dir: Path) -> None:
        self.layout = WorkspaceLayout(checkouts_root=temp_dir / "checkouts")

    def checkout_pull_request(self, repo: Repo, pr_number: int) -> Path:
        checkout_path = self.layout.checkout_path(repo)
        if not (checkout_path / ".git").exists():
            checkout_path.parent.mkdir(parents=True, exist_ok=True)
            log_event(
                LOGGER,
                "git_checkout_cloned",
                repo_full_name=repo.full_name,
                checkout_path=str(checkout_path),
            )
            run(["gh", "repo", "clone", repo.full_name, str(checkout_path)])
        else:
            log_event(
                LOGGER,
                "git_checkout_fetched",
                repo_full_name=repo.full_name,
                checkout_path=str(checkout_path),
            )
            run(["git", "-C", str(checkout_path), "fetch", "origin", "--prune"])

        run(
            ["gh", "pr", "checkout", str(pr_number), "--repo", repo.full_name, "--force"],
            cwd=checkout_path,
        )
        log_event(
            LOGGER,
            "git_pull_request_checked_out",
            repo_full_name=repo.full_name,
            pr_number=pr_number,
        )
        return checkout_path

    def open_in_ide(self, checkout_path: Path, ide_command: str) -> int:
        argv = shlex.split(ide_command)
        if not argv:
            raise ValueError("ide_command must not be empty")
        pid = spawn([*argv, str(checkout_path)], cwd=checkout_path)
        log_event(LOGGER, "ide_opened", checkout_path=str(checkout_path), command=argv[0])
        return pid
