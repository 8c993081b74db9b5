from __future__ import annotations

import argparse
import json
from pathlib import Path

from prdeck.config import AppConfig, load_config
from prdeck.default_mode import run_dashboard
from prdeck.github_gateway import GitHubGateway
from prdeck.log_parser import LogLine
from prdeck.log_tree import ROOT, LogTree, NodePath, build_log_tree, node_at, node_name
from prdeck.models import Repo
from prdeck.navigator import find_next_error
from prdeck.observability import configure_logging
from prdeck.session_store import SessionStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prdeck")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Open the interactive pull request dashboard")
    _add_common_arguments(run_parser)

    repos_parser = subparsers.add_parser("repos", help="Manage the repositories on the dashboard")
    _add_common_arguments(repos_parser)
    repos_subparsers = repos_parser.add_subparsers(dest="repos_command", required=True)

    list_parser = repos_subparsers.add_parser("list", help="List saved repositories")
    list_parser.add_argument("--json", action="store_true", help="Print repositories as JSON")

    add_parser = repos_subparsers.add_parser("add", help="Add a repository")
    add_parser.add_argument("full_name", help="Repository as OWNER/REPO")
    add_parser.add_argument("--branch", default="main", help="Base branch to list PRs against")

    remove_parser = repos_subparsers.add_parser("remove", help="Remove a repository")
    remove_parser.add_argument("full_name", help="Repository as OWNER/REPO")

    logs_parser = subparsers.add_parser(
        "logs", help="Print the failing lines of a pull request's latest CI runs"
    )
    _add_common_arguments(logs_parser)
    logs_parser.add_argument("full_name", help="Repository as OWNER/REPO")
    logs_parser.add_argument("pr_number", type=int, help="Pull request number")
    logs_parser.add_argument("--branch", default="main", help="Base branch of the repository")
    logs_parser.add_argument("--json", action="store_true", help="Print errors as JSON")

    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, default=Path("prdeck.toml"))
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose runtime logging",
    )


def main() -> None:
    args = build_parser().parse_args()
    config = load_config(args.config)
    verbose = bool(getattr(args, "verbose", False))

    if args.command == "run":
        configure_logging(verbose, state_dir=config.runtime.state_dir, console=False)
        _cmd_run(config)
        return

    configure_logging(verbose)
    if args.command == "repos":
        _cmd_repos(config, args)
        return
    if args.command == "logs":
        _cmd_logs(
            repo=_parse_repo(str(args.full_name), branch=str(args.branch)),
            pr_number=int(args.pr_number),
            as_json=bool(args.json),
        )
        return

    raise RuntimeError(f"Unknown command: {args.command}")


def _cmd_run(config: AppConfig) -> None:
    config.runtime.state_dir.mkdir(parents=True, exist_ok=True)
    run_dashboard(config=config, session_store=SessionStore.in_state_dir(config.runtime.state_dir))


def _cmd_repos(config: AppConfig, args: argparse.Namespace) -> None:
    store = SessionStore.in_state_dir(config.runtime.state_dir)
    if args.repos_command == "list":
        _cmd_repos_list(store, as_json=bool(args.json))
        return
    if args.repos_command == "add":
        repo = _parse_repo(str(args.full_name), branch=str(args.branch))
        if store.add_repository(repo):
            print(f"Added {repo.full_name} (branch {repo.branch})")
        else:
            print(f"{repo.full_name} is already on the dashboard")
        return
    if args.repos_command == "remove":
        repo = _parse_repo(str(args.full_name))
        if store.remove_repository(repo.org, repo.repo):
            print(f"Removed {repo.full_name}")
        else:
            print(f"{repo.full_name} is not on the dashboard")
        return
    raise RuntimeError(f"Unknown repos command: {args.repos_command}")


def _cmd_repos_list(store: SessionStore, *, as_json: bool) -> None:
    repos = store.list_repositories()
    if as_json:
        payload = [
            {"owner": repo.org, "name": repo.repo, "branch": repo.branch} for repo in repos
        ]
        print(json.dumps(payload, indent=2))
        return
    if not repos:
        print("No repositories saved.")
        return
    for index, repo in enumerate(repos, start=1):
        print(f"{index}. {repo.full_name} branch={repo.branch}")


def _cmd_logs(*, repo: Repo, pr_number: int, as_json: bool) -> None:
    gateway = GitHubGateway(repo.org, repo.repo)
    tree, _metadata = build_log_tree(gateway.load_build_logs(pr_number))
    errors = collect_errors(tree)

    if as_json:
        payload = [
            {"path": list(path), "location": location, "message": message}
            for path, location, message in errors
        ]
        print(json.dumps(payload, indent=2))
        return
    if not tree.workflows:
        print(f"No build logs for {repo.full_name}#{pr_number}.")
        return
    if not errors:
        print(f"No errors in {repo.full_name}#{pr_number}.")
        return
    for _path, location, message in errors:
        print(f"{location}: {message}")
    print(f"{len(errors)} error(s)")


def collect_errors(tree: LogTree) -> list[tuple[NodePath, str, str]]:
    errors: list[tuple[NodePath, str, str]] = []
    cursor: NodePath = ROOT
    while True:
        target = find_next_error(tree, cursor, "forward")
        if target is None:
            return errors
        line = node_at(tree, target)
        if isinstance(line, LogLine):
            errors.append((target, _location(tree, target), _line_message(line)))
        cursor = target


def _location(tree: LogTree, path: NodePath) -> str:
    names: list[str] = []
    for depth in range(1, len(path)):
        node = node_at(tree, path[:depth])
        if node is not None:
            names.append(node_name(node))
    return " / ".join(names)


def _line_message(line: LogLine) -> str:
    if line.location:
        return f"{line.location}: {line.text}"
    return line.text


def _parse_repo(raw: str, *, branch: str = "main") -> Repo:
    owner, sep, name = raw.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise RuntimeError(f"Expected OWNER/REPO, got {raw!r}")
    return Repo(org=owner, repo=name, branch=branch)
