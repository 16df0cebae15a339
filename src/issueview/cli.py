"""issueview CLI.

Subcommands:
  view   -> print the active view (custom query issues, or issues by milestone)
  users  -> print the collaborator directory

Both commands run one initialization of the view cache against GitHub and
print its state; no data is persisted between runs.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from issueview.config import CONFIG_DEFAULT, ViewCacheConfig, load_config
from issueview.coordinator import RefreshCoordinator
from issueview.errors import ConfigError, redact
from issueview.github_rest import GitHubRestClient, GitHubRetriever
from issueview.interfaces import ManagerState
from issueview.logging import configure_logging
from issueview.models import Milestone, ResolvedIssue
from issueview.repository import GitHeadRef, RepositoryStateManager
from issueview.ux import print_error, print_header, print_items, print_warning
from issueview.views import ByIssue

REPO_HELP = "Override target repository (owner/repo)"


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="issueview", description="Issue view cache")
    p.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    sub = p.add_subparsers(dest="cmd", required=True)

    pv = sub.add_parser("view", help="Print the active issue view")
    pv.add_argument("--config", default=CONFIG_DEFAULT)
    pv.add_argument("--repo", help=REPO_HELP)
    pv.add_argument("--query", help="Use this custom query instead of the configured one")
    pv.add_argument("--json", action="store_true", help="Emit JSON instead of text")

    pu = sub.add_parser("users", help="Print assignable collaborators")
    pu.add_argument("--config", default=CONFIG_DEFAULT)
    pu.add_argument("--repo", help=REPO_HELP)
    pu.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    return p


def build_retriever(cfg: ViewCacheConfig) -> GitHubRetriever:
    remotes = cfg.remotes
    if not remotes:
        raise ConfigError("no repository configured (github.repo, github.remotes or --repo)")
    token = cfg.token()
    if not token:
        print_warning(
            f"{cfg.github_token_env} is not set; using unauthenticated requests",
            stream=sys.stderr,
        )
    clients = {
        name: GitHubRestClient(token=token, repo=repo, base_url=cfg.github_api_url)
        for name, repo in remotes.items()
    }
    return GitHubRetriever(clients)


def build_coordinator(cfg: ViewCacheConfig) -> RefreshCoordinator:
    retriever = build_retriever(cfg)
    checkout = cfg.source_file.parent if cfg.source_file else Path(".")
    manager = RepositoryStateManager(ManagerState.REPOSITORIES_LOADED)
    return RefreshCoordinator(
        manager,
        retriever,
        retriever,
        retriever,
        cfg.store,
        GitHeadRef(checkout),
    )


def _issue_payload(issue: ResolvedIssue) -> dict[str, Any]:
    return {"key": issue.key, "number": issue.number, "title": issue.title, "state": issue.state}


def _milestone_payload(milestone: Milestone) -> dict[str, Any]:
    return {
        "title": milestone.title,
        "id": milestone.id,
        "due_on": milestone.due_on.isoformat() if milestone.due_on else None,
        "issues": [_issue_payload(i) for i in milestone.issues or []],
    }


def _issue_line(issue: ResolvedIssue) -> str:
    return f"#{issue.number} {issue.title}"


async def _run_view(cfg: ViewCacheConfig, as_json: bool) -> int:
    coordinator = build_coordinator(cfg)
    try:
        await coordinator.initialize()
        data = coordinator.issue_data
        if isinstance(data, ByIssue):
            issues = await data.issues.result()
            if as_json:
                payload = {
                    "query": coordinator.query,
                    "issues": [_issue_payload(i) for i in issues],
                }
                print(json.dumps(payload, indent=2))
            else:
                print_header(f"Issues matching: {coordinator.query}")
                print_items([_issue_line(i) for i in issues])
            return 0
        milestones = await data.milestones.result()
        if as_json:
            print(json.dumps({"milestones": [_milestone_payload(m) for m in milestones]}, indent=2))
        else:
            for milestone in milestones:
                print_header(milestone.title)
                print_items([_issue_line(i) for i in milestone.issues or []])
        return 0
    finally:
        coordinator.dispose()


async def _run_users(cfg: ViewCacheConfig, as_json: bool) -> int:
    coordinator = build_coordinator(cfg)
    try:
        await coordinator.initialize()
        logins = coordinator.users.logins()
        if as_json:
            accounts = [coordinator.users.lookup(login) for login in logins]
            print(
                json.dumps(
                    [{"login": a.login, "name": a.name} for a in accounts if a is not None],
                    indent=2,
                )
            )
        else:
            print_header(f"Collaborators ({len(logins)})")
            print_items(logins)
        return 0
    finally:
        coordinator.dispose()


def _prepare_config(args: argparse.Namespace) -> ViewCacheConfig:
    cfg = load_config(args.config)
    if getattr(args, "repo", None):
        cfg.github_repo = args.repo
        cfg.github_remotes = {}
    if getattr(args, "query", None):
        cfg.store.update("issues", "customQuery", args.query)
    return cfg


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = _prepare_config(args)
    except ConfigError as exc:
        print_error(str(exc))
        return 2
    configure_logging(
        json_logging=cfg.logging_json_enabled,
        level="WARNING" if args.quiet or args.json else cfg.logging_level,
    )
    runner = _run_view if args.cmd == "view" else _run_users
    try:
        return asyncio.run(runner(cfg, args.json))
    except ConfigError as exc:
        print_error(str(exc))
        return 2
    except Exception as exc:
        print_error(redact(f"{args.cmd} failed: {exc}"), stream=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
