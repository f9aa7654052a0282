"""linearsuite CLI.

Command groups:
  issues bulk-update    -> apply the same field update to many issues
  issues bulk-label     -> add/remove labels on many issues
  issues add-labels     -> add labels to one issue
  issues remove-labels  -> remove labels from one issue
  issues archive        -> archive (or unarchive) one or more issues
  config get|set|list   -> persisted defaults
  auth login|logout     -> store or forget the API key

Output goes to stdout as a JSON envelope by default (``--format table|plain``
for humans and scripts). Errors are printed as an error envelope on stderr and
exit with status 1. A bulk command whose items partially fail still exits 0;
the per-item outcome is in the envelope.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from linearsuite.batch import BatchRunner
from linearsuite.config import CliSettings
from linearsuite.config_store import (
    CONFIG_KEYS,
    ConfigStore,
    config_key_to_defaults_key,
    is_valid_config_key,
)
from linearsuite.errors import ErrorCodes, InvalidInput, LinearSuiteError, describe
from linearsuite.identifiers import split_tokens
from linearsuite.linear_api import AsyncLinearApi, LinearClient
from linearsuite.operations import (
    OperationOutcome,
    add_labels,
    build_update_fields,
    bulk_archive,
    bulk_label,
    bulk_update,
    remove_labels,
    require_tokens,
    validate_label_request,
    validate_update,
)
from linearsuite.output import (
    OUTPUT_FORMATS,
    disable_colors,
    failure,
    print_json,
    render_batch,
    render_item,
    success,
)
from linearsuite.runtime import execute_command, prepare_settings

T = TypeVar("T")

IDS_HELP = "Comma-separated issue IDs or identifiers (e.g., ENG-1,ENG-2,ENG-3)"
ID_HELP = "Issue ID or identifier (e.g., ENG-123)"

_MAX_HELP_WIDTH = 100

ApiFactory = Callable[[CliSettings, ConfigStore], Any]


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_format(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-F", "--format", choices=OUTPUT_FORMATS, default="json", help="Output format"
    )


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with command groups.

    Keep ordering stable for help output readability.
    """
    p = _FormatterArgumentParser(prog="linearsuite", description="Linear issue automation")
    p.add_argument("--settings", help="Path to settings YAML (env: LINEARSUITE_SETTINGS)")
    p.add_argument("--config-path", help="Override the persisted config file location")
    p.add_argument(
        "--max-workers",
        type=int,
        help="Cap concurrent API calls in bulk commands (0 = unbounded)",
    )
    p.add_argument("--quiet", action="store_true", help="Only log errors")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--no-color", action="store_true", help="Disable colored output")
    groups = p.add_subparsers(
        dest="group", required=True, parser_class=_FormatterArgumentParser, metavar="<group>"
    )

    issues = groups.add_parser("issues", help="Issue mutations")
    isub = issues.add_subparsers(dest="cmd", required=True, metavar="<command>")

    bu = isub.add_parser("bulk-update", help="Update multiple issues at once")
    bu.add_argument("--ids", required=True, help=IDS_HELP)
    bu.add_argument("--state-id", help="New state ID for all issues")
    bu.add_argument(
        "-p",
        "--priority",
        type=int,
        help="New priority (0=none, 1=urgent, 2=high, 3=medium, 4=low)",
    )
    bu.add_argument(
        "--assignee-id", help="New assignee user ID (use empty string to unassign)"
    )
    bu.add_argument("--project-id", help="New project ID")
    bu.add_argument("--estimate", type=int, help="New estimate points")
    bu.add_argument("--label-ids", help="Comma-separated label IDs (replaces existing labels)")
    _add_format(bu)

    bl = isub.add_parser("bulk-label", help="Add or remove labels from multiple issues")
    bl.add_argument("--ids", required=True, help=IDS_HELP)
    bl.add_argument("--add-labels", help="Comma-separated label IDs to add")
    bl.add_argument("--remove-labels", help="Comma-separated label IDs to remove")
    _add_format(bl)

    al = isub.add_parser("add-labels", help="Add labels to an issue")
    al.add_argument("id", help=ID_HELP)
    al.add_argument("--label-ids", required=True, help="Comma-separated label IDs to add")
    _add_format(al)

    rl = isub.add_parser("remove-labels", help="Remove labels from an issue")
    rl.add_argument("id", help=ID_HELP)
    rl.add_argument("--label-ids", required=True, help="Comma-separated label IDs to remove")
    _add_format(rl)

    ar = isub.add_parser("archive", help="Archive one or more issues")
    ar.add_argument("--ids", required=True, help=IDS_HELP)
    ar.add_argument(
        "-u", "--unarchive", action="store_true", help="Unarchive instead of archive"
    )
    _add_format(ar)

    config = groups.add_parser("config", help="Manage persisted defaults")
    csub = config.add_subparsers(dest="cmd", required=True, metavar="<command>")
    cg = csub.add_parser("get", help="Get a configuration value")
    cg.add_argument("key", help=f"Config key ({', '.join(CONFIG_KEYS)})")
    cs = csub.add_parser("set", help="Set a configuration value")
    cs.add_argument("key", help=f"Config key ({', '.join(CONFIG_KEYS)})")
    cs.add_argument("value", help="Config value")
    csub.add_parser("list", help="List all configuration values")

    auth = groups.add_parser("auth", help="Manage the stored API key")
    asub = auth.add_subparsers(dest="cmd", required=True, metavar="<command>")
    login = asub.add_parser("login", help="Store an API key in the config file")
    login.add_argument("--api-key", required=True, help="Linear personal API key")
    asub.add_parser("logout", help="Remove the stored API key")

    return p


@dataclass
class CommandContext:
    settings: CliSettings
    store: ConfigStore
    api_factory: ApiFactory

    def runner(self, operation: str) -> BatchRunner:
        return BatchRunner(self.settings.max_workers, operation=operation)


def _default_api_factory(settings: CliSettings, store: ConfigStore) -> AsyncLinearApi:
    client = LinearClient(
        api_key=store.require_api_key(),
        api_url=settings.api_url,
        timeout=settings.api_timeout,
    )
    return AsyncLinearApi(client, max_workers=settings.max_workers)


def _with_api(ctx: CommandContext, op: Callable[[Any], Awaitable[T]]) -> T:
    async def _run() -> T:
        api = ctx.api_factory(ctx.settings, ctx.store)
        async with api:
            return await op(api)

    return asyncio.run(_run())


def _emit_batch(outcome: OperationOutcome, fmt: str) -> int:
    print(render_batch(outcome.to_dict(), fmt))
    return 0


# ---- issues -------------------------------------------------------------


def _cmd_bulk_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    fields = build_update_fields(
        state_id=args.state_id,
        priority=args.priority,
        assignee_id=args.assignee_id,
        project_id=args.project_id,
        estimate=args.estimate,
        label_ids=split_tokens(args.label_ids),
    )
    tokens = split_tokens(args.ids)
    # Validate before building the API client so no credentials are needed.
    validate_update(fields, tokens)
    runner = ctx.runner("bulk_update")
    outcome = _with_api(ctx, lambda api: bulk_update(api, tokens, fields, runner))
    return _emit_batch(outcome, args.format)


def _cmd_bulk_label(ctx: CommandContext, args: argparse.Namespace) -> int:
    add = split_tokens(args.add_labels)
    remove = split_tokens(args.remove_labels)
    tokens = split_tokens(args.ids)
    validate_label_request(add, remove, tokens)
    runner = ctx.runner("bulk_label")
    outcome = _with_api(ctx, lambda api: bulk_label(api, tokens, add, remove, runner))
    return _emit_batch(outcome, args.format)


def _cmd_add_labels(ctx: CommandContext, args: argparse.Namespace) -> int:
    label_ids = split_tokens(args.label_ids)
    if not label_ids:
        raise InvalidInput("No label IDs provided")
    item = _with_api(ctx, lambda api: add_labels(api, args.id, label_ids))
    print(render_item(item, args.format))
    return 0


def _cmd_remove_labels(ctx: CommandContext, args: argparse.Namespace) -> int:
    label_ids = split_tokens(args.label_ids)
    if not label_ids:
        raise InvalidInput("No label IDs provided")
    item = _with_api(ctx, lambda api: remove_labels(api, args.id, label_ids))
    print(render_item(item, args.format))
    return 0


def _cmd_archive(ctx: CommandContext, args: argparse.Namespace) -> int:
    tokens = require_tokens(split_tokens(args.ids))
    action = "unarchive" if args.unarchive else "archive"
    runner = ctx.runner(f"bulk_{action}")
    outcome = _with_api(
        ctx, lambda api: bulk_archive(api, tokens, runner, unarchive=args.unarchive)
    )
    return _emit_batch(outcome, args.format)


# ---- config / auth ------------------------------------------------------


def _require_config_key(key: str) -> str:
    if not is_valid_config_key(key):
        raise InvalidInput(f"Invalid config key: {key}. Valid keys: {', '.join(CONFIG_KEYS)}")
    return config_key_to_defaults_key(key)


def _cmd_config_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    defaults_key = _require_config_key(args.key)
    value = ctx.store.get_defaults().get(defaults_key)
    print_json(success({"key": args.key, "value": value, "isSet": value is not None}))
    return 0


def _cmd_config_set(ctx: CommandContext, args: argparse.Namespace) -> int:
    defaults_key = _require_config_key(args.key)
    ctx.store.set_default(defaults_key, args.value)
    print_json(
        success(
            {
                "key": args.key,
                "value": args.value,
                "message": f'Configuration "{args.key}" set successfully',
            }
        )
    )
    return 0


def _cmd_config_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    defaults = ctx.store.get_defaults()
    source = ctx.store.api_key_source()
    print_json(
        success(
            {
                "configPath": str(ctx.store.path),
                "authenticated": source is not None,
                "apiKeySource": source,
                "defaults": {
                    key: defaults.get(config_key_to_defaults_key(key)) for key in CONFIG_KEYS
                },
            }
        )
    )
    return 0


def _cmd_auth_login(ctx: CommandContext, args: argparse.Namespace) -> int:
    api_key = (args.api_key or "").strip()
    if not api_key:
        raise InvalidInput("API key must not be empty")
    ctx.store.save_api_key(api_key)
    print_json(success({"message": "API key saved", "configPath": str(ctx.store.path)}))
    return 0


def _cmd_auth_logout(ctx: CommandContext, args: argparse.Namespace) -> int:
    ctx.store.remove_api_key()
    print_json(success({"message": "API key removed", "configPath": str(ctx.store.path)}))
    return 0


_HANDLERS: dict[tuple[str, str], Callable[[CommandContext, argparse.Namespace], int]] = {
    ("issues", "bulk-update"): _cmd_bulk_update,
    ("issues", "bulk-label"): _cmd_bulk_label,
    ("issues", "add-labels"): _cmd_add_labels,
    ("issues", "remove-labels"): _cmd_remove_labels,
    ("issues", "archive"): _cmd_archive,
    ("config", "get"): _cmd_config_get,
    ("config", "set"): _cmd_config_set,
    ("config", "list"): _cmd_config_list,
    ("auth", "login"): _cmd_auth_login,
    ("auth", "logout"): _cmd_auth_logout,
}


def _report_error(exc: BaseException) -> int:
    if isinstance(exc, LinearSuiteError):
        payload = failure(exc.code, describe(exc), exc.details)
    else:
        payload = failure(ErrorCodes.UNKNOWN_ERROR, describe(exc))
    print_json(payload, stream=sys.stderr)
    return 1


def main(
    argv: list[str] | None = None,
    *,
    store: ConfigStore | None = None,
    api_factory: ApiFactory | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.no_color:
        disable_colors()
    handler = _HANDLERS.get((args.group, args.cmd))
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    command = f"{args.group} {args.cmd}"
    try:
        settings = prepare_settings(args)
        ctx = CommandContext(
            settings=settings,
            store=store or ConfigStore(args.config_path or settings.config_store_path),
            api_factory=api_factory or _default_api_factory,
        )
        return execute_command(lambda: handler(ctx, args), command)
    except Exception as exc:
        return _report_error(exc)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
