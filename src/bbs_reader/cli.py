"""CLI for bbs-reader (read threads, list boards, manage NG rules, MCP server)."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, cast

import typer
from loguru import logger

from bbs_reader.config import DAT_ENCODING, resolve_data_directory
from bbs_reader.core.listing import (
    SORT_KEYS,
    SortKey,
    SortOrder,
    sort_threads,
    thread_created_at,
)
from bbs_reader.core.ng.storage import JsonFileStorage
from bbs_reader.core.ng.store import NGRuleStore
from bbs_reader.core.parser.dat_reader import DatFormatError, parse_thread
from bbs_reader.core.parser.subject_reader import parse_thread_index
from bbs_reader.core.view import build_response_views, filter_thread_list
from bbs_reader.logging_config import configure_logging
from bbs_reader.models.ng import NGCategory

app = typer.Typer(help="Read legacy BBS dat/subject.txt files with NG filtering.")
ng_app = typer.Typer(help="Manage NG (hide) rules.")
app.add_typer(ng_app, name="ng")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory holding the NG rule config"),
]
EncodingOption = Annotated[
    str, typer.Option("--encoding", "-e", help="Encoding of the input file")
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _open_store(data_dir: Path | None) -> NGRuleStore:
    return NGRuleStore(JsonFileStorage(data_dir or resolve_data_directory()))


def _read_text(path: Path, encoding: str) -> str:
    if not path.is_file():
        logger.error("File not found: {}", path)
        raise typer.Exit(1)
    return path.read_bytes().decode(encoding, errors="replace")


@app.command()
def thread(
    path: Path = typer.Argument(..., help="Path to a .dat file"),
    encoding: EncodingOption = DAT_ENCODING,
    data_dir: DataDirOption = None,
    show_hidden: bool = typer.Option(False, "--show-hidden", help="Include hidden responses"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Print a thread with NG rules applied."""
    text = _read_text(path, encoding)
    try:
        parsed = parse_thread(text)
    except DatFormatError as e:
        logger.error("Thread unreadable: {}", e)
        raise typer.Exit(1) from e

    with _open_store(data_dir) as store:
        views = build_response_views(parsed, store, include_hidden=show_hidden)

    if output_json:
        data = {
            "title": parsed.title,
            "responses": [
                {
                    **asdict(v.response),
                    "filtered": v.filter_result.filtered,
                    "hide_mode": v.filter_result.hide_mode,
                    "author_total": v.author_total,
                }
                for v in views
            ],
        }
        typer.echo(json.dumps(data, ensure_ascii=False, indent=2))
        return

    typer.echo(f"{parsed.title}\n")
    for v in views:
        r = v.response
        header = f"{r.id}. {r.name} {r.date} ID:{r.author_id}"
        if v.author_total > 1:
            header += f" ({r.author_id_appear_before_count}/{v.author_total})"
        typer.echo(header)
        if v.filter_result.filtered:
            typer.echo(f"    [NG: {v.filter_result.hide_mode}]")
        else:
            typer.echo(f"    {r.body_text}")
        if r.refs:
            typer.echo(f"    <- {', '.join(f'>>{ref}' for ref in r.refs)}")
        typer.echo()


@app.command()
def subject(
    path: Path = typer.Argument(..., help="Path to a subject.txt file"),
    encoding: EncodingOption = DAT_ENCODING,
    data_dir: DataDirOption = None,
    sort: Annotated[
        str | None,
        typer.Option("--sort", "-s", help=f"Sort key: {', '.join(SORT_KEYS)}"),
    ] = None,
    ascending: bool = typer.Option(False, "--asc", help="Sort ascending"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List the threads of a board with NG rules applied."""
    threads = parse_thread_index(_read_text(path, encoding))

    with _open_store(data_dir) as store:
        threads = filter_thread_list(threads, store)

    if sort:
        if sort not in SORT_KEYS:
            logger.error("Unknown sort key {!r}, expected one of {}", sort, ", ".join(SORT_KEYS))
            raise typer.Exit(1)
        order: SortOrder = "asc" if ascending else "desc"
        threads = sort_threads(threads, cast(SortKey, sort), order=order)

    if output_json:
        typer.echo(json.dumps([asdict(t) for t in threads], ensure_ascii=False, indent=2))
        return

    typer.echo(f"{len(threads)} threads:\n")
    for t in threads:
        author = f" [{t.author_id}]" if t.author_id else ""
        typer.echo(f"  {t.title}{author} ({t.response_count})")
        typer.echo(f"    id={t.id}  created {thread_created_at(t):%Y/%m/%d %H:%M}")


@ng_app.command("list")
def ng_list(
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show all NG rules."""
    with _open_store(data_dir) as store:
        config = store.config

    if output_json:
        typer.echo(json.dumps(config.to_dict(), ensure_ascii=False, indent=2))
        return

    for category in NGCategory:
        rules = config.rules(category)
        typer.echo(f"{category.value} ({len(rules)})")
        for rule in rules:
            state = "on " if rule.enabled else "off"
            hide = f" {rule.hide_mode}" if rule.hide_mode else ""
            typer.echo(f"  [{state}] {rule.match_type:<7} {rule.pattern}{hide}  id={rule.id}")


@ng_app.command("add")
def ng_add(
    category: NGCategory = typer.Argument(..., help="Rule category"),
    pattern: str = typer.Argument(..., help="Text or regular expression to match"),
    regex: bool = typer.Option(False, "--regex", "-r", help="Treat pattern as a regex"),
    hide_mode: Annotated[
        str | None,
        typer.Option("--hide-mode", help="hidden or collapsed (response rules only)"),
    ] = None,
    disabled: bool = typer.Option(False, "--disabled", help="Add the rule switched off"),
    data_dir: DataDirOption = None,
) -> None:
    """Add an NG rule."""
    if not pattern:
        logger.error("Pattern must not be empty")
        raise typer.Exit(1)
    if hide_mode not in (None, "hidden", "collapsed"):
        logger.error("Invalid hide mode: {!r}", hide_mode)
        raise typer.Exit(1)

    fields = {
        "pattern": pattern,
        "match_type": "regex" if regex else "partial",
        "enabled": not disabled,
    }
    if hide_mode and category.is_response_scoped:
        fields["hide_mode"] = hide_mode

    with _open_store(data_dir) as store:
        store.add_rule(category, fields)
    typer.echo(f"Added rule to {category.value}")


def _require_rule(store: NGRuleStore, category: NGCategory, rule_id: str) -> None:
    if not any(r.id == rule_id for r in store.config.rules(category)):
        typer.echo(f"Rule '{rule_id}' not found in {category.value}.")
        raise typer.Exit(1)


@ng_app.command("update")
def ng_update(
    category: NGCategory = typer.Argument(..., help="Rule category"),
    rule_id: str = typer.Argument(..., help="Rule id"),
    pattern: Annotated[str | None, typer.Option("--pattern", "-p", help="New pattern")] = None,
    regex: Annotated[
        bool | None, typer.Option("--regex/--partial", help="Change match type")
    ] = None,
    hide_mode: Annotated[
        str | None, typer.Option("--hide-mode", help="hidden or collapsed")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Change fields of an NG rule."""
    updates: dict[str, object] = {}
    if pattern is not None:
        if not pattern:
            logger.error("Pattern must not be empty")
            raise typer.Exit(1)
        updates["pattern"] = pattern
    if regex is not None:
        updates["match_type"] = "regex" if regex else "partial"
    if hide_mode is not None:
        if hide_mode not in ("hidden", "collapsed"):
            logger.error("Invalid hide mode: {!r}", hide_mode)
            raise typer.Exit(1)
        updates["hide_mode"] = hide_mode
    if not updates:
        typer.echo("Nothing to update.")
        raise typer.Exit(1)

    with _open_store(data_dir) as store:
        _require_rule(store, category, rule_id)
        store.update_rule(category, rule_id, **updates)
    typer.echo(f"Updated rule {rule_id}")


@ng_app.command("remove")
def ng_remove(
    category: NGCategory = typer.Argument(..., help="Rule category"),
    rule_id: str = typer.Argument(..., help="Rule id"),
    data_dir: DataDirOption = None,
) -> None:
    """Remove an NG rule."""
    with _open_store(data_dir) as store:
        _require_rule(store, category, rule_id)
        store.remove_rule(category, rule_id)
    typer.echo(f"Removed rule {rule_id}")


@ng_app.command("toggle")
def ng_toggle(
    category: NGCategory = typer.Argument(..., help="Rule category"),
    rule_id: str = typer.Argument(..., help="Rule id"),
    data_dir: DataDirOption = None,
) -> None:
    """Switch an NG rule on or off."""
    with _open_store(data_dir) as store:
        _require_rule(store, category, rule_id)
        store.toggle_rule(category, rule_id)
        enabled = next(r.enabled for r in store.config.rules(category) if r.id == rule_id)
    typer.echo(f"Rule {rule_id} is now {'enabled' if enabled else 'disabled'}")


@ng_app.command("clear")
def ng_clear(
    data_dir: DataDirOption = None,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete every NG rule."""
    if not yes:
        typer.confirm("Delete all NG rules?", abort=True)
    with _open_store(data_dir) as store:
        store.clear_all_rules()
    typer.echo("All NG rules cleared.")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from bbs_reader.mcp.server import run_mcp_server

    run_mcp_server()
