"""MCP server exposing thread reading and NG rule tools."""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, cast

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from bbs_reader.config import DAT_ENCODING, resolve_data_directory
from bbs_reader.core.listing import SORT_KEYS, SortKey, sort_threads, thread_speed
from bbs_reader.core.ng.storage import JsonFileStorage
from bbs_reader.core.ng.store import NGRuleStore, rule_from_value
from bbs_reader.core.parser.dat_reader import DatFormatError, parse_thread
from bbs_reader.core.parser.subject_reader import parse_thread_index
from bbs_reader.core.view import build_response_views, filter_thread_list
from bbs_reader.models.ng import HideMode, NGCategory


def _read_file(path: str, encoding: str) -> str | None:
    p = Path(path).expanduser()
    if not p.is_file():
        return None
    return p.read_bytes().decode(encoding, errors="replace")


# --- Core functions (testable without MCP context) ---


def read_thread(
    store: NGRuleStore,
    *,
    path: str,
    encoding: str = DAT_ENCODING,
    include_hidden: bool = False,
    offset: int = 0,
    limit: int = 100,
) -> dict[str, Any]:
    """Read a dat file and return its responses with NG outcomes.

    Args:
        path: Path to the .dat file.
        encoding: File encoding.
        include_hidden: Include responses hidden by NG rules.
        offset: Skip this many responses.
        limit: Max responses (1-1000, default 100).
    """
    text = _read_file(path, encoding)
    if text is None:
        return {"error": f"File '{path}' not found.", "responses": [], "count": 0}

    try:
        parsed = parse_thread(text)
    except DatFormatError as e:
        return {"error": f"Thread unreadable: {e}", "responses": [], "count": 0}

    offset = max(0, offset)
    limit = max(1, min(limit, 1000))
    views = build_response_views(parsed, store, include_hidden=include_hidden)
    page = views[offset : offset + limit]
    return {
        "title": parsed.title,
        "responses": [
            {
                "id": v.response.id,
                "name": v.response.name,
                "date": v.response.date,
                "author_id": v.response.author_id,
                "body": v.response.body_text,
                "refs": list(v.response.refs or ()),
                "appearance": v.response.author_id_appear_before_count,
                "author_total": v.author_total,
                "filtered": v.filter_result.filtered,
                "hide_mode": v.filter_result.hide_mode,
            }
            for v in page
        ],
        "count": len(page),
        "total": len(views),
        "has_more": offset + limit < len(views),
    }


def list_threads(
    store: NGRuleStore,
    *,
    path: str,
    encoding: str = DAT_ENCODING,
    sort: str | None = None,
    ascending: bool = False,
    limit: int = 50,
    now_ms: int | None = None,
) -> dict[str, Any]:
    """Read a subject.txt and return threads not hidden by NG rules."""
    text = _read_file(path, encoding)
    if text is None:
        return {"error": f"File '{path}' not found.", "threads": [], "count": 0}

    threads = filter_thread_list(parse_thread_index(text), store)
    if sort is not None:
        if sort not in SORT_KEYS:
            return {
                "error": f"Unknown sort key '{sort}'. Use one of {', '.join(SORT_KEYS)}.",
                "threads": [],
                "count": 0,
            }
        threads = sort_threads(
            threads,
            cast(SortKey, sort),
            order="asc" if ascending else "desc",
            now_ms=now_ms,
        )

    limit = max(1, min(limit, 500))
    serialized = [asdict(t) for t in threads[:limit]]
    if now_ms is not None:
        for item, t in zip(serialized, threads, strict=False):
            item["speed"] = thread_speed(t, now_ms)
    return {"threads": serialized, "count": len(serialized), "total": len(threads)}


def list_ng_rules(store: NGRuleStore) -> dict[str, Any]:
    """Return the NG config in its persisted form."""
    return store.config.to_dict()


def add_ng_rule(
    store: NGRuleStore,
    *,
    category: str,
    pattern: str,
    match_type: str = "partial",
    hide_mode: str | None = None,
) -> dict[str, Any]:
    """Add an NG rule, validating the user-supplied fields first."""
    try:
        cat = NGCategory(category)
    except ValueError:
        valid = ", ".join(c.value for c in NGCategory)
        return {"success": False, "error": f"Unknown category '{category}'. Use one of {valid}."}
    if not pattern:
        return {"success": False, "error": "Empty pattern."}
    if match_type not in ("partial", "regex"):
        return {"success": False, "error": f"Unknown match type '{match_type}'."}
    if hide_mode not in (None, "hidden", "collapsed"):
        return {"success": False, "error": f"Unknown hide mode '{hide_mode}'."}

    fields = rule_from_value(cat, pattern, cast(HideMode | None, hide_mode))
    fields["match_type"] = match_type
    store.add_rule(cat, fields)
    return {"success": True, "category": cat.value, "rule": store.config.rules(cat)[-1].to_dict()}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    store: NGRuleStore
    storage: JsonFileStorage


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the NG store on startup, flush and dispose it on shutdown."""
    storage = JsonFileStorage(resolve_data_directory())
    store = NGRuleStore(storage)
    try:
        yield ServerContext(store=store, storage=storage)
    finally:
        store.flush()
        store.dispose()


mcp_server = FastMCP(
    "bbs-reader",
    instructions="""\
Reads legacy BBS files: a board index (subject.txt) and individual threads (.dat).

1. Call list_threads_tool on a subject.txt to find threads; the thread id is
   the .dat file name stem.
2. Call read_thread_tool on the .dat file. Each response carries `refs`, the
   ids of later responses that quote it with >>N.
3. Responses and threads matching the user's NG rules are collapsed or left
   out. Use list_ng_rules_tool / add_ng_rule_tool to inspect or extend them.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    ctx: ServerContext = mcp_ctx.request_context.lifespan_context
    # Adopt rule edits made by other processes (e.g. the CLI) since the last call.
    ctx.storage.poll()
    return ctx


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def read_thread_tool(
    ctx: Context,
    path: str,
    encoding: str = DAT_ENCODING,
    include_hidden: bool = False,
    offset: int = 0,
    limit: int = 100,
) -> dict[str, Any]:
    """Read a thread (.dat file) with NG rules applied.

    Args:
        path: Path to the .dat file.
        encoding: File encoding (default cp932).
        include_hidden: Include responses hidden by NG rules.
        offset: Pagination offset.
        limit: Max responses (1-1000, default 100).
    """
    return read_thread(
        _ctx(ctx).store,
        path=path,
        encoding=encoding,
        include_hidden=include_hidden,
        offset=offset,
        limit=limit,
    )


@mcp_server.tool()
async def list_threads_tool(
    ctx: Context,
    path: str,
    encoding: str = DAT_ENCODING,
    sort: str | None = None,
    ascending: bool = False,
    limit: int = 50,
) -> dict[str, Any]:
    """List threads from a subject.txt with NG rules applied.

    Args:
        path: Path to subject.txt.
        encoding: File encoding (default cp932).
        sort: responseCount, speed, creationTime or lastUpdated.
        ascending: Sort ascending instead of descending.
        limit: Max threads (1-500, default 50).
    """
    return list_threads(
        _ctx(ctx).store,
        path=path,
        encoding=encoding,
        sort=sort,
        ascending=ascending,
        limit=limit,
        now_ms=int(time.time() * 1000),
    )


@mcp_server.tool()
async def list_ng_rules_tool(ctx: Context) -> dict[str, Any]:
    """Show the user's NG rules."""
    return list_ng_rules(_ctx(ctx).store)


@mcp_server.tool()
async def add_ng_rule_tool(
    ctx: Context,
    category: str,
    pattern: str,
    match_type: str = "partial",
    hide_mode: str | None = None,
) -> dict[str, Any]:
    """Add an NG rule.

    Args:
        category: thread.authorIds, thread.titles, response.authorIds,
            response.names or response.bodies.
        pattern: Text (partial match) or regular expression.
        match_type: "partial" or "regex".
        hide_mode: "hidden" or "collapsed" (response categories only).
    """
    result = add_ng_rule(
        _ctx(ctx).store,
        category=category,
        pattern=pattern,
        match_type=match_type,
        hide_mode=hide_mode,
    )
    if result["success"]:
        logger.info("Added NG rule to {}", result["category"])
    return result


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from bbs_reader.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
