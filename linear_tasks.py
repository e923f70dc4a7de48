#!/usr/bin/env -S uv run -s
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "click>=8.1",
#   "httpx>=0.27",
#   "typer>=0.12",
#   "structlog>=24.1",
# ]
# ///
"""
Dump the issues of a Linear saved view into a dated markdown file.

Env:
  LINEAR_API_KEY  (required)
  LINEAR_API_URL  (optional, default: https://api.linear.app/graphql)

Examples:
  linear_tasks.py fetch https://linear.app/my-team/view/my-view-0123abcd
  linear_tasks.py fetch:recently-done https://linear.app/my-team/view/my-view-0123abcd 14
"""
from __future__ import annotations

import dataclasses as dc
import json
import os
import re
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import click
import httpx
import logging
import structlog
import typer

app = typer.Typer(add_completion=False, no_args_is_help=True)
log = structlog.get_logger("linear_tasks")

LINEAR_API_URL = "https://api.linear.app/graphql"
PAGE_SIZE = 100
DEFAULT_DAYS = 7
DAYS_RE = re.compile(r"^[0-9]+$")

# ---------- config / io ----------

def utc_now() -> datetime:
    return datetime.now(UTC)

def _as_utc(dt: datetime) -> datetime:
    # naive values are UTC, never host-local
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)

def _default_output_dir() -> Path:
    return Path.cwd() / "linear"

# ---------- errors ----------

class LinearError(RuntimeError):
    """Failure reported by (or while talking to) the Linear API."""

class InvalidViewUrlError(LinearError, ValueError):
    def __init__(self, message: str = "Invalid Linear view URL"):
        super().__init__(message)

class ViewNotFoundError(LinearError):
    def __init__(self, view_id: str):
        super().__init__(f"View not found: {view_id}")
        self.view_id = view_id

# ---------- models ----------

@dc.dataclass(frozen=True)
class Task:
    identifier: str
    title: str
    url: str
    completed_at: Optional[datetime] = None

@dc.dataclass(frozen=True)
class ParsedViewUrl:
    view_id: str  # kept percent-encoded

@dc.dataclass(frozen=True)
class IssuePage:
    nodes: list[dict[str, Any]]
    has_next_page: bool
    end_cursor: Optional[str] = None

class IssueSource(Protocol):
    def issues(self, *, first: int, after: Optional[str] = None) -> IssuePage: ...

class ViewClient(Protocol):
    def custom_view(self, view_id: str) -> Optional[IssueSource]: ...

# ---------- view url ----------

VIEW_URL_RE = re.compile(r"^https://linear\.app/[^/]+/view/([a-zA-Z0-9%_-]+)/?$")

def parse_view_url(url: str) -> ParsedViewUrl:
    m = VIEW_URL_RE.match(url)
    if not m:
        raise InvalidViewUrlError()
    return ParsedViewUrl(view_id=m.group(1))

# ---------- Linear GraphQL ----------

VIEW_QUERY = """
query CustomView($id: String!) {
  customView(id: $id) { id name }
}
"""

VIEW_ISSUES_QUERY = """
query CustomViewIssues($id: String!, $first: Int, $after: String) {
  customView(id: $id) {
    issues(first: $first, after: $after) {
      nodes { identifier title url completedAt }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

def _is_not_found(errors: list[dict[str, Any]]) -> bool:
    for err in errors:
        msg = str(err.get("message") or "").lower()
        code = str((err.get("extensions") or {}).get("code") or "").upper()
        if "not found" in msg or code in ("NOT_FOUND", "ENTITY_NOT_FOUND"):
            return True
    return False

class LinearClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = LINEAR_API_URL,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = base_url
        # Personal API keys go in Authorization as-is, no Bearer scheme.
        self.h = {"Authorization": api_key, "Content-Type": "application/json"}
        self.cli = httpx.Client(timeout=timeout, transport=transport)

    def __enter__(self) -> LinearClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self.cli.close()

    def query(self, document: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST one GraphQL document; returns the full JSON body (data + errors)."""
        r = self.cli.post(self.url, headers=self.h, json={"query": document, "variables": variables})
        if r.status_code >= 400:
            # Linear answers GraphQL errors with 400 and a JSON body; keep those for the caller.
            try:
                body = r.json()
            except ValueError:
                r.raise_for_status()
            if not isinstance(body, dict) or not body.get("errors"):
                r.raise_for_status()
            return body
        return r.json()

    def _data(self, document: str, variables: dict[str, Any]) -> Optional[dict[str, Any]]:
        body = self.query(document, variables)
        errors = body.get("errors") or []
        if errors:
            if _is_not_found(errors):
                return None
            log.error("graphql_error", errors=errors)
            raise LinearError(str(errors[0].get("message") or "Linear API error"))
        return body.get("data") or {}

    def custom_view(self, view_id: str) -> Optional[CustomView]:
        data = self._data(VIEW_QUERY, {"id": view_id})
        if not data or not data.get("customView"):
            return None
        return CustomView(self, view_id)

class CustomView:
    def __init__(self, client: LinearClient, view_id: str):
        self.client = client
        self.view_id = view_id

    def issues(self, *, first: int, after: Optional[str] = None) -> IssuePage:
        data = self.client._data(VIEW_ISSUES_QUERY, {"id": self.view_id, "first": first, "after": after})
        view = (data or {}).get("customView")
        if not view:
            raise ViewNotFoundError(self.view_id)
        conn = view.get("issues") or {}
        page_info = conn.get("pageInfo") or {}
        return IssuePage(
            nodes=list(conn.get("nodes") or []),
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
        )

def make_client(api_key: str) -> LinearClient:
    return LinearClient(api_key, base_url=os.environ.get("LINEAR_API_URL") or LINEAR_API_URL)

# ---------- fetch ----------

def _parse_dt(x: Any) -> Optional[datetime]:
    if not x:
        return None
    try:
        dt = x if isinstance(x, datetime) else datetime.fromisoformat(str(x).replace("Z", "+00:00"))
    except Exception:
        return None
    return _as_utc(dt)

def _task_from_node(node: dict[str, Any]) -> Task:
    return Task(
        identifier=node["identifier"],
        title=node.get("title") or "",
        url=node.get("url") or "",
        completed_at=_parse_dt(node.get("completedAt")),
    )

def fetch_tasks_from_view(client: ViewClient, view_id: str) -> list[Task]:
    """Collect every issue of a view, following cursors page by page."""
    view = client.custom_view(view_id)
    if view is None:
        raise ViewNotFoundError(view_id)

    tasks: list[Task] = []
    cursor: Optional[str] = None
    while True:
        page = view.issues(first=PAGE_SIZE, after=cursor)
        tasks.extend(_task_from_node(n) for n in page.nodes)
        log.debug("issues_page_fetched", view_id=view_id, count=len(page.nodes), after=cursor)
        if not page.has_next_page:
            break
        if not page.end_cursor or page.end_cursor == cursor:
            raise LinearError(f"Pagination stalled for view {view_id} after cursor {cursor!r}")
        cursor = page.end_cursor

    log.info("issues_fetched", view_id=view_id, count=len(tasks))
    return tasks

# ---------- filter ----------

def filter_tasks_completed_within_days(
    tasks: list[Task], days: int, now: Optional[datetime] = None
) -> list[Task]:
    now = _as_utc(now or utc_now())
    window = timedelta(days=days)
    kept = [
        t for t in tasks
        if t.completed_at is not None and timedelta(0) <= now - _as_utc(t.completed_at) <= window
    ]
    # sorted() is stable; ties keep fetch order
    return sorted(kept, key=lambda t: _as_utc(t.completed_at), reverse=True)

# ---------- markdown ----------

def _fmt_date(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown"
    return _as_utc(value).date().isoformat()

def _render(heading: str, tasks: list[Task], *, with_completed: bool) -> str:
    if not tasks:
        return f"# {heading}\n\nNo tasks found.\n"
    out = [f"# {heading}\n"]
    for t in tasks:
        out.append(f"\n## {t.identifier}\n\n")
        out.append(f"- **Title**: {t.title}\n")
        out.append(f"- **URL**: {t.url}\n")
        if with_completed:
            out.append(f"- **Completed At**: {_fmt_date(t.completed_at)}\n")
    return "".join(out)

def format_tasks_to_markdown(tasks: list[Task]) -> str:
    return _render("Linear Tasks", tasks, with_completed=False)

def format_recently_done_tasks_to_markdown(tasks: list[Task], days: int = DEFAULT_DAYS) -> str:
    return _render(f"Linear Recently Done Tasks (Last {days} Days)", tasks, with_completed=True)

# ---------- files ----------

def _save_markdown(output_dir: Path, prefix: str, content: str, clock: Callable[[], datetime]) -> Path:
    stamp = _as_utc(clock()).date().isoformat()
    path = Path(output_dir) / f"{prefix}-{stamp}.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    log.info("markdown_saved", path=str(path), bytes=len(content.encode("utf-8")))
    return path

def save_tasks_to_file(tasks: list[Task], output_dir: Path, *, clock: Callable[[], datetime] = utc_now) -> Path:
    return _save_markdown(output_dir, "list", format_tasks_to_markdown(tasks), clock)

def save_recently_done_tasks_to_file(
    tasks: list[Task],
    output_dir: Path,
    days: int = DEFAULT_DAYS,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> Path:
    return _save_markdown(output_dir, "recently-done", format_recently_done_tasks_to_markdown(tasks, days), clock)

# ---------- logging setup ----------

def configure_logging(verbosity: int) -> None:
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
        ),
        # stdout is for the report summary
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )

# ---------- CLI ----------

def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(1)

def _require_api_key() -> str:
    token = os.environ.get("LINEAR_API_KEY")
    if not token:
        raise _fail("Error: LINEAR_API_KEY environment variable is not set")
    return token

def _parse_days(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_DAYS
    raw = raw.strip()
    days = int(raw) if DAYS_RE.match(raw) else 0
    if days <= 0:
        raise _fail("Error: days must be a positive integer")
    return days

@app.command("fetch")
def fetch(
    view_url: Optional[str] = typer.Argument(None, help="Linear view URL"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where to write (default: ./linear)"),
    verbose: int = typer.Option(0, "-v", count=True, help="-v or -vv for more logs"),
):
    """Save every issue of a Linear view to list-YYYY-MM-DD.md."""
    configure_logging(verbose)
    if not view_url:
        raise _fail("Usage: linear-tasks fetch <linear-view-url>")
    api_key = _require_api_key()

    try:
        view_id = parse_view_url(view_url).view_id
        typer.echo(f"Fetching tasks from view: {view_id}")
        with make_client(api_key) as client:
            tasks = fetch_tasks_from_view(client, view_id)
        path = save_tasks_to_file(tasks, output_dir or _default_output_dir())
    except Exception as e:
        log.debug("fetch_failed", exc_info=True)
        raise _fail(f"Error: {e}")

    typer.echo(f"Saved {len(tasks)} tasks to: {path}")

@app.command("fetch:recently-done")
def fetch_recently_done(
    view_url: Optional[str] = typer.Argument(None, help="Linear view URL"),
    days: Optional[str] = typer.Argument(None, help=f"Window in days (default: {DEFAULT_DAYS})"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where to write (default: ./linear)"),
    verbose: int = typer.Option(0, "-v", count=True, help="-v or -vv for more logs"),
):
    """Save issues of a Linear view completed in the last N days to recently-done-YYYY-MM-DD.md."""
    configure_logging(verbose)
    if not view_url:
        raise _fail("Usage: linear-tasks fetch:recently-done <linear-view-url> [days]")
    n_days = _parse_days(days)
    api_key = _require_api_key()

    try:
        view_id = parse_view_url(view_url).view_id
        typer.echo(f"Fetching recently done tasks from view: {view_id}")
        with make_client(api_key) as client:
            tasks = fetch_tasks_from_view(client, view_id)
        recent = filter_tasks_completed_within_days(tasks, n_days)
        path = save_recently_done_tasks_to_file(recent, output_dir or _default_output_dir(), n_days)
    except Exception as e:
        log.debug("fetch_failed", exc_info=True)
        raise _fail(f"Error: {e}")

    typer.echo(f"Saved {len(recent)} tasks completed in last {n_days} days to: {path}")

# ---------- entry ----------

def main(argv: Optional[list[str]] = None) -> None:
    # Every usage error exits 1, including the ones click itself detects (exit 2 by default).
    try:
        code = app(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    except click.exceptions.Abort:
        typer.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        # last-ditch log
        print(json.dumps({
            "ts": utc_now().isoformat(),
            "level": "error",
            "event": "fatal",
            "error": str(e),
        }), file=sys.stderr)
        sys.exit(1)
    # typer.Exit comes back as its exit code when not in standalone mode
    sys.exit(code if isinstance(code, int) else 0)

if __name__ == "__main__":
    main()
