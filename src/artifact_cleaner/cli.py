"""
Artifact Cleaner CLI - Command-line interface.

Report where repository space is used and archive or delete artifacts
that have gone unused.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from artifact_cleaner import __version__
from artifact_cleaner.artifacts.buckets import ArtifactBucketCollection
from artifact_cleaner.artifacts.filters import ArtifactFilter
from artifact_cleaner.artifacts.lifecycle import ArtifactLifecycle
from artifact_cleaner.artifacts.models import (
    CleanupCriteria,
    CleanupResult,
    RepoClass,
    RepositoryInfo,
)
from artifact_cleaner.core.config import load_config
from artifact_cleaner.core.exceptions import (
    CleanerError,
    ConfigurationError,
    RuleValidationError,
    format_exception,
)
from artifact_cleaner.discovery.controller import DiscoveryController

app = typer.Typer(
    name="artifact-cleaner",
    help="Artifact Cleaner - Usage reports and cleanup for Artifactory repositories",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]
DEFAULT_LOOKBACK = timedelta(days=2 * 365)

# Column name -> (heading, accessor)
REPO_COLUMNS: dict[str, tuple[str, Callable[[RepositoryInfo], Optional[str]]]] = {
    "key": ("Key", lambda r: r.key),
    "type": ("Type", lambda r: r.rclass.value),
    "package_type": ("Package Type", lambda r: r.package_type),
    "url": ("URL", lambda r: r.url),
    "description": ("Description", lambda r: r.description),
}
DEFAULT_REPO_COLUMNS = ["key", "type", "package_type"]
DETAIL_REPO_COLUMNS = DEFAULT_REPO_COLUMNS + ["url", "description"]


class CLIState:
    """Global options, with the controller created on first use."""

    def __init__(
        self,
        conf_file: Optional[Path] = None,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        self.conf_file = conf_file
        self.endpoint = endpoint
        self.api_key = api_key
        self._controller: DiscoveryController | None = None

    def controller(self, threads: Optional[int] = None) -> DiscoveryController:
        if self._controller is None:
            config = load_config(
                self.conf_file,
                endpoint=self.endpoint,
                api_key=self.api_key,
                threads=threads,
            )
            self._controller = DiscoveryController.from_config(config)
        return self._controller

    def close(self) -> None:
        if self._controller is not None:
            self._controller.close()
            self._controller = None


@contextmanager
def _handle_errors(action: str) -> Iterator[None]:
    """Map library errors onto exit codes."""
    try:
        yield
    except (ConfigurationError, RuleValidationError) as e:
        err_console.print(str(e), style="red", markup=False)
        raise typer.Exit(EXIT_USAGE)
    except CleanerError as e:
        logger.debug(format_exception(e))
        err_console.print(f"An error occurred while {action}: {e}", style="red", markup=False)
        raise typer.Exit(EXIT_FAILURE)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _split_repos(repos: Optional[List[str]]) -> Optional[list[str]]:
    """Accept both repeated --repos flags and comma-separated values."""
    if not repos:
        return None
    keys = [key.strip() for value in repos for key in value.split(",") if key.strip()]
    return keys or None


def _parse_buckets(value: Optional[str]) -> Optional[list[float | None]]:
    """Parse '30,60,90' into boundaries ending with an unbounded bucket."""
    if not value:
        return None
    boundaries: list[float | None] = []
    for item in value.split(","):
        item = item.strip()
        try:
            boundaries.append(int(item) if item.isdigit() else float(item))
        except ValueError:
            raise typer.BadParameter(
                f"Invalid bucket size {item!r}; expected a comma separated list of days",
                param_hint="--buckets",
            )
    boundaries.append(None)
    return boundaries


def _parse_columns(value: Optional[str], details: bool) -> list[str]:
    """Parse 'key,url' into known repository column names."""
    if not value:
        return DETAIL_REPO_COLUMNS if details else DEFAULT_REPO_COLUMNS
    columns = [c.strip().lower().replace("-", "_") for c in value.split(",") if c.strip()]
    unknown = [c for c in columns if c not in REPO_COLUMNS]
    if unknown or not columns:
        raise typer.BadParameter(
            f"Invalid columns {value!r}; "
            f"available columns are: {','.join(REPO_COLUMNS)}",
            param_hint="--output",
        )
    return columns


def _print_result(result: CleanupResult) -> None:
    for line in ArtifactLifecycle.summary_lines(result):
        console.print(line)
    for error in result.errors:
        err_console.print(error, style="red", markup=False)


def _load_filter(filter_file: Optional[Path]) -> Optional[ArtifactFilter]:
    if filter_file is None:
        return None
    return ArtifactFilter.from_yaml(filter_file)


def _build_criteria(
    created_before: Optional[datetime],
    modified_before: Optional[datetime],
    downloaded_before: Optional[datetime],
    last_used_before: Optional[datetime],
) -> CleanupCriteria:
    criteria = CleanupCriteria(
        created_before=created_before,
        modified_before=modified_before,
        downloaded_before=downloaded_before,
        last_used_before=last_used_before,
    )
    if criteria.search_end is None:
        err_console.print(
            "[red]At least one end date for search must be provided "
            "(--created-before, --modified-before, --downloaded-before or --last-used-before)[/red]"
        )
        raise typer.Exit(EXIT_USAGE)
    return criteria


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Verbose mode; print additional information to stderr"
    ),
    conf_file: Optional[Path] = typer.Option(
        None,
        "--conf-file",
        "-c",
        help="Configuration file with endpoint and API key",
        exists=True,
        dir_okay=False,
    ),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Artifactory endpoint URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="Artifactory API key"),
):
    """Artifact Cleaner - Usage reports and cleanup for Artifactory repositories."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)

    state = CLIState(conf_file=conf_file, endpoint=endpoint, api_key=api_key)
    ctx.obj = state
    ctx.call_on_close(state.close)


@app.command()
def version():
    """Show version information."""
    console.print(f"Artifact Cleaner v{__version__}")


@app.command("list-repos")
def list_repos(
    ctx: typer.Context,
    local: bool = typer.Option(True, "--local/--no-local", help="Include local repositories"),
    remote: bool = typer.Option(
        False, "--remote/--no-remote", help="Include remote (replication) repositories"
    ),
    virtual: bool = typer.Option(
        False, "--virtual/--no-virtual", help="Include virtual (union) repositories"
    ),
    details: bool = typer.Option(False, "--details", help="Show URL and description"),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help=f"Comma separated list of columns to display: {','.join(REPO_COLUMNS)}",
    ),
    no_headers: bool = typer.Option(
        False, "--no-headers", "-H", help="Scripting mode: no headers, tab-separated fields"
    ),
):
    """List all available repositories."""
    state: CLIState = ctx.obj
    columns = _parse_columns(output, details)
    with _handle_errors("listing repositories"):
        repos = state.controller().discover_repos()

    selected = [
        rclass
        for rclass, wanted in (
            (RepoClass.LOCAL, local),
            (RepoClass.REMOTE, remote),
            (RepoClass.VIRTUAL, virtual),
        )
        if wanted
    ]
    rows = [
        [REPO_COLUMNS[column][1](repo) or "" for column in columns]
        for rclass in selected
        for repo in repos[rclass].values()
    ]

    if no_headers:
        for row in rows:
            typer.echo("\t".join(row))
        return

    table = Table(title=f"Repositories ({len(rows)})")
    for column in columns:
        heading = REPO_COLUMNS[column][0]
        style = {"key": "cyan", "type": "magenta"}.get(column)
        table.add_column(heading, style=style)
    for row in rows:
        table.add_row(*row)
    console.print(table)


@app.command("usage-report")
def usage_report(
    ctx: typer.Context,
    date_from: Optional[datetime] = typer.Option(
        None, "--from", formats=DATE_FORMATS, help="Start of the search; defaults to 2 years ago"
    ),
    date_to: Optional[datetime] = typer.Option(
        None, "--to", formats=DATE_FORMATS, help="End of the search; defaults to now"
    ),
    repos: Optional[List[str]] = typer.Option(
        None, "--repos", help="Repos to analyze; all repos if omitted"
    ),
    threads: Optional[int] = typer.Option(
        None, "--threads", min=1, help="Number of threads used to fetch artifact info"
    ),
    buckets: Optional[str] = typer.Option(
        None, "--buckets", help="Comma separated list of bucket sizes (age in days)"
    ),
    details: bool = typer.Option(
        False, "--details", help="Produce a detailed YAML report listing all artifacts"
    ),
):
    """Analyze usage and report where space is used."""
    state: CLIState = ctx.obj
    boundaries = _parse_buckets(buckets)
    date_to = _utc(date_to) or datetime.now(timezone.utc)
    date_from = _utc(date_from) or date_to - DEFAULT_LOOKBACK

    with _handle_errors("generating the usage report"):
        controller = state.controller(threads=threads)
        logger.debug(f"Bucketizing artifacts from {date_from} to {date_to} repos {repos}")
        collection = controller.bucketize(
            date_from,
            date_to,
            repos=_split_repos(repos),
            concurrency=threads,
            bucket_boundaries=boundaries,
        )

    for line in controller.bucketized_report(collection):
        err_console.print(line)
    if controller.last_errors:
        err_console.print(
            f"[yellow]{len(controller.last_errors)} artifacts could not be fetched[/yellow]"
        )

    if details:
        typer.echo(yaml.safe_dump(_bucket_document(collection), sort_keys=False))


def _bucket_document(collection: ArtifactBucketCollection) -> dict:
    return {
        "buckets": [
            {
                "min": bucket.min_age,
                "max": bucket.max_age,
                "artifact_count": len(bucket),
                "total_size": bucket.total_size,
                "artifacts": [artifact.to_report_dict() for artifact in bucket],
            }
            for bucket in collection
        ]
    }


@app.command()
def archive(
    ctx: typer.Context,
    archive_to: Path = typer.Option(
        ...,
        "--archive-to",
        help="Existing directory under which to store archived artifacts",
        exists=True,
        file_okay=False,
        writable=True,
        resolve_path=True,
    ),
    date_from: Optional[datetime] = typer.Option(
        None, "--from", formats=DATE_FORMATS, help="Earliest date to search; defaults to 2 years ago"
    ),
    created_before: Optional[datetime] = typer.Option(
        None, "--created-before", formats=DATE_FORMATS, help="Created earlier than this date"
    ),
    modified_before: Optional[datetime] = typer.Option(
        None, "--modified-before", formats=DATE_FORMATS, help="Last modified earlier than this date"
    ),
    downloaded_before: Optional[datetime] = typer.Option(
        None,
        "--downloaded-before",
        formats=DATE_FORMATS,
        help="Last downloaded earlier than this date",
    ),
    last_used_before: Optional[datetime] = typer.Option(
        None,
        "--last-used-before",
        formats=DATE_FORMATS,
        help="Created, modified and downloaded earlier than this date",
    ),
    repos: Optional[List[str]] = typer.Option(
        None, "--repos", help="Repos to archive from; all repos if omitted"
    ),
    threads: Optional[int] = typer.Option(
        None, "--threads", min=1, help="Number of threads used to fetch artifact info"
    ),
    filter_file: Optional[Path] = typer.Option(
        None, "--filter", help="YAML file of filter rules", exists=True, dir_okay=False
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Only show what would have been archived"
    ),
):
    """
    Download artifacts meeting specific criteria.

    Downloading updates each artifact's last-downloaded date, so repeating a
    --last-used-before run may match a different set. Consider
    'clean --archive-to' instead.
    """
    state: CLIState = ctx.obj
    criteria = _build_criteria(created_before, modified_before, downloaded_before, last_used_before)
    date_from = _utc(date_from) or datetime.now(timezone.utc) - DEFAULT_LOOKBACK

    with _handle_errors("archiving artifacts"):
        artifact_filter = _load_filter(filter_file)
        lifecycle = ArtifactLifecycle(state.controller(threads=threads))
        result = lifecycle.archive(
            date_from,
            criteria,
            archive_to,
            repos=_split_repos(repos),
            artifact_filter=artifact_filter,
            dry_run=dry_run,
            concurrency=threads,
        )

    _print_result(result)
    if not result.success:
        raise typer.Exit(EXIT_FAILURE)


@app.command()
def clean(
    ctx: typer.Context,
    archive_to: Optional[Path] = typer.Option(
        None,
        "--archive-to",
        help="Save artifacts under this existing directory before deletion",
        exists=True,
        file_okay=False,
        writable=True,
        resolve_path=True,
    ),
    date_from: Optional[datetime] = typer.Option(
        None, "--from", formats=DATE_FORMATS, help="Earliest date to search; defaults to 2 years ago"
    ),
    created_before: Optional[datetime] = typer.Option(
        None, "--created-before", formats=DATE_FORMATS, help="Created earlier than this date"
    ),
    modified_before: Optional[datetime] = typer.Option(
        None, "--modified-before", formats=DATE_FORMATS, help="Last modified earlier than this date"
    ),
    downloaded_before: Optional[datetime] = typer.Option(
        None,
        "--downloaded-before",
        formats=DATE_FORMATS,
        help="Last downloaded earlier than this date",
    ),
    last_used_before: Optional[datetime] = typer.Option(
        None,
        "--last-used-before",
        formats=DATE_FORMATS,
        help="Created, modified and downloaded earlier than this date",
    ),
    repos: Optional[List[str]] = typer.Option(
        None, "--repos", help="Repos to clean; all repos if omitted"
    ),
    threads: Optional[int] = typer.Option(
        None, "--threads", min=1, help="Number of threads used to fetch artifact info"
    ),
    filter_file: Optional[Path] = typer.Option(
        None, "--filter", help="YAML file of filter rules", exists=True, dir_okay=False
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Only show what would have been deleted"
    ),
):
    """Delete artifacts meeting specific criteria."""
    state: CLIState = ctx.obj
    criteria = _build_criteria(created_before, modified_before, downloaded_before, last_used_before)
    date_from = _utc(date_from) or datetime.now(timezone.utc) - DEFAULT_LOOKBACK

    with _handle_errors("cleaning artifacts"):
        artifact_filter = _load_filter(filter_file)
        lifecycle = ArtifactLifecycle(state.controller(threads=threads))
        result = lifecycle.clean(
            date_from,
            criteria,
            archive_to,
            repos=_split_repos(repos),
            artifact_filter=artifact_filter,
            dry_run=dry_run,
            concurrency=threads,
        )

    _print_result(result)
    if not result.success:
        raise typer.Exit(EXIT_FAILURE)


if __name__ == "__main__":
    app()
