"""CLI interface for pydrivesync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import DriveClient
from .config import STATE_FILE_NAME, SyncOptions, config
from .drive import Drive
from .exceptions import DriveAPIError, DriveSyncError
from .output import OutputFormatter
from .sync.state import load_watermarks

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--access-token",
    "-t",
    envvar="PYDRIVESYNC_ACCESS_TOKEN",
    help="OAuth access token for the drive API",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    access_token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pydrivesync - Two-way sync of a local directory with a remote drive."""
    ctx.ensure_object(dict)
    ctx.obj["access_token"] = access_token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydrivesync").setLevel(logging.DEBUG)
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)


def _create_client(ctx: Any) -> DriveClient:
    return DriveClient(access_token=ctx.obj.get("access_token"))


@main.command()
@click.option(
    "--access-token",
    "-t",
    prompt="Enter your access token",
    hide_input=True,
    help="OAuth access token for the drive API",
)
@click.pass_context
def init(ctx: Any, access_token: str) -> None:
    """Store an access token in ~/.config/pydrivesync/config."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        out.info("Validating access token...")
        with DriveClient(access_token=access_token) as client:
            about = client.get_about()
        out.success("✓ Access token is valid")
    except DriveAPIError as e:
        out.error(f"Access token validation failed: {e}")
        if not click.confirm("Save access token anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)
        about = {}

    try:
        config.save_access_token(access_token)
    except OSError as e:
        out.error(f"Failed to write {config.config_file}: {e}")
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Config file", str(config.config_file)),
            ("Account", about.get("name", "unknown")),
        ],
    )


@main.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option(
    "--dir",
    "-s",
    "subdir",
    help="Only sync this top-level directory",
)
@click.option("--ignore", help="Regular expression of relative paths to ignore")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Ignore the last sync time and re-evaluate every remote file",
)
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option(
    "--upload-only",
    "-u",
    is_flag=True,
    help="Never download or delete local files",
)
@click.option(
    "--no-remote-new",
    "-n",
    is_flag=True,
    help="Do not download files that are new on the remote side",
)
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Number of parallel transfers",
)
@click.pass_context
def sync(
    ctx: Any,
    root: Path,
    subdir: Optional[str],
    ignore: Optional[str],
    force: bool,
    dry_run: bool,
    upload_only: bool,
    no_remote_new: bool,
    workers: int,
) -> None:
    """Synchronize ROOT with the remote drive.

    Examples:
        pydrivesync sync ~/Drive
        pydrivesync sync ~/Drive --dir Documents --dry-run
        pydrivesync sync . --ignore '.*\\.tmp'
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        options = SyncOptions(
            path=str(root),
            dir=subdir,
            ignore=ignore,
            force=force,
            dry_run=dry_run,
            upload_only=upload_only,
            no_remote_new=no_remote_new,
            max_workers=workers,
        )
        with _create_client(ctx) as client:
            drive = Drive(client, root, options, output=out)
            result = drive.run()
    except DriveSyncError as e:
        out.error(str(e))
        ctx.exit(1)
    except OSError as e:
        out.error(f"Local file system error: {e}")
        ctx.exit(1)

    if result.orphaned:
        out.warning(f"{result.orphaned} remote item(s) have no known parent")

    if out.json_output:
        out.output_json(result.to_dict())
    else:
        out.info(f"Last sync: {result.last_sync}")

    if result.errors:
        out.error(
            f"{result.errors} transfer(s) failed; sync state was not saved, "
            "run again to retry"
        )
        ctx.exit(1)


@main.command()
@click.argument("old_path")
@click.argument("new_path")
@click.option(
    "--root",
    "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Local directory of the synced tree",
)
@click.pass_context
def rename(ctx: Any, old_path: str, new_path: str, root: Path) -> None:
    """Rename OLD_PATH to NEW_PATH locally and on the remote side.

    Both paths are relative to the synced directory.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        with _create_client(ctx) as client:
            drive = Drive(client, root, SyncOptions(path=str(root)), output=out)
            drive.rename(old_path, new_path)
    except DriveSyncError as e:
        out.error(str(e))
        ctx.exit(1)
    except OSError as e:
        out.error(f"Rename failed: {e}")
        ctx.exit(1)

    out.success(f"Renamed {old_path} to {new_path}")


@main.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.pass_context
def status(ctx: Any, root: Path) -> None:
    """Show the persisted sync watermarks of ROOT."""
    out: OutputFormatter = ctx.obj["out"]

    state_file = root / STATE_FILE_NAME
    watermarks = load_watermarks(state_file)
    configured = config.is_configured() or bool(ctx.obj.get("access_token"))

    if out.json_output:
        data: dict[str, Any] = dict(watermarks.to_dict())
        data["state_file"] = str(state_file)
        data["state_file_exists"] = state_file.exists()
        data["configured"] = configured
        out.output_json(data)
        return

    change_stamp = watermarks.change_stamp
    out.print_summary(
        "Sync Status",
        [
            ("State file", str(state_file)),
            ("Exists", "yes" if state_file.exists() else "no"),
            (
                "Last sync",
                str(watermarks.last_sync) if watermarks.last_sync else "never",
            ),
            (
                "Change stamp",
                str(change_stamp) if change_stamp is not None else "none",
            ),
            ("Access token", "configured" if configured else "missing"),
        ],
    )


if __name__ == "__main__":
    main()
