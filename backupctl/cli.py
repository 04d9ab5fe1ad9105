"""CLI interface for backupctl."""

import click
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from .artifacts import ArtifactName
from .config import BackupConfig, Settings, load_config
from .errors import BackupctlError
from .log import configure_logging, get_logger
from .models import PostgresConnection
from .orchestrator import Orchestrator
from .retention import artifact_created_at, sweep as sweep_directory

logger = get_logger(__name__)


def _load(config_path: Optional[str]) -> BackupConfig:
    """Load configuration or exit with an error."""
    path = config_path or Settings().config
    try:
        return load_config(path)
    except BackupctlError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(1)


def _format_age(created: datetime) -> str:
    age = datetime.now(timezone.utc) - created
    hours = int(age.total_seconds() // 3600)
    return f"{hours // 24}d {hours % 24}h"


config_option = click.option(
    "--config", "config_path", type=click.Path(dir_okay=False),
    help="Path to the TOML configuration file",
)


@click.group()
def cli():
    """backupctl - Scheduled database and cache backups"""
    pass


@cli.command()
@config_option
@click.option("--prefix", default=None, help="Log file name prefix")
@click.option("--log-dir", default=None, type=click.Path(file_okay=False), help="Directory for log files")
@click.option("--log-level", default=None, help="Minimum log level")
@click.option("--once", is_flag=True, help="Run every job once, immediately, and exit")
def run(config_path: Optional[str], prefix: Optional[str], log_dir: Optional[str],
        log_level: Optional[str], once: bool):
    """Start the backup scheduler.

    Example:
        backupctl run --config ./config.toml --prefix cron
    """
    settings = Settings()
    cfg = _load(config_path)

    configure_logging(
        log_level or settings.log_level or cfg.common.log_level or "INFO",
        log_dir=log_dir or settings.log_dir or cfg.common.log_dir or "logs",
        prefix=prefix or settings.log_prefix,
        json_logs=settings.json_logs,
    )
    logger.info("backupctl_starting", config=str(config_path or settings.config),
                services=len(cfg.services))

    try:
        orchestrator = Orchestrator.from_config(cfg)
    except BackupctlError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(1)

    def _handle_shutdown(signum, frame):
        """Stop the runners on SIGINT/SIGTERM."""
        click.echo("\nShutting down backup runners...", err=True)
        orchestrator.stop()

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    if once:
        failures = orchestrator.run(max_cycles=1, immediate=True)
        failed = sorted(
            set(failures)
            | {alias for alias, r in orchestrator.runners.items()
               if r.last_outcome is not None and not r.last_outcome.succeeded}
        )
        if failed:
            click.echo(f"✗ Backup failed for: {', '.join(failed)}", err=True)
            sys.exit(1)
        click.echo(f"✓ {len(orchestrator.runners)} backup(s) completed")
        return

    orchestrator.run()


@cli.group()
def config():
    """Inspect configuration"""
    pass


@config.command()
@config_option
def show(config_path: Optional[str]):
    """Show the loaded configuration (passwords masked).

    Example:
        backupctl config show --config ./config.toml
    """
    cfg = _load(config_path)
    policy = cfg.common.retention_policy()

    click.echo("\nCommon:")
    click.echo(f"  backup-dir:      {cfg.common.backup_dir}")
    click.echo(f"  retention-days:  {policy.retention_days}")
    click.echo(f"  log-level:       {cfg.common.log_level or '-'}")
    click.echo(f"  log-dir:         {cfg.common.log_dir or '-'}")

    click.echo(f"\n{'Alias':<20} {'Type':<10} {'Interval':<10} {'Target':<40}")
    click.echo("-" * 80)
    for spec in cfg.job_specs():
        conn = spec.connection
        target = f"{conn.host}:{conn.port}"
        if isinstance(conn, PostgresConnection):
            target = f"{conn.username}:***@{target}/{conn.database}"
        elif conn.password:
            target = f"***@{target}"
        interval = f"{spec.schedule.interval_seconds}s"
        click.echo(f"{spec.alias:<20} {spec.kind.value:<10} {interval:<10} {target:<40}")
    click.echo()


@cli.command(name="list")
@config_option
@click.option("--alias", default=None, help="Only show artifacts of this service")
def list_artifacts(config_path: Optional[str], alias: Optional[str]):
    """List backup artifacts.

    Example:
        backupctl list --alias main-db
    """
    cfg = _load(config_path)
    backup_dir = Path(cfg.common.backup_dir)
    if not backup_dir.is_dir():
        click.echo("No backups found")
        return

    artifacts = []
    for path in sorted(backup_dir.iterdir()):
        name = ArtifactName.parse(path.name)
        if name is None or (alias and name.alias != alias):
            continue
        artifacts.append((name, path))

    if not artifacts:
        click.echo("No backups found")
        return

    click.echo(f"\n{'Alias':<20} {'Type':<10} {'Timestamp':<28} {'Age':<8} {'Size':>12}")
    click.echo("-" * 82)
    for name, path in artifacts:
        stat = path.stat()
        age = _format_age(artifact_created_at(path))
        click.echo(f"{name.alias:<20} {name.kind.value:<10} {name.timestamp:<28} {age:<8} {stat.st_size:>12}")
    click.echo()


@cli.command()
@config_option
@click.option("--alias", default=None, help="Only sweep this service")
def sweep(config_path: Optional[str], alias: Optional[str]):
    """Delete artifacts older than the retention window.

    Example:
        backupctl sweep --alias main-db
    """
    cfg = _load(config_path)
    policy = cfg.common.retention_policy()
    aliases = [s.alias for s in cfg.services if alias is None or s.alias == alias]

    if not aliases:
        click.echo(f"✗ Unknown service alias: {alias}", err=True)
        sys.exit(1)

    for name in aliases:
        try:
            report = sweep_directory(cfg.common.backup_dir, name, policy)
        except BackupctlError as e:
            click.echo(f"✗ Error: {e}", err=True)
            sys.exit(1)
        click.echo(f"✓ {name}: removed {len(report.deleted)}, failed {len(report.failed)}")


if __name__ == "__main__":
    cli()
