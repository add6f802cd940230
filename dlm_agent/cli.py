# dlm_agent/cli.py

"""
Command line entry point for running and configuring the collector.
"""

import asyncio
import contextlib
import json
import signal

import click

from .config.errors import ConfigFileError, ConfigValidationError
from .config.ingestion_config import AppConfig, IngestionConfigManager, SourceSpec
from .ingestion.interfaces import LogIngestionError
from .logger import setup_logging
from .pipeline import IngestionPipeline


def load_app_config(config_file: str | None) -> AppConfig:
    if config_file:
        return IngestionConfigManager(config_file).load_config()
    return AppConfig()


def build_source_spec(
    all_containers: bool,
    labels: tuple[str, ...],
    file_path: str | None,
    follow: bool,
    url: str | None,
) -> SourceSpec:
    """Turn the collect options into a validated SourceSpec."""
    try:
        return SourceSpec(
            all_containers=all_containers,
            labels=SourceSpec.parse_labels(labels) if labels else None,
            file=file_path,
            follow=follow,
            url=url,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e


@click.group()
def cli() -> None:
    """Docker log monitor: collect, redact and chunk logs."""
    pass


@cli.command()
@click.option("--all", "all_containers", is_flag=True, help="Follow every running container")
@click.option("--label", "labels", multiple=True, help="Follow containers with label KEY=VALUE")
@click.option("--file", "file_path", type=click.Path(), help="Read a local log file")
@click.option("--follow", is_flag=True, help="Keep following --file for new lines")
@click.option("--url", help="Stream a remote log over HTTP(S)")
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML or JSON config file")
@click.option("--max-size", type=click.IntRange(min=1), help="Chunk size limit in bytes")
@click.option("--max-age", type=click.FloatRange(min=0, min_open=True), help="Chunk age limit in seconds")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override the configured log level",
)
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
def collect(
    all_containers: bool,
    labels: tuple[str, ...],
    file_path: str | None,
    follow: bool,
    url: str | None,
    config_file: str | None,
    max_size: int | None,
    max_age: float | None,
    log_level: str | None,
    json_logs: bool,
) -> None:
    """Collect logs from one source specification until interrupted."""
    spec = build_source_spec(all_containers, labels, file_path, follow, url)

    try:
        config = load_app_config(config_file)
    except ConfigValidationError as e:
        click.echo("❌ Configuration validation failed:")
        click.echo(e.format_errors())
        raise click.Abort() from e
    except ConfigFileError as e:
        click.echo(f"❌ Configuration file error: {e}")
        raise click.Abort() from e

    # Command line limits apply to every source type
    if max_size is not None or max_age is not None:
        update = {}
        if max_size is not None:
            update["max_size"] = max_size
        if max_age is not None:
            update["max_age"] = max_age
        config.chunker = config.chunker.model_copy(update=update)
        config.source_overrides = {}

    logger = setup_logging(
        level=log_level or config.logging.level,
        json_format=json_logs or config.logging.json_format,
    )
    logger.info(f"[STARTUP] Collecting from {spec.kind.value}")

    pipeline = IngestionPipeline(config=config)
    try:
        asyncio.run(_run_until_signalled(pipeline, spec))
    except LogIngestionError as e:
        logger.error(f"[STARTUP] Failed to start collection: {e}")
        raise click.ClickException(str(e)) from e

    status = pipeline.get_status()
    logger.info(
        f"[SHUTDOWN] Processed {status['consumer']['processed']} chunk(s), "
        f"dropped {status['consumer']['dropped']}, "
        f"rejected {status['consumer']['rejected']}"
    )


async def _run_until_signalled(pipeline: IngestionPipeline, spec: SourceSpec) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform; Ctrl+C still raises there
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    await pipeline.run(spec, stop_event=stop_event)


@cli.command("validate-config")
@click.argument("config_file", type=click.Path(exists=True))
@click.option("--show", is_flag=True, help="Print the effective configuration")
def validate_config(config_file: str, show: bool) -> None:
    """Validate configuration file against schema."""
    try:
        config = IngestionConfigManager(config_file).load_config()
    except ConfigValidationError as e:
        click.echo("❌ Configuration validation failed:")
        click.echo(e.format_errors())
        raise click.Abort() from e
    except ConfigFileError as e:
        click.echo(f"❌ Configuration file error: {e}")
        raise click.Abort() from e

    click.echo("✅ Configuration validation successful!")
    click.echo(f"   Schema version: {config.schema_version}")
    click.echo(
        f"   Chunker: max_size={config.chunker.max_size} bytes, "
        f"max_age={config.chunker.max_age}s"
    )
    if config.source_overrides:
        click.echo(f"   Overrides: {', '.join(sorted(config.source_overrides))}")

    if config.validation_checksum:
        if config.matches_checksum():
            click.echo("✅ Checksum matches")
        else:
            click.echo(
                f"⚠️  Checksum mismatch, settings drifted (now {config.fingerprint()[:12]})"
            )

    if show:
        click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    cli()
