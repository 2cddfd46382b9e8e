"""Command-line interface for AudioPruner."""

import asyncio
import json
import sys
from pathlib import Path

import click

from audiopruner import __version__
from audiopruner.config import load_config
from audiopruner.core.orchestrator import RemuxOrchestrator
from audiopruner.errors import AudioPrunerError
from audiopruner.models.remux import DoneEvent, ErrorEvent, ProgressEvent, RemuxRequest
from audiopruner.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    envvar="AUDIOPRUNER_CONFIG",
    help="Path to configuration file (defaults to built-in defaults)",
)
@click.pass_context
def cli(ctx, config):
    """AudioPruner - keep a single audio track in video files."""
    try:
        cfg = load_config(config)
        ctx.ensure_object(dict)
        ctx.obj["config"] = cfg

        setup_logging(cfg.logging)

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print streams as JSON")
@click.pass_context
def tracks(ctx, file, as_json):
    """List the audio streams of FILE."""
    orchestrator = RemuxOrchestrator(ctx.obj["config"])

    try:
        streams = asyncio.run(orchestrator.probe(file.resolve()))
    except AudioPrunerError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "ffmpeg_index": s.stream_index,
                        "language": s.language,
                        "title": s.title,
                        "codec": s.codec_name,
                        "channels": s.channels,
                    }
                    for s in streams
                ],
                indent=2,
            )
        )
        return

    if not streams:
        click.secho("⊘ No audio streams found", fg="yellow")
        return

    click.echo(f"{file.name}: {len(streams)} audio stream(s)")
    for stream in streams:
        click.echo(f"  {stream}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--audio-index",
    "-a",
    type=click.IntRange(min=0),
    required=True,
    help="ffmpeg stream index of the audio track to keep (see 'tracks')",
)
@click.option(
    "--keep-subtitles/--drop-subtitles",
    default=None,
    help="Keep subtitle streams (default from config)",
)
@click.option(
    "--keep-chapters/--drop-chapters",
    default=None,
    help="Keep chapter metadata (default from config)",
)
@click.option(
    "--backup/--no-backup",
    default=None,
    help="Copy the original aside after a successful remux (default from config)",
)
@click.option("--progress", is_flag=True, help="Show ffmpeg output while remuxing")
@click.pass_context
def prune(ctx, file, audio_index, keep_subtitles, keep_chapters, backup, progress):
    """Write a copy of FILE that keeps only one audio stream."""
    config = ctx.obj["config"]
    defaults = config.remux
    orchestrator = RemuxOrchestrator(config)

    request = RemuxRequest(
        source_path=file.resolve(),
        audio_stream_index=audio_index,
        keep_subtitles=defaults.keep_subtitles if keep_subtitles is None else keep_subtitles,
        keep_chapters=defaults.keep_chapters if keep_chapters is None else keep_chapters,
        create_backup=defaults.create_backup if backup is None else backup,
    )

    click.echo(f"Pruning: {file}")

    if progress:
        async def _stream():
            terminal = None
            async for event in orchestrator.remux_stream(request):
                if isinstance(event, ProgressEvent):
                    click.echo(f"  {event.line}")
                else:
                    terminal = event
            return terminal

        terminal = asyncio.run(_stream())
        if isinstance(terminal, DoneEvent):
            click.secho(f"✓ New file: {terminal.output_path}", fg="green")
            if terminal.backup_path:
                click.echo(f"  Backup:   {terminal.backup_path}")
            return
        message = terminal.message if isinstance(terminal, ErrorEvent) else "no result"
        click.secho(f"✗ {message}", fg="red", err=True)
        sys.exit(1)

    try:
        outcome = asyncio.run(orchestrator.remux(request))
    except AudioPrunerError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)

    click.secho(f"✓ New file: {outcome.output_path}", fg="green")
    if outcome.backup_path:
        click.echo(f"  Backup:   {outcome.backup_path}")
    if outcome.backup_error:
        click.secho(f"⊘ Backup not created: {outcome.backup_error}", fg="yellow")


@cli.command()
@click.argument("original", type=click.Path(path_type=Path))
@click.argument("backup", type=click.Path(path_type=Path))
@click.pass_context
def restore(ctx, original, backup):
    """Replace ORIGINAL with BACKUP."""
    orchestrator = RemuxOrchestrator(ctx.obj["config"])

    try:
        asyncio.run(orchestrator.restore(original.absolute(), backup.absolute()))
    except AudioPrunerError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)

    click.secho(f"✓ Restored {original} from {backup}", fg="green")


@cli.command()
@click.pass_context
def daemon(ctx):
    """Start the HTTP API daemon."""
    config = ctx.obj["config"]

    click.echo("Starting AudioPruner daemon...")
    click.echo(f"Listening on {config.api.host}:{config.api.port}")
    click.echo(f"Admin auth: {'enabled' if config.api.admin_token else 'not configured (mutations refused)'}")
    click.echo("")
    click.echo("Endpoints:")
    click.echo(f"  - Items:        http://{config.api.host}:{config.api.port}/api/v1/items")
    click.echo(f"  - Health check: http://{config.api.host}:{config.api.port}/health")
    click.echo(f"  - API docs:     http://{config.api.host}:{config.api.port}/docs")
    click.echo("")
    click.echo("Press Ctrl+C to stop")
    click.echo("")

    from audiopruner.daemon import start_daemon

    start_daemon(config)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"AudioPruner v{__version__}")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
