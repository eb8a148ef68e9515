import asyncio
import json
import logging
import random
from pathlib import Path

import typer
from pydantic import ValidationError

from receipt_mint.config import Settings, load_settings
from receipt_mint.core.art import ArtPool, ArtPoolError, load_art_pool
from receipt_mint.integrations.local_export import MetadataExporter
from receipt_mint.integrations.ocr import OCREngine
from receipt_mint.logging_config import setup_logging
from receipt_mint.models import format_money
from receipt_mint.pipeline import InvalidInputError, ReceiptPipeline

app = typer.Typer(no_args_is_help=True)


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug logging on stderr"
    ),
):
    """Turn receipt images into NFT metadata."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _load_settings_or_exit(config: Path | None) -> Settings:
    try:
        return load_settings(config)
    except (FileNotFoundError, json.JSONDecodeError, ValidationError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1) from e


def _load_pool_or_exit(settings: Settings) -> ArtPool:
    try:
        return load_art_pool(settings.art_pool_path)
    except (FileNotFoundError, ArtPoolError) as e:
        typer.echo(f"Failed to load art pool: {e}", err=True)
        raise typer.Exit(code=1) from e


def _rng(seed: int | None) -> random.Random | None:
    return random.Random(seed) if seed is not None else None


@app.command()
def process(
    images: list[Path] = typer.Argument(..., help="Receipt image files"),
    count: int | None = typer.Option(
        None, "--count", "-c", min=1, help="Art options per receipt"
    ),
    seed: int | None = typer.Option(
        None, "--seed", help="Seed for reproducible art selection"
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="JSON Lines file to append results to"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="JSON settings file"
    ),
):
    """OCR receipt images and build NFT metadata for each."""
    settings = _load_settings_or_exit(config)
    art_pool = _load_pool_or_exit(settings)

    try:
        ocr_engine = OCREngine()
        # Eagerly initialize the Vision API client in the main thread
        # to avoid gRPC initialization warnings when running in executor
        _ = ocr_engine.client
    except Exception as e:
        typer.echo(f"Failed to initialize OCR engine: {e}", err=True)
        raise typer.Exit(code=1) from e

    pipeline = ReceiptPipeline(
        settings=settings, art_pool=art_pool, ocr_engine=ocr_engine, rng=_rng(seed)
    )

    def cli_progress(event_type: str, message: str):
        """Callback to handle progress events and output to CLI."""
        if "error" in event_type:
            typer.echo(message, err=True)
        else:
            typer.echo(message)

    try:
        results = asyncio.run(
            pipeline.process_batch(images, count=count, on_progress=cli_progress)
        )
    except InvalidInputError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    if output:
        try:
            written = MetadataExporter().export(results, output)
        except OSError as e:
            typer.echo(f"Failed to write {output}: {e}", err=True)
            raise typer.Exit(code=1) from e
        typer.echo(f"Wrote {written} records to {output}")
    else:
        for result in results:
            if result.metadata:
                typer.echo(json.dumps(result.metadata.to_json_dict(), ensure_ascii=False))


@app.command()
def parse(
    text_file: Path = typer.Argument(..., help="File containing raw OCR text"),
    count: int | None = typer.Option(
        None, "--count", "-c", min=1, help="Art options to select"
    ),
    seed: int | None = typer.Option(
        None, "--seed", help="Seed for reproducible art selection"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="JSON settings file"
    ),
):
    """Run already-extracted receipt text through the pipeline and print JSON."""
    settings = _load_settings_or_exit(config)
    art_pool = _load_pool_or_exit(settings)

    if not text_file.is_file():
        typer.echo(f"Error: Text file not found: {text_file}", err=True)
        raise typer.Exit(code=1)

    pipeline = ReceiptPipeline(
        settings=settings,
        art_pool=art_pool,
        ocr_engine=OCREngine(),
        rng=_rng(seed),
    )
    try:
        result = pipeline.process_text(
            text_file.read_text(encoding="utf-8"), source=text_file.name, count=count
        )
    except InvalidInputError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    typer.echo(json.dumps(result.to_json_dict(), indent=2, ensure_ascii=False))


@app.command()
def tiers(
    config: Path | None = typer.Option(
        None, "--config", help="JSON settings file"
    ),
):
    """Show the tier table in effect."""
    settings = _load_settings_or_exit(config)
    for tier in settings.tiers:
        upper = format_money(tier.max_total) if tier.max_total is not None else "and up"
        typer.echo(
            f"{tier.id.value:<9} {format_money(tier.min_total)} - {upper}  "
            f"mint {format_money(tier.mint_price)}  boost {tier.warranty_boost}"
        )


def main():
    app()


if __name__ == "__main__":
    main()
