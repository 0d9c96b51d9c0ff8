"""Command-line interface for the JPG to PNG converter."""

import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from jpg2png import __version__
from jpg2png.batch_processor import BatchProcessor, convert_file
from jpg2png.config import create_config
from jpg2png.converter import compute_size_change
from jpg2png.logging_config import setup_logging
from jpg2png.models import (
    BatchResults,
    Config,
    ConversionStatus,
    FileConversionResult,
    ProcessingOption,
    StageParameters,
)
from jpg2png.presets import (
    NOISE_REDUCTION_PRESETS,
    QUALITY_ENHANCEMENT_PRESETS,
    SIZE_OPTIMIZATION_PRESETS,
    parse_stage_parameters,
)

console = Console()


def build_stage_parameters(
    noise_preset: str,
    quality_preset: str,
    size_preset: str,
    max_width: int | None,
    max_height: int | None,
) -> StageParameters:
    """Translate CLI flags into StageParameters.

    Args:
        noise_preset: Preset name for reduce-noise
        quality_preset: Preset name for improve-quality
        size_preset: Preset name for optimize-size
        max_width: Width bound overriding the size preset
        max_height: Height bound overriding the size preset

    Returns:
        StageParameters for the pipeline
    """
    size_params: dict[str, Any] = {"preset": size_preset}
    if max_width is not None:
        size_params["maxWidth"] = max_width
    if max_height is not None:
        size_params["maxHeight"] = max_height

    return parse_stage_parameters(
        {
            "noiseReduction": {"preset": noise_preset},
            "qualityEnhancement": {"preset": quality_preset},
            "sizeOptimization": size_params,
        }
    )


def display_progress_bar(
    files: list[Path],
    processor: BatchProcessor,
    options: frozenset[ProcessingOption],
    params: StageParameters,
) -> BatchResults:
    """Run a batch behind a rich progress bar.

    Args:
        files: Source JPEGs
        processor: Batch processor to run the conversion
        options: Stages to apply
        params: Per-stage parameters

    Returns:
        BatchResults from the conversion
    """
    columns = (
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
    )
    with Progress(*columns, console=console) as progress:
        task = progress.add_task("[cyan]Converting JPG files...", total=len(files))

        def on_file_done(done: int, _total: int, filename: str) -> None:
            progress.update(task, completed=done, description=f"[cyan]Finished {filename}")

        processor.progress_callback = on_file_done
        results = processor.process_batch(files, options, params)
        progress.update(task, completed=len(files), description="[green]All files processed")

    return results


def _format_size_change(before: int, after: int) -> str:
    change = compute_size_change(before, after)
    return f"{before} → {after} bytes ({change.size_change_percent}%)"


def _print_outcomes(
    results: BatchResults, status: ConversionStatus, heading: str, marker: str
) -> None:
    matching = [r for r in results.results if r.status == status]
    if not matching:
        return
    console.print()
    console.print(heading)
    for result in matching:
        console.print(f"  {marker} {result.input_path.name}: {result.error_message}")


def display_summary(results: BatchResults) -> None:
    """Print the batch summary table, then any failed and skipped files."""
    table = Table(title="Conversion Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    rows = [
        ("Total Files", str(results.total_files)),
        ("Successful", f"[green]{results.successful}[/green]"),
        ("Failed", f"[red]{results.failed}[/red]"),
        ("Skipped", f"[yellow]{results.skipped}[/yellow]"),
        ("Success Rate", f"{results.success_rate():.1f}%"),
        ("Total Time", f"{results.total_time:.2f}s"),
    ]
    converted = [r.result for r in results.results if r.result is not None]
    if converted:
        rows.append(
            (
                "Total Size",
                _format_size_change(
                    sum(r.original_size for r in converted),
                    sum(r.final_size for r in converted),
                ),
            )
        )
    for metric, value in rows:
        table.add_row(metric, value)

    console.print()
    console.print(table)

    _print_outcomes(
        results,
        ConversionStatus.FAILED,
        "[bold red]Failed Conversions:[/bold red]",
        "[red]✗[/red]",
    )
    _print_outcomes(
        results,
        ConversionStatus.SKIPPED,
        "[bold yellow]Skipped Files:[/bold yellow]",
        "[yellow]⊘[/yellow]",
    )


def display_single_result(result: FileConversionResult) -> None:
    """Print the outcome of a single-file conversion."""
    name = result.input_path.name
    if result.status == ConversionStatus.FAILED:
        console.print(f"[red]✗[/red] Failed: {name} - {result.error_message}")
        return
    if result.status == ConversionStatus.SKIPPED:
        console.print(f"[yellow]⊘[/yellow] Skipped: {name} - {result.error_message}")
        return

    target = result.output_path.name if result.output_path else "N/A"
    line = (
        f"[green]✓[/green] Successfully converted: {name} → {target} "
        f"({result.processing_time:.2f}s)"
    )
    converted = result.result
    if converted is not None:
        applied = ", ".join(o.value for o in converted.applied_options) or "none"
        size = _format_size_change(converted.original_size, converted.final_size)
        line += f"\n  size: {size}\n  options: {applied}"
    console.print(line)


def handle_error(error: Exception) -> None:
    """Print an unexpected error."""
    console.print(f"[bold red]Error:[/bold red] {error}", style="red")


@click.command()
@click.argument(
    "files",
    nargs=-1,
    type=click.Path(exists=True, path_type=Path),
    required=False,
)
@click.option(
    "--option",
    "-O",
    "options",
    multiple=True,
    type=click.Choice([o.value for o in ProcessingOption.canonical_order()]),
    help="Processing stage to apply; repeat for several. Default: none.",
)
@click.option(
    "--noise-preset",
    type=click.Choice(sorted(NOISE_REDUCTION_PRESETS)),
    default="default",
    show_default=True,
    help="Parameter preset for reduce-noise.",
)
@click.option(
    "--quality-preset",
    type=click.Choice(sorted(QUALITY_ENHANCEMENT_PRESETS)),
    default="default",
    show_default=True,
    help="Parameter preset for improve-quality.",
)
@click.option(
    "--size-preset",
    type=click.Choice(sorted(SIZE_OPTIMIZATION_PRESETS)),
    default="default",
    show_default=True,
    help="Parameter preset for optimize-size.",
)
@click.option(
    "--max-width",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum output width for optimize-size.",
)
@click.option(
    "--max-height",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum output height for optimize-size.",
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output directory for converted files. Default: same as input.",
)
@click.option(
    "--no-overwrite",
    is_flag=True,
    default=False,
    help="Skip existing files without prompting.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose logging.",
)
@click.option(
    "--version",
    is_flag=True,
    default=False,
    help="Show version information and exit.",
)
@click.help_option("--help", "-h")
def main(
    files: tuple[Path, ...],
    options: tuple[str, ...],
    noise_preset: str,
    quality_preset: str,
    size_preset: str,
    max_width: int | None,
    max_height: int | None,
    output_dir: Path | None,
    no_overwrite: bool,
    verbose: bool,
    version: bool,
) -> None:
    """Convert JPG files to PNG, optionally enhancing them on the way.

    FILES: One or more JPG files to convert. Supports wildcards (e.g., *.jpg).

    Examples:

        # Plain conversion
        jpg2png photo.jpg

        # Denoise and sharpen with photo presets
        jpg2png photo.jpg -O reduce-noise -O improve-quality --noise-preset photo

        # Shrink a batch for the web into another directory
        jpg2png *.jpg -O optimize-size --size-preset web --output-dir ./converted
    """
    if version:
        console.print(f"JPG to PNG Converter v{__version__}")
        sys.exit(0)

    if not files:
        console.print("[bold red]Error:[/bold red] No files specified.", style="red")
        sys.exit(1)

    try:
        logger = setup_logging(verbose=verbose)
        config = create_config(output_dir=output_dir, no_overwrite=no_overwrite, verbose=verbose)
        stage_options = frozenset(ProcessingOption.parse(o) for o in options)
        params = build_stage_parameters(
            noise_preset, quality_preset, size_preset, max_width, max_height
        )

        if verbose:
            _print_settings(config, stage_options)

        if len(files) == 1:
            ok = _run_single(files[0], config, stage_options, params, logger)
        else:
            ok = _run_batch(list(files), config, stage_options, params, logger)
    except Exception as e:
        handle_error(e)
        sys.exit(1)

    if not ok:
        sys.exit(1)


def _print_settings(config: Config, stage_options: frozenset[ProcessingOption]) -> None:
    applied = [o.value for o in ProcessingOption.canonical_order() if o in stage_options]
    destination = config.output_dir if config.output_dir else "Same as input"
    console.print(f"[cyan]Options:[/cyan] {', '.join(applied) or 'none'}")
    console.print(f"[cyan]Output Format:[/cyan] {config.output_format.value}")
    console.print(f"[cyan]Output Directory:[/cyan] {destination}")
    console.print(f"[cyan]No Overwrite:[/cyan] {config.no_overwrite}")
    console.print()


def _run_single(
    source: Path,
    config: Config,
    stage_options: frozenset[ProcessingOption],
    params: StageParameters,
    logger: logging.Logger,
) -> bool:
    console.print(f"Converting: [cyan]{source.name}[/cyan]")
    result = convert_file(source, config, stage_options, params, logger=logger)
    display_single_result(result)
    return result.status != ConversionStatus.FAILED


def _run_batch(
    sources: list[Path],
    config: Config,
    stage_options: frozenset[ProcessingOption],
    params: StageParameters,
    logger: logging.Logger,
) -> bool:
    console.print(f"Converting [cyan]{len(sources)}[/cyan] files...")
    results = display_progress_bar(sources, BatchProcessor(config, logger), stage_options, params)
    display_summary(results)
    return results.failed == 0


if __name__ == "__main__":
    main()
