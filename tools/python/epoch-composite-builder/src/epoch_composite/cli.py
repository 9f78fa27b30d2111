"""
Epoch Composite Builder — CLI Entry Point
==========================================
Installed as the ``geo-epoch-composite`` command via ``pyproject.toml``.

Usage:
    geo-epoch-composite --config examples/nairobi.json --output-dir output/nairobi
    geo-epoch-composite -c run.json -o out --cloud-threshold 10 --report-format csv --quicklook
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from shared.python.exceptions import GeoScriptHubError

from epoch_composite.builder import EpochCompositeBuilder


@click.command(
    name="geo-epoch-composite",
    help="Build per-epoch Landsat median composites and a quality report from a JSON config.",
)
@click.option(
    "--config", "-c", "config_path",
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    help="Path to the JSON run configuration.",
)
@click.option(
    "--output-dir", "-o", "output_dir",
    required=True,
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    help="Directory for composites and the quality report.",
)
@click.option(
    "--cloud-threshold",
    type=click.FloatRange(min=0.0, max=100.0, min_open=True),
    default=None,
    help="Override the config's scene cloud-cover threshold (percent).",
)
@click.option(
    "--report-format",
    type=click.Choice(["json", "csv"], case_sensitive=False),
    default=None,
    help="Override the config's quality report format.",
)
@click.option(
    "--quicklook", is_flag=True, default=False,
    help="Also write a true-colour PNG per epoch.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def main(
    config_path: Path,
    output_dir: Path,
    cloud_threshold: float | None,
    report_format: str | None,
    quicklook: bool,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into EpochCompositeBuilder."""
    tool = EpochCompositeBuilder(
        config_path,
        output_dir,
        cloud_threshold=cloud_threshold,
        report_format=report_format,
        write_quicklook=True if quicklook else None,
        verbose=verbose,
    )

    try:
        tool.run()
        click.echo(f"\nOutputs written to: {output_dir}")
        for report in tool.reports:
            click.echo(f"  {report}")
    except GeoScriptHubError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
