"""
Command-line interface for the index factor-returns pipeline.

Provides commands for:
- Building the index-constituent panel
- Validating a saved panel
- Running the per-industry factor regressions
- Plotting return distributions
"""

import logging
from pathlib import Path

import click
import pandas as pd
import requests

from .config import (
    setup_logging,
    load_config_file,
    DEFAULT_PANEL_PATH,
    FIGURES_DIR,
    INDUSTRY_LABELS,
    PIPELINE,
    PROJECT_ROOT,
    REFERENCE_URLS,
    RESULTS_DIR,
    STOCK_DATA_DIR,
)
from .data.base_loader import DataLoadError
from .data.panel_builder import JoinCardinalityError
from .models.factor_regression import RegressionFitError

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

PIPELINE_ERRORS = (
    FileNotFoundError,
    DataLoadError,
    JoinCardinalityError,
    RegressionFitError,
    requests.RequestException,
)


def _apply_config(path):
    if not path:
        return
    try:
        load_config_file(path)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(f"Invalid config file: {e}")
    click.echo(f"Config: {path}")


def _build(data_dir, output=None, format="csv"):
    """Build (and optionally save) the panel, echoing a short summary."""
    from .data.panel_builder import PanelBuilder

    builder = PanelBuilder(data_dir=Path(data_dir))
    panel = builder.build()

    if output:
        if format == "parquet" and output.endswith(".csv"):
            output = output[:-len(".csv")] + ".parquet"
        builder.save(panel, output, format=format)
        click.echo(f"Saved: {output}")

    click.echo(f"Shape: {panel.shape[0]:,} rows x {panel.shape[1]} columns")
    if not panel.empty:
        click.echo(f"Date range: {panel['date'].min().date()} to {panel['date'].max().date()}")
    click.echo(f"Firms: {panel['permno'].nunique():,}")
    for step, count in builder.stats.items():
        click.echo(f"  {step}: {count:,}")
    return panel


def _regress(panel, industry=None, output=None):
    from .models.factor_regression import fit_industries
    from .reports.regression_report import results_to_frame, save_results

    if industry is None:
        results, failures = fit_industries(panel)
    else:
        results, failures = fit_industries(panel, classes=[industry], include_pooled=False)

    for label, result in results.items():
        click.echo(f"\n{label}: n={result.nobs:,}  R2={result.rsquared:.4f}")
        click.echo(result.coefficient_table().round(4).to_string())

    for label, message in failures.items():
        click.echo(f"\nFAILED {label}: {message}", err=True)

    if output:
        paths = save_results(results, failures, output)
        for path in paths.values():
            click.echo(f"Saved: {path}")

    return results_to_frame(results), failures


def _plot(panel, output=None, show=False):
    from .reports.charts import ChartGenerator

    charts = ChartGenerator(output_dir=Path(output) if output else FIGURES_DIR)
    paths = charts.generate_all(panel, show=show)
    for path in paths:
        click.echo(f"Saved: {path}")
    return paths


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", "config_path", type=click.Path(), help="YAML file overriding defaults")
def cli(verbose, config_path):
    """Index Factor Returns - Fama-French regressions on S&P 500 constituents."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    _apply_config(config_path)


@cli.command("build-panel")
@click.option(
    "--data-dir",
    type=click.Path(),
    default=str(STOCK_DATA_DIR),
    help="Directory with msfhdr.csv, msp500.csv, msp500list.csv and msf.csv",
)
@click.option("--config", "config_path", type=click.Path(), help="YAML file overriding defaults")
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default=str(DEFAULT_PANEL_PATH),
    help="Output path",
)
@click.option(
    "--format",
    type=click.Choice(["csv", "parquet"]),
    default="csv",
    help="Output format (parquet is smaller and faster)",
)
def build_panel(data_dir, config_path, output, format):
    """Build the index-constituent panel from CRSP extracts.

    Joins firm headers with the trading calendar, attaches returns,
    keeps S&P 500 member months, classifies firms into the Fama-French
    5 industries and merges the monthly three factors.
    """
    _apply_config(config_path)

    click.echo("=" * 60)
    click.echo("BUILDING PANEL DATASET")
    click.echo("=" * 60)
    click.echo(f"Data dir: {data_dir}")
    click.echo(
        f"Window: {PIPELINE['analysis_start']} to {PIPELINE['analysis_end']}, "
        f"missing returns: {PIPELINE['missing_returns']}, "
        f"membership: {PIPELINE['membership_granularity']}"
    )
    click.echo()

    try:
        _build(data_dir, output, format)
    except PIPELINE_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo("=" * 60)
    click.echo("PANEL COMPLETE")
    click.echo("=" * 60)


@cli.command("validate-data")
@click.option(
    "--data",
    "-d",
    type=click.Path(),
    default=str(DEFAULT_PANEL_PATH),
    help="Path to panel dataset",
)
@click.option(
    "--data-dir",
    type=click.Path(exists=True),
    help="CRSP directory; when given, also check trading windows and membership",
)
@click.option("--strict", is_flag=True, help="Treat warnings as errors")
def validate_data(data, data_dir, strict):
    """Validate a saved panel."""
    from .data.crsp_loader import CRSPLoader
    from .data.data_validator import DataValidator
    from .data.panel_builder import load_panel

    try:
        panel = load_panel(data)
    except FileNotFoundError as e:
        raise click.ClickException(str(e))

    validator = DataValidator()
    is_valid, report = validator.validate_panel(panel, strict=strict)
    validator.print_report(report)

    if data_dir:
        crsp = CRSPLoader(data_dir)
        try:
            headers = crsp.load_headers()
            membership = crsp.load_membership()
        except PIPELINE_ERRORS as e:
            raise click.ClickException(str(e))

        compliant, windows = validator.check_windows(
            panel, headers, membership, granularity=PIPELINE["membership_granularity"]
        )
        click.echo(f"\nWindow compliance: {compliant}")
        for issue in windows["issues"]:
            click.echo(f"  - {issue}")
        is_valid = is_valid and compliant

    if not is_valid:
        raise click.ClickException("Validation failed")


@cli.command()
@click.option(
    "--data",
    "-d",
    type=click.Path(),
    default=str(DEFAULT_PANEL_PATH),
    help="Path to panel dataset",
)
@click.option(
    "--industry",
    type=click.IntRange(min(INDUSTRY_LABELS), max(INDUSTRY_LABELS)),
    help="Fit a single industry class (default: all classes plus pooled)",
)
@click.option("--output", "-o", type=click.Path(), help="Directory for result files")
def regress(data, industry, output):
    """Fit ret ~ mktpre + smb + hml by industry."""
    from .data.panel_builder import load_panel

    click.echo("=" * 60)
    click.echo("FACTOR REGRESSIONS")
    click.echo("=" * 60)

    try:
        panel = load_panel(data)
        _, failures = _regress(panel, industry, output)
    except PIPELINE_ERRORS as e:
        raise click.ClickException(str(e))

    if industry is not None and failures:
        raise click.ClickException(f"Regression failed for industry {industry}")


@cli.command()
@click.option(
    "--data",
    "-d",
    type=click.Path(),
    default=str(DEFAULT_PANEL_PATH),
    help="Path to panel dataset",
)
@click.option("--output", "-o", type=click.Path(), help="Directory for charts")
@click.option("--show", is_flag=True, help="Display charts interactively")
def plot(data, output, show):
    """Plot return-distribution histograms."""
    from .data.panel_builder import load_panel

    try:
        panel = load_panel(data)
        _plot(panel, output, show)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option(
    "--data-dir",
    type=click.Path(),
    default=str(STOCK_DATA_DIR),
    help="Directory with the CRSP CSV extracts",
)
@click.option("--output", "-o", type=click.Path(), help="Directory for panel, results and charts")
@click.option("--plot/--no-plot", "make_plots", default=True, help="Generate charts")
def run(data_dir, output, make_plots):
    """Run the whole pipeline: build, validate, regress and plot."""
    from .data.data_validator import DataValidator

    output_dir = Path(output) if output else RESULTS_DIR

    click.echo("=" * 60)
    click.echo("INDEX FACTOR PIPELINE")
    click.echo("=" * 60)

    try:
        panel = _build(data_dir, str(output_dir / "index_panel.csv"))

        validator = DataValidator()
        is_valid, report = validator.validate_panel(panel)
        validator.print_report(report)
        if not is_valid:
            raise click.ClickException("Panel failed validation")

        _regress(panel, output=output_dir)

        if make_plots:
            _plot(panel, output_dir / "figures")
    except PIPELINE_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo()
    click.echo("=" * 60)
    click.echo("PIPELINE COMPLETE")
    click.echo("=" * 60)
    click.echo(f"Results: {output_dir}")


@cli.command()
def status():
    """Show system status and configuration."""
    click.echo("=" * 60)
    click.echo("SYSTEM STATUS")
    click.echo("=" * 60)

    click.echo(f"\nProject Root: {PROJECT_ROOT}")
    click.echo(f"CRSP Data: {STOCK_DATA_DIR}")
    click.echo(f"  Exists: {STOCK_DATA_DIR.exists()}")
    click.echo(f"Panel Data: {DEFAULT_PANEL_PATH}")
    click.echo(f"  Exists: {DEFAULT_PANEL_PATH.exists()}")

    if DEFAULT_PANEL_PATH.exists():
        df = pd.read_csv(DEFAULT_PANEL_PATH, nrows=1)
        click.echo(f"  Columns: {len(df.columns)}")

    click.echo("\nReference data:")
    for name, url in REFERENCE_URLS.items():
        click.echo(f"  {name}: {url}")

    click.echo("\nPipeline:")
    for key, value in PIPELINE.items():
        click.echo(f"  {key}: {value}")

    # Check dependencies
    click.echo("\nDependencies:")
    deps = [
        "pandas",
        "numpy",
        "statsmodels",
        "matplotlib",
        "requests",
        "click",
        "yaml",
    ]
    for dep in deps:
        try:
            __import__(dep)
            click.echo(f"  {dep}: OK")
        except ImportError:
            click.echo(f"  {dep}: MISSING")

    # Optional deps
    click.echo("\nOptional:")
    for dep in ["pyarrow"]:
        try:
            __import__(dep)
            click.echo(f"  {dep}: OK")
        except ImportError:
            click.echo(f"  {dep}: not installed")


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
