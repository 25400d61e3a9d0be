"""Main CLI interface for the battery health assessment engine.

This module provides the command-line interface using the Typer framework.

Usage:
    batthealth simulate --design-mah 5000 --max-mah 4500
    batthealth normalizer show --storage-dir ~/.batthealth
    batthealth normalizer reset --storage-dir ~/.batthealth
    batthealth config init batthealth.yaml
    batthealth version
"""

from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from batthealth.analysis.temperature import InMemoryCoefficientStore, JsonCoefficientStore, TemperatureNormalizer
from batthealth.config.loaders import YamlConfigLoader
from batthealth.config.schema import BatteryHealthConfig, LogLevel
from batthealth.models import HealthTestResult
from batthealth.sim.battery import DEFAULT_RESISTANCE_MOHM, SimulatedBattery
from batthealth.sim.runner import SessionRunner
from batthealth.utils.logger import configure_logging, logger

DEFAULT_STORAGE_DIR = "~/.batthealth"

# Create console for rich output
console = Console()

# Create main Typer app
app = typer.Typer(
    name="batthealth",
    help="Battery Health Assessment Engine",
    add_completion=False,
    rich_markup_mode="rich",
)
normalizer_app = typer.Typer(help="Inspect or reset learned temperature coefficients")
config_app = typer.Typer(help="Manage configuration files")
app.add_typer(normalizer_app, name="normalizer")
app.add_typer(config_app, name="config")


def create_cli_app() -> typer.Typer:
    """Create and configure the CLI application.

    Returns:
        Configured Typer application
    """
    return app


@app.command()
def simulate(
    config_file: str | None = typer.Option(None, "--config", "-c", help="Configuration file path"),
    design_mah: float = typer.Option(5000.0, "--design-mah", help="Design capacity of the simulated pack"),
    max_mah: float = typer.Option(4500.0, "--max-mah", help="Full-charge capacity of the simulated pack"),
    start_soc: float = typer.Option(90.0, "--start-soc", help="SOC at the start of the session"),
    resistance_scale: float = typer.Option(1.0, "--resistance-scale", help="Multiplier on the internal resistance"),
    ambient: float = typer.Option(25.0, "--ambient", help="Mean pack temperature in Celsius"),
    base_load: float = typer.Option(3.0, "--base-load", help="Background system load in watts"),
    max_hours: float = typer.Option(12.0, "--max-hours", help="Give up after this much simulated time"),
    storage_dir: str | None = typer.Option(None, "--storage-dir", help="Persist learned coefficients here"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write the result as JSON to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> dict[str, Any]:
    """Run a simulated health test session and print the result."""
    result = simulate_command(
        config_file=config_file,
        design_mah=design_mah,
        max_mah=max_mah,
        start_soc=start_soc,
        resistance_scale=resistance_scale,
        ambient=ambient,
        base_load=base_load,
        max_hours=max_hours,
        storage_dir=storage_dir,
        output=output,
        verbose=verbose,
    )
    if result["status"] != "success":
        raise typer.Exit(code=1)
    return result


def simulate_command(
    config_file: str | None = None,
    design_mah: float = 5000.0,
    max_mah: float = 4500.0,
    start_soc: float = 90.0,
    resistance_scale: float = 1.0,
    ambient: float = 25.0,
    base_load: float = 3.0,
    max_hours: float = 12.0,
    storage_dir: str | None = None,
    output: str | None = None,
    verbose: bool = False,
) -> dict[str, Any]:
    """Execute the simulate command.

    Args:
        config_file: Optional configuration file path
        design_mah: Design capacity of the simulated pack
        max_mah: Full-charge capacity of the simulated pack
        start_soc: SOC at the start of the session
        resistance_scale: Multiplier applied to the default resistance curve
        ambient: Mean pack temperature
        base_load: Background system load in watts
        max_hours: Simulated time limit
        storage_dir: Directory for learned coefficients, in memory when None
        output: Optional JSON output file
        verbose: Enable debug logging

    Returns:
        Dictionary with a status and, on success, the result
    """
    config = load_cli_config(config_file) if config_file else create_default_config()
    if verbose:
        config.logging.level = LogLevel.DEBUG
    configure_logging(config.logging)

    try:
        battery = SimulatedBattery(
            design_capacity_mah=design_mah,
            max_capacity_mah=max_mah,
            initial_soc_percent=start_soc,
            ambient_temperature_c=ambient,
            base_load_w=base_load,
            resistance_mohm=[r * resistance_scale for r in DEFAULT_RESISTANCE_MOHM],
        )
    except ValidationError as e:
        console.print(f"[bold red]Invalid battery parameters:[/bold red] {e.error_count()} error(s)")
        return {"status": "error", "error_message": "invalid battery parameters"}

    normalizer = create_normalizer(config, storage_dir)
    runner = SessionRunner(battery=battery, config=config, normalizer=normalizer)

    console.print(f"[bold green]Starting simulated health test[/bold green] ({battery})")
    result = runner.run(max_duration_s=max_hours * 3600.0)

    if result is None:
        failure = runner.orchestrator.failure
        message = failure.message if failure is not None else "Test did not complete"
        console.print(f"[bold red]Health test failed:[/bold red] {message}")
        return {"status": "error", "error_message": message}

    console.print(render_result(result))
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"[dim]Result written to {output_path}[/dim]")

    return {"status": "success", "result": result, "simulated_seconds": runner.elapsed_s}


def render_result(result: HealthTestResult) -> Table:
    """Build a table summarizing ``result``."""

    def fmt(value: float | None, unit: str = "", digits: int = 1) -> str:
        if value is None:
            return "n/a"
        return f"{value:.{digits}f}{unit}"

    table = Table(title="Battery Health Test Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Health score", fmt(result.health_score))
    table.add_row("Recommendation", result.recommendation)
    table.add_row("Duration", fmt(result.duration_s / 3600.0, " h", 2))
    table.add_row("Energy delivered", fmt(result.energy_delivered_wh, " Wh", 2))
    table.add_row("Average CP power", fmt(result.average_power_w, " W", 2))
    table.add_row("Power control quality", fmt(result.power_control_quality))
    table.add_row("SOH (energy)", fmt(result.soh_energy_percent, "%"))
    table.add_row("SOH (capacity)", fmt(result.soh_capacity_percent, "%"))
    table.add_row("DCIR @50%", fmt(result.dcir_at_50_mohm, " mOhm"))
    table.add_row("DCIR @20%", fmt(result.dcir_at_20_mohm, " mOhm"))
    table.add_row("DCIR points", str(len(result.dcir_points)))
    table.add_row("OCV knee", fmt(result.knee_soc, "%"))
    table.add_row("Knee index", fmt(result.knee_index))
    table.add_row("Micro-drops", f"{result.micro_drops.total} ({result.micro_drops.rate_per_hour:.2f}/h)")
    table.add_row("Average temperature", fmt(result.average_temperature_c, " C"))
    table.add_row("Normalized SOH", fmt(result.normalized_soh_percent, "%"))
    table.add_row("Normalized DCIR @50%", fmt(result.normalized_dcir_at_50_mohm, " mOhm"))
    return table


def create_normalizer(config: BatteryHealthConfig, storage_dir: str | None) -> TemperatureNormalizer:
    """Temperature normalizer backed by ``storage_dir``, or by memory when None."""
    directory = storage_dir or config.normalizer.storage_dir
    if directory:
        return TemperatureNormalizer(config.normalizer, JsonCoefficientStore(directory))
    return TemperatureNormalizer(config.normalizer, InMemoryCoefficientStore())


def stored_coefficients_dir(config: BatteryHealthConfig, storage_dir: str | None) -> str:
    """Directory the normalizer commands inspect: the option, then the config, then the default."""
    return storage_dir or config.normalizer.storage_dir or DEFAULT_STORAGE_DIR


@normalizer_app.command("show")
def normalizer_show(
    storage_dir: str | None = typer.Option(None, "--storage-dir", help="Coefficient storage directory"),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Configuration file path"),
) -> dict[str, Any]:
    """Show the learned temperature coefficients."""
    return normalizer_show_command(storage_dir, config_file)


def normalizer_show_command(storage_dir: str | None = None, config_file: str | None = None) -> dict[str, Any]:
    """Execute the normalizer show command.

    Returns:
        The coefficients and the number of stored observations
    """
    config = load_cli_config(config_file) if config_file else create_default_config()
    normalizer = create_normalizer(config, stored_coefficients_dir(config, storage_dir))
    coefficients = normalizer.coefficients

    table = Table(title="Temperature Coefficients")
    table.add_column("Coefficient", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("SOH slope", f"{coefficients.soh_slope_per_degree:+.3f} %/C")
    table.add_row("DCIR slope", f"{coefficients.dcir_slope_percent_per_degree:+.3f} %/C")
    table.add_row("Valid range", f"{coefficients.min_temperature_c:.0f} to {coefficients.max_temperature_c:.0f} C")
    table.add_row("Observations", str(len(normalizer.observations)))
    table.add_row("Last fit", coefficients.updated_at.isoformat() if coefficients.updated_at else "never")
    console.print(table)

    return {"coefficients": coefficients, "observations": len(normalizer.observations)}


@normalizer_app.command("reset")
def normalizer_reset(
    storage_dir: str | None = typer.Option(None, "--storage-dir", help="Coefficient storage directory"),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Configuration file path"),
) -> None:
    """Forget learned coefficients and observations."""
    normalizer_reset_command(storage_dir, config_file)


def normalizer_reset_command(storage_dir: str | None = None, config_file: str | None = None) -> None:
    """Execute the normalizer reset command."""
    config = load_cli_config(config_file) if config_file else create_default_config()
    directory = stored_coefficients_dir(config, storage_dir)
    create_normalizer(config, directory).reset()
    console.print(f"[bold green]Temperature coefficients reset[/bold green] in {directory}")


@config_app.command("init")
def config_init(
    path: str = typer.Argument("batthealth.yaml", help="Where to write the example configuration"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write an example configuration file."""
    if not config_init_command(path, force):
        raise typer.Exit(code=1)


def config_init_command(path: str = "batthealth.yaml", force: bool = False) -> bool:
    """Execute the config init command.

    Returns:
        True if the file was written
    """
    config_path = Path(path)
    if config_path.exists() and not force:
        console.print(f"[bold red]{config_path} already exists[/bold red] (use --force to overwrite)")
        return False
    YamlConfigLoader().generate_example_config(config_path)
    console.print(f"[bold green]Example configuration written to[/bold green] {config_path}")
    return True


@app.command()
def version() -> str:
    """Show version information."""
    return version_command()


def version_command() -> str:
    """Execute the version command.

    Returns:
        Version string
    """
    from batthealth import __version__

    version_info = f"batthealth v{__version__}"
    console.print(f"[bold cyan]{version_info}[/bold cyan]")
    console.print("[dim]Battery Health Assessment Engine[/dim]")
    return version_info


def load_cli_config(config_file: str) -> BatteryHealthConfig:
    """Load CLI configuration from file, applying ``BATTHEALTH_`` environment overrides.

    Raises:
        FileNotFoundError: If config file not found
        ValidationError: If the configuration is invalid
    """
    loader = YamlConfigLoader()
    return loader.load_config_with_env_override(config_file)


def create_default_config() -> BatteryHealthConfig:
    """Default configuration with ``BATTHEALTH_`` environment overrides."""
    return YamlConfigLoader().load_config_with_env_override(None)


# Main entry point for console script
def main() -> None:
    """Main entry point for the CLI application."""
    try:
        app()
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        raise SystemExit(130) from None


if __name__ == "__main__":
    main()
