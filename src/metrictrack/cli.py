"""Command-line interface for metrictrack."""

import json
import logging
import socket
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click

from metrictrack.export import MetricdClient
from metrictrack.metrics import MetricStore, ReportEncoder
from metrictrack.utils.config_validator import (
    ConfigurationError,
    metricd_settings,
    validate_and_fix_config,
)

logger = logging.getLogger(__name__)

EXAMPLE_CONFIG = {
    "metricd": {
        "host": "127.0.0.1",
        "port": 8125,
        "app": "example_app",
        "timeout_s": 0.5,
    },
    "meta": {
        "environment": "dev",
    },
    "logging": {
        "level": "INFO",
    },
}


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger().setLevel(getattr(logging, log_level))


def _parse_pairs(pairs: Tuple[str, ...], what: str, as_int: bool) -> List[Tuple[str, object]]:
    """Parse ``name=value`` command-line options, keeping repeats in order."""
    parsed: List[Tuple[str, object]] = []
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint=what)
        if as_int:
            try:
                parsed.append((name, int(value)))
            except ValueError:
                raise click.BadParameter(f"{value!r} is not an integer", param_hint=what)
        else:
            parsed.append((name, value))
    return parsed


@click.group()
@click.version_option(version="0.1.0", prog_name="metrictrack")
@click.option(
    "--log-level", "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default=None,
    help="Logging level (default INFO, or the level from --config)"
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]):
    """metrictrack: counters and timers shipped to a metricd aggregator."""
    ctx.ensure_object(dict)["log_level"] = log_level
    _configure_logging(log_level or "INFO")


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="Configuration file")
@click.option("--host", help="Metricd host (overrides configuration)")
@click.option("--port", type=int, help="Metricd port (overrides configuration)")
@click.option("--app", help="Application name (overrides configuration)")
@click.option("--counter", "-c", "counters", multiple=True, help="Counter delta as NAME=DELTA")
@click.option("--timer", "-t", "timers", multiple=True, help="Timer sample as NAME=MILLISECONDS")
@click.option("--meta", "-m", "metas", multiple=True, help="Extra meta as KEY=VALUE")
@click.pass_context
def send(
    ctx: click.Context,
    config_file: Optional[str],
    host: Optional[str],
    port: Optional[int],
    app: Optional[str],
    counters: Tuple[str, ...],
    timers: Tuple[str, ...],
    metas: Tuple[str, ...],
):
    """Record counters and timer samples and send them as one report."""
    extra_meta: Dict[str, object] = {}
    client = MetricdClient(host, port, app=app)
    
    if config_file:
        try:
            is_valid, errors, config = validate_and_fix_config(config_file)
        except ConfigurationError as e:
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            sys.exit(1)
        if not is_valid:
            click.echo(click.style(f"✗ Configuration has {len(errors)} errors", fg="red"), err=True)
            sys.exit(1)
        client = MetricdClient.from_settings(metricd_settings(config))
        extra_meta.update(config.get("meta", {}))
        if ctx.obj.get("log_level") is None:
            level = str(config.get("logging", {}).get("level", "INFO")).upper()
            logging.getLogger().setLevel(getattr(logging, level))
        if host is not None:
            client.set_host(host)
        if port is not None:
            client.set_port(port)
        if app is not None:
            client.set_app(app)
    
    store = MetricStore()
    for name, delta in _parse_pairs(counters, "--counter", as_int=True):
        store.adjust_counter(name, delta)
    for name, elapsed in _parse_pairs(timers, "--timer", as_int=True):
        store.record_timer(name, elapsed)
    extra_meta.update(dict(_parse_pairs(metas, "--meta", as_int=False)))
    
    report = ReportEncoder(store).report()
    click.echo(json.dumps(report, indent=2))
    
    result = client.send(report, extra_meta or None).last_result
    if result.ok:
        click.echo(click.style(f"✓ Sent {result.bytes_sent} bytes to {result.destination}", fg="green"))
    else:
        click.echo(click.style(f"✗ Send to {result.destination} failed: {result.error}", fg="red"), err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Address to listen on")
@click.option("--port", default=8125, type=int, help="UDP port to listen on")
@click.option("--count", "-n", default=0, type=int, help="Exit after N datagrams (0 = forever)")
@click.option("--timeout", default=None, type=float, help="Exit after S seconds without data")
def listen(host: str, port: int, count: int, timeout: Optional[float]):
    """Print metric reports received over UDP."""
    received = 0
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind((host, port))
        sock.settimeout(timeout)
        click.echo(f"Listening on {host}:{port}")
        while count <= 0 or received < count:
            try:
                data, address = sock.recvfrom(65535)
            except socket.timeout:
                click.echo("Timed out waiting for data")
                break
            received += 1
            try:
                payload = json.loads(data.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning(f"Discarding malformed datagram from {address}: {e}")
                continue
            click.echo(json.dumps(payload, sort_keys=True))


@cli.command()
@click.option(
    "--output", "-o", default="metrictrack.yaml",
    help="Output file path"
)
@click.option(
    "--format", "-f", type=click.Choice(["yaml", "json"]), default="yaml",
    help="Configuration file format"
)
def generate_config(output: str, format: str):
    """Generate an example configuration file."""
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    
    if format == "yaml":
        import yaml
        with open(output_path, "w") as f:
            yaml.dump(EXAMPLE_CONFIG, f, default_flow_style=False, sort_keys=False)
    else:
        with open(output_path, "w") as f:
            json.dump(EXAMPLE_CONFIG, f, indent=2)
    
    click.echo(f"Generated example configuration at {output_path}")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
def validate(config_file: str):
    """Validate a configuration file."""
    click.echo(f"Validating configuration: {config_file}")
    
    try:
        is_valid, errors, _ = validate_and_fix_config(config_file)
    except ConfigurationError as e:
        click.echo(click.style(f"Error validating configuration: {e}", fg="red"))
        sys.exit(1)
    
    if is_valid:
        click.echo(click.style("✓ Configuration is valid", fg="green"))
    else:
        click.echo(click.style(f"✗ Configuration has {len(errors)} errors:", fg="red"))
        for i, error in enumerate(errors[:20], 1):
            click.echo(f"  {i}. {error}")
        if len(errors) > 20:
            click.echo(f"  ... and {len(errors) - 20} more errors")
    
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    cli()
