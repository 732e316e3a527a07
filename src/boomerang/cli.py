"""CLI interface for boomerang"""

import contextlib
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
import requests
import yaml

from boomerang.infrastructure.config.config_manager import ConfigManager
from boomerang.infrastructure.factory import ClientFactory

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def parse_headers(values: Tuple[str, ...]) -> Dict[str, str]:
    """Parse 'Name: value' header options

    Args:
        values: Raw --header values

    Returns:
        Header mapping

    Raises:
        click.BadParameter: If a value has no colon or an empty name
    """
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def _output_response(response: requests.Response, include: bool) -> None:
    """Output a response to console

    Args:
        response: Final response
        include: Whether to print the response headers
    """
    click.echo(f"HTTP {response.status_code} {response.reason or ''}".rstrip(), err=not include)
    if include:
        for name, value in response.headers.items():
            click.echo(f"{name}: {value}")
        click.echo("")
    if response.content:
        click.echo(response.text)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .boomerang.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """boomerang - resilient HTTP requests with retries and circuit breaking"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("method", type=str)
@click.argument("url", type=str)
@click.option("--data", "-d", type=str, help="Request body")
@click.option(
    "--data-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the request body from a file",
)
@click.option("--header", "-H", "headers", multiple=True, help="Request header as 'Name: value' (repeatable)")
@click.option("--content-type", type=str, help="Content-Type of the request body")
@click.option("--retries", type=click.IntRange(min=0), help="Retries after the first attempt. Overrides config.")
@click.option(
    "--backoff",
    type=click.Choice(["constant", "exponential", "jitter"], case_sensitive=False),
    help="Backoff strategy. Overrides config.",
)
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Per-attempt timeout in seconds. Overrides config.")
@click.option("--breaker", type=str, help="Run attempts through the circuit breaker with this command name")
@click.option("--include", "-i", is_flag=True, help="Print response headers")
@click.pass_context
def request(
    ctx,
    method: str,
    url: str,
    data: Optional[str],
    data_file: Optional[Path],
    headers: Tuple[str, ...],
    content_type: Optional[str],
    retries: Optional[int],
    backoff: Optional[str],
    timeout: Optional[float],
    breaker: Optional[str],
    include: bool,
):
    """Send a request, retrying on transport errors and server errors.

    METHOD: HTTP method (GET, POST, ...)
    URL: Absolute http(s) URL
    """
    verbose = ctx.obj.get("verbose", False)
    if data is not None and data_file is not None:
        raise click.UsageError("--data and --data-file are mutually exclusive")

    header_map = parse_headers(headers)
    if content_type:
        header_map["Content-Type"] = content_type

    try:
        config_manager = ConfigManager(config_path=ctx.obj.get("config_path"))
        client_config = ClientFactory.apply_overrides(
            config_manager.get_client_config(),
            max_retries=retries,
            timeout=timeout,
            backoff_strategy=backoff,
            breaker_name=breaker,
        )

        with contextlib.ExitStack() as stack:
            body = data
            if data_file is not None:
                body = stack.enter_context(open(data_file, "rb"))
            client = stack.enter_context(ClientFactory.create(client_config))
            logger.info(f"Sending {method.upper()} {url}")
            response = client.request(method.upper(), url, body=body, headers=header_map)
            _output_response(response, include)

    except click.ClickException:
        raise
    except Exception as e:
        _die(f"Request failed: {e}", verbose=verbose, exc=e)


@cli.command("show-config")
@click.pass_context
def show_config(ctx):
    """Print the effective configuration as YAML."""
    verbose = ctx.obj.get("verbose", False)
    try:
        config_manager = ConfigManager(config_path=ctx.obj.get("config_path"))
    except Exception as e:
        _die(f"Invalid configuration: {e}", verbose=verbose, exc=e)
    click.echo(yaml.safe_dump(config_manager.config.model_dump(), sort_keys=False), nl=False)


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
