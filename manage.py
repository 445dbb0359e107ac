import asyncio
import json
import logging

import click

from career_coach.app.core.config import get_settings
from career_coach.app.llm.classifier import should_proceed
from career_coach.app.main import build_services
from career_coach.app.main import main as run_server

log = logging.getLogger(__name__)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging.")
def cli(debug: bool):
    """Management script for the Career Coach application."""
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
def serve(host: str, port: int):
    """Run the API server."""
    _msg = "serve starting"
    log.debug(_msg)
    click.echo(f"Serving on http://{host}:{port}")
    run_server(host=host, port=port)


@cli.command("cache-stats")
def cache_stats():
    """
    Show the size of both cache tiers.

    Notes:
        1. Builds the services from the current settings.
        2. Prints the in-process entry count and the persistent key count.
        3. The in-process tier of a fresh process is always empty.

    """
    _msg = "cache_stats starting"
    log.debug(_msg)
    services = build_services(get_settings())
    stats = services.cache.get_stats()
    click.echo(f"Memory entries: {stats.memory_size}")
    click.echo(f"Stored entries: {stats.storage_keys}")
    _msg = "cache_stats returning"
    log.debug(_msg)


@cli.command("clear-cache")
@click.option("--namespace", default=None, help="Only clear entries under this namespace, e.g. 'research'.")
def clear_cache(namespace: str | None):
    """
    Clear cached generation results.

    Args:
        namespace (str | None): When given, only this namespace is cleared.

    """
    _msg = "clear_cache starting"
    log.debug(_msg)
    try:
        services = build_services(get_settings())
        services.cache.clear(namespace=namespace)
        target = f"namespace '{namespace}'" if namespace else "all namespaces"
        _success_msg = f"Cleared cache for {target}."
        click.echo(_success_msg)
        log.info(_success_msg)
    except ValueError as e:
        _error_msg = f"Error clearing cache: {e}"
        click.echo(_error_msg, err=True)
        log.exception(_error_msg)
    _msg = "clear_cache returning"
    log.debug(_msg)


@cli.command("classify")
@click.argument("message")
def classify(message: str):
    """Classify MESSAGE and print the result as JSON."""
    _msg = "classify starting"
    log.debug(_msg)
    settings = get_settings()
    services = build_services(settings)
    result = asyncio.run(services.classifier.classify(message))
    output = {
        "classification": result.model_dump(mode="json"),
        "should_proceed": should_proceed(result, settings.classifier_min_confidence),
    }
    click.echo(json.dumps(output, indent=2))
    _msg = "classify returning"
    log.debug(_msg)


def main():
    """Run the command line interface."""
    cli()


if __name__ == "__main__":
    main()
