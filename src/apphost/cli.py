"""apphost CLI.

Usage:
    apphost serve                              # Serve on 0.0.0.0:8080
    apphost serve --port 9000 --env PROD       # Custom port and mode
    apphost serve --cors-origin https://a.com  # Enable CORS for an origin
    apphost health                             # Check a running server
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click
import httpx

from .application import Application, get_application
from .config import ENV_DEV, ENV_PROD, ENV_TEST, Settings
from .errors import BindError
from .exit_hook import exit_hook


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level",
)
def main(log_level: str) -> None:
    """apphost - application host for Starlette services."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@main.command()
@click.option("--host", default=None, help="Host to bind to (default: APPHOST_HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Port to bind to (default: APPHOST_PORT or 8080)")
@click.option(
    "--env",
    "env",
    type=click.Choice([ENV_DEV, ENV_PROD, ENV_TEST], case_sensitive=False),
    default=None,
    help="Environment mode (default: APPHOST_ENV or DEV)",
)
@click.option("--cors-origin", "cors_origins", multiple=True, help="Enable CORS for this origin")
@click.option("--allowed-header", "allowed_headers", multiple=True, help="Extra CORS allowed header")
@click.option("--exposed-header", "exposed_headers", multiple=True, help="CORS exposed header")
@click.option("--health/--no-health", default=True, help="Register /health and /ready")
def serve(
    host: str | None,
    port: int | None,
    env: str | None,
    cors_origins: tuple[str, ...],
    allowed_headers: tuple[str, ...],
    exposed_headers: tuple[str, ...],
    health: bool,
) -> None:
    """Run the application until SIGINT/SIGTERM.

    Examples:

        apphost serve --port 9000

        apphost serve --cors-origin https://a.com --allowed-header X-Custom
    """
    app = get_application()
    app.set_settings(Settings.from_env(host=host, port=port, env=env.upper() if env else None))

    if cors_origins or allowed_headers or exposed_headers:
        app.enable_cors(
            {
                "origins": list(cors_origins) or ["*"],
                "allowedHeaders": list(allowed_headers),
                "exposedHeaders": list(exposed_headers),
            }
        )

    if health:
        app.add_health_status()

    try:
        asyncio.run(_serve(app))
    except BindError as e:
        click.echo(f"Failed to start: {e}", err=True)
        sys.exit(1)


async def _serve(app: Application) -> None:
    exit_hook.attach_signals()
    try:
        await app.listen(lambda server: click.echo(f"Listening on {app.get('url')}", err=True))
        click.echo("Press Ctrl+C to stop", err=True)
        await exit_hook.wait()
        await app.wait_closed()
    finally:
        exit_hook.detach_signals()


@main.command()
@click.option("--url", default="http://localhost:8080", help="Server URL")
@click.option("--path", default="/health", help="Health endpoint path")
def health(url: str, path: str) -> None:
    """Check the health of a running server."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url}{path}")
                if response.status_code == 200:
                    click.echo(f"Server is healthy: {response.json()}")
                else:
                    click.echo(f"Server returned {response.status_code}", err=True)
                    sys.exit(1)
        except httpx.ConnectError:
            click.echo(f"Cannot connect to server at {url}", err=True)
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
