"""CLI command for running the API server.

Usage:
    encore serve
    encore serve --port 8800 --host 0.0.0.0
    encore serve --reload --log-level debug
"""

from __future__ import annotations

import typer

from encore.config import settings

app = typer.Typer(help="Run the Encore API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of worker processes"),
    log_level: str = typer.Option(
        "info", "--log-level", "-l", help="Log level: debug, info, warning, error"
    ),
) -> None:
    """Run the Encore API server.

    Every worker process builds its own gateway and bus subscription, so
    real-time delivery works across workers as long as the Redis bus
    backend is used.
    """
    import uvicorn

    workers_effective = workers if not reload else 1  # Reload requires single worker
    if workers_effective > 1 and settings.event_bus_backend != "redis":
        typer.echo("Warning: the in-memory bus does not deliver across worker processes")

    typer.echo(f"Starting Encore on {host}:{port} ({workers_effective} worker(s))")
    uvicorn.run(
        app="encore.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers_effective,
        log_level=log_level.lower(),
    )
