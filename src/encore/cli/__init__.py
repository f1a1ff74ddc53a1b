"""CLI commands for Encore.

Provides command-line interface using Typer:
- encore serve: Run the API server
- encore invalidate: Drop cached entries by pattern or key

Usage:
    encore --help
    encore serve --port 8800
    encore invalidate "users:performers_p*"
"""

import typer

from encore.cli.cache_cmd import app as invalidate_app
from encore.cli.serve import app as serve_app

app = typer.Typer(
    name="encore",
    help="Encore: real-time fan-out and cache-consistency backend",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(invalidate_app, name="invalidate")


@app.callback()
def callback() -> None:
    """Encore: real-time fan-out and cache-consistency backend."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
