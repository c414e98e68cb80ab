"""CLI interface for elide-client."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .client import Elide
from .errors import ElideError
from .schema import load_schema_file

app = typer.Typer(
    name="elide-client",
    help="Inspect Elide schemas and query JSON:API servers",
    add_completion=False,
)
console = Console()


def get_config():
    """Load configuration from environment."""
    from dotenv import load_dotenv

    from .config import ClientConfig
    from .logging import configure_logging

    load_dotenv()
    config = ClientConfig()
    configure_logging(config.log_level)
    return config


def _load(schema: Path):
    if not schema.exists():
        console.print(f"[red]Error: File not found: {schema}[/red]")
        raise typer.Exit(1)
    try:
        return load_schema_file(schema)
    except ElideError as e:
        console.print(f"[red]Invalid schema: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def routes(
    schema: Path = typer.Argument(..., help="Schema file (YAML or JSON)"),
):
    """Compile a schema and show each model's store and path template."""
    from .schema import compile_schema

    declaration = _load(schema)
    try:
        compiled = compile_schema(declaration)
    except ElideError as e:
        console.print(f"[red]Invalid schema: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Models")
    table.add_column("Model", style="bold")
    table.add_column("Store")
    table.add_column("Root")
    table.add_column("Path template")

    for name, definition in compiled.models.items():
        table.add_row(
            name,
            definition.store,
            "yes" if definition.is_root else "",
            compiled.template(name),
        )

    console.print(table)
    console.print(f"Sync order: {' -> '.join(compiled.hierarchy)}")


@app.command()
def get(
    schema: Path = typer.Argument(..., help="Schema file (YAML or JSON)"),
    model: str = typer.Argument(..., help="Model to query"),
    id: str = typer.Argument(None, help="Instance id; omit for the whole collection"),
    follow: list[str] = typer.Option(None, "--follow", "-f", help="Link to descend into, as FIELD or FIELD=ID"),
    include: list[str] = typer.Option(None, "--include", "-i", help="Relationship path to side-load"),
    header: list[str] = typer.Option(None, "--header", "-H", help="Extra request header, KEY=VALUE"),
):
    """Fetch a resource through the schema's stores and print it as JSON."""
    config = get_config()
    declaration = _load(schema)

    async def run():
        async with Elide(declaration, config=config) as elide:
            for item in header or []:
                key, _, value = item.partition("=")
                elide.add_request_header(key.strip(), value.strip())

            query = elide.find(model, id, include=include or None)
            for step in follow or []:
                field, _, step_id = step.partition("=")
                query = query.find(field, step_id or None)
            return await query

    try:
        result = asyncio.run(run())
    except ElideError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if result is None:
        console.print(f"[yellow]No {model} found[/yellow]")
        raise typer.Exit(1)
    console.print_json(json.dumps(result))


if __name__ == "__main__":
    app()
