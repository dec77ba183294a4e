"""capreg - capability registry CLI"""

import json
import logging
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from capregistry import __version__
from capregistry.config.settings import RegistrySettings, load_settings
from capregistry.core.content.parser import JSON, YAML, dump_content, parse_content
from capregistry.core.exceptions import RegistryError
from capregistry.core.normalize.normalizer import CapabilityNormalizer
from capregistry.services.registry_service import CapabilityService

console = Console()

OUTPUT_CHOICE = click.Choice([YAML, JSON])


def configure_logging(level: str = "INFO") -> None:
    """Route log records through rich at the given level"""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    rich_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_path=False,
    )
    root.addHandler(rich_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _service(ctx: click.Context) -> CapabilityService:
    if ctx.obj.get("service") is None:
        ctx.obj["service"] = CapabilityService.from_settings(ctx.obj["settings"])
    return ctx.obj["service"]


def _fail(e: Exception) -> NoReturn:
    console.print(f"[red]Error: {escape(str(e))}[/red]")
    raise click.Abort()


def _print_messages(title: str, messages, style: str) -> None:
    if not messages:
        return
    console.print(f"[{style}]{title}:[/{style}]")
    for message in messages:
        console.print(f"  • {message}", markup=False)


@click.group()
@click.version_option(__version__, prog_name="capreg")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (YAML)")
@click.option("--log-level", help="Override log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]):
    """Capability registry: validate, normalize, store and search capability documents."""
    settings: RegistrySettings = load_settings(Path(config_path) if config_path else None)
    if log_level:
        settings.log_level = log_level.upper()
    configure_logging(settings.log_level)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj.setdefault("service", None)


@cli.command("validate")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, default=None, help="Missing required fields are errors")
@click.option("--format", "format_version", help="Validate against this protocol version")
@click.pass_context
def validate_cmd(ctx: click.Context, file_path: str, strict: Optional[bool], format_version: Optional[str]):
    """Validate a capability document without storing it."""
    try:
        report = _service(ctx).validate(_read_text(file_path), strict=strict, format_version=format_version)
    except RegistryError as e:
        _fail(e)

    console.print(f"ℹ️  Protocol version: [blue]{report.format_version}[/blue]")
    if report.schema_version != report.format_version:
        console.print(f"[dim]Validated against schema {report.schema_version}[/dim]")
    _print_messages("Errors", report.result.errors, "red")
    _print_messages("Warnings", report.result.warnings, "yellow")
    _print_messages("Consistency", report.consistency, "yellow")

    if report.valid:
        console.print("✅ [green]Validation passed[/green]")
    else:
        console.print("❌ [red]Validation failed[/red]")
        raise click.Abort()


@cli.command("normalize")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "format_version", help="Target protocol version")
@click.option("--output", "output", type=OUTPUT_CHOICE, default=YAML, show_default=True)
def normalize_cmd(file_path: str, format_version: Optional[str], output: str):
    """Print the canonical wrapper for a capability document."""
    try:
        document = CapabilityNormalizer().normalize_document(parse_content(_read_text(file_path)), format_version)
    except RegistryError as e:
        _fail(e)
    click.echo(dump_content(document, output))


@cli.command("add")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, default=None, help="Reject documents with validation errors")
@click.option("--format", "format_version", help="Store in this protocol version")
@click.pass_context
def add_cmd(ctx: click.Context, file_path: str, strict: Optional[bool], format_version: Optional[str]):
    """Validate, normalize and store a capability."""
    try:
        result = _service(ctx).create(_read_text(file_path), strict=strict, format_version=format_version)
    except RegistryError as e:
        _fail(e)

    console.print(f"[green]✓ Capability stored:[/green] {result.wrapper.id} v{result.wrapper.version}")
    console.print(f"[dim]Format version: {result.format_version}[/dim]")
    _print_messages("Warnings", result.warnings, "yellow")


@cli.command("update")
@click.argument("capability_id")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "target_format", help="Store in this protocol version")
@click.option("--strict", is_flag=True, default=None, help="Reject documents with validation errors")
@click.option("--preserve-metadata", is_flag=True, help="Keep stored fields the new content omits")
@click.pass_context
def update_cmd(
    ctx: click.Context,
    capability_id: str,
    file_path: str,
    target_format: Optional[str],
    strict: Optional[bool],
    preserve_metadata: bool,
):
    """Replace a stored capability."""
    try:
        result = _service(ctx).update(
            capability_id,
            _read_text(file_path),
            target_format=target_format,
            strict=strict,
            preserve_metadata=preserve_metadata,
        )
    except RegistryError as e:
        _fail(e)

    console.print(f"[green]✓ Capability updated:[/green] {capability_id} (format {result.format_version})")
    _print_messages("Warnings", result.warnings, "yellow")


@cli.command("show")
@click.argument("capability_id")
@click.option("--format", "format_version", help="Convert to this protocol version")
@click.option("--wrapper", is_flag=True, help="Print the normalized wrapper instead of the stored document")
@click.pass_context
def show_cmd(ctx: click.Context, capability_id: str, format_version: Optional[str], wrapper: bool):
    """Print a stored capability."""
    try:
        service = _service(ctx)
        if wrapper:
            text = dump_content(service.get_wrapper(capability_id, format_version).to_dict(), YAML)
        else:
            text = service.get(capability_id, format_version)
    except RegistryError as e:
        _fail(e)
    click.echo(text)


@cli.command("convert")
@click.argument("capability_id")
@click.option("--to", "target_format", required=True, help="Target protocol version")
@click.option("--output", "output", type=OUTPUT_CHOICE, default=YAML, show_default=True)
@click.pass_context
def convert_cmd(ctx: click.Context, capability_id: str, target_format: str, output: str):
    """Show a stored capability in another protocol version (nothing is stored)."""
    try:
        result = _service(ctx).convert(capability_id, target_format)
    except RegistryError as e:
        _fail(e)

    if not result.converted:
        console.print("[dim]No conversion needed (source and target formats are the same)[/dim]")
    click.echo(dump_content(result.document, output))


@cli.command("list")
@click.option("--format", "format_version", help="Express capabilities in this protocol version")
@click.option("--json", "as_json", is_flag=True, help="Print wrappers as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, format_version: Optional[str], as_json: bool):
    """List stored capabilities."""
    try:
        wrappers = _service(ctx).list(format_version)
    except RegistryError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps([w.to_dict() for w in wrappers], indent=2))
        return

    if not wrappers:
        console.print("[yellow]No capabilities found[/yellow]")
        return

    table = Table(title=f"Capabilities ({len(wrappers)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Type")
    table.add_column("Format")
    table.add_column("Description")
    for w in wrappers:
        table.add_row(w.id, w.name, w.version, w.protocol_details.type, w.enact, w.description)
    console.print(table)


@cli.command("search")
@click.argument("query")
@click.option("--limit", type=int, default=10, show_default=True, help="Maximum results")
@click.option("--format", "format_version", help="Attach content converted to this protocol version")
@click.pass_context
def search_cmd(ctx: click.Context, query: str, limit: int, format_version: Optional[str]):
    """Semantic search over capability descriptions."""
    try:
        hits = _service(ctx).search(query, limit=limit, format_version=format_version)
    except RegistryError as e:
        _fail(e)

    if not hits:
        console.print("[yellow]No capabilities found[/yellow]")
        return

    table = Table(title=f"Results for \"{query}\"")
    table.add_column("Score", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Description")
    for hit in hits:
        table.add_row(f"{hit.similarity:.3f}", hit.id, hit.type, hit.description)
    console.print(table)

    if format_version:
        for hit in hits:
            if hit.content is not None:
                console.print(f"[bold]--- {hit.id} ({format_version}) ---[/bold]")
                click.echo(hit.content)


@cli.command("delete")
@click.argument("capability_id")
@click.pass_context
def delete_cmd(ctx: click.Context, capability_id: str):
    """Delete a stored capability."""
    try:
        deleted = _service(ctx).delete(capability_id)
    except RegistryError as e:
        _fail(e)

    if not deleted:
        console.print(f"[red]Error: Capability not found: {capability_id}[/red]")
        raise click.Abort()
    console.print(f"[green]✓ Capability deleted:[/green] {capability_id}")


@cli.command("stats")
@click.pass_context
def stats_cmd(ctx: click.Context):
    """Registry statistics."""
    try:
        stats = _service(ctx).statistics()
    except RegistryError as e:
        _fail(e)

    console.print(f"Total capabilities: [bold]{stats['totalCapabilities']}[/bold]")
    console.print(f"Format versions: {', '.join(stats['formatVersions'])}")

    for title, key in (("By type", "types"), ("By version", "versions")):
        if not stats[key]:
            continue
        table = Table(title=title)
        table.add_column("Value")
        table.add_column("Count", justify="right")
        for value, count in sorted(stats[key].items()):
            table.add_row(value, str(count))
        console.print(table)


@cli.command("import")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, default=None, help="Reject documents with validation errors")
@click.option("--skip-existing", is_flag=True, help="Leave already stored ids untouched")
@click.pass_context
def import_cmd(ctx: click.Context, file_path: str, strict: Optional[bool], skip_existing: bool):
    """Batch import from a YAML/JSON list of {id, content, format?} entries."""
    try:
        items = parse_content(_read_text(file_path))
        if isinstance(items, dict):
            items = items.get("capabilities", [])
        if not isinstance(items, list):
            raise RegistryError("Import file must contain a list of capabilities")
        report = _service(ctx).import_batch(
            [item for item in items if isinstance(item, dict)],
            strict=strict,
            skip_existing=skip_existing,
        )
    except RegistryError as e:
        _fail(e)

    console.print(
        f"Imported [green]{report.successful}[/green] of {report.total} "
        f"([red]{report.failed} failed[/red], {report.skipped} skipped)"
    )
    for failure in report.errors:
        console.print(f"  • {failure.id}: {failure.error}", markup=False)
    if report.failed:
        raise click.Abort()


@cli.command("schemas")
@click.option("--resolve", "resolve_version", help="Show which registered schema a protocol version validates against")
@click.pass_context
def schemas_cmd(ctx: click.Context, resolve_version: Optional[str]):
    """List registered schema versions and store health."""
    try:
        service = _service(ctx)
        health = service.health()
    except RegistryError as e:
        _fail(e)

    if resolve_version:
        resolved = service.schemas.resolved_version(resolve_version)
        console.print(f"{resolve_version} -> [cyan]{resolved}[/cyan]")
        return

    table = Table(title="Registered schemas")
    table.add_column("Protocol version", style="cyan")
    for version in health["components"]["schemaRegistry"]["registeredSchemas"]:
        table.add_row(version)
    console.print(table)
    console.print(f"Database: {health['components']['database']['status']}")
    embeddings = "enabled" if health["components"]["embeddings"]["enabled"] else "disabled"
    console.print(f"Semantic search: {embeddings}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
