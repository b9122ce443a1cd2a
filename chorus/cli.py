"""CLI entry points for Chorus.

Commands:
    chorus run                   Connect to Discord and start routing messages
    chorus config show|get|set   Inspect or change configuration values
    chorus personas list         List every stored persona
    chorus personas add          Create or update a persona
    chorus personas remove       Delete a persona
    chorus personas enable       Enable a persona for a server
    chorus personas disable      Disable a persona for a server
    chorus encrypt / decrypt     Encrypt or decrypt a credential
"""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

import chorus
from chorus.config import ConfigManager
from chorus.errors import ChorusError
from chorus.personas.models import PROVIDER_KINDS, Persona

console = Console()
app = typer.Typer(
    name="chorus",
    help="Several LLM personas sharing one Discord server.",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Get or set configuration values.")
app.add_typer(config_app, name="config")

personas_app = typer.Typer(help="Manage personas and their server enablement.")
app.add_typer(personas_app, name="personas")

logger = logging.getLogger(__name__)

_SECRET_FIELDS = {"bot_token", "encryption_key"}


def _setup_logging(verbose: bool = False, level: str = "info") -> None:
    """Configure root logging for CLI output."""
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # discord.py is chatty at INFO
    logging.getLogger("discord").setLevel(max(resolved, logging.WARNING))


def _mask(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "..." + value[-4:] if len(value) > 8 else "****"


def _open_registry():
    from chorus.personas.storage import PersonaRegistry

    config = ConfigManager().load()
    data_dir = config.get_data_path()
    data_dir.mkdir(parents=True, exist_ok=True)
    return PersonaRegistry(config.get_database_path())


def _cipher():
    from chorus.runtime import build_cipher

    try:
        return build_cipher(ConfigManager().load())
    except ChorusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from None


# ------------------------------------------------------------------
# chorus run
# ------------------------------------------------------------------


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Connect to Discord and start routing messages to personas."""
    from chorus.runtime import ChorusRuntime

    config = ConfigManager().load()
    _setup_logging(verbose, config.chorus.log_level)

    runtime = ChorusRuntime(config)
    try:
        runtime.build()
    except ChorusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from None

    console.print(f"[bold cyan]Chorus {chorus.__version__}[/bold cyan] starting...")
    try:
        asyncio.run(runtime.run())
    except KeyboardInterrupt:
        console.print("[dim]Interrupted.[/dim]")


@app.command()
def version() -> None:
    """Print the installed version."""
    console.print(chorus.__version__)


# ------------------------------------------------------------------
# chorus config
# ------------------------------------------------------------------


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration (secrets masked)."""
    config = ConfigManager().load()
    table = Table(title="Chorus Configuration", border_style="cyan")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    for section, fields in config.model_dump().items():
        for key, value in _flatten(fields):
            if key.split(".")[-1] in _SECRET_FIELDS and isinstance(value, str):
                value = _mask(value) or "[dim](unset)[/dim]"
            table.add_row(f"{section}.{key}", str(value))

    console.print()
    console.print(table)
    console.print()


@config_app.command("get")
def config_get(
    key: str = typer.Argument(help="Config key in dot notation (e.g., 'routing.message_limit')"),
) -> None:
    """Print a config value."""
    value: object = ConfigManager().load().model_dump()
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            console.print(f"[red]Key not found: {key}[/red]")
            raise typer.Exit(1)
        value = value[part]

    if key.split(".")[-1] in _SECRET_FIELDS and isinstance(value, str):
        typer.echo(_mask(value))
    else:
        typer.echo(str(value))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key in dot notation (e.g., 'discord.webhook_name')"),
    value: str = typer.Argument(help="Value to set"),
) -> None:
    """Update a single config value."""
    from chorus.config.schema import ChorusConfig

    manager = ConfigManager()
    data = manager.load(apply_env=False).model_dump()

    *path, field = key.split(".")
    if not path:
        console.print("[red]Key must be in 'section.field' format (e.g., 'chorus.log_level')[/red]")
        raise typer.Exit(1)

    target: object = data
    for part in path:
        if not isinstance(target, dict) or not isinstance(target.get(part), dict):
            console.print(f"[red]Unknown section: {'.'.join(path)}[/red]")
            raise typer.Exit(1)
        target = target[part]
    assert isinstance(target, dict)

    if field not in target:
        console.print(f"[red]Unknown field: {field} in section {'.'.join(path)}[/red]")
        raise typer.Exit(1)

    existing = target[field]
    try:
        coerced = _coerce(existing, value)
    except ValueError:
        console.print(f"[red]Expected {type(existing).__name__} for {key}[/red]")
        raise typer.Exit(1) from None

    target[field] = coerced
    manager.save(ChorusConfig(**data))
    shown = _mask(value) if field in _SECRET_FIELDS else coerced
    console.print(f"[green]{key} = {shown}[/green]")


def _flatten(data: dict, prefix: str = "") -> list[tuple[str, object]]:
    items: list[tuple[str, object]] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            items.extend(_flatten(value, f"{name}."))
        else:
            items.append((name, value))
    return items


def _coerce(existing: object, value: str) -> object:
    if isinstance(existing, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(existing, int):
        return int(value)
    if isinstance(existing, float):
        return float(value)
    if isinstance(existing, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


# ------------------------------------------------------------------
# chorus personas
# ------------------------------------------------------------------


@personas_app.command("list")
def personas_list() -> None:
    """List every stored persona."""
    registry = _open_registry()
    try:
        personas = asyncio.run(registry.list_all())
    finally:
        registry.close()

    table = Table(title="Personas", border_style="cyan")
    table.add_column("Alias", style="bold")
    table.add_column("Provider")
    table.add_column("Model", style="dim")
    table.add_column("Probability", justify="right")
    table.add_column("History", justify="right")
    table.add_column("Prompt", style="dim")

    for persona in personas:
        table.add_row(
            persona.alias,
            persona.provider,
            persona.model or "default",
            f"{persona.response_probability:.2f}",
            str(persona.history_size),
            persona.system_prompt[:60] + ("..." if len(persona.system_prompt) > 60 else ""),
        )

    console.print()
    console.print(table)
    if not personas:
        console.print("[dim]No personas yet. Add one with 'chorus personas add'.[/dim]")
    console.print()


@personas_app.command("add")
def personas_add(
    alias: str = typer.Argument(help="Unique alias, used as !alias and display name"),
    provider: str = typer.Option(..., "--provider", "-p", help="openai | anthropic | gemini"),
    api_key: str = typer.Option(
        ..., "--api-key", prompt=True, hide_input=True, help="Provider API key"
    ),
    probability: float = typer.Option(0.0, "--probability", help="Unprompted reply chance 0..1"),
    system_prompt: str = typer.Option("", "--prompt", help="System instructions"),
    avatar_url: str = typer.Option("", "--avatar", help="Avatar image URL"),
    history: int = typer.Option(10, "--history", help="Channel messages given as context"),
    model: str = typer.Option("", "--model", help="Override the provider's default model"),
) -> None:
    """Create or update a persona (the API key is stored encrypted)."""
    if provider.lower() not in PROVIDER_KINDS:
        choices = ", ".join(PROVIDER_KINDS)
        console.print(f"[red]Unknown provider {provider!r}; pick one of {choices}[/red]")
        raise typer.Exit(1)

    cipher = _cipher()
    try:
        persona = Persona(
            alias=alias,
            provider=provider,
            encrypted_api_key=cipher.encrypt(api_key),
            response_probability=probability,
            system_prompt=system_prompt,
            avatar_url=avatar_url or None,
            history_size=history,
            model=model or None,
        )
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from None

    registry = _open_registry()
    try:
        asyncio.run(registry.save(persona))
    finally:
        registry.close()
    console.print(f"[green]Saved persona {persona.mention} ({persona.provider})[/green]")


@personas_app.command("remove")
def personas_remove(alias: str = typer.Argument(help="Alias to delete")) -> None:
    """Delete a persona and its server enablements."""
    registry = _open_registry()
    try:
        removed = asyncio.run(registry.delete(alias))
    finally:
        registry.close()
    if not removed:
        console.print(f"[red]No persona named {alias}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Removed persona {alias}[/green]")


@personas_app.command("enable")
def personas_enable(
    server_id: str = typer.Argument(help="Discord server (guild) id"),
    alias: str = typer.Argument(help="Persona alias"),
) -> None:
    """Enable a persona for a server."""
    registry = _open_registry()
    try:
        ok = asyncio.run(registry.set_enabled(server_id, alias))
    finally:
        registry.close()
    if not ok:
        console.print(f"[red]No persona named {alias}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Enabled {alias} for server {server_id}[/green]")


@personas_app.command("disable")
def personas_disable(
    server_id: str = typer.Argument(help="Discord server (guild) id"),
    alias: str = typer.Argument(help="Persona alias"),
) -> None:
    """Disable a persona for a server."""
    registry = _open_registry()
    try:
        ok = asyncio.run(registry.set_disabled(server_id, alias))
    finally:
        registry.close()
    if not ok:
        console.print(f"[yellow]{alias} was not enabled for server {server_id}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Disabled {alias} for server {server_id}[/green]")


# ------------------------------------------------------------------
# chorus encrypt / decrypt
# ------------------------------------------------------------------


@app.command()
def encrypt(text: str = typer.Argument(help="Plain text to encrypt")) -> None:
    """Encrypt a credential with the configured key."""
    typer.echo(_cipher().encrypt(text))


@app.command()
def decrypt(token: str = typer.Argument(help="Encrypted credential")) -> None:
    """Decrypt a credential with the configured key."""
    try:
        typer.echo(_cipher().decrypt(token))
    except ChorusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from None
