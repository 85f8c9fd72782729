"""tierdeck CLI: deck management and terminal study sessions."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml

from tierdeck.application.config import AppConfig, resolve_config
from tierdeck.application.factory import build_service, new_deck_id
from tierdeck.application.service import StudyService
from tierdeck.application.stats import cards_by_tier, current_tier_stats, deck_stats
from tierdeck.domain.models import Deck

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="tierdeck: adaptive tiered flashcard scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

decks_app = typer.Typer(help="Create, list and remove decks.", no_args_is_help=True)
app.add_typer(decks_app, name="decks")

config_app = typer.Typer(help="Inspect tierdeck configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)


def _setup_logging(verbose: int) -> None:
    level = logging.DEBUG if verbose > 1 else logging.INFO if verbose == 1 else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    backend: Annotated[
        str | None, typer.Option(help="Storage backend: sqlite or memory.")
    ] = None,
    db_path: Annotated[Path | None, typer.Option(help="SQLite database path.")] = None,
    seed: Annotated[int | None, typer.Option(help="Seed for reproducible draws.")] = None,
):
    """Global settings for tierdeck."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "backend": backend,
        "db_path": db_path,
        "seed": seed,
        "verbose": verbose or None,
    }
    _setup_logging(_config(ctx).verbose)


def _config(ctx: typer.Context) -> AppConfig:
    overrides = (ctx.obj or {}).get("overrides", {})
    try:
        return resolve_config(overrides)
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red")
        raise typer.Exit(2) from e


def _service(ctx: typer.Context) -> StudyService:
    return build_service(_config(ctx))


def _load_deck(service: StudyService, deck_id: str) -> Deck:
    known = {e.id for e in service.registry.catalogue()}
    if deck_id not in known:
        typer.secho(f"Unknown deck: {deck_id}", fg="red")
        raise typer.Exit(1)
    return service.activate(deck_id)


def _read_descriptors(path: Path) -> list[dict[str, Any]]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        typer.secho(f"Cannot read {path}: {e}", fg="red")
        raise typer.Exit(1) from e
    except yaml.YAMLError as e:
        typer.secho(f"Cannot parse {path}: {e}", fg="red")
        raise typer.Exit(1) from e

    if isinstance(data, dict):
        data = data.get("cards")
    if not isinstance(data, list):
        typer.secho(f"{path} must contain a list of cards (or a 'cards' list).", fg="red")
        raise typer.Exit(1)
    return data


# ---------------------------------------------------------------------------
# Decks subgroup
# ---------------------------------------------------------------------------


@decks_app.command("list")
def decks_list(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List every known deck."""
    service = _service(ctx)
    entries = service.registry.catalogue()

    if json_output:
        typer.echo(json.dumps([e.model_dump() for e in entries], indent=2))
        return
    if not entries:
        typer.secho("No decks yet. Create one with 'tierdeck decks create NAME'.", fg="yellow")
        return
    for e in entries:
        star = "*" if e.favorite else " "
        typer.echo(f"{star} {e.id}  {e.name or '(unnamed)'}")


@decks_app.command("create")
def decks_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Display name.")],
    deck_id: Annotated[str | None, typer.Option("--id", help="Explicit deck id.")] = None,
    description: Annotated[str | None, typer.Option(help="Short description.")] = None,
    source: Annotated[str | None, typer.Option(help="Where the cards come from.")] = None,
    favorite: Annotated[bool, typer.Option("--favorite", help="Pin to the top.")] = False,
):
    """Create a deck and print its id."""
    service = _service(ctx)
    deck_id = deck_id or new_deck_id()
    service.activate(deck_id, display_name=name)
    service.registry.describe(
        deck_id, description=description, source=source, favorite=favorite or None
    )
    service.close()
    typer.secho(f"Created deck {deck_id}", fg="green")


@decks_app.command("remove")
def decks_remove(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip the confirmation prompt.")
    ] = False,
):
    """Delete a deck and all of its progress."""
    if not force and not typer.confirm(f"Delete deck {deck_id} and its progress?"):
        raise typer.Abort()

    service = _service(ctx)
    removed = service.remove(deck_id)
    service.close()
    if not removed:
        typer.secho(f"Unknown deck: {deck_id}", fg="yellow")
        raise typer.Exit(1)
    typer.secho(f"Removed deck {deck_id}", fg="green")


# ---------------------------------------------------------------------------
# Deck commands
# ---------------------------------------------------------------------------


@app.command()
def admit(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    path: Annotated[Path, typer.Argument(help="YAML or JSON file with card descriptors.")],
):
    """Add cards ({id, label, tier, cooldown?}) to a deck. Known ids are skipped."""
    service = _service(ctx)
    _load_deck(service, deck_id)
    descriptors = _read_descriptors(path)

    try:
        added = service.admit(descriptors)
    except ValueError as e:
        typer.secho(f"Invalid card: {e}", fg="red")
        raise typer.Exit(1) from e
    finally:
        service.close()

    skipped = len(descriptors) - len(added)
    typer.secho(f"Admitted {len(added)} cards ({skipped} skipped).", fg="green")


@app.command()
def study(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    rounds: Annotated[int, typer.Option(help="Maximum number of cards.", min=1)] = 10,
):
    """Study a deck in the terminal."""
    service = _service(ctx)
    _load_deck(service, deck_id)

    answered = correct = 0
    try:
        for _ in range(rounds):
            card = service.next_card()
            if card is None:
                typer.secho("Deck finished!", fg="green")
                break

            typer.echo(f"\n[{card.tier.name.lower()}] {card.label or card.id}")
            ok = typer.confirm("Did you get it right?", default=True)
            service.answer(card.id, ok)
            answered += 1
            correct += int(ok)
    finally:
        service.close()

    if answered:
        typer.echo(f"\n{correct}/{answered} correct.")


@app.command()
def stats(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show queue sizes and tier progress for a deck."""
    service = _service(ctx)
    deck = _load_deck(service, deck_id)
    service.close()
    summary = deck_stats(deck)

    if json_output:
        d = summary.to_dict()
        d["by_tier"] = {
            tier.name: {"new": c.new, "review": c.review, "cooldown": c.cooldown}
            for tier, c in cards_by_tier(deck).items()
        }
        typer.echo(json.dumps(d, indent=2))
        return

    current = current_tier_stats(deck)
    typer.echo(f"Deck: {deck.meta.name or deck.id}")
    typer.echo(f"Turns: {summary.counter}  Tier: {summary.current_tier.name}")
    typer.echo(
        f"Cards: {summary.total_cards}  New: {summary.counts.new}  "
        f"Review: {summary.counts.review}  Cooldown: {summary.counts.cooldown}"
    )
    typer.echo(
        f"Current tier: {current.counts.new} new, {current.counts.review} review, "
        f"{current.counts.cooldown} cooling down"
    )
    if summary.next_tier is not None and service.can_advance():
        typer.secho(f"Ready to advance to {summary.next_tier.name}.", fg="green")


@app.command()
def advance(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
):
    """Unlock the next tier once the current one has no new cards left."""
    service = _service(ctx)
    deck = _load_deck(service, deck_id)
    advanced = service.advance()
    service.close()

    if advanced:
        typer.secho(f"Now studying {deck.current_tier.name}.", fg="green")
    else:
        typer.secho(f"Cannot advance past {deck.current_tier.name} yet.", fg="yellow")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
