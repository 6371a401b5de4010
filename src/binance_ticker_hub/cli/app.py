from __future__ import annotations

import sqlite3
import time
from pathlib import Path

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from binance_ticker_hub.alerts.engine import AlertEngine, AlertResponse
from binance_ticker_hub.core.config import Settings
from binance_ticker_hub.core.enums import ConnectionState, Market
from binance_ticker_hub.core.errors import PersistenceImportError, ValidationError
from binance_ticker_hub.core.logging import configure_logging
from binance_ticker_hub.core.validation import (
    DISPLAY_PRESETS,
    normalize_symbol,
    parse_symbol_list,
    parse_target_price,
    resolve_display_preset,
)
from binance_ticker_hub.display.board import MarketBoard, volatility_level
from binance_ticker_hub.display.ticker import ScrollingTicker, TickerAggregator, format_price
from binance_ticker_hub.pipeline.hub import TickerHub
from binance_ticker_hub.state.favorites import FavoritesManager
from binance_ticker_hub.state.store import SQLiteKeyValueStore

app = typer.Typer(help="Live Binance spot and futures ticker with favorites and price alerts")
console = Console()

_STATE_STYLES = {
    ConnectionState.OPEN: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.RECONNECTING: "yellow",
    ConnectionState.FAILED: "bold red",
}


def _bootstrap() -> tuple[Settings, SQLiteKeyValueStore]:
    settings = Settings()
    configure_logging(settings.log_level)
    return settings, SQLiteKeyValueStore(settings.state_db)


def _symbol_option(value: str) -> str:
    try:
        return normalize_symbol(value)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _resolve_display_symbols(preset: str | None, symbols: str | None) -> list[str]:
    if preset is not None and symbols is not None:
        raise typer.BadParameter("Choose either --preset or --symbols, not both.")
    try:
        if preset is not None:
            return resolve_display_preset(preset)
        if symbols is not None:
            return parse_symbol_list(symbols)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    raise typer.BadParameter("Provide --preset or --symbols.")


def _print_alert(symbol: str, target: float, current_price: float) -> AlertResponse:
    console.print(
        f"[bold magenta]Price alert:[/bold magenta] {symbol} reached target {target} "
        f"(current price {current_price})"
    )
    return AlertResponse.dismiss()


def _render_board(board: MarketBoard) -> Table:
    table = Table(title="Markets", expand=True)
    table.add_column("Symbol")
    table.add_column("Price", justify="right")
    table.add_column("24h %", justify="right")
    table.add_column("Volatility")

    for section in board.sections():
        table.add_row(Text(f"{section.title} ({section.summary})", style="bold"), "", "", "")
        if not section.entries:
            table.add_row(Text("  no entries yet", style="dim"), "", "", "")
        for entry in section.entries:
            style = "green" if entry.percent_change >= 0 else "red"
            table.add_row(
                f"  {entry.symbol}",
                f"${format_price(entry.numeric_price)}",
                Text(f"{entry.percent_change:+.2f}%", style=style),
                volatility_level(entry.percent_change),
            )
    return table


def _reload_alerts(hub: TickerHub) -> None:
    # picks up alert-set / alert-remove runs from other shells
    try:
        hub.alerts.reload()
    except sqlite3.Error as exc:
        console.print(f"[yellow]Could not reload price alerts:[/yellow] {exc}")


def _render_status(hub: TickerHub) -> Text:
    status = Text()
    for market, state in hub.connection_states().items():
        status.append(f"{market.value}: ", style="bold")
        status.append(state.value, style=_STATE_STYLES.get(state, "white"))
        status.append("   ")
    return status


@app.command("watch")
def watch(
    refresh_seconds: float = typer.Option(default=0.5, min=0.1, max=10.0, help="Screen refresh interval"),
) -> None:
    """
    Live panel: stream both markets, scroll the ticker and show the categorized board.
    """
    settings, store = _bootstrap()
    hub = TickerHub(settings, store=store, alert_notifier=_print_alert)
    ticker = ScrollingTicker(
        hub.aggregator,
        width=settings.ticker_viewport_width,
        interval_seconds=settings.ticker_scroll_interval_seconds,
    )
    reported_failures: set[Market] = set()
    next_reload = time.monotonic() + settings.alert_reload_interval_seconds

    hub.connect()
    ticker.start()
    try:
        with Live(console=console, refresh_per_second=max(1, int(1 / refresh_seconds))) as live:
            while True:
                if time.monotonic() >= next_reload:
                    next_reload = time.monotonic() + settings.alert_reload_interval_seconds
                    _reload_alerts(hub)
                for failure in hub.failures():
                    if failure.market not in reported_failures:
                        reported_failures.add(failure.market)
                        console.print(f"[red]{failure}[/red]")
                live.update(
                    Group(
                        _render_status(hub),
                        Text(ticker.frame, style="bold cyan"),
                        _render_board(hub.board),
                    )
                )
                time.sleep(refresh_seconds)
    except KeyboardInterrupt:
        console.print("Stopping streams...")
    finally:
        ticker.stop()
        hub.close()


@app.command("refresh")
def refresh() -> None:
    """
    Show what the next watch session will subscribe to and evaluate.
    """
    settings, store = _bootstrap()
    hub = TickerHub(settings, store=store)
    console.print(f"Display symbols: [bold]{', '.join(hub.aggregator.display_symbols())}[/bold]")
    console.print(f"Favorites: {', '.join(hub.favorites.get_favorites()) or '-'}")
    console.print(f"Subscribed symbols ({len(hub.subscriptions)}): {', '.join(sorted(hub.subscriptions.symbols()))}")
    console.print(f"Active alerts: {len(hub.alerts.get_active_alerts())}")


@app.command("display-configure")
def display_configure(
    preset: str | None = typer.Option(
        default=None,
        help=f"One of: {', '.join(sorted(DISPLAY_PRESETS))}",
    ),
    symbols: str | None = typer.Option(default=None, help="Comma separated symbols, e.g. 'BTCUSDT, ETHUSDT'"),
) -> None:
    settings, store = _bootstrap()
    selected = _resolve_display_symbols(preset, symbols)
    aggregator = TickerAggregator(store, default_symbols=settings.default_display_symbols)
    applied = aggregator.set_display_symbols(selected)
    console.print(f"[green]Ticker display symbols updated:[/green] {', '.join(applied)}")


@app.command("display-show")
def display_show() -> None:
    settings, store = _bootstrap()
    aggregator = TickerAggregator(store, default_symbols=settings.default_display_symbols)
    console.print(f"Ticker display symbols: [bold]{', '.join(aggregator.display_symbols())}[/bold]")


@app.command("favorite-add")
def favorite_add(symbol: str = typer.Argument(callback=_symbol_option)) -> None:
    _, store = _bootstrap()
    if FavoritesManager(store).add_favorite(symbol):
        console.print(f"[green]{symbol} added to favorites[/green]")
    else:
        console.print(f"{symbol} is already a favorite")


@app.command("favorite-remove")
def favorite_remove(symbol: str = typer.Argument(callback=_symbol_option)) -> None:
    _, store = _bootstrap()
    if FavoritesManager(store).remove_favorite(symbol):
        console.print(f"[green]{symbol} removed from favorites and all categories[/green]")
    else:
        console.print(f"{symbol} is not a favorite")


@app.command("favorites-list")
def favorites_list() -> None:
    _, store = _bootstrap()
    favorites = FavoritesManager(store)
    for category in favorites.get_categories():
        console.print(f"[bold]{category.name}[/bold] ({category.id}): {', '.join(category.symbols) or '-'}")
    console.print(f"[bold]Uncategorized[/bold]: {', '.join(favorites.get_uncategorized_symbols()) or '-'}")


@app.command("favorites-export")
def favorites_export(
    output: Path | None = typer.Option(default=None, help="Write to this file instead of stdout"),
) -> None:
    _, store = _bootstrap()
    payload = FavoritesManager(store).export_favorites()
    if output is None:
        console.print_json(payload)
        return
    output.write_text(payload, encoding="utf-8")
    console.print(f"Favorites exported to {output}")


@app.command("favorites-import")
def favorites_import(source: Path = typer.Argument(exists=True, dir_okay=False, readable=True)) -> None:
    _, store = _bootstrap()
    try:
        FavoritesManager(store).import_favorites(source.read_text(encoding="utf-8"))
    except PersistenceImportError as exc:
        console.print(f"[red]Import failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print("[green]Favorites imported.[/green]")


@app.command("category-create")
def category_create(name: str) -> None:
    _, store = _bootstrap()
    category_id = FavoritesManager(store).create_category(name)
    console.print(f"Category [bold]{name}[/bold] created with id {category_id}")


@app.command("category-add")
def category_add(category: str, symbol: str = typer.Argument(callback=_symbol_option)) -> None:
    """
    Add SYMBOL to the category with the given id or name. The symbol becomes a favorite.
    """
    _, store = _bootstrap()
    favorites = FavoritesManager(store)
    target = favorites.get_category(category) or favorites.get_category_by_name(category)
    if target is None:
        console.print(f"[red]No category named or identified by {category!r}[/red]")
        raise typer.Exit(code=1)
    favorites.add_to_category(target.id, symbol)
    console.print(f"{symbol} is in category {target.name}")


@app.command("alert-set")
def alert_set(symbol: str = typer.Argument(callback=_symbol_option), price: str = typer.Argument()) -> None:
    settings, store = _bootstrap()
    try:
        target = parse_target_price(price)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="PRICE") from exc
    AlertEngine(store, tolerance=settings.alert_tolerance).set_alert(symbol, target)
    console.print(f"[green]Alert set:[/green] {symbol} at {target}")


@app.command("alert-remove")
def alert_remove(symbol: str = typer.Argument(callback=_symbol_option), price: str = typer.Argument()) -> None:
    settings, store = _bootstrap()
    try:
        target = parse_target_price(price)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="PRICE") from exc
    if AlertEngine(store, tolerance=settings.alert_tolerance).remove_alert(symbol, target):
        console.print(f"Alert removed: {symbol} at {target}")
    else:
        console.print(f"No active alert for {symbol} at {target}")


@app.command("alert-list")
def alert_list(
    include_inactive: bool = typer.Option(False, "--all", help="Include alerts that already fired"),
) -> None:
    settings, store = _bootstrap()
    engine = AlertEngine(store, tolerance=settings.alert_tolerance)
    table = Table(title="Price alerts")
    table.add_column("Symbol")
    table.add_column("Target", justify="right")
    table.add_column("Created (UTC)")
    table.add_column("Status")
    for symbol, alerts in sorted(engine.get_alerts().items()):
        for alert in alerts:
            if not alert.active and not include_inactive:
                continue
            table.add_row(
                symbol,
                str(alert.target_price),
                alert.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                "active" if alert.active else "triggered",
            )
    console.print(table)


@app.command("alerts-clear")
def alerts_clear(symbol: str | None = typer.Option(default=None, help="Only clear alerts for this symbol")) -> None:
    settings, store = _bootstrap()
    engine = AlertEngine(store, tolerance=settings.alert_tolerance)
    if symbol is None:
        engine.clear_all()
        console.print("All price alerts cleared")
        return
    normalized = _symbol_option(symbol)
    engine.clear_symbol(normalized)
    console.print(f"Price alerts cleared for {normalized}")


if __name__ == "__main__":
    app()
