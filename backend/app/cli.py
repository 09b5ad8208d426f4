"""ConvoyTrack CLI — convoy logistics tracking.

Commands:
  init-db    — create database tables
  seed-demo  — load the demo convoys
  list       — convoys with vehicle count and total load
  show       — one convoy and its vehicles
  delete     — delete a convoy and its vehicles
  serve      — run the API server
"""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from app.modules.audit import record_audit
from app.modules.errors import ConvoyServiceError


app = typer.Typer(
    name="convoytrack",
    help="Convoy logistics tracking.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

_PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "green",
}


def _value(v) -> str:
    return str(v.value) if hasattr(v, "value") else str(v)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_database():
    """Create database tables (safe to re-run)."""
    try:
        from app.database import init_db
        with console.status("[bold]Creating database..."):
            init_db()
    except Exception as e:
        console.print(f"[red]Database setup failed:[/red] {e}")
        raise typer.Exit(1)
    console.print("[green]Database ready.[/green]")


@app.command("seed-demo")
def seed_demo():
    """Load the demo convoys (Alpha, Bravo, Charlie)."""
    from app.database import init_db, SessionLocal
    from app.modules.sample_data import load_sample_data

    init_db()
    db = SessionLocal()
    try:
        try:
            stats = load_sample_data(db)
            db.commit()
        except ConvoyServiceError as e:
            db.rollback()
            console.print(f"[red]Could not load demo data:[/red] {e.detail}")
            raise typer.Exit(1)
    finally:
        db.close()
    console.print(
        f"[green]Demo data loaded:[/green] {stats['created']} created, {stats['skipped']} already present"
    )


@app.command("list")
def list_convoys(
    priority: Optional[str] = typer.Option(None, "--priority", help="Only show this priority"),
):
    """List convoys with vehicle count and total load."""
    from app.database import SessionLocal
    from app.modules.convoy_service import list_convoys as _list_convoys

    db = SessionLocal()
    try:
        rows = _list_convoys(db)
        if priority:
            rows = [r for r in rows if _value(r.convoy.priority) == priority.lower()]
        if not rows:
            console.print("[yellow]No convoys found[/yellow]")
            return

        table = Table(title="Convoys")
        table.add_column("ID", justify="right")
        table.add_column("Name", style="bold", no_wrap=True)
        table.add_column("Route")
        table.add_column("Priority")
        table.add_column("Vehicles", justify="right")
        table.add_column("Total load (kg)", justify="right")
        for r in rows:
            c = r.convoy
            prio = _value(c.priority)
            route = f"{c.source_place or 'Source'} → {c.destination_place or 'Destination'}"
            table.add_row(
                str(c.id), c.convoy_name, route,
                f"[{_PRIORITY_STYLES.get(prio, 'white')}]{prio}[/]",
                str(r.vehicle_count), f"{r.total_load_kg:g}",
            )
        console.print(table)
    finally:
        db.close()


@app.command("show")
def show_convoy(convoy_id: int = typer.Argument(..., help="Convoy ID")):
    """Show one convoy and its vehicles."""
    from app.database import SessionLocal
    from app.modules.convoy_service import get_convoy

    db = SessionLocal()
    try:
        try:
            convoy = get_convoy(db, convoy_id)
        except ConvoyServiceError as e:
            console.print(f"[red]{e.detail}[/red]")
            raise typer.Exit(1)

        vehicles = list(convoy.vehicles)
        console.print(
            f"\n[bold cyan]{convoy.convoy_name}[/bold cyan] (#{convoy.id})  "
            f"priority: {_value(convoy.priority)}"
        )
        console.print(
            f"  {convoy.source_place or 'Source'} ({convoy.source_lat:.4f}, {convoy.source_lon:.4f}) → "
            f"{convoy.destination_place or 'Destination'} ({convoy.destination_lat:.4f}, {convoy.destination_lon:.4f})"
        )
        console.print(
            f"  Vehicles: {len(vehicles)}  |  Total load: {sum(v.load_weight_kg for v in vehicles):g} kg"
        )
        if not vehicles:
            return

        table = Table()
        table.add_column("Registration", style="bold", no_wrap=True)
        table.add_column("Type")
        table.add_column("Driver")
        table.add_column("Load")
        table.add_column("Weight (kg)", justify="right")
        table.add_column("Status")
        for v in vehicles:
            table.add_row(
                v.registration_number, _value(v.vehicle_type), v.driver_name,
                _value(v.load_type), f"{v.load_weight_kg:g}/{v.capacity_kg:g}",
                _value(v.current_status),
            )
        console.print(table)
    finally:
        db.close()


@app.command("delete")
def delete_convoy(
    convoy_id: int = typer.Argument(..., help="Convoy ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a convoy and all of its vehicles. Cannot be undone."""
    from app.database import SessionLocal
    from app.modules.convoy_service import delete_convoy as _delete_convoy, get_convoy

    db = SessionLocal()
    try:
        try:
            convoy = get_convoy(db, convoy_id)
        except ConvoyServiceError as e:
            console.print(f"[red]{e.detail}[/red]")
            raise typer.Exit(1)

        name = convoy.convoy_name
        if not yes and not typer.confirm(f"Delete convoy '{name}' and all its vehicles?"):
            console.print("Aborted.")
            raise typer.Exit(0)

        removed = _delete_convoy(db, convoy_id)
        record_audit(db, "delete", "convoy", convoy_id, details={
            "convoy_name": name, "vehicles_deleted": removed, "origin": "cli",
        })
        db.commit()
        console.print(f"[green]Deleted convoy '{name}'[/green] and {removed} vehicle(s)")
    finally:
        db.close()


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the API server."""
    import uvicorn

    console.print(f"API running at [cyan]http://{host}:{port}[/cyan], press Ctrl+C to stop")
    uvicorn.run("app.main:app", host=host, port=port)


if __name__ == "__main__":
    app()
