import asyncio
import typer
from rich.console import Console
from rich.table import Table
from typing import Optional, List
from datetime import datetime, date

from reviewbox.client import ReviewClient
from reviewbox.config import settings
from reviewbox.database import init_db
from reviewbox.errors import ReviewBoxError, ValidationError
from reviewbox.logging import configure_logging
from reviewbox.schemas import (
    BoxCreate, CategoryCreate, DailyReviewFilters, ItemCreate, ItemResponse, ItemUnfinish, OverduePolicy,
    PatternCreate, StepSchema, TargetWeight
)
from reviewbox.service import LocalItemService

app = typer.Typer(help="ReviewBox CLI - pattern-based review scheduling")
console = Console()

@app.callback()
def main(log_level: Optional[str] = typer.Option(None, help="Log level (default from REVIEWBOX_LOG_LEVEL)")):
    configure_logging(level=log_level)

def _client() -> ReviewClient:
    return ReviewClient(LocalItemService())

def _run(coro):
    """Run one client coroutine; reviewbox failures end the command with exit code 1"""
    try:
        return asyncio.run(coro)
    except ReviewBoxError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

def _parse_date(value: Optional[str], field: str) -> date:
    if not value:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        console.print(f"[red]✗[/red] {field}: expected YYYY-MM-DD, got {value!r}")
        raise typer.Exit(code=1)

def _policy(pin_to_today: bool) -> OverduePolicy:
    if pin_to_today:
        return OverduePolicy.PIN_TO_TODAY
    return settings.default_overdue_policy

def _location(box_id: Optional[int], category_id: Optional[int]) -> str:
    if box_id is not None:
        return f"box {box_id}"
    if category_id is not None:
        return f"category {category_id} (unclassified)"
    return "unclassified"

def _print_items(items: List[ItemResponse], title: str):
    if not items:
        console.print(f"[yellow]No items in {title}.[/yellow]")
        return

    console.print(f"\n[bold]{title}[/bold]")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", width=6)
    table.add_column("Name", style="white")
    table.add_column("Learned", width=12)
    table.add_column("Pattern", width=8)
    table.add_column("Done", width=8)
    table.add_column("Next review", style="green", width=12)

    for item in items:
        pending = [rd for rd in item.review_dates if not rd.is_completed]
        done = len(item.review_dates) - len(pending)
        table.add_row(
            str(item.item_id),
            item.name,
            item.learned_date.isoformat() if item.learned_date else "-",
            str(item.pattern_id) if item.pattern_id is not None else "-",
            f"{done}/{len(item.review_dates)}",
            min(rd.scheduled_date for rd in pending).isoformat() if pending else "-"
        )
    console.print(table)

@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")

@app.command()
def reset_db():
    """Delete all data and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DATA. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    from reviewbox.database import reset_db as drop_and_create
    console.print("[yellow]Dropping and recreating all tables...[/yellow]")
    drop_and_create()
    console.print("[green]✓[/green] Database reset complete! All data deleted.")

# ---------------------------------------------------------------------------
# Patterns, categories, boxes
# ---------------------------------------------------------------------------

@app.command()
def add_pattern(
    name: str = typer.Option(..., prompt="Pattern name"),
    intervals: str = typer.Option(..., prompt="Intervals in days (comma-separated, e.g., 1,3,7)"),
    weight: TargetWeight = typer.Option(TargetWeight.UNSET, help="Target weight (heavy/normal/light/unset)")
):
    """Create a review pattern"""
    try:
        days = [int(d.strip()) for d in intervals.split(",") if d.strip()]
    except ValueError:
        console.print(f"[red]✗[/red] intervals must be whole numbers: {intervals!r}")
        raise typer.Exit(code=1)

    steps = [StepSchema(step_number=i, interval_days=d) for i, d in enumerate(days, start=1)]
    client = _client()
    pattern = _run(client.service.create_pattern(PatternCreate(name=name, target_weight=weight, steps=steps)))
    console.print(f"[green]✓[/green] Pattern created! ID: {pattern.id}")
    console.print(f"  Intervals: {', '.join(str(d) for d in pattern.intervals)} days")

@app.command()
def patterns():
    """List review patterns"""
    client = _client()
    found = _run(client.load_patterns())
    if not found:
        console.print("[yellow]No patterns yet. Create one with add-pattern.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", width=6)
    table.add_column("Name", style="white")
    table.add_column("Weight", width=8)
    table.add_column("Intervals (days)", style="green")
    for pattern in found:
        table.add_row(
            str(pattern.id),
            pattern.name,
            pattern.target_weight.value,
            ", ".join(str(d) for d in pattern.intervals)
        )
    console.print(table)

@app.command()
def add_category(name: str = typer.Option(..., prompt="Category name")):
    """Create a category"""
    category = _run(_client().service.create_category(CategoryCreate(name=name)))
    console.print(f"[green]✓[/green] Category created! ID: {category.id}")

@app.command()
def categories():
    """List categories"""
    found = _run(_client().load_categories())
    if not found:
        console.print("[yellow]No categories yet.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", width=6)
    table.add_column("Name", style="white")
    for category in found:
        table.add_row(str(category.id), category.name)
    console.print(table)

@app.command()
def add_box(
    category_id: int = typer.Option(..., prompt="Category ID"),
    name: str = typer.Option(..., prompt="Box name"),
    pattern_id: Optional[int] = typer.Option(None, help="Pattern every item in the box follows")
):
    """Create a box inside a category"""
    box = _run(_client().service.create_box(category_id, BoxCreate(name=name, pattern_id=pattern_id)))
    console.print(f"[green]✓[/green] Box created! ID: {box.id}")

@app.command()
def boxes(category_id: int):
    """List the boxes of a category"""
    found = _run(_client().load_boxes(category_id))
    if not found:
        console.print(f"[yellow]Category {category_id} has no boxes.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", width=6)
    table.add_column("Name", style="white")
    table.add_column("Pattern", width=8)
    for box in found:
        table.add_row(str(box.id), box.name, str(box.pattern_id) if box.pattern_id is not None else "-")
    console.print(table)

# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

@app.command()
def add_item(
    name: str = typer.Option(..., prompt="Item name"),
    learned: Optional[str] = typer.Option(None, help="Learned date (YYYY-MM-DD), default: today"),
    detail: Optional[str] = typer.Option(None, help="Optional detail"),
    category_id: Optional[int] = typer.Option(None, help="Category ID"),
    box_id: Optional[int] = typer.Option(None, help="Box ID (its pattern wins)"),
    pattern_id: Optional[int] = typer.Option(None, help="Pattern ID"),
    pin_to_today: bool = typer.Option(False, help="Pin past-due dates to today instead of completing them")
):
    """Create a review item and generate its schedule"""
    draft = ItemCreate(
        name=name,
        detail=detail,
        learned_date=_parse_date(learned, "learned"),
        category_id=category_id,
        box_id=box_id,
        pattern_id=pattern_id,
        overdue_policy=_policy(pin_to_today)
    )
    item = _run(_client().create_item(draft))
    console.print(f"[green]✓[/green] Item created! ID: {item.item_id}")
    console.print(f"  Location: {_location(item.box_id, item.category_id)}")
    console.print(f"  Review dates: {len(item.review_dates)}")

@app.command()
def items(
    box_id: Optional[int] = typer.Option(None, help="Box ID"),
    category_id: Optional[int] = typer.Option(None, help="Category ID (unclassified items of the category)"),
    finished: bool = typer.Option(False, help="List finished items instead")
):
    """List the items at a location"""
    client = _client()
    if finished:
        found = _run(client.load_finished_items(box_id, category_id))
        _print_items(found, f"Finished items in {_location(box_id, category_id)}")
    else:
        found = _run(client.load_items(box_id, category_id))
        _print_items(found, f"Items in {_location(box_id, category_id)}")

@app.command()
def show_item(item_id: int):
    """Show an item and its review schedule"""
    item = _run(_client().item(item_id))

    console.print(f"\n[bold]{item.name}[/bold] (ID {item.item_id})")
    console.print(f"  Location: {_location(item.box_id, item.category_id)}")
    console.print(f"  Learned: {item.learned_date}")
    if item.detail:
        console.print(f"  Detail: {item.detail}")
    if item.is_finished:
        console.print("  [yellow]Finished[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Review ID", style="cyan", width=10)
    table.add_column("Step", width=6)
    table.add_column("Initial", width=12)
    table.add_column("Scheduled", style="green", width=12)
    table.add_column("Status", width=8)
    for rd in item.review_dates:
        table.add_row(
            str(rd.review_date_id),
            str(rd.step_number),
            rd.initial_scheduled_date.isoformat(),
            rd.scheduled_date.isoformat(),
            "[green]✓[/green]" if rd.is_completed else "-"
        )
    console.print(table)

@app.command()
def move_item(
    item_id: int,
    box_id: Optional[int] = typer.Option(None, help="Target box ID"),
    category_id: Optional[int] = typer.Option(None, help="Target category ID (unclassified within it)")
):
    """Move an item to a box or to the unclassified area"""
    async def move():
        client = _client()
        item = await client.item(item_id)
        return await client.move_item(item, box_id, category_id)

    item = _run(move())
    console.print(f"[green]✓[/green] Item {item.item_id} moved to {_location(item.box_id, item.category_id)}")

def _review_date_id(item: ItemResponse, step: int) -> int:
    for rd in item.review_dates:
        if rd.step_number == step:
            return rd.review_date_id
    raise ValidationError("step", f"item {item.item_id} has no step {step}")

@app.command()
def complete(item_id: int, step: int = typer.Option(..., prompt="Step number")):
    """Mark one review step as done"""
    async def toggle():
        client = _client()
        item = await client.item(item_id)
        return await client.complete_review_date(item, _review_date_id(item, step))

    _run(toggle())
    console.print(f"[green]✓[/green] Step {step} of item {item_id} completed")

@app.command()
def incomplete(item_id: int, step: int = typer.Option(..., prompt="Step number")):
    """Mark one review step as not done"""
    async def toggle():
        client = _client()
        item = await client.item(item_id)
        return await client.incomplete_review_date(item, _review_date_id(item, step))

    _run(toggle())
    console.print(f"[green]✓[/green] Step {step} of item {item_id} marked incomplete")

@app.command()
def reschedule(
    item_id: int,
    step: int = typer.Option(..., prompt="Step number"),
    to: str = typer.Option(..., prompt="New date (YYYY-MM-DD, before today)"),
    pin_to_today: bool = typer.Option(False, help="Pin past-due later steps to today instead of completing them")
):
    """Rewind one review date; later steps follow"""
    requested = _parse_date(to, "to")

    async def rewind():
        client = _client()
        item = await client.item(item_id)
        return await client.reschedule_review_date(
            item, _review_date_id(item, step), requested, _policy(pin_to_today)
        )

    item = _run(rewind())
    console.print(f"[green]✓[/green] Step {step} of item {item_id} moved to {requested.isoformat()}")
    for rd in item.review_dates:
        if rd.step_number > step:
            status = "completed" if rd.is_completed else "pending"
            console.print(f"  Step {rd.step_number}: {rd.scheduled_date.isoformat()} ({status})")

@app.command()
def finish(item_id: int):
    """Mark an item finished; its schedule is discarded"""
    async def mark():
        client = _client()
        return await client.finish_item(await client.item(item_id))

    _run(mark())
    console.print(f"[green]✓[/green] Item {item_id} finished")

@app.command()
def unfinish(
    item_id: int,
    pattern_id: int = typer.Option(..., prompt="Pattern ID"),
    learned: Optional[str] = typer.Option(None, help="New learned date (YYYY-MM-DD), default: today"),
    box_id: Optional[int] = typer.Option(None, help="Box ID"),
    category_id: Optional[int] = typer.Option(None, help="Category ID"),
    pin_to_today: bool = typer.Option(False, help="Pin past-due dates to today instead of completing them")
):
    """Return a finished item to review with a fresh schedule"""
    request = ItemUnfinish(
        pattern_id=pattern_id,
        learned_date=_parse_date(learned, "learned"),
        box_id=box_id,
        category_id=category_id,
        overdue_policy=_policy(pin_to_today)
    )

    async def mark():
        client = _client()
        return await client.unfinish_item(await client.item(item_id), request)

    item = _run(mark())
    console.print(f"[green]✓[/green] Item {item_id} is back in {_location(item.box_id, item.category_id)}")

@app.command()
def delete_item(item_id: int):
    """Delete an item and its schedule"""
    confirm = typer.confirm(f"Delete item {item_id}?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    async def delete():
        client = _client()
        await client.delete_item(await client.item(item_id))

    _run(delete())
    console.print(f"[green]✓[/green] Item {item_id} deleted")

# ---------------------------------------------------------------------------
# Today
# ---------------------------------------------------------------------------

@app.command()
def today(
    category_id: Optional[int] = typer.Option(None, help="Only this category"),
    box_id: Optional[int] = typer.Option(None, help="Only this box")
):
    """Show today's reviews"""
    filters = None
    if category_id is not None or box_id is not None:
        filters = DailyReviewFilters(category_id=category_id, box_id=box_id)
    reviews = _run(_client().load_todays_reviews(filters))
    flat = reviews.flatten()
    if not flat:
        console.print("[green]Nothing to review today.[/green]")
        return

    console.print(f"\n[bold]Today's reviews ({date.today().isoformat()})[/bold]")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Item", style="cyan", width=6)
    table.add_column("Name", style="white")
    table.add_column("Location")
    table.add_column("Step", width=6)
    table.add_column("Previous", width=12)
    table.add_column("Next", width=12)
    table.add_column("Done", width=6)
    for rd in flat:
        table.add_row(
            str(rd.item_id),
            rd.item_name,
            _location(rd.box_id, rd.category_id),
            str(rd.step_number),
            rd.prev_scheduled_date.isoformat() if rd.prev_scheduled_date else "-",
            rd.next_scheduled_date.isoformat() if rd.next_scheduled_date else "-",
            "[green]✓[/green]" if rd.is_completed else "-"
        )
    console.print(table)

@app.command()
def summary():
    """Show item and review counts per location"""
    counts = _run(_client().load_summary())

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Location", style="cyan")
    table.add_column("Items", width=8)
    table.add_column("Due today", style="green", width=10)

    due_by_box = {c.box_id: c.count for c in counts.daily_reviews_by_box}
    due_by_category = {c.category_id: c.count for c in counts.daily_unclassified_reviews_by_category}
    for c in counts.items_by_box:
        table.add_row(_location(c.box_id, c.category_id), str(c.count), str(due_by_box.get(c.box_id, 0)))
    for c in counts.unclassified_items_by_category:
        table.add_row(_location(None, c.category_id), str(c.count), str(due_by_category.get(c.category_id, 0)))
    table.add_row("unclassified", str(counts.unclassified_items), str(counts.daily_unclassified_reviews))
    console.print(table)
    console.print(f"\n[bold]Reviews due today:[/bold] {counts.daily_reviews_total}")

if __name__ == "__main__":
    app()
