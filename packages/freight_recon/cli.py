# ruff: noqa: I001
"""CLI for the ``freight_recon`` package.

Each subcommand has a plain ``cmd_*`` handler that returns a process exit code
and a thin Typer wrapper around it. Environment variables (``DATABASE_URL``,
``FREIGHT_RECON_ACTOR``, ``FREIGHT_RECON_LOG_LEVEL``) are loaded from a local
``.env`` with ``python-dotenv`` before any handler runs. Business logic lives
in ``freight_recon.api`` and the modules it re-exports.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .errors import PartialFailure, ReconciliationError
from .logging_setup import configure_logging
from .models import Actor, ChargeLedger, ComparisonRow

console = Console()


def _store(database_url: str | None):
    from .store import SqlShipmentStore

    return SqlShipmentStore(database_url=database_url or load_settings().database_url)


def _actor() -> Actor:
    return Actor(email=load_settings().actor_email)


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


# ---- Rendering ---------------------------------------------------------------


def _ledger_table(ledger: ChargeLedger) -> Table:
    title = f"Shipment {ledger.shipment_id}"
    if ledger.carrier.name:
        title += f" ({ledger.carrier.name})"
    table = Table(title=title)
    table.add_column("Code")
    table.add_column("Name")
    table.add_column("Cost", justify="right")
    table.add_column("Charge", justify="right")
    table.add_column("Currency")
    table.add_column("Source")
    for line in ledger.charges:
        table.add_row(
            line.code,
            line.name,
            f"{line.cost:.2f}",
            f"{line.charge:.2f}",
            line.currency,
            line.source,
        )
    table.add_section()
    totals = ledger.totals
    table.add_row("", "Total", f"{totals.cost:.2f}", f"{totals.charge:.2f}", totals.currency, "")
    return table


def _comparison_table(rows: Sequence[ComparisonRow]) -> Table:
    table = Table(title="Invoice vs. system")
    for col in ("Code", "Name", "Invoice", "Quoted cost", "Actual cost", "Variance"):
        table.add_column(col, justify="left" if col in ("Code", "Name") else "right")
    for r in rows:
        style = None if abs(r.variance_cost) < 0.005 else "red"
        table.add_row(
            r.code,
            r.name,
            f"{r.invoice_amount:.2f}",
            f"{r.system_quoted_cost:.2f}",
            f"{r.system_actual_cost:.2f}",
            f"{r.variance_cost:+.2f}",
            style=style,
        )
    return table


# ---- Command handlers --------------------------------------------------------


def cmd_show_rates(shipment: str, *, database_url: str | None = None) -> int:
    """Print the canonical charge ledger of ``shipment``."""

    from .api import load_ledger

    try:
        ledger = load_ledger(_store(database_url), shipment)
    except ReconciliationError as e:
        return _error(str(e))
    console.print(_ledger_table(ledger))
    return 0


def cmd_compare(shipment: str, invoice_path: Path, *, database_url: str | None = None) -> int:
    """Compare the invoice lines in ``invoice_path`` with ``shipment``'s charges."""

    from .api import compare, load_invoice_charges, summarize, system_charges_for

    try:
        invoice = load_invoice_charges(invoice_path)
        record = _store(database_url).fetch_shipment(shipment)
    except (OSError, json.JSONDecodeError, ReconciliationError) as e:
        return _error(str(e))
    if record is None:
        return _error(f"shipment {shipment!r} not found")

    rows = compare(invoice, system_charges_for(record))
    summary = summarize(rows)
    console.print(_comparison_table(rows))
    console.print(
        f"Invoice total {summary.invoice_total:.2f}, "
        f"system actual {summary.system_actual_total:.2f}, "
        f"variance {summary.variance:+.2f}"
    )
    return 0


def cmd_approve(
    items_path: Path,
    *,
    upload_id: str | None = None,
    override: bool = False,
    notes: str = "",
    database_url: str | None = None,
) -> int:
    """Approve every eligible item in ``items_path``."""

    from .api import ApprovalWorkflow, StoreBackedApGateway, load_review_items

    try:
        items = load_review_items(items_path)
    except (OSError, json.JSONDecodeError, ReconciliationError) as e:
        return _error(str(e))

    store = _store(database_url)
    actor = _actor()
    workflow = ApprovalWorkflow(store, StoreBackedApGateway(store, actor=actor), actor)
    try:
        result = workflow.approve_batch(
            items, override=override, upload_id=upload_id, notes=notes
        )
    except PartialFailure as e:
        for failure in e.failures:
            print(f"  {failure.item.id}: {failure.reason}", file=sys.stderr)
        return _error(f"{e}; no charges were created")
    except ReconciliationError as e:
        return _error(str(e))

    table = Table(title=f"Approved {result.approved_count} item(s)")
    for col in ("Item", "Shipment", "Status", "Invoice status", "Message"):
        table.add_column(col)
    for outcome in result.outcomes:
        table.add_row(
            str(outcome.get("itemId", "")),
            str(outcome.get("shipmentKey", "")),
            str(outcome.get("status", "")),
            str(outcome.get("invoiceStatus", "")),
            str(outcome.get("message", "")),
        )
    console.print(table)
    return 0 if not result.failed else 2


def cmd_mark_exception(
    items_path: Path, item_id: str, *, database_url: str | None = None
) -> int:
    from .api import ApprovalWorkflow, ReviewQueue, StoreBackedApGateway, load_review_items

    try:
        queue = ReviewQueue(load_review_items(items_path))
        item = queue.get(item_id)
        store = _store(database_url)
        actor = _actor()
        workflow = ApprovalWorkflow(
            store, StoreBackedApGateway(store, actor=actor), actor, queue=queue
        )
        key = workflow.mark_exception(item)
    except (OSError, json.JSONDecodeError, ReconciliationError) as e:
        return _error(str(e))
    console.print(f"Marked {item_id} as exception (shipment {key}).")
    return 0


def cmd_reject(upload_id: str, reason: str, *, database_url: str | None = None) -> int:
    from .api import ApprovalWorkflow, StoreBackedApGateway

    store = _store(database_url)
    actor = _actor()
    workflow = ApprovalWorkflow(store, StoreBackedApGateway(store, actor=actor), actor)
    try:
        workflow.reject(upload_id, reason)
    except ReconciliationError as e:
        return _error(str(e))
    console.print(f"Rejected upload {upload_id}.")
    return 0


def cmd_migrate_rates(*, write: bool = False, database_url: str | None = None) -> int:
    """Report (and with ``write``, rewrite) every shipment's canonical rates."""

    from .api import migrate_rates

    try:
        report = migrate_rates(_store(database_url), actor=_actor(), write=write)
    except ReconciliationError as e:
        return _error(str(e))

    table = Table(title="Rate migration" + ("" if write else " (dry run)"))
    for col in ("Shipment", "Source", "Charges", "Cost", "Charge", "Written"):
        table.add_column(col)
    for entry in report:
        table.add_row(
            entry.shipment_id,
            entry.source,
            str(entry.charge_count),
            f"{entry.total_cost:.2f}",
            f"{entry.total_charge:.2f}",
            "yes" if entry.written else "no",
        )
    console.print(table)
    return 0


def cmd_import_shipments(path: Path, *, database_url: str | None = None) -> int:
    """Insert or replace shipments from a JSON object keyed by storage key."""

    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        return _error(str(e))
    if not isinstance(data, Mapping) or not all(isinstance(v, Mapping) for v in data.values()):
        return _error(f"expected a JSON object of shipment records keyed by id in {path}")

    store = _store(database_url)
    for key, record in data.items():
        store.put_shipment(str(key), record)
    console.print(f"Imported {len(data)} shipment(s).")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Reconcile carrier invoices against shipment rates and approve AP charges.",
)

DatabaseUrl = Annotated[
    str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
]


@app.command("show-rates")
def show_rates_cmd(
    shipment: Annotated[str, typer.Option(help="Shipment storage key.")],
    database_url: DatabaseUrl = None,
) -> None:
    """Show a shipment's canonical charge ledger."""

    raise typer.Exit(cmd_show_rates(shipment, database_url=database_url))


@app.command("compare")
def compare_cmd(
    shipment: Annotated[str, typer.Option(help="Shipment storage key.")],
    invoice: Annotated[Path, typer.Option(help="JSON list of invoice lines.", dir_okay=False)],
    database_url: DatabaseUrl = None,
) -> None:
    """Compare invoice lines with a shipment's system charges."""

    raise typer.Exit(cmd_compare(shipment, invoice, database_url=database_url))


@app.command("approve")
def approve_cmd(
    items: Annotated[Path, typer.Option(help="JSON file of extracted shipments.")],
    upload: Annotated[str | None, typer.Option(help="AP upload id to mark approved.")] = None,
    override: Annotated[
        bool, typer.Option(help="Include any matched item with confidence above zero.")
    ] = False,
    notes: Annotated[str, typer.Option(help="Notes stored with the approval.")] = "",
    database_url: DatabaseUrl = None,
) -> None:
    """Approve the eligible items of a review file."""

    raise typer.Exit(
        cmd_approve(
            items, upload_id=upload, override=override, notes=notes, database_url=database_url
        )
    )


@app.command("mark-exception")
def mark_exception_cmd(
    items: Annotated[Path, typer.Option(help="JSON file of extracted shipments.")],
    item_id: Annotated[str, typer.Option(help="Id of the item to flag.")],
    database_url: DatabaseUrl = None,
) -> None:
    """Flag one review item and its shipment as an exception."""

    raise typer.Exit(cmd_mark_exception(items, item_id, database_url=database_url))


@app.command("reject")
def reject_cmd(
    upload: Annotated[str, typer.Option(help="AP upload id.")],
    reason: Annotated[str, typer.Option(help="Why the upload is rejected.")],
    database_url: DatabaseUrl = None,
) -> None:
    """Reject an AP upload."""

    raise typer.Exit(cmd_reject(upload, reason, database_url=database_url))


@app.command("migrate-rates")
def migrate_rates_cmd(
    write: Annotated[bool, typer.Option(help="Rewrite shipments (default: dry run).")] = False,
    database_url: DatabaseUrl = None,
) -> None:
    """Project every shipment and optionally persist the canonical form."""

    raise typer.Exit(cmd_migrate_rates(write=write, database_url=database_url))


@app.command("import-shipments")
def import_shipments_cmd(
    file: Annotated[Path, typer.Option(help="JSON object of shipment records keyed by id.")],
    database_url: DatabaseUrl = None,
) -> None:
    """Load shipment records into the store."""

    raise typer.Exit(cmd_import_shipments(file, database_url=database_url))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
