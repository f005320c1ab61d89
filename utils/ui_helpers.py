import os
import json
from datetime import datetime
from typing import List, Any, Dict, Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from circulation.models import IssuanceStatus

# Environment variable to control CLI output mode
# İzin verilen değerler: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

STATUS_STYLES = {
    IssuanceStatus.RETURNED: "green",
    IssuanceStatus.OVERDUE: "red",
    IssuanceStatus.BORROWED: "blue",
}

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def _print_rows(title: str, columns: List[str], rows: List[List[str]], payload: List[Dict[str, Any]],
                empty_message: str, styles: Optional[List[Optional[str]]] = None) -> None:
    """Satırları mevcut çıktı moduna göre yazdır.
    - plain: sütunlar ' | ' ile ayrılmış satırlar
    - json: payload JSON dizisi olarak
    - rich: Rich tablosu
    """
    mode = get_output_mode()

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps(payload, ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column)
        for i, row in enumerate(rows):
            style = styles[i] if styles else None
            table.add_row(*row, style=style)
        _console.print(table)
    else:
        for row in rows:
            print(" | ".join(row))

def print_members(members: List[Any]) -> None:
    rows = [[m.id, m.name, m.email, m.phone or "-"] for m in members]
    _print_rows("👥 Members", ["ID", "Name", "Email", "Phone"], rows,
                [m.to_dict() for m in members], "No members found.")

def print_books(books: List[Any]) -> None:
    rows = [
        [b.id, b.title, b.author, b.isbn, f"{b.available_quantity}/{b.quantity}"]
        for b in books
    ]
    _print_rows("📚 Books", ["ID", "Title", "Author", "ISBN", "Available"], rows,
                [b.to_dict() for b in books], "No books in library.")

def print_issuances(issuances: List[Any], now: datetime) -> None:
    rows = []
    styles = []
    for i in issuances:
        status = i.status(now)
        rows.append([
            i.id,
            i.member.name if i.member else i.member_id,
            i.book.title if i.book else i.book_id,
            i.issue_date.strftime("%d/%m/%Y"),
            i.due_date.strftime("%d/%m/%Y"),
            status.value,
        ])
        styles.append(STATUS_STYLES[status])
    _print_rows("🔖 Issuances", ["ID", "Member", "Book", "Issued", "Due", "Status"], rows,
                [i.to_dict(now) for i in issuances], "No issuances found.", styles)

def print_stats_result(stats: Dict[str, Any]) -> None:
    """İstatistikleri mevcut çıktı moduna göre yazdır."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_members": "Members",
        "total_books": "Titles",
        "total_copies": "Copies",
        "copies_on_loan": "Copies On Loan",
        "outstanding_issuances": "Outstanding",
        "overdue_issuances": "Overdue",
    }

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels.items():
            print(f"{label}: {stats.get(key, 0)}")
