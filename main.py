import logging
import subprocess
import sys
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console

from circulation.errors import CirculationError, PartialWriteError
from circulation.library import Library
from circulation.services.log_relay import RelayLogHandler
from config import settings
from utils.ui_helpers import (
    print_books,
    print_issuances,
    print_members,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Kütüphane Ödünç CLI"

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.WARNING)
    # Aktarıcı yapılandırılmışsa yerel kayıtları oraya da gönder
    if settings.log_relay_url:
        root = logging.getLogger()
        if not any(isinstance(h, RelayLogHandler) for h in root.handlers):
            handler = RelayLogHandler(settings.log_relay_url)
            handler.setLevel(logging.INFO)
            root.addHandler(handler)


# Tekil Library örneği
class LibraryManager:
    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        """Library singleton örneğini al veya oluştur."""
        if cls._instance is None:
            cls._instance = Library()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None


def _fail(error: CirculationError) -> None:
    print(f"Error: {error}")
    if isinstance(error, PartialWriteError):
        print("Run 'audit' and 'reconcile' to repair the book's stock.")
    raise typer.Exit(code=1)


# --- Typer CLI Uygulaması ---
app = typer.Typer(help=APP_NAME)

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Çıktı formatı: plain | json | rich (varsayılan: plain)",
    )
):
    """CLI için genel seçenekler (ör. çıktı modu)."""
    _configure_logging()
    if output:
        set_output_mode(output)

# --- Üyeler ---
@app.command("members")
def cli_members():
    """Tüm üyeleri ada göre listele."""
    try:
        print_members(LibraryManager.get_instance().list_members())
    except CirculationError as e:
        _fail(e)

@app.command("add-member")
def cli_add_member(
    name: str,
    email: str,
    phone: Optional[str] = typer.Option(None, "--phone", help="İsteğe bağlı telefon"),
):
    """Yeni üye ekle."""
    try:
        member = LibraryManager.get_instance().add_member(name, email, phone)
    except CirculationError as e:
        _fail(e)
    print(f"Member added successfully: {member.name} ({member.id})")

@app.command("edit-member")
def cli_edit_member(
    member_id: str,
    name: Optional[str] = typer.Option(None, "--name"),
    email: Optional[str] = typer.Option(None, "--email"),
    phone: Optional[str] = typer.Option(None, "--phone"),
):
    """Üye bilgilerini güncelle."""
    try:
        member = LibraryManager.get_instance().update_member(member_id, name=name, email=email, phone=phone)
    except CirculationError as e:
        _fail(e)
    print(f"Member updated successfully: {member.name}")

# --- Kitaplar ---
@app.command("books")
def cli_books(available: bool = typer.Option(False, "--available", help="Yalnızca mevcut kopyası olanlar")):
    """Kitapları başlığa göre listele."""
    try:
        print_books(LibraryManager.get_instance().list_books(available_only=available))
    except CirculationError as e:
        _fail(e)

@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    isbn: str,
    quantity: int = typer.Option(1, "--quantity", "-q", help="Toplam kopya sayısı"),
):
    """Yeni kitap ekle; tüm kopyalar mevcut olarak başlar."""
    try:
        book = LibraryManager.get_instance().add_book(title, author, isbn, quantity)
    except CirculationError as e:
        _fail(e)
    print(f"Book added successfully: {book.title} ({book.id})")

@app.command("edit-book")
def cli_edit_book(
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    quantity: Optional[int] = typer.Option(None, "--quantity", "-q"),
):
    """Kitap bilgilerini veya toplam adedi güncelle."""
    try:
        book = LibraryManager.get_instance().update_book(
            book_id, title=title, author=author, isbn=isbn, quantity=quantity
        )
    except CirculationError as e:
        _fail(e)
    print(f"Book updated successfully: {book.title} ({book.available_quantity}/{book.quantity} available)")

# --- Ödünç Kayıtları ---
@app.command("issuances")
def cli_issuances(outstanding: bool = typer.Option(False, "--outstanding", help="Yalnızca iade edilmemişler")):
    """Ödünç kayıtlarını en yeniden eskiye listele."""
    lib = LibraryManager.get_instance()
    try:
        print_issuances(lib.list_issuances(outstanding_only=outstanding), lib.now())
    except CirculationError as e:
        _fail(e)

@app.command("issue")
def cli_issue(
    member_id: str,
    book_id: str,
    due: Optional[datetime] = typer.Option(
        None, "--due", formats=["%Y-%m-%d"], help="Son teslim tarihi (varsayılan: 14 gün sonra)"
    ),
):
    """Bir kitabı üyeye ödünç ver."""
    try:
        issuance = LibraryManager.get_instance().issue_book(member_id, book_id, due.date() if due else None)
    except CirculationError as e:
        _fail(e)
    print(f"Book issued successfully: {issuance.id} (due {issuance.due_date.isoformat()})")

@app.command("return")
def cli_return(issuance_id: str):
    """Ödünç verilen kitabı iade al."""
    try:
        issuance = LibraryManager.get_instance().return_book(issuance_id)
    except CirculationError as e:
        _fail(e)
    print(f"Book returned successfully: {issuance.book.title if issuance.book else issuance.book_id}")

@app.command("pending")
def cli_pending():
    """İade bekleyen kayıtlar, son teslim tarihine göre."""
    lib = LibraryManager.get_instance()
    try:
        print_issuances(lib.pending_returns(), lib.now())
    except CirculationError as e:
        _fail(e)

@app.command("stats")
def cli_stats():
    """Kütüphane istatistiklerini göster."""
    try:
        print_stats_result(LibraryManager.get_instance().get_statistics())
    except CirculationError as e:
        _fail(e)

# --- Elle düzeltme ---
@app.command("audit")
def cli_audit():
    """Mevcut adedi ödünç kayıtlarıyla uyuşmayan kitapları listele."""
    try:
        mismatches = LibraryManager.get_instance().audit_inventory()
    except CirculationError as e:
        _fail(e)
    if not mismatches:
        print("Inventory is consistent.")
        return
    for m in mismatches:
        print(f"{m['book_id']} | {m['title']} | stored {m['available_quantity']} | expected {m['expected_available']}")

@app.command("reconcile")
def cli_reconcile(book_id: str):
    """Bir kitabın mevcut adedini ödünç kayıtlarından yeniden hesapla."""
    try:
        book = LibraryManager.get_instance().reconcile_book(book_id)
    except CirculationError as e:
        _fail(e)
    print(f"Book reconciled: {book.title} ({book.available_quantity}/{book.quantity} available)")

@app.command("serve")
def cli_serve():
    """Uvicorn kullanarak HTTP API'yi (ve günlük aktarıcıyı) başlat."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    subprocess.run(args)


if __name__ == "__main__":
    app()
