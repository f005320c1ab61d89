import logging
import uuid
from collections import Counter
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from config import settings
from circulation.errors import (
    AlreadyReturnedError,
    CirculationError,
    InsufficientStockError,
    NotFoundError,
    PartialWriteError,
    StorageError,
    ValidationError,
)
from circulation.inventory import (
    expected_available,
    on_book_created,
    on_book_quantity_edited,
    on_issue,
    on_return,
)
from circulation.models import (
    Book,
    Issuance,
    IssuanceStatus,
    Member,
    default_due_date,
    derive_status,
    utcnow,
)
from circulation.services import get_data_store
from circulation.services.store import DataStoreClient
from utils.validators import ISBNValidator, TextValidator, validate_due_date

logger = logging.getLogger(__name__)


class Library:
    """Üyeleri, kitap stoğunu ve ödünç kayıtlarını yönetir.

    Stok sayacı ile ödünç kaydı arasındaki tutarlılık burada korunur:
    mevcut adet her zaman toplam adet eksi iade edilmemiş ödünç sayısıdır.
    Stok yazmaları okunan değerlere karşı koşullu yapılır; yarış kaybedilirse
    kitap yeniden okunur ve kural yeniden uygulanır.
    """

    def __init__(self, store: Optional[DataStoreClient] = None, db_file: Optional[str] = None,
                 clock: Optional[Callable[[], datetime]] = None, loan_days: Optional[int] = None,
                 stock_retries: Optional[int] = None) -> None:
        self.store = store or get_data_store(db_file=db_file)
        self._clock = clock or utcnow
        self.loan_days = loan_days if loan_days is not None else settings.default_loan_days
        self.stock_retries = max(1, stock_retries if stock_retries is not None else settings.stock_update_retries)

    def now(self) -> datetime:
        return self._clock()

    # ------------------------- Üyeler ------------------------- #
    def add_member(self, name: str, email: str, phone: Optional[str] = None) -> Member:
        row = {
            "name": TextValidator.require(name, "Name"),
            "email": TextValidator.email(email),
            "phone": TextValidator.phone(phone),
        }
        member = Member.from_dict(self.store.insert("members", row))
        logger.info(f"Member added: {member.name}, {member.email}, {member.phone}")
        return member

    def update_member(self, member_id: str, *, name: Optional[str] = None, email: Optional[str] = None,
                      phone: Optional[str] = None) -> Member:
        self.get_member(member_id)
        patch: Dict[str, Any] = {}
        if name is not None:
            patch["name"] = TextValidator.require(name, "Name")
        if email is not None:
            patch["email"] = TextValidator.email(email)
        if phone is not None:
            patch["phone"] = TextValidator.phone(phone)
        if not patch:
            raise ValidationError("Nothing to update. Provide name, email and/or phone.")
        row = self.store.update("members", member_id, patch)
        if row is None:
            raise NotFoundError(f"Member {member_id} not found.")
        logger.info(f"Member updated: {member_id}")
        return Member.from_dict(row)

    def get_member(self, member_id: str) -> Member:
        row = self.store.get("members", member_id)
        if not row:
            raise NotFoundError(f"Member {member_id} not found.")
        return Member.from_dict(row)

    def list_members(self) -> List[Member]:
        return [Member.from_dict(row) for row in self.store.select("members", order="name")]

    # ------------------------- Kitaplar ------------------------- #
    def _clean_isbn(self, isbn: str) -> str:
        normalized = ISBNValidator.normalize_isbn(TextValidator.require(isbn, "ISBN"))
        if not normalized:
            raise ValidationError("ISBN is required.")
        if not ISBNValidator.is_valid_isbn(normalized):
            # Kurum içi kodlar da kabul edilir; yalnızca uyarı
            logger.warning(f"ISBN checksum mismatch: {normalized}")
        return normalized

    def add_book(self, title: str, author: str, isbn: str, quantity: int = 1) -> Book:
        quantity = TextValidator.quantity(quantity)
        row = {
            "title": TextValidator.require(title, "Title"),
            "author": TextValidator.require(author, "Author"),
            "isbn": self._clean_isbn(isbn),
            "quantity": quantity,
            "available_quantity": on_book_created(quantity),
        }
        book = Book.from_dict(self.store.insert("books", row))
        logger.info(f"Book added: {book.title} ({book.quantity} copies)")
        return book

    def update_book(self, book_id: str, *, title: Optional[str] = None, author: Optional[str] = None,
                    isbn: Optional[str] = None, quantity: Optional[int] = None) -> Book:
        """Kitap bilgilerini güncelle; adet değişirse mevcut adet ödünçtekiler korunarak yeniden hesaplanır.

        Adet, ödünçteki kopya sayısının altına düşürülemez (InsufficientStockError);
        bu durumda saklanan kayıt değişmez.
        """
        patch: Dict[str, Any] = {}
        if title is not None:
            patch["title"] = TextValidator.require(title, "Title")
        if author is not None:
            patch["author"] = TextValidator.require(author, "Author")
        if isbn is not None:
            patch["isbn"] = self._clean_isbn(isbn)
        if quantity is not None:
            quantity = TextValidator.quantity(quantity)
        elif not patch:
            raise ValidationError("Nothing to update. Provide title, author, isbn and/or quantity.")

        for attempt in range(self.stock_retries):
            book = self.get_book(book_id)
            changes = dict(patch)
            expected = None
            if quantity is not None:
                try:
                    changes["available_quantity"] = on_book_quantity_edited(
                        book.quantity, book.available_quantity, quantity
                    )
                except InsufficientStockError:
                    logger.warning(f"Rejected quantity edit for {book_id}: {quantity} < {book.borrowed_quantity} on loan")
                    raise
                changes["quantity"] = quantity
                expected = {"quantity": book.quantity, "available_quantity": book.available_quantity}
            row = self.store.update("books", book_id, changes, expected=expected)
            if row is not None:
                logger.info(f"Book updated: {book_id}")
                return Book.from_dict(row)
            if expected is None:
                raise NotFoundError(f"Book {book_id} not found.")
            logger.warning(f"Stock for book {book_id} changed concurrently, retrying ({attempt + 1}/{self.stock_retries})")
        raise StorageError("Book stock kept changing; please try again.")

    def get_book(self, book_id: str) -> Book:
        row = self.store.get("books", book_id)
        if not row:
            raise NotFoundError(f"Book {book_id} not found.")
        return Book.from_dict(row)

    def list_books(self, available_only: bool = False) -> List[Book]:
        """Başlığa göre sıralı kitaplar; available_only ödünç formu adaylarını verir."""
        filters = {"available_quantity": ("gt", 0)} if available_only else None
        return [Book.from_dict(row) for row in self.store.select("books", filters, order="title")]

    def _write_stock(self, book_id: str, rule: Callable[[Book], int]) -> Book:
        """Kitabı oku, kuralı uygula ve okunan değerlere karşı koşullu yaz."""
        for attempt in range(self.stock_retries):
            book = self.get_book(book_id)
            new_available = rule(book)
            row = self.store.update(
                "books", book_id, {"available_quantity": new_available},
                expected={"quantity": book.quantity, "available_quantity": book.available_quantity},
            )
            if row is not None:
                return Book.from_dict(row)
            logger.warning(f"Stock for book {book_id} changed concurrently, retrying ({attempt + 1}/{self.stock_retries})")
        raise StorageError("Book stock kept changing; please try again.")

    # ------------------------- Ödünç verme ------------------------- #
    def issue_book(self, member_id: str, book_id: str, due_date: Optional[date] = None) -> Issuance:
        """Bir kitabı üyeye ödünç ver.

        Kopya, ödünç kaydı yazılmadan önce koşullu azaltma ile ayrılır; böylece
        stokta olmayan bir kitap için asla kayıt oluşmaz. Kayıt yazılamazsa
        ayrılan kopya geri verilir; o da başarısız olursa PartialWriteError.
        """
        if not member_id or not book_id:
            raise ValidationError("Member and book are required.")
        now = self.now()
        try:
            member = self.get_member(member_id)
            self.get_book(book_id)
        except NotFoundError as e:
            raise ValidationError(str(e)) from e
        if due_date is None:
            due_date = default_due_date(now, self.loan_days)
        due_date = validate_due_date(due_date, now.date())

        try:
            book = self._write_stock(book_id, lambda b: on_issue(b.available_quantity))
        except CirculationError as e:
            logger.warning(f"Issue of book {book_id} to member {member_id} rejected: {e}")
            raise

        issuance = Issuance(
            id=str(uuid.uuid4()),
            member_id=member_id,
            book_id=book_id,
            issue_date=now,
            due_date=due_date,
        )
        try:
            row = self.store.insert("issuances", issuance.to_row())
        except StorageError as e:
            logger.error(f"Failed to record issuance of book {book_id}; releasing reserved copy")
            try:
                self._write_stock(book_id, lambda b: on_return(b.available_quantity, b.quantity))
            except CirculationError as undo_error:
                logger.error(f"Could not release reserved copy of book {book_id}: {undo_error}")
                raise PartialWriteError(
                    "Issuance was not recorded but the book's available count was decremented; "
                    "reconcile the book's stock.",
                    book_id=book_id,
                ) from e
            raise

        issued = Issuance.from_dict(row)
        issued.member = member
        issued.book = book
        logger.info(f"Book issued: {book.title} to {member.email}, due {due_date.isoformat()}")
        return issued

    def return_book(self, issuance_id: str) -> Issuance:
        """Ödünç kaydını iade edildi olarak işaretle ve kopyayı stoğa geri ekle.

        İki kez iade AlreadyReturnedError verir ve stoğu değiştirmez.
        """
        issuance = self.get_issuance(issuance_id)
        if issuance.return_date is not None:
            raise AlreadyReturnedError(f"Issuance {issuance_id} was already returned.")
        # Değişmez zaten bozuksa hiçbir şey yazmadan reddet
        current = self.get_book(issuance.book_id)
        on_return(current.available_quantity, current.quantity)

        now = self.now()
        row = self.store.update(
            "issuances", issuance_id, {"return_date": now.isoformat()},
            expected={"return_date": None},
        )
        if row is None:
            raise AlreadyReturnedError(f"Issuance {issuance_id} was already returned.")

        try:
            book = self._write_stock(issuance.book_id, lambda b: on_return(b.available_quantity, b.quantity))
        except CirculationError as e:
            logger.error(f"Issuance {issuance_id} marked returned but stock of book {issuance.book_id} not credited: {e}")
            raise PartialWriteError(
                "Issuance was marked returned but the book's available count was not incremented; "
                "reconcile the book's stock.",
                book_id=issuance.book_id,
                issuance_id=issuance_id,
            ) from e

        returned = Issuance.from_dict(row)
        returned.member = issuance.member
        returned.book = book
        logger.info(f"Book returned: {book.title} (issuance {issuance_id})")
        return returned

    def get_issuance(self, issuance_id: str) -> Issuance:
        rows = self.store.select_issuances({"id": issuance_id})
        if not rows:
            raise NotFoundError(f"Issuance {issuance_id} not found.")
        return Issuance.from_dict(rows[0])

    def list_issuances(self, outstanding_only: bool = False) -> List[Issuance]:
        """En yeni verilişten eskiye doğru ödünç kayıtları."""
        filters = {"return_date": None} if outstanding_only else None
        rows = self.store.select_issuances(filters, order="issue_date", descending=True)
        return [Issuance.from_dict(row) for row in rows]

    def pending_returns(self) -> List[Issuance]:
        """İade edilmemiş kayıtlar, son teslim tarihi en yakın olan önce."""
        rows = self.store.select_issuances({"return_date": None}, order="due_date")
        return [Issuance.from_dict(row) for row in rows]

    # ------------------------- İstatistik ve denetim ------------------------- #
    def get_statistics(self) -> Dict[str, Any]:
        now = self.now()
        books = self.list_books()
        outstanding = [Issuance.from_dict(row) for row in self.store.select("issuances", {"return_date": None})]
        total_copies = sum(b.quantity for b in books)
        available = sum(b.available_quantity for b in books)
        return {
            "total_members": len(self.store.select("members")),
            "total_books": len(books),
            "total_copies": total_copies,
            "copies_on_loan": total_copies - available,
            "outstanding_issuances": len(outstanding),
            "overdue_issuances": sum(
                1 for i in outstanding if derive_status(i, now) == IssuanceStatus.OVERDUE
            ),
        }

    def _outstanding_counts(self) -> Counter:
        return Counter(row["book_id"] for row in self.store.select("issuances", {"return_date": None}))

    def audit_inventory(self) -> List[Dict[str, Any]]:
        """Saklanan mevcut adedi, ödünç kayıtlarından beklenenle uyuşmayan kitaplar."""
        counts = self._outstanding_counts()
        mismatches = []
        for book in self.list_books():
            expected = expected_available(book.quantity, counts.get(book.id, 0))
            if expected != book.available_quantity:
                mismatches.append({
                    "book_id": book.id,
                    "title": book.title,
                    "quantity": book.quantity,
                    "available_quantity": book.available_quantity,
                    "expected_available": expected,
                })
        if mismatches:
            logger.warning(f"Inventory audit found {len(mismatches)} inconsistent book(s)")
        return mismatches

    def reconcile_book(self, book_id: str) -> Book:
        """Elle düzeltme: mevcut adedi ödünç kayıtlarından yeniden hesaplayıp yaz."""

        def recompute(book: Book) -> int:
            outstanding = self._outstanding_counts().get(book.id, 0)
            expected = expected_available(book.quantity, outstanding)
            if expected < 0:
                raise InsufficientStockError(
                    f"{outstanding} copies are on loan but only {book.quantity} exist; edit the book's quantity."
                )
            return expected

        book = self.get_book(book_id)
        if recompute(book) == book.available_quantity:
            return book
        book = self._write_stock(book_id, recompute)
        logger.info(f"Book {book_id} reconciled: available_quantity={book.available_quantity}")
        return book

    def close(self) -> None:
        self.store.close()
