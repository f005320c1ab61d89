from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

DEFAULT_LOAN_DAYS = 14


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """ISO dizesini (veya datetime'ı) UTC'ye bağlı bir datetime'a çevir."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        # PostgREST 'Z' son ekiyle dönebilir
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Zaman damgası olarak saklanmış son tarihler için yalnızca tarih kısmı
    return date.fromisoformat(str(value).strip()[:10])


def default_due_date(issue_date: datetime | date, loan_days: int = DEFAULT_LOAN_DAYS) -> date:
    """Kullanıcı seçmediğinde son teslim tarihi: verilişten itibaren loan_days gün."""
    if isinstance(issue_date, datetime):
        issue_date = issue_date.date()
    return issue_date + timedelta(days=loan_days)


class IssuanceStatus(str, Enum):
    BORROWED = "Borrowed"
    OVERDUE = "Overdue"
    RETURNED = "Returned"


class Member:
    """Kütüphane üyesi."""

    def __init__(self, id: str, name: str, email: str, phone: str | None = None,
                 created_at: str | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone.strip() if phone else None
        self.created_at = created_at

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Member) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("member", self.id))

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(
            id=str(data["id"]),
            name=data["name"],
            email=data["email"],
            phone=data.get("phone"),
            created_at=data.get("created_at"),
        )


class Book:
    """Kütüphanedeki bir kitap başlığı ve stok sayıları."""

    def __init__(self, id: str, title: str, author: str, isbn: str, quantity: int,
                 available_quantity: int, created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.quantity = int(quantity)
        self.available_quantity = int(available_quantity)
        self.created_at = created_at

    @property
    def borrowed_quantity(self) -> int:
        return self.quantity - self.available_quantity

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Book) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("book", self.id))

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "quantity": self.quantity,
            "available_quantity": self.available_quantity,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=str(data["id"]),
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            quantity=data["quantity"],
            available_quantity=data["available_quantity"],
            created_at=data.get("created_at"),
        )


class Issuance:
    """Bir kitap kopyasının bir üyeye belirli bir süre için verilmesi.

    issue_date ve üye/kitap referansları oluşturulduktan sonra değişmez;
    yalnızca return_date (ve yapısal olarak due_date) güncellenir.
    """

    def __init__(self, id: str, member_id: str, book_id: str, issue_date: datetime,
                 due_date: date, return_date: datetime | None = None,
                 member: Member | None = None, book: Book | None = None) -> None:
        self.id = id
        self.member_id = member_id
        self.book_id = book_id
        self.issue_date = issue_date
        self.due_date = due_date
        self.return_date = return_date
        # Birleştirilmiş sorgulardan gelen ayrıntılar (varsa)
        self.member = member
        self.book = book

    @property
    def is_outstanding(self) -> bool:
        return self.return_date is None

    def status(self, now: datetime | None = None) -> IssuanceStatus:
        return derive_status(self, now or utcnow())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Issuance) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("issuance", self.id))

    def to_row(self) -> dict:
        """Depoya yazılacak düz satır."""
        return {
            "id": self.id,
            "member_id": self.member_id,
            "book_id": self.book_id,
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "return_date": self.return_date.isoformat() if self.return_date else None,
        }

    def to_dict(self, now: datetime | None = None) -> dict:
        data = self.to_row()
        data["status"] = self.status(now).value
        data["member"] = (
            {"name": self.member.name, "email": self.member.email} if self.member else None
        )
        data["book"] = (
            {"title": self.book.title, "author": self.book.author} if self.book else None
        )
        return data

    @staticmethod
    def from_dict(data: dict) -> "Issuance":
        member = data.get("member")
        book = data.get("book")
        return Issuance(
            id=str(data["id"]),
            member_id=str(data["member_id"]),
            book_id=str(data["book_id"]),
            issue_date=parse_timestamp(data["issue_date"]),
            due_date=parse_date(data["due_date"]),
            return_date=parse_timestamp(data.get("return_date")),
            member=Member.from_dict(member) if isinstance(member, dict) else member,
            book=Book.from_dict(book) if isinstance(book, dict) else book,
        )


def derive_status(issuance: Issuance, now: datetime) -> IssuanceStatus:
    """Ödünç kaydının görüntüleme durumunu tarihlerden hesapla; asla saklanmaz.

    Son teslim tarihi, o günün başlangıcı (UTC gece yarısı) olarak şimdiki
    zamanla karşılaştırılır.
    """
    if issuance.return_date is not None:
        return IssuanceStatus.RETURNED
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    due_at = datetime.combine(issuance.due_date, time.min, tzinfo=timezone.utc)
    if due_at < now:
        return IssuanceStatus.OVERDUE
    return IssuanceStatus.BORROWED
