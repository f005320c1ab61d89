"""Stok tutarlılık kuralları.

Bir kitabın mevcut adedini değiştiren her işlem için doğru geçişi hesaplayan
saf fonksiyonlar. Depolama G/Ç'si yapmazlar; sonucu kalıcı hale getirmek
çağıranın sorumluluğundadır.

Korunan değişmez: mevcut = toplam - iade edilmemiş ödünç sayısı,
ve her zaman 0 <= mevcut <= toplam.
"""

from circulation.errors import (
    InsufficientStockError,
    OutOfStockError,
    OverReturnError,
    ValidationError,
)


def on_book_created(quantity: int) -> int:
    """Yeni bir kitap tamamen mevcut olarak başlar."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1.")
    return quantity


def on_book_quantity_edited(old_quantity: int, old_available: int, new_quantity: int) -> int:
    if new_quantity < 1:
        raise ValidationError("Quantity must be at least 1.")
    borrowed = old_quantity - old_available
    new_available = new_quantity - borrowed
    if new_available < 0:
        raise InsufficientStockError(
            f"Cannot reduce quantity below borrowed books ({borrowed} currently on loan)."
        )
    return new_available


def on_issue(available_quantity: int) -> int:
    if available_quantity <= 0:
        raise OutOfStockError("No copies available.")
    return available_quantity - 1


def on_return(available_quantity: int, quantity: int) -> int:
    if available_quantity + 1 > quantity:
        raise OverReturnError(
            f"Returning would exceed the total quantity ({quantity})."
        )
    return available_quantity + 1


def expected_available(quantity: int, outstanding: int) -> int:
    """Ödünçteki kayıt sayısından olması gereken mevcut adet."""
    return quantity - outstanding
