"""Ödünç işlemleri sırasında yükseltilen hata türleri."""


class CirculationError(Exception):
    """Tüm alan hatalarının temel sınıfı."""

    code = "error"


class ValidationError(CirculationError):
    """Eksik veya geçersiz zorunlu alan."""

    code = "invalid"


class NotFoundError(CirculationError):
    code = "not_found"


class OutOfStockError(CirculationError):
    """Kitabın ödünç verilebilecek kopyası kalmadı."""

    code = "out_of_stock"


class InsufficientStockError(CirculationError):
    """Yeni adet, şu anda ödünçte olan kopyalardan az."""

    code = "insufficient_stock"


class OverReturnError(CirculationError):
    """İade, mevcut adedi toplam adedin üzerine çıkarırdı."""

    code = "over_return"


class AlreadyReturnedError(CirculationError):
    code = "already_returned"


class StorageError(CirculationError):
    """Veri deposu istemcisinden gelen herhangi bir hata."""

    code = "storage_error"


class PartialWriteError(StorageError):
    """İki yazmadan ilki kaydedildi, ikincisi kaydedilemedi.

    Otomatik olarak düzeltilmez; stok elle yeniden hesaplanmalıdır.
    """

    code = "partial_write"

    def __init__(self, message: str, book_id: str | None = None, issuance_id: str | None = None) -> None:
        super().__init__(message)
        self.book_id = book_id
        self.issuance_id = issuance_id
