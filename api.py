import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from circulation.errors import (
    AlreadyReturnedError,
    CirculationError,
    InsufficientStockError,
    NotFoundError,
    OutOfStockError,
    OverReturnError,
    PartialWriteError,
    StorageError,
    ValidationError,
)
from circulation.library import Library
from circulation.services.log_relay import get_relay_logger, relay_line
from config import settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def get_library(request: Request) -> Library:
    """Başlangıçta oluşturulan paylaşılan Library örneği; testler dependency_overrides ile değiştirir."""
    library: Optional[Library] = getattr(request.app.state, "library", None)
    if library is None:
        raise StorageError("Library is not initialised.")
    return library


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tek örnek istekler başlamadan oluşturulur
    app.state.library = Library()
    get_relay_logger().info(f"Server started on port {settings.api_port}")
    try:
        yield
    finally:
        # Kapanışta veri deposu bağlantılarını kapat
        app.state.library.close()
        app.state.library = None

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Hata Eşleme ---
ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    ((OutOfStockError, InsufficientStockError, AlreadyReturnedError, OverReturnError), 409),
    (StorageError, 503),
)


@app.exception_handler(CirculationError)
async def circulation_error_handler(request: Request, exc: CirculationError):
    status_code = 500
    for error_types, code in ERROR_STATUS:
        if isinstance(exc, error_types):
            status_code = code
            break
    body: Dict[str, Any] = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, PartialWriteError):
        body["needs_reconciliation"] = True
        body["book_id"] = exc.book_id
        body["issuance_id"] = exc.issuance_id
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=body)

# --- Modeller ---
class MemberModel(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None = None

class MemberCreateModel(BaseModel):
    name: str
    email: str
    phone: str | None = None

class MemberUpdateModel(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None

class BookModel(BaseModel):
    id: str
    title: str
    author: str
    isbn: str
    quantity: int
    available_quantity: int

class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    quantity: int = Field(default=1, description="Toplam kopya sayısı")

class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    quantity: int | None = None

class IssuanceMemberModel(BaseModel):
    name: str
    email: str

class IssuanceBookModel(BaseModel):
    title: str
    author: str

class IssuanceModel(BaseModel):
    id: str
    member_id: str
    book_id: str
    issue_date: datetime
    due_date: date
    return_date: datetime | None = None
    status: str
    member: IssuanceMemberModel | None = None
    book: IssuanceBookModel | None = None

class IssuanceCreateModel(BaseModel):
    member_id: str
    book_id: str
    due_date: date | None = Field(default=None, description="Boş bırakılırsa verilişten 14 gün sonra")

class StatsModel(BaseModel):
    total_members: int
    total_books: int
    total_copies: int
    copies_on_loan: int
    outstanding_issuances: int
    overdue_issuances: int

class AuditEntryModel(BaseModel):
    book_id: str
    title: str
    quantity: int
    available_quantity: int
    expected_available: int

class LogModel(BaseModel):
    level: str | None = None
    message: str | None = None

# --- Sağlık Kontrolü ---
@app.get("/health")
def health(library: Library = Depends(get_library)):
    """Hafif sağlık uç noktası; veri deposuna erişilebiliyor mu kontrol eder."""
    store_ok = True
    try:
        library.store.select("members")
    except StorageError:
        store_ok = False
    return {
        "status": "healthy" if store_ok else "degraded",
        "timestamp": library.now().isoformat(),
        "store": settings.data_store,
        "store_ok": store_ok,
    }

# --- Üyeler ---
@app.get("/members", response_model=List[MemberModel])
def list_members(library: Library = Depends(get_library)):
    return [m.to_dict() for m in library.list_members()]

@app.post("/members", response_model=MemberModel, status_code=201)
def add_member(payload: MemberCreateModel, library: Library = Depends(get_library)):
    return library.add_member(payload.name, payload.email, payload.phone).to_dict()

@app.get("/members/{member_id}", response_model=MemberModel)
def get_member(member_id: str, library: Library = Depends(get_library)):
    return library.get_member(member_id).to_dict()

@app.put("/members/{member_id}", response_model=MemberModel)
def update_member(member_id: str, update: MemberUpdateModel, library: Library = Depends(get_library)):
    return library.update_member(member_id, name=update.name, email=update.email, phone=update.phone).to_dict()

# --- Kitaplar ---
@app.get("/books", response_model=List[BookModel])
def list_books(
    available: bool = Query(False, description="Yalnızca ödünç verilebilir kopyası olan kitaplar"),
    library: Library = Depends(get_library),
):
    return [b.to_dict() for b in library.list_books(available_only=available)]

@app.post("/books", response_model=BookModel, status_code=201)
def add_book(payload: BookCreateModel, library: Library = Depends(get_library)):
    return library.add_book(payload.title, payload.author, payload.isbn, payload.quantity).to_dict()

@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, library: Library = Depends(get_library)):
    return library.get_book(book_id).to_dict()

@app.put("/books/{book_id}", response_model=BookModel)
def update_book(book_id: str, update: BookUpdateModel, library: Library = Depends(get_library)):
    return library.update_book(
        book_id, title=update.title, author=update.author, isbn=update.isbn, quantity=update.quantity
    ).to_dict()

# --- Ödünç Kayıtları ---
@app.get("/issuances", response_model=List[IssuanceModel])
def list_issuances(
    outstanding: bool = Query(False, description="Yalnızca iade edilmemiş kayıtlar"),
    library: Library = Depends(get_library),
):
    now = library.now()
    return [i.to_dict(now) for i in library.list_issuances(outstanding_only=outstanding)]

@app.post("/issuances", response_model=IssuanceModel, status_code=201)
def issue_book(payload: IssuanceCreateModel, library: Library = Depends(get_library)):
    issuance = library.issue_book(payload.member_id, payload.book_id, payload.due_date)
    return issuance.to_dict(library.now())

@app.get("/issuances/{issuance_id}", response_model=IssuanceModel)
def get_issuance(issuance_id: str, library: Library = Depends(get_library)):
    return library.get_issuance(issuance_id).to_dict(library.now())

@app.post("/issuances/{issuance_id}/return", response_model=IssuanceModel)
def return_book(issuance_id: str, library: Library = Depends(get_library)):
    issuance = library.return_book(issuance_id)
    return issuance.to_dict(library.now())

# --- Pano ve İstatistik ---
@app.get("/dashboard/pending-returns", response_model=List[IssuanceModel])
def pending_returns(library: Library = Depends(get_library)):
    now = library.now()
    return [i.to_dict(now) for i in library.pending_returns()]

@app.get("/stats", response_model=StatsModel)
def get_library_stats(library: Library = Depends(get_library)):
    return library.get_statistics()

# --- Yönetim: elle düzeltme ---
@app.get("/admin/audit", response_model=List[AuditEntryModel])
def audit_inventory(library: Library = Depends(get_library)):
    return library.audit_inventory()

@app.post("/admin/reconcile/{book_id}", response_model=BookModel)
def reconcile_book(book_id: str, library: Library = Depends(get_library)):
    return library.reconcile_book(book_id).to_dict()

# --- Günlük Aktarıcı ---
@app.get("/", response_class=PlainTextResponse)
def root():
    get_relay_logger().info("Root API accessed")
    return "Server is running!"

@app.post("/log")
def record_log(payload: LogModel | None = None):
    """İstemciden gelen bir günlük satırını dosyaya ve konsola yaz."""
    payload = payload or LogModel()
    try:
        relay_line(payload.level, payload.message)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {"message": "Log recorded"}
