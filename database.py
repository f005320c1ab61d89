import sqlite3
import os
import tempfile
from typing import Optional

from dotenv import load_dotenv

# .env'den ortam değişkenlerinin okunmadan önce yüklendiğinden emin olun.
load_dotenv()

# Varsayılan veritabanı dosyası.
# Öncelik:
# 1) LIBRARY_DB_FILE (açık geçersiz kılma)
# 2) İşlem başına geçici dosya
DATABASE_FILE = (
    os.environ.get("LIBRARY_DB_FILE")
    or os.path.join(tempfile.gettempdir(), f"circulation_{os.getpid()}.db")
)


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """SQLite veritabanına bir bağlantı kurar."""
    conn = sqlite3.connect(db_file or DATABASE_FILE, timeout=10)
    conn.row_factory = sqlite3.Row
    # Yabancı anahtar kısıtlamaları SQLite'ta bağlantı başına açılır
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Veritabanında mevcut değilse gerekli tabloları oluşturur."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                phone TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity >= 1),
                available_quantity INTEGER NOT NULL
                    CHECK(available_quantity >= 0 AND available_quantity <= quantity),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Ödünç kayıtları; return_date NULL ise kitap hâlâ üyede
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS issuances (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                book_id TEXT NOT NULL,
                issue_date TEXT NOT NULL,
                due_date TEXT NOT NULL,
                return_date TEXT,
                FOREIGN KEY (member_id) REFERENCES members(id),
                FOREIGN KEY (book_id) REFERENCES books(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_members_name ON members(name)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_issuances_book_id ON issuances(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_issuances_issue_date ON issuances(issue_date DESC)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_issuances_due_date ON issuances(due_date)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Veritabanını başlatır, gerekirse tabloları oluşturur."""
    create_tables(db_file)
