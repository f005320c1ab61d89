import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API Ayarları
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Veri Deposu Ayarları
    # 'sqlite' yerel dosya, 'rest' barındırılan PostgREST uyumlu depo
    data_store: str = os.getenv("DATA_STORE", "sqlite").lower()
    database_file: Optional[str] = os.getenv("LIBRARY_DB_FILE")
    rest_url: Optional[str] = os.getenv("REST_URL")
    rest_api_key: Optional[str] = os.getenv("REST_API_KEY")
    rest_timeout: float = float(os.getenv("REST_TIMEOUT", "10"))

    # Ödünç Verme Ayarları
    default_loan_days: int = int(os.getenv("DEFAULT_LOAN_DAYS", "14"))
    stock_update_retries: int = int(os.getenv("STOCK_UPDATE_RETRIES", "3"))

    # Günlük Ayarları
    log_dir: str = os.getenv("LOG_DIR", "logs")
    log_relay_url: Optional[str] = os.getenv("LOG_RELAY_URL")

    # Uygulama Ayarları
    app_name: str = os.getenv("APP_NAME", "Kütüphane Ödünç Takip Sistemi")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()
