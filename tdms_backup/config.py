"""
Configuración centralizada del sistema de backup
"""
import logging
import os
from pathlib import Path
from dotenv import load_dotenv, find_dotenv


def _env_int(name: str, default: int) -> int:
    """Lee un entero de una variable de entorno, con valor por defecto"""
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    """Configuración centralizada del sistema"""

    ENV_FILE = find_dotenv(usecwd=True)

    # Cargar variables de entorno desde la raíz real del proyecto
    load_dotenv(ENV_FILE)

    # BASE_DIR debe ser la raíz donde está main.py
    BASE_DIR = Path(ENV_FILE).parent if ENV_FILE else Path(__file__).resolve().parents[1]

    BACKUP_DIR = Path(os.getenv("BACKUP_DIR")) if os.getenv("BACKUP_DIR") else (BASE_DIR / "backups")
    LOG_DIR = Path(os.getenv("LOG_DIR")) if os.getenv("LOG_DIR") else (BASE_DIR / "Logs")

    # Credenciales OAuth2 de Google Drive
    CREDENTIALS_PATH = BASE_DIR / os.getenv("GOOGLE_OAUTH_CREDENTIALS_PATH", "config/client_secret.json")
    TOKEN_PATH = BASE_DIR / os.getenv("GOOGLE_OAUTH_TOKEN_PATH", "token.json")
    SCOPES = ["https://www.googleapis.com/auth/drive.file"]

    # Convención de nombres de los archivos de backup
    BACKUP_FILE_PREFIX = os.getenv("BACKUP_FILE_PREFIX", "panglao_tdms_backup_")
    DUMP_EXTENSION = ".dump"

    # Cadencias y sus valores por defecto
    DAILY = "DAILY"
    MONTHLY = "MONTHLY"
    CADENCES = (DAILY, MONTHLY)
    DEFAULT_CRON = {DAILY: "0 2 * * *", MONTHLY: "0 2 1 * *"}
    DEFAULT_MAX_BACKUPS = {DAILY: 31, MONTHLY: 12}

    DUMP_TIMEOUT_SECONDS = _env_int("DUMP_TIMEOUT_SECONDS", 3600)
    REMOTE_TIMEOUT_SECONDS = _env_int("REMOTE_TIMEOUT_SECONDS", 300)
    UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024
    SCHEDULER_POLL_SECONDS = _env_int("SCHEDULER_POLL_SECONDS", 30)
    STATUS_LOG_SECONDS = _env_int("STATUS_LOG_SECONDS", 3600)

    LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_BACKUP_DAYS = _env_int("LOG_BACKUP_DAYS", 30)

    @classmethod
    def ensure_directories(cls):
        """Crea los directorios necesarios si no existen"""
        cls.BACKUP_DIR.mkdir(parents=True, exist_ok=True)
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)
