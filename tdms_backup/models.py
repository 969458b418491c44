"""
Modelos de datos del sistema
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple
from .config import Config


@dataclass
class Credential:
    """Credencial OAuth2 persistida en el archivo de token"""
    client_id: str
    client_secret: str
    refresh_token: str
    redirect_target: str = "http://localhost"
    access_token: Optional[str] = None
    # UTC sin zona horaria, como la maneja google-auth
    expiry: Optional[datetime] = None

    def __post_init__(self):
        """Validación después de inicialización"""
        if not self.client_id or not self.client_secret:
            raise ValueError("client_id y client_secret son obligatorios")
        if not self.refresh_token:
            raise ValueError("El token no contiene refresh_token")

    def to_token_info(self) -> dict:
        """Serializa al formato authorized-user de google-auth"""
        return {
            "token": self.access_token,
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_target,
            "expiry": self.expiry.isoformat() + "Z" if self.expiry else None,
        }


@dataclass(frozen=True)
class CronSchedule:
    """Expresión cron interpretada (minuto hora día-del-mes mes día-de-semana)"""
    minutes: Tuple[int, ...]
    hours: Tuple[int, ...]
    days_of_month: Optional[Tuple[int, ...]] = None

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        """
        Interpreta una expresión cron de cinco campos

        Solo se soportan valores fijos o listas para minuto, hora y día del mes;
        mes y día de la semana deben ser '*'.

        Args:
            expression: Expresión cron, p. ej. "0 2 1 * *"

        Returns:
            CronSchedule equivalente

        Raises:
            ValueError: Si la expresión no es válida o no está soportada
        """
        parts = (expression or "").split()
        if len(parts) != 5:
            raise ValueError(f"La expresión cron debe tener 5 campos: {expression!r}")

        minute, hour, day, month, weekday = parts
        if month != "*" or weekday != "*":
            raise ValueError(f"Mes y día de la semana deben ser '*': {expression!r}")

        return cls(
            minutes=cls._parse_field(minute, 0, 59, expression),
            hours=cls._parse_field(hour, 0, 23, expression),
            days_of_month=None if day == "*" else cls._parse_field(day, 1, 31, expression),
        )

    @staticmethod
    def _parse_field(value: str, low: int, high: int, expression: str) -> Tuple[int, ...]:
        try:
            numbers = sorted({int(v) for v in value.split(",")})
        except ValueError:
            raise ValueError(f"Campo cron no soportado {value!r} en {expression!r}") from None
        if not all(low <= n <= high for n in numbers):
            raise ValueError(f"Campo cron fuera de rango {value!r} en {expression!r}")
        return tuple(numbers)

    @property
    def times_of_day(self) -> List[str]:
        """Horas de disparo en formato HH:MM"""
        return [f"{h:02d}:{m:02d}" for h in self.hours for m in self.minutes]

    def matches_day(self, moment: datetime) -> bool:
        """Indica si el día de ``moment`` es un día de ejecución"""
        return self.days_of_month is None or moment.day in self.days_of_month


@dataclass(frozen=True)
class BackupJobConfig:
    """Configuración inmutable de una cadencia de backup"""
    cadence_name: str
    cron_expression: str
    target_folder_id: str
    max_retained_count: int

    def __post_init__(self):
        """Validación después de inicialización"""
        if self.cadence_name not in Config.CADENCES:
            raise ValueError(f"Cadencia desconocida: {self.cadence_name}")
        if not self.target_folder_id:
            raise ValueError(f"Falta el folder de destino para {self.cadence_name}")
        if self.max_retained_count < 1:
            raise ValueError("max_retained_count debe ser mayor a 0")
        CronSchedule.parse(self.cron_expression)

    @property
    def schedule(self) -> CronSchedule:
        return CronSchedule.parse(self.cron_expression)


@dataclass(frozen=True)
class RemoteFileRecord:
    """Metadatos de un archivo de backup en el almacenamiento remoto"""
    id: str
    name: str
    created_time: datetime
    size_bytes: Optional[int] = None
    web_view_link: Optional[str] = None

    @property
    def size_mb(self) -> float:
        return (self.size_bytes or 0) / (1024 * 1024)


@dataclass
class LocalDumpFile:
    """Volcado local generado durante un ciclo"""
    path: Path
    name: str
    created_time: datetime


@dataclass
class EvictionReport:
    """Resultado de una pasada de retención"""
    planned: List[RemoteFileRecord] = field(default_factory=list)
    deleted: List[RemoteFileRecord] = field(default_factory=list)
    already_gone: List[RemoteFileRecord] = field(default_factory=list)
    failed: List[RemoteFileRecord] = field(default_factory=list)
    listing_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.listing_error is None and not self.failed


class CycleState(Enum):
    """Estados de un ciclo de backup"""
    IDLE = "Idle"
    EVICTING = "Evicting"
    DUMPING = "Dumping"
    UPLOADING = "Uploading"
    CLEANING_UP = "CleaningUp"
    DONE = "Done"


@dataclass
class CycleResult:
    """Resultado de un ciclo de backup"""
    cadence_name: str
    success: bool = False
    state: CycleState = CycleState.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    remote_file: Optional[RemoteFileRecord] = None
    eviction: Optional[EvictionReport] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def __str__(self):
        if self.success and self.remote_file:
            return (f"✓ {self.cadence_name}: {self.remote_file.name} "
                    f"({self.remote_file.size_mb:.2f} MB, {self.duration_seconds:.2f}s)")
        return f"✗ {self.cadence_name}: {self.error or 'fallido'} ({self.duration_seconds:.2f}s)"
