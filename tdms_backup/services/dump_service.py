"""
Servicio que genera el volcado local de la base de datos
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from ..config import Config
from ..exceptions import DumpError
from ..factories.strategy_factory import BackupStrategyFactory
from ..logger import LoggerService
from ..models import LocalDumpFile


class DumpProducer:
    """Invoca la herramienta de volcado y materializa un archivo con timestamp único"""

    def __init__(self, connection_string: Optional[str], backup_dir: Optional[Path] = None,
                 prefix: Optional[str] = None, timeout: Optional[int] = None):
        """
        Inicializa el productor de volcados

        Args:
            connection_string: Cadena de conexión (DATABASE_URL)
            backup_dir: Directorio local de volcados
            prefix: Prefijo de la convención de nombres
            timeout: Tiempo máximo del volcado en segundos
        """
        self.connection_string = connection_string
        self.backup_dir = Path(backup_dir or Config.BACKUP_DIR)
        self.prefix = prefix or Config.BACKUP_FILE_PREFIX
        self.timeout = timeout if timeout is not None else Config.DUMP_TIMEOUT_SECONDS
        self.logger = LoggerService.get_logger("DumpProducer")

    def build_file_name(self, created_time: datetime, label: Optional[str] = None) -> str:
        """
        Nombre del volcado: prefijo, etiqueta opcional y timestamp UTC con microsegundos

        Args:
            created_time: Momento de la invocación (UTC)
            label: Etiqueta opcional, p. ej. la cadencia

        Returns:
            Nombre de archivo
        """
        timestamp = created_time.strftime('%Y-%m-%dT%H-%M-%S-%fZ')
        middle = f"{label.lower()}_" if label else ""
        return f"{self.prefix}{middle}{timestamp}{Config.DUMP_EXTENSION}"

    def create_dump(self, label: Optional[str] = None) -> LocalDumpFile:
        """
        Genera un volcado de la base de datos en el directorio local

        Args:
            label: Etiqueta opcional incluida en el nombre del archivo

        Returns:
            LocalDumpFile creado

        Raises:
            DumpError: Si falta configuración o la herramienta falla; no queda archivo en disco
        """
        if not self.connection_string:
            raise DumpError("La variable de entorno DATABASE_URL no está definida")

        strategy = BackupStrategyFactory.create_for_url(self.connection_string, timeout=self.timeout)
        if not strategy:
            raise DumpError(
                "Tipo de base de datos no soportado. Soportados: "
                f"{', '.join(BackupStrategyFactory.get_supported_types())}"
            )

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DumpError(f"No se pudo crear el directorio {self.backup_dir}: {e}") from e

        created_time = datetime.now(timezone.utc)
        name = self.build_file_name(created_time, label)
        output_file = self.backup_dir / name
        if output_file.exists():
            raise DumpError(f"Ya existe un volcado con el nombre {name}")

        strategy.execute_dump(self.connection_string, output_file)
        return LocalDumpFile(path=output_file, name=name, created_time=created_time)
