"""
Repositorio para manejar configuración (Dependency Inversion)
"""
import os
from typing import List, Mapping, Optional
from ..config import Config
from ..exceptions import ConfigurationError
from ..logger import LoggerService
from ..models import BackupJobConfig


class ConfigRepository:
    """Repositorio que construye la configuración de las cadencias desde el entorno"""

    FOLDER_VARS = {
        Config.DAILY: "GDRIVE_DAILY_FOLDER_ID",
        Config.MONTHLY: "GDRIVE_MONTHLY_FOLDER_ID",
    }
    MAX_BACKUPS_VARS = {
        Config.DAILY: "MAX_DAILY_BACKUPS",
        Config.MONTHLY: "MAX_MONTHLY_BACKUPS",
    }
    CRON_VARS = {
        Config.DAILY: "DAILY_BACKUP_CRON",
        Config.MONTHLY: "MONTHLY_BACKUP_CRON",
    }

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        """
        Inicializa el repositorio de configuración

        Args:
            env: Variables de entorno (por defecto os.environ)
        """
        self.env = os.environ if env is None else env
        self.logger = LoggerService.get_logger("ConfigRepository")

    def get_job_configs(self) -> List[BackupJobConfig]:
        """
        Obtiene la configuración de las cadencias diaria y mensual

        Returns:
            Lista de BackupJobConfig en orden (DAILY, MONTHLY)

        Raises:
            ConfigurationError: Si faltan folders o la configuración es inválida
        """
        missing = [var for var in self.FOLDER_VARS.values() if not self.env.get(var)]
        if missing:
            raise ConfigurationError(
                f"Faltan variables de entorno requeridas: {', '.join(missing)}"
            )

        jobs = []
        for cadence in Config.CADENCES:
            try:
                jobs.append(BackupJobConfig(
                    cadence_name=cadence,
                    cron_expression=self.env.get(self.CRON_VARS[cadence]) or Config.DEFAULT_CRON[cadence],
                    target_folder_id=self.env[self.FOLDER_VARS[cadence]],
                    max_retained_count=self._get_max_backups(cadence),
                ))
            except ValueError as e:
                raise ConfigurationError(f"Configuración inválida para {cadence}: {e}") from e
        return jobs

    def get_job_config(self, cadence: str) -> BackupJobConfig:
        """
        Obtiene la configuración de una cadencia específica

        Args:
            cadence: DAILY o MONTHLY

        Returns:
            BackupJobConfig de la cadencia
        """
        for job in self.get_job_configs():
            if job.cadence_name == cadence.upper():
                return job
        raise ConfigurationError(f"Cadencia desconocida: {cadence}")

    def get_database_url(self) -> Optional[str]:
        """Cadena de conexión para la herramienta de volcado"""
        return self.env.get("DATABASE_URL") or None

    def evict_before_dump(self) -> bool:
        """Orden del ciclo: True aplica la retención antes de generar el volcado"""
        return str(self.env.get("EVICT_BEFORE_DUMP", "")).strip().lower() in ("1", "true", "yes")

    def _get_max_backups(self, cadence: str) -> int:
        """
        Lee el límite de retención, con valor por defecto si es inválido

        Args:
            cadence: DAILY o MONTHLY

        Returns:
            Cantidad máxima de backups a conservar
        """
        var = self.MAX_BACKUPS_VARS[cadence]
        default = Config.DEFAULT_MAX_BACKUPS[cadence]
        raw = self.env.get(var)
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            value = 0
        if value < 1:
            self.logger.warning(f"Valor inválido para {var}: {raw!r}. Usando {default}")
            return default
        return value
