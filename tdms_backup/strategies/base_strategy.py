"""
Estrategia base para volcados (Strategy Pattern)
"""
from abc import ABC, abstractmethod
from pathlib import Path
import shutil
import time
from typing import Optional
from ..exceptions import DumpError
from ..logger import LoggerService


class DumpStrategy(ABC):
    """Interfaz abstracta para estrategias de volcado (Open/Closed Principle)"""

    def __init__(self, timeout: Optional[int] = None):
        """
        Inicializa la estrategia

        Args:
            timeout: Tiempo máximo del volcado en segundos
        """
        self.timeout = timeout
        self.logger = LoggerService.get_logger(self.__class__.__name__)

    @abstractmethod
    def dump(self, connection_string: str, output_file: Path):
        """
        Ejecuta el volcado de la base de datos

        Args:
            connection_string: Cadena de conexión a la base de datos
            output_file: Archivo de salida para el volcado

        Raises:
            DumpError: Si la herramienta falla
        """

    def execute_dump(self, connection_string: str, output_file: Path) -> float:
        """
        Template method para ejecutar el volcado con medición de tiempo

        Garantiza que ante cualquier fallo no quede un archivo parcial.

        Args:
            connection_string: Cadena de conexión a la base de datos
            output_file: Archivo de salida para el volcado

        Returns:
            Duración en segundos

        Raises:
            DumpError: Si el volcado falla
        """
        self.logger.info(f"Creando volcado: {output_file.name}")
        start_time = time.time()

        try:
            self.dump(connection_string, output_file)
        except DumpError as e:
            self._discard(output_file)
            self.logger.error(f"Volcado fallido: {e}")
            raise
        except Exception as e:
            self._discard(output_file)
            self.logger.error(f"Error al ejecutar el volcado: {e}")
            raise DumpError(str(e)) from e

        duration = time.time() - start_time
        if not output_file.exists() or output_file.stat().st_size == 0:
            self._discard(output_file)
            raise DumpError(f"La herramienta no produjo salida en {output_file.name}")

        file_size = output_file.stat().st_size / (1024 * 1024)  # MB
        self.logger.info(f"Volcado creado: {output_file.name} ({file_size:.2f} MB, {duration:.2f}s)")
        return duration

    def _discard(self, output_file: Path):
        """Elimina un archivo de salida parcial"""
        try:
            if output_file.exists():
                output_file.unlink()
        except OSError as e:
            self.logger.error(f"No se pudo eliminar el volcado parcial {output_file.name}: {e}")

    def _validate_tools(self, tools: list) -> Optional[str]:
        """
        Valida que las herramientas necesarias estén disponibles

        Args:
            tools: Lista de herramientas requeridas

        Returns:
            None si todo está OK, mensaje de error en caso contrario
        """
        for tool in tools:
            if not shutil.which(tool):
                return f"La herramienta {tool} no está instalada"
        return None
