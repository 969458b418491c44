"""
Jerarquía de errores del sistema de backup
"""
from typing import Optional


class BackupError(Exception):
    """Error base del sistema de backup"""


class ConfigurationError(BackupError):
    """Configuración ausente o inválida al iniciar el proceso"""


class CredentialError(BackupError):
    """Credencial OAuth ausente, corrupta o revocada. Requiere repetir el bootstrap."""


class DumpError(BackupError):
    """Fallo de la herramienta de volcado. Aborta el ciclo actual."""


class LocalIOError(BackupError):
    """Fallo al limpiar archivos locales. Solo se registra."""


class RemoteError(BackupError):
    """Fallo de transporte o autenticación contra el almacenamiento remoto"""

    def __init__(self, message: str, operation: str = "", status: Optional[int] = None,
                 auth_failure: bool = False):
        super().__init__(message)
        self.operation = operation
        self.status = status
        self.auth_failure = auth_failure
