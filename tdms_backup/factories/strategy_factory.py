"""
Factory para crear estrategias de volcado
"""
from typing import Optional
from urllib.parse import urlparse
from ..strategies.base_strategy import DumpStrategy
from ..strategies.postgresql_strategy import PostgreSQLDumpStrategy


class BackupStrategyFactory:
    """Factory para crear estrategias de volcado (Factory Pattern)"""

    # Mapeo de esquemas de URL a estrategias
    _strategies = {
        'postgres': PostgreSQLDumpStrategy,
        'postgresql': PostgreSQLDumpStrategy,
    }

    @classmethod
    def create(cls, db_type: str, timeout: Optional[int] = None) -> Optional[DumpStrategy]:
        """
        Crea una estrategia de volcado según el tipo de base de datos

        Args:
            db_type: Tipo de base de datos (postgres, postgresql)
            timeout: Tiempo máximo del volcado en segundos

        Returns:
            Instancia de DumpStrategy o None si el tipo no es soportado
        """
        strategy_class = cls._strategies.get((db_type or '').lower())
        if strategy_class:
            return strategy_class(timeout=timeout)
        return None

    @classmethod
    def create_for_url(cls, connection_string: str, timeout: Optional[int] = None) -> Optional[DumpStrategy]:
        """
        Crea la estrategia que corresponde al esquema de una cadena de conexión

        Args:
            connection_string: URL de la base de datos
            timeout: Tiempo máximo del volcado en segundos

        Returns:
            Instancia de DumpStrategy o None si el esquema no es soportado
        """
        return cls.create(urlparse(connection_string).scheme, timeout=timeout)

    @classmethod
    def get_supported_types(cls) -> list:
        """
        Obtiene lista de tipos de base de datos soportados

        Returns:
            Lista de tipos soportados
        """
        return list(cls._strategies.keys())
