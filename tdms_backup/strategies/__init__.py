"""
Estrategias de volcado para diferentes motores de BD
"""
from .base_strategy import DumpStrategy
from .postgresql_strategy import PostgreSQLDumpStrategy

__all__ = [
    'DumpStrategy',
    'PostgreSQLDumpStrategy'
]
