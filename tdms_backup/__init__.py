"""
Sistema de backup automático de Panglao TDMS hacia Google Drive
"""
__version__ = "1.0.0"

from .config import Config
from .logger import LoggerService

__all__ = ['Config', 'LoggerService']
