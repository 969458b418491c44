"""
Factories del sistema de backup
"""
from .strategy_factory import BackupStrategyFactory

__all__ = ['BackupStrategyFactory']
