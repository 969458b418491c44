"""
Servicios de la aplicación
"""
from .backup_service import BackupOrchestrator
from .dump_service import DumpProducer
from .retention_service import RetentionManager, plan_eviction
from .scheduler_service import Scheduler
from .storage_service import RemoteStorageClient

__all__ = [
    'BackupOrchestrator',
    'DumpProducer',
    'RemoteStorageClient',
    'RetentionManager',
    'Scheduler',
    'plan_eviction'
]
