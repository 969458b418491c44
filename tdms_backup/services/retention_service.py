"""
Política de retención FIFO para las carpetas de backup
"""
from typing import List, Sequence
from ..exceptions import RemoteError
from ..logger import LoggerService
from ..models import BackupJobConfig, EvictionReport, RemoteFileRecord


def plan_eviction(files: Sequence[RemoteFileRecord], max_retained: int) -> List[RemoteFileRecord]:
    """
    Calcula qué archivos eliminar para dejar lugar a un backup nuevo

    Función pura: ordena del más antiguo al más reciente (desempate por nombre)
    y devuelve los primeros ``len(files) - max_retained + 1`` cuando la carpeta
    está llena; si hay lugar devuelve una lista vacía.

    Args:
        files: Archivos actuales de la carpeta
        max_retained: Cantidad máxima de backups tras el ciclo

    Returns:
        Archivos a eliminar, del más antiguo al más reciente

    Raises:
        ValueError: Si max_retained es menor a 1
    """
    if max_retained < 1:
        raise ValueError("max_retained debe ser mayor a 0")
    if len(files) < max_retained:
        return []

    ordered = sorted(files, key=lambda f: (f.created_time, f.name))
    return ordered[:len(files) - max_retained + 1]


class RetentionManager:
    """Aplica la retención FIFO sobre una carpeta remota (best-effort)"""

    def __init__(self):
        self.logger = LoggerService.get_logger("RetentionManager")

    def enforce(self, storage, job: BackupJobConfig) -> EvictionReport:
        """
        Lista la carpeta de la cadencia y elimina los backups sobrantes

        Los fallos se registran en el reporte y nunca se propagan: es preferible
        una carpeta excedida a un backup perdido.

        Args:
            storage: RemoteStorageClient autenticado
            job: Configuración de la cadencia

        Returns:
            EvictionReport con lo planificado, eliminado y fallido
        """
        report = EvictionReport()
        cadence = job.cadence_name

        try:
            files = storage.list(job.target_folder_id)
        except RemoteError as e:
            report.listing_error = str(e)
            self.logger.error(f"[{cadence}] No se pudo listar la carpeta {job.target_folder_id}: {e}")
            return report

        report.planned = plan_eviction(files, job.max_retained_count)
        if not report.planned:
            self.logger.info(
                f"[{cadence}] Carpeta con {len(files)} archivo(s) (máx: {job.max_retained_count}). "
                "No hay backups para eliminar"
            )
            return report

        self.logger.info(
            f"[{cadence}] Carpeta con {len(files)} archivo(s) (máx: {job.max_retained_count}). "
            f"Eliminando {len(report.planned)} backup(s) antiguo(s)"
        )
        for record in report.planned:
            self.logger.info(f"[{cadence}] Eliminando: {record.name} ({record.created_time:%Y-%m-%d %H:%M})")
            try:
                if storage.delete(record.id):
                    report.deleted.append(record)
                else:
                    report.already_gone.append(record)
            except RemoteError as e:
                report.failed.append(record)
                self.logger.error(f"[{cadence}] Error al eliminar {record.name}: {e}")

        return report
