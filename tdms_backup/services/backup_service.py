"""
Servicio principal que orquesta un ciclo de backup
"""
from datetime import datetime, timezone
from typing import Callable, Optional
from ..exceptions import CredentialError, DumpError, LocalIOError, RemoteError
from ..logger import LoggerService
from ..models import BackupJobConfig, CycleResult, CycleState, LocalDumpFile
from .dump_service import DumpProducer
from .retention_service import RetentionManager
from .storage_service import RemoteStorageClient


class BackupOrchestrator:
    """Compone retención, volcado, subida y limpieza en un ciclo completo"""

    def __init__(self, credential_store, dump_producer: DumpProducer,
                 storage_factory: Optional[Callable] = None,
                 retention_manager: Optional[RetentionManager] = None,
                 evict_before_dump: bool = False):
        """
        Inicializa el orquestador

        Args:
            credential_store: CredentialStore que entrega el cliente autorizado
            dump_producer: Productor de volcados locales
            storage_factory: Crea un RemoteStorageClient a partir del cliente autorizado
            retention_manager: Política de retención
            evict_before_dump: True aplica la retención antes de generar el volcado
        """
        self.credential_store = credential_store
        self.dump_producer = dump_producer
        self.storage_factory = storage_factory or RemoteStorageClient.from_authorized_client
        self.retention_manager = retention_manager or RetentionManager()
        self.evict_before_dump = evict_before_dump
        self.logger = LoggerService.get_logger("BackupOrchestrator")

    def run_cycle(self, job: BackupJobConfig) -> CycleResult:
        """
        Ejecuta un ciclo de backup para una cadencia

        Nunca lanza excepciones: cada error se registra y marca el resultado
        como fallido. El volcado local se elimina siempre antes de retornar.

        Args:
            job: Configuración de la cadencia

        Returns:
            CycleResult con el estado final y los metadatos del archivo subido
        """
        result = CycleResult(cadence_name=job.cadence_name)
        cadence = job.cadence_name
        self.logger.info("=" * 70)
        self.logger.info(f"[{result.started_at.isoformat()}] INICIANDO BACKUP {cadence}")
        self.logger.info("=" * 70)

        dump_file: Optional[LocalDumpFile] = None
        try:
            storage = None
            if self.evict_before_dump:
                storage = self._connect(result)
                if storage is None:
                    return result
                self._evict(storage, job, result)

            dump_file = self._dump(job, result)
            if dump_file is None:
                return result

            if storage is None:
                storage = self._connect(result)
                if storage is None:
                    return result
                self._evict(storage, job, result)

            self._upload(storage, job, dump_file, result)
        except Exception as e:
            result.success = False
            result.error = f"Error inesperado en {result.state.value}: {e}"
            self.logger.error(f"[{cadence}] {result.error}", exc_info=True)
        finally:
            if dump_file is not None:
                result.state = CycleState.CLEANING_UP
                self._cleanup(dump_file, cadence)
            result.state = CycleState.DONE
            result.finished_at = datetime.now(timezone.utc)
            self._print_summary(job, result)

        return result

    def _connect(self, result: CycleResult):
        """Autoriza y crea el cliente remoto; None si falla"""
        try:
            auth = self.credential_store.authorize()
            return self.storage_factory(auth)
        except CredentialError as e:
            result.error = f"Credencial inválida: {e}"
            self.logger.critical(f"[{result.cadence_name}] {result.error}")
        except RemoteError as e:
            result.error = f"No se pudo autorizar contra Drive: {e}"
            self.logger.error(f"[{result.cadence_name}] {result.error}")
        return None

    def _evict(self, storage, job: BackupJobConfig, result: CycleResult):
        result.state = CycleState.EVICTING
        result.eviction = self.retention_manager.enforce(storage, job)

    def _dump(self, job: BackupJobConfig, result: CycleResult) -> Optional[LocalDumpFile]:
        """Genera el volcado; None si falla"""
        result.state = CycleState.DUMPING
        try:
            return self.dump_producer.create_dump(label=job.cadence_name)
        except DumpError as e:
            result.error = f"No se pudo crear el volcado: {e}"
            self.logger.error(f"[{job.cadence_name}] Backup abortado. {result.error}")
            return None

    def _upload(self, storage, job: BackupJobConfig, dump_file: LocalDumpFile, result: CycleResult):
        result.state = CycleState.UPLOADING
        try:
            result.remote_file = storage.upload(dump_file.path, dump_file.name, job.target_folder_id)
        except RemoteError as e:
            result.error = f"Error al subir {dump_file.name}: {e}"
            self.logger.error(f"[{job.cadence_name}] {result.error}")
            if e.auth_failure:
                self.credential_store.invalidate()
            return

        eviction = result.eviction
        if eviction is not None and not eviction.ok:
            result.error = (
                "Backup subido pero la retención no se completó "
                f"({eviction.listing_error or f'{len(eviction.failed)} eliminación(es) fallida(s)'})"
            )
            self.logger.warning(f"[{job.cadence_name}] {result.error}")
            return

        result.success = True

    def _cleanup(self, dump_file: LocalDumpFile, cadence: str):
        """Elimina el volcado local; los fallos solo se registran"""
        try:
            if dump_file.path.exists():
                dump_file.path.unlink()
                self.logger.info(f"[{cadence}] Archivo local eliminado: {dump_file.name}")
        except OSError as e:
            error = LocalIOError(f"No se pudo eliminar {dump_file.path}: {e}")
            self.logger.error(f"[{cadence}] {error}")

    def _print_summary(self, job: BackupJobConfig, result: CycleResult):
        """
        Imprime resumen del ciclo

        Args:
            job: Configuración de la cadencia
            result: Resultado del ciclo
        """
        self.logger.info("-" * 70)
        self.logger.info(f"RESUMEN DEL BACKUP {job.cadence_name}")
        if result.success and result.remote_file:
            remote = result.remote_file
            self.logger.info(f"✓ Backup {job.cadence_name} completado ({result.duration_seconds:.2f}s)")
            self.logger.info(f"  Archivo: {remote.name}")
            self.logger.info(f"  Enlace: {remote.web_view_link or '-'}")
            self.logger.info(f"  Tamaño: {remote.size_mb:.2f} MB")
        else:
            self.logger.error(f"✗ Backup {job.cadence_name} fallido: {result.error}")

        eviction = result.eviction
        if eviction and (eviction.deleted or eviction.already_gone):
            removed = len(eviction.deleted) + len(eviction.already_gone)
            self.logger.info(
                f"  Retención: {removed} backup(s) antiguo(s) eliminado(s) "
                f"para mantener el límite de {job.max_retained_count}"
            )
        self.logger.info("=" * 70)
