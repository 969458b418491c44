"""
Servicio de programación de tareas de backup
"""
import signal
import threading
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

import schedule

from ..config import Config
from ..logger import LoggerService
from ..models import BackupJobConfig, CycleResult
from .backup_service import BackupOrchestrator


class Scheduler:
    """Dispara el orquestador para cada cadencia, sin ciclos simultáneos de la misma cadencia"""

    def __init__(self, orchestrator: BackupOrchestrator, jobs: List[BackupJobConfig],
                 poll_interval: Optional[int] = None, clock: Callable[[], datetime] = datetime.now,
                 status_interval: Optional[int] = None):
        """
        Inicializa el servicio de programación

        Args:
            orchestrator: Orquestador que ejecuta cada ciclo
            jobs: Configuración de cada cadencia
            poll_interval: Segundos entre revisiones de tareas pendientes
            clock: Reloj local usado para evaluar el día del mes
            status_interval: Segundos entre registros del estado del servicio
        """
        self.orchestrator = orchestrator
        self.jobs = {job.cadence_name: job for job in jobs}
        self.poll_interval = poll_interval or Config.SCHEDULER_POLL_SECONDS
        self.status_interval = status_interval if status_interval is not None else Config.STATUS_LOG_SECONDS
        self.clock = clock
        self.logger = LoggerService.get_logger("Scheduler")

        self._scheduler = schedule.Scheduler()
        self._locks = {name: threading.Lock() for name in self.jobs}
        self._threads: Dict[str, threading.Thread] = {}
        self._stop_event = threading.Event()
        self._started_at = time.time()
        self.last_results: Dict[str, CycleResult] = {}

    def register(self):
        """Registra una tarea diaria por cada hora de disparo de cada cadencia"""
        self._scheduler.clear()
        for job in self.jobs.values():
            for time_of_day in job.schedule.times_of_day:
                self._scheduler.every().day.at(time_of_day).do(self.trigger, job).tag(job.cadence_name)

    def trigger(self, job: BackupJobConfig) -> Optional[threading.Thread]:
        """
        Punto de entrada de cada disparo; filtra por día del mes

        Args:
            job: Cadencia disparada

        Returns:
            Hilo del ciclo, o None si hoy no corresponde o ya hay uno en curso
        """
        now = self.clock()
        if not job.schedule.matches_day(now):
            self.logger.debug(f"[{job.cadence_name}] Hoy ({now:%Y-%m-%d}) no corresponde ejecutar")
            return None
        return self.dispatch(job)

    def dispatch(self, job: BackupJobConfig) -> Optional[threading.Thread]:
        """
        Lanza el ciclo en un hilo propio si la cadencia no tiene uno en curso

        Args:
            job: Cadencia a ejecutar

        Returns:
            Hilo lanzado, o None si el disparo se omitió
        """
        lock = self._locks[job.cadence_name]
        if not lock.acquire(blocking=False):
            self.logger.warning(
                f"[{job.cadence_name}] Ciclo anterior aún en curso. Se omite el disparo de "
                f"{time.strftime('%Y-%m-%d %H:%M:%S')}"
            )
            return None

        thread = threading.Thread(
            target=self._run_cycle,
            args=(job, lock),
            name=f"backup-{job.cadence_name.lower()}",
        )
        self._threads[job.cadence_name] = thread
        try:
            thread.start()
        except RuntimeError:
            lock.release()
            raise
        return thread

    def _run_cycle(self, job: BackupJobConfig, lock: threading.Lock):
        """Ejecuta el ciclo y libera el lock de la cadencia"""
        try:
            self.logger.info(f"Ejecutando backup {job.cadence_name} programado a las {time.strftime('%Y-%m-%d %H:%M:%S')}")
            result = self.orchestrator.run_cycle(job)
            self.last_results[job.cadence_name] = result
            if result.success:
                self.logger.info(f"Backup {job.cadence_name} completado exitosamente")
            else:
                self.logger.warning(f"Backup {job.cadence_name} fallido. Se reintentará en el próximo disparo")
        except Exception as e:
            self.logger.error(f"Error crítico durante backup {job.cadence_name}: {e}", exc_info=True)
        finally:
            lock.release()

    def is_running(self, cadence: str) -> bool:
        return self._locks[cadence].locked()

    def run_pending(self):
        self._scheduler.run_pending()

    def start(self):
        """Inicia el programador y bloquea hasta recibir una señal de parada"""
        self.register()
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.logger.info("=" * 70)
        self.logger.info("SERVICIO DE BACKUP AUTOMÁTICO INICIADO")
        self.logger.info("=" * 70)
        for job in self.jobs.values():
            self.logger.info(
                f"  {job.cadence_name:<8} cron '{job.cron_expression}' "
                f"(a las {', '.join(job.schedule.times_of_day)}) | "
                f"folder {job.target_folder_id} | retención {job.max_retained_count} archivo(s)"
            )
        self.logger.info("-" * 70)
        self.logger.info(f"Próxima ejecución: {self.get_next_run()}")
        self.logger.info("Presiona Ctrl+C para detener el servicio")
        self.logger.info("=" * 70)

        self._stop_event.clear()
        last_status = time.monotonic()
        while not self._stop_event.is_set():
            self.run_pending()
            if time.monotonic() - last_status >= self.status_interval:
                self.log_status()
                last_status = time.monotonic()
            self._stop_event.wait(self.poll_interval)

        self._shutdown()

    def stop(self):
        """Solicita la detención del bucle principal"""
        self._stop_event.set()

    def _signal_handler(self, signum, frame):
        """
        Manejador de señales para shutdown graceful

        Args:
            signum: Número de señal
            frame: Frame actual
        """
        try:
            signal_name = signal.Signals(signum).name
        except ValueError:
            signal_name = str(signum)

        self.logger.info(f"Señal recibida: {signal_name}")
        self.stop()

    def _shutdown(self):
        """Detiene el servicio esperando los ciclos en curso"""
        self.logger.info("Deteniendo servicio de backup...")
        self._scheduler.clear()
        for cadence, thread in list(self._threads.items()):
            if thread.is_alive():
                self.logger.info(f"Esperando a que termine el ciclo {cadence} en curso...")
                thread.join()
        self.log_status()
        self.logger.info("Servicio detenido correctamente")

    def log_status(self):
        """Registra el estado del servicio y el último resultado de cada cadencia"""
        status = self.status()
        self.logger.info(
            f"Estado: {status['status']} | en curso: {', '.join(status['running']) or '-'} | "
            f"próxima ejecución: {status['next_run']} | uptime: {status['uptime_seconds']}s"
        )
        for cadence, result in status["last_results"].items():
            self.logger.info(f"  Último {cadence}: {result}")

    def get_next_run(self) -> str:
        """
        Obtiene la próxima ejecución programada

        Returns:
            String con la fecha de la próxima ejecución
        """
        next_run = self._scheduler.next_run
        if next_run:
            return next_run.strftime('%Y-%m-%d %H:%M:%S')
        return "No hay ejecuciones programadas"

    def status(self) -> dict:
        """Estado del servicio: cadencias, retención, ciclos en curso y últimos resultados"""
        return {
            "status": "running" if not self._stop_event.is_set() else "stopped",
            "schedules": {name: job.cron_expression for name, job in self.jobs.items()},
            "retention": {name: job.max_retained_count for name, job in self.jobs.items()},
            "running": [name for name in self.jobs if self.is_running(name)],
            "last_results": {name: str(result) for name, result in self.last_results.items()},
            "next_run": self.get_next_run(),
            "uptime_seconds": int(time.time() - self._started_at),
        }
