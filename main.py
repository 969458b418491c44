#!/usr/bin/env python3
"""
Sistema de Backup Automático de Panglao TDMS hacia Google Drive
Punto de entrada principal

Uso:
    python main.py                  # Modo scheduler (automático)
    python main.py once DAILY       # Ejecutar un ciclo de una cadencia y salir
    python main.py bootstrap        # Autorizar Google Drive y guardar el token
    python main.py --help           # Ayuda
"""
import sys
import argparse
from pathlib import Path

# Agregar la raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent))

from tdms_backup.config import Config
from tdms_backup.exceptions import ConfigurationError, CredentialError, RemoteError
from tdms_backup.logger import LoggerService
from tdms_backup.repositories.config_repository import ConfigRepository
from tdms_backup.repositories.credential_store import CredentialStore
from tdms_backup.services.backup_service import BackupOrchestrator
from tdms_backup.services.dump_service import DumpProducer
from tdms_backup.services.scheduler_service import Scheduler


def parse_arguments(argv=None):
    """
    Parsea argumentos de línea de comandos

    Returns:
        Namespace con los argumentos parseados
    """
    parser = argparse.ArgumentParser(
        description='Sistema de Backup Automático de Panglao TDMS',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  python main.py                    # Iniciar servicio automático
  python main.py once DAILY         # Ejecutar el backup diario una sola vez
  python main.py bootstrap          # Autorizar la cuenta de Google Drive
        """
    )

    parser.add_argument(
        'mode',
        nargs='?',
        choices=['scheduler', 'once', 'bootstrap'],
        default='scheduler',
        help='Modo de ejecución (default: scheduler)'
    )

    parser.add_argument(
        'cadence',
        nargs='?',
        type=str.upper,
        choices=list(Config.CADENCES),
        default=Config.DAILY,
        help='Cadencia para el modo once (default: DAILY)'
    )

    return parser.parse_args(argv)


def build_orchestrator(config_repo: ConfigRepository, credential_store: CredentialStore) -> BackupOrchestrator:
    """
    Construye el orquestador con la configuración del entorno

    Args:
        config_repo: Repositorio de configuración
        credential_store: Almacén de credenciales

    Returns:
        BackupOrchestrator listo para ejecutar ciclos
    """
    dump_producer = DumpProducer(config_repo.get_database_url())
    return BackupOrchestrator(
        credential_store,
        dump_producer,
        evict_before_dump=config_repo.evict_before_dump(),
    )


def main(argv=None) -> int:
    """Función principal"""
    args = parse_arguments(argv)
    logger = LoggerService.get_logger("Main")
    credential_store = CredentialStore.from_environment()

    # Modo bootstrap (consentimiento OAuth interactivo, una sola vez)
    if args.mode == 'bootstrap':
        try:
            token_path = credential_store.bootstrap()
        except CredentialError as e:
            logger.error(f"No se pudo completar la autorización: {e}")
            return 1
        logger.info(f"✓ Autorización completada. Token guardado en {token_path}")
        return 0

    config_repo = ConfigRepository()
    try:
        jobs = config_repo.get_job_configs()
    except ConfigurationError as e:
        logger.error(f"Error de configuración: {e}")
        return 1

    orchestrator = build_orchestrator(config_repo, credential_store)

    # Modo once (una sola ejecución)
    if args.mode == 'once':
        logger.info(f"Modo: Ejecución única ({args.cadence})")
        job = next(job for job in jobs if job.cadence_name == args.cadence)
        result = orchestrator.run_cycle(job)
        logger.info(str(result))
        return 0 if result.success else 1

    # Modo scheduler (por defecto): la credencial debe existir antes de programar
    try:
        credential_store.authorize()
    except CredentialError as e:
        logger.critical(f"No hay credencial válida de Google Drive: {e}")
        return 1
    except RemoteError as e:
        logger.warning(f"No se pudo verificar la credencial ahora, se reintentará en cada ciclo: {e}")
    else:
        logger.info("✓ Autenticación con Google Drive verificada")

    scheduler = Scheduler(orchestrator, jobs)
    scheduler.start()
    return 0


def run():
    """Entrada de consola: traduce el resultado de main() a código de salida"""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nPrograma interrumpido por el usuario")
        sys.exit(0)
    except Exception as e:
        print(f"Error crítico: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    run()
