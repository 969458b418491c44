"""
Tests para el ciclo completo de backup
"""
import itertools
import unittest
from datetime import datetime, timezone
from pathlib import Path
import tempfile
import shutil
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fake_drive import FakeDriveService, http_error
from tdms_backup.exceptions import CredentialError, DumpError
from tdms_backup.models import BackupJobConfig, CycleState, LocalDumpFile
from tdms_backup.services.backup_service import BackupOrchestrator
from tdms_backup.services.storage_service import RemoteStorageClient

FOLDER = "daily-folder"


class FakeCredentialStore:
    """CredentialStore que cuenta autorizaciones e invalidaciones"""

    def __init__(self, error=None):
        self.error = error
        self.authorize_calls = 0
        self.invalidated = False

    def authorize(self):
        self.authorize_calls += 1
        if self.error:
            raise self.error
        return object()

    def invalidate(self):
        self.invalidated = True


class FakeDumpProducer:
    """DumpProducer que escribe un archivo real o falla"""

    def __init__(self, backup_dir: Path, fail: bool = False):
        self.backup_dir = backup_dir
        self.fail = fail
        self.created = []
        self._counter = itertools.count()

    def create_dump(self, label=None):
        if self.fail:
            raise DumpError("pg_dump terminó con código 1: connection refused")
        name = f"panglao_tdms_backup_{(label or '').lower()}_{next(self._counter):04d}.dump"
        path = self.backup_dir / name
        path.write_bytes(b"PGDMP" + b"\0" * 2048)
        self.created.append(path)
        return LocalDumpFile(path=path, name=name, created_time=datetime.now(timezone.utc))


class OrchestratorTestCase(unittest.TestCase):

    def setUp(self):
        """Setup para tests"""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.drive = FakeDriveService()
        self.store = FakeCredentialStore()
        self.dumps = FakeDumpProducer(self.temp_dir)

    def tearDown(self):
        """Cleanup después de tests"""
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def orchestrator(self, evict_before_dump=False):
        return BackupOrchestrator(
            self.store,
            self.dumps,
            storage_factory=lambda auth: RemoteStorageClient(self.drive, prefix="panglao_tdms_backup_"),
            evict_before_dump=evict_before_dump,
        )

    def job(self, max_retained=31):
        return BackupJobConfig("DAILY", "0 2 * * *", FOLDER, max_retained)

    def local_files(self):
        return list(self.temp_dir.iterdir())


class TestScenarios(OrchestratorTestCase):
    """Escenarios de referencia del ciclo"""

    def test_scenario_a_full_folder(self):
        """Escenario A: 31 archivos con máximo 31 -> 1 eliminado, 1 subido, quedan 31"""
        seeded = self.drive.seed(FOLDER, 31)

        result = self.orchestrator().run_cycle(self.job(31))

        self.assertTrue(result.success, result.error)
        self.assertEqual(self.drive.deleted, [seeded[0]])
        self.assertEqual(len(self.drive.names_in(FOLDER)), 31)
        self.assertIn(result.remote_file.name, self.drive.names_in(FOLDER))
        self.assertEqual(result.state, CycleState.DONE)

    def test_scenario_b_room_available(self):
        """Escenario B: 5 archivos con máximo 31 -> sin eliminaciones, quedan 6"""
        self.drive.seed(FOLDER, 5)

        result = self.orchestrator().run_cycle(self.job(31))

        self.assertTrue(result.success)
        self.assertEqual(self.drive.deleted, [])
        self.assertEqual(len(self.drive.names_in(FOLDER)), 6)
        self.assertEqual(result.eviction.planned, [])

    def test_scenario_c_dump_failure_makes_no_remote_calls(self):
        """Escenario C: volcado fallido -> sin llamadas remotas ni archivos locales"""
        self.drive.seed(FOLDER, 31)
        self.dumps.fail = True

        result = self.orchestrator().run_cycle(self.job(31))

        self.assertFalse(result.success)
        self.assertIn("volcado", result.error)
        self.assertEqual(self.drive.calls, [])
        self.assertEqual(self.store.authorize_calls, 0)
        self.assertEqual(self.local_files(), [])
        self.assertEqual(len(self.drive.names_in(FOLDER)), 31)

    def test_scenario_d_upload_auth_error(self):
        """Escenario D: error de autenticación al subir -> archivo local eliminado, sin reintento"""
        self.drive.seed(FOLDER, 3)
        self.drive.errors["upload"] = http_error(401)

        result = self.orchestrator().run_cycle(self.job(31))

        self.assertFalse(result.success)
        self.assertEqual(self.local_files(), [])
        self.assertEqual(self.drive.calls.count("upload"), 1)
        self.assertEqual(self.store.authorize_calls, 1)
        self.assertTrue(self.store.invalidated)


class TestCycleInvariants(OrchestratorTestCase):
    """Invariantes del ciclo"""

    def test_post_cycle_bound(self):
        """Tras un ciclo exitoso la carpeta nunca supera el máximo"""
        max_retained = 5
        for count in range(0, 9):
            with self.subTest(count=count):
                self.drive = FakeDriveService()
                self.drive.seed(FOLDER, count)

                result = self.orchestrator().run_cycle(self.job(max_retained))

                self.assertTrue(result.success)
                remaining = len(self.drive.names_in(FOLDER))
                self.assertLessEqual(remaining, max_retained)
                self.assertEqual(remaining, min(count + 1, max_retained))

    def test_no_orphan_local_files(self):
        """El volcado local nunca sobrevive al ciclo, en ningún resultado"""
        for evict_first, dump_ok, upload_ok in itertools.product([False, True], repeat=3):
            with self.subTest(evict_first=evict_first, dump_ok=dump_ok, upload_ok=upload_ok):
                self.drive = FakeDriveService()
                self.drive.seed(FOLDER, 2)
                self.dumps.fail = not dump_ok
                if not upload_ok:
                    self.drive.errors["upload"] = http_error(500)

                result = self.orchestrator(evict_first).run_cycle(self.job(2))

                self.assertEqual(self.local_files(), [])
                self.assertEqual(result.success, dump_ok and upload_ok)
                self.assertEqual(result.state, CycleState.DONE)

    def test_dump_first_is_the_default_order(self):
        """Por defecto la retención se aplica después de tener el volcado"""
        self.drive.seed(FOLDER, 2)
        self.orchestrator().run_cycle(self.job(2))
        self.assertEqual(self.drive.calls[:2], ["list", "delete"])
        self.assertEqual(len(self.dumps.created), 1)

    def test_evict_before_dump_spends_eviction_when_dump_fails(self):
        """Con EVICT_BEFORE_DUMP la retención corre aunque el volcado falle después"""
        seeded = self.drive.seed(FOLDER, 2)
        self.dumps.fail = True

        result = self.orchestrator(evict_before_dump=True).run_cycle(self.job(2))

        self.assertFalse(result.success)
        self.assertEqual(self.drive.deleted, [seeded[0]])
        self.assertNotIn("upload", self.drive.calls)

    def test_delete_failure_fails_cycle_but_keeps_backup(self):
        """Un fallo de retención no impide la subida pero marca el ciclo como fallido"""
        self.drive.seed(FOLDER, 3)
        self.drive.errors["delete"] = http_error(500)

        result = self.orchestrator().run_cycle(self.job(3))

        self.assertFalse(result.success)
        self.assertIsNotNone(result.remote_file)
        self.assertEqual(len(result.eviction.failed), 1)
        self.assertEqual(len(self.drive.names_in(FOLDER)), 4)
        self.assertEqual(self.local_files(), [])

    def test_listing_failure_fails_cycle_but_uploads(self):
        """Un fallo al listar no impide la subida pero marca el ciclo como fallido"""
        self.drive.errors["list"] = http_error(503)

        result = self.orchestrator().run_cycle(self.job(3))

        self.assertFalse(result.success)
        self.assertIsNotNone(result.eviction.listing_error)
        self.assertIn("upload", self.drive.calls)

    def test_already_deleted_file_is_not_a_failure(self):
        """Un archivo ya eliminado durante la retención no falla el ciclo"""
        seeded = self.drive.seed(FOLDER, 2)

        class VanishingClient(RemoteStorageClient):
            def list(inner_self, folder_id):
                records = super().list(folder_id)
                del self.drive.files_by_id[seeded[0]]
                return records

        orchestrator = BackupOrchestrator(
            self.store, self.dumps,
            storage_factory=lambda auth: VanishingClient(self.drive, prefix="panglao_tdms_backup_"),
        )
        result = orchestrator.run_cycle(self.job(2))

        self.assertTrue(result.success, result.error)
        self.assertEqual(len(result.eviction.already_gone), 1)

    def test_credential_error_fails_cycle_without_crashing(self):
        """Una credencial inválida falla el ciclo y limpia el volcado"""
        self.store.error = CredentialError("token corrupto")

        result = self.orchestrator().run_cycle(self.job())

        self.assertFalse(result.success)
        self.assertIn("Credencial", result.error)
        self.assertEqual(self.drive.calls, [])
        self.assertEqual(self.local_files(), [])

    def test_credential_error_with_evict_first_skips_dump(self):
        """Con retención primero, sin credencial no se genera volcado"""
        self.store.error = CredentialError("token corrupto")

        result = self.orchestrator(evict_before_dump=True).run_cycle(self.job())

        self.assertFalse(result.success)
        self.assertEqual(self.dumps.created, [])

    def test_unexpected_error_is_contained(self):
        """Un error inesperado no escapa del ciclo"""
        def broken_factory(auth):
            raise RuntimeError("boom")

        orchestrator = BackupOrchestrator(self.store, self.dumps, storage_factory=broken_factory)
        result = orchestrator.run_cycle(self.job())

        self.assertFalse(result.success)
        self.assertIn("boom", result.error)
        self.assertEqual(self.local_files(), [])

    def test_result_carries_remote_metadata(self):
        """El resultado incluye nombre, tamaño y enlace del archivo subido"""
        result = self.orchestrator().run_cycle(self.job())

        self.assertTrue(result.success)
        self.assertTrue(result.remote_file.name.startswith("panglao_tdms_backup_daily_"))
        self.assertEqual(result.remote_file.size_bytes, 5 + 2048)
        self.assertTrue(result.remote_file.web_view_link.startswith("https://drive.google.com/"))
        self.assertGreaterEqual(result.duration_seconds, 0)


if __name__ == '__main__':
    unittest.main()
