"""
Cliente de almacenamiento remoto sobre la API v3 de Google Drive
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import httplib2
from google.auth.exceptions import GoogleAuthError, RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from ..config import Config
from ..exceptions import RemoteError
from ..logger import LoggerService
from ..models import RemoteFileRecord

_TRANSPORT_ERRORS = (httplib2.HttpLib2Error, GoogleAuthError, OSError)


class RemoteStorageClient:
    """Lista, sube y elimina backups en carpetas de Google Drive"""

    FILE_FIELDS = "id, name, createdTime, size, webViewLink"
    PAGE_SIZE = 100

    def __init__(self, service, prefix: Optional[str] = None, chunk_size: Optional[int] = None):
        """
        Inicializa el cliente

        Args:
            service: Recurso de googleapiclient para Drive v3
            prefix: Prefijo de la convención de nombres de backup
            chunk_size: Tamaño de cada bloque de la subida reanudable
        """
        self._service = service
        self.prefix = prefix or Config.BACKUP_FILE_PREFIX
        self.chunk_size = chunk_size or Config.UPLOAD_CHUNK_SIZE
        self.logger = LoggerService.get_logger("RemoteStorageClient")

    @classmethod
    def from_authorized_client(cls, auth, timeout: Optional[int] = None,
                               prefix: Optional[str] = None) -> "RemoteStorageClient":
        """
        Construye el cliente con un servicio de Drive propio

        httplib2 no es thread-safe, por lo que cada ciclo crea su servicio.

        Args:
            auth: AuthorizedClient entregado por el CredentialStore
            timeout: Timeout de red en segundos
            prefix: Prefijo de la convención de nombres

        Returns:
            RemoteStorageClient listo para usar
        """
        http = auth.authorized_http(timeout if timeout is not None else Config.REMOTE_TIMEOUT_SECONDS)
        service = build("drive", "v3", http=http, cache_discovery=False)
        return cls(service, prefix=prefix)

    def list(self, folder_id: str) -> List[RemoteFileRecord]:
        """
        Lista los backups de una carpeta, del más antiguo al más reciente

        Args:
            folder_id: ID de la carpeta en Drive

        Returns:
            Archivos que siguen la convención de nombres, no enviados a la papelera

        Raises:
            RemoteError: Ante fallos de transporte o autenticación
        """
        query = (
            f"'{self._escape(folder_id)}' in parents and "
            f"name contains '{self._escape(self.prefix)}' and trashed = false"
        )

        items: List[Dict] = []
        page_token: Optional[str] = None
        try:
            while True:
                response = (
                    self._service.files()
                    .list(
                        q=query,
                        spaces="drive",
                        fields=f"nextPageToken, files({self.FILE_FIELDS})",
                        orderBy="createdTime",
                        pageSize=self.PAGE_SIZE,
                        pageToken=page_token,
                    )
                    .execute()
                )
                items.extend(response.get("files", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as e:
            raise self._remote_error("list", e) from e
        except _TRANSPORT_ERRORS as e:
            raise self._remote_error("list", e) from e

        # 'contains' de Drive no es un filtro por prefijo
        records = [
            self._to_record(item) for item in items
            if item.get("name", "").startswith(self.prefix) and item.get("createdTime")
        ]
        records.sort(key=lambda r: (r.created_time, r.name))
        return records

    def upload(self, path: Path, name: str, folder_id: str) -> RemoteFileRecord:
        """
        Sube un archivo por bloques sin cargarlo completo en memoria

        Args:
            path: Archivo local
            name: Nombre en Drive
            folder_id: Carpeta destino (único parent)

        Returns:
            Metadatos del archivo creado

        Raises:
            RemoteError: Ante fallos de transporte o autenticación
        """
        try:
            media = MediaFileUpload(
                str(path),
                mimetype="application/octet-stream",
                chunksize=self.chunk_size,
                resumable=True,
            )
        except OSError as e:
            raise RemoteError(f"No se pudo abrir {path} para subirlo: {e}", operation="upload") from e

        request = self._service.files().create(
            body={"name": name, "parents": [folder_id]},
            media_body=media,
            fields=self.FILE_FIELDS,
        )

        response = None
        try:
            while response is None:
                status, response = request.next_chunk()
                if status:
                    self.logger.debug(f"Subiendo {name}: {int(status.progress() * 100)}%")
        except HttpError as e:
            raise self._remote_error("upload", e) from e
        except _TRANSPORT_ERRORS as e:
            raise self._remote_error("upload", e) from e
        finally:
            media.stream().close()

        record = self._to_record(response)
        self.logger.info(f"Archivo subido a Google Drive: {record.name} ({record.id})")
        return record

    def delete(self, file_id: str) -> bool:
        """
        Elimina un archivo por ID

        Args:
            file_id: ID del archivo en Drive

        Returns:
            True si se eliminó, False si ya no existía

        Raises:
            RemoteError: Ante cualquier otro fallo
        """
        try:
            self._service.files().delete(fileId=file_id).execute()
        except HttpError as e:
            if e.resp.status == 404:
                self.logger.warning(f"El archivo {file_id} ya no existe en Drive")
                return False
            raise self._remote_error("delete", e) from e
        except _TRANSPORT_ERRORS as e:
            raise self._remote_error("delete", e) from e

        self.logger.info(f"Eliminado de Google Drive: {file_id}")
        return True

    @staticmethod
    def _escape(value: str) -> str:
        return value.replace("\\", "\\\\").replace("'", "\\'")

    @staticmethod
    def _to_record(item: Dict) -> RemoteFileRecord:
        """Convierte un recurso de la API en RemoteFileRecord"""
        created_raw = item.get("createdTime")
        created = (
            datetime.fromisoformat(created_raw.replace("Z", "+00:00")).astimezone(timezone.utc)
            if created_raw else datetime.now(timezone.utc)
        )
        return RemoteFileRecord(
            id=item["id"],
            name=item.get("name", ""),
            created_time=created,
            size_bytes=int(item["size"]) if item.get("size") is not None else None,
            web_view_link=item.get("webViewLink"),
        )

    @staticmethod
    def _remote_error(operation: str, error: Exception) -> RemoteError:
        """Traduce errores de la API o de transporte a RemoteError"""
        if isinstance(error, HttpError):
            status = error.resp.status
            return RemoteError(
                f"Drive respondió {status} en {operation}: {error}",
                operation=operation,
                status=status,
                auth_failure=status == 401,
            )
        return RemoteError(
            f"Error de transporte en {operation}: {error}",
            operation=operation,
            auth_failure=isinstance(error, RefreshError),
        )
