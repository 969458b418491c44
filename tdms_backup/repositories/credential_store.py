"""
Almacén de credenciales OAuth2 para Google Drive
"""
import json
import os
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from ..config import Config
from ..exceptions import CredentialError, LocalIOError, RemoteError
from ..logger import LoggerService
from ..models import Credential

TOKEN_URI = "https://oauth2.googleapis.com/token"


class StoreBoundCredentials(Credentials):
    """
    Copia por ciclo de la credencial cuyo refresco pasa por el CredentialStore

    google-auth renueva el token antes de cada petición si expiró; con esta
    clase esa renovación toma el lock del almacén, reutiliza un token ya
    renovado por otro hilo y queda persistida en el archivo de token.
    """

    def __init__(self, store: "CredentialStore", **kwargs):
        super().__init__(**kwargs)
        self._credential_store = store

    def refresh(self, request):
        try:
            self.token, self.expiry = self._credential_store.refresh_for(self.token)
        except (CredentialError, RemoteError) as e:
            raise RefreshError(str(e)) from e


class AuthorizedClient:
    """Handle opaco con el que el cliente remoto firma sus peticiones"""

    def __init__(self, credentials: Credentials):
        self.credentials = credentials

    def authorized_http(self, timeout: Optional[int] = None) -> google_auth_httplib2.AuthorizedHttp:
        """
        Crea un transporte HTTP autenticado y con timeout

        El refresco ante un 401 queda deshabilitado: un fallo de autenticación
        se reporta al ciclo y el token se renueva en el siguiente. Un token
        vencido antes de una petición se renueva a través del almacén.

        Args:
            timeout: Timeout de socket en segundos

        Returns:
            Transporte para googleapiclient
        """
        return google_auth_httplib2.AuthorizedHttp(
            self.credentials,
            http=httplib2.Http(timeout=timeout),
            refresh_status_codes=(),
        )


class CredentialStore:
    """Carga, renueva y persiste la credencial OAuth2"""

    def __init__(self, token_path: Optional[Path] = None, credentials_path: Optional[Path] = None,
                 token_json: Optional[str] = None, credentials_json: Optional[str] = None,
                 scopes: Optional[List[str]] = None):
        """
        Inicializa el almacén de credenciales

        Args:
            token_path: Archivo donde se persiste el token
            credentials_path: Archivo con el client secret de Google
            token_json: Token en línea; si se indica, nunca se escribe a disco
            credentials_json: Client secret en línea
            scopes: Scopes OAuth solicitados
        """
        self.token_path = Path(token_path or Config.TOKEN_PATH)
        self.credentials_path = Path(credentials_path or Config.CREDENTIALS_PATH)
        self.token_json = token_json
        self.credentials_json = credentials_json
        self.scopes = scopes or Config.SCOPES
        self.logger = LoggerService.get_logger("CredentialStore")

        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._google_credentials: Optional[Credentials] = None
        self._stale = False

    @classmethod
    def from_environment(cls, env: Optional[Mapping[str, str]] = None) -> "CredentialStore":
        """Construye el almacén a partir de las variables de entorno"""
        env = os.environ if env is None else env
        return cls(
            token_json=env.get("GOOGLE_OAUTH_TOKEN_JSON") or None,
            credentials_json=env.get("GOOGLE_OAUTH_CREDENTIALS_JSON") or None,
        )

    def authorize(self) -> AuthorizedClient:
        """
        Devuelve un cliente autorizado, renovando el access token si expiró

        Las llamadas concurrentes se serializan; quien espera reutiliza el
        token recién renovado en lugar de renovarlo otra vez.

        Returns:
            AuthorizedClient listo para el cliente remoto

        Raises:
            CredentialError: Si no hay token, está corrupto o fue revocado
            RemoteError: Si la renovación falla por red
        """
        with self._lock:
            if self._google_credentials is None:
                self._credential = self._load_credential()
                self._google_credentials = self._to_google(self._credential)

            if self._stale or not self._google_credentials.valid:
                self._refresh()

            return AuthorizedClient(self._session_credentials())

    def refresh_for(self, expired_token: Optional[str]):
        """
        Renueva el token compartido a pedido de una copia de ciclo

        Si otro hilo ya lo renovó mientras se esperaba el lock, se devuelve
        ese token sin renovar otra vez.

        Args:
            expired_token: Access token que la copia considera vencido

        Returns:
            Tupla (token, expiry) vigente

        Raises:
            CredentialError: Si el refresh token fue revocado
            RemoteError: Si la renovación falla por red
        """
        with self._lock:
            current = self._google_credentials
            if current is None:
                raise CredentialError("La credencial no fue cargada")
            if self._stale or not current.valid or current.token == expired_token:
                self._refresh()
            return current.token, current.expiry

    def invalidate(self):
        """Fuerza la renovación del access token en el próximo authorize()"""
        with self._lock:
            self._stale = True
        self.logger.info("Access token marcado para renovación en el próximo ciclo")

    def bootstrap(self) -> Path:
        """
        Ejecuta el flujo de consentimiento OAuth y guarda el token

        Es interactivo (abre un servidor local y pide autorizar en el navegador);
        se ejecuta una sola vez antes de iniciar el servicio.

        Returns:
            Ruta del archivo de token escrito
        """
        client_config = self._load_client_config()
        if not client_config:
            raise CredentialError(
                f"No se encontró el client secret de Google en {self.credentials_path} "
                "ni en GOOGLE_OAUTH_CREDENTIALS_JSON"
            )

        flow = InstalledAppFlow.from_client_config(client_config, self.scopes)
        creds = flow.run_local_server(port=0, access_type="offline", prompt="consent")

        section = self._client_section(client_config)
        try:
            credential = Credential(
                client_id=creds.client_id,
                client_secret=creds.client_secret,
                refresh_token=creds.refresh_token,
                redirect_target=(section.get("redirect_uris") or ["http://localhost"])[0],
                access_token=creds.token,
                expiry=creds.expiry,
            )
        except ValueError as e:
            raise CredentialError(f"Google no devolvió un refresh token válido: {e}") from e

        self._write_atomic(self.token_path, credential.to_token_info())
        with self._lock:
            self._credential = credential
            self._google_credentials = self._to_google(credential)
            self._stale = False

        self.logger.info(f"Token guardado en {self.token_path}")
        if self.token_json:
            self.logger.warning("GOOGLE_OAUTH_TOKEN_JSON está definido y tiene prioridad sobre el archivo")
        return self.token_path

    def _refresh(self):
        """Renueva el access token y persiste el resultado. Requiere el lock."""
        creds = self._google_credentials
        self.logger.info("Renovando access token de Google Drive...")
        try:
            creds.refresh(Request())
        except RefreshError as e:
            if getattr(e, "retryable", False):
                raise RemoteError(f"Fallo temporal al renovar el token: {e}", operation="refresh") from e
            raise CredentialError(
                f"Google rechazó el refresh token ({e}). Ejecuta: python main.py bootstrap"
            ) from e
        except TransportError as e:
            raise RemoteError(f"No se pudo renovar el token: {e}", operation="refresh") from e

        self._stale = False
        self._credential = replace(
            self._credential,
            access_token=creds.token,
            expiry=creds.expiry,
            refresh_token=creds.refresh_token or self._credential.refresh_token,
        )

        if self.token_json:
            return
        try:
            self._write_atomic(self.token_path, self._credential.to_token_info())
            self.logger.info(f"Token renovado guardado en {self.token_path}")
        except LocalIOError as e:
            self.logger.error(f"El token se renovó en memoria pero no se pudo guardar: {e}")

    def _load_credential(self) -> Credential:
        """
        Lee el token persistido y lo combina con el client secret

        Acepta el formato authorized-user de google-auth y el formato de
        googleapis para Node (access_token, expiry_date en milisegundos).

        Returns:
            Credential cargada

        Raises:
            CredentialError: Si no hay token o no se puede interpretar
        """
        if self.token_json:
            source = "GOOGLE_OAUTH_TOKEN_JSON"
            raw_text = self.token_json
        else:
            source = str(self.token_path)
            if not self.token_path.exists():
                raise CredentialError(
                    f"No existe token OAuth en {self.token_path}. Ejecuta: python main.py bootstrap"
                )
            try:
                raw_text = self.token_path.read_text(encoding="utf-8")
            except OSError as e:
                raise CredentialError(f"No se pudo leer el token {source}: {e}") from e

        try:
            raw = json.loads(raw_text)
        except json.JSONDecodeError as e:
            raise CredentialError(f"Token corrupto en {source}: {e}") from e
        if not isinstance(raw, dict):
            raise CredentialError(f"Token corrupto en {source}: se esperaba un objeto JSON")

        section = self._client_section(self._load_client_config() or {})
        try:
            credential = Credential(
                client_id=raw.get("client_id") or section.get("client_id", ""),
                client_secret=raw.get("client_secret") or section.get("client_secret", ""),
                refresh_token=raw.get("refresh_token", ""),
                redirect_target=(raw.get("redirect_uri")
                                 or (section.get("redirect_uris") or ["http://localhost"])[0]),
                access_token=raw.get("token") or raw.get("access_token"),
                expiry=self._parse_expiry(raw),
            )
        except ValueError as e:
            raise CredentialError(f"Token inválido en {source}: {e}") from e

        self.logger.info(f"Token OAuth cargado desde {source}")
        return credential

    def _load_client_config(self) -> Optional[Dict]:
        """Lee el client secret desde el entorno o desde archivo"""
        try:
            if self.credentials_json:
                return json.loads(self.credentials_json)
            if self.credentials_path.exists():
                with open(self.credentials_path, "r", encoding="utf-8") as f:
                    return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialError(f"Client secret ilegible: {e}") from e
        return None

    @staticmethod
    def _client_section(client_config: Dict) -> Dict:
        return client_config.get("installed") or client_config.get("web") or {}

    @staticmethod
    def _parse_expiry(raw: Dict) -> Optional[datetime]:
        """Expiración como datetime UTC sin zona horaria"""
        try:
            if raw.get("expiry"):
                moment = datetime.fromisoformat(str(raw["expiry"]).replace("Z", "+00:00"))
                if moment.tzinfo is not None:
                    moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
                return moment
            if raw.get("expiry_date"):
                moment = datetime.fromtimestamp(int(raw["expiry_date"]) / 1000, tz=timezone.utc)
                return moment.replace(tzinfo=None)
        except (TypeError, ValueError) as e:
            raise CredentialError(f"Fecha de expiración inválida en el token: {e}") from e
        return None

    def _to_google(self, credential: Credential) -> Credentials:
        return Credentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=TOKEN_URI,
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            scopes=self.scopes,
            expiry=credential.expiry,
        )

    def _session_credentials(self) -> StoreBoundCredentials:
        """Copia de la credencial compartida para un ciclo. Requiere el lock."""
        shared = self._google_credentials
        return StoreBoundCredentials(
            self,
            token=shared.token,
            refresh_token=shared.refresh_token,
            token_uri=TOKEN_URI,
            client_id=shared.client_id,
            client_secret=shared.client_secret,
            scopes=self.scopes,
            expiry=shared.expiry,
        )

    @staticmethod
    def _write_atomic(path: Path, data: Dict):
        """
        Escribe JSON en un archivo temporal y lo renombra sobre el destino

        Args:
            path: Archivo destino
            data: Contenido a serializar

        Raises:
            LocalIOError: Si la escritura falla; el destino queda intacto
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as e:
            raise LocalIOError(f"No se pudo preparar {path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise LocalIOError(f"No se pudo escribir {path}: {e}") from e
