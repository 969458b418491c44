"""
Repositorios de configuración y credenciales
"""
from .config_repository import ConfigRepository
from .credential_store import AuthorizedClient, CredentialStore

__all__ = [
    'AuthorizedClient',
    'ConfigRepository',
    'CredentialStore'
]
