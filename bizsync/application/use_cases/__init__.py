"""Re-exports de casos de uso expuestos a la capa de rutas."""

from bizsync.application.use_cases.sync_api import SyncApi, error_payload

__all__ = [
    "SyncApi",
    "error_payload",
]
