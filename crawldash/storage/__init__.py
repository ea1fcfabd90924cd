from .credential_store import STORAGE_KEYS, CredentialStore

__all__ = ["CredentialStore", "STORAGE_KEYS"]
