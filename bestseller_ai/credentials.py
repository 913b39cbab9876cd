"""
API Key Store
=============
Looks up provider API keys when a generation request does not carry one.
Backends are consulted in order:
1. System keyring (OS credential store)
2. Encrypted file with a machine-derived key
3. Environment variables (fallback)

Keys are never written in plain text and never logged.
"""

import base64
import getpass
import hashlib
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import keyring
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.errors import KeyringError

from .registry import PROVIDER_PREFERENCE_ORDER, PROVIDERS
from .validation import KeyValidator

logger = logging.getLogger(__name__)

SERVICE_NAME = "bestseller_ai"
CONFIG_DIR = Path.home() / ".bestseller_ai"
ENCRYPTED_CREDS_FILE = CONFIG_DIR / "credentials.enc"


@dataclass(frozen=True)
class APICredential:
    """Immutable credential container that never prints its key"""

    provider: str
    _key: str

    def get_key(self) -> str:
        logger.debug(f"API key accessed for provider: {self.provider}")
        return self._key

    def __repr__(self) -> str:
        return f"APICredential(provider={self.provider}, key=****)"

    def __str__(self) -> str:
        return self.__repr__()


class CredentialBackend(ABC):
    """Abstract base class for credential storage backends"""

    @abstractmethod
    def get(self, provider: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, provider: str, api_key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, provider: str) -> bool:
        pass

    @abstractmethod
    def list_providers(self) -> list[str]:
        pass

    @property
    @abstractmethod
    def is_available(self) -> bool:
        pass


class KeyringBackend(CredentialBackend):
    """OS keychain storage"""

    @property
    def is_available(self) -> bool:
        try:
            keyring.get_password(SERVICE_NAME, "__probe__")
            return True
        except KeyringError:
            return False

    def get(self, provider: str) -> Optional[str]:
        try:
            return keyring.get_password(SERVICE_NAME, provider)
        except KeyringError as e:
            logger.warning(f"Keyring get failed for {provider}: {e}")
            return None

    def set(self, provider: str, api_key: str) -> bool:
        try:
            keyring.set_password(SERVICE_NAME, provider, api_key)
        except KeyringError as e:
            logger.error(f"Keyring set failed for {provider}: {e}")
            return False
        logger.info(f"Stored credential in keyring for: {provider}")
        return True

    def delete(self, provider: str) -> bool:
        try:
            keyring.delete_password(SERVICE_NAME, provider)
        except KeyringError as e:
            logger.debug(f"Keyring delete skipped for {provider}: {e}")
            return False
        return True

    def list_providers(self) -> list[str]:
        # Keyring has no enumeration API; probe the providers we know about
        return [p.value for p in PROVIDER_PREFERENCE_ORDER if self.get(p.value)]


class EncryptedFileBackend(CredentialBackend):
    """Fernet-encrypted JSON file keyed from machine identifiers"""

    def __init__(self, path: Path = ENCRYPTED_CREDS_FILE):
        self.path = path
        self._fernet: Optional[Fernet] = self._init_encryption()

    @property
    def is_available(self) -> bool:
        return self._fernet is not None

    @staticmethod
    def _get_machine_id() -> bytes:
        identifiers = []

        if sys.platform == "linux":
            try:
                identifiers.append(Path("/etc/machine-id").read_text().strip())
            except OSError:
                pass

        identifiers.extend([
            getpass.getuser(),
            os.uname().nodename if hasattr(os, "uname") else "unknown",
        ])
        return hashlib.sha256(":".join(identifiers).encode()).digest()

    def _init_encryption(self) -> Optional[Fernet]:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"bestseller_ai_v1",
            iterations=480000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self._get_machine_id()))
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create credentials directory: {e}")
            return None
        return Fernet(key)

    def _load(self) -> dict[str, str]:
        if not self.is_available or not self.path.exists():
            return {}
        try:
            decrypted = self._fernet.decrypt(self.path.read_bytes())
            return json.loads(decrypted.decode())
        except (OSError, InvalidToken, ValueError) as e:
            logger.error(f"Failed to load credentials: {e}")
            return {}

    def _save(self, creds: dict[str, str]) -> bool:
        if not self.is_available:
            return False
        try:
            encrypted = self._fernet.encrypt(json.dumps(creds).encode())
            temp_file = self.path.with_suffix(".tmp")
            temp_file.write_bytes(encrypted)
            os.chmod(temp_file, 0o600)
            temp_file.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to save credentials: {e}")
            return False
        return True

    def get(self, provider: str) -> Optional[str]:
        return self._load().get(provider)

    def set(self, provider: str, api_key: str) -> bool:
        creds = self._load()
        creds[provider] = api_key
        success = self._save(creds)
        if success:
            logger.info(f"Stored credential in encrypted file for: {provider}")
        return success

    def delete(self, provider: str) -> bool:
        creds = self._load()
        if provider in creds:
            del creds[provider]
            return self._save(creds)
        return True

    def list_providers(self) -> list[str]:
        return list(self._load().keys())


class EnvironmentBackend(CredentialBackend):
    """Environment variables (always available, not persistent)"""

    ENV_VAR_MAP = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "google": "GOOGLE_API_KEY",
        "xai": "XAI_API_KEY",
        "deepseek": "HUGGINGFACE_API_KEY",
    }

    @property
    def is_available(self) -> bool:
        return True

    def _get_env_var(self, provider: str) -> str:
        return self.ENV_VAR_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")

    def get(self, provider: str) -> Optional[str]:
        return os.environ.get(self._get_env_var(provider))

    def set(self, provider: str, api_key: str) -> bool:
        os.environ[self._get_env_var(provider)] = api_key
        logger.warning(f"Set API key in environment (non-persistent) for: {provider}")
        return True

    def delete(self, provider: str) -> bool:
        os.environ.pop(self._get_env_var(provider), None)
        return True

    def list_providers(self) -> list[str]:
        return [p for p, v in self.ENV_VAR_MAP.items() if os.environ.get(v)]


class CredentialManager:
    """
    Credential lookup with a fallback chain:
    keyring -> encrypted file -> environment variables.
    """

    def __init__(self, backends: Optional[list[CredentialBackend]] = None):
        if backends is None:
            backends = [KeyringBackend(), EncryptedFileBackend(), EnvironmentBackend()]
        self._backends = backends
        self._cache: dict[str, APICredential] = {}

        available = [type(b).__name__ for b in self._backends if b.is_available]
        logger.info(f"Available credential backends: {available}")

    def get_credential(self, provider: str) -> Optional[APICredential]:
        provider = str(provider).lower()
        if provider in self._cache:
            return self._cache[provider]

        for backend in self._backends:
            if not backend.is_available:
                continue
            api_key = backend.get(provider)
            if api_key:
                credential = APICredential(provider=provider, _key=api_key)
                self._cache[provider] = credential
                logger.debug(
                    f"Retrieved credential for {provider} from {type(backend).__name__}"
                )
                return credential

        logger.debug(f"No credential found for provider: {provider}")
        return None

    def set_credential(self, provider: str, api_key: str) -> bool:
        """Store a key in the most secure available backend after a format check"""
        provider = str(provider).lower()
        error = KeyValidator.explain(provider, api_key)
        if error:
            logger.error(f"Refusing to store credential for {provider}: {error}")
            return False

        api_key = api_key.strip()
        self._cache.pop(provider, None)
        for backend in self._backends:
            if backend.is_available and not isinstance(backend, EnvironmentBackend):
                if backend.set(provider, api_key):
                    return True

        for backend in self._backends:
            if isinstance(backend, EnvironmentBackend):
                return backend.set(provider, api_key)
        return False

    def delete_credential(self, provider: str) -> bool:
        provider = str(provider).lower()
        self._cache.pop(provider, None)

        success = True
        for backend in self._backends:
            if backend.is_available:
                success = backend.delete(provider) and success
        return success

    def list_configured_providers(self) -> list[str]:
        providers: set[str] = set()
        for backend in self._backends:
            if backend.is_available:
                providers.update(backend.list_providers())
        return sorted(providers)

    def get_api_key(self, provider: str) -> Optional[str]:
        cred = self.get_credential(provider)
        return cred.get_key() if cred else None

    def clear_cache(self) -> None:
        self._cache.clear()


_manager: Optional[CredentialManager] = None


def get_credential_manager() -> CredentialManager:
    """Shared manager for the CLI; services receive theirs explicitly"""
    global _manager
    if _manager is None:
        _manager = CredentialManager()
    return _manager


def get_api_key(provider: str) -> Optional[str]:
    return get_credential_manager().get_api_key(provider)


def set_api_key(provider: str, api_key: str) -> bool:
    return get_credential_manager().set_credential(provider, api_key)


def configure_credentials_interactive(manager: Optional[CredentialManager] = None) -> None:
    """Interactive CLI for storing provider keys"""
    manager = manager or get_credential_manager()

    print("\nBestseller AI credential configuration\n")
    print("=" * 50)

    for provider in PROVIDER_PREFERENCE_ORDER:
        descriptor = PROVIDERS[provider]
        existing = manager.get_credential(provider.value)
        status = "configured" if existing else "not set"
        print(f"\n{descriptor.display_name}: [{status}]")

        response = input(f"Configure {provider.value}? (y/N/clear): ").strip().lower()
        if response == "clear":
            manager.delete_credential(provider.value)
            print(f"  -> Cleared {provider.value} credentials")
        elif response == "y":
            api_key = getpass.getpass(f"  Enter {descriptor.key_label} for {provider.value}: ")
            if not api_key:
                continue
            error = KeyValidator.explain(provider, api_key)
            if error:
                print(f"  -> {error}")
            elif manager.set_credential(provider.value, api_key):
                print(f"  -> Saved {provider.value} credentials securely")
            else:
                print(f"  -> Failed to save {provider.value} credentials")

    print("\n" + "=" * 50)
    print(f"Configured providers: {manager.list_configured_providers()}")
