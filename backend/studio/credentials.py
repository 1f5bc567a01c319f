import logging
import os
from typing import Optional, Protocol

from dotenv import load_dotenv

from .errors import CredentialUnavailable

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    """
    Supplies the API key used for backend calls.

    ``request_credential`` is the reacquisition hook: it resolves once a
    (possibly new) credential is available and raises CredentialUnavailable
    otherwise. Concurrent operations may call it independently.
    """

    async def has_credential(self) -> bool: ...

    async def request_credential(self) -> None: ...

    def api_key(self) -> Optional[str]: ...


class EnvCredentialProvider:
    """Reads GEMINI_API_KEY (or GOOGLE_API_KEY) from the environment."""

    def __init__(self, dotenv_path: Optional[str] = None):
        self.dotenv_path = dotenv_path

    def api_key(self) -> Optional[str]:
        return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")

    async def has_credential(self) -> bool:
        return bool(self.api_key())

    async def request_credential(self) -> None:
        # Pick up a key rotated into the .env file since startup.
        load_dotenv(self.dotenv_path, override=True)
        if not self.api_key():
            raise CredentialUnavailable("GEMINI_API_KEY or GOOGLE_API_KEY environment variable is required")
        logger.info("Credential reloaded from environment")
