"""Instruction catalog service."""
import asyncio
from typing import Optional

import httpx
from loguru import logger
from storefront.checkout.config import load_instruction_config
from storefront.checkout.http_client import get_http_client
from storefront.checkout.models.config import InstructionsConfig
from storefront.checkout.models.instructions import InstructionConfig
from storefront.checkout.serialization import get_config_converter


class InstructionConfigSource:
    """Loads the payment instruction catalog once and shares it.

    The catalog is read-only. A failed load is not cached, so the next call
    tries again.
    """

    def __init__(
        self,
        config: InstructionsConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._client = client
        self._catalog: Optional[InstructionConfig] = None
        self._lock = asyncio.Lock()

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_http_client()

    async def get(self) -> Optional[InstructionConfig]:
        """Get the catalog, loading it on first use.

        Returns:
            The :class:`InstructionConfig`, or None if no source is configured.
        """
        if self._catalog is not None:
            return self._catalog

        async with self._lock:
            if self._catalog is None:
                self._catalog = await self._load()
            return self._catalog

    def reset(self):
        """Forget the loaded catalog."""
        self._catalog = None

    async def _load(self) -> Optional[InstructionConfig]:
        if self.config.path is not None:
            logger.debug(f"Loading instruction catalog from {self.config.path}")
            return load_instruction_config(self.config.path)
        elif self.config.url:
            logger.debug(f"Loading instruction catalog from {self.config.url}")
            res = await self.client.get(self.config.url)
            res.raise_for_status()
            return get_config_converter().loads(res.content, InstructionConfig)
        else:
            return None
