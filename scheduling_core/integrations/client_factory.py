from __future__ import annotations

import logging
from functools import lru_cache

from scheduling_core.config import settings
from scheduling_core.integrations.clients import (
    BaseProfileClient,
    BaseWalletClient,
    EmbeddedProfileClient,
    EmbeddedWalletClient,
    RemoteProfileClient,
    RemoteWalletClient,
)


logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_wallet_client() -> BaseWalletClient:
    mode = (settings.wallet_mode or "embedded").strip().lower()
    logger.info(
        "wallet_mode_selected",
        extra={"mode": mode, "service_url": settings.wallet_service_url},
    )
    if mode == "embedded":
        return EmbeddedWalletClient()
    return RemoteWalletClient(settings.wallet_service_url, timeout=settings.collaborator_timeout_seconds)


@lru_cache(maxsize=1)
def get_profile_client() -> BaseProfileClient:
    mode = (settings.profile_mode or "embedded").strip().lower()
    logger.info(
        "profile_mode_selected",
        extra={"mode": mode, "service_url": settings.profile_service_url},
    )
    if mode == "embedded":
        return EmbeddedProfileClient()
    return RemoteProfileClient(settings.profile_service_url, timeout=settings.collaborator_timeout_seconds)
