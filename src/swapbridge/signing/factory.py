"""Signer factory.

Creates the sequencer's signing backend from configuration.
"""

import logging
from typing import Optional

from swapbridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)

_signer_instance: Optional[SignerBackend] = None


def get_signer() -> SignerBackend:
    """Get the configured signer instance.

    Returns singleton instance bound to the configured preconfirmation domain.
    """
    global _signer_instance

    if _signer_instance is not None:
        return _signer_instance

    from swapbridge.config import get_settings
    from swapbridge.signing.local import LocalSigner

    settings = get_settings()
    logger.info("Initializing local signer")
    _signer_instance = LocalSigner(
        settings.sequencer_private_key,
        settings.get_signing_domain(),
    )
    return _signer_instance


def reset_signer():
    """Reset the signer instance (for testing)."""
    global _signer_instance
    _signer_instance = None


async def get_signer_info() -> dict:
    """Get information about the current signer configuration."""
    signer = get_signer()
    health = await signer.health_check()

    return {
        "type": signer.signer_type.value,
        "healthy": health,
        "class": signer.__class__.__name__,
        "domain": signer.domain.as_dict(),
    }
