"""EIP-1271 validation of an order against the owning strategy contract."""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from harvester.blockchain.contracts import ProtocolGateway
from harvester.core.exceptions import ContractRevertError

from .order import OrderDomain, SwapOrder, encode_order, order_digest

MAGIC_VALUE = bytes.fromhex("1626ba7e")

STALE_FEED_REASONS = (
    "Price feed update time exceeds heartbeat",
    "Price feed update time exceeds maximum valid time",
)


def is_stale_feed_revert(error: ContractRevertError) -> bool:
    """True when a revert was caused by a stale oracle rather than by the call itself."""
    text = f"{error.reason} {error.message}"
    return any(reason in text for reason in STALE_FEED_REASONS)


@dataclass(frozen=True)
class SignatureCheck:
    """Outcome of isValidSignature for one order."""
    digest: bytes
    encoded_order: bytes
    valid: bool
    provisional: bool = False
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.valid or self.provisional


class SignatureValidator:
    """Asks the strategy whether it accepts an order digest.

    Returns valid only for the EIP-1271 magic value. A revert caused by a
    stale price feed is accepted provisionally; settlement re-checks the
    economic bounds on-chain. Any other revert rejects the order. Transport
    failures propagate as NetworkError.
    """

    def __init__(self, gateway: ProtocolGateway, domain: OrderDomain):
        self.gateway = gateway
        self.domain = domain

    def validate(self, strategy: str, order: SwapOrder) -> SignatureCheck:
        digest = order_digest(order, self.domain)
        encoded = encode_order(order)
        logger.debug("🔑 Order digest {} for {}", digest.hex(), strategy)

        try:
            result = self.gateway.is_valid_signature(strategy, digest, encoded)
        except ContractRevertError as e:
            if is_stale_feed_revert(e):
                logger.warning("⚠️ Price feed is stale, accepting order provisionally: {}", e.reason)
                return SignatureCheck(digest, encoded, valid=False, provisional=True, reason=e.reason)
            logger.error("❌ isValidSignature reverted: {}", e.reason)
            return SignatureCheck(digest, encoded, valid=False, reason=e.reason)

        if result[:4] == MAGIC_VALUE:
            logger.info("✅ Signature is valid")
            return SignatureCheck(digest, encoded, valid=True)

        logger.error("❌ Signature is invalid, got 0x{}", result.hex())
        return SignatureCheck(digest, encoded, valid=False, reason=f"unexpected return 0x{result.hex()}")
