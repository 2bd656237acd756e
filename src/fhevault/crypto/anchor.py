"""Chain anchoring of finalized valuations.

A valuation is anchored by a 0-ETH self-send whose data field is the
64-byte anchor payload:

    state_hash (32 bytes) || receipt digest (32 bytes)

The state hash is the commitment the ledger captured when the valuation
was requested; the receipt digest covers the revealed total. Anyone
holding the receipt can read the transaction back and check both
against it. No contract code executes on-chain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import Web3Exception

from fhevault.errors import AnchorFailed

logger = logging.getLogger(__name__)

COMMITMENT_PREFIX = "sha256:"


@dataclass(frozen=True)
class AnchorRecord:
    """Where an anchor payload landed."""
    tx_hash: str
    block_number: int
    chain_id: int


def anchor_payload(state_hash: str, receipt_digest: str) -> bytes:
    """Anchor data for a valuation: request-time commitment then receipt digest."""
    if not state_hash.startswith(COMMITMENT_PREFIX):
        raise ValueError(f"Not a sha256 commitment: {state_hash!r}")
    commitment = bytes.fromhex(state_hash[len(COMMITMENT_PREFIX):])
    digest = bytes.fromhex(receipt_digest)
    if len(commitment) != 32 or len(digest) != 32:
        raise ValueError("Commitment and receipt digest must both be 32 bytes")
    return commitment + digest


class ChainAnchor:
    """Signs and sends anchor transactions from one account.

    Usage:
        anchor = ChainAnchor(rpc_url, private_key, chain_id=11155111)
        record = anchor.publish(anchor_payload(state_hash, digest))
        anchor.payload_of(record.tx_hash)  # the same 64 bytes
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        gas: int = 40_000,
        receipt_timeout: int = 300,
    ) -> None:
        self._w3 = Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id
        self._gas = gas
        self._receipt_timeout = receipt_timeout

    @property
    def address(self) -> str:
        return self._account.address

    def publish(self, payload: bytes) -> AnchorRecord:
        """Send payload in a self-send and wait for one confirmation.

        Raises AnchorFailed if the node is unreachable, the wait times out
        or the transaction reverts.
        """
        try:
            tx: dict[str, Any] = {
                "to": self._account.address,
                "value": 0,
                "gas": self._gas,
                "gasPrice": self._w3.eth.gas_price,
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "chainId": self._chain_id,
                "data": payload,
            }
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.to_hex(self._w3.eth.send_raw_transaction(signed.raw_transaction))
            logger.info("anchor tx %s sent from %s", tx_hash, self._account.address)
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout,
            )
        except (Web3Exception, OSError) as e:
            raise AnchorFailed(f"Anchor transaction failed: {e}") from e

        if receipt.status != 1:
            raise AnchorFailed(f"Anchor tx {tx_hash} reverted with status {receipt.status}")
        logger.info("anchor tx %s confirmed in block %d", tx_hash, receipt.blockNumber)
        return AnchorRecord(
            tx_hash=tx_hash,
            block_number=receipt.blockNumber,
            chain_id=self._chain_id,
        )

    def payload_of(self, tx_hash: str) -> bytes:
        """Data field of a mined transaction."""
        try:
            tx = self._w3.eth.get_transaction(tx_hash)
        except (Web3Exception, OSError) as e:
            raise AnchorFailed(f"Could not read anchor tx {tx_hash}: {e}") from e
        return bytes(tx["input"])
