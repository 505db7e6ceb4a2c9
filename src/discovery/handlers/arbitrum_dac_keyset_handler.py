from __future__ import annotations

import base64
import logging
from typing import Any, Dict

from eth_abi.exceptions import DecodingError

from discovery.core.abi import parse_event
from discovery.core.errors import DecodeFormatError
from discovery.handlers.base import Handler

logger = logging.getLogger(__name__)

SET_VALID_KEYSET = parse_event("event SetValidKeyset(bytes32 indexed keysetHash, bytes keysetBytes)")


class ArbitrumDACKeysetHandler(Handler):
    """
    Threshold and BLS signer keys of an Arbitrum AnyTrust DAC, taken from the
    most recent ``SetValidKeyset`` event of the sequencer inbox.
    """

    type = "arbitrumDACKeyset"

    def resolve(self, provider, address, resolved) -> Dict[str, Any]:
        logger.debug("%s: resolving Arbitrum DAC keyset of %s", self.field, address)
        logs = provider.get_logs(address, [SET_VALID_KEYSET.topic])
        if not logs:
            # not configured yet
            return {"requiredSignatures": 0, "membersCount": 0, "blsSignatures": []}

        try:
            payload = SET_VALID_KEYSET.decode_log(logs[-1])["keysetBytes"]
        except (DecodingError, ValueError) as e:
            raise DecodeFormatError(f"SetValidKeyset: {e}") from e
        return decode_keyset(payload)


def decode_keyset(payload: bytes) -> Dict[str, Any]:
    """
    Decode the (non-public) keyset layout::

        u64 assumedHonest | u64 membersCount | membersCount x (u16 len | key)

    The keys must consume the payload exactly.
    """
    if len(payload) < 16:
        raise DecodeFormatError(f"keyset too short: {len(payload)} bytes")

    assumed_honest = int.from_bytes(payload[0:8], "big")
    members_count = int.from_bytes(payload[8:16], "big")

    signatures = []
    head = 16
    for i in range(members_count):
        if head + 2 > len(payload):
            raise DecodeFormatError(f"keyset truncated at member {i} length")
        size = int.from_bytes(payload[head:head + 2], "big")
        head += 2
        if head + size > len(payload):
            raise DecodeFormatError(f"keyset member {i} overruns payload ({size} bytes at offset {head})")
        signatures.append(base64.b64encode(payload[head:head + size]).decode("ascii"))
        head += size

    if head != len(payload):
        raise DecodeFormatError(f"keyset has {len(payload) - head} trailing byte(s)")

    return {
        "requiredSignatures": members_count - assumed_honest + 1,
        "membersCount": members_count,
        "blsSignatures": signatures,
    }
