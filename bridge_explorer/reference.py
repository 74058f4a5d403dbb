"""
Reference Classifier - Decide which chain a user-supplied reference belongs to.

The check is purely syntactic:
- EVM: "0x" followed by exactly 64 hex digits
- Solana: 43 to 88 characters of the base58 alphabet

Anything else is UNKNOWN. The raw value is kept exactly as given so it can
be echoed back in results and errors.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from chain_adapters.models import Chain


EVM_TX_HASH_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")
# base58 excludes 0, O, I and l
BASE58_PATTERN = re.compile(r"[1-9A-HJ-NP-Za-km-z]+")

SOLANA_SIGNATURE_MIN_LENGTH = 43
SOLANA_SIGNATURE_MAX_LENGTH = 88


class ChainHint(Enum):
    """Chain a reference syntactically belongs to."""
    EVM = "evm"
    SOLANA = "solana"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Reference:
    """A transaction reference plus its classified chain."""
    raw_value: str
    chain_hint: ChainHint

    @property
    def is_known(self) -> bool:
        return self.chain_hint != ChainHint.UNKNOWN

    @property
    def chain(self) -> Optional[Chain]:
        if self.chain_hint == ChainHint.EVM:
            return Chain.EVM
        if self.chain_hint == ChainHint.SOLANA:
            return Chain.SOLANA
        return None


def classify_reference(value: str) -> Reference:
    """
    Classify a transaction reference by shape alone.

    Surrounding whitespace is ignored for classification; everything else
    must match exactly, so a hash with a trailing character is UNKNOWN.
    """
    candidate = (value or "").strip()

    if EVM_TX_HASH_PATTERN.fullmatch(candidate):
        return Reference(raw_value=value, chain_hint=ChainHint.EVM)

    if (
        SOLANA_SIGNATURE_MIN_LENGTH <= len(candidate) <= SOLANA_SIGNATURE_MAX_LENGTH
        and BASE58_PATTERN.fullmatch(candidate)
    ):
        return Reference(raw_value=value, chain_hint=ChainHint.SOLANA)

    return Reference(raw_value=value, chain_hint=ChainHint.UNKNOWN)
