"""
Depositor-held note: everything needed to withdraw a deposit later.

A note c = (secret, nullifier private key, replay tag) where:
  - secret keeps the depositor custodian of the funds
  - the nullifier private key never leaves the wallet
  - the replay tag pins the note to one mixer deployment
"""

from dataclasses import dataclass, field
from typing import Optional
import json

from zkmix.core.commitment import Commitment, commit
from zkmix.crypto.nullifier import Nullifier, generate_private_key
from zkmix.utils.encoding import field_to_hex, hex_to_field
from zkmix.exceptions import DeserializationError, InvalidFieldElementError


@dataclass
class DepositNote:
    """Private record of one deposit."""

    secret: int
    nullifier_private_key: int
    replay_tag: int

    # Tree position (after deposit)
    leaf_index: Optional[int] = field(default=None)

    @staticmethod
    def generate(replay_tag: int) -> "DepositNote":
        """Generate a new note with fresh randomness for a deployment."""
        return DepositNote(
            secret=Commitment.generate_secret(),
            nullifier_private_key=generate_private_key(),
            replay_tag=replay_tag,
        )

    def nullifier(self) -> Nullifier:
        """
        Create the nullifier bound to this note's replay tag.

        Each call draws a new proof nonce, but key() is the same every time.
        """
        return Nullifier.create([self.replay_tag], self.nullifier_private_key)

    @property
    def nullifier_key(self) -> int:
        return self.nullifier().key()

    @property
    def commitment(self) -> int:
        return commit(self.secret, self.nullifier_key)

    def serialize(self) -> str:
        """Serialize note to JSON (keep it secret)."""
        return json.dumps({
            "secret": field_to_hex(self.secret),
            "nullifier_private_key": "0x%064x" % self.nullifier_private_key,
            "replay_tag": field_to_hex(self.replay_tag),
            "leaf_index": self.leaf_index,
        })

    @classmethod
    def deserialize(cls, json_str: str) -> "DepositNote":
        try:
            data = json.loads(json_str)
            return cls(
                secret=hex_to_field(data["secret"]),
                nullifier_private_key=int(data["nullifier_private_key"], 16),
                replay_tag=hex_to_field(data["replay_tag"]),
                leaf_index=data.get("leaf_index"),
            )
        except (ValueError, KeyError, TypeError, InvalidFieldElementError) as e:
            raise DeserializationError(f"Invalid deposit note: {e}")
