"""Deterministic signature-based nullifiers (PLUME-style, over P-256).

A nullifier is created inside the depositor's wallet from a private key and a
message (the mixer's replay tag). It exposes:

    - key():          a field element deterministically derived from
                      (private key, message), used as the nullifier-map key
                      and inside the deposit commitment;
    - verify(msg):    a Chaum-Pedersen style proof that the nullifier point
                      was produced by the holder of public_key for msg, so a
                      nullifier made for one deployment fails on another;
    - assert_unused / set_used: checks and updates against the nullifier map.

Construction, with G the P-256 generator and sk the private key:

    pk = sk * G
    H  = hash_to_curve(msg, pk)
    N  = sk * H                                   (the nullifier point)
    r  random;  c = Hash(G, pk, H, N, r*G, r*H);  s = r + sk * c  (mod n)

Verification recomputes r*G = s*G - c*pk and r*H = s*H - c*N and checks c.
The private key never appears in the nullifier.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple
import secrets

from Crypto.Hash import SHA256
from Crypto.PublicKey.ECC import EccPoint

from zkmix.core.merkle_map import MerkleMapWitness
from zkmix.utils.field import UNUSED, USED, field_to_bytes
from zkmix.utils.hash import hash_to_field
from zkmix.exceptions import (
    InvalidFieldElementError,
    InvalidNullifierProofError,
    InvalidWitnessError,
    NullifierAlreadyUsedError,
)

# NIST P-256 parameters
CURVE = "p256"
P = 0xffffffff00000001000000000000000000000000ffffffffffffffffffffffff
B = 0x5ac635d8aa3a93e7b3ebbd55769886bc651d06b0cc53b0f63bce3c3e27d2604b
N = 0xffffffff00000000ffffffffffffffffbce6faada7179e84f3b9cac2fc632551
GX = 0x6b17d1f2e12c4247f8bce6e563a440f277037d812deb33a0f4a13945d898c296
GY = 0x4fe342e2fe1a7f9b8ee7eb4a7c0f9e162bce33576b315ececbb6406837bf51f5

G = EccPoint(GX, GY, curve=CURVE)

HASH_TO_CURVE_TAG = b"zkmix-nullifier-h2c"
CHALLENGE_TAG = b"zkmix-nullifier-challenge"
KEY_TAG = b"zkmix-nullifier-key"

Point = Tuple[int, int]


def generate_private_key() -> int:
    """Fresh nullifier private key in [1, n)."""
    return secrets.randbelow(N - 1) + 1


def _coords(point: EccPoint) -> Point:
    return int(point.x), int(point.y)


def _encode(point: EccPoint) -> bytes:
    x, y = _coords(point)
    return x.to_bytes(32, "big") + y.to_bytes(32, "big")


def _compress(point: EccPoint) -> bytes:
    x, y = _coords(point)
    return bytes([2 + (y & 1)]) + x.to_bytes(32, "big")


def _to_point(coords: Point) -> EccPoint:
    try:
        point = EccPoint(coords[0], coords[1], curve=CURVE)
    except (ValueError, TypeError, IndexError) as e:
        raise InvalidNullifierProofError(f"Point is not on P-256: {e}")
    if point.is_point_at_infinity():
        raise InvalidNullifierProofError("Point at infinity")
    return point


def _negate_scalar(k: int) -> int:
    return (N - k) % N


def hash_to_curve(message: Sequence[int], public_key: EccPoint) -> EccPoint:
    """
    Map (message, public key) to a curve point with unknown discrete log.

    Try-and-increment: hash with a counter until the digest is a valid
    x-coordinate. P = 3 (mod 4), so the square root is a single power.
    """
    try:
        prefix = HASH_TO_CURVE_TAG + b"".join(field_to_bytes(m) for m in message)
    except InvalidFieldElementError as e:
        raise InvalidNullifierProofError(f"Malformed message: {e}")
    prefix += _encode(public_key)

    for counter in range(256):
        digest = SHA256.new(prefix + bytes([counter])).digest()
        x = int.from_bytes(digest, "big") % P
        rhs = (pow(x, 3, P) - 3 * x + B) % P
        y = pow(rhs, (P + 1) // 4, P)
        if (y * y) % P == rhs and rhs != 0:
            # canonical even y
            if y & 1:
                y = P - y
            return EccPoint(x, y, curve=CURVE)

    raise InvalidNullifierProofError("hash_to_curve did not converge")


def _challenge(public_key: EccPoint, h: EccPoint, nullifier: EccPoint,
               g_r: EccPoint, h_r: EccPoint) -> int:
    data = CHALLENGE_TAG + b"".join(
        _encode(p) for p in (G, public_key, h, nullifier, g_r, h_r)
    )
    return int.from_bytes(SHA256.new(data).digest(), "big") % N


@dataclass(frozen=True)
class Nullifier:
    """Public part of a nullifier, safe to hand to the mixer."""

    public_key: Point
    point: Point
    c: int
    s: int

    @classmethod
    def create(cls, message: Sequence[int], private_key: int) -> "Nullifier":
        """
        Create a nullifier for message (normally [replay_tag]).

        Runs wherever the private key lives; only the result leaves.
        """
        if isinstance(private_key, bool) or not isinstance(private_key, int) \
                or not 0 < private_key < N:
            raise ValueError("Private key must be an int in [1, n)")

        pk = G * private_key
        h = hash_to_curve(message, pk)
        nullifier = h * private_key

        r = generate_private_key()
        c = _challenge(pk, h, nullifier, G * r, h * r)
        s = (r + private_key * c) % N

        return cls(public_key=_coords(pk), point=_coords(nullifier), c=c, s=s)

    def key(self) -> int:
        """Field element identifying this nullifier in the nullifier map."""
        return hash_to_field(KEY_TAG + _compress(_to_point(self.point)))

    def verify(self, message: Sequence[int]) -> None:
        """
        Check that the nullifier was produced for message by public_key.

        Raises:
            InvalidNullifierProofError: If the binding check fails
        """
        if any(isinstance(v, bool) or not isinstance(v, int) for v in (self.c, self.s)):
            raise InvalidNullifierProofError("Proof scalars must be ints")
        if not (0 <= self.c < N and 0 < self.s < N):
            raise InvalidNullifierProofError("Proof scalars out of range")

        pk = _to_point(self.public_key)
        nullifier = _to_point(self.point)
        h = hash_to_curve(message, pk)

        g_r = G * self.s + pk * _negate_scalar(self.c)
        h_r = h * self.s + nullifier * _negate_scalar(self.c)
        if g_r.is_point_at_infinity() or h_r.is_point_at_infinity():
            raise InvalidNullifierProofError("Degenerate nullifier proof")

        if _challenge(pk, h, nullifier, g_r, h_r) != self.c:
            raise InvalidNullifierProofError("Nullifier does not bind to the given message")

    def is_valid_for(self, message: Sequence[int]) -> bool:
        try:
            self.verify(message)
            return True
        except InvalidNullifierProofError:
            return False

    def _check_witness_key(self, witness: MerkleMapWitness, value: int) -> int:
        root, key = witness.compute_root_and_key(value)
        if key != self.key():
            raise InvalidWitnessError("Nullifier witness is for a different key")
        return root

    def assert_unused(self, witness: MerkleMapWitness, nullifier_root: int) -> None:
        """
        Check that the map under nullifier_root marks this nullifier unused.

        Raises:
            NullifierAlreadyUsedError: If the witness proves the key is used
            InvalidWitnessError: If the witness matches neither state (stale)
        """
        if self._check_witness_key(witness, UNUSED) == nullifier_root:
            return
        if witness.compute_root(USED) == nullifier_root:
            raise NullifierAlreadyUsedError("Nullifier has already been used")
        raise InvalidWitnessError("Nullifier witness does not match the nullifier root")

    def set_used(self, witness: MerkleMapWitness) -> int:
        """Root of the nullifier map after marking this nullifier used."""
        return self._check_witness_key(witness, USED)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "public_key": ["0x%064x" % v for v in self.public_key],
            "nullifier": ["0x%064x" % v for v in self.point],
            "c": "0x%064x" % self.c,
            "s": "0x%064x" % self.s,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Nullifier":
        return cls(
            public_key=tuple(int(v, 16) for v in data["public_key"]),
            point=tuple(int(v, 16) for v in data["nullifier"]),
            c=int(data["c"], 16),
            s=int(data["s"], 16),
        )
