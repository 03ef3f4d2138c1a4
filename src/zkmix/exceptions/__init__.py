"""Custom exceptions for the ZK-Mixer system."""


class ZKMixerException(Exception):
    """Base exception for all ZK-Mixer errors."""
    pass


# Cryptography Errors
class CryptoError(ZKMixerException):
    """Base exception for cryptographic errors."""
    pass


class InvalidFieldElementError(CryptoError):
    """Raised when a value is not an element of the proof system's field."""
    pass


class InvalidCommitmentError(CryptoError):
    """Raised when a commitment is invalid."""
    pass


class InvalidNullifierProofError(CryptoError):
    """Raised when a nullifier does not bind to the expected message."""
    pass


# Merkle Tree Errors
class MerkleTreeError(ZKMixerException):
    """Base exception for Merkle tree errors."""
    pass


class TreeHeightExceededError(MerkleTreeError):
    """Raised when tree height limit is exceeded."""
    pass


class InvalidLeafIndexError(MerkleTreeError):
    """Raised when leaf index is invalid."""
    pass


class InvalidWitnessError(MerkleTreeError):
    """Raised when a Merkle witness does not lead to the expected root."""
    pass


class LeafOccupiedError(InvalidWitnessError):
    """Raised when a deposit targets a leaf that is not empty (or the witness is stale)."""
    pass


class CommitmentNotFoundError(InvalidWitnessError):
    """Raised when a commitment is not a member of the deposit tree under the given path."""
    pass


# Mixer Errors
class MixerError(ZKMixerException):
    """Base exception for mixer operation errors."""
    pass


class UninitializedError(MixerError):
    """Raised when a transition is invoked before the mixer account is initialized."""
    pass


class InvalidMixerStateError(MixerError):
    """Raised when mixer state is inconsistent."""
    pass


class NullifierAlreadyUsedError(MixerError):
    """Raised when attempting to spend the same deposit twice."""
    pass


# Ledger Errors
class LedgerError(ZKMixerException):
    """Base exception for value transfer errors."""
    pass


class InsufficientFundsError(LedgerError):
    """Raised when the sending account cannot cover the transfer."""
    pass


class TransferRejectedError(LedgerError):
    """Raised when the ledger refuses a transfer."""
    pass


# Indexer Errors
class IndexerError(ZKMixerException):
    """Raised when the event feed is inconsistent with the roots it announces."""
    pass


# Storage Errors
class StorageError(ZKMixerException):
    """Base exception for storage errors."""
    pass


class DeserializationError(StorageError):
    """Raised when deserialization fails."""
    pass
