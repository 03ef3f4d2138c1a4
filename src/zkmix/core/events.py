"""Append-only audit surface of mixer state transitions.

The deposit tree is never stored by the mixer, only its root. Replaying the
event stream in emission order lets anyone rebuild the tree without trusting
any party (see zkmix.core.indexer).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple
import threading

from zkmix.models.schemas import EventFeedModel, MixerEventModel
from zkmix.utils.encoding import field_to_hex, hex_to_field
from zkmix.exceptions import DeserializationError, InvalidMixerStateError


class EventKind(str, Enum):
    """Kinds of audit events."""
    COMMITMENT_ADDED = "commitment-added"
    DEPOSIT_INDEX = "deposit-index"
    NEW_DEPOSIT_ROOT = "new-deposit-root"
    NULLIFIER_SPENT = "nullifier-spent"
    NEW_NULLIFIER_ROOT = "new-nullifier-root"


@dataclass(frozen=True)
class MixerEvent:
    """One audit record: (kind, payload) plus its position in the stream."""

    sequence: int
    transaction_id: str
    kind: EventKind
    payload: int

    def to_model(self) -> MixerEventModel:
        return MixerEventModel(
            sequence=self.sequence,
            transaction_id=self.transaction_id,
            kind=self.kind.value,
            payload=field_to_hex(self.payload),
        )

    @classmethod
    def from_model(cls, model: MixerEventModel) -> "MixerEvent":
        return cls(
            sequence=model.sequence,
            transaction_id=model.transaction_id,
            kind=EventKind(model.kind),
            payload=hex_to_field(model.payload),
        )


class EventLog:
    """Ordered, append-only, replayable event sequence."""

    def __init__(self, events: Optional[Iterable[MixerEvent]] = None):
        self._events: List[MixerEvent] = []
        self._lock = threading.Lock()
        if events is not None:
            self.append_all(list(events))

    def prepare(self, transaction_id: str,
                entries: Sequence[Tuple[EventKind, int]]) -> List[MixerEvent]:
        """
        Build the events of one transition without publishing them.

        Sequence numbers continue from the current end of the log.
        """
        start = len(self._events)
        return [
            MixerEvent(sequence=start + offset, transaction_id=transaction_id,
                       kind=kind, payload=payload)
            for offset, (kind, payload) in enumerate(entries)
        ]

    def append_all(self, events: Sequence[MixerEvent],
                   before_publish: Optional[Callable[[], None]] = None) -> None:
        """
        Publish a batch of events atomically.

        Args:
            events: Batch from prepare()
            before_publish: Called under the log lock once the batch is known
                to continue the sequence; if it raises, nothing is published

        Raises:
            InvalidMixerStateError: If the batch does not continue the sequence
        """
        with self._lock:
            expected = len(self._events)
            for offset, event in enumerate(events):
                if event.sequence != expected + offset:
                    raise InvalidMixerStateError(
                        f"Event sequence gap: expected {expected + offset}, got {event.sequence}"
                    )
            if before_publish is not None:
                before_publish()
            self._events.extend(events)

    def events(self, since: int = 0, kind: Optional[EventKind] = None) -> List[MixerEvent]:
        """Events with sequence >= since, optionally of one kind."""
        selected = self._events[since:]
        if kind is not None:
            selected = [e for e in selected if e.kind == kind]
        return list(selected)

    def for_transaction(self, transaction_id: str) -> List[MixerEvent]:
        return [e for e in self._events if e.transaction_id == transaction_id]

    def to_json(self) -> str:
        """Export the whole feed."""
        return EventFeedModel(events=[e.to_model() for e in self._events]).model_dump_json()

    @classmethod
    def from_json(cls, json_str: str) -> "EventLog":
        try:
            feed = EventFeedModel.model_validate_json(json_str)
            return cls(MixerEvent.from_model(m) for m in feed.events)
        except InvalidMixerStateError:
            raise
        except Exception as e:
            raise DeserializationError(f"Invalid event feed: {e}")

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[MixerEvent]:
        return iter(list(self._events))

    def __repr__(self) -> str:
        return f"EventLog(events={len(self._events)})"
