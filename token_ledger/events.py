"""
Event System Module

Transfer and Approval events emitted by the ledger, the sink interface the
ledger emits into, a publish/subscribe dispatcher and a hash-chained
append-only event log for observers.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import hashlib
import json
import uuid
import logging
from threading import RLock


class TokenEvent(Enum):
    """Events observable on the ledger boundary"""
    TRANSFER = "Transfer"
    APPROVAL = "Approval"


# Field names are part of the observer contract and must not change
EVENT_FIELDS: Dict[TokenEvent, tuple] = {
    TokenEvent.TRANSFER: ("from", "to", "value"),
    TokenEvent.APPROVAL: ("owner", "spender", "value"),
}


@dataclass
class EventPayload:
    """Payload for ledger events"""
    event_type: TokenEvent
    args: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        expected = EVENT_FIELDS[self.event_type]
        if tuple(sorted(self.args)) != tuple(sorted(expected)):
            raise ValueError(
                f"{self.event_type.value} event requires fields {expected}, got {tuple(self.args)}"
            )

    @property
    def name(self) -> str:
        return self.event_type.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        # uint256 values exceed JSON number precision
        args = {k: str(v) if k == "value" else v for k, v in self.args.items()}
        return {
            'event_type': self.event_type.value,
            'args': args,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventPayload':
        """Create from dictionary"""
        args = dict(data['args'])
        args['value'] = int(args['value'])
        return cls(
            event_type=TokenEvent(data['event_type']),
            args=args,
            timestamp=datetime.fromisoformat(data['timestamp']) if isinstance(data['timestamp'], str) else data['timestamp'],
            event_id=data['event_id']
        )


def transfer_event(from_: str, to: str, value: int) -> EventPayload:
    """Create a Transfer event"""
    return EventPayload(
        event_type=TokenEvent.TRANSFER,
        args={"from": from_, "to": to, "value": value}
    )


def approval_event(owner: str, spender: str, value: int) -> EventPayload:
    """Create an Approval event"""
    return EventPayload(
        event_type=TokenEvent.APPROVAL,
        args={"owner": owner, "spender": spender, "value": value}
    )


class EventSink(ABC):
    """Append-only destination the ledger emits events into"""

    @abstractmethod
    def emit(self, event: EventPayload) -> None:
        pass


class NullSink(EventSink):
    """Sink that discards every event"""

    def emit(self, event: EventPayload) -> None:
        pass


class EventDispatcher(EventSink):
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[TokenEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("token_ledger.events")

    @staticmethod
    def _handler_name(handler: Callable) -> str:
        return getattr(handler, '__name__', repr(handler))

    def subscribe(self, event_type: TokenEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {self._handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {self._handler_name(handler)}")

    def unsubscribe(self, event_type: TokenEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
                self.logger.debug(f"Unsubscribed handler {self._handler_name(handler)} from {event_type.value}")
            except ValueError:
                self.logger.warning(f"Handler {self._handler_name(handler)} was not subscribed to {event_type.value}")

    def unsubscribe_all(self, handler: Callable) -> None:
        """Unsubscribe a global handler"""
        with self._lock:
            try:
                self._global_handlers.remove(handler)
                self.logger.debug(f"Unsubscribed global handler {self._handler_name(handler)}")
            except ValueError:
                self.logger.warning(f"Global handler {self._handler_name(handler)} was not subscribed")

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers"""
        with self._lock:
            self.logger.debug(f"Publishing {event.event_type.value} event {event.event_id}")

            for handler in self._handlers.get(event.event_type, []):
                try:
                    handler(event)
                except Exception as e:
                    # Observers never affect the ledger operation that emitted
                    self.logger.error(f"Error in event handler {self._handler_name(handler)} for {event.event_type.value}: {e}")

            for handler in self._global_handlers:
                try:
                    handler(event)
                except Exception as e:
                    self.logger.error(f"Error in global event handler {self._handler_name(handler)} for {event.event_type.value}: {e}")

    def emit(self, event: EventPayload) -> None:
        self.publish(event)

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()
            self.logger.info("All event handlers cleared")

    def get_handler_count(self, event_type: Optional[TokenEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


@dataclass
class LoggedEvent:
    """
    Event as recorded in the event log, chained to its predecessor
    """
    sequence: int
    event: EventPayload
    previous_hash: str
    current_hash: str = ""

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this entry
        Covers everything except current_hash
        """
        hash_data = {
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
            'event': self.event.to_dict()
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = self.event.to_dict()
        result.update({
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash
        })
        return result


class EventLog(EventSink):
    """
    Hash-chained append-only log of emitted events
    """

    def __init__(self):
        self._entries: List[LoggedEvent] = []
        self._lock = RLock()

    def emit(self, event: EventPayload) -> None:
        self.append(event)

    def append(self, event: EventPayload) -> LoggedEvent:
        """Append an event, chaining it to the previous entry"""
        with self._lock:
            entry = LoggedEvent(
                sequence=len(self._entries),
                event=event,
                previous_hash=self.latest_hash or ""
            )
            entry.current_hash = entry.calculate_hash()
            self._entries.append(entry)
            return entry

    @property
    def latest_hash(self) -> Optional[str]:
        """Hash of the most recent entry"""
        with self._lock:
            if not self._entries:
                return None
            return self._entries[-1].current_hash

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[LoggedEvent]:
        with self._lock:
            return list(self._entries)

    def events(self) -> List[EventPayload]:
        """All events in emission order"""
        with self._lock:
            return [entry.event for entry in self._entries]

    def filter(self, event_type: Optional[TokenEvent] = None, **args: Any) -> List[EventPayload]:
        """
        Events matching a type and exact argument values

        Use from_ to match the Transfer "from" field.
        """
        if "from_" in args:
            args["from"] = args.pop("from_")
        return [
            event for event in self.events()
            if (event_type is None or event.event_type == event_type)
            and all(event.args.get(k) == v for k, v in args.items())
        ]

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        entries = self.entries()
        result['total_events'] = len(entries)

        previous_hash = ""
        for i, entry in enumerate(entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': entry.event.event_id,
                    'position': i,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })
            if entry.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': entry.event.event_id,
                    'position': i,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result
