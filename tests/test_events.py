"""
Tests for the Event System

Tests event payloads, the dispatcher and the hash-chained event log.
"""

import pytest
from datetime import datetime
from unittest.mock import Mock

from token_ledger.events import (
    TokenEvent, EventPayload, EventDispatcher, EventLog, NullSink,
    approval_event, transfer_event
)
from token_ledger.ledger import TokenLedger


OWNER = "0x" + "1" * 40
SPENDER = "0x" + "2" * 40


class TestEventPayload:
    """Test EventPayload creation and serialization"""

    def test_transfer_event_fields(self):
        event = transfer_event(OWNER, SPENDER, 15000)

        assert event.event_type == TokenEvent.TRANSFER
        assert event.name == "Transfer"
        assert event.args == {"from": OWNER, "to": SPENDER, "value": 15000}
        assert isinstance(event.timestamp, datetime)
        assert len(event.event_id) > 0

    def test_approval_event_fields(self):
        event = approval_event(OWNER, SPENDER, 5000)

        assert event.name == "Approval"
        assert set(event.args) == {"owner", "spender", "value"}

    def test_wrong_fields_rejected(self):
        with pytest.raises(ValueError, match="requires fields"):
            EventPayload(event_type=TokenEvent.APPROVAL, args={"from": OWNER, "to": SPENDER, "value": 1})

    def test_serialization(self):
        original = transfer_event(OWNER, SPENDER, 2 ** 200)

        event_dict = original.to_dict()
        assert event_dict['event_type'] == "Transfer"
        assert event_dict['args']['value'] == str(2 ** 200)

        restored = EventPayload.from_dict(event_dict)
        assert restored.args == original.args
        assert restored.event_id == original.event_id
        assert restored.timestamp == original.timestamp


class TestEventDispatcher:
    """Test the event dispatcher"""

    def test_subscribe_and_publish(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(TokenEvent.TRANSFER, handler)

        event = transfer_event(OWNER, SPENDER, 1)
        dispatcher.publish(event)
        dispatcher.publish(approval_event(OWNER, SPENDER, 1))

        handler.assert_called_once_with(event)

    def test_global_handler_receives_all(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)

        dispatcher.emit(transfer_event(OWNER, SPENDER, 1))
        dispatcher.emit(approval_event(OWNER, SPENDER, 1))

        assert handler.call_count == 2

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(TokenEvent.TRANSFER, handler)
        dispatcher.unsubscribe(TokenEvent.TRANSFER, handler)
        dispatcher.unsubscribe(TokenEvent.TRANSFER, handler)

        dispatcher.publish(transfer_event(OWNER, SPENDER, 1))
        handler.assert_not_called()

    def test_failing_handler_isolated(self):
        dispatcher = EventDispatcher()
        failing = Mock(side_effect=RuntimeError("observer down"))
        healthy = Mock()
        dispatcher.subscribe(TokenEvent.TRANSFER, failing)
        dispatcher.subscribe_all(healthy)

        dispatcher.publish(transfer_event(OWNER, SPENDER, 1))

        healthy.assert_called_once()

    def test_failing_handler_does_not_fail_ledger(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe_all(Mock(side_effect=RuntimeError("observer down")))
        ledger = TokenLedger(1000, OWNER, event_sink=dispatcher)

        assert ledger.transfer(OWNER, SPENDER, 10)
        assert ledger.balance_of(SPENDER) == 10

    def test_handler_count_and_clear(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe(TokenEvent.TRANSFER, Mock())
        dispatcher.subscribe(TokenEvent.APPROVAL, Mock())
        dispatcher.subscribe_all(Mock())

        assert dispatcher.get_handler_count(TokenEvent.TRANSFER) == 1
        assert dispatcher.get_handler_count() == 3

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0

    def test_null_sink(self):
        NullSink().emit(transfer_event(OWNER, SPENDER, 1))


class TestEventLog:
    """Test the hash-chained event log"""

    def setup_method(self):
        self.log = EventLog()
        self.ledger = TokenLedger(1000, OWNER, event_sink=self.log)
        self.ledger.approve(OWNER, SPENDER, 300)
        self.ledger.transfer_from(SPENDER, OWNER, SPENDER, 100)

    def test_events_in_order(self):
        names = [event.name for event in self.log.events()]
        assert names == ["Transfer", "Approval", "Transfer"]
        assert len(self.log) == 3

    def test_chain_links(self):
        entries = self.log.entries()

        assert entries[0].previous_hash == ""
        assert entries[1].previous_hash == entries[0].current_hash
        assert entries[2].previous_hash == entries[1].current_hash
        assert self.log.latest_hash == entries[2].current_hash
        assert [e.sequence for e in entries] == [0, 1, 2]

    def test_filter(self):
        transfers = self.log.filter(TokenEvent.TRANSFER)
        assert len(transfers) == 2

        delegated = self.log.filter(TokenEvent.TRANSFER, from_=OWNER, to=SPENDER)
        assert len(delegated) == 1
        assert delegated[0].args["value"] == 100

        assert self.log.filter(owner=OWNER)[0].name == "Approval"

    def test_integrity_valid(self):
        result = self.log.verify_integrity()

        assert result['valid']
        assert result['total_events'] == 3
        assert result['hash_errors'] == []
        assert result['chain_breaks'] == []

    def test_tampering_detected(self):
        self.log.entries()[1].event.args["value"] = 999999

        result = self.log.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'][0]['position'] == 1

    def test_chain_break_detected(self):
        entry = self.log.entries()[2]
        entry.previous_hash = "0" * 64
        entry.current_hash = entry.calculate_hash()

        result = self.log.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'] == []
        assert result['chain_breaks'][0]['position'] == 2

    def test_empty_log(self):
        log = EventLog()
        assert log.latest_hash is None
        assert log.verify_integrity()['valid']
