"""
Idempotency Conformance Tests

INVARIANT: A transaction id takes effect at most once.

    Re-presenting an applied id is rejected as DUPLICATE_TRANSACTION and
    leaves every account unchanged, whatever its kind, client or amount.

Ids of rejected records are NOT registered, so a later record carrying a
previously rejected id may still apply.
"""

from hypothesis import given, settings

from payments_ledger import LedgerEngine, Outcome, deposit, withdrawal
from .strategies import record_streams, amounts, client_ids, kinds


class TestIdempotencyProperties:
    """Property-based idempotency tests."""

    @given(record_streams(max_tx_id=10))
    @settings(max_examples=100)
    def test_each_id_applies_at_most_once(self, records):
        """
        PROPERTY: No transaction id appears twice in the applied log.
        """
        engine = LedgerEngine("test", verbose=False)
        engine.process(records)

        logged = [r.transaction_id for r in engine.transaction_log]
        assert len(logged) == len(set(logged))
        assert set(logged) == engine.seen_transaction_ids
        assert engine.verify_invariants()['valid']

    @given(record_streams(min_size=1))
    @settings(max_examples=100)
    def test_reapplying_the_log_is_all_duplicates(self, records):
        """
        PROPERTY: Re-presenting every applied record changes nothing.
        """
        engine = LedgerEngine("test", verbose=False)
        engine.process(records)
        before = engine.accounts()
        applied = list(engine.transaction_log)

        outcomes = [engine.apply(record) for record in applied]

        assert outcomes == [Outcome.DUPLICATE_TRANSACTION] * len(applied)
        assert engine.accounts() == before
        assert engine.transaction_log == applied
        assert engine.stats.rejected.get(Outcome.DUPLICATE_TRANSACTION, 0) >= len(applied)

    @given(record_streams(min_size=1), kinds, client_ids, amounts)
    @settings(max_examples=100)
    def test_duplicate_with_different_fields(self, records, kind, client_id, amount):
        """
        PROPERTY: A duplicate is rejected even if every other field differs.
        """
        engine = LedgerEngine("test", verbose=False)
        engine.process(records)
        if not engine.transaction_log:
            return

        tx_id = engine.transaction_log[0].transaction_id
        record = (deposit if kind.value == "deposit" else withdrawal)(client_id, tx_id, amount)
        clients_before = engine.list_clients()

        assert engine.apply(record) is Outcome.DUPLICATE_TRANSACTION
        # duplicates are caught before the account lookup
        assert engine.list_clients() == clients_before


class TestIdempotencyExamples:

    def test_duplicate_deposit(self):
        engine = LedgerEngine("test", verbose=False)
        assert engine.apply(deposit(1, 1, "1.0")) is Outcome.APPLIED
        assert engine.apply(deposit(1, 1, "1.0")) is Outcome.DUPLICATE_TRANSACTION
        assert str(engine.get_account(1).available) == "1.0000"

    def test_id_shared_across_clients(self):
        engine = LedgerEngine("test", verbose=False)
        engine.apply(deposit(1, 7, "1.0"))
        assert engine.apply(deposit(2, 7, "1.0")) is Outcome.DUPLICATE_TRANSACTION
        assert engine.get_account(2) is None

    def test_rejected_id_can_be_reused(self):
        engine = LedgerEngine("test", verbose=False)
        assert engine.apply(withdrawal(1, 5, "2.0")) is Outcome.INSUFFICIENT_FUNDS
        assert 5 not in engine.seen_transaction_ids
        assert engine.apply(deposit(1, 5, "2.0")) is Outcome.APPLIED
