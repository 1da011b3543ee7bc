"""
test_sharding.py - Client-partitioned processing

Tests:
- Sharded output equals single-engine output, reused transaction ids included
- Router-side handling of parse errors
- Merged statistics and invariant checks
- Source failures propagate after workers drain
"""

import pytest

from payments_ledger import (
    LedgerEngine, ShardedLedger, LedgerView,
    CsvRecordSource, StaticRecordSource, InputUnavailable,
    Outcome, ParseError,
    decode_rows, format_snapshot,
    deposit, withdrawal,
)


def _records(count=200, clients=17):
    records = []
    for tx in range(1, count + 1):
        client = tx % clients
        if tx % 3 == 0:
            records.append(withdrawal(client, tx, "1.5"))
        else:
            records.append(deposit(client, tx, "1.0"))
    return records


class TestShardedLedger:

    @pytest.mark.parametrize("num_shards", [1, 2, 4, 7])
    def test_matches_single_engine(self, num_shards):
        records = _records()
        single = LedgerEngine("single", verbose=False)
        single.process(records)

        sharded = ShardedLedger(num_shards=num_shards, verbose=False)
        sharded.process(records)

        assert format_snapshot(sharded) == format_snapshot(single)
        assert sharded.stats.applied == single.stats.applied
        assert sharded.stats.rejected == single.stats.rejected

    def test_clients_stay_on_their_shard(self):
        sharded = ShardedLedger(num_shards=3, verbose=False)
        sharded.process(_records(60, clients=9))
        for index, shard in enumerate(sharded.shards):
            assert all(client % 3 == index for client in shard.list_clients())

    def test_parse_errors_counted_by_router(self):
        source = StaticRecordSource.from_text(
            "type,client,tx,amount\n"
            "deposit,1,1,1.0\n"
            "bogus,1,2,1.0\n"
            "deposit,2,3,2.0\n"
        )
        sharded = ShardedLedger(num_shards=2, verbose=False)
        stats = sharded.process(decode_rows(source.rows()))

        assert stats.skipped == 1
        assert stats.applied == 2
        assert len(sharded.parse_errors) == 1
        assert isinstance(sharded.parse_errors[0], ParseError)
        assert sharded.parse_errors[0].line_number == 3

    def test_verify_invariants(self):
        sharded = ShardedLedger(num_shards=4, verbose=False)
        sharded.process(_records())
        assert sharded.verify_invariants() == {'valid': True, 'violations': []}

    def test_is_a_ledger_view(self):
        assert isinstance(ShardedLedger(num_shards=2, verbose=False), LedgerView)

    def test_get_account(self):
        sharded = ShardedLedger(num_shards=2, verbose=False)
        sharded.process([deposit(5, 1, "3")])
        assert str(sharded.get_account(5).available) == "3.0000"
        assert sharded.get_account(6) is None

    def test_duplicate_within_a_shard(self):
        sharded = ShardedLedger(num_shards=2, verbose=False)
        stats = sharded.process([deposit(1, 1, "1"), deposit(3, 1, "1")])
        assert stats.rejected == {Outcome.DUPLICATE_TRANSACTION: 1}

    def test_duplicate_across_shards(self):
        """An id reused by a client on another shard is still a duplicate."""
        records = [deposit(1, 7, "1.0"), deposit(2, 7, "5.0")]
        single = LedgerEngine("single", verbose=False)
        single.process(records)

        sharded = ShardedLedger(num_shards=2, verbose=False)
        stats = sharded.process(records)

        assert sharded.accounts() == single.accounts()
        assert sharded.get_account(2) is None
        assert stats.rejected == {Outcome.DUPLICATE_TRANSACTION: 1}
        assert stats.processed == 2
        assert sharded.rejection_log == [(records[1], Outcome.DUPLICATE_TRANSACTION)]
        assert sharded.verify_invariants()['valid']

    def test_rejected_id_reused_on_another_shard(self):
        """Only applied ids block reuse, across shards as well."""
        records = [withdrawal(1, 7, "1.0"), deposit(2, 7, "5.0"), deposit(3, 7, "1.0")]
        single = LedgerEngine("single", verbose=False)
        single.process(records)

        sharded = ShardedLedger(num_shards=2, verbose=False)
        sharded.process(records)

        assert sharded.accounts() == single.accounts()
        assert str(sharded.get_account(2).available) == "5.0000"
        assert sharded.get_account(3) is None
        assert str(sharded.get_account(1).available) == "0.0000"
        assert sharded.stats.rejected == single.stats.rejected

    @pytest.mark.parametrize("num_shards", [2, 3, 5])
    def test_reused_ids_match_single_engine(self, num_shards):
        records = []
        for i in range(300):
            tx = i % 40 + 1
            client = (i * 7) % 11
            if i % 4 == 0:
                records.append(withdrawal(client, tx, "0.75"))
            else:
                records.append(deposit(client, tx, "1.25"))
        single = LedgerEngine("single", verbose=False)
        single.process(records)

        sharded = ShardedLedger(num_shards=num_shards, verbose=False)
        sharded.process(records)

        assert format_snapshot(sharded) == format_snapshot(single)
        assert sharded.stats.applied == single.stats.applied
        assert sharded.stats.rejected == single.stats.rejected

    def test_router_duplicate_is_reported(self, capsys):
        sharded = ShardedLedger(num_shards=2, verbose=True)
        sharded.process([deposit(1, 7, "1.0"), deposit(2, 7, "5.0")])
        assert "DUPLICATE [router]: tx=7" in capsys.readouterr().err

    @pytest.mark.parametrize("num_shards", [0, -1, 1.5, True])
    def test_invalid_shard_count(self, num_shards):
        with pytest.raises(ValueError):
            ShardedLedger(num_shards=num_shards)

    def test_missing_input_propagates(self, tmp_path):
        sharded = ShardedLedger(num_shards=2, verbose=False)
        source = CsvRecordSource(tmp_path / "missing.csv")
        with pytest.raises(InputUnavailable):
            sharded.process(decode_rows(source.rows()))

    def test_repr(self):
        sharded = ShardedLedger(num_shards=2, verbose=False)
        sharded.process([deposit(1, 1, "1"), deposit(2, 2, "1")])
        assert repr(sharded) == "ShardedLedger(2 shards, 2 accounts)"
