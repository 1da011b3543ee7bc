"""
sharding.py - Client-partitioned processing across worker threads

ShardedLedger routes each record to one of N LedgerEngine shards by
client_id % N. Each shard is drained by its own worker thread and owns its
accounts and seen-id registry exclusively; no worker touches another
shard's state.

Processing order per step:
1. The router reads the stream once, in input order
2. Parse errors are counted by the router
3. Records are queued to their client's shard, so a client's records reach
   its shard in input order
4. process() returns only after every shard has drained its queue

Transaction ids are global. The router remembers which shard last received
each id. A reused id bound for the same shard is left to that shard's own
registry. A reused id bound for a different shard makes the router wait
until the earlier shard has caught up, then reject the record as a
duplicate if the earlier record was applied there. The outcome for every
record is the one a single LedgerEngine would give.
"""

from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
import queue
import sys
import threading

from .core import (
    Account, LedgerError, Outcome, ParseError, ProcessingStats, TransactionRecord,
)
from .engine import LedgerEngine, RecordOrError


# Queue marker telling a shard worker its input is finished.
_DRAINED = object()

# How often the router checks a worker it is waiting on for a crash.
_WAIT_POLL_SECONDS = 0.1


def _drain(q: queue.Queue) -> Iterator[TransactionRecord]:
    """
    Yield records from a shard queue until _DRAINED.

    An Event in the queue is set when the worker reaches it, which means
    every record queued before it has been applied or rejected.
    """
    for item in iter(q.get, _DRAINED):
        if isinstance(item, threading.Event):
            item.set()
        else:
            yield item


class ShardedLedger:
    """
    Ledger whose clients are split across independent LedgerEngine shards.

    Implements the LedgerView protocol over the union of all shards.

    Example:
        ledger = ShardedLedger(num_shards=4, verbose=False)
        ledger.process(decode_rows(CsvRecordSource("tx.csv").rows()))
        write_snapshot(ledger, sys.stdout)
    """

    def __init__(self, num_shards: int = 4, verbose: bool = True):
        """
        Args:
            num_shards: Number of shards and worker threads (>= 1)
            verbose: Print rejected and skipped records to stderr
        """
        if isinstance(num_shards, bool) or not isinstance(num_shards, int) or num_shards < 1:
            raise ValueError(f"num_shards must be a positive int, got {num_shards!r}")
        self.num_shards = num_shards
        self.verbose = verbose
        self.shards: List[LedgerEngine] = [
            LedgerEngine(f"shard-{i}", verbose=verbose) for i in range(num_shards)
        ]
        self.parse_errors: List[ParseError] = []
        self.rejection_log: List[Tuple[TransactionRecord, Outcome]] = []
        self._router_stats = ProcessingStats()
        self._last_shard: Dict[int, int] = {}  # tx id -> shard it was last routed to

    def shard_for(self, client_id: int) -> int:
        """Index of the shard owning client_id."""
        return client_id % self.num_shards

    def engine_for(self, client_id: int) -> LedgerEngine:
        return self.shards[self.shard_for(client_id)]

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION
    # ========================================================================

    def get_account(self, client_id: int) -> Optional[Account]:
        return self.engine_for(client_id).get_account(client_id)

    def list_clients(self) -> List[int]:
        clients: List[int] = []
        for shard in self.shards:
            clients.extend(shard.list_clients())
        return sorted(clients)

    def accounts(self) -> List[Account]:
        accounts: List[Account] = []
        for shard in self.shards:
            accounts.extend(shard.accounts())
        return sorted(accounts, key=lambda account: account.client_id)

    @property
    def stats(self) -> ProcessingStats:
        """Counters merged over the router and every shard."""
        merged = self._router_stats.copy()
        for shard in self.shards:
            merged = merged.merge(shard.stats)
        return merged

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Run LedgerEngine.verify_invariants() on every shard and merge the results.

        Also checks that no transaction id was applied on more than one shard.
        """
        violations: List[Dict[str, Any]] = []
        owner: Dict[int, str] = {}
        for shard in self.shards:
            result = shard.verify_invariants()
            violations.extend({**v, 'shard': shard.name} for v in result['violations'])
            for tx_id in shard.seen_transaction_ids:
                if tx_id in owner:
                    violations.append({
                        'error': 'transaction applied on two shards',
                        'tx': tx_id,
                        'shards': [owner[tx_id], shard.name],
                    })
                owner[tx_id] = shard.name
        return {'valid': len(violations) == 0, 'violations': violations}

    # ========================================================================
    # PROCESSING
    # ========================================================================

    def process(self, stream: Iterable[RecordOrError]) -> ProcessingStats:
        """
        Route a decoded stream to the shards and wait for all of them.

        Args:
            stream: Iterable of TransactionRecord or ParseError items

        Returns:
            Merged ProcessingStats

        Raises:
            InputUnavailable: If the source fails while being read. Workers
                              are still drained before the error propagates.
            LedgerError: If a shard worker stops before draining its queue.
        """
        queues: List[queue.Queue] = [queue.Queue() for _ in self.shards]

        with ThreadPoolExecutor(max_workers=self.num_shards,
                                thread_name_prefix="ledger-shard") as pool:
            futures = [
                pool.submit(shard.process, _drain(q))
                for shard, q in zip(self.shards, queues)
            ]
            try:
                for item in stream:
                    if isinstance(item, ParseError):
                        self._skip(item)
                    else:
                        self._route(item, queues, futures)
            finally:
                for q in queues:
                    q.put(_DRAINED)
            for future in futures:
                future.result()

        return self.stats

    def _route(self, record: TransactionRecord,
               queues: List[queue.Queue], futures: List[Future]) -> None:
        index = self.shard_for(record.client_id)
        previous = self._last_shard.get(record.transaction_id)

        if previous is not None and previous != index:
            self._wait_for(previous, queues[previous], futures[previous])
            if record.transaction_id in self.shards[previous].seen_transaction_ids:
                self._reject_duplicate(record)
                return

        self._last_shard[record.transaction_id] = index
        queues[index].put(record)

    def _wait_for(self, index: int, q: queue.Queue, future: Future) -> None:
        """Block until shard index has handled everything queued to it so far."""
        reached = threading.Event()
        q.put(reached)
        while not reached.wait(_WAIT_POLL_SECONDS):
            if future.done():
                future.result()
                raise LedgerError(f"{self.shards[index].name} stopped before draining its queue")

    def _reject_duplicate(self, record: TransactionRecord) -> None:
        self._router_stats.record(Outcome.DUPLICATE_TRANSACTION)
        self.rejection_log.append((record, Outcome.DUPLICATE_TRANSACTION))
        if self.verbose:
            print(f"⚠️  DUPLICATE [router]: tx={record.transaction_id} {record!r}",
                  file=sys.stderr)

    def _skip(self, error: ParseError) -> None:
        self._router_stats.record_skip()
        self.parse_errors.append(error)
        if self.verbose:
            print(f"SKIPPED [router]: {error}", file=sys.stderr)

    def __repr__(self) -> str:
        return f"ShardedLedger({self.num_shards} shards, {len(self.list_clients())} accounts)"
