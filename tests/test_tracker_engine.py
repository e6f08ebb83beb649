import logging

import pytest

from conftest import CONTRACT, FIXED_NOW, OWNER_X, OWNER_Y, OWNER_Z, FakeEventSource, make_transfer_log
from nft_tracker.core.tracker_core.errors import ConfigError, FetchError, SourceUnavailable, StoreError
from nft_tracker.core.tracker_core.ownership_sync import OwnershipSync
from nft_tracker.core.tracker_core.query_planner import plan_query
from nft_tracker.core.tracker_core.tracker_engine import TrackerEngine, TrackerState


def _engine(dl, source, start_block=100, interval=3600):
    return TrackerEngine(
        source=source,
        store=dl.ownership,
        contract_addresses=[CONTRACT],
        start_block=start_block,
        poll_interval_sec=interval,
        sync=OwnershipSync(dl.ownership, clock=lambda: FIXED_NOW),
    )


def _backfilled(dl):
    source = FakeEventSource(
        heads=[105, 110],
        logs=[
            make_transfer_log(block=101, token_id=7, to=OWNER_X),
            make_transfer_log(block=104, token_id=7, to=OWNER_Y, sender=OWNER_X),
        ],
    )
    engine = _engine(dl, source)
    engine.backfill()
    return engine, source


def test_backfill_keeps_latest_owner(dl_tmp):
    engine, source = _backfilled(dl_tmp)

    records = dl_tmp.ownership.find_all()
    assert len(records) == 1
    assert records[0].token_id == 7
    assert records[0].owner_address == OWNER_Y
    assert engine.cursor == 105
    assert engine.state is TrackerState.POLLING
    assert (source.queries[0].from_block, source.queries[0].to_block) == (100, 105)


def test_poll_tick_adds_new_token_without_touching_others(dl_tmp):
    engine, source = _backfilled(dl_tmp)
    before = dl_tmp.ownership.get(7)
    source.logs.append(make_transfer_log(block=108, token_id=9, to=OWNER_Z))

    result = engine.poll_once()

    assert (source.queries[-1].from_block, source.queries[-1].to_block) == (106, 110)
    assert result.applied == 1
    assert dl_tmp.ownership.get(9).owner_address == OWNER_Z
    assert dl_tmp.ownership.get(7) == before
    assert engine.cursor == 110


def test_bad_log_is_skipped_and_cursor_advances(dl_tmp):
    engine, source = _backfilled(dl_tmp)
    broken = make_transfer_log(block=107, token_id=2, to=OWNER_Y)
    broken["topics"] = broken["topics"][:3]
    source.logs += [
        make_transfer_log(block=106, token_id=1, to=OWNER_X),
        broken,
        make_transfer_log(block=108, token_id=3, to=OWNER_Z),
    ]

    result = engine.poll_once()

    assert (result.fetched, result.applied, result.skipped) == (3, 2, 1)
    assert "DecodeError" in result.errors[0]
    assert dl_tmp.ownership.get(1).owner_address == OWNER_X
    assert dl_tmp.ownership.get(2) is None
    assert dl_tmp.ownership.get(3).owner_address == OWNER_Z
    assert engine.cursor == 110


def test_out_of_range_token_is_skipped(dl_tmp):
    engine, source = _backfilled(dl_tmp)
    source.logs += [
        make_transfer_log(block=106, token_id=2**64, to=OWNER_X),
        make_transfer_log(block=107, token_id=4, to=OWNER_Z),
    ]

    result = engine.poll_once()

    assert (result.applied, result.skipped) == (1, 1)
    assert "RangeError" in result.errors[0]
    assert engine.cursor == 110


def test_fetch_failure_keeps_cursor_and_retries_wider_range(dl_tmp):
    source = FakeEventSource(heads=[105, 110, 115])
    engine = _engine(dl_tmp, source)
    engine.backfill()
    source.fetch_errors = [FetchError("rate limited")]

    assert engine.poll_once() is None
    assert engine.cursor == 105

    engine.poll_once()
    assert (source.queries[-1].from_block, source.queries[-1].to_block) == (106, 115)
    assert engine.cursor == 115
    assert engine.totals["failed_ticks"] == 1


def test_head_lookup_failure_keeps_cursor(dl_tmp):
    source = FakeEventSource(heads=[105, FetchError("timeout"), 110])
    engine = _engine(dl_tmp, source)
    engine.backfill()

    assert engine.poll_once() is None
    assert engine.cursor == 105
    assert len(source.queries) == 1


def test_no_new_blocks_skips_fetch(dl_tmp):
    source = FakeEventSource(heads=[105, 105])
    engine = _engine(dl_tmp, source)
    engine.backfill()

    assert engine.poll_once() is None
    assert len(source.queries) == 1
    assert engine.cursor == 105


def test_start_block_above_head_backfills_nothing(dl_tmp):
    source = FakeEventSource(heads=[90, 101])
    engine = _engine(dl_tmp, source, start_block=100)

    result = engine.backfill()

    assert result.fetched == 0
    assert source.queries == []
    assert engine.cursor == 99
    engine.poll_once()
    assert (source.queries[0].from_block, source.queries[0].to_block) == (100, 101)


def test_source_unavailable_stops_run(dl_tmp):
    source = FakeEventSource(heads=[105, SourceUnavailable("connection refused")])
    engine = _engine(dl_tmp, source)
    engine.ticker.fire()

    with pytest.raises(SourceUnavailable):
        engine.run()
    assert engine.state is TrackerState.STOPPED
    assert engine.cursor == 105


def test_backfill_fetch_failure_is_fatal(dl_tmp):
    source = FakeEventSource(heads=[105])
    source.fetch_errors = [FetchError("too many results")]
    engine = _engine(dl_tmp, source)

    with pytest.raises(FetchError):
        engine.run()
    assert engine.state is TrackerState.STOPPED


def test_stop_before_run_exits_immediately(dl_tmp):
    source = FakeEventSource(heads=[105])
    engine = _engine(dl_tmp, source)
    engine.stop()

    engine.run()

    assert source.queries == []
    assert engine.state is TrackerState.STOPPED


def test_ticks_during_slow_fetch_are_coalesced(dl_tmp):
    source = FakeEventSource(heads=[105, 110, 112])
    engine = _engine(dl_tmp, source)

    def on_fetch(call_no):
        if call_no == 2:
            # three ticks land while the first poll is still fetching
            for _ in range(3):
                engine.ticker.fire()
        elif call_no == 3:
            engine.stop()

    source.on_fetch = on_fetch
    engine.ticker.fire()

    engine.run()

    assert len(source.queries) == 3
    assert engine.ticker.dropped == 2
    assert source.max_in_flight == 1
    assert engine.cursor == 112
    assert engine.status()["state"] == "stopped"


def test_invalid_contract_address_is_config_error(dl_tmp):
    with pytest.raises(ConfigError):
        TrackerEngine(
            source=FakeEventSource(heads=[1]),
            store=dl_tmp.ownership,
            contract_addresses=["not-an-address"],
            start_block=0,
            poll_interval_sec=60,
        )


class _FlakyStore:
    """Delegates to the real store but rejects writes for one token id."""

    def __init__(self, store, bad_token):
        self.store = store
        self.bad_token = bad_token

    def upsert(self, token_id, *args):
        if token_id == self.bad_token:
            raise StoreError(f"disk I/O error writing token {token_id}")
        return self.store.upsert(token_id, *args)


def test_store_failure_skips_only_that_log(dl_tmp):
    engine, source = _backfilled(dl_tmp)
    engine.sync = OwnershipSync(_FlakyStore(dl_tmp.ownership, bad_token=2), clock=lambda: FIXED_NOW)
    source.logs += [
        make_transfer_log(block=106, token_id=1, to=OWNER_X),
        make_transfer_log(block=107, token_id=2, to=OWNER_Y),
        make_transfer_log(block=108, token_id=3, to=OWNER_Z),
    ]

    result = engine.poll_once()

    assert (result.fetched, result.applied, result.skipped) == (3, 2, 1)
    assert "StoreError" in result.errors[0]
    assert dl_tmp.ownership.get(1).owner_address == OWNER_X
    assert dl_tmp.ownership.get(2) is None
    assert dl_tmp.ownership.get(3).owner_address == OWNER_Z
    assert engine.cursor == 110


def test_out_of_order_logs_warn_and_apply_as_given(dl_tmp, caplog):
    engine = _engine(dl_tmp, FakeEventSource(heads=[110]))
    logs = [
        make_transfer_log(block=108, token_id=5, to=OWNER_Y),
        make_transfer_log(block=106, token_id=5, to=OWNER_X),
    ]

    with caplog.at_level(logging.WARNING, logger="nft_tracker"):
        result = engine._apply_logs(plan_query([CONTRACT], engine.event_topic, 100, 110), logs)

    assert result.applied == 2
    assert "out of order" in caplog.text
    # last write wins in the order the source gave
    assert dl_tmp.ownership.get(5).owner_address == OWNER_X


def test_log_outside_requested_range_is_reported(dl_tmp, caplog):
    engine = _engine(dl_tmp, FakeEventSource(heads=[110]))
    logs = [make_transfer_log(block=120, token_id=6, to=OWNER_Z)]

    with caplog.at_level(logging.WARNING, logger="nft_tracker"):
        result = engine._apply_logs(plan_query([CONTRACT], engine.event_topic, 100, 110), logs)

    assert result.applied == 1
    assert "outside requested range 100..110" in caplog.text
