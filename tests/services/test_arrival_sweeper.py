"""Arrival Sweeper — closes accepted fulfillments once their arrival date passes.

Tests cover:
    - Only ACCEPTED rows with arrival_date <= now are closed (CLOSED + ARRIVED)
    - Parent Main closes when its last live child arrives
    - Aggregation locks the parent row before reading sibling statuses
    - Second run with the same `now` transitions nothing
    - Scheduler tick runs the sweep through db_manager
"""

from datetime import timedelta

from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from bloodmatch.core.domain_types import RequestStatus, TransitState
from bloodmatch.infrastructure import scheduler
from bloodmatch.models import BloodRequest
from bloodmatch.services.arrival_sweeper import ArrivalSweeper


async def _request(db, request_id) -> BloodRequest:
    return await db.get(BloodRequest, request_id, populate_existing=True)


async def _accepted_donor_request(engine, make_requester, make_donor, make_main, units=1):
    requester = await make_requester()
    donor = await make_donor()
    main_id = await make_main(requester, units=units)
    child = await engine.create_donor_fulfillment(requester, donor.id)
    child_id = child.id
    await engine.donor_accept(donor, child_id)
    return main_id, child_id


async def test_sweep_closes_due_requests_and_parent(
    engine, make_requester, make_donor, make_main, clock, test_db,
):
    main_id, child_id = await _accepted_donor_request(
        engine, make_requester, make_donor, make_main,
    )
    sweeper = ArrivalSweeper(test_db)

    assert await sweeper.sweep_arrivals(clock() + timedelta(days=1)) == 0
    assert (await _request(test_db, child_id)).status is RequestStatus.ACCEPTED

    due = clock() + timedelta(days=3)
    assert await sweeper.sweep_arrivals(due) == 1

    child = await _request(test_db, child_id)
    assert child.status is RequestStatus.CLOSED
    assert child.transit_state is TransitState.ARRIVED
    assert (await _request(test_db, main_id)).status is RequestStatus.CLOSED


async def test_sweep_is_idempotent(
    engine, make_requester, make_donor, make_main, clock, test_db,
):
    await _accepted_donor_request(engine, make_requester, make_donor, make_main)
    sweeper = ArrivalSweeper(test_db)
    later = clock() + timedelta(days=10)

    assert await sweeper.sweep_arrivals(later) == 1
    assert await sweeper.sweep_arrivals(later) == 0


async def test_main_stays_matched_while_other_children_live(
    engine, admin, make_requester, make_donor, make_stock, make_main, clock, test_db,
):
    requester = await make_requester()
    donor = await make_donor()
    stock_id = await make_stock(units=5)
    main_id = await make_main(requester, units=3)
    donor_child = await engine.create_donor_fulfillment(requester, donor.id)
    donor_child_id = donor_child.id
    stock_child = await engine.create_stock_fulfillment(requester, stock_id, 2)
    stock_child_id = stock_child.id
    await engine.donor_accept(donor, donor_child_id)

    assert await ArrivalSweeper(test_db).sweep_arrivals(clock() + timedelta(days=5)) == 1
    assert (await _request(test_db, main_id)).status is RequestStatus.MATCHED
    assert (await _request(test_db, stock_child_id)).status is RequestStatus.PENDING

    await engine.admin_accept(admin, stock_child_id)
    assert await ArrivalSweeper(test_db).sweep_arrivals(clock() + timedelta(days=5)) == 1
    assert (await _request(test_db, main_id)).status is RequestStatus.CLOSED


async def test_parent_locked_before_sibling_statuses_are_read(
    engine, make_requester, make_donor, make_stock, make_main, clock, test_db,
):
    requester = await make_requester()
    donor = await make_donor()
    stock_id = await make_stock(units=5)
    main_id = await make_main(requester, units=3)
    donor_child = await engine.create_donor_fulfillment(requester, donor.id)
    await engine.donor_accept(donor, donor_child.id)
    stock_child = await engine.create_stock_fulfillment(requester, stock_id, 2)
    await engine.cancel(requester, stock_child.id)
    assert (await _request(test_db, main_id)).status is RequestStatus.MATCHED

    emitted = []

    def record(state):
        emitted.append(str(state.statement.compile(dialect=postgresql.dialect())))

    event.listen(test_db.sync_session, "do_orm_execute", record)
    try:
        assert await ArrivalSweeper(test_db).sweep_arrivals(clock() + timedelta(days=3)) == 1
    finally:
        event.remove(test_db.sync_session, "do_orm_execute", record)

    assert (await _request(test_db, main_id)).status is RequestStatus.CLOSED
    lock = next(i for i, sql in enumerate(emitted) if "FOR UPDATE" in sql)
    siblings = next(
        i for i, sql in enumerate(emitted)
        if "WHERE blood_requests.parent_request_id =" in sql
    )
    assert lock < siblings


async def test_pending_rows_untouched(
    engine, make_requester, make_donor, make_main, clock, test_db,
):
    requester = await make_requester()
    donor = await make_donor()
    await make_main(requester)
    child = await engine.create_donor_fulfillment(requester, donor.id)
    child_id = child.id

    assert await ArrivalSweeper(test_db).sweep_arrivals(clock() + timedelta(days=30)) == 0
    assert (await _request(test_db, child_id)).status is RequestStatus.PENDING


async def test_scheduler_tick_uses_db_manager(
    client, engine, make_requester, make_donor, make_main,
):
    # arrival is three days after the pinned clock, already past in real time
    await _accepted_donor_request(engine, make_requester, make_donor, make_main)
    assert await scheduler.run_sweep() == 1
    assert await scheduler.run_sweep() == 0


async def test_scheduler_tick_without_database(monkeypatch):
    monkeypatch.setattr("bloodmatch.infrastructure.database.db_manager", None)
    assert await scheduler.run_sweep() == 0
