import logging
from uuid import uuid4

import pytest

from rental_api.core.errors import GuardNotSatisfied, ValidationError
from rental_api.domain.enums import ItemCondition, OrderStatus, ScanType
from rental_api.services.lifecycle import OrderLifecycleService
from rental_api.services.scanning import ScanningService

S = OrderStatus


@pytest.fixture
def scanning(session):
    return ScanningService(session)


@pytest.fixture
def lifecycle(session, dispatcher):
    return OrderLifecycleService(session, dispatcher)


async def test_outbound_gate_blocks_until_all_units_scanned(scanning, lifecycle, make_order, actor_id):
    order = await make_order(status=S.IN_PREPARATION, items=((30, None), (20, None)))
    order_id = order.id

    await scanning.record_scan(order_id, ScanType.OUTBOUND, 30, actor_id)
    with pytest.raises(GuardNotSatisfied) as exc:
        await lifecycle.transition(order_id, S.READY_FOR_DELIVERY, actor_id)
    assert exc.value.code == "outbound_scan_incomplete"
    assert exc.value.details["required"] == 50
    assert exc.value.details["scanned"] == 30
    assert exc.value.details["shortfall"] == 20
    assert await lifecycle.get_status_history(order_id) == []

    await scanning.record_scan(order_id, ScanType.OUTBOUND, 20, actor_id)
    order = await lifecycle.transition(order_id, S.READY_FOR_DELIVERY, actor_id)
    assert order.status is S.READY_FOR_DELIVERY


async def test_inbound_gate_blocks_closing(scanning, lifecycle, make_order, actor_id):
    order = await make_order(status=S.AWAITING_RETURN, items=((5, None),))
    order_id = order.id
    await scanning.record_scan(order_id, ScanType.INBOUND, 4, actor_id, condition=ItemCondition.ORANGE)

    with pytest.raises(GuardNotSatisfied) as exc:
        await lifecycle.transition(order_id, S.CLOSED, actor_id)
    assert exc.value.code == "inbound_scan_incomplete"

    await scanning.record_scan(order_id, ScanType.INBOUND, 1, actor_id)
    assert (await lifecycle.transition(order_id, S.CLOSED, actor_id)).status is S.CLOSED


@pytest.mark.parametrize(
    "status,scan_type",
    [
        (S.CONFIRMED, ScanType.OUTBOUND),
        (S.READY_FOR_DELIVERY, ScanType.OUTBOUND),
        (S.IN_PREPARATION, ScanType.INBOUND),
        (S.IN_USE, ScanType.INBOUND),
    ],
)
async def test_scans_outside_their_window_are_rejected(scanning, make_order, actor_id, status, scan_type):
    order = await make_order(status=status)
    order_id = order.id
    with pytest.raises(GuardNotSatisfied) as exc:
        await scanning.record_scan(order_id, scan_type, 1, actor_id)
    assert exc.value.code == "scan_not_allowed"
    assert await scanning.list_scan_events(order_id) == []


@pytest.mark.parametrize("quantity", [0, -3, True])
async def test_scan_quantity_must_be_positive(scanning, make_order, actor_id, quantity):
    order = await make_order(status=S.IN_PREPARATION)
    with pytest.raises(ValidationError):
        await scanning.record_scan(order.id, ScanType.OUTBOUND, quantity, actor_id)


async def test_scanned_asset_must_belong_to_the_order(scanning, make_order, actor_id):
    chairs = uuid4()
    order = await make_order(status=S.IN_PREPARATION, items=((10, chairs),))
    order_id = order.id
    with pytest.raises(ValidationError):
        await scanning.record_scan(order_id, ScanType.OUTBOUND, 1, actor_id, asset_id=uuid4())

    event = await scanning.record_scan(order_id, ScanType.OUTBOUND, 4, actor_id, asset_id=chairs)
    assert event.asset_id == chairs

    gate = await scanning.evaluate_outbound_gate(order_id)
    assert len(gate.assets) == 1
    assert gate.assets[0].scanned == 4
    assert gate.shortfall == 6


async def test_over_scan_is_accepted_and_logged(scanning, make_order, actor_id, caplog):
    order = await make_order(status=S.IN_PREPARATION, items=((5, None),))
    order_id = order.id
    await scanning.record_scan(order_id, ScanType.OUTBOUND, 5, actor_id)

    with caplog.at_level(logging.WARNING, logger="rental_api.services.scanning"):
        await scanning.record_scan(order_id, ScanType.OUTBOUND, 2, actor_id)
    assert any("over-scanned" in r.getMessage() for r in caplog.records)

    gate = await scanning.evaluate_outbound_gate(order_id)
    assert gate.satisfied
    assert gate.over_scanned
    assert gate.scanned == 7


async def test_gate_is_monotonic_as_scans_arrive(scanning, make_order, actor_id):
    order = await make_order(status=S.IN_PREPARATION, items=((3, None),))
    order_id = order.id
    seen = []
    for _ in range(5):
        await scanning.record_scan(order_id, ScanType.OUTBOUND, 1, actor_id)
        seen.append((await scanning.evaluate_outbound_gate(order_id)).satisfied)
    assert seen == [False, False, True, True, True]


async def test_scan_events_are_listed_in_scan_order(scanning, make_order, actor_id):
    order = await make_order(status=S.IN_PREPARATION, items=((10, None),))
    order_id = order.id
    for qty in (1, 2, 3):
        await scanning.record_scan(order_id, ScanType.OUTBOUND, qty, actor_id, notes=f"pallet {qty}")

    events = await scanning.list_scan_events(order_id)
    assert [e.quantity for e in events] == [1, 2, 3]
    assert all(e.scanned_by == actor_id for e in events)
    assert await scanning.list_scan_events(order_id, ScanType.INBOUND) == []


async def test_truck_photos_only_while_loading(scanning, make_order):
    loading = await make_order(status=S.IN_PREPARATION)
    loading_id = loading.id
    order = await scanning.add_truck_photos(loading_id, ["s3://photos/1.jpg", "  "])
    order = await scanning.add_truck_photos(loading_id, ["s3://photos/2.jpg"])
    assert order.truck_photos == ["s3://photos/1.jpg", "s3://photos/2.jpg"]

    with pytest.raises(ValidationError):
        await scanning.add_truck_photos(loading_id, ["   "])

    draft = await make_order(status=S.DRAFT)
    with pytest.raises(GuardNotSatisfied) as exc:
        await scanning.add_truck_photos(draft.id, ["s3://photos/3.jpg"])
    assert exc.value.code == "truck_photos_not_allowed"
