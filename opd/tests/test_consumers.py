import pytest
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator

from opd.realtime.broadcaster import ConnectionRegistry, group_name
from opd.realtime.routing import websocket_urlpatterns
from opd.services.appointments import create_appointment

pytestmark = [pytest.mark.asyncio, pytest.mark.django_db(transaction=True)]

application = URLRouter(websocket_urlpatterns)


def _communicator(doctor_id):
    return WebsocketCommunicator(application, f'/ws/queue/{doctor_id}/')


async def test_snapshot_on_connect(broadcaster, doctor, patient, make_appointment):
    await database_sync_to_async(make_appointment)(doctor, patient, 1)
    comm = _communicator(doctor.id)
    connected, _ = await comm.connect()
    assert connected

    snapshot = await comm.receive_json_from()
    assert snapshot['type'] == 'snapshot'
    assert snapshot['doctorId'] == doctor.id
    assert [e['patient']['patientId'] for e in snapshot['queue']] == [patient.patient_id]
    assert broadcaster.registry.count(doctor.id) == 1

    await comm.disconnect()
    assert broadcaster.registry.count() == 0


async def test_unknown_doctor_is_refused(broadcaster):
    comm = _communicator(999999)
    connected, _ = await comm.connect()
    assert connected
    error = await comm.receive_json_from()
    assert error == {'type': 'error', 'code': 4004, 'message': 'doctor_not_found'}
    assert await comm.receive_output() == {'type': 'websocket.close', 'code': 4004}
    assert broadcaster.registry.count() == 0


async def test_connection_limit(broadcaster, doctor):
    first, second, third = (_communicator(doctor.id) for _ in range(3))
    for comm in (first, second):
        assert (await comm.connect())[0]
        await comm.receive_json_from()

    assert (await third.connect())[0]
    error = await third.receive_json_from()
    assert error == {'type': 'error', 'code': 4029, 'message': 'connection_limit_reached'}
    assert await third.receive_output() == {'type': 'websocket.close', 'code': 4029}
    assert broadcaster.registry.count(doctor.id) == 2

    for comm in (first, second):
        await comm.disconnect()


async def test_ping_pong_and_ignored_messages(broadcaster, doctor):
    comm = _communicator(doctor.id)
    await comm.connect()
    await comm.receive_json_from()

    await comm.send_json_to({'type': 'ping'})
    pong = await comm.receive_json_from()
    assert pong['type'] == 'pong'
    assert pong['timestamp']

    await comm.send_to(text_data='not json')
    await comm.send_json_to({'type': 'subscribe', 'doctorId': 2})
    assert await comm.receive_nothing()

    await comm.disconnect()


async def test_committed_registration_is_pushed(broadcaster, doctor, patient):
    comm = _communicator(doctor.id)
    await comm.connect()
    initial = await comm.receive_json_from()
    assert initial['queue'] == []

    await database_sync_to_async(create_appointment)(patient_id=patient.id, doctor_id=doctor.id)

    pushed = await comm.receive_json_from(timeout=2)
    assert pushed['type'] == 'snapshot'
    assert [(e['serialNumber'], e['status']) for e in pushed['queue']] == [(1, 'WAITING')]

    await comm.disconnect()


async def test_idle_stream_is_closed_by_sweep(broadcaster, doctor):
    clock = [1_000.0]
    broadcaster.registry = ConnectionRegistry(max_per_resource=2, timeout=60, clock=lambda: clock[0])
    comm = _communicator(doctor.id)
    await comm.connect()
    await comm.receive_json_from()

    clock[0] += 61
    assert await broadcaster.sweep() == 1
    assert await comm.receive_output() == {'type': 'websocket.close', 'code': 4008}
    assert broadcaster.registry.count() == 0
    broadcaster.stop_sweeper()
    await comm.disconnect()


async def test_listening_stream_stays_active(broadcaster, doctor):
    clock = [1_000.0]
    broadcaster.registry = ConnectionRegistry(max_per_resource=2, timeout=60, clock=lambda: clock[0])

    def last_activity():
        return broadcaster.stats()['resources'][0]['connections'][0]['lastActivity']

    comm = _communicator(doctor.id)
    await comm.connect()
    await comm.receive_json_from()

    clock[0] += 50
    snapshot = {'type': 'snapshot', 'doctorId': doctor.id, 'queue': [], 'timestamp': 'now'}
    await get_channel_layer().group_send(group_name(doctor.id), {'type': 'queue.snapshot', 'snapshot': snapshot})
    assert await comm.receive_json_from() == snapshot
    assert last_activity() == 1_050.0

    clock[0] += 50
    assert await broadcaster.sweep() == 0

    assert await broadcaster.heartbeat() == 1
    beat = await comm.receive_json_from()
    assert beat['type'] == 'heartbeat'
    assert last_activity() == 1_100.0

    await comm.disconnect()
