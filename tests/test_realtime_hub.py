from __future__ import annotations

import unittest

from app.models import ReportStatus
from app.services import report_events
from app.services.realtime_hub import RealtimeHub, report_topic, role_topic


class FakeConnection:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError('socket closed')
        self.sent.append(data)

    def events(self) -> list[str]:
        return [message['event'] for message in self.sent]


class RealtimeHubTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.hub = RealtimeHub()

    async def test_repeated_subscribe_keeps_one_membership(self) -> None:
        conn = FakeConnection()
        await self.hub.connect(conn)
        for _ in range(3):
            await self.hub.subscribe_report(conn, 7)
        self.assertEqual(await self.hub.subscribers(report_topic(7)), {conn})

        delivered = await self.hub.publish(report_events.report_updated(7))
        self.assertEqual(delivered, 1)
        self.assertEqual(conn.events(), ['report:updated'])

    async def test_unsubscribe_and_disconnect_leave_no_entries(self) -> None:
        conn = FakeConnection()
        await self.hub.connect(conn)
        await self.hub.subscribe_report(conn, 1)
        await self.hub.subscribe_role(conn, 'Sales')
        await self.hub.unsubscribe_report(conn, 1)
        await self.hub.unsubscribe_report(conn, 1)
        self.assertEqual(await self.hub.topic_count(), 1)

        await self.hub.disconnect(conn)
        self.assertEqual(await self.hub.topic_count(), 0)
        self.assertEqual(await self.hub.connection_count(), 0)

    async def test_report_events_reach_only_that_reports_subscribers(self) -> None:
        watching, other = FakeConnection(), FakeConnection()
        await self.hub.subscribe_report(watching, 1)
        await self.hub.subscribe_report(other, 2)

        await self.hub.publish(report_events.staff_updated(1))
        self.assertEqual(watching.events(), ['report:staffUpdated'])
        self.assertEqual(other.sent, [])

    async def test_status_change_reaches_report_and_downstream_roles(self) -> None:
        watching, sales, accounting, chief = (FakeConnection() for _ in range(4))
        await self.hub.subscribe_report(watching, 5)
        await self.hub.subscribe_role(sales, 'sales')
        await self.hub.subscribe_role(accounting, 'accounting')
        await self.hub.subscribe_role(chief, 'chief')
        # Subscribed by report and by role; still delivered once.
        await self.hub.subscribe_role(watching, 'sales')

        delivered = await self.hub.publish(report_events.status_changed(5, ReportStatus.RETURNED_BY_SALES))
        self.assertEqual(delivered, 3)
        self.assertEqual(watching.sent, [{'event': 'report:statusChanged', 'data': {'report_id': 5, 'status': 'returned_by_sales'}}])
        self.assertEqual(sales.events(), ['report:statusChanged'])
        self.assertEqual(accounting.events(), ['report:statusChanged'])
        self.assertEqual(chief.sent, [])

    async def test_created_event_is_broadcast_to_every_connection(self) -> None:
        idle, chief = FakeConnection(), FakeConnection()
        await self.hub.connect(idle)
        await self.hub.subscribe_role(chief, 'chief')

        delivered = await self.hub.publish(report_events.report_created(9))
        self.assertEqual(delivered, 2)
        self.assertEqual(idle.events(), ['report:created'])
        self.assertEqual(chief.events(), ['report:created'])

    async def test_failing_connection_is_dropped_and_others_still_receive(self) -> None:
        broken, healthy = FakeConnection(fail=True), FakeConnection()
        await self.hub.subscribe_report(broken, 3)
        await self.hub.subscribe_report(healthy, 3)

        delivered = await self.hub.publish(report_events.report_updated(3))
        self.assertEqual(delivered, 1)
        self.assertEqual(healthy.events(), ['report:updated'])
        self.assertEqual(await self.hub.subscribers(report_topic(3)), {healthy})
        self.assertEqual(await self.hub.connection_count(), 1)

    async def test_publish_with_no_subscribers_is_a_no_op(self) -> None:
        self.assertEqual(await self.hub.publish(report_events.report_updated(42)), 0)

    def test_topic_names(self) -> None:
        self.assertEqual(report_topic(12), 'report:12')
        self.assertEqual(role_topic(' Accounting '), 'role:accounting')


if __name__ == '__main__':
    unittest.main()
