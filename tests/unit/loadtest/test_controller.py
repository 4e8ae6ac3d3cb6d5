"""Unit tests for the stress-test run state machine."""

import asyncio
from unittest.mock import Mock, patch

import pytest

from loadscope.loadtest.controller import (
    RATE_LIMIT_ADVISORY,
    START_FAILED_ADVISORY,
    LoadTestController,
    LoadTestRun,
    RunStatus,
)
from loadscope.loadtest.recorder import RunTranscriptRecorder
from loadscope.stream.subscription import StreamSubscription
from tests.helpers import sse_frame, wait_until

STRESS_PATH = "/api/stress-test/stream"


def make_controller(feed_server, config, **kwargs):
    return LoadTestController(config, transport=feed_server.transport, **kwargs)


class TestRunLifecycle:
    @pytest.mark.asyncio
    async def test_successful_run_ends_done_with_all_lines(self, feed_server, config):
        feed_server.add_frames(
            STRESS_PATH,
            sse_frame({"outputLine": "init"}),
            sse_frame({"outputLine": "50% complete"}),
            sse_frame({"outputLine": "complete"}, event="done"),
        )
        controller = make_controller(feed_server, config)

        assert controller.start()
        assert controller.status is RunStatus.RUNNING
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.DONE
        assert run.output_log == ["init", "50% complete", "complete"]
        assert run.error_message is None
        assert controller.subscription is None

    @pytest.mark.asyncio
    async def test_error_event_returns_to_ready_with_advisory(self, feed_server, config):
        feed_server.add_frames(STRESS_PATH, sse_frame(event="error"))
        controller = make_controller(feed_server, config)

        controller.start()
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.READY
        assert run.error_message == RATE_LIMIT_ADVISORY
        assert run.output_log == []

    @pytest.mark.asyncio
    async def test_rejected_request_returns_to_ready(self, feed_server, config):
        feed_server.add_status(STRESS_PATH, 429, {"errorMessage": "Rate limit exceeded."})
        controller = make_controller(feed_server, config)

        controller.start()
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.READY
        assert run.error_message == RATE_LIMIT_ADVISORY

    @pytest.mark.asyncio
    async def test_error_payload_ends_done_and_stops_output(self, feed_server, config):
        feed_server.add_frames(
            STRESS_PATH,
            sse_frame({"outputLine": "init"}),
            sse_frame({"error": "Target host unreachable"}),
            sse_frame({"outputLine": "late line"}),
        )
        controller = make_controller(feed_server, config)

        controller.start()
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)
        await asyncio.sleep(0.05)

        assert run.status is RunStatus.DONE
        assert run.error_message == "Target host unreachable"
        assert controller.output_log == ["init"]

    @pytest.mark.asyncio
    async def test_server_closing_mid_run_keeps_received_lines(self, feed_server, config):
        feed_server.add_frames(STRESS_PATH, sse_frame({"outputLine": "init"}))
        controller = make_controller(feed_server, config)

        controller.start()
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.READY
        assert run.output_log == ["init"]
        assert run.error_message == RATE_LIMIT_ADVISORY

    @pytest.mark.asyncio
    async def test_unreadable_payloads_do_not_stall_the_run(self, feed_server, config):
        feed = feed_server.add_live(STRESS_PATH)
        controller = make_controller(feed_server, config)

        controller.start()
        feed.push('{"outputLine": ' + "1" * 5000 + "}")
        feed.push("[" * 200_000)
        feed.push({"outputLine": "complete"}, event="done")
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.DONE
        assert run.output_log[-1] == "complete"
        assert run.error_message is None
        assert controller.subscription is None

    @pytest.mark.asyncio
    async def test_unexpected_read_failure_returns_to_ready(self, feed_server, config):
        feed_server.add_error(STRESS_PATH, RuntimeError("socket exploded"))
        controller = make_controller(feed_server, config)

        controller.start()
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.READY
        assert run.error_message == RATE_LIMIT_ADVISORY
        assert controller.subscription is None

    @pytest.mark.asyncio
    async def test_api_key_header_is_sent(self, feed_server, config):
        feed_server.add_frames(STRESS_PATH, sse_frame({"outputLine": "x"}, event="done"))
        controller = make_controller(feed_server, config)

        controller.start()
        await asyncio.wait_for(controller.wait_settled(), timeout=2)

        request = feed_server.requests_to(STRESS_PATH)[0]
        assert request.headers["X-API-KEY"] == "test-key"


class TestStartAndReset:
    @pytest.mark.asyncio
    async def test_start_while_running_is_ignored(self, feed_server, config):
        feed_server.add_live(STRESS_PATH)
        controller = make_controller(feed_server, config)
        controller.start()
        subscription = controller.subscription

        assert controller.start() is False

        assert controller.subscription is subscription
        assert subscription.is_open
        controller.reset()

    @pytest.mark.asyncio
    async def test_reset_from_done_clears_everything(self, feed_server, config):
        feed_server.add_frames(
            STRESS_PATH,
            sse_frame({"outputLine": "init"}),
            sse_frame({"error": "boom"}),
        )
        controller = make_controller(feed_server, config)
        controller.start()
        await asyncio.wait_for(controller.wait_settled(), timeout=2)

        controller.reset()

        assert controller.status is RunStatus.READY
        assert controller.output_log == []
        assert controller.error_message is None

    @pytest.mark.asyncio
    async def test_stop_while_running_closes_feed_and_drops_late_lines(
        self, feed_server, config
    ):
        feed = feed_server.add_live(STRESS_PATH)
        controller = make_controller(feed_server, config)
        controller.start()
        feed.push({"outputLine": "init"})
        await wait_until(lambda: controller.output_log == ["init"])

        controller.stop()
        feed.push({"outputLine": "late"})
        await wait_until(lambda: feed.closed_by_client)

        assert controller.status is RunStatus.READY
        assert controller.output_log == []
        assert controller.subscription is None

    @pytest.mark.asyncio
    async def test_restart_keeps_a_single_live_subscription(self, feed_server, config):
        first_feed = feed_server.add_live(STRESS_PATH)
        second_feed = feed_server.add_live(STRESS_PATH)
        controller = make_controller(feed_server, config)

        controller.start()
        first_feed.push({"outputLine": "first run"})
        await wait_until(lambda: controller.output_log == ["first run"])
        first = controller.subscription
        controller.reset()
        controller.start()
        second_feed.push({"outputLine": "second run"})
        await wait_until(lambda: controller.output_log == ["second run"])

        assert first.is_closed
        assert controller.subscription is not first
        assert controller.subscription.is_open
        assert first_feed.closed_by_client
        controller.reset()

    @pytest.mark.asyncio
    async def test_setup_failure_returns_to_ready_with_message(self, feed_server, config):
        controller = make_controller(feed_server, config)

        with patch.object(StreamSubscription, "open", side_effect=RuntimeError("boom")):
            started = controller.start()

        assert started is False
        assert controller.status is RunStatus.READY
        assert controller.error_message == START_FAILED_ADVISORY
        assert controller.subscription is None
        assert feed_server.requests == []

    @pytest.mark.asyncio
    async def test_start_after_failure_clears_the_error(self, feed_server, config):
        feed_server.add_frames(STRESS_PATH, sse_frame(event="error"))
        feed_server.add_live(STRESS_PATH)
        controller = make_controller(feed_server, config)
        controller.start()
        await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert controller.start()

        assert controller.status is RunStatus.RUNNING
        assert controller.error_message is None
        controller.reset()


class TestObservers:
    @pytest.mark.asyncio
    async def test_listener_sees_each_state_change(self, feed_server, config):
        feed_server.add_frames(
            STRESS_PATH,
            sse_frame({"outputLine": "init"}),
            sse_frame({"outputLine": "complete"}, event="done"),
        )
        seen = []
        controller = make_controller(
            feed_server, config, listener=lambda run: seen.append((run.status, len(run.output_log)))
        )

        controller.start()
        await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert seen == [
            (RunStatus.RUNNING, 0),
            (RunStatus.RUNNING, 1),
            (RunStatus.DONE, 2),
        ]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_the_run(self, feed_server, config):
        feed_server.add_frames(STRESS_PATH, sse_frame({"outputLine": "done"}, event="done"))
        listener = Mock(side_effect=ValueError("render failed"))
        controller = make_controller(feed_server, config, listener=listener)

        controller.start()
        run = await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert run.status is RunStatus.DONE
        assert listener.call_count == 2

    @pytest.mark.asyncio
    async def test_recorder_receives_events(self, feed_server, config):
        feed_server.add_frames(
            STRESS_PATH,
            sse_frame({"outputLine": "init"}),
            sse_frame({"outputLine": "complete"}, event="done"),
        )
        recorder = RunTranscriptRecorder()
        controller = make_controller(feed_server, config, recorder=recorder)

        controller.start()
        await asyncio.wait_for(controller.wait_settled(), timeout=2)

        assert [e.event_type for e in recorder.get_events()] == ["message", "done"]


@pytest.mark.parametrize(
    "status,can_start,can_reset",
    [
        (RunStatus.READY, True, False),
        (RunStatus.RUNNING, False, True),
        (RunStatus.DONE, True, True),
    ],
)
def test_run_affordances(status, can_start, can_reset):
    run = LoadTestRun(status=status)

    assert run.can_start is can_start
    assert run.can_reset is can_reset
