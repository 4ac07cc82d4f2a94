import anyio
import pytest

from janus_session.plugins import EchoTestPlugin

OFFER = {"type": "offer", "sdp": "v=0\r\no=- 4611731400430051336 2 IN IP4 127.0.0.1"}


@pytest.mark.anyio
async def test_controls_send_message_bodies(connect, gateway):
    async with connect() as session:
        await session.create()
        plugin = EchoTestPlugin()
        await session.attach_plugin(plugin)

        await plugin.set_video(False)
        await plugin.set_audio(True)
        await plugin.set_bitrate(128000)

        bodies = [request["body"] for request in gateway.requests if request["janus"] == "message"]
        assert bodies == [{"video": False}, {"audio": True}, {"bitrate": 128000}]
        assert gateway.requests[1]["plugin"] == "janus.plugin.echotest"


@pytest.mark.anyio
async def test_negotiate_returns_answer(connect, gateway):
    async with connect() as session:
        await session.create()
        plugin = EchoTestPlugin()
        await session.attach_plugin(plugin)

        answer = await plugin.negotiate(OFFER, video=False)

        assert answer["type"] == "answer"
        request = gateway.requests[-1]
        assert request["jsep"] == OFFER
        assert request["body"] == {"audio": True, "video": False}
        assert plugin.last_result == {"echotest": "event", "result": "ok"}


@pytest.mark.anyio
async def test_tracks_pushed_state(connect, gateway):
    async with connect() as session:
        await session.create()
        plugin = EchoTestPlugin()
        await session.attach_plugin(plugin)

        pushes = [
            {"janus": "webrtcup"},
            {"janus": "media", "type": "audio", "receiving": True},
            {"janus": "media", "type": "video", "receiving": False},
            {"janus": "slowlink", "uplink": True, "lost": 12},
        ]
        for push in pushes:
            await gateway.push({**push, "session_id": 1234, "sender": 55})
        # A request round trip flushes the pushes queued before it.
        await session.info()

        assert plugin.webrtc_up
        assert plugin.receiving == {"audio": True, "video": False}
        assert plugin.slow_link

        await gateway.push({"janus": "hangup", "session_id": 1234, "sender": 55, "reason": "DTLS alert"})
        await gateway.push({"janus": "detached", "session_id": 1234, "sender": 55})
        await session.info()

        assert not plugin.webrtc_up
        assert plugin.hangup_reason == "DTLS alert"
        assert not plugin.attached


@pytest.mark.anyio
async def test_gateway_detach_starts_cleanup(connect, gateway):
    async with connect(cleanup_grace_seconds=0.05) as session:
        await session.create()
        plugin = EchoTestPlugin()
        await session.attach_plugin(plugin)
        detached: list[EchoTestPlugin] = []
        plugin.add_detached_callback(detached.append)

        await gateway.push({"janus": "detached", "session_id": 1234, "sender": 55})
        with anyio.fail_after(1):
            while 55 in session.plugins:
                await anyio.sleep(0.01)

        assert not plugin.attached
        assert detached == [plugin]
        assert "detach" not in gateway.kinds
