"""Handle for the Janus echotest plugin.

The echotest plugin sends back whatever media it receives. Media capture and
the peer connection belong to the application; this handle covers the
signalling: controlling what gets echoed, exchanging the SDP offer/answer and
tracking the state the gateway pushes.
"""

from typing import Any

from janus_session.plugin import Plugin
from janus_session.types import DETACHED, EVENT, HANGUP, MEDIA, SLOWLINK, WEBRTCUP, JanusMessage


class EchoTestPlugin(Plugin):
    name = "janus.plugin.echotest"
    label = "echotest"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.webrtc_up = False
        self.receiving: dict[str, bool] = {}
        self.slow_link = False
        self.last_result: dict[str, Any] | None = None
        self.hangup_reason: str | None = None

    async def set_video(self, enabled: bool) -> JanusMessage:
        """Tell the echotest plugin to forward video or not."""
        return await self.send_message({"video": enabled})

    async def set_audio(self, enabled: bool) -> JanusMessage:
        """Tell the echotest plugin to forward audio or not."""
        return await self.send_message({"audio": enabled})

    async def set_bitrate(self, bitrate: int) -> JanusMessage:
        """Ask the echotest plugin to cap the bandwidth through REMB."""
        return await self.send_message({"bitrate": bitrate})

    async def negotiate(self, offer: dict[str, Any], audio: bool = True, video: bool = True) -> dict[str, Any]:
        """Submit an SDP offer and return the SDP answer."""
        response = await self.send_message({"audio": audio, "video": video}, jsep=offer)
        if response.jsep is None:
            raise ValueError(f"Echotest reply to an offer carries no jsep: {response.janus}")
        self.log.debug("received SDP answer")
        self._record_event(response)
        return response.jsep

    def receive(self, msg: JanusMessage) -> None:
        if msg.janus == DETACHED:
            self.log.info("now detached")
            self.mark_detached()
        elif msg.janus == WEBRTCUP:
            self.webrtc_up = True
            self.log.info("PeerConnection is up")
        elif msg.janus == MEDIA:
            kind = getattr(msg, "type", None)
            if kind is not None:
                self.receiving[kind] = bool(getattr(msg, "receiving", False))
        elif msg.janus == SLOWLINK:
            self.slow_link = True
            self.log.warning("gateway reports a slow link")
        elif msg.janus == HANGUP:
            self.webrtc_up = False
            self.hangup_reason = getattr(msg, "reason", None)
            self.log.info(f"hangup: {self.hangup_reason}")
        elif msg.janus == EVENT:
            self._record_event(msg)
        else:
            self.log.info(f"received {msg.janus} message but not yet implemented")

    def _record_event(self, msg: JanusMessage) -> None:
        if msg.plugindata is not None:
            self.last_result = msg.plugindata.get("data")
