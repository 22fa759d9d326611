"""
tests/test_handshake.py — Hello/Identify/Identified against the fake OBS.
"""

import base64
import hashlib

import pytest

from obs_session.core.errors import OBSAuthenticationError, OBSTransportError
from obs_session.core.handshake import EVENT_SUBSCRIPTION_ALL, HandshakeCoordinator, build_auth_string

from conftest import CHALLENGE, SALT


def test_auth_string_follows_obs_recipe():
    secret = base64.b64encode(hashlib.sha256(b"supersecret" + SALT.encode()).digest())
    expected = base64.b64encode(hashlib.sha256(secret + CHALLENGE.encode()).digest()).decode()
    assert build_auth_string("supersecret", SALT, CHALLENGE) == expected
    assert build_auth_string("other", SALT, CHALLENGE) != expected


@pytest.mark.asyncio
async def test_identify_without_auth(obs_server):
    transport = obs_server()
    await transport.connect("ws://obs.local:4455")

    identified = await HandshakeCoordinator().run(transport)

    assert identified == {"negotiatedRpcVersion": 1}
    identify = transport.sent[0]
    assert identify == {"op": 1, "d": {"rpcVersion": 1, "eventSubscriptions": EVENT_SUBSCRIPTION_ALL}}


@pytest.mark.asyncio
async def test_identify_with_auth(obs_server):
    obs_server.password = "supersecret"
    transport = obs_server()
    await transport.connect("ws://obs.local:4455")

    await HandshakeCoordinator(event_subscriptions=0).run(transport, "supersecret")

    d = transport.sent[0]["d"]
    assert d["authentication"] == build_auth_string("supersecret", SALT, CHALLENGE)
    assert d["eventSubscriptions"] == 0


@pytest.mark.asyncio
async def test_rejected_password(obs_server):
    obs_server.password = "supersecret"
    transport = obs_server()
    await transport.connect("ws://obs.local:4455")

    with pytest.raises(OBSAuthenticationError, match="Authentication failed."):
        await HandshakeCoordinator().run(transport, "wrongpass")


@pytest.mark.asyncio
async def test_missing_password_when_required(obs_server):
    obs_server.password = "supersecret"
    transport = obs_server()
    await transport.connect("ws://obs.local:4455")

    with pytest.raises(OBSAuthenticationError):
        await HandshakeCoordinator().run(transport, "")


@pytest.mark.asyncio
async def test_close_before_hello(obs_server):
    transport = obs_server()
    transport.remote_close(1011, "internal error")

    with pytest.raises(OBSTransportError) as exc:
        await HandshakeCoordinator().run(transport)

    assert exc.value.close_code == 1011
    assert "Hello" in str(exc.value)


@pytest.mark.asyncio
async def test_ignores_unrelated_frames_before_hello(obs_server):
    transport = obs_server()
    transport.push({"op": 5, "d": {"eventType": "ExitStarted"}})
    await transport.connect("ws://obs.local:4455")

    assert await HandshakeCoordinator().run(transport) == {"negotiatedRpcVersion": 1}
