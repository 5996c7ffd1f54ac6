"""Unit tests for the client entry point.

Runs the whole control plane against fake collaborators: a transport that
echoes pings like the remote station does, and idle audio workers.
"""

import asyncio
from pathlib import Path

import pytest

from remote_audio.audio import AudioRole, AudioWorker
from remote_audio.client import load_config, main, parse_args, run_client
from remote_audio.codec import ServerResponse, decode_request, encode_response
from remote_audio.collaborators import CollaboratorContext
from remote_audio.config import ClientConfig
from remote_audio.errors import CollaboratorLoadError
from remote_audio.events import Topic
from remote_audio.pipeline import WireMessage
from remote_audio.session import ConnectionStatus
from remote_audio.transport import BrokerTransport


class EchoTransport(BrokerTransport):
    """Transport that answers every ping with a pong, as the station would."""

    def __init__(self, context: CollaboratorContext) -> None:
        super().__init__(context)
        self.sent: list[WireMessage] = []
        self.connected = asyncio.Event()
        self.exited = False

    @property
    def transport_type(self) -> str:
        return "echo"

    async def run(self) -> None:
        await self.set_status(ConnectionStatus.CONNECTING)
        await self.set_status(ConnectionStatus.CONNECTED)
        self.connected.set()

        forwarder = asyncio.create_task(self._forward())
        await self.wait_for_shutdown()
        forwarder.cancel()
        await asyncio.gather(forwarder, return_exceptions=True)
        self.exited = True

    async def _forward(self) -> None:
        while True:
            message = await self.context.pipeline.outbound.get()
            self.sent.append(message)
            request = decode_request(message.payload)
            if request.is_ping:
                pong = ServerResponse(
                    online=True,
                    ping_origin=request.ping_origin,
                    pong=request.ping_timestamp,
                )
                await self.deliver(self.context.topics.response, encode_response(pong))


class IdleAudio(AudioWorker):
    """Audio worker that records start and exit."""

    def __init__(self, context: CollaboratorContext, role: AudioRole) -> None:
        super().__init__(context, role)
        self.started = False
        self.exited = False

    async def run(self) -> None:
        self.started = True
        await self.wait_for_shutdown()
        self.exited = True


class FailingRecorder(AudioWorker):
    """Recorder whose device cannot be opened."""

    async def run(self) -> None:
        raise OSError("no input device")


class Collaborators:
    """Factories that remember what they built."""

    def __init__(self) -> None:
        self.transport: EchoTransport | None = None
        self.player: IdleAudio | None = None
        self.recorder: AudioWorker | None = None
        self.recorder_cls: type[AudioWorker] = IdleAudio

    def make_transport(self, context: CollaboratorContext) -> EchoTransport:
        self.transport = EchoTransport(context)
        return self.transport

    def make_player(self, context: CollaboratorContext) -> IdleAudio:
        self.player = IdleAudio(context, AudioRole.PLAYER)
        return self.player

    def make_recorder(self, context: CollaboratorContext) -> AudioWorker:
        self.recorder = self.recorder_cls(context, AudioRole.RECORDER)
        return self.recorder


@pytest.fixture
def config() -> ClientConfig:
    """Fast-ticking configuration without the status server."""
    return ClientConfig().with_overrides(
        {
            "webui": {"disabled": True},
            "pipeline": {"ping_interval_s": 0.02, "startup_stagger_ms": 0},
        }
    )


def start(config: ClientConfig, collaborators: Collaborators) -> "asyncio.Task[int]":
    return asyncio.create_task(
        run_client(
            config,
            transport_factory=collaborators.make_transport,
            player_factory=collaborators.make_player,
            recorder_factory=collaborators.make_recorder,
            install_signal_handlers=False,
        )
    )


async def wait_for_transport(collaborators: Collaborators) -> EchoTransport:
    """Wait until the transport has been built and connected."""
    for _ in range(100):
        if collaborators.transport is not None:
            break
        await asyncio.sleep(0.01)
    assert collaborators.transport is not None
    await asyncio.wait_for(collaborators.transport.connected.wait(), timeout=1.0)
    return collaborators.transport


@pytest.mark.asyncio
async def test_client_runs_and_shuts_down(config: ClientConfig) -> None:
    """Test pings flow, RTT is published and all workers exit on os_exit."""
    collaborators = Collaborators()
    running = start(config, collaborators)

    transport = await wait_for_transport(collaborators)
    bus = transport.context.bus
    rtt = bus.subscribe(Topic.PING)

    assert await asyncio.wait_for(rtt.get(), timeout=1.0) >= 0
    assert transport.sent[0].topic == "mystation/radios/myradio/audio/request"
    assert len(transport.context.identity) == 10

    await bus.publish(Topic.OS_EXIT, True)
    assert await asyncio.wait_for(running, timeout=2.0) == 0

    assert transport.exited
    assert collaborators.player is not None and collaborators.player.exited
    assert collaborators.recorder is not None
    assert bus.closed


@pytest.mark.asyncio
async def test_audio_intent_reaches_transport(config: ClientConfig) -> None:
    """Test the local audio intent is sent once connected."""
    collaborators = Collaborators()
    running = start(config, collaborators)

    transport = await wait_for_transport(collaborators)
    bus = transport.context.bus
    # Wait for the first pong so the control loop has seen CONNECTED
    rtt = bus.subscribe(Topic.PING)
    await asyncio.wait_for(rtt.get(), timeout=1.0)

    await bus.publish(Topic.REQUEST_SERVER_AUDIO_ON, True)
    for _ in range(100):
        requests = [decode_request(m.payload) for m in transport.sent]
        if any(r.audio_stream_on is True for r in requests):
            break
        await asyncio.sleep(0.01)
    else:
        pytest.fail("audio request was not sent")

    await bus.publish(Topic.OS_EXIT, True)
    assert await asyncio.wait_for(running, timeout=2.0) == 0


@pytest.mark.asyncio
async def test_failing_worker_does_not_block_shutdown(config: ClientConfig) -> None:
    """Test a worker that crashes still releases the shutdown barrier."""
    collaborators = Collaborators()
    collaborators.recorder_cls = FailingRecorder
    running = start(config, collaborators)

    transport = await wait_for_transport(collaborators)
    await transport.context.bus.publish(Topic.OS_EXIT, "SIGTERM")

    assert await asyncio.wait_for(running, timeout=2.0) == 0


@pytest.mark.asyncio
async def test_missing_collaborator() -> None:
    """Test unresolvable collaborators fail before anything starts."""
    with pytest.raises(CollaboratorLoadError):
        await run_client(ClientConfig(), install_signal_handlers=False)


def test_parse_args_defaults() -> None:
    """Test no flags leaves every override unset."""
    args = parse_args([])

    assert args.config is None
    assert args.broker_url is None
    assert args.webui_disabled is None


def test_cli_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test command-line flags override file and environment values."""
    monkeypatch.setenv("REMOTE_AUDIO_STATION", "from-env")
    args = parse_args(
        ["-u", "broker.example.org", "-p", "8883", "-X", "dl0abc", "-Y", "ic7300",
         "--webui-disabled", "--webui-port", "9090", "--log-level", "DEBUG"]
    )

    config = load_config(args)

    assert config.mqtt.broker_url == "broker.example.org"
    assert config.mqtt.broker_port == 8883
    assert config.mqtt.station == "dl0abc"
    assert config.mqtt.radio == "ic7300"
    assert config.webui.disabled is True
    assert config.webui.port == 9090
    assert config.webui.address == "127.0.0.1"
    assert config.logging.level == "DEBUG"


def test_main_missing_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test a missing config file exits with status 1."""
    with pytest.raises(SystemExit) as exc_info:
        main(["--config", str(tmp_path / "missing.yaml")])

    assert exc_info.value.code == 1
    assert "Error" in capsys.readouterr().err


def test_main_invalid_override(capsys: pytest.CaptureFixture[str]) -> None:
    """Test an invalid flag value exits with status 1."""
    with pytest.raises(SystemExit) as exc_info:
        main(["-X", "a/b"])

    assert exc_info.value.code == 1
    assert "Failed to load configuration" in capsys.readouterr().err


def test_main_without_collaborators(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test the CLI exits with status 1 when no transport is configured."""
    monkeypatch.setattr("remote_audio.client.setup_logging", lambda **kwargs: None)

    with pytest.raises(SystemExit) as exc_info:
        main(["--webui-disabled"])

    assert exc_info.value.code == 1
    assert "No player configured" in capsys.readouterr().err
