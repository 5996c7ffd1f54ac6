"""Client entry point: wires the control plane and starts the workers.

Start-up order:
1. Bus, pipeline queues and the shutdown barrier (one slot per worker)
2. Control loop (subscribes before anything can publish)
3. Status server and system-event watcher
4. Player, recorder, then transport, staggered so the audio streams are
   open before the broker connection comes up

The process exits once the control loop has seen shutdown and every worker
has returned.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from remote_audio.bus import EventBus
from remote_audio.collaborators import (
    CollaboratorContext,
    Worker,
    WorkerFactory,
    load_collaborator,
)
from remote_audio.config import ClientConfig
from remote_audio.control import ControlLoop
from remote_audio.errors import CollaboratorLoadError
from remote_audio.logging_setup import setup_logging
from remote_audio.pipeline import Pipeline, Topics
from remote_audio.shutdown import ShutdownBarrier, run_worker
from remote_audio.signals import SystemEventWatcher
from remote_audio.status_server import StatusServer

logger = logging.getLogger(__name__)


async def run_client(
    config: ClientConfig,
    *,
    transport_factory: WorkerFactory | None = None,
    player_factory: WorkerFactory | None = None,
    recorder_factory: WorkerFactory | None = None,
    install_signal_handlers: bool = True,
) -> int:
    """Run the client until shutdown completes.

    Factories not passed explicitly are resolved from ``config.collaborators``.

    Args:
        config: Client configuration
        transport_factory: Broker transport factory override
        player_factory: Audio player factory override
        recorder_factory: Audio recorder factory override
        install_signal_handlers: Publish ``os_exit`` on SIGINT/SIGTERM

    Returns:
        Process exit code

    Raises:
        CollaboratorLoadError: If a factory cannot be resolved from config
    """
    collaborators = config.collaborators
    player_factory = player_factory or load_collaborator(collaborators.player, "player")
    recorder_factory = recorder_factory or load_collaborator(collaborators.recorder, "recorder")
    transport_factory = transport_factory or load_collaborator(
        collaborators.transport, "transport"
    )

    config = config.with_identity()
    identity = config.general.user_id
    topics = Topics.for_radio(config.mqtt.station, config.mqtt.radio)

    bus = EventBus(capacity=config.pipeline.bus_capacity)
    pipeline = Pipeline.from_config(topics, config.pipeline)
    context = CollaboratorContext(config=config, bus=bus, pipeline=pipeline, identity=identity)

    workers: list[Worker] = [
        player_factory(context),
        recorder_factory(context),
        transport_factory(context),
    ]
    barrier = ShutdownBarrier(len(workers))

    control = ControlLoop(
        bus=bus,
        pipeline=pipeline,
        identity=identity,
        barrier=barrier,
        ping_interval_s=config.pipeline.ping_interval_s,
    )

    logger.info(
        "Starting remote audio client",
        extra={
            "identity": identity,
            "broker": f"{config.mqtt.broker_url}:{config.mqtt.broker_port}",
            "topic_base": topics.base,
        },
    )

    status_server: StatusServer | None = None
    if not config.webui.disabled:
        status_server = StatusServer(bus, config.webui.address, config.webui.port)

    watcher = SystemEventWatcher(bus) if install_signal_handlers else None

    control_task = asyncio.create_task(control.run())
    worker_tasks: list[asyncio.Task[None]] = []
    try:
        if status_server is not None:
            await status_server.start()
        if watcher is not None:
            watcher.start()

        stagger_s = config.pipeline.startup_stagger_ms / 1000
        for index, worker in enumerate(workers):
            if index > 0 and stagger_s > 0:
                await asyncio.sleep(stagger_s)
            worker_tasks.append(
                asyncio.create_task(run_worker(barrier, worker.name, worker.run()))
            )

        await control_task
    finally:
        if watcher is not None:
            watcher.stop()
        if status_server is not None:
            await status_server.stop()
        bus.close()

        pending = [t for t in (control_task, *worker_tasks) if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(control_task, *worker_tasks, return_exceptions=True)

    logger.info("Remote audio client stopped")
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Arguments to parse (defaults to ``sys.argv[1:]``)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(description="Remote audio client")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to client configuration YAML file",
    )
    parser.add_argument("-u", "--broker-url", type=str, help="Broker host name")
    parser.add_argument("-p", "--broker-port", type=int, help="Broker port")
    parser.add_argument("-X", "--station", type=str, help="Station to connect to")
    parser.add_argument("-Y", "--radio", type=str, help="Radio ID on the station")
    parser.add_argument(
        "--webui-disabled",
        action="store_true",
        default=None,
        help="Disable the status server",
    )
    parser.add_argument("--webui-address", type=str, help="Status server bind address")
    parser.add_argument("--webui-port", type=int, help="Status server bind port")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ClientConfig:
    """Load configuration and apply command-line overrides (CLI > ENV > file).

    Raises:
        FileNotFoundError: If ``--config`` names a missing file
        ValueError: If the file or an override fails validation
    """
    if args.config is not None:
        config = ClientConfig.from_yaml(args.config)
    else:
        config = ClientConfig.from_yaml_with_defaults()

    return config.with_overrides(
        {
            "mqtt": {
                "broker_url": args.broker_url,
                "broker_port": args.broker_port,
                "station": args.station,
                "radio": args.radio,
            },
            "webui": {
                "disabled": args.webui_disabled,
                "address": args.webui_address,
                "port": args.webui_port,
            },
            "logging": {"level": args.log_level},
        }
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: Failed to load configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(level=config.logging.level, format_type=config.logging.format)

    try:
        exit_code = asyncio.run(run_client(config))
    except CollaboratorLoadError as e:
        logger.error("Cannot start client", extra={"error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
