import logging
import sys

import serial.tools.list_ports

from .cli import parse_args
from .logs import setup_logging
from .metrics import MetricsStore
from .serial_reader import Reader
from .server import BindError, MetricsServer
from .shutdown import Shutdown

logger = logging.getLogger("pms5003_exporter")


def list_comports():
    """List all sorted COM ports."""
    return sorted([p.device for p in serial.tools.list_ports.comports()],
                  key=lambda x: int(''.join(filter(str.isdigit, x)) or 0))


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level)

    if args.list_ports:
        for port in list_comports():
            print(port)
        return 0

    store = MetricsStore()

    try:
        server = MetricsServer((args.host, args.port), store)
    except BindError as e:
        logger.error("%s", e)
        return 1

    shutdown = Shutdown()
    shutdown.install_signal_handlers()

    reader = Reader(args.device, store, shutdown.event)
    tasks = [
        shutdown.run_task("serial-reader", reader.run),
        shutdown.run_task("http-server", server.serve, shutdown.event),
    ]

    # Wait in short slices so the signal handlers get to run on this thread
    while not shutdown.wait(0.5):
        pass

    for task in tasks:
        task.join()

    logger.info("Exporter stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
