import argparse

from . import __version__


def parse_port(value):
    port = int(value)
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port must be between 1 and 65535, got {port}")
    return port


def parse_args(argv=None):
    """Parse command line arguments."""

    parser = argparse.ArgumentParser(
        prog="pms5003-exporter",
        description="Serve PMS5003 particulate matter readings as Prometheus metrics")

    parser.add_argument("device", nargs="?", help="Serial device of the sensor (e.g. /dev/ttyUSB0 or COM4)")
    parser.add_argument("--host", default="127.0.0.1", help="Address to listen on. Default: 127.0.0.1")
    parser.add_argument("--port", type=parse_port, default=3000, help="Port to listen on. Default: 3000")
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Diagnostics verbosity. Default: INFO"
    )
    parser.add_argument("--list-ports", action="store_true", help="List the available serial ports and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    if args.device is None and not args.list_ports:
        parser.error("the following arguments are required: device")

    return args
