"""Command-line and environment configuration of the server."""

from __future__ import annotations

import argparse
import ipaddress
import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Callable, Sequence

VERSION = "2.0.0"


class ProtocolVersionArg(Enum):
    """Protocol versions the server can speak."""

    V14 = "14"

    def __str__(self) -> str:
        return self.value


class SeedBackendArg(Enum):
    """Where the long-term identity seed is kept while running."""

    MEMORY = "memory"
    KRS = "krs"
    SSH_AGENT = "ssh-agent"

    def __str__(self) -> str:
        return self.value


def default_num_threads() -> int:
    """Number of available CPUs, at least one."""
    return min(os.cpu_count() or 1, 0xFFFF)


@dataclass
class Args:
    """Server configuration."""

    batch_size: int = 64
    interface: str = "0.0.0.0"
    port: int = 2003
    tcp_port: int | None = None
    num_threads: int = field(default_factory=default_num_threads)
    protocol: ProtocolVersionArg = ProtocolVersionArg.V14
    fixed_offset: int = 0
    quiet: bool = False
    rotation_interval: int = 24
    metrics_interval: int = 60
    seed: str = ""
    seed_backend: SeedBackendArg = SeedBackendArg.MEMORY
    metrics_output: str | None = None
    verbose: int = 0

    def _interface_address(self) -> str:
        try:
            return str(ipaddress.ip_address(self.interface))
        except ValueError:
            raise ValueError(
                f"invalid IP address or interface name: {self.interface!r}"
            ) from None

    def udp_socket_addr(self) -> tuple[str, int]:
        """The ``(host, port)`` the UDP socket binds to."""
        return self._interface_address(), self.port

    def tcp_socket_addr(self) -> tuple[str, int] | None:
        """The ``(host, port)`` of the TCP listener, or None if TCP is disabled."""
        if self.tcp_port is None:
            return None
        return self._interface_address(), self.tcp_port

    def rotation_period(self) -> timedelta:
        """How long a short-term signing key stays valid."""
        return timedelta(hours=self.rotation_interval)


def _int_range(low: int, high: int | None) -> Callable[[str], int]:
    def convert(text: str) -> int:
        try:
            value = int(text)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid integer: {text!r}") from None
        if value < low or (high is not None and value > high):
            upper = "" if high is None else str(high)
            raise argparse.ArgumentTypeError(f"{value} is not in {low}..{upper}")
        return value

    return convert


def _enum_type(enum_cls: type[Enum]) -> Callable[[str], Enum]:
    def convert(text: str) -> Enum:
        try:
            return enum_cls(text)
        except ValueError:
            choices = ", ".join(member.value for member in enum_cls)
            raise argparse.ArgumentTypeError(
                f"invalid value {text!r} (choose from {choices})"
            ) from None

    return convert


_U16 = _int_range(0, 0xFFFF)


def _build_parser() -> argparse.ArgumentParser:
    env = os.environ
    parser = argparse.ArgumentParser(
        prog="roughenough_server", description="Roughenough roughtime server"
    )
    parser.add_argument("-V", "--version", action="version", version=VERSION)
    parser.add_argument(
        "-b",
        "--batch-size",
        metavar="N",
        type=_int_range(1, 64),
        default=env.get("ROUGHENOUGH_BATCH_SIZE", "64"),
        help="The maximum number of requests to process in one batch",
    )
    parser.add_argument(
        "-i",
        "--interface",
        default=env.get("ROUGHENOUGH_INTERFACE", "0.0.0.0"),
        help="IP address or interface name to listen on",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=_U16,
        default=env.get("ROUGHENOUGH_PORT", "2003"),
        help="UDP port to listen on",
    )
    parser.add_argument(
        "--tcp-port",
        type=_U16,
        default=env.get("ROUGHENOUGH_TCP_PORT"),
        help="TCP port to listen on (enables TCP transport alongside UDP)",
    )
    parser.add_argument(
        "-j",
        "--num-threads",
        metavar="N",
        type=_U16,
        default=env.get("ROUGHENOUGH_NUM_THREADS", default_num_threads()),
        help="Number of worker threads to process requests in parallel",
    )
    parser.add_argument(
        "-P",
        "--protocol",
        metavar="PROTOCOL",
        type=_enum_type(ProtocolVersionArg),
        default=env.get("ROUGHENOUGH_PROTOCOL", ProtocolVersionArg.V14.value),
        help="Version of the protocol to use",
    )
    parser.add_argument(
        "--fixed-offset",
        metavar="N",
        type=_int_range(-0x8000, 0x7FFF),
        default=env.get("ROUGHENOUGH_FIXED_OFFSET", "0"),
        help="Number of seconds to add/subtract from the wall clock time; for testing",
    )
    parser.add_argument(
        "--rotation-interval",
        metavar="HOURS",
        type=_U16,
        default=env.get("ROUGHENOUGH_ROTATION_INTERVAL", "24"),
        help="How often (in hours) the short-term signing key is rotated",
    )
    parser.add_argument(
        "--metrics-interval",
        metavar="SECONDS",
        type=_int_range(0, 0xFFFFFFFFFFFFFFFF),
        default=env.get("ROUGHENOUGH_METRICS_INTERVAL", "60"),
        help="How often (in seconds) to log operational information",
    )
    parser.add_argument(
        "--seed",
        metavar="SEED",
        default=env.get("ROUGHENOUGH_SEED", ""),
        help="Secret value for the server's long-term identity",
    )
    parser.add_argument(
        "--seed-backend",
        metavar="TYPE",
        type=_enum_type(SeedBackendArg),
        default=env.get("ROUGHENOUGH_SEED_BACKEND", SeedBackendArg.MEMORY.value),
        help="How to store the server's long-term identity while it's running",
    )
    parser.add_argument(
        "--metrics-output",
        metavar="PATH",
        default=env.get("ROUGHENOUGH_METRICS_OUTPUT"),
        help="Directory where JSON metrics files will be written",
    )

    chatter = parser.add_mutually_exclusive_group()
    chatter.add_argument(
        "-q", "--quiet", action="store_true", help="Keep quiet and only log errors"
    )
    chatter.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Output details about requests and responses; repeat for more detail",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> Args:
    """Parse command-line arguments, falling back to ROUGHENOUGH_* variables."""
    ns = _build_parser().parse_args(argv)
    return Args(
        batch_size=ns.batch_size,
        interface=ns.interface,
        port=ns.port,
        tcp_port=ns.tcp_port,
        num_threads=ns.num_threads,
        protocol=ns.protocol,
        fixed_offset=ns.fixed_offset,
        quiet=ns.quiet,
        rotation_interval=ns.rotation_interval,
        metrics_interval=ns.metrics_interval,
        seed=ns.seed,
        seed_backend=ns.seed_backend,
        metrics_output=ns.metrics_output,
        verbose=ns.verbose,
    )