"""
Readiness Module

Bounded polling helpers for code that connects to a harness container. A
container reports running well before the service inside accepts
connections, so connectors poll until the service answers or time runs out.
"""

import socket
import time
from typing import Callable, Tuple, Type, TypeVar

from utils import WaitTimeoutError, logger

T = TypeVar("T")

DEFAULT_INTERVAL = 0.05


def wait_for_port(
    host: str, port, timeout: float, interval: float = DEFAULT_INTERVAL
):
    """Block until a TCP connection to host:port succeeds"""

    def connect():
        with socket.create_connection((host, int(port)), timeout=max(interval, 0.5)):
            return True

    try:
        retry_until(connect, timeout, interval, exceptions=(OSError,))
    except WaitTimeoutError as e:
        raise WaitTimeoutError(
            f"{host}:{port} did not accept connections within {timeout}s", timeout
        ) from e.__cause__


def retry_until(
    func: Callable[[], T],
    timeout: float,
    interval: float = DEFAULT_INTERVAL,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """Call func until it returns without raising one of `exceptions`.

    Raises WaitTimeoutError, chained to the last failure, once `timeout`
    seconds have passed.
    """
    deadline = time.monotonic() + timeout
    attempts = 0
    while True:
        attempts += 1
        try:
            return func()
        except exceptions as e:
            if time.monotonic() >= deadline:
                logger.info("Gave up waiting", attempts=attempts, error=str(e))
                raise WaitTimeoutError(
                    f"gave up after {attempts} attempts in {timeout}s: {e}", timeout
                ) from e
        time.sleep(interval)
