# deployer/utils.py
import logging
import signal
import time
from typing import Callable, Optional, TypeVar

import boto3

log = logging.getLogger("deployer.utils")

T = TypeVar("T")


class PollTimeout(Exception):
    def __init__(self, attempts: int, elapsed: float):
        super().__init__(f"Gave up after {attempts} attempt(s), {int(elapsed)}s elapsed")
        self.attempts = attempts
        self.elapsed = elapsed


def poll_until(
    check: Callable[[int], Optional[T]],
    interval: float,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call check(attempt) until it returns something other than None.

    The first call happens immediately; `interval` seconds pass between calls.
    Raises PollTimeout once `timeout` seconds have elapsed or `max_attempts`
    calls have returned None. Exceptions raised by check propagate.
    """
    if timeout is None and max_attempts is None:
        raise ValueError("poll_until needs a timeout or max_attempts")

    start = clock()
    attempt = 0
    while True:
        elapsed = clock() - start
        if timeout is not None and elapsed > timeout:
            raise PollTimeout(attempt, elapsed)

        attempt += 1
        result = check(attempt)
        if result is not None:
            return result

        if max_attempts is not None and attempt >= max_attempts:
            raise PollTimeout(attempt, clock() - start)
        sleep(interval)


def make_session(region: str, profile: Optional[str] = None):
    if profile:
        return boto3.Session(profile_name=profile, region_name=region)
    return boto3.Session(region_name=region)


def prompt_confirm(prompt: str) -> bool:
    """Ask on the terminal; only y/Y confirms. A closed stdin declines."""
    try:
        reply = input(f"{prompt} (y/N): ").strip()
    except EOFError:
        print()
        log.warning("No answer on stdin for %r; treating as no", prompt)
        return False
    return reply[:1] in ("y", "Y")


def always_confirm(prompt: str) -> bool:
    log.info("%s -> yes (--yes)", prompt)
    return True


def install_interrupt_notice(stack_name: str):
    """
    Log a one-off notice on SIGINT/SIGTERM, then let the process terminate.
    In-flight CloudFormation operations are not rolled back.
    """
    previous = {}

    def _handler(signum, frame):
        log.warning("Script interrupted. Deployment may still be in progress.")
        log.info("Check CloudFormation console for stack status: %s", stack_name)
        for sig, old in previous.items():
            signal.signal(sig, old)
        raise KeyboardInterrupt

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, _handler)
    return _handler
