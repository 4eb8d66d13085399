# deployer/monitor.py
import logging
import time

from botocore.exceptions import BotoCoreError, ClientError

from deployer.errors import DeploymentFailed, DeploymentTimeout
from deployer.utils import PollTimeout, poll_until

log = logging.getLogger("deployer.monitor")

SUCCESS_STATUSES = {"CREATE_COMPLETE", "UPDATE_COMPLETE"}
FAILURE_STATUSES = {
    "CREATE_FAILED",
    "UPDATE_FAILED",
    "ROLLBACK_COMPLETE",
    "ROLLBACK_FAILED",
    "UPDATE_ROLLBACK_COMPLETE",
    "UPDATE_ROLLBACK_FAILED",
}
EVENT_DUMP_LIMIT = 15


class DeploymentMonitor:
    def __init__(self, cfn, stack_name, interval=30, timeout=2400, sleep=time.sleep, clock=time.monotonic):
        self.cfn = cfn
        self.stack_name = stack_name
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self.polls = 0

    def stack_status(self):
        try:
            resp = self.cfn.describe_stacks(StackName=self.stack_name)
            return resp["Stacks"][0]["StackStatus"]
        except (ClientError, BotoCoreError, KeyError, IndexError) as e:
            log.debug("Status query for %s failed: %s", self.stack_name, e)
            return "UNKNOWN"

    def recent_events(self, limit=EVENT_DUMP_LIMIT):
        try:
            events = self.cfn.describe_stack_events(StackName=self.stack_name).get("StackEvents", [])
        except (ClientError, BotoCoreError) as e:
            log.warning("Could not fetch stack events: %s", e)
            return []
        return events[:limit]

    def dump_events(self):
        events = self.recent_events()
        log.info("Recent stack events:")
        for ev in events:
            log.info(
                "  %s | %s | %s | %s | %s",
                ev.get("Timestamp"),
                ev.get("ResourceStatus"),
                ev.get("ResourceType"),
                ev.get("LogicalResourceId"),
                ev.get("ResourceStatusReason", ""),
            )
        return events

    def wait(self):
        """Poll until the stack reaches a terminal status. Returns the final status."""
        log.info("Monitoring deployment progress for %s...", self.stack_name)
        start = self._clock()

        def check(attempt):
            self.polls = attempt
            status = self.stack_status()
            if status in SUCCESS_STATUSES:
                log.info("Stack deployment completed successfully! (%s)", status)
                return status
            if status in FAILURE_STATUSES:
                log.error("Stack deployment failed with status: %s", status)
                events = self.dump_events()
                raise DeploymentFailed(self.stack_name, status, events)
            if status.endswith("_IN_PROGRESS"):
                minutes = int((self._clock() - start) // 60)
                log.info("Deployment in progress... (%dm elapsed, status: %s)", minutes, status)
            else:
                log.warning("Unknown stack status: %s", status)
            return None

        try:
            return poll_until(check, self.interval, timeout=self.timeout, sleep=self._sleep, clock=self._clock)
        except PollTimeout as e:
            raise DeploymentTimeout(
                f"Deployment timeout after {self.timeout // 60} minutes ({e.attempts} polls)"
            ) from e
