# deployer/reporter.py
import logging
import time
from dataclasses import dataclass

import requests
from botocore.exceptions import BotoCoreError, ClientError

from deployer.utils import PollTimeout, poll_until

log = logging.getLogger("deployer.reporter")

OUTPUT_KEYS = {
    "elastic_ip": "ElasticIP",
    "endpoint_url": "VSCodeServerURL",
    "ssh_command": "SSHCommand",
    "spot_fleet_id": "SpotFleetId",
    "instance_families": "InstanceFamilies",
    "availability_zones": "AvailabilityZones",
}


@dataclass(frozen=True)
class StackOutputs:
    elastic_ip: str | None = None
    endpoint_url: str | None = None
    ssh_command: str | None = None
    spot_fleet_id: str | None = None
    instance_families: str | None = None
    availability_zones: str | None = None

    @classmethod
    def from_api(cls, outputs):
        by_key = {o["OutputKey"]: o.get("OutputValue") for o in outputs or []}
        return cls(**{field: by_key.get(key) for field, key in OUTPUT_KEYS.items()})


class ResultReporter:
    def __init__(
        self,
        cfn,
        ec2,
        stack_name,
        port=8080,
        attempts=25,
        interval=30,
        http_get=None,
        sleep=time.sleep,
    ):
        self.cfn = cfn
        self.ec2 = ec2
        self.stack_name = stack_name
        self.port = port
        self.attempts = attempts
        self.interval = interval
        self._get = http_get or requests.get
        self._sleep = sleep

    def fetch_outputs(self):
        resp = self.cfn.describe_stacks(StackName=self.stack_name)
        outputs = resp["Stacks"][0].get("Outputs")
        if not outputs:
            return None
        return StackOutputs.from_api(outputs)

    def render_summary(self, outputs, families, prices):
        lines = [
            "Deployment Complete!",
            "=" * 46,
            f"Elastic IP: {outputs.elastic_ip}",
            f"VS Code Server: {outputs.endpoint_url}",
            f"SSH Command: {outputs.ssh_command}",
            f"Spot Fleet ID: {outputs.spot_fleet_id}",
            f"Instance Families: {outputs.instance_families}",
            f"Availability Zones: {outputs.availability_zones}",
            "",
            "Spot Price Configuration:",
        ]
        for family in families:
            lines.append(f"  {family.name}: ${prices[family.name]:.3f}")
        lines += [
            "",
            "Note: Instance setup may take 5-10 minutes after stack creation.",
            "Authentication: VS Code Server is passwordless, Amazon Q CLI requires 'q login'",
        ]
        return "\n".join(lines)

    def report(self, families, prices):
        log.info("Retrieving deployment information...")
        outputs = self.fetch_outputs()
        if outputs is None:
            log.warning("No stack outputs found")
            return None
        print()
        print(self.render_summary(outputs, families, prices))
        print()
        return outputs

    def is_reachable(self, url):
        try:
            self._get(url, timeout=5)
            return True
        except requests.RequestException:
            return False

    def active_instance_count(self, spot_fleet_id):
        try:
            resp = self.ec2.describe_spot_fleet_instances(SpotFleetRequestId=spot_fleet_id)
        except (ClientError, BotoCoreError) as e:
            log.warning("Could not read spot fleet %s: %s", spot_fleet_id, e)
            return None
        return len(resp.get("ActiveInstances", []))

    def wait_for_endpoint(self, outputs):
        """
        Poll the service until it answers. Running out of attempts is only a
        warning; returns True when the service responded.
        """
        if outputs is None or not outputs.elastic_ip:
            log.warning("No Elastic IP in stack outputs; skipping readiness check")
            return False

        url = f"http://{outputs.elastic_ip}:{self.port}"
        log.info("Waiting for instance to be ready, testing connectivity to %s...", url)

        def check(attempt):
            if self.is_reachable(url):
                return True
            log.info("Attempt %d/%d: service not ready yet...", attempt, self.attempts)
            return None

        try:
            poll_until(check, self.interval, max_attempts=self.attempts, sleep=self._sleep)
        except PollTimeout:
            log.warning("Service not responding after %d attempts", self.attempts)
            log.info("Instance may still be setting up. Check manually in a few minutes.")
            return False

        log.info("VS Code Server is responding at %s", url)
        if outputs.spot_fleet_id:
            count = self.active_instance_count(outputs.spot_fleet_id)
            if count is not None:
                log.info("Spot fleet has %d active instance(s)", count)
        return True
