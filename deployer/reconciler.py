# deployer/reconciler.py
import enum
import logging
import time
from dataclasses import dataclass, field

from botocore.exceptions import BotoCoreError, ClientError

log = logging.getLogger("deployer.reconciler")

STACK_NAME_TAG = "aws:cloudformation:stack-name"


class Ownership(enum.Enum):
    OWNED = "owned"
    FOREIGN = "foreign"
    # ownership query failed or returned nothing; never released
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ElasticAddress:
    allocation_id: str
    public_ip: str | None = None
    association_id: str | None = None
    instance_id: str | None = None
    tags: dict = field(default_factory=dict)

    @classmethod
    def from_api(cls, item):
        return cls(
            allocation_id=item["AllocationId"],
            public_ip=item.get("PublicIp"),
            association_id=item.get("AssociationId"),
            instance_id=item.get("InstanceId"),
            tags={t["Key"]: t["Value"] for t in item.get("Tags", [])},
        )

    @property
    def unassociated(self):
        return self.association_id is None and self.instance_id is None

    def stack_name(self):
        return self.tags.get(STACK_NAME_TAG)


@dataclass
class ReconcileResult:
    preserved: list = field(default_factory=list)
    released: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    unknown: list = field(default_factory=list)


class AddressReconciler:
    def __init__(self, ec2, stack_name, settle_delay=30, sleep=time.sleep):
        self.ec2 = ec2
        self.stack_name = stack_name
        self.settle_delay = settle_delay
        self._sleep = sleep

    def _describe(self, **kwargs):
        return [ElasticAddress.from_api(a) for a in self.ec2.describe_addresses(**kwargs).get("Addresses", [])]

    def stack_addresses(self):
        """Addresses already tagged with the current stack; these are kept."""
        try:
            owned = self._describe(Filters=[{"Name": f"tag:{STACK_NAME_TAG}", "Values": [self.stack_name]}])
        except (ClientError, BotoCoreError) as e:
            log.warning("Could not list EIPs for stack %s: %s", self.stack_name, e)
            return []
        if owned:
            log.info("Found existing stack EIPs that will be preserved:")
            for a in owned:
                log.info("  %s  %s  associated=%s", a.public_ip, a.allocation_id, a.instance_id or "-")
        else:
            log.info("No existing EIPs found for stack %s - new EIP will be created", self.stack_name)
        return owned

    def unassociated_addresses(self):
        return [a for a in self._describe() if a.unassociated]

    def ownership(self, allocation_id):
        try:
            found = self._describe(AllocationIds=[allocation_id])
        except (ClientError, BotoCoreError) as e:
            log.warning("Could not read tags for EIP %s: %s", allocation_id, e)
            return Ownership.UNKNOWN
        if not found:
            return Ownership.UNKNOWN
        if found[0].stack_name() == self.stack_name:
            return Ownership.OWNED
        return Ownership.FOREIGN

    def release(self, allocation_id):
        log.info("Releasing orphaned EIP: %s", allocation_id)
        try:
            self.ec2.release_address(AllocationId=allocation_id)
        except (ClientError, BotoCoreError) as e:
            log.warning("Failed to release EIP %s: %s", allocation_id, e)
            return False
        log.info("Released orphaned EIP: %s", allocation_id)
        return True

    def reconcile(self):
        """
        Release unassociated EIPs that do not belong to the current stack.
        Stack-owned and ambiguous addresses are preserved.
        """
        log.info("Cleaning up orphaned Elastic IPs (preserving stack-owned EIPs)...")
        result = ReconcileResult()
        candidates = self.unassociated_addresses()
        if not candidates:
            log.info("No unassociated EIPs found")
            return result

        log.info("Found %d unassociated EIP(s), checking which belong to %s", len(candidates), self.stack_name)
        orphaned = []
        for address in candidates:
            if address.stack_name() == self.stack_name:
                owner = Ownership.OWNED
            else:
                owner = self.ownership(address.allocation_id)
            if owner is Ownership.FOREIGN:
                log.info("EIP %s does not belong to stack %s - will be deleted", address.allocation_id, self.stack_name)
                orphaned.append(address.allocation_id)
            elif owner is Ownership.OWNED:
                log.info("EIP %s belongs to stack %s - preserving", address.allocation_id, self.stack_name)
                result.preserved.append(address.allocation_id)
            else:
                log.warning("EIP %s ownership could not be determined - preserving", address.allocation_id)
                result.unknown.append(address.allocation_id)

        if not orphaned:
            log.info("No orphaned EIPs to release - none deleted")
            return result

        log.warning("Deleting orphaned EIPs NOT belonging to current stack: %s", " ".join(orphaned))
        for allocation_id in orphaned:
            if self.release(allocation_id):
                result.released.append(allocation_id)
            else:
                result.failed.append(allocation_id)

        log.info("Waiting %s seconds for AWS to process EIP releases...", self.settle_delay)
        self._sleep(self.settle_delay)
        return result
