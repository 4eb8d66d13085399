# deployer/stack.py
import logging
from dataclasses import dataclass
from pathlib import Path

from botocore.exceptions import ClientError

from deployer.errors import DeploymentCancelled

log = logging.getLogger("deployer.stack")

CREATE = "create"
UPDATE = "update"
NO_CHANGE = "no-change"


@dataclass(frozen=True)
class StackIdentity:
    name: str
    region: str
    key_name: str


def build_parameters(key_name, families, prices):
    params = [{"ParameterKey": "KeyName", "ParameterValue": key_name}]
    for family in families:
        params.append({"ParameterKey": family.parameter_key, "ParameterValue": f"{prices[family.name]:.3f}"})
    return params


class StackDeployer:
    def __init__(self, cfn, identity: StackIdentity, template_file, confirm, tags=None):
        self.cfn = cfn
        self.identity = identity
        self.template_file = Path(template_file)
        self.confirm = confirm
        self.tags = dict(tags or {})

    def stack_exists(self):
        try:
            self.cfn.describe_stacks(StackName=self.identity.name)
            return True
        except ClientError as e:
            if "does not exist" in str(e):
                return False
            raise

    def choose_operation(self):
        log.info("Checking for existing stack: %s", self.identity.name)
        if not self.stack_exists():
            log.info("Will create new stack")
            return CREATE
        log.warning("Stack '%s' already exists!", self.identity.name)
        if not self.confirm("Do you want to update the existing stack?"):
            raise DeploymentCancelled("Deployment cancelled by user", exit_code=1)
        log.info("Will update existing stack")
        return UPDATE

    def deploy(self, operation, families, prices):
        """Submit the create/update request. Returns the operation actually performed."""
        params = build_parameters(self.identity.key_name, families, prices)
        log.info(
            "Deploying CloudFormation stack %s | template=%s region=%s operation=%s",
            self.identity.name,
            self.template_file,
            self.identity.region,
            operation,
        )
        for p in params:
            log.info("  %s: %s", p["ParameterKey"], p["ParameterValue"])

        request = {
            "StackName": self.identity.name,
            "TemplateBody": self.template_file.read_text(),
            "Parameters": params,
            "Capabilities": ["CAPABILITY_IAM"],
        }
        if operation == CREATE:
            request["Tags"] = [{"Key": k, "Value": v} for k, v in self.tags.items()]
            resp = self.cfn.create_stack(**request)
        else:
            try:
                resp = self.cfn.update_stack(**request)
            except ClientError as e:
                if "No updates are to be performed" in str(e):
                    log.info("No updates needed for stack %s", self.identity.name)
                    return NO_CHANGE
                raise

        log.info("CloudFormation %s initiated: %s", operation, resp.get("StackId"))
        return operation
