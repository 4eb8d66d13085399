# deployer/prerequisites.py
import logging
import shutil
import subprocess
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from deployer.errors import PrerequisiteError

log = logging.getLogger("deployer.prerequisites")

# Checked in order; the first one found is used.
PACKAGE_MANAGERS = (
    ("apt-get", [["sudo", "apt-get", "update"], ["sudo", "apt-get", "install", "-y"]]),
    ("yum", [["sudo", "yum", "install", "-y"]]),
)


class PrerequisiteValidator:
    def __init__(
        self,
        session,
        template_file,
        key_name,
        region,
        required_tools=(),
        installable_tools=None,
        which=shutil.which,
        run=subprocess.run,
    ):
        self.session = session
        self.template_file = Path(template_file)
        self.key_name = key_name
        self.region = region
        self.required_tools = list(required_tools)
        self.installable_tools = dict(installable_tools or {})
        self._which = which
        self._run = run

    def validate(self):
        log.info("Validating prerequisites...")
        self.check_template()
        self.check_tools()
        self.ensure_installable_tools()
        identity = self.check_credentials()
        self.check_key_pair()
        log.info("All prerequisites validated successfully (account %s)", identity.get("Account"))
        return identity

    def check_template(self):
        if not self.template_file.is_file():
            raise PrerequisiteError(f"CloudFormation template not found: {self.template_file}")

    def check_tools(self):
        for tool in self.required_tools:
            if not self._which(tool):
                raise PrerequisiteError(f"{tool} not found. Please install {tool}.")

    def ensure_installable_tools(self):
        for tool, package in self.installable_tools.items():
            if self._which(tool):
                continue
            log.warning("%s not found. Installing package %s...", tool, package)
            self.install_package(package)
            if not self._which(tool):
                raise PrerequisiteError(f"{tool} still not found after installing {package}")

    def install_package(self, package):
        for manager, commands in PACKAGE_MANAGERS:
            if not self._which(manager):
                continue
            for command in commands:
                # only the install step takes the package name
                cmd = command + [package] if command[-1] == "-y" else command
                try:
                    self._run(cmd, check=True)
                except (subprocess.CalledProcessError, OSError) as e:
                    raise PrerequisiteError(f"Failed to install {package} with {manager}: {e}") from e
            return manager
        raise PrerequisiteError(f"Cannot install {package}: no supported package manager. Please install manually.")

    def check_credentials(self):
        try:
            return self.session.client("sts").get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise PrerequisiteError(f"AWS credentials not configured or expired: {e}") from e

    def check_key_pair(self):
        ec2 = self.session.client("ec2", region_name=self.region)
        try:
            ec2.describe_key_pairs(KeyNames=[self.key_name])
        except ClientError as e:
            raise PrerequisiteError(f"Key pair '{self.key_name}' not found in region {self.region}") from e
