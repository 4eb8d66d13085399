# deployer/errors.py


class DeployError(Exception):
    """Base class for failures that end a deployment run."""

    exit_code = 1


class PrerequisiteError(DeployError):
    pass


class DeploymentCancelled(DeployError):
    def __init__(self, message, exit_code=1):
        super().__init__(message)
        self.exit_code = exit_code


class DeploymentFailed(DeployError):
    def __init__(self, stack_name, status, events=None):
        super().__init__(f"Stack {stack_name} failed with status {status}")
        self.stack_name = stack_name
        self.status = status
        self.events = events or []


class DeploymentTimeout(DeployError):
    pass


class ConfigError(DeployError):
    pass
