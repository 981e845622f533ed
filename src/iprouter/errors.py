"""Exceptions raised by ip-router"""


class IpRouterError(Exception):
    """Base exception for ip-router"""

    pass


class ConfigError(IpRouterError):
    """Configuration is missing or invalid"""

    pass


class CommandError(IpRouterError, RuntimeError):
    """External command exited with a non-zero status"""

    def __init__(self, cmd, returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed ({returncode}): {' '.join(self.cmd)}")


class StepError(IpRouterError):
    """A startup step could not complete"""

    pass


class PolicyRoutingError(StepError):
    pass


class RoutePruneError(StepError):
    pass


class StatusApiError(StepError):
    pass


class RouteProgramError(StepError):
    pass
