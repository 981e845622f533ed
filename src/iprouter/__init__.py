"""ip-router - turn a two-NIC Compute Engine instance into a policy-routed forwarder"""

__version__ = "0.3.0"
