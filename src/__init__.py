"""envplan — environment provisioning planner."""

__version__ = "0.1.0"
