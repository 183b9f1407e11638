class AutomationError(Exception):
    """Base class for browser automation failures."""


class SessionError(AutomationError):
    """A session operation was used while no session is open (or after dispose)."""


class LocatorNotFound(AutomationError):
    def __init__(self, role, target_id=""):
        self.role = role
        self.target_id = target_id
        where = f" on {target_id}" if target_id else ""
        super().__init__(f"No candidate locator matched role '{role}'{where}")


class CompletionTimeout(AutomationError):
    """The remote UI kept showing activity for the whole completion window."""

    def __init__(self, target_id, timeout, heuristics_observed=None, artifacts=None):
        self.target_id = target_id
        self.timeout = timeout
        self.heuristics_observed = list(heuristics_observed or [])
        self.artifacts = artifacts or {}
        super().__init__(f"{target_id}: response did not complete within {timeout}s")
