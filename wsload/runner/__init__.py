from .executor import Executor, RunSummary, execute_scenario
from .virtual_user import Outcome, VirtualUser

__all__ = ["Executor", "Outcome", "RunSummary", "VirtualUser", "execute_scenario"]
