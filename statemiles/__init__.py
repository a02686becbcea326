"""
State Miles - per-state mileage and reimbursement auditing for GPS travel legs
"""

from statemiles.errors import ConfigurationError, InputRowError, StateMilesError

__version__ = "0.1.0"

__all__ = ["ConfigurationError", "InputRowError", "StateMilesError", "__version__"]
