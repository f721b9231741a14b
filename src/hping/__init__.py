__all__ = ["ShutdownCoordinator", "PollScheduler", "Requester", "History", "Settings", "__version__"]

__version__ = "1.0.0"

from .config import Settings
from .core import ShutdownCoordinator
from .history import History
from .requester import Requester
from .scheduler import PollScheduler
