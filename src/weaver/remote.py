"""Remote-repository collaborator interface."""

from abc import ABC, abstractmethod

from .errors import RemoteAccessError
from .models.config import WeaveConfig
from .models.event import HistoryEvent


class RemoteRepository(ABC):
    """Performs one remote mutation per history event.

    Both operations signal failure by raising; the message of the raised
    exception is the human-readable reason shown in the run log.
    """

    @abstractmethod
    def verify_access(self, token: str, repo_name: str, owner: str) -> None:
        """Check that the repository is reachable with the credential.

        Raises:
            RemoteAccessError: If the repository cannot be used
        """
        pass

    @abstractmethod
    def execute_event(self, event: HistoryEvent, config: WeaveConfig) -> str:
        """Apply a single event remotely and return a result message.

        Raises:
            RemoteEventError: If the mutation fails
        """
        pass


class DryRunRepository(RemoteRepository):
    """Offline stand-in that echoes events without any network calls."""

    def __init__(self):
        self.executed: list[str] = []

    def verify_access(self, token: str, repo_name: str, owner: str) -> None:
        if not repo_name or not owner:
            raise RemoteAccessError("Owner and repository name are required")

    def execute_event(self, event: HistoryEvent, config: WeaveConfig) -> str:
        self.executed.append(event.id)
        branch = f" on {event.branch}" if event.branch else ""
        return f"[dry-run] {event.kind.value} '{event.title}'{branch} at {event.date.strftime('%Y-%m-%d %H:%M')}"
