from typing import Any, Callable, Dict, List, NamedTuple, Optional

# actions
DEPLOYED = "deployed"
REUSED = "reused"
PRECOMPUTED = "precomputed"
CHECKED = "checked"
RETRYING = "retrying"
TRANSFERRED = "transferred"
WRITTEN = "written"


class DeploymentEvent(NamedTuple):
    """One observable step of a deployment run."""

    stage: str
    action: str
    contract: Optional[str] = None
    address: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


Subscriber = Callable[[DeploymentEvent], None]


class EventLog:
    """Collects deployment events and forwards them to subscribers, in order."""

    def __init__(self, subscribers: Optional[List[Subscriber]] = None):
        self.events: List[DeploymentEvent] = list()
        self._subscribers = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(
        self,
        stage: str,
        action: str,
        contract: Optional[str] = None,
        address: Optional[str] = None,
        **details,
    ) -> DeploymentEvent:
        event = DeploymentEvent(
            stage=stage, action=action, contract=contract, address=address, details=details
        )
        self.events.append(event)
        for subscriber in self._subscribers:
            subscriber(event)
        return event

    def of(self, stage: str, action: Optional[str] = None) -> List[DeploymentEvent]:
        return [
            e for e in self.events if e.stage == stage and (action is None or e.action == action)
        ]


class ConsolePresenter:
    """Prints deployment events to the console."""

    BANNER = "#######################"

    def __call__(self, event: DeploymentEvent) -> None:
        if event.action == DEPLOYED:
            print(f"{self.BANNER}\n")
            print(f"{event.contract} deployed to: {event.address}")
        elif event.action == REUSED:
            print(f"{self.BANNER}\n")
            print(f"{event.contract} was already deployed to: {event.address}")
        elif event.action == CHECKED:
            print(f"\n{self.BANNER}")
            print(f"#####    Checks {event.contract}   #####")
            print(self.BANNER)
            self._print_details(event.details or {})
        elif event.action == RETRYING:
            print(f"attempt {event.details['attempt']}")
            print(f"deployment of {event.contract} failed: {event.details['error']}")
        elif event.action == TRANSFERRED:
            print(
                f"(i) Ownership of {event.contract} at {event.address} "
                f"transferred to {event.details['new_owner']}"
            )
        elif event.action == WRITTEN:
            print(f"(i) {event.contract} written to {event.details['filepath']}")
        else:
            print(f"{event.stage}: {event.action} {event.contract or ''} {event.address or ''}")
            self._print_details(event.details or {})

    @staticmethod
    def _print_details(details: Dict[str, Any]) -> None:
        for name, value in details.items():
            print(f"{name}: {value}")
