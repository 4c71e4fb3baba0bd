import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Type

from botocore.exceptions import BotoCoreError, ClientError

from ..clients import ClientHandle, authenticate
from ..config import AdapterConfig
from ..core_logic.tagging import tags_match, to_tag_list
from ..errors import (
    CREDENTIALS_INVALID,
    REGION_INVALID,
    AdapterError,
    FieldValidationError,
    UnsupportedOperationError,
)
from ..models import Action, CollectionEvent, EventState, ResourceEvent, WireModel
from ..polling import poll_until

logger = logging.getLogger(__name__)

AuthenticateFn = Callable[..., ClientHandle]

# Errors that end an event as data instead of escaping the adapter.
HANDLED_ERRORS = (AdapterError, ClientError, BotoCoreError)


class Phase(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    CREATING = "creating"
    DIFFING = "diffing"
    APPLYING = "applying"
    TAGGING = "tagging"
    DELETING = "deleting"
    QUERYING = "querying"
    COMPLETED = "completed"
    ERRORED = "errored"


class Requirement(NamedTuple):
    field: str
    message: str
    actions: Optional[FrozenSet[Action]] = None  # None applies to every action


def require(
    field: str,
    message: str,
    on: Optional[Iterable[Action]] = None,
    unless: Optional[Iterable[Action]] = None,
) -> Requirement:
    """Declares a required field, optionally limited to some actions."""
    actions = None
    if on is not None:
        actions = frozenset(on)
    elif unless is not None:
        actions = frozenset(Action) - frozenset(unless)
    return Requirement(field, message, actions)


ENVELOPE_REQUIREMENTS = [
    require("datacenter_region", REGION_INVALID),
    require("aws_access_key_id", CREDENTIALS_INVALID),
    require("aws_secret_access_key", CREDENTIALS_INVALID),
]


def is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


class Handler:
    """Shared plumbing for single-resource and collection handling."""

    resource_type: str = ""
    REQUIREMENTS: List[Requirement] = ENVELOPE_REQUIREMENTS

    def __init__(
        self,
        document: WireModel,
        subject: str,
        action: Action,
        authenticate: AuthenticateFn = authenticate,
        config: Optional[AdapterConfig] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.document = document
        self.subject = subject
        self.action = action
        self.config = config or AdapterConfig()
        self.cancel = cancel
        self.phase = Phase.RECEIVED
        self._authenticate = authenticate
        self._handle: Optional[ClientHandle] = None

    # --- Remote client ---

    @property
    def handle(self) -> ClientHandle:
        # Opened lazily so that validation never reaches the provider.
        if self._handle is None:
            self._handle = self._authenticate(
                self.document.aws_access_key_id,
                self.document.aws_secret_access_key,
                self.document.datacenter_region,
                crypto_key=self.config.crypto_key,
                endpoint_url=self.config.endpoint_url,
            )
        return self._handle

    def client(self, service: str) -> Any:
        return self.handle.client(service)

    @property
    def ec2(self) -> Any:
        return self.client("ec2")

    @property
    def elb(self) -> Any:
        return self.client("elb")

    @property
    def route53(self) -> Any:
        return self.client("route53")

    @property
    def s3(self) -> Any:
        return self.client("s3")

    @property
    def rds(self) -> Any:
        return self.client("rds")

    @property
    def iam(self) -> Any:
        return self.client("iam")

    # --- Lifecycle helpers ---

    def enter(self, phase: Phase) -> None:
        logger.debug("%s: %s -> %s", self.subject, self.phase.value, phase.value)
        self.phase = phase

    def validate(self) -> None:
        for requirement in self.REQUIREMENTS:
            if requirement.actions is not None and self.action not in requirement.actions:
                continue
            if is_absent(getattr(self.document, requirement.field, None)):
                raise FieldValidationError(
                    self.resource_type, requirement.field, requirement.message
                )
        self.validate_fields()

    def validate_fields(self) -> None:
        """Structural checks beyond presence (ports, protocols). Optional hook."""

    def unsupported(self) -> None:
        raise UnsupportedOperationError(self.subject, self.resource_type)

    def wait(self, client: Any, waiter_name: str, **params: Any) -> None:
        logger.debug("%s: waiting for %s", self.subject, waiter_name)
        client.get_waiter(waiter_name).wait(**params)

    def poll(self, predicate: Callable[[], Any], interval: float, description: str) -> Any:
        return poll_until(
            predicate,
            interval,
            deadline=self.config.polling.deadline,
            cancel=self.cancel,
            description=description,
        )

    def fail(self, err: Exception) -> None:
        logger.error("%s errored: %s", self.subject, err)
        self.document.error = str(err)
        self.document.state = EventState.ERRORED.value
        self.phase = Phase.ERRORED

    def complete(self) -> None:
        self.document.state = EventState.COMPLETED.value
        self.enter(Phase.COMPLETED)


class ResourceAdapter(Handler):
    """Lifecycle of one event against one provider object.

    Subclasses implement the actions they support; the rest report
    "<subject> not supported".
    """

    event_model: Type[ResourceEvent] = ResourceEvent

    @property
    def event(self) -> Any:
        return self.document

    def process(self) -> ResourceEvent:
        try:
            self.validate()
            self.enter(Phase.VALIDATED)
            self.dispatch()
        except HANDLED_ERRORS as e:
            self.fail(e)
        else:
            self.complete()
        return self.event

    def dispatch(self) -> None:
        if self.action == Action.CREATE:
            self.enter(Phase.CREATING)
            self.create()
        elif self.action == Action.UPDATE:
            self.enter(Phase.DIFFING)
            self.update()
        elif self.action == Action.DELETE:
            self.enter(Phase.DELETING)
            self.delete()
        elif self.action == Action.GET:
            self.enter(Phase.QUERYING)
            self.get()
        else:
            self.unsupported()

    def create(self) -> None:
        self.unsupported()

    def update(self) -> None:
        self.unsupported()

    def delete(self) -> None:
        self.unsupported()

    def get(self) -> None:
        self.unsupported()

    def warn(self, message: str) -> None:
        """Records a non-fatal problem; the event still completes."""
        logger.warning("%s: %s", self.subject, message)
        self.event.error = message

    def tag(self, *resource_ids: str) -> None:
        self.enter(Phase.TAGGING)
        if not self.event.tags:
            return
        self.apply_tags(list(resource_ids), self.event.tags)

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        self.ec2.create_tags(Resources=resource_ids, Tags=to_tag_list(tags))


class CollectionAdapter(Handler):
    """Bulk `find`: query every object of a type, normalize, filter by tags."""

    @property
    def query(self) -> Any:
        return self.document

    def process(self) -> CollectionEvent:
        try:
            self.validate()
            self.enter(Phase.VALIDATED)
            if self.action != Action.FIND:
                self.unsupported()
            self.enter(Phase.QUERYING)
            found = [
                event for event in self.find() if tags_match(self.query.tags, event.tags)
            ]
            logger.info("%s: %d object(s) matched", self.subject, len(found))
            self.query.components = [event.to_body() for event in found]
        except HANDLED_ERRORS as e:
            self.fail(e)
        else:
            self.complete()
        return self.query

    def find(self) -> Iterable[ResourceEvent]:
        raise NotImplementedError

    def component(self, event: ResourceEvent) -> ResourceEvent:
        """Fills the envelope fields of a normalized find result."""
        event.provider_type = "aws"
        event.component_type = self.resource_type
        event.component_id = f"{self.resource_type}::{event.name}"
        event.datacenter_region = self.query.datacenter_region
        event.service = self.query.service
        return event
