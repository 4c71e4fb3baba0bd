from collections import OrderedDict
from enum import Enum
from typing import Any, Callable, Hashable, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

ALL_PROTOCOLS = "-1"
PROTECTED_RECORD_TYPES = ("SOA", "NS")


class ConvergencePlan(BaseModel):
    """Operations that move an observed collection towards the desired one."""

    to_add: List[Any] = Field(default_factory=list)  # Desired, not observed
    to_remove: List[Any] = Field(default_factory=list)  # Observed, not desired, not protected
    unchanged: List[Any] = Field(default_factory=list)  # Both; never resubmitted
    # Desired elements whose observed counterpart (same natural key) has different
    # content. Only populated when a `content` function is supplied.
    to_replace: List[Any] = Field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.to_add or self.to_remove or self.to_replace)

    def is_empty(self) -> bool:
        return not self.has_changes()


def _identity(element: Any) -> Hashable:
    return element


def _index(elements: Iterable[Any], key: Callable[[Any], Hashable]) -> "OrderedDict[Hashable, Any]":
    indexed: "OrderedDict[Hashable, Any]" = OrderedDict()
    for element in elements:
        k = key(element)
        if k not in indexed:  # First occurrence wins
            indexed[k] = element
    return indexed


def compute_convergence(
    desired: Iterable[Any],
    observed: Iterable[Any],
    key: Callable[[Any], Hashable] = _identity,
    protected: Iterable[Any] = (),
    content: Optional[Callable[[Any], Any]] = None,
) -> ConvergencePlan:
    """
    Computes the minimal add/remove set between a desired and an observed collection.

    Args:
        desired: Target elements for one sub-resource domain.
        observed: Elements currently reported by the provider.
        key: Natural key; elements with equal keys are the same element.
        protected: Elements that must never be removed (matched by key).
        content: Optional function over the non-key fields. When given, matched
                 pairs with different content go to `to_replace` instead of
                 `unchanged`.

    Returns:
        A ConvergencePlan. Element order follows the input order.
    """
    desired_by_key = _index(desired, key)
    observed_by_key = _index(observed, key)
    protected_keys = {key(element) for element in protected}

    plan = ConvergencePlan()
    for k, element in desired_by_key.items():
        if k not in observed_by_key:
            plan.to_add.append(element)
        elif content is not None and content(element) != content(observed_by_key[k]):
            plan.to_replace.append(element)
        else:
            plan.unchanged.append(element)

    for k, element in observed_by_key.items():
        if k in desired_by_key or k in protected_keys:
            continue
        plan.to_remove.append(element)

    return plan


# --- Firewall rules ---

class RuleDirection(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class FirewallRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: RuleDirection
    ip: str
    protocol: str
    from_port: Optional[int] = None
    to_port: Optional[int] = None
    description: Optional[str] = None  # Not part of the natural key


def normalize_protocol(protocol: str) -> str:
    protocol = str(protocol).lower()
    return ALL_PROTOCOLS if protocol == "all" else protocol


def rule_key(rule: FirewallRule) -> Tuple[str, str, str, Optional[int], Optional[int]]:
    protocol = normalize_protocol(rule.protocol)
    if protocol == ALL_PROTOCOLS:
        # The provider ignores (and does not report) ports for all-protocol rules
        return (rule.direction.value, rule.ip, protocol, None, None)
    return (rule.direction.value, rule.ip, protocol, rule.from_port, rule.to_port)


def plan_rules(desired: Iterable[FirewallRule], observed: Iterable[FirewallRule]) -> ConvergencePlan:
    return compute_convergence(desired, observed, key=rule_key)


# --- Load balancer listeners, members, subnets and security groups ---

class Listener(BaseModel):
    from_port: Optional[int] = None  # Load balancer port, the natural key
    to_port: Optional[int] = None  # Instance port
    protocol: Optional[str] = None
    ssl_cert: Optional[str] = None


def listener_key(listener: Listener) -> Optional[int]:
    return listener.from_port


def plan_listeners(desired: Iterable[Listener], observed: Iterable[Listener]) -> ConvergencePlan:
    return compute_convergence(desired, observed, key=listener_key)


def _ids(values: Iterable[Optional[str]]) -> List[str]:
    return [v for v in values if v]


def plan_members(desired: Iterable[Optional[str]], observed: Iterable[Optional[str]]) -> ConvergencePlan:
    """Backend membership by instance identifier (also used for attached ARNs)."""
    return compute_convergence(_ids(desired), _ids(observed))


def plan_subnets(desired: Iterable[Optional[str]], observed: Iterable[Optional[str]]) -> ConvergencePlan:
    return compute_convergence(_ids(desired), _ids(observed))


def plan_security_groups(desired: Iterable[Optional[str]], observed: Iterable[Optional[str]]) -> ConvergencePlan:
    return compute_convergence(_ids(desired), _ids(observed))


# --- DNS records ---

class DNSRecord(BaseModel):
    entry: Optional[str] = None
    type: Optional[str] = None
    values: List[str] = Field(default_factory=list)
    ttl: Optional[int] = None


def normalize_record_name(name: Optional[str]) -> str:
    # Route 53 reports names fully qualified and escapes the wildcard label
    name = (name or "").replace("\\052", "*")
    return name.rstrip(".").lower()


def record_key(record: DNSRecord) -> Tuple[str, str]:
    return (normalize_record_name(record.entry), (record.type or "").upper())


def record_content(record: DNSRecord) -> Tuple[Optional[int], Tuple[str, ...]]:
    return (record.ttl, tuple(sorted(record.values)))


def is_default_record(zone_name: Optional[str], record: DNSRecord) -> bool:
    """SOA and NS records at the zone apex are managed by the provider."""
    return (record.type or "").upper() in PROTECTED_RECORD_TYPES and normalize_record_name(
        record.entry
    ) == normalize_record_name(zone_name)


def plan_records(
    zone_name: Optional[str], desired: Iterable[DNSRecord], observed: Iterable[DNSRecord]
) -> ConvergencePlan:
    observed = list(observed)
    protected = [r for r in observed if is_default_record(zone_name, r)]
    return compute_convergence(
        desired, observed, key=record_key, protected=protected, content=record_content
    )
