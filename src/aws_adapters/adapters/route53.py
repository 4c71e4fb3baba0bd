import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import compact, paginate
from ..core_logic.diff_engine import DNSRecord, is_default_record, plan_records
from ..core_logic.tagging import from_tag_list, to_tag_list
from ..errors import VPC_ID_INVALID, FieldValidationError
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require

logger = logging.getLogger(__name__)


class Route53Event(ResourceEvent):
    hosted_zone_id: Optional[str] = None
    private: Optional[bool] = None
    records: List[DNSRecord] = Field(default_factory=list)
    vpc_id: Optional[str] = None


def bare_zone_id(zone_id: str) -> str:
    """'/hostedzone/Z123' -> 'Z123'."""
    return zone_id.split("/")[-1]


def from_record_set(record_set: Dict[str, Any]) -> DNSRecord:
    return DNSRecord(
        entry=record_set["Name"],
        type=record_set["Type"],
        values=[r["Value"] for r in record_set.get("ResourceRecords", [])],
        ttl=record_set.get("TTL"),
    )


def to_change(action: str, record: DNSRecord) -> Dict[str, Any]:
    return {
        "Action": action,
        "ResourceRecordSet": compact(
            Name=record.entry,
            Type=(record.type or "").upper(),
            TTL=record.ttl,
            ResourceRecords=[{"Value": v} for v in record.values],
        ),
    }


def list_records(route53: Any, zone_id: str) -> List[DNSRecord]:
    record_sets = paginate(route53, "list_resource_record_sets", "ResourceRecordSets", HostedZoneId=zone_id)
    # Alias records are not managed through this adapter
    return [from_record_set(rs) for rs in record_sets if "AliasTarget" not in rs]


class Route53Adapter(ResourceAdapter):
    """A hosted zone and its record sets."""

    resource_type = "route53"
    event_model = Route53Event
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "Route53 zone name invalid"),
        require("hosted_zone_id", "Route53 hosted zone id invalid", unless=[Action.CREATE]),
    ]

    def validate_fields(self) -> None:
        if self.action == Action.CREATE and self.event.private and not self.event.vpc_id:
            raise FieldValidationError(self.resource_type, "vpc_id", VPC_ID_INVALID)

    def create(self) -> None:
        params: Dict[str, Any] = {
            "Name": self.event.name,
            "CallerReference": str(uuid.uuid4()),
        }
        if self.event.private:
            params["HostedZoneConfig"] = {"PrivateZone": True}
            params["VPC"] = {"VPCRegion": self.event.datacenter_region, "VPCId": self.event.vpc_id}
        resp = self.route53.create_hosted_zone(**params)
        self.event.hosted_zone_id = resp["HostedZone"]["Id"]
        logger.info("Created hosted zone %s (%s)", self.event.hosted_zone_id, self.event.name)

        self._converge(self.event.records)
        self.tag(self.event.hosted_zone_id)

    def update(self) -> None:
        self._converge(self.event.records)
        self.tag(self.event.hosted_zone_id)

    def delete(self) -> None:
        # The provider refuses to delete a zone that still has records.
        self._converge([])
        self.route53.delete_hosted_zone(Id=self.event.hosted_zone_id)
        logger.info("Deleted hosted zone %s", self.event.hosted_zone_id)

    def _converge(self, desired: List[DNSRecord]) -> None:
        observed = list_records(self.route53, self.event.hosted_zone_id)
        plan = plan_records(self.event.name, desired, observed)

        self.enter(Phase.APPLYING)
        changes = [to_change("DELETE", r) for r in plan.to_remove]
        changes += [to_change("UPSERT", r) for r in plan.to_add + plan.to_replace]
        if not changes:
            return
        self.route53.change_resource_record_sets(
            HostedZoneId=self.event.hosted_zone_id, ChangeBatch={"Changes": changes}
        )
        logger.info(
            "Zone %s: %d upserted, %d deleted",
            self.event.name,
            len(plan.to_add) + len(plan.to_replace),
            len(plan.to_remove),
        )

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        for zone_id in resource_ids:
            self.route53.change_tags_for_resource(
                ResourceType="hostedzone",
                ResourceId=bare_zone_id(zone_id),
                AddTags=to_tag_list(tags),
            )


class Route53Collection(CollectionAdapter):
    resource_type = "route53"

    def find(self) -> Iterable[Route53Event]:
        for zone in paginate(self.route53, "list_hosted_zones", "HostedZones"):
            zone_id = zone["Id"]
            name = zone["Name"].rstrip(".")
            tag_set = self.route53.list_tags_for_resource(
                ResourceType="hostedzone", ResourceId=bare_zone_id(zone_id)
            ).get("ResourceTagSet", {})
            records = [
                r for r in list_records(self.route53, zone_id) if not is_default_record(name, r)
            ]
            yield self.component(
                Route53Event(
                    hosted_zone_id=zone_id,
                    name=name,
                    private=zone.get("Config", {}).get("PrivateZone", False),
                    records=records,
                    tags=from_tag_list(tag_set.get("Tags")),
                )
            )
