"""Pieces shared by the RDS instance and cluster adapters."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core_logic.diff_engine import ConvergencePlan, plan_security_groups, plan_subnets
from ..core_logic.tagging import from_tag_list, to_tag_list
from .base import ResourceAdapter

logger = logging.getLogger(__name__)


def subnet_group_name(name: str) -> str:
    return f"{name}-sg"


def final_snapshot_name(name: str) -> str:
    return f"{name}-Final-Snapshot"


def ids(values: Iterable[Optional[str]]) -> List[str]:
    return [v for v in values if v]


def snapshot_params(name: str, final_snapshot: Optional[bool]) -> Dict[str, Any]:
    """Deletion parameters shared by `delete_db_instance` and `delete_db_cluster`."""
    if final_snapshot:
        return {"SkipFinalSnapshot": False, "FinalDBSnapshotIdentifier": final_snapshot_name(name)}
    return {"SkipFinalSnapshot": True}


def resource_tags(rds: Any, arn: Optional[str]) -> Dict[str, str]:
    if not arn:
        return {}
    return from_tag_list(rds.list_tags_for_resource(ResourceName=arn).get("TagList"))


class RDSAdapter(ResourceAdapter):
    """Subnet group handling and ARN-based tagging for RDS resources."""

    def networks(self) -> List[str]:
        return ids(self.event.network_aws_ids)

    def create_subnet_group(self) -> Optional[str]:
        subnets = self.networks()
        if not subnets:
            return None
        group = subnet_group_name(self.event.name)
        self.rds.create_db_subnet_group(
            DBSubnetGroupName=group,
            DBSubnetGroupDescription=f"Subnet group for {self.event.name}",
            SubnetIds=subnets,
        )
        logger.info("Created db subnet group %s", group)
        return group

    def reconcile_subnet_group(self) -> ConvergencePlan:
        """Rewrites the subnet group only when its membership changed."""
        group = subnet_group_name(self.event.name)
        resp = self.rds.describe_db_subnet_groups(DBSubnetGroupName=group)
        observed = [s["SubnetIdentifier"] for s in resp["DBSubnetGroups"][0].get("Subnets", [])]
        plan = plan_subnets(self.networks(), observed)
        if plan.has_changes():
            self.rds.modify_db_subnet_group(DBSubnetGroupName=group, SubnetIds=self.networks())
        return plan

    def changed_security_groups(self, observed: Iterable[Dict[str, Any]]) -> Optional[List[str]]:
        """Desired VPC security groups when they differ from the observed ones."""
        desired = ids(self.event.security_group_aws_ids)
        plan = plan_security_groups(desired, [g["VpcSecurityGroupId"] for g in observed])
        return desired if desired and plan.has_changes() else None

    def delete_subnet_group(self) -> None:
        if not self.networks():
            return
        self.rds.delete_db_subnet_group(DBSubnetGroupName=subnet_group_name(self.event.name))

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        for arn in resource_ids:
            self.rds.add_tags_to_resource(ResourceName=arn, Tags=to_tag_list(tags))
