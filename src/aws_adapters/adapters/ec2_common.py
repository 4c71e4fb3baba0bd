"""Lookups shared by the EC2 networking adapters (network, nat, internet_gateway)."""

import logging
from typing import Any, Dict, List, Optional

from ..clients import paginate

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = "0.0.0.0/0"


def _filter(name: str, *values: str) -> Dict[str, Any]:
    return {"Name": name, "Values": list(values)}


def find_internet_gateway(ec2: Any, vpc_id: str) -> Optional[str]:
    resp = ec2.describe_internet_gateways(Filters=[_filter("attachment.vpc-id", vpc_id)])
    gateways = resp.get("InternetGateways", [])
    if not gateways:
        return None
    return gateways[0]["InternetGatewayId"]


def ensure_internet_gateway(ec2: Any, vpc_id: str) -> str:
    """Returns the gateway attached to the VPC, creating and attaching one if needed."""
    gateway_id = find_internet_gateway(ec2, vpc_id)
    if gateway_id:
        return gateway_id
    gateway_id = ec2.create_internet_gateway()["InternetGateway"]["InternetGatewayId"]
    ec2.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)
    logger.info("Attached internet gateway %s to %s", gateway_id, vpc_id)
    return gateway_id


def find_route_table(ec2: Any, subnet_id: str) -> Optional[Dict[str, Any]]:
    resp = ec2.describe_route_tables(Filters=[_filter("association.subnet-id", subnet_id)])
    tables = resp.get("RouteTables", [])
    return tables[0] if tables else None


def ensure_route_table(ec2: Any, vpc_id: str, subnet_id: str) -> Dict[str, Any]:
    """Returns the route table associated with the subnet, creating one if needed."""
    table = find_route_table(ec2, subnet_id)
    if table is not None:
        return table
    table = ec2.create_route_table(VpcId=vpc_id)["RouteTable"]
    ec2.associate_route_table(RouteTableId=table["RouteTableId"], SubnetId=subnet_id)
    return table


def routes_through(table: Dict[str, Any], target_key: str, target_id: str) -> bool:
    """True when the table's default route already points at the target."""
    for route in table.get("Routes", []):
        if route.get("DestinationCidrBlock") == DEFAULT_ROUTE and route.get(target_key) == target_id:
            return True
    return False


def route_tables_through(ec2: Any, filter_name: str, target_id: str) -> List[Dict[str, Any]]:
    return list(paginate(ec2, "describe_route_tables", "RouteTables", Filters=[_filter(filter_name, target_id)]))


def subnet_ids_of(tables: List[Dict[str, Any]]) -> List[str]:
    subnet_ids = []
    for table in tables:
        for association in table.get("Associations", []):
            if association.get("SubnetId"):
                subnet_ids.append(association["SubnetId"])
    return subnet_ids
