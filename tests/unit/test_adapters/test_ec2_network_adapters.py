import pytest
from botocore.exceptions import ClientError

from aws_adapters.dispatcher import handle_event

DEPENDENCY_VIOLATION = ClientError(
    {"Error": {"Code": "DependencyViolation", "Message": "The vpc 'vpc-1' has dependencies and cannot be deleted."}},
    "DeleteVpc",
)


# --- VPC ---

def test_vpc_create_tags_new_vpc(envelope, provider):
    ec2 = provider.respond("ec2", create_vpc={"Vpc": {"VpcId": "vpc-1"}})
    body = {**envelope, "name": "main", "subnet": "10.0.0.0/16", "tags": {"Name": "main"}}

    response = handle_event("vpc.create.aws", body, authenticate=provider)

    assert response.state == "completed"
    assert response.body["vpc_aws_id"] == "vpc-1"
    assert ec2.names() == ["create_vpc", "create_tags"]


def test_vpc_create_without_tags_skips_tagging(envelope, provider):
    ec2 = provider.respond("ec2", create_vpc={"Vpc": {"VpcId": "vpc-1"}})

    handle_event("vpc.create.aws", {**envelope, "subnet": "10.0.0.0/16"}, authenticate=provider)

    assert ec2.names() == ["create_vpc"]


def test_vpc_delete_with_dependents_completes_with_warning(envelope, provider):
    provider.respond("ec2", delete_vpc=DEPENDENCY_VIOLATION)

    response = handle_event("vpc.delete.aws", {**envelope, "vpc_aws_id": "vpc-1"}, authenticate=provider)

    assert response.state == "completed"
    assert response.body["error"] == f"WARN : Could not remove the vpc - {DEPENDENCY_VIOLATION}"


def test_other_deletes_propagate_dependency_errors(envelope, provider):
    provider.respond("ec2", delete_subnet=DEPENDENCY_VIOLATION, describe_network_interfaces={})
    body = {**envelope, "vpc_id": "vpc-1", "network_aws_id": "subnet-1"}

    response = handle_event("network.delete.aws", body, authenticate=provider)

    assert response.state == "errored"
    assert response.body["error"] == str(DEPENDENCY_VIOLATION)


def test_get_is_not_supported(envelope, provider):
    response = handle_event("vpc.get.aws", {**envelope, "vpc_aws_id": "vpc-1"}, authenticate=provider)

    assert response.state == "errored"
    assert response.body["error"] == "vpc.get.aws not supported"
    assert provider.auth_calls == []


# --- Network ---

def test_public_network_routes_through_internet_gateway(envelope, provider):
    ec2 = provider.respond(
        "ec2",
        create_subnet={"Subnet": {"SubnetId": "subnet-1", "AvailabilityZone": "eu-west-1a"}},
        describe_internet_gateways={"InternetGateways": [{"InternetGatewayId": "igw-1"}]},
        describe_route_tables={"RouteTables": []},
        create_route_table={"RouteTable": {"RouteTableId": "rtb-1", "Routes": []}},
    )
    body = {**envelope, "vpc_id": "vpc-1", "range": "10.0.1.0/24", "is_public": True}

    response = handle_event("network.create.aws", body, authenticate=provider)

    assert response.state == "completed"
    assert response.body["network_aws_id"] == "subnet-1"
    assert response.body["internet_gateway_aws_id"] == "igw-1"
    assert response.body["availability_zone"] == "eu-west-1a"
    assert ec2.params("associate_route_table") == [{"RouteTableId": "rtb-1", "SubnetId": "subnet-1"}]
    assert ec2.params("create_route") == [
        {"RouteTableId": "rtb-1", "DestinationCidrBlock": "0.0.0.0/0", "GatewayId": "igw-1"}
    ]
    assert ec2.params("modify_subnet_attribute") == [
        {"SubnetId": "subnet-1", "MapPublicIpOnLaunch": {"Value": True}}
    ]
    assert "create_internet_gateway" not in ec2.names()


def test_network_delete_waits_for_interfaces(envelope, fast_config, provider):
    ec2 = provider.respond(
        "ec2",
        describe_network_interfaces=[
            {"NetworkInterfaces": [{"NetworkInterfaceId": "eni-1"}]},
            {"NetworkInterfaces": []},
        ],
    )
    body = {**envelope, "vpc_id": "vpc-1", "network_aws_id": "subnet-1"}

    response = handle_event("network.delete.aws", body, config=fast_config, authenticate=provider)

    assert response.state == "completed"
    assert ec2.names() == ["describe_network_interfaces", "describe_network_interfaces", "delete_subnet"]


# --- Internet gateway ---

def test_internet_gateway_reuses_attached_gateway(envelope, provider):
    ec2 = provider.respond(
        "ec2", describe_internet_gateways={"InternetGateways": [{"InternetGatewayId": "igw-1"}]}
    )
    body = {**envelope, "vpc_id": "vpc-1", "tags": {"Name": "gw"}}

    response = handle_event("internet_gateway.create.aws", body, authenticate=provider)

    assert response.body["internet_gateway_aws_id"] == "igw-1"
    assert ec2.names() == ["describe_internet_gateways"]


def test_internet_gateway_delete_cleans_route_tables(envelope, provider):
    ec2 = provider.respond(
        "ec2",
        describe_route_tables={
            "RouteTables": [
                {
                    "RouteTableId": "rtb-main",
                    "Associations": [{"RouteTableAssociationId": "rtbassoc-main", "Main": True}],
                },
                {
                    "RouteTableId": "rtb-public",
                    "Associations": [
                        {"RouteTableAssociationId": "rtbassoc-1", "SubnetId": "subnet-1", "Main": False}
                    ],
                },
            ]
        },
    )
    body = {**envelope, "vpc_id": "vpc-1", "internet_gateway_aws_id": "igw-1"}

    response = handle_event("internet_gateway.delete.aws", body, authenticate=provider)

    assert response.state == "completed"
    assert ec2.names() == [
        "describe_route_tables",
        "delete_route",
        "disassociate_route_table",
        "delete_route_table",
        "detach_internet_gateway",
        "delete_internet_gateway",
    ]
    assert ec2.params("delete_route") == [{"RouteTableId": "rtb-main", "DestinationCidrBlock": "0.0.0.0/0"}]
    assert ec2.params("delete_route_table") == [{"RouteTableId": "rtb-public"}]


def test_internet_gateway_find_is_not_supported(envelope, provider):
    response = handle_event("internet_gateway.find.aws", envelope, authenticate=provider)

    assert response.state == "errored"
    assert response.body["error"] == "internet_gateway.find.aws not supported"


# --- NAT gateway ---

NAT_TABLE = {
    "RouteTableId": "rtb-a",
    "Associations": [{"SubnetId": "subnet-a"}],
    "Routes": [{"DestinationCidrBlock": "0.0.0.0/0", "NatGatewayId": "nat-1"}],
}
OTHER_TABLE = {"RouteTableId": "rtb-b", "Associations": [{"SubnetId": "subnet-b"}], "Routes": []}


def route_tables(Filters):
    name, value = Filters[0]["Name"], Filters[0]["Values"][0]
    if name == "route.nat-gateway-id" or value == "subnet-a":
        return {"RouteTables": [NAT_TABLE]}
    return {"RouteTables": [OTHER_TABLE]}


@pytest.fixture
def nat_body(envelope):
    return {
        **envelope,
        "vpc_id": "vpc-1",
        "nat_gateway_aws_id": "nat-1",
        "public_network_aws_id": "subnet-public",
        "routed_networks_aws_ids": ["subnet-b"],
    }


def test_nat_update_moves_default_routes(nat_body, provider):
    ec2 = provider.respond("ec2", describe_route_tables=route_tables)

    response = handle_event("nat.update.aws", nat_body, authenticate=provider)

    assert response.state == "completed"
    assert ec2.params("delete_route") == [{"RouteTableId": "rtb-a", "DestinationCidrBlock": "0.0.0.0/0"}]
    assert ec2.params("create_route") == [
        {"RouteTableId": "rtb-b", "DestinationCidrBlock": "0.0.0.0/0", "NatGatewayId": "nat-1"}
    ]


SHARED_TABLE = {
    "RouteTableId": "rtb-shared",
    "Associations": [{"SubnetId": "subnet-a"}, {"SubnetId": "subnet-b"}],
    "Routes": [{"DestinationCidrBlock": "0.0.0.0/0", "NatGatewayId": "nat-1"}],
}


def test_nat_update_keeps_route_shared_with_routed_subnet(nat_body, provider):
    ec2 = provider.respond("ec2", describe_route_tables={"RouteTables": [SHARED_TABLE]})

    response = handle_event("nat.update.aws", nat_body, authenticate=provider)

    assert response.state == "completed"
    assert "delete_route" not in ec2.names()
    assert "create_route" not in ec2.names()


def test_nat_update_clears_shared_table_once(nat_body, provider):
    nat_body["routed_networks_aws_ids"] = ["subnet-c"]
    tables = {
        "subnet-c": {"RouteTableId": "rtb-c", "Associations": [{"SubnetId": "subnet-c"}], "Routes": []},
    }

    def route_tables_by_subnet(Filters):
        name, value = Filters[0]["Name"], Filters[0]["Values"][0]
        if name == "route.nat-gateway-id":
            return {"RouteTables": [SHARED_TABLE]}
        return {"RouteTables": [tables.get(value, SHARED_TABLE)]}

    ec2 = provider.respond("ec2", describe_route_tables=route_tables_by_subnet)

    response = handle_event("nat.update.aws", nat_body, authenticate=provider)

    assert response.state == "completed"
    assert ec2.params("delete_route") == [{"RouteTableId": "rtb-shared", "DestinationCidrBlock": "0.0.0.0/0"}]
    assert ec2.params("create_route") == [
        {"RouteTableId": "rtb-c", "DestinationCidrBlock": "0.0.0.0/0", "NatGatewayId": "nat-1"}
    ]


def test_nat_create(nat_body, provider):
    del nat_body["nat_gateway_aws_id"]
    nat_body["routed_networks_aws_ids"] = ["subnet-a"]
    ec2 = provider.respond(
        "ec2",
        allocate_address={"AllocationId": "eipalloc-1", "PublicIp": "52.1.1.1"},
        describe_internet_gateways={"InternetGateways": []},
        create_internet_gateway={"InternetGateway": {"InternetGatewayId": "igw-1"}},
        create_nat_gateway={"NatGateway": {"NatGatewayId": "nat-1"}},
        describe_route_tables=route_tables,
    )

    response = handle_event("nat.create.aws", nat_body, authenticate=provider)

    assert response.state == "completed"
    assert response.body["nat_gateway_aws_id"] == "nat-1"
    assert response.body["nat_gateway_allocation_ip"] == "52.1.1.1"
    assert response.body["internet_gateway_id"] == "igw-1"
    assert ec2.params("create_nat_gateway") == [{"AllocationId": "eipalloc-1", "SubnetId": "subnet-public"}]
    assert ("wait:nat_gateway_available", {"NatGatewayIds": ["nat-1"]}) in ec2.calls
    # subnet-a already routes through the gateway
    assert "create_route" not in ec2.names()


def test_nat_delete_releases_discovered_address(envelope, fast_config, provider):
    ec2 = provider.respond(
        "ec2",
        describe_nat_gateways=[
            {"NatGateways": [{"State": "available", "NatGatewayAddresses": [{"AllocationId": "eipalloc-9"}]}]},
            {"NatGateways": [{"State": "deleting"}]},
            {"NatGateways": [{"State": "deleted"}]},
        ],
    )
    body = {**envelope, "nat_gateway_aws_id": "nat-1"}

    response = handle_event("nat.delete.aws", body, config=fast_config, authenticate=provider)

    assert response.state == "completed"
    assert ec2.names() == [
        "describe_nat_gateways",
        "delete_nat_gateway",
        "describe_nat_gateways",
        "describe_nat_gateways",
        "release_address",
    ]
    assert ec2.params("release_address") == [{"AllocationId": "eipalloc-9"}]
