import aws_cdk as core
import pytest

from apigateway_reverse_proxy.config import DeploymentDescriptor, ProxySettings

ACCOUNT = "111111111111"
REGION = "us-east-1"


@pytest.fixture
def app():
    return core.App()


@pytest.fixture
def env():
    return core.Environment(account=ACCOUNT, region=REGION)


@pytest.fixture
def settings():
    return ProxySettings(
        hosted_zone_id="Z0123456789ABCDEFGHIJ",
        proxy_domain_name="proxy.domain.com",
        backend_fqdn="backend.internal.com",
        client_vpc_cidr="172.16.0.0/24",
        backend_vpc_cidr="172.16.100.0/24",
        client_account=ACCOUNT,
        client_region=REGION,
    )


@pytest.fixture
def descriptor():
    return DeploymentDescriptor(
        proxy_hostname="app",
        entry_vpc_cidr="172.16.1.0/24",
        account=ACCOUNT,
        region=REGION,
    )
