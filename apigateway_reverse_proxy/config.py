from dataclasses import dataclass
from typing import List, Optional
import hashlib
import ipaddress
import logging
import os
import re

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2

from apigateway_reverse_proxy.exceptions import (
    CrossAccountDeploymentError,
    CrossRegionDeploymentError,
    DuplicateHostnameError,
    InvalidDeploymentError,
)

logger = logging.getLogger(__name__)


DEFAULT_ACCOUNT = os.getenv("CDK_DEFAULT_ACCOUNT")
DEFAULT_REGION = os.getenv("CDK_DEFAULT_REGION", "us-east-1")

HOSTED_ZONE_ID = "XXXXXXXXXXXXXXXXXXXX"  # Route53 zone used to validate the proxy certificates.
PROXY_DOMAIN_NAME = "proxy.domain.com"  # Must be a subdomain of the hosted zone above.
BACKEND_FQDN = "backend.internal.com"  # Backend host serving a self-signed certificate.

CLIENT_VPC_CIDR = "172.16.0.0/24"
BACKEND_VPC_CIDR = "172.16.100.0/24"

DEFAULT_DEPLOYMENTS = [
    {
        "proxyHostname": "app",
        "entryVpcCidr": "172.16.1.0/24",
    },
]

_HOSTNAME_LABEL = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

# Load balancer and target group names, unique per account and region.
ELB_NAME_MAX_LENGTH = 32


def _validate_cidr(cidr: str, what: str) -> None:
    try:
        ipaddress.IPv4Network(cidr)
    except ValueError as e:
        raise InvalidDeploymentError(f"Invalid {what} CIDR '{cidr}': {e}") from e


@dataclass(frozen=True)
class DeploymentDescriptor:
    """One target environment for the reverse proxy.

    Attributes:
        proxy_hostname: DNS label published as <proxy_hostname>.<proxy domain>.
        entry_vpc_cidr: Address block of the API Gateway entry VPC.
        account: Target AWS account, None for an environment-agnostic stack.
        region: Target AWS region.
    """

    proxy_hostname: str
    entry_vpc_cidr: str
    account: Optional[str] = DEFAULT_ACCOUNT
    region: Optional[str] = DEFAULT_REGION

    def __post_init__(self):
        if not self.proxy_hostname or not _HOSTNAME_LABEL.match(self.proxy_hostname):
            raise InvalidDeploymentError(
                f"Proxy hostname must be a single lowercase DNS label. Got: {self.proxy_hostname!r}"
            )
        _validate_cidr(self.entry_vpc_cidr, f"entry VPC ({self.proxy_hostname})")

    @property
    def env(self) -> cdk.Environment:
        return cdk.Environment(account=self.account, region=self.region)


@dataclass(frozen=True)
class ProxySettings:
    """Settings shared by every deployment and by the client VPC."""

    hosted_zone_id: str = HOSTED_ZONE_ID
    proxy_domain_name: str = PROXY_DOMAIN_NAME
    backend_fqdn: str = BACKEND_FQDN
    client_vpc_cidr: str = CLIENT_VPC_CIDR
    backend_vpc_cidr: str = BACKEND_VPC_CIDR
    client_account: Optional[str] = DEFAULT_ACCOUNT
    client_region: Optional[str] = DEFAULT_REGION

    def __post_init__(self):
        if not self.hosted_zone_id:
            raise InvalidDeploymentError("Hosted zone id cannot be empty")
        if not self.proxy_domain_name or not self.proxy_domain_name.strip("."):
            raise InvalidDeploymentError("Proxy domain name cannot be empty")
        _validate_cidr(self.client_vpc_cidr, "client VPC")
        _validate_cidr(self.backend_vpc_cidr, "backend VPC")

    @property
    def client_env(self) -> cdk.Environment:
        return cdk.Environment(account=self.client_account, region=self.client_region)

    def proxy_fqdn(self, proxy_hostname: str) -> str:
        return f"{proxy_hostname}.{self.proxy_domain_name}"


@dataclass(frozen=True)
class ProvisionedDeployment:
    """A descriptor together with the exports of its API Gateway stage."""

    descriptor: DeploymentDescriptor
    endpoint_service_name: str
    entry_vpc: Optional[ec2.IVpc] = None


def elb_name(prefix: str, proxy_hostname: str) -> str:
    """Per deployment load balancer or target group name.

    Names longer than ELB allows are cut and suffixed with a hash of the
    hostname so two long hostnames still get distinct names.
    """
    name = f"{prefix}-{proxy_hostname}"
    if len(name) <= ELB_NAME_MAX_LENGTH:
        return name
    digest = hashlib.sha1(proxy_hostname.encode("utf-8")).hexdigest()[:8]
    head = name[:ELB_NAME_MAX_LENGTH - len(digest) - 1].rstrip("-")
    return f"{head}-{digest}"


def validate_deployments(deployments: List[DeploymentDescriptor]) -> None:
    """Reject descriptor lists that would publish conflicting DNS records."""
    seen = set()
    for deployment in deployments:
        if deployment.proxy_hostname in seen:
            raise DuplicateHostnameError(
                f"Proxy hostname '{deployment.proxy_hostname}' is used by more than one deployment"
            )
        seen.add(deployment.proxy_hostname)


def ensure_same_environment(deployment: DeploymentDescriptor, env: cdk.Environment) -> None:
    # PrivateLink endpoints only connect to endpoint services in the same region.
    if deployment.region != env.region:
        raise CrossRegionDeploymentError(
            f"Cross region deployment is not supported yet: {deployment.proxy_hostname} -> {deployment.region}"
        )
    # Stage exports are plain cross-stack references, which CloudFormation limits to one account.
    if deployment.account != env.account:
        raise CrossAccountDeploymentError(
            f"Cross account deployment is not supported yet: {deployment.proxy_hostname} -> {deployment.account}"
        )


def load_settings(app: cdk.App) -> ProxySettings:
    """Build the shared settings from CDK context, falling back to the defaults above."""
    ctx = app.node.try_get_context
    return ProxySettings(
        hosted_zone_id=ctx("hostedZoneId") or HOSTED_ZONE_ID,
        proxy_domain_name=ctx("proxyDomainName") or PROXY_DOMAIN_NAME,
        backend_fqdn=ctx("backendFqdn") or BACKEND_FQDN,
        client_vpc_cidr=ctx("clientVpcCidr") or CLIENT_VPC_CIDR,
        backend_vpc_cidr=ctx("backendVpcCidr") or BACKEND_VPC_CIDR,
        client_account=ctx("clientAccount") or DEFAULT_ACCOUNT,
        client_region=ctx("clientRegion") or DEFAULT_REGION,
    )


def load_deployments(app: cdk.App) -> List[DeploymentDescriptor]:
    """Read the deployment descriptors from the "deployments" context key."""
    raw_deployments = app.node.try_get_context("deployments") or DEFAULT_DEPLOYMENTS

    deployments = []
    for raw in raw_deployments:
        if not isinstance(raw, dict):
            raise InvalidDeploymentError(f"Deployment must be an object. Got: {raw!r}")
        if "proxyHostname" not in raw or "entryVpcCidr" not in raw:
            raise InvalidDeploymentError(
                f"Deployment needs both proxyHostname and entryVpcCidr. Got: {raw}"
            )
        deployments.append(
            DeploymentDescriptor(
                proxy_hostname=raw["proxyHostname"],
                entry_vpc_cidr=raw["entryVpcCidr"],
                account=raw.get("account") or DEFAULT_ACCOUNT,
                region=raw.get("region") or DEFAULT_REGION,
            )
        )

    validate_deployments(deployments)
    logger.info("Loaded %d deployment(s): %s", len(deployments),
                ", ".join(d.proxy_hostname for d in deployments))
    return deployments
