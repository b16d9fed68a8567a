"""Stage wiring for the reverse proxy topology.

Runs in two phases. The first declares a Certificate, Backend and ApiGateway
stack per deployment, in list order, and returns the enriched deployments as
new values. The second declares the single ClientStack from that list.
"""
from dataclasses import dataclass
from typing import List, Sequence, Tuple
import logging

import aws_cdk as cdk

from apigateway_reverse_proxy.apigateway_stack import ApiGatewayStack
from apigateway_reverse_proxy.backend_stack import BackendStack
from apigateway_reverse_proxy.certificate_stack import CertificateStack
from apigateway_reverse_proxy.client_stack import ClientStack
from apigateway_reverse_proxy.config import (
    DeploymentDescriptor,
    ProvisionedDeployment,
    ProxySettings,
    validate_deployments,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeploymentStacks:
    certificate: CertificateStack
    backend: BackendStack
    apigateway: ApiGatewayStack


@dataclass(frozen=True)
class Topology:
    deployments: Tuple[ProvisionedDeployment, ...]
    stages: Tuple[DeploymentStacks, ...]
    client: ClientStack


def provision_deployment(app: cdk.App, settings: ProxySettings,
                         deployment: DeploymentDescriptor) -> Tuple[ProvisionedDeployment, DeploymentStacks]:
    hostname = deployment.proxy_hostname
    proxy_fqdn = settings.proxy_fqdn(hostname)

    certificate = CertificateStack(
        app, f"{hostname}-CertificateStack",
        env=deployment.env,
        hosted_zone_id=settings.hosted_zone_id,
        proxy_fqdn=proxy_fqdn,
    )

    backend = BackendStack(
        app, f"{hostname}-BackendStack",
        env=deployment.env,
        backend_vpc_cidr=settings.backend_vpc_cidr,
        certificate=certificate.certificate,
        backend_fqdn=settings.backend_fqdn,
        proxy_hostname=hostname,
    )

    apigateway = ApiGatewayStack(
        app, f"{hostname}-ApiGatewayStack",
        env=deployment.env,
        backend_nlb=backend.nlb,
        entry_vpc_cidr=deployment.entry_vpc_cidr,
        certificate=certificate.certificate,
        proxy_fqdn=proxy_fqdn,
        proxy_hostname=hostname,
    )

    logger.info("Declared stages for %s in %s/%s", proxy_fqdn, deployment.account, deployment.region)

    provisioned = ProvisionedDeployment(
        descriptor=deployment,
        endpoint_service_name=apigateway.entry_vpc_endpoint_service_name,
        entry_vpc=apigateway.entry_vpc,
    )
    return provisioned, DeploymentStacks(certificate, backend, apigateway)


def provision_deployments(app: cdk.App, settings: ProxySettings,
                          deployments: Sequence[DeploymentDescriptor]) -> List[Tuple[ProvisionedDeployment, DeploymentStacks]]:
    return [provision_deployment(app, settings, deployment) for deployment in deployments]


def provision_client(app: cdk.App, settings: ProxySettings,
                     provisioned: Sequence[ProvisionedDeployment]) -> ClientStack:
    return ClientStack(
        app, "ClientStack",
        deployments=list(provisioned),
        env=settings.client_env,
        client_vpc_cidr=settings.client_vpc_cidr,
        proxy_domain_name=settings.proxy_domain_name,
    )


def build_topology(app: cdk.App, settings: ProxySettings,
                   deployments: Sequence[DeploymentDescriptor]) -> Topology:
    """Declare every stage of the reverse proxy.

    Any exception, including the cross region guard of the client stack,
    aborts the whole run.
    """
    validate_deployments(list(deployments))

    results = provision_deployments(app, settings, deployments)
    provisioned = tuple(p for p, _ in results)

    client = provision_client(app, settings, provisioned)

    return Topology(
        deployments=provisioned,
        stages=tuple(s for _, s in results),
        client=client,
    )
