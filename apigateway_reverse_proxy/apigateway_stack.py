import logging
from typing import Callable, List

from aws_cdk import (
    Stack,
    CfnOutput,
    aws_apigateway as apigateway,
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
    aws_elasticloadbalancingv2_targets as elbv2_targets,
    aws_iam as iam,
    custom_resources as cr,
)
from constructs import Construct

from apigateway_reverse_proxy.config import elb_name
from apigateway_reverse_proxy.exceptions import InvalidDeploymentError

logger = logging.getLogger(__name__)

# Backend NLB serves the same certificate as the custom domain.
BACKEND_URI = "https://${stageVariables.proxyFqdn}"


def interface_ip_targets(ip_address_of: Callable[[int], str],
                         interface_count: int) -> List[elbv2_targets.IpTarget]:
    """Build one IP target per endpoint network interface.

    ``ip_address_of`` resolves the private address of the interface at a
    given index, usually a late-bound custom resource response field.
    """
    if interface_count < 1:
        raise InvalidDeploymentError(
            f"An interface endpoint needs at least one network interface. Got: {interface_count}"
        )
    return [elbv2_targets.IpTarget(ip_address_of(i)) for i in range(interface_count)]


class ApiGatewayStack(Stack):

    def __init__(self, scope: Construct, construct_id: str,
                 backend_nlb: elbv2.INetworkLoadBalancer,
                 entry_vpc_cidr: str,
                 certificate: acm.ICertificate,
                 proxy_fqdn: str,
                 proxy_hostname: str,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Create entry VPC, only reachable through the endpoint service.
        self.entry_vpc = ec2.Vpc(
            self, "EntryVpc",
            ip_addresses=ec2.IpAddresses.cidr(entry_vpc_cidr),
            vpc_name="apigatewayEntry",
            max_azs=2,
            subnet_configuration=[
                ec2.SubnetConfiguration(name="apigatewayEntry", subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            ]
        )

        # One endpoint network interface is created per selected subnet.
        endpoint_subnets = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED)
        interface_count = len(self.entry_vpc.select_subnets(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED).subnets)

        # Private API Gateway endpoint.
        self.vpc_endpoint = self.entry_vpc.add_interface_endpoint(
            "ApiEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.APIGATEWAY,
            subnets=endpoint_subnets,
        )


        ###  ENTRY NETWORK LOAD BALANCER, TARGET GROUP, LISTENER  ###

        # Entry NLB.
        self.nlb = elbv2.NetworkLoadBalancer(
            self, "NlbEntryApiGateway",
            vpc=self.entry_vpc,
            load_balancer_name=elb_name("nlb-entry", proxy_hostname),
            internet_facing=False,
            cross_zone_enabled=True,
        )

        self.nlb_listener = self.nlb.add_listener(
            "NlbHttpsListener",
            port=443,
            protocol=elbv2.Protocol.TLS,
            certificates=[elbv2.ListenerCertificate.from_certificate_manager(certificate)],
        )

        # Endpoint IPs are only known at deploy time, look them up with a custom resource.
        self.endpoint_ips = cr.AwsCustomResource(
            self, "GetEndpointIps",
            on_update=cr.AwsSdkCall(
                service="EC2",
                action="describeNetworkInterfaces",
                parameters={"NetworkInterfaceIds": self.vpc_endpoint.vpc_endpoint_network_interface_ids},
                # Constant physical id, the lookup runs again on every update.
                physical_resource_id=cr.PhysicalResourceId.of("EndpointNics"),
            ),
            policy=cr.AwsCustomResourcePolicy.from_sdk_calls(
                resources=cr.AwsCustomResourcePolicy.ANY_RESOURCE,
            ),
            install_latest_aws_sdk=False,
        )

        # API Gateway endpoint IPs as targets of the NLB.
        nlb_targets = interface_ip_targets(
            lambda i: self.endpoint_ips.get_response_field(f"NetworkInterfaces.{i}.PrivateIpAddress"),
            interface_count,
        )

        self.target_group = elbv2.NetworkTargetGroup(
            self, "ApiGatewayTargetGroup",
            target_group_name=elb_name("tg-apigateway", proxy_hostname),
            vpc=self.entry_vpc,
            port=443,
            target_type=elbv2.TargetType.IP,
            protocol=elbv2.Protocol.TLS,
            targets=nlb_targets,
            health_check=elbv2.HealthCheck(
                protocol=elbv2.Protocol.HTTPS,
                path="/ping",
                healthy_http_codes="200",
            ),
        )
        self.nlb_listener.add_target_groups("AddApiGatewayTargetGroup", self.target_group)

        # Expose the entry NLB to client VPCs through PrivateLink.
        self.endpoint_service = ec2.VpcEndpointService(
            self, "EntryNlbEndpointService",
            vpc_endpoint_service_load_balancers=[self.nlb],
            acceptance_required=False,
        )


        ###  API GATEWAY  ###

        self.backend_vpc_link = apigateway.VpcLink(
            self, "VPCLink",
            vpc_link_name=f"nlb-backend-{proxy_hostname}",
            targets=[backend_nlb],
        )

        # Only requests coming through the entry endpoint may invoke the API.
        api_resource_policy = iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    principals=[iam.StarPrincipal()],
                    actions=["execute-api:Invoke"],
                    resources=["execute-api:/*"],
                    conditions={
                        "StringEquals": {
                            "aws:sourceVpce": self.vpc_endpoint.vpc_endpoint_id,
                        },
                    },
                ),
            ]
        )

        self.api = apigateway.RestApi(
            self, "ApiGateway",
            rest_api_name="reverse-proxy",
            description="This service serves an internal api gateway",
            endpoint_configuration=apigateway.EndpointConfiguration(
                types=[apigateway.EndpointType.PRIVATE],
                vpc_endpoints=[self.vpc_endpoint],
            ),
            policy=api_resource_policy,
            deploy_options=apigateway.StageOptions(
                stage_name="dev",
                variables={"proxyFqdn": proxy_fqdn},
            ),
        )

        # Root resource.
        self.api.root.add_method("ANY", self._backend_integration(BACKEND_URI))

        # Greedy proxy resource, forwards the path to the backend.
        self.api.root.add_proxy(
            default_integration=self._backend_integration(
                f"{BACKEND_URI}/{{proxy}}",
                request_parameters={
                    "integration.request.path.proxy": "method.request.path.proxy",
                },
            ),
            default_method_options=apigateway.MethodOptions(
                method_responses=[apigateway.MethodResponse(status_code="200")],
                request_parameters={
                    "method.request.path.proxy": True,
                },
            ),
        )

        # Custom domain mapped to the API.
        self.domain_name = apigateway.DomainName(
            self, "ApiGatewayCustomDomain",
            domain_name=proxy_fqdn,
            certificate=certificate,
            endpoint_type=apigateway.EndpointType.REGIONAL,
            security_policy=apigateway.SecurityPolicy.TLS_1_2,
        )

        apigateway.BasePathMapping(
            self, "BasePathMapping",
            domain_name=self.domain_name,
            rest_api=self.api,
        )

        # Exports used by the client VPC.
        self.entry_vpc_endpoint_service_name = self.endpoint_service.vpc_endpoint_service_name

        logger.info("Declared API Gateway entry for %s with %d endpoint target(s)",
                    proxy_fqdn, interface_count)

        CfnOutput(self, "vpcEndpointServiceName", value=self.entry_vpc_endpoint_service_name)

    def _backend_integration(self, uri, request_parameters=None):
        return apigateway.Integration(
            type=apigateway.IntegrationType.HTTP_PROXY,
            integration_http_method="ANY",
            uri=uri,
            options=apigateway.IntegrationOptions(
                connection_type=apigateway.ConnectionType.VPC_LINK,
                vpc_link=self.backend_vpc_link,
                request_parameters=request_parameters,
            ),
        )
