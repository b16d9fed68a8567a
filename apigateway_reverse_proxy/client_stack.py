import logging
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import (
    Stack,
    CfnOutput,
    aws_ec2 as ec2,
    aws_route53 as route53,
    aws_route53_targets as targets,
)
from constructs import Construct
from security.iam_stack import IamStack

from apigateway_reverse_proxy.config import ProvisionedDeployment, ensure_same_environment

logger = logging.getLogger(__name__)


class ClientStack(Stack):
    """Client VPC resolving every proxy hostname to its PrivateLink endpoint.

    Raises CrossRegionDeploymentError (or CrossAccountDeploymentError) before any
    resource is declared when a deployment lives outside the client environment.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 deployments: Sequence[ProvisionedDeployment],
                 client_vpc_cidr: str,
                 proxy_domain_name: str,
                 env: cdk.Environment,
                 **kwargs) -> None:
        for deployment in deployments:
            ensure_same_environment(deployment.descriptor, env)

        super().__init__(scope, construct_id, env=env, **kwargs)

        # Create VPC.
        self.vpc = ec2.Vpc(
            self, "ClientVpc",
            ip_addresses=ec2.IpAddresses.cidr(client_vpc_cidr),
            vpc_name="client",
            max_azs=2,
            subnet_configuration=[
                ec2.SubnetConfiguration(name="client", subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            ]
        )

        # Private zone for the proxy domain, only resolvable inside the client VPC.
        self.zone = route53.PrivateHostedZone(
            self, "HostedZone",
            zone_name=proxy_domain_name,
            vpc=self.vpc,
        )


        ###  PRIVATELINK CONNECTIVITY  ###

        self.endpoints = {}
        self.alias_records = {}
        for deployment in deployments:
            hostname = deployment.descriptor.proxy_hostname

            # Interface endpoint to the deployment's entry NLB.
            self.endpoints[hostname] = ec2.InterfaceVpcEndpoint(
                self, f"VPCEndpoint-{hostname}",
                vpc=self.vpc,
                service=ec2.InterfaceVpcEndpointService(deployment.endpoint_service_name, 443),
            )

            # Alias Record pointing to the endpoint.
            self.alias_records[hostname] = route53.ARecord(
                self, f"AliasRecord-{hostname}",
                record_name=hostname,
                zone=self.zone,
                target=route53.RecordTarget.from_alias(
                    targets.InterfaceVpcEndpointTarget(self.endpoints[hostname])
                ),
            )

            logger.info("Wired %s.%s to its endpoint service", hostname, proxy_domain_name)

            CfnOutput(self, f"Alias-{hostname}", value=f"{hostname}.{proxy_domain_name}")


        ###  TEST EC2 INSTANCE  ###

        # Security Group for the client instance and SSM endpoints.
        self.SG_Client = ec2.SecurityGroup(
            self, "ClientSecurityGroup",
            vpc=self.vpc,
            security_group_name="clientSecurityGroup",
        )
        # Ingress rule for HTTPS, all traffic inside the VPC.
        self.SG_Client.add_ingress_rule(
            peer=ec2.Peer.ipv4(self.vpc.vpc_cidr_block),
            connection=ec2.Port.tcp(443),
            description="Inbound HTTPS traffic from the client VPC",
        )

        # SSM endpoints, the VPC has no route to the internet.
        for endpoint_id, service in (
            ("SsmEndpoint", ec2.InterfaceVpcEndpointAwsService.SSM),
            ("SsmMessagesEndpoint", ec2.InterfaceVpcEndpointAwsService.SSM_MESSAGES),
            ("Ec2MessagesEndpoint", ec2.InterfaceVpcEndpointAwsService.EC2_MESSAGES),
        ):
            self.vpc.add_interface_endpoint(
                endpoint_id,
                service=service,
                security_groups=[self.SG_Client],
            )

        # Nested IAM stack, instance role for SSM.
        self.iam_stack = IamStack(self, "IamNestedStack")

        self.client_instance = ec2.Instance(
            self, "ClientInstance",
            instance_name="client",
            vpc=self.vpc,
            instance_type=ec2.InstanceType.of(ec2.InstanceClass.T4G, ec2.InstanceSize.SMALL),
            machine_image=ec2.AmazonLinuxImage(
                generation=ec2.AmazonLinuxGeneration.AMAZON_LINUX_2,
                cpu_type=ec2.AmazonLinuxCpuType.ARM_64,
            ),
            security_group=self.SG_Client,
            role=self.iam_stack.InstanceRole,
        )

        CfnOutput(self, "ClientInstanceId", value=self.client_instance.instance_id)
