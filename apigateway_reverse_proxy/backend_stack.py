import logging
import pathlib

from aws_cdk import (
    Stack,
    CfnOutput,
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
    aws_elasticloadbalancingv2_targets as elbv2_targets,
)
from constructs import Construct
from security.iam_stack import IamStack

from apigateway_reverse_proxy.config import elb_name

logger = logging.getLogger(__name__)

USER_DATA_FILE = pathlib.Path(__file__).parent / "backend-userdata.sh"


def render_user_data(script: str, backend_fqdn: str) -> str:
    """Substitute the backend FQDN into the first ``FQDN=`` assignment of the script."""
    return script.replace("FQDN=", f"FQDN={backend_fqdn}", 1)


class BackendStack(Stack):

    def __init__(self, scope: Construct, construct_id: str,
                 backend_vpc_cidr: str,
                 certificate: acm.ICertificate,
                 backend_fqdn: str,
                 proxy_hostname: str,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Create VPC.
        self.vpc = ec2.Vpc(
            self, "VpcBackend",
            ip_addresses=ec2.IpAddresses.cidr(backend_vpc_cidr),
            vpc_name="backend",
            max_azs=2,
            subnet_configuration=[
                ec2.SubnetConfiguration(name="backend-app", subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
                ec2.SubnetConfiguration(name="backend-public", subnet_type=ec2.SubnetType.PUBLIC),
            ]
        )


        ###  SECURITY GROUPS  ###

        # Security Group for the backend app.
        self.SG_Backend = ec2.SecurityGroup(
            self, "BackendSecurityGroup",
            vpc=self.vpc,
            security_group_name="backendSecurityGroup",
        )
        # Ingress rule for HTTPS, all traffic inside the VPC.
        self.SG_Backend.add_ingress_rule(
            peer=ec2.Peer.ipv4(self.vpc.vpc_cidr_block),
            connection=ec2.Port.tcp(443),
            description="Inbound HTTPS traffic from the backend VPC",
        )


        ###  BACKEND APP  ###

        # Nested IAM stack, instance role for SSM.
        self.iam_stack = IamStack(self, "IamNestedStack")

        # Import user_data file and set the backend FQDN.
        with open(USER_DATA_FILE, "r") as f:
            user_data = render_user_data(f.read(), backend_fqdn)

        self.user_data = ec2.UserData.for_linux()
        self.user_data.add_commands(user_data)

        self.backend_instance = ec2.Instance(
            self, "BackendInstance",
            instance_name="backend-app",
            vpc=self.vpc,
            instance_type=ec2.InstanceType.of(ec2.InstanceClass.T4G, ec2.InstanceSize.SMALL),
            machine_image=ec2.AmazonLinuxImage(
                generation=ec2.AmazonLinuxGeneration.AMAZON_LINUX_2,
                cpu_type=ec2.AmazonLinuxCpuType.ARM_64,
            ),
            security_group=self.SG_Backend,
            user_data=self.user_data,
            role=self.iam_stack.InstanceRole,
        )


        ###  NETWORK LOAD BALANCER, TARGET GROUP, LISTENER  ###

        # Backend NLB.
        self.nlb = elbv2.NetworkLoadBalancer(
            self, "NLB",
            vpc=self.vpc,
            load_balancer_name=elb_name("nlb-backend", proxy_hostname),
            internet_facing=False,
            cross_zone_enabled=True,
        )

        # TLS listener, terminates with the proxy certificate.
        self.nlb_listener = self.nlb.add_listener(
            "NlbHttpsListener",
            port=443,
            protocol=elbv2.Protocol.TLS,
            certificates=[elbv2.ListenerCertificate.from_certificate_manager(certificate)],
        )

        # Target group with the backend instance IP.
        self.target_group = elbv2.NetworkTargetGroup(
            self, "ApiTargetGroup",
            target_group_name=elb_name("tg-backend", proxy_hostname),
            vpc=self.vpc,
            port=443,
            target_type=elbv2.TargetType.IP,
            protocol=elbv2.Protocol.TLS,
            targets=[elbv2_targets.IpTarget(self.backend_instance.instance_private_ip)],
        )
        self.nlb_listener.add_target_groups("AddApiTargetGroup", self.target_group)

        logger.info("Declared backend NLB for %s in %s", backend_fqdn, construct_id)

        CfnOutput(self, "BackendInstanceId", value=self.backend_instance.instance_id)
