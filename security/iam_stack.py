from aws_cdk import (
    NestedStack,
    aws_iam as iam,
)
from constructs import Construct

class IamStack(NestedStack):

    def __init__(self, scope:Construct, id:str, **kwargs) -> None:
        super().__init__(scope, id, **kwargs)


        ###  IAM ROLES  ###

        # Instance role for EC2's, sessions are opened through SSM instead of SSH.
        self.InstanceRole = iam.Role(
            self, "Ec2Role",
            assumed_by=iam.ServicePrincipal("ec2.amazonaws.com"),
            description="Instance role for SSM managed EC2's",
        )

        # SSM core permissions (agent registration, Session Manager).
        self.InstanceRole.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore")
        )
