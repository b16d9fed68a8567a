import aws_cdk.assertions as assertions

from apigateway_reverse_proxy.backend_stack import BackendStack, render_user_data
from apigateway_reverse_proxy.certificate_stack import CertificateStack


def _backend_stack(app, env):
    certificate = CertificateStack(app, "app-CertificateStack", env=env,
                                   hosted_zone_id="Z0123456789ABCDEFGHIJ",
                                   proxy_fqdn="app.proxy.domain.com")
    return BackendStack(app, "app-BackendStack", env=env,
                        backend_vpc_cidr="172.16.100.0/24",
                        certificate=certificate.certificate,
                        backend_fqdn="backend.internal.com",
                        proxy_hostname="app")


def test_render_user_data_sets_first_fqdn_only():
    script = "FQDN=\necho FQDN=$FQDN\n"
    assert render_user_data(script, "backend.internal.com") == \
        "FQDN=backend.internal.com\necho FQDN=$FQDN\n"


def test_backend_vpc(app, env):
    template = assertions.Template.from_stack(_backend_stack(app, env))

    template.has_resource_properties("AWS::EC2::VPC", {
        "CidrBlock": "172.16.100.0/24",
        "Tags": assertions.Match.array_with([{"Key": "Name", "Value": "backend"}]),
    })
    template.has_resource_properties("AWS::EC2::SecurityGroup", {
        "GroupName": "backendSecurityGroup",
        "SecurityGroupIngress": [assertions.Match.object_like({
            "FromPort": 443,
            "ToPort": 443,
            "IpProtocol": "tcp",
        })],
    })


def test_backend_instance_gets_fqdn(app, env):
    template = assertions.Template.from_stack(_backend_stack(app, env))

    template.resource_count_is("AWS::EC2::Instance", 1)
    template.has_resource_properties("AWS::EC2::Instance", {
        "InstanceType": "t4g.small",
        "UserData": {
            "Fn::Base64": assertions.Match.string_like_regexp("FQDN=backend.internal.com"),
        },
    })
    # Instance role lives in the nested IAM stack.
    template.resource_count_is("AWS::CloudFormation::Stack", 1)


def test_backend_nlb_terminates_tls(app, env):
    template = assertions.Template.from_stack(_backend_stack(app, env))

    template.has_resource_properties("AWS::ElasticLoadBalancingV2::LoadBalancer", {
        "Name": "nlb-backend-app",
        "Scheme": "internal",
        "Type": "network",
    })
    template.has_resource_properties("AWS::ElasticLoadBalancingV2::Listener", {
        "Port": 443,
        "Protocol": "TLS",
    })
    template.has_resource_properties("AWS::ElasticLoadBalancingV2::TargetGroup", {
        "Name": "tg-backend-app",
        "Port": 443,
        "Protocol": "TLS",
        "TargetType": "ip",
        "Targets": [assertions.Match.object_like({
            "Id": {"Fn::GetAtt": [assertions.Match.any_value(), "PrivateIp"]},
        })],
    })


def test_instance_role_has_ssm_policy(app, env):
    stack = _backend_stack(app, env)
    template = assertions.Template.from_stack(stack.iam_stack)

    template.has_resource_properties("AWS::IAM::Role", {
        "AssumeRolePolicyDocument": {
            "Statement": [assertions.Match.object_like({
                "Principal": {"Service": "ec2.amazonaws.com"},
            })],
        },
        "ManagedPolicyArns": [
            assertions.Match.object_like({
                "Fn::Join": ["", assertions.Match.array_with([
                    ":iam::aws:policy/AmazonSSMManagedInstanceCore",
                ])],
            }),
        ],
    })
