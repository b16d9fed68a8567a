import aws_cdk.assertions as assertions

from apigateway_reverse_proxy.certificate_stack import CertificateStack


def test_certificate_is_dns_validated(app, env):
    stack = CertificateStack(app, "app-CertificateStack", env=env,
                             hosted_zone_id="Z0123456789ABCDEFGHIJ",
                             proxy_fqdn="app.proxy.domain.com")
    template = assertions.Template.from_stack(stack)

    template.resource_count_is("AWS::CertificateManager::Certificate", 1)
    template.has_resource_properties("AWS::CertificateManager::Certificate", {
        "DomainName": "app.proxy.domain.com",
        "ValidationMethod": "DNS",
        "DomainValidationOptions": [{
            "DomainName": "app.proxy.domain.com",
            "HostedZoneId": "Z0123456789ABCDEFGHIJ",
        }],
    })
