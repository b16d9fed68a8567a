from aws_cdk import (
    Stack,
    aws_certificatemanager as acm,
    aws_route53 as route53,
)
from constructs import Construct


class CertificateStack(Stack):
    """DNS validated certificate for one proxy hostname."""

    def __init__(self, scope: Construct, construct_id: str,
                 hosted_zone_id: str,
                 proxy_fqdn: str,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Public zone holding the validation records.
        zone = route53.HostedZone.from_hosted_zone_id(self, "HostedZone", hosted_zone_id)

        self.certificate = acm.Certificate(
            self, "Certificate",
            domain_name=proxy_fqdn,
            validation=acm.CertificateValidation.from_dns(zone),
        )
