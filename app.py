#!/usr/bin/env python3
import logging

import aws_cdk as cdk

from apigateway_reverse_proxy.config import load_deployments, load_settings
from apigateway_reverse_proxy.deployment import build_topology

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

app = cdk.App()

build_topology(app, load_settings(app), load_deployments(app))

app.synth()
