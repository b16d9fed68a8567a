class ReverseProxyConfigError(ValueError):
    """Base class for invalid reverse proxy configuration."""


class InvalidDeploymentError(ReverseProxyConfigError):
    pass


class DuplicateHostnameError(ReverseProxyConfigError):
    pass


class CrossRegionDeploymentError(ReverseProxyConfigError):
    """Raised when a deployment lives in a different region than the client VPC.

    Interface endpoints can only reach endpoint services in their own region.
    """


class CrossAccountDeploymentError(ReverseProxyConfigError):
    pass
