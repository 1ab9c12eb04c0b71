"""Exceptions raised by the model registry."""


class ModelHubError(Exception):
    """Base class for registry errors."""


class InvalidReferenceError(ModelHubError, ValueError):
    """A repository reference that cannot be parsed."""


class InvalidHostError(InvalidReferenceError):
    """A repository URL that does not point at a supported host."""


class NotSupportedModelError(ModelHubError):
    """A remote repository that does not ship a supported model format."""


class ProtectedResourceError(ModelHubError):
    """A built-in resource that cannot be deleted."""


class InvalidDescriptorError(ModelHubError, ValueError):
    """A descriptor update that does not validate."""
