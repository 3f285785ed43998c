"""Exception hierarchy shared by the workflow engine and its collaborators."""


class ImageNamerError(Exception):
    """Base exception for image-namer errors."""
    pass


class ConnectivityError(ImageNamerError):
    """Raised when the connection test against the backend fails."""
    pass


class DiscoveryError(ImageNamerError):
    """Raised when the model list cannot be fetched from the backend."""
    pass


class InferenceError(ImageNamerError):
    """Raised when generating a name for a single image fails."""
    pass


class RenameError(ImageNamerError):
    """Raised when a rename batch fails."""
    pass


class ValidationError(ImageNamerError):
    """Raised when an operation receives an invalid argument or would break an invariant."""
    pass


class ProtectedTemplateError(ValidationError):
    """Raised when deleting the built-in default template."""
    pass


class NotFoundError(ImageNamerError):
    """Raised when an entry, template or model does not exist."""
    pass
