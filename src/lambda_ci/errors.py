"""Exception types raised by lambda_ci."""


class IntegrationError(RuntimeError):
    """Base class for every failure that should end a run with a non-zero exit."""


class ConfigError(IntegrationError):
    pass


class StackOutputError(IntegrationError):
    pass


class BuildError(IntegrationError):
    pass


class PackagingError(IntegrationError):
    pass


class FunctionCreateError(IntegrationError):
    pass


class FunctionNotReadyError(IntegrationError):
    """The function failed, or never reached Active within the attempt budget."""


class InvocationError(IntegrationError):
    pass


class LogRetrievalError(IntegrationError):
    pass
