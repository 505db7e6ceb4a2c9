class DiscoveryError(Exception):
    pass


class DataSourceError(DiscoveryError):
    pass


class RateLimitError(DataSourceError):
    pass


class HandlerError(DiscoveryError):
    pass


class CallRevertedError(HandlerError):
    pass


class DecodeFormatError(HandlerError):
    pass


class ConfigurationError(DiscoveryError):
    pass
