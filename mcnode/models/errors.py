class NodeError(Exception):
    pass


#############################################################################
#                                 NETWORK                                   #
#############################################################################
class NetworkError(NodeError):
    pass


class FetchError(NetworkError):
    def __init__(self, url: str, status: int):
        super().__init__(f"GET {url} -> {status}")
        self.url = url
        self.status = status


class TooManyRedirectsError(NetworkError):
    def __init__(self, url: str, limit: int):
        super().__init__(f"Too many redirects (>{limit}) fetching {url}")
        self.url = url


#############################################################################
#                               PROVISIONING                                #
#############################################################################
class VerificationError(NodeError):
    pass


class InstallerError(NodeError):
    pass


class ConfigError(NodeError):
    pass


class NotFoundError(ConfigError):
    pass


#############################################################################
#                                 RUNTIME                                   #
#############################################################################
class ProcessError(NodeError):
    pass


class StatusPingError(NodeError):
    pass


class RconError(NodeError):
    pass
