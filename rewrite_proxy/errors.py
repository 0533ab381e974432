'''
Errors the proxy reports to its caller.

Each is a tornado HTTPError, so raising one from a handler is enough: tornado
logs it, sets the status and hands it to ``write_error`` which renders the
``{"error": message}`` body.
'''
from tornado import web


class ProxyError(web.HTTPError):
    status_code = 500

    def __init__(self, message):
        # log_message is %-formatted by tornado and our messages are full of
        # percent-encoded urls, so it must go in as an argument.
        super(ProxyError, self).__init__(self.status_code, '%s', message)
        self.message = message


class MissingParameter(ProxyError):
    status_code = 400


class InvalidURL(ProxyError):
    status_code = 400


class ForbiddenScheme(ProxyError):
    status_code = 403


class UpstreamUnavailable(ProxyError):
    status_code = 502


class UpstreamTimeout(ProxyError):
    status_code = 504


class StreamInterrupted(ProxyError):
    status_code = 502
