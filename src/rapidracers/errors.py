class RapidRacersError(Exception):
    """Base error; carries the HTTP status the API responds with."""
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(RapidRacersError):
    status_code = 400


class AuthError(RapidRacersError):
    status_code = 401


class NotFoundError(RapidRacersError):
    status_code = 404


class ConfigError(RapidRacersError):
    status_code = 500


class UpstreamError(RapidRacersError):
    status_code = 500


class TableNotFound(ConfigError):
    pass
