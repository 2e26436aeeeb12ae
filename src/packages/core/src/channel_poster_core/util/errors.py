"""Error types shared by the core and the API."""


class ChannelPosterError(Exception):
    """Base class for all domain errors."""


class InvalidInput(ChannelPosterError):
    """A submission was malformed and no job was created."""


class ConfigurationMissing(ChannelPosterError):
    """Bot credentials or the destination channel are not configured."""


class NotFound(ChannelPosterError):
    """No job with the given identifier is known."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class RowDeliveryFailure(ChannelPosterError):
    """A row could not be delivered within its attempt budget."""

    def __init__(self, row_index: int, message: str, attempts: int = 0):
        super().__init__(message)
        self.row_index = row_index
        self.message = message
        self.attempts = attempts
