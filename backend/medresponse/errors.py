"""Domain errors raised by the service layer and the real-time relay."""


class MedResponseError(Exception):
    """Base class for all application errors."""


class NotFoundError(MedResponseError):
    def __init__(self, resource: str, resource_id):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class InvalidStatusTransition(MedResponseError):
    def __init__(self, resource: str, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move {resource} from '{current}' to '{requested}'")


class ResourceUnavailableError(MedResponseError):
    def __init__(self, resource_ids: list[int], kind: str = "resources"):
        self.resource_ids = resource_ids
        super().__init__(f"{kind.capitalize()} not available for assignment: {resource_ids}")


class RelayMessageError(MedResponseError):
    """An inbound real-time message failed validation.

    ``str(exc)`` is sent back to the originating connection verbatim.
    """
