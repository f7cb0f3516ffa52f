class LeadRouterError(Exception):
    """Base class for errors surfaced to API callers."""


class NotFoundError(LeadRouterError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidTransitionError(LeadRouterError):
    def __init__(self, from_status, to_status):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {_name(from_status)} -> {_name(to_status)}")


class ValidationError(LeadRouterError):
    """Input rejected before any state was touched."""


def _name(status) -> str:
    return getattr(status, "value", status)
