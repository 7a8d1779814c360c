class FormFlowError(Exception):
    """Base class for errors raised by the form engine."""


class ConfigurationError(FormFlowError):
    """A field or data source was configured with invalid input.

    Raised to the editing context only; the previous valid configuration
    stays in effect.
    """


class DependencyCycleError(ConfigurationError):
    def __init__(self, field_id: str, target_id: str):
        self.field_id = field_id
        self.target_id = target_id
        super().__init__(
            f"Field {field_id!r} cannot depend on {target_id!r}: it would create a dependency cycle"
        )


class NodeNotFoundError(FormFlowError, KeyError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(node_id)

    def __str__(self):
        return f"No section or field with id {self.node_id!r}"


class FormLockedError(FormFlowError):
    """The form is published and cannot be edited until it is unpublished."""


class RemoteSourceError(FormFlowError):
    """A remote option source could not be fetched or parsed."""
