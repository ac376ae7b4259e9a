# constructor/core/exceptions.py
class NodeNotFoundException(Exception):
    """Raised when a node is not found for a given ID."""
    def __init__(self, message="Node not found."):
        self.message = message
        super().__init__(self.message)


class ProjectNotFoundException(Exception):
    """Raised when a project is not part of the caller's workspace."""
    def __init__(self, message="Project not found."):
        self.message = message
        super().__init__(self.message)


class InvalidNodeTypeException(Exception):
    """Raised when an operation targets a node of the wrong type, e.g. chatting with a web node."""
    def __init__(self, message="Operation not supported for this node type."):
        self.message = message
        super().__init__(self.message)


class ExtractionError(Exception):
    def __init__(self, message="Failed to extract content"):
        self.message = message
        super().__init__(self.message)
