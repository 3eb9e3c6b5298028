class TaggableError(Exception):
    """Base class."""


class DatabaseError(TaggableError):
    pass
class NotFoundError(TaggableError):
    pass
