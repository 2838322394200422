# SQLModel definitions, imported here so metadata is populated before create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .membership import Membership  # noqa: F401
from .content import ContentItem  # noqa: F401
from .tag import Tag, ContentItemTag  # noqa: F401
from .attachment import Attachment  # noqa: F401
