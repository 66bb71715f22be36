"""Models package: re-export all ORM classes for metadata registration."""
from gymkana.models.team import Team  # noqa: F401
from gymkana.models.challenge import Challenge, ResponseType  # noqa: F401
from gymkana.models.response import Response  # noqa: F401
from gymkana.models.vote import Vote  # noqa: F401
