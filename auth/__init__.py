from auth.bearer import BearerAuth

__all__ = ["BearerAuth"]
