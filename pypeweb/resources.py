"""
API resources shape rows or models for JSON output::

    class UserResource(Resource):
        @classmethod
        def to_dict(cls, user):
            return {"id": user["id"], "email": user["email"]}

    return ApiResponse.success(UserResource.collection(users))
"""

from typing import Any, Dict, Iterable, List


class Resource:
    """Identity transform; subclasses override :meth:`to_dict`."""

    @classmethod
    def to_dict(cls, item: Any) -> Any:
        if hasattr(item, "to_dict"):
            return item.to_dict()
        return item

    @classmethod
    def make(cls, item: Any) -> Any:
        if item is None:
            return None
        return cls.to_dict(item)

    @classmethod
    def collection(cls, items: Iterable[Any]) -> List[Any]:
        return [cls.make(item) for item in items]


class HiddenFieldsResource(Resource):
    """Drops :attr:`hidden` keys, e.g. password hashes."""

    hidden = ("password",)

    @classmethod
    def to_dict(cls, item: Any) -> Dict[str, Any]:
        data = super().to_dict(item)
        return {key: value for key, value in data.items() if key not in cls.hidden}
