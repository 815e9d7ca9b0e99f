"""
Best-effort secondary writes

A primary action (adding a comment, liking a blog, following a user) fans out
into notification and counter updates. Those run through `SideEffects`, which
logs failures with the ids involved and keeps going; the caller gets the list
of what was applied and what failed.
"""
import logging
from typing import Any, Callable, Dict, List

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class SideEffects:

    def __init__(self):
        self.applied: List[str] = []
        self.failed: List[str] = []

    def run(self, name: str, func: Callable[..., Any], *args, context: Dict[str, Any] = None, **kwargs) -> Any:
        try:
            result = func(*args, **kwargs)
        except PyMongoError as e:
            details = ", ".join(f"{k}={v}" for k, v in (context or {}).items())
            logger.error(f"Side effect '{name}' failed ({details}): {e}")
            self.failed.append(name)
            return None
        self.applied.append(name)
        return result

    def as_dict(self) -> Dict[str, List[str]]:
        return {"applied": list(self.applied), "failed": list(self.failed)}
