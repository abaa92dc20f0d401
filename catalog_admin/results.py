"""Tagged results returned by every service operation."""
from dataclasses import dataclass
from typing import Any, ClassVar, Tuple

CODE_INVALID = 'invalid'
CODE_NOT_FOUND = 'not-found'
CODE_CONFLICT = 'conflict'
CODE_LOCKED = 'locked'
CODE_UNAUTHENTICATED = 'unauthenticated'
CODE_UNAVAILABLE = 'unavailable'


@dataclass(frozen=True)
class Success:
    value: Any = None
    message: str = ''
    ok: ClassVar[bool] = True

    def to_dict(self):
        payload = {'success': True}
        if self.message:
            payload['message'] = self.message
        if isinstance(self.value, str):
            payload['id'] = self.value
        elif self.value is not None:
            payload['data'] = self.value
        return payload


@dataclass(frozen=True)
class Failure:
    error: str
    errors: Tuple[str, ...] = ()
    code: str = ''
    retry_after: int = 0
    ok: ClassVar[bool] = False

    @classmethod
    def invalid(cls, errors):
        errors = tuple(errors)
        return cls(error='\n'.join(errors), errors=errors, code=CODE_INVALID)

    def to_dict(self):
        payload = {'success': False, 'error': self.error}
        if self.errors:
            payload['errors'] = list(self.errors)
        if self.code:
            payload['code'] = self.code
        return payload
