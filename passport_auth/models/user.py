from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable


class ProfileValue(BaseModel):
    '''One entry of a provider's emails/photos list, e.g. {"value": "a@x.com"}.'''
    model_config = ConfigDict(extra='allow')

    value: Optional[str] = None
    type: Optional[str] = None
    primary: Optional[bool] = None
    verified: Optional[bool] = None


class Profile(BaseModel):
    '''
    Identity asserted by a provider during the OAuth callback.
    Accepts snake_case or camelCase keys (display_name / displayName).
    '''
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='allow')

    id: str = Field(..., description="Provider-assigned profile ID")
    provider: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    email: Optional[str] = Field(None, description="Top-level email (Apple ID token claim)")
    emails: List[ProfileValue] = Field(default_factory=list)
    photos: List[ProfileValue] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('id', mode='before')
    @classmethod
    def _coerce_id(cls, value):
        # GitHub reports numeric IDs
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator('id')
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("profile id is blank")
        return value


@runtime_checkable
class UserRecord(Protocol):
    '''A stored user as handed out by the Users collaborator.'''

    def get(self, key: str, default: Any = None) -> Any: ...
    def __getitem__(self, key: str) -> Any: ...
    def __setitem__(self, key: str, value: Any) -> None: ...
    def save(self) -> Union[Awaitable[Any], Any]: ...
    def to_dict(self) -> Dict[str, Any]: ...


class Users(Protocol):
    '''
    Data-access collaborator. find_one/new may return plain values or
    awaitables; create_strategy is optional and only needed for local login.
    '''

    def find_one(self, query: Mapping[str, Any]) -> Union[Awaitable[Optional[UserRecord]], Optional[UserRecord]]: ...
    def new(self, data: Mapping[str, Any]) -> UserRecord: ...
