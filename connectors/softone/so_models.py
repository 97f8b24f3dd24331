"""SoftOne service response models.

Typed views over the JSON objects returned by the SoftOne endpoint. Only the
fields the sync engines inspect are declared; everything else is kept as an
extra field and passes through untouched (``model_extra``).
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Keys that may carry a human-readable error, in lookup order
ERROR_MESSAGE_KEYS = ("message", "Message", "error", "Error")


class ServiceResponse(BaseModel):
    """Generic SoftOne response.

    ``success`` defaults to True: the endpoint only reports failure through an
    explicit ``"success": false``.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool = True
    client_id: Optional[str] = Field(default=None, alias="clientID")
    error_code: Optional[str] = Field(default=None, alias="errorCode")

    @field_validator("client_id", "error_code", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("success", mode="before")
    @classmethod
    def _coerce_success(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() not in ("false", "0", "")
        return bool(v)

    @property
    def extra(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def raw(self) -> Dict[str, Any]:
        """The response as the server sent it (declared fields by alias)."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def error_message(self) -> str:
        """Extract a human-readable error message, or '' when none is present."""
        extra = self.extra
        for key in ERROR_MESSAGE_KEYS:
            value = extra.get(key)
            if isinstance(value, str) and value:
                return value

        errors = extra.get("errors")
        if isinstance(errors, list):
            messages = [e if isinstance(e, str) else json.dumps(e) for e in errors if isinstance(e, (str, dict, list))]
            if messages:
                return "; ".join(messages)

        return ""


class LoginResponse(ServiceResponse):
    """Response of the ``login`` service.

    ``objs`` lists the company/branch/module combinations available to the
    user; the first entry also carries the session expiry hint.
    """
    objs: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("objs", mode="before")
    @classmethod
    def _coerce_objs(cls, v: Any) -> List[Dict[str, Any]]:
        if isinstance(v, dict):
            return [v]
        if not isinstance(v, list):
            return []
        return [o for o in v if isinstance(o, dict)]

    @property
    def first_object(self) -> Dict[str, Any]:
        return self.objs[0] if self.objs else {}


class AuthenticateResponse(ServiceResponse):
    """Response of the ``authenticate`` service."""
    pass


class SqlDataResponse(ServiceResponse):
    """Response of the ``SqlData`` service."""
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    total_count: Optional[int] = Field(default=None, alias="totalcount")

    @field_validator("rows", mode="before")
    @classmethod
    def _coerce_rows(cls, v: Any) -> List[Dict[str, Any]]:
        if not isinstance(v, list):
            return []
        return [r for r in v if isinstance(r, dict)]


class SetDataResponse(ServiceResponse):
    """Response of the ``setData`` service; ``id`` is the created record id."""
    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)
