from __future__ import annotations

from pydantic import BaseModel

ACCESS_CODE_MSG = "Please go settings page and fill your access code."
EMPTY_API_KEY_MSG = "Empty Api Key"


class AccessCodeRequired(BaseModel):
    """401 body telling the client to prompt for an access code."""
    error: bool = True
    needAccessCode: bool = True
    msg: str = ACCESS_CODE_MSG


class EmptyApiKey(BaseModel):
    """401 body when the service has no credential to offer."""
    error: bool = True
    msg: str = EMPTY_API_KEY_MSG
