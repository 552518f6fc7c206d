from pydantic import BaseModel
from typing import Any, List, Optional

class CapsuleRequest(BaseModel):
    message: List[Any]
    address: Optional[str] = None
    date: Optional[int] = None

class CapsuleResult(BaseModel):
    jsonUrl: Optional[str] = None
    jsonData: Optional[str] = None
    jsonSignature: Optional[str] = None
    address: str
    pngUrl: Optional[str] = None
    messageJsonUrl: Optional[str] = None
    external_url: Optional[str] = None
    message: List[str]
    date: Optional[int] = None

class CapsuleResponse(BaseModel):
    done: bool = True
    result: CapsuleResult
