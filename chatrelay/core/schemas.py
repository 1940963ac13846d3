"""
Wire models shared by the WebSocket session loop, the hub and the history route.
"""
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, StrictStr


class InboundMessage(BaseModel):
    """Client -> server data frame. Missing fields read as empty strings."""
    model_config = ConfigDict(extra="ignore")

    name: StrictStr = ""
    message: StrictStr = ""


class MessageOut(BaseModel):
    """Server -> client record, used for live broadcast and history."""
    model_config = ConfigDict(from_attributes=True)

    name: str
    message: str
    time: datetime

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict; time is RFC 3339 UTC."""
        return self.model_dump(mode="json")
