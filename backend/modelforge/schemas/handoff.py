from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Literal, Optional

HANDOFF_MESSAGE_TYPE = "modelforge.handoff"
HANDOFF_ACK_TYPE = "modelforge.handoff.ack"
HANDOFF_VERSION = 1

class HandoffMetadata(BaseModel):
    title: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    file_size: Optional[int] = None
    source_url: Optional[str] = None

class HandoffMessage(BaseModel):
    """Versioned message handed to the external CAD application"""
    type: str = HANDOFF_MESSAGE_TYPE
    version: int = HANDOFF_VERSION
    request_id: str
    file_name: str
    artifact_url: Optional[str] = None
    artifact_data: Optional[str] = Field(None, description="Base64 encoded artifact bytes")
    source: str
    metadata: HandoffMetadata = Field(default_factory=HandoffMetadata)

    @model_validator(mode="after")
    def check_artifact(self):
        if not self.artifact_url and not self.artifact_data:
            raise ValueError("artifact_url or artifact_data is required")
        return self

class HandoffRequest(BaseModel):
    title: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    file_name: Optional[str] = None
    format: Literal["stl", "source"] = Field(
        "stl",
        description="stl converts and embeds the model; source hands off the model as generated"
    )
    embed_artifact: bool = Field(False, description="Send artifact bytes instead of its URL")
    deliver: bool = Field(True, description="POST the message to the import endpoint")

class HandoffReceiptResponse(BaseModel):
    request_id: str
    delivered: bool
    import_id: Optional[str] = None
    http_status: Optional[int] = None
    error: Optional[str] = None

class HandoffResponse(BaseModel):
    message: HandoffMessage
    receipt: Optional[HandoffReceiptResponse] = None

class AcknowledgementResponse(BaseModel):
    recognized: bool
    request_id: Optional[str] = None
    status: str
    success: bool = False
    cad_url: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

class ImportStatusResponse(BaseModel):
    import_id: str
    status: str  # requesting, importing, processing, completed, failed, unrecognized
    cad_url: Optional[str] = None
    error: Optional[str] = None
