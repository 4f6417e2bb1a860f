from .service import (
    Acknowledgement,
    HandoffReceipt,
    HandoffService,
    ImportStatus,
    ImportStatusReport,
    filename_from_url,
    parse_acknowledgement
)
from .artifacts import Artifact, fetch_artifact
from .conversion import convert_to_stl, stl_file_name

__all__ = [
    "Acknowledgement",
    "HandoffReceipt",
    "HandoffService",
    "ImportStatus",
    "ImportStatusReport",
    "filename_from_url",
    "parse_acknowledgement",
    "Artifact",
    "fetch_artifact",
    "convert_to_stl",
    "stl_file_name"
]
