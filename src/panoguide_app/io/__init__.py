"""Frame codec and panorama compositing helpers."""

from .frames import decode_frame, encode_frame
from .panorama_assembly import AssemblyResult, assemble_panorama

__all__ = [
    "AssemblyResult",
    "assemble_panorama",
    "decode_frame",
    "encode_frame",
]
