"""
Resilient Import Parser

Pipeline:
1. Strip invisible characters (control, zero-width, BOM)
2. Locate the JSON root ({ or [)
3. Slice to the last matching closer
4. Remove trailing commas
5. Parse (strict, positional diagnostics; json_repair when lenient)
6. Validate + renumber + write one transaction per collection
"""

from .repair import (
    ImportParseError,
    load_json,
    locate_root,
    merge_chunks,
    parse_payload,
    repair_text,
    slice_payload,
    strip_invisible,
    strip_trailing_commas,
)
from .loader import import_chunks, import_data, import_file
from .schemas import ImportResult

__all__ = [
    "ImportParseError",
    "ImportResult",
    "import_chunks",
    "import_data",
    "import_file",
    "load_json",
    "locate_root",
    "merge_chunks",
    "parse_payload",
    "repair_text",
    "slice_payload",
    "strip_invisible",
    "strip_trailing_commas",
]
