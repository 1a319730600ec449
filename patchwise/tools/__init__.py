"""Filesystem tools built on the patch engine.

``ApplyPatchTool`` binds the engine to a workspace directory and exposes an
``edit`` function and a hash-annotated ``read_file`` function, each carrying a
JSON ``__tool_schema__`` for agent registration.
"""
from .apply_patch import EDIT_TOOL_SCHEMA, READ_TOOL_SCHEMA, ApplyPatchTool, EditParams, LineEditParams

__all__ = ["ApplyPatchTool", "EditParams", "LineEditParams", "EDIT_TOOL_SCHEMA", "READ_TOOL_SCHEMA"]
