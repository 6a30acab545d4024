# server/tools/files.py
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from app.services.outcome import Failure, Outcome


class FsWriteIn(BaseModel):
    path: str = Field(..., description="Relative path of the new file under the base directory")
    content: str = Field(..., description="UTF-8 text content to write")


class FsPathIn(BaseModel):
    path: str = Field(..., description="Relative path under the base directory")


class FsRenameIn(BaseModel):
    path: str = Field(..., description="Relative path of the file or directory to rename")
    name: str = Field(..., description="New name (no path separators)")


class FsMoveIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(..., alias="from", description="Relative source path")
    dest: str = Field(..., alias="to", description="Relative destination path (must not exist)")


def unwrap(outcome: Outcome):
    if isinstance(outcome, Failure):
        raise ToolError(outcome.message)
    return outcome.value


def register_file_tools(mcp: FastMCP, fs_service, share_service):
    """
    Very thin tool adapters:
    - validate/deserialize inputs (Pydantic)
    - call the service (path safety + mutation)
    - return the result or raise ToolError with the failure message
    """

    @mcp.tool(name="fs_write", description="Create a new text file under the base directory")
    def fs_write(input: FsWriteIn) -> str:
        return unwrap(fs_service.write_text(input.path, input.content))

    @mcp.tool(name="fs_delete", description="Delete a file or an empty directory")
    def fs_delete(input: FsPathIn) -> str:
        return unwrap(fs_service.delete(input.path))

    @mcp.tool(name="fs_mkdir", description="Create a directory (parent must exist)")
    def fs_mkdir(input: FsPathIn) -> str:
        return unwrap(fs_service.mkdir(input.path))

    @mcp.tool(name="fs_rename", description="Rename a file or directory in place")
    def fs_rename(input: FsRenameIn) -> dict:
        result = unwrap(fs_service.rename(input.path, input.name))
        return {"from": result.source, "to": result.dest}

    @mcp.tool(name="fs_move", description="Move a file or directory to another path")
    def fs_move(input: FsMoveIn) -> dict:
        result = unwrap(fs_service.move(input.source, input.dest))
        return {"from": result.source, "to": result.dest}

    @mcp.tool(name="share_publish", description="Publish a file into the public share tree")
    def share_publish(input: FsPathIn) -> dict:
        link = unwrap(share_service.publish(input.path))
        return {"shareId": link.share_id, "path": link.path}

    @mcp.tool(name="share_unpublish", description="Remove a file's public share link")
    def share_unpublish(input: FsPathIn) -> str:
        return unwrap(share_service.unpublish(input.path))

    @mcp.tool(name="share_list", description="List all publicly shared files")
    def share_list() -> List[str]:
        return unwrap(share_service.list())
