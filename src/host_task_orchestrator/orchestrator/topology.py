"""Filesystem layout of the deployed project inside its containers."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PROJECT_ROOT = "/curvebs"

DEFAULT_CHUNKFILE_SIZE = 16 * 1024 * 1024  # 16MB
DEFAULT_CHUNKFILE_HEADER_SIZE = 4 * 1024  # 4KB


@dataclass(frozen=True, slots=True)
class ProjectLayout:
    project_root: str
    tools_bin_dir: str
    format_binary_path: str
    chunkfile_pool_root_dir: str
    chunkfile_pool_dir: str
    chunkfile_pool_meta_path: str
    ops_tool: str = "curve_ops_tool"

    @classmethod
    def from_root(cls, root: str = DEFAULT_PROJECT_ROOT) -> ProjectLayout:
        root = root.rstrip("/") or "/"
        tools_bin_dir = f"{root}/tools/sbin"
        data_dir = f"{root}/chunkserver/data"
        return cls(
            project_root=root,
            tools_bin_dir=tools_bin_dir,
            format_binary_path=f"{tools_bin_dir}/curve_format",
            chunkfile_pool_root_dir=data_dir,
            chunkfile_pool_dir=f"{data_dir}/chunkfilepool",
            chunkfile_pool_meta_path=f"{data_dir}/chunkfilepool.meta",
        )

    @property
    def format_script_path(self) -> str:
        return f"{self.tools_bin_dir}/format.sh"

    @property
    def target_script_path(self) -> str:
        return f"{self.tools_bin_dir}/target.sh"
