"""
File-system steps: copy, move, delete, rename, create folder, existence check.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import ClassVar, Tuple

from .actions import ActionError, BaseAction, ValidationError, register_action


class FileSystemType(Enum):
    FILE = "file"
    FOLDER = "folder"


def _require(value: str, label: str) -> None:
    if not value.strip():
        raise ValidationError(f"{label} is not specified")


@dataclass
class _TransferAction(BaseAction):
    """Shared body of copy and move."""

    template_fields: ClassVar[Tuple[str, ...]] = ("source_path", "destination_path")
    verb: ClassVar[str] = ""

    source_path: str = ""
    destination_path: str = ""
    overwrite: bool = False

    @property
    def name(self) -> str:
        return f"{self.verb.capitalize()} file: {Path(self.source_path).name}"

    @property
    def description(self) -> str:
        return f"{self.source_path} -> {self.destination_path} (overwrite: {'yes' if self.overwrite else 'no'})"

    def check(self) -> None:
        _require(self.source_path, "Source path")
        _require(self.destination_path, "Destination path")

    def _resolve_destination(self) -> Path:
        source = Path(self.source_path)
        if not source.is_file():
            raise ActionError(f"Source file not found: {source}")
        destination = Path(self.destination_path)
        if destination.is_dir():
            destination = destination / source.name
        if destination.resolve() == source.resolve():
            raise ActionError(f"Source and destination are the same file: {source}")
        if destination.exists() and not self.overwrite:
            raise ActionError(f"Destination already exists: {destination}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        return destination

    def _transfer(self, source: Path, destination: Path) -> None:  # pragma: no cover
        raise NotImplementedError

    def run(self) -> None:
        destination = self._resolve_destination()
        try:
            self._transfer(Path(self.source_path), destination)
        except OSError as e:
            raise ActionError(f"Failed to {self.verb} {self.source_path}: {e}")
        self.log_info(f"{self.verb}: {self.source_path} -> {destination}")


@register_action
@dataclass
class FileCopyAction(_TransferAction):
    kind: ClassVar[str] = "file_copy"
    verb: ClassVar[str] = "copy"

    def _transfer(self, source: Path, destination: Path) -> None:
        shutil.copy2(source, destination)


@register_action
@dataclass
class FileMoveAction(_TransferAction):
    kind: ClassVar[str] = "file_move"
    verb: ClassVar[str] = "move"

    def _transfer(self, source: Path, destination: Path) -> None:
        if destination.exists():
            destination.unlink()
        shutil.move(str(source), str(destination))


@register_action
@dataclass
class FileDeleteAction(BaseAction):
    kind: ClassVar[str] = "file_delete"
    template_fields: ClassVar[Tuple[str, ...]] = ("target_path",)

    target_path: str = ""
    target_type: FileSystemType = FileSystemType.FILE
    recursive: bool = False

    @property
    def name(self) -> str:
        return f"Delete {self.target_type.value}: {Path(self.target_path).name}"

    @property
    def description(self) -> str:
        suffix = " (recursive)" if self.recursive else ""
        return f"Delete {self.target_path}{suffix}"

    def check(self) -> None:
        _require(self.target_path, "Target path")

    def run(self) -> None:
        target = Path(self.target_path)
        try:
            if self.target_type == FileSystemType.FILE:
                if not target.is_file():
                    raise ActionError(f"File not found: {target}")
                target.unlink()
            else:
                if not target.is_dir():
                    raise ActionError(f"Folder not found: {target}")
                if self.recursive:
                    shutil.rmtree(target)
                else:
                    target.rmdir()
        except OSError as e:
            raise ActionError(f"Failed to delete {target}: {e}")
        self.log_info(f"Deleted: {target}")


@register_action
@dataclass
class FileRenameAction(BaseAction):
    kind: ClassVar[str] = "file_rename"
    template_fields: ClassVar[Tuple[str, ...]] = ("source_path", "new_name")

    source_path: str = ""
    new_name: str = ""
    overwrite: bool = False

    @property
    def name(self) -> str:
        return f"Rename: {Path(self.source_path).name}"

    @property
    def description(self) -> str:
        return f"{self.source_path} -> {self.new_name}"

    def check(self) -> None:
        _require(self.source_path, "Source path")
        _require(self.new_name, "New name")
        if any(sep in self.new_name for sep in ("/", "\\")):
            raise ValidationError("New name must not contain path separators")

    def run(self) -> None:
        source = Path(self.source_path)
        if not source.exists():
            raise ActionError(f"Not found: {source}")
        destination = source.with_name(self.new_name)
        if destination.exists() and not self.overwrite:
            raise ActionError(f"Destination already exists: {destination}")
        try:
            source.replace(destination)
        except OSError as e:
            raise ActionError(f"Failed to rename {source}: {e}")
        self.log_info(f"Renamed: {source} -> {destination}")


@register_action
@dataclass
class FolderCreateAction(BaseAction):
    kind: ClassVar[str] = "folder_create"
    template_fields: ClassVar[Tuple[str, ...]] = ("folder_path",)

    folder_path: str = ""

    @property
    def name(self) -> str:
        return "Create folder"

    @property
    def description(self) -> str:
        return f"Create folder {self.folder_path}"

    def check(self) -> None:
        _require(self.folder_path, "Folder path")

    def run(self) -> None:
        try:
            Path(self.folder_path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ActionError(f"Failed to create folder {self.folder_path}: {e}")
        self.log_info(f"Folder ready: {self.folder_path}")


@register_action
@dataclass
class FileExistsAction(BaseAction):
    kind: ClassVar[str] = "file_exists"
    template_fields: ClassVar[Tuple[str, ...]] = ("target_path",)

    target_path: str = ""
    target_type: FileSystemType = FileSystemType.FILE
    fail_if_not_exists: bool = True
    result_variable: str = ""

    @property
    def name(self) -> str:
        return f"{self.target_type.value.capitalize()} exists"

    @property
    def description(self) -> str:
        return f"Check {self.target_type.value} {self.target_path}"

    def check(self) -> None:
        _require(self.target_path, "Target path")

    def run(self) -> None:
        target = Path(self.target_path)
        exists = target.is_file() if self.target_type == FileSystemType.FILE else target.is_dir()
        if self.result_variable.strip():
            self.ctx.set_variable(self.result_variable, "true" if exists else "false")
        if exists:
            self.log_info(f"Exists: {target}")
            return
        if self.fail_if_not_exists:
            raise ActionError(f"Does not exist: {target}")
        self.log_info(f"Does not exist: {target}")
