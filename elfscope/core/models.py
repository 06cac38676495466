"""
elfscope Summary Models
========================

Pydantic models describing a decoded ELF file for presentation.  The engine
builds them from the core views; they hold plain values only (names already
resolved, enums already rendered as text) so they serialise directly with
``model_dump_json``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from shared.models import ValidationReport


class HeaderInfo(BaseModel):
    """The file header.

    Attributes:
        elf_class: ``"ELF32"`` or ``"ELF64"``.
        byte_order: ``"LITTLE"`` or ``"BIG"``.
        object_type: Decoded ``e_type`` (raw hex when unassigned).
        machine: Decoded ``e_machine`` name.
        section_count: Effective section count (extended numbering applied).
        sh_str_index: Effective section name table index.
    """
    elf_class: str
    byte_order: str
    os_abi: str
    abi_version: int = 0
    object_type: str
    machine: str
    version: int = 1
    entry_point: int = 0
    ph_offset: int = 0
    sh_offset: int = 0
    flags: int = 0
    header_size: int = 0
    ph_entry_size: int = 0
    ph_count: int = 0
    sh_entry_size: int = 0
    section_count: int = 0
    sh_str_index: int = 0


class SectionInfo(BaseModel):
    index: int
    name: str = ""
    type: str
    flags: str = ""
    address: int = 0
    offset: int = 0
    size: int = 0
    link: int = 0
    info: int = 0
    align: int = 0
    entry_size: int = 0
    compression: Optional[str] = None


class SegmentInfo(BaseModel):
    index: int
    type: str
    flags: str = ""
    offset: int = 0
    virtual_addr: int = 0
    physical_addr: int = 0
    file_size: int = 0
    mem_size: int = 0
    align: int = 0
    interpreter: Optional[str] = None


class SymbolInfo(BaseModel):
    """One symbol with binding, type and section resolved to names."""
    table: str
    index: int
    name: str = ""
    value: int = 0
    size: int = 0
    binding: str = ""
    type: str = ""
    visibility: str = ""
    section: str = ""


class DynamicInfo(BaseModel):
    index: int
    tag: str
    value: int = 0
    text: Optional[str] = Field(
        default=None, description="Resolved .dynstr string for name tags"
    )


class ElfSummary(BaseModel):
    """Everything ``elfscope`` reports about one file."""
    target: str
    file_size: int = 0
    header: HeaderInfo
    sections: list[SectionInfo] = Field(default_factory=list)
    segments: list[SegmentInfo] = Field(default_factory=list)
    symbols: list[SymbolInfo] = Field(default_factory=list)
    symbol_counts: dict[str, int] = Field(default_factory=dict)
    dynamic: list[DynamicInfo] = Field(default_factory=list)
    interpreter: Optional[str] = None
    soname: Optional[str] = None
    needed: list[str] = Field(default_factory=list)
    lookup_name: Optional[str] = None
    lookup_result: Optional[SymbolInfo] = None
    decode_errors: list[str] = Field(
        default_factory=list,
        description="Non-fatal failures met while building the summary",
    )
    validation: Optional[ValidationReport] = None

    @property
    def is_valid(self) -> bool:
        return self.validation is None or self.validation.is_valid
