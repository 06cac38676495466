"""
elfscope Inspection Engine
===========================

Drives the core decoders over one file and condenses the result into an
:class:`~elfscope.core.models.ElfSummary`:

    1. Read the file (bounded by ``inspect.max_file_size``)
    2. Decode the header; a failure here is fatal
    3. List sections, segments, symbols and dynamic entries
    4. Optionally look a symbol up through the SysV ``.hash`` section
    5. Optionally run the validation layer

Failures in step 3 for an individual structure do not abort the run; they
are logged and recorded in ``ElfSummary.decode_errors``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, TypeVar

from shared.config import ScopeConfig
from shared.logger import ScopeLogger

from elfscope.core.dynamic import STRING_TAGS, Tag
from elfscope.core.elffile import ElfFile
from elfscope.core.errors import ElfError
from elfscope.core.hash import HashTable
from elfscope.core.header import machine_name
from elfscope.core.models import (
    DynamicInfo,
    ElfSummary,
    HeaderInfo,
    SectionInfo,
    SegmentInfo,
    SymbolInfo,
)
from elfscope.core.program import SegmentType, segment_type_name
from elfscope.core.sections import (
    DynamicTable,
    section_type_name,
    ShType,
    StringTable,
    SymbolTable,
)
from elfscope.core.symbols import SHN_ABS, SHN_COMMON, SHN_UNDEF, SymbolEntry
from elfscope.core.validate import validate as validate_file
from elfscope.core.view import Buffer

T = TypeVar("T")


class FileTooLargeError(ValueError):
    """The input exceeds ``inspect.max_file_size``."""


class InspectEngine:
    """Builds :class:`ElfSummary` objects from files or buffers.

    Usage::

        engine = InspectEngine()
        summary = engine.inspect_file("/bin/true")
        print(summary.header.machine, len(summary.sections))

    Args:
        config: Configuration; defaults are used when omitted.
        logger: Logger; a quiet ``elfscope.engine`` logger when omitted.
    """

    def __init__(
        self,
        config: ScopeConfig | None = None,
        logger: ScopeLogger | None = None,
    ) -> None:
        self._config: ScopeConfig = config or ScopeConfig()
        self._logger: ScopeLogger = logger or ScopeLogger(
            "engine", log_level=self._config.global_settings.log_level
        )

    @property
    def config(self) -> ScopeConfig:
        return self._config

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def inspect_file(
        self,
        path: str | Path,
        *,
        validate: bool | None = None,
        symbols: bool = True,
        lookup: str | None = None,
    ) -> ElfSummary:
        """Read *path* and inspect its contents.

        Raises:
            FileNotFoundError: If *path* is not a regular file.
            FileTooLargeError: If the file exceeds the configured limit.
            ElfError: If the file header cannot be decoded.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        size = file_path.stat().st_size
        limit = self._config.inspect.max_file_size
        if size > limit:
            raise FileTooLargeError(
                f"File too large: {size:,} bytes (max: {limit:,} bytes)"
            )
        return self.inspect_bytes(
            file_path.read_bytes(), str(file_path),
            validate=validate, symbols=symbols, lookup=lookup,
        )

    def inspect_bytes(
        self,
        data: Buffer,
        target: str = "<buffer>",
        *,
        validate: bool | None = None,
        symbols: bool = True,
        lookup: str | None = None,
    ) -> ElfSummary:
        """Inspect an in-memory ELF image.

        Args:
            data: The complete file contents.
            target: Name used in logs and reports.
            validate: Run the validation layer; ``None`` follows the config.
            symbols: Include symbol listings.
            lookup: Symbol name to resolve through the ``.hash`` section.

        Raises:
            ElfError: If the file header cannot be decoded.
        """
        cfg = self._config.inspect
        run_validation = cfg.validate if validate is None else validate

        with self._logger.operation("inspect"), self._logger.timed(target):
            elf = ElfFile(data, use_name_index=cfg.use_name_index)
            errors: list[str] = []
            summary = ElfSummary(
                target=target,
                file_size=len(elf.input),
                header=self._header_info(elf, errors),
            )
            summary.sections = self._sections(elf, errors)
            summary.segments = self._segments(elf, errors)
            summary.interpreter = next(
                (s.interpreter for s in summary.segments if s.interpreter),
                None,
            )
            if symbols:
                summary.symbols, summary.symbol_counts = self._symbols(
                    elf, errors
                )
            if cfg.show_dynamic:
                summary.dynamic = self._dynamic(elf, errors)
                summary.needed = [d.text for d in summary.dynamic
                                  if d.tag == Tag.NEEDED.name and d.text]
                summary.soname = next(
                    (d.text for d in summary.dynamic
                     if d.tag == Tag.SONAME.name), None,
                )
            if lookup is not None:
                summary.lookup_name = lookup
                summary.lookup_result = self._guard(
                    errors, f"lookup {lookup!r}",
                    lambda: self.lookup_symbol(elf, lookup), None,
                )
            if run_validation:
                summary.validation = validate_file(elf, target)
                self._logger.info(
                    "validation: %s", summary.validation.summary,
                    kinds=summary.validation.kinds(),
                    seconds=summary.validation.duration_seconds,
                )
            summary.decode_errors = errors

        return summary

    def lookup_symbol(self, elf: ElfFile, name: str) -> SymbolInfo | None:
        """Resolve *name* through the SysV ``.hash`` section.

        Returns ``None`` when the file has no ``.hash`` section or the name
        is not present.
        """
        hash_section = elf.find_section_by_name(".hash")
        if hash_section is None:
            self._logger.debug("no .hash section")
            return None
        table = hash_section.get_data(elf)
        symtab_section = elf.section_header(hash_section.link)
        symbols = symtab_section.get_data(elf)
        if not isinstance(table, HashTable) or not isinstance(symbols, SymbolTable):
            return None
        found = table.lookup(name, symbols, elf)
        if found is None:
            return None
        return self._symbol_info(elf, symtab_section.get_name(elf), found[1], [])

    # ------------------------------------------------------------------ #
    #  Builders
    # ------------------------------------------------------------------ #

    def _guard(
        self,
        errors: list[str],
        where: str,
        fn: Callable[[], T],
        default: T,
    ) -> T:
        try:
            return fn()
        except ElfError as exc:
            self._logger.warning("%s: %s", where, exc.message,
                                 kind=exc.kind.value)
            errors.append(f"{where}: {exc.kind.value}: {exc.message}")
            return default

    def _header_info(self, elf: ElfFile, errors: list[str]) -> HeaderInfo:
        pt1, pt2 = elf.header.pt1, elf.header.pt2
        object_type = pt2.object_type
        return HeaderInfo(
            elf_class=pt1.elf_class.name,
            byte_order=pt1.byte_order.name,
            os_abi=pt1.os_abi_name,
            abi_version=pt1.abi_version,
            object_type=(object_type.name if object_type is not None
                         else f"unknown({pt2.type:#x})"),
            machine=machine_name(pt2.machine),
            version=pt2.version,
            entry_point=pt2.entry_point,
            ph_offset=pt2.ph_offset,
            sh_offset=pt2.sh_offset,
            flags=pt2.flags,
            header_size=pt2.header_size,
            ph_entry_size=pt2.ph_entry_size,
            ph_count=pt2.ph_count,
            sh_entry_size=pt2.sh_entry_size,
            section_count=self._guard(
                errors, "section count", lambda: elf.section_count, 0
            ),
            sh_str_index=self._guard(
                errors, "section name table", lambda: elf.sh_str_index,
                pt2.sh_str_index,
            ),
        )

    def _sections(self, elf: ElfFile, errors: list[str]) -> list[SectionInfo]:
        headers = self._guard(
            errors, "section table", lambda: list(elf.section_headers()), []
        )
        skip_null = self._config.inspect.skip_null_section
        result: list[SectionInfo] = []
        for sh in headers:
            if skip_null and sh.index == 0 and sh.type == ShType.NULL:
                continue
            where = f"section {sh.index}"
            compression = None
            if sh.is_compressed:
                chdr = self._guard(
                    errors, where, lambda: sh.compression_header(elf), None
                )
                if chdr is not None:
                    compression = self._guard(
                        errors, where, lambda: chdr.get_type().name,
                        f"invalid({chdr.type:#x})",
                    )
            result.append(SectionInfo(
                index=sh.index,
                name=self._guard(errors, where, lambda: sh.get_name(elf), ""),
                type=section_type_name(sh.type),
                flags=sh.flags_str(),
                address=sh.address,
                offset=sh.offset,
                size=sh.size,
                link=sh.link,
                info=sh.info,
                align=sh.align,
                entry_size=sh.entry_size,
                compression=compression,
            ))
        self._logger.debug("decoded %d sections", len(result))
        return result

    def _segments(self, elf: ElfFile, errors: list[str]) -> list[SegmentInfo]:
        headers = self._guard(
            errors, "program table", lambda: list(elf.program_headers()), []
        )
        result: list[SegmentInfo] = []
        for ph in headers:
            interpreter = None
            if ph.type == SegmentType.INTERP:
                interpreter = self._guard(
                    errors, f"segment {ph.index}",
                    lambda: ph.interpreter(elf), None,
                )
            result.append(SegmentInfo(
                index=ph.index,
                type=segment_type_name(ph.type),
                flags=ph.flags_str(),
                offset=ph.offset,
                virtual_addr=ph.virtual_addr,
                physical_addr=ph.physical_addr,
                file_size=ph.file_size,
                mem_size=ph.mem_size,
                align=ph.align,
                interpreter=interpreter,
            ))
        self._logger.debug("decoded %d segments", len(result))
        return result

    def _symbol_info(self, elf: ElfFile, table: str, entry: SymbolEntry,
                     errors: list[str]) -> SymbolInfo:
        where = f"{table} symbol {entry.index}"
        return SymbolInfo(
            table=table,
            index=entry.index,
            name=self._guard(errors, where, lambda: entry.get_name(elf), ""),
            value=entry.value,
            size=entry.size,
            binding=self._guard(
                errors, where, lambda: entry.get_binding().name,
                f"invalid({entry.info >> 4})",
            ),
            type=self._guard(
                errors, where, lambda: entry.get_type().name,
                f"invalid({entry.info & 0xF})",
            ),
            visibility=entry.get_visibility().name,
            section=self._guard(
                errors, where, lambda: self._symbol_section(elf, entry),
                str(entry.shndx),
            ),
        )

    @staticmethod
    def _symbol_section(elf: ElfFile, entry: SymbolEntry) -> str:
        special = {SHN_UNDEF: "UND", SHN_ABS: "ABS", SHN_COMMON: "COM"}
        if entry.shndx in special:
            return special[entry.shndx]
        section = entry.get_section_header(elf)
        return section.get_name(elf) if section is not None else ""

    def _symbols(
        self, elf: ElfFile, errors: list[str]
    ) -> tuple[list[SymbolInfo], dict[str, int]]:
        limit = self._config.inspect.max_symbols
        listed: list[SymbolInfo] = []
        counts: dict[str, int] = {}
        headers = self._guard(
            errors, "section table", lambda: list(elf.section_headers()), []
        )
        for sh in headers:
            if sh.type not in (ShType.SYMTAB, ShType.DYNSYM):
                continue
            where = f"section {sh.index}"
            table_name = self._guard(
                errors, where, lambda: sh.get_name(elf), f"[{sh.index}]"
            )
            data: Any = self._guard(errors, where, lambda: sh.get_data(elf), None)
            if not isinstance(data, SymbolTable):
                continue
            counts[table_name] = len(data)
            for entry in data:
                if len(listed) >= limit:
                    break
                listed.append(self._symbol_info(elf, table_name, entry, errors))
        self._logger.debug("listed %d symbols", len(listed), tables=counts)
        return listed, counts

    def _dynamic_table(self, elf: ElfFile) -> DynamicTable | None:
        for sh in elf.section_headers():
            if sh.type == ShType.DYNAMIC:
                data = sh.get_data(elf)
                return data if isinstance(data, DynamicTable) else None
        for ph in elf.program_headers():
            if ph.type == SegmentType.DYNAMIC:
                data = ph.get_data(elf)
                return data if isinstance(data, DynamicTable) else None
        return None

    def _dynamic(self, elf: ElfFile, errors: list[str]) -> list[DynamicInfo]:
        table = self._guard(errors, "dynamic", lambda: self._dynamic_table(elf),
                            None)
        if table is None:
            return []
        dynstr = self._guard(
            errors, "dynamic", lambda: self._dynstr(elf), None
        )
        result: list[DynamicInfo] = []
        for entry in table:
            where = f"dynamic {entry.index}"
            tag = self._guard(errors, where, entry.get_tag, None)
            text = None
            if tag in STRING_TAGS and dynstr is not None:
                text = self._guard(errors, where,
                                   lambda: dynstr.get(entry.un), None)
            result.append(DynamicInfo(
                index=entry.index,
                tag=tag.name if tag is not None else f"invalid({entry.tag:#x})",
                value=entry.un,
                text=text,
            ))
            if tag is Tag.NULL:
                break
        return result

    @staticmethod
    def _dynstr(elf: ElfFile) -> StringTable | None:
        section = elf.find_section_by_name(".dynstr")
        if section is None:
            return None
        data = section.get_data(elf)
        return data if isinstance(data, StringTable) else None
