#! python3
# coding: utf-8

from hexdump import hexdump

from dedit_sect import (
    c_dedit_sect_container, get_index_type, write_indices,
    TruncatedRead,
)
from dedit_charset import LINE_BREAK, split_blocks

class c_dedit_compiler:

    def __init__(self, charset, itype, macros = None):
        self.charset = charset
        self.itype = get_index_type(itype)
        self.macros = macros

    def _load_container(self, raw, segment):
        if not raw:
            raise TruncatedRead('empty container')
        # the whole buffer is kept: entries are absolute offsets,
        # segment end has no effect on an indexed container
        if segment is None:
            st = 0
        else:
            st = segment[0]
        if not 0 <= st < len(raw):
            raise TruncatedRead(
                f'segment start 0x{st:x} out of 0x{len(raw):x} bytes')
        cont = c_dedit_sect_container(raw, 0)
        return cont.parse(self.itype, base = st)

    def iter_decompile(self, raw, segment = None):
        cont = self._load_container(raw, segment)
        keep_empty = self.charset.keep_empty
        for i, st, ed, rec in cont.iter_records():
            if st == ed and not keep_empty:
                continue
            yield self.charset.decode(rec, self.macros) + LINE_BREAK

    def decompile(self, raw, segment = None):
        return ''.join(self.iter_decompile(raw, segment))

    def compile(self, txt):
        recs = [self.charset.encode(blk, self.macros)
            for blk in split_blocks(txt, self.charset.skip_blank)]
        idxs = write_indices(recs, self.itype)
        return idxs + b''.join(recs)

    def inspect(self, raw, segment = None):
        cont = self._load_container(raw, segment)
        yield f'index {self.itype.NAME}: {cont.tsize} records, payload at 0x{cont.indices[0]:x}'
        for i, st, ed, rec in cont.iter_records():
            yield f'#{i:04d} [0x{st:x}, 0x{ed:x}) {ed - st} bytes'
            if rec:
                yield hexdump(rec, result = 'return')
